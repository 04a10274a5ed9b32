import click
import shutil
import os
import sys
import glob
from ..cli_logger import logger

# intermediates that every build recreates
INTERMEDIATE_DIRS = [
    "android-libs",
    "android-build",
    "meson-cross",
    "bin",
    "output",
    "deps/dav1d/build",
]

# downloads and checkouts, only removed with --all
CACHED_PATTERNS = [
    "android-ndk-*",
    "ffmpeg-src",
    "deps",
]

@click.command()
@click.option("--all", "remove_all", is_flag=True, help="Also remove the NDK and the FFmpeg/dav1d checkouts.")
@click.pass_context
def clean(ctx, remove_all):
    """Remove build intermediates and staged output."""
    root = os.path.abspath((ctx.obj or {}).get("path", "."))
    logger.info(f"Cleaning build artifacts in {root}...")

    patterns = list(INTERMEDIATE_DIRS)
    if remove_all:
        patterns += CACHED_PATTERNS

    items_removed = 0
    for pattern in patterns:
        for path in glob.glob(os.path.join(root, pattern)):
            if not os.path.isdir(path):
                continue
            logger.info(f"Attempting to remove directory {path}...")
            try:
                shutil.rmtree(path)
                logger.success(f"Removed directory {path}")
                items_removed += 1
            except OSError as e:
                logger.error(f"Error removing directory {path}: {e}")
                logger.info("Please check file permissions and ensure the directory is not in use.")

    for path in glob.glob(os.path.join(root, "android-ndk-*-linux.zip*")):
        try:
            os.remove(path)
            logger.success(f"Removed file {path}")
            items_removed += 1
        except OSError as e:
            logger.error(f"Error removing file {path}: {e}")
            logger.exception(*sys.exc_info())

    if items_removed > 0:
        logger.success(f"Cleaning complete. Removed {items_removed} items.")
    else:
        logger.info("Project is already clean.")
