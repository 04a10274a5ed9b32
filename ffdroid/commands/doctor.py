import click
import os
import shutil
import sys
from .. import config as config_module
from ..cli_logger import logger

REQUIRED_TOOLS = ["git", "make", "meson", "ninja", "pkg-config"]
OPTIONAL_TOOLS = ["nasm", "yasm", "readelf"]

def check_environment(path=".", which=shutil.which):
    """Report missing host tools and the state of cached downloads."""
    all_ok = True
    for tool in REQUIRED_TOOLS:
        location = which(tool)
        if location:
            logger.info(f"  - {tool}: {location}")
        else:
            logger.warning(f"Required tool '{tool}' was not found on PATH.")
            all_ok = False

    for tool in OPTIONAL_TOOLS:
        if not which(tool):
            logger.warning(f"Optional tool '{tool}' was not found on PATH.")

    build_config = config_module.resolve_build_config(file_config=config_module.load_config(path=path))
    paths = config_module.BuildPaths(os.path.abspath(path), build_config.ndk_version)
    if os.path.isdir(paths.ndk_dir):
        logger.info(f"  - NDK {build_config.ndk_version}: {paths.ndk_dir}")
    else:
        logger.info(f"  - NDK {build_config.ndk_version} is not downloaded yet; 'ffdroid build' will fetch it.")
    if os.path.isdir(os.path.join(paths.ffmpeg_dir, ".git")):
        logger.info(f"  - FFmpeg checkout: {paths.ffmpeg_dir}")
    else:
        logger.info("  - FFmpeg is not cloned yet; 'ffdroid build' will clone it.")

    return all_ok

@click.command()
@click.pass_context
def doctor(ctx):
    """Check that the host tools needed for a build are installed."""
    logger.info("Running environment check...")
    try:
        ok = check_environment(path=(ctx.obj or {}).get("path", "."))
    except click.ClickException as e:
        logger.error(e.format_message())
        sys.exit(e.exit_code)

    if ok:
        logger.success("Environment check completed successfully.")
    else:
        logger.error("Environment check found issues. Please review the warnings above.")
        sys.exit(1)
