import click
import importlib.metadata
from .. import config as config_module
from ..cli_logger import logger

@click.command()
def version():
    """Print the ffdroid version and the pinned upstream defaults."""
    try:
        logger.info(f"ffdroid version {importlib.metadata.version('ffdroid')}")
    except importlib.metadata.PackageNotFoundError:
        logger.error("Error: Could not determine the version of ffdroid. Is it installed correctly?")
        return
    logger.step_info(f"FFmpeg tag:   {config_module.DEFAULT_FFMPEG_TAG}", indent=2)
    logger.step_info(f"Android NDK:  {config_module.DEFAULT_NDK_VERSION}", indent=2)
    logger.step_info(f"dav1d:        {config_module.DEFAULT_DAV1D_VERSION}", indent=2)
    logger.step_info(f"Min API:      {config_module.DEFAULT_MIN_API_LEVEL}", indent=2)
