import click
from .. import config as config_module
from .. import pipeline
from ..cli_logger import logger
from ..decorators import handle_exceptions

@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.pass_context
@click.option("--abi", "abis", multiple=True, metavar="ABI",
              help="Target ABI (repeatable). Default: arm64-v8a, armeabi-v7a, x86_64.")
@click.option("--ffmpeg-tag", default=None, help="FFmpeg git tag or commit (env FFMPEG_TAG, default n8.0).")
@click.option("--ndk-version", default=None, help="Android NDK version (env NDK_VERSION, default r27).")
@click.option("--min-api-level", type=int, default=None, help="Android min API level (env MIN_API_LEVEL, default 26).")
@click.option("--internal-version", default=None,
              help="Release marker written to as-ffmpeg-version (env INTERNAL_VERSION, default 0.1.1).")
@click.option("--jobs", type=int, default=None, help="Parallel make jobs (env JOBS, default: CPU count).")
@click.option("--dav1d-version", default=None, help="dav1d release branch (env DAV1D_VERSION, default 1.2.1).")
@click.option("--skip-dep-install", is_flag=True, default=False,
              help="Skip the apt-get dependency installation (env SKIP_DEP_INSTALL=1).")
@click.option("--verbose", "-v", is_flag=True, help="Echo build tool output.")
@handle_exceptions
def build(ctx, abis, ffmpeg_tag, ndk_version, min_api_level, internal_version, jobs, dav1d_version,
          skip_dep_install, verbose):
    """Cross-compile FFmpeg, dav1d and libfftools for Android ABIs.

    Results are staged into output/ffmpeg/ under the project directory.
    """
    path = (ctx.obj or {}).get("path", ".")
    build_config = config_module.resolve_build_config(
        flags={
            "abis": list(abis),
            "ffmpeg_tag": ffmpeg_tag,
            "ndk_version": ndk_version,
            "min_api_level": min_api_level,
            "internal_version": internal_version,
            "jobs": jobs,
            "dav1d_version": dav1d_version,
            "skip_dep_install": True if skip_dep_install else None,
        },
        file_config=config_module.load_config(path=path),
    )
    if verbose:
        logger.info(f"Configuration: {build_config}")

    pipeline.run_pipeline(build_config, work_dir=path, verbose=verbose)
    logger.success(f"Build for {', '.join(build_config.abis)} completed successfully.")
