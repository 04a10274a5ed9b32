import os
import shutil
from ..cli_logger import logger
from ..utils import run_shell_command, run_logged_command
from .dav1d import PAGE_SIZE_LDFLAG

FEATURE_FLAGS = [
    "--enable-cross-compile",
    "--enable-shared",
    # static archives are only kept for the libfftools fallback link
    "--enable-static",
    "--disable-doc",
    "--enable-ffmpeg",
    "--disable-ffprobe",
    "--disable-ffplay",
    "--enable-pic",
    "--disable-debug",
    "--disable-iconv",
    "--enable-libdav1d",
    "--enable-decoder=libdav1d",
]


def config_log_path(ffmpeg_dir):
    return os.path.join(ffmpeg_dir, "ffbuild", "config.log")


def clean_ffmpeg(ffmpeg_dir):
    """Reset the shared checkout; both steps may fail on a pristine tree."""
    logger.info("  - Cleaning FFmpeg checkout...")
    run_shell_command(["make", "distclean"], cwd=ffmpeg_dir)
    run_shell_command(["git", "clean", "-xdf"], cwd=ffmpeg_dir)


def configure_args(toolchain, prefix, dav1d_prefix, pkg_config):
    args = [
        "./configure",
        f"--prefix={prefix}",
        "--target-os=android",
        f"--arch={toolchain.arch}",
        f"--cpu={toolchain.cpu}",
        f"--cross-prefix={toolchain.cross_prefix}",
        f"--cc={toolchain.cc}",
        f"--cxx={toolchain.cxx}",
        f"--ar={toolchain.ar}",
        f"--ranlib={toolchain.ranlib}",
        f"--strip={toolchain.strip}",
        f"--nm={toolchain.nm}",
        f"--pkg-config={pkg_config}",
        f"--sysroot={toolchain.sysroot}",
    ]
    args += FEATURE_FLAGS
    if toolchain.neon:
        args.append("--enable-neon")
    args += [
        f"--extra-cflags=-I{dav1d_prefix}/include -fPIC",
        f"--extra-ldflags=-L{dav1d_prefix}/lib {PAGE_SIZE_LDFLAG} -Wl,-rpath-link,{dav1d_prefix}/lib",
    ]
    return args


def configure_env(toolchain, dav1d_prefix):
    env = toolchain.env()
    pkgconfig_dir = os.path.join(dav1d_prefix, "lib", "pkgconfig")
    env["PKG_CONFIG_LIBDIR"] = pkgconfig_dir
    env["PKG_CONFIG_PATH"] = pkgconfig_dir
    # glob() is missing from older bionic releases
    env["ac_cv_func_glob"] = "no"
    return env


def build_ffmpeg(toolchain, paths, build_config, dav1d_prefix, verbose=False):
    """Configure, build and install FFmpeg for one ABI. Returns the prefix."""
    abi = toolchain.abi
    ffmpeg_dir = paths.ffmpeg_dir
    prefix = paths.build_dir(abi)
    log_dir = paths.log_dir(abi)
    logger.info(f"  - Building FFmpeg {build_config.ffmpeg_tag} for {abi}...")

    clean_ffmpeg(ffmpeg_dir)
    os.makedirs(prefix, exist_ok=True)

    pkg_config = shutil.which("pkg-config") or "pkg-config"
    env = configure_env(toolchain, dav1d_prefix)

    run_logged_command(
        configure_args(toolchain, prefix, dav1d_prefix, pkg_config),
        os.path.join(log_dir, "ffmpeg-configure.log"),
        "FFmpeg configure",
        env=env, cwd=ffmpeg_dir, abi=abi, verbose=verbose,
    )
    run_logged_command(
        ["make", f"-j{build_config.jobs}"],
        os.path.join(log_dir, "ffmpeg-make.log"),
        "FFmpeg make",
        env=env, cwd=ffmpeg_dir, abi=abi, verbose=verbose,
    )
    run_logged_command(
        ["make", "install", "V=1"],
        os.path.join(log_dir, "ffmpeg-install.log"),
        "FFmpeg make install",
        env=env, cwd=ffmpeg_dir, abi=abi, verbose=verbose,
    )
    logger.success(f"  - FFmpeg installed to {prefix}")
    return prefix
