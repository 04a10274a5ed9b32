import os
import shutil
from .cli_logger import logger
from .errors import ProvisioningError
from .utils import run_shell_command, download_and_extract

NDK_DOWNLOAD_URL = "https://dl.google.com/android/repository/{archive}"
FFMPEG_REPO_URL = "https://github.com/FFmpeg/FFmpeg"
DAV1D_REPO_URL = "https://code.videolan.org/videolan/dav1d.git"

HOST_PACKAGES = [
    "git", "wget", "unzip", "build-essential", "pkg-config", "yasm", "nasm", "binutils",
    "libc6:i386", "libstdc++6:i386", "lib32z1", "gcc-multilib", "g++-multilib",
    "ninja-build", "meson", "python3-pip",
]

PKG_CONFIG_FAKE_SCRIPT = "#!/usr/bin/env bash\nexit 1\n"


def _git(args, cwd=None, what="git"):
    stdout, stderr, returncode = run_shell_command(["git"] + args, cwd=cwd)
    if returncode != 0:
        raise ProvisioningError(f"{what} failed (Exit Code: {returncode}): {stderr.strip() or stdout.strip()}")
    return stdout.strip()


def install_host_dependencies(skip=False):
    """Install build prerequisites with apt-get when it is available."""
    if skip:
        logger.info("Skipping dependency installation as requested.")
        return False

    if not shutil.which("apt-get"):
        logger.warning("apt-get not available; ensure required build dependencies are installed.")
        return False

    logger.info("Installing host build dependencies with apt-get...")
    # i386 multiarch is optional on some hosts
    run_shell_command(["sudo", "dpkg", "--add-architecture", "i386"])

    for command in (
        ["sudo", "apt-get", "update"],
        ["sudo", "apt-get", "install", "-y"] + HOST_PACKAGES,
    ):
        stdout, stderr, returncode = run_shell_command(command)
        if returncode != 0:
            logger.error(f"Stderr:\n{stderr}")
            raise ProvisioningError(f"'{' '.join(command[:3])}' failed (Exit Code: {returncode})")

    logger.success("Host build dependencies installed.")
    return True


def ensure_ndk(ndk_version, paths):
    """Download and unpack the NDK unless it is already present."""
    if os.path.isdir(paths.ndk_dir):
        logger.info(f"Using existing NDK at {paths.ndk_dir}")
        return paths.ndk_dir

    url = NDK_DOWNLOAD_URL.format(archive=paths.ndk_archive)
    logger.info(f"📦 Downloading Android NDK {ndk_version}...")
    download_and_extract(url, paths.root, paths.ndk_archive)

    if not os.path.isdir(paths.ndk_dir):
        raise ProvisioningError(f"NDK archive {paths.ndk_archive} did not contain {os.path.basename(paths.ndk_dir)}")
    logger.success(f"Android NDK {ndk_version} installed at {paths.ndk_dir}")
    return paths.ndk_dir


def _resolves(revision, cwd):
    stdout, _, returncode = run_shell_command(
        ["git", "rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"], cwd=cwd
    )
    return returncode == 0 and bool(stdout.strip())


def ensure_ffmpeg_source(tag, paths):
    """Clone FFmpeg if needed and check out ``tag``.

    Tags are only fetched when ``tag`` does not resolve in the local checkout.
    """
    source_dir = paths.ffmpeg_dir
    if not os.path.isdir(os.path.join(source_dir, ".git")):
        logger.info(f"Cloning FFmpeg into {source_dir}...")
        _git(["clone", FFMPEG_REPO_URL, source_dir], what="git clone of FFmpeg")

    if not _resolves(tag, source_dir):
        logger.info(f"Fetching FFmpeg tags for {tag}...")
        _git(["fetch", "--tags", "--force"], cwd=source_dir, what="git fetch of FFmpeg tags")
        if not _resolves(tag, source_dir):
            raise ProvisioningError(f"Unknown FFmpeg tag or revision '{tag}'")

    _git(["checkout", tag], cwd=source_dir, what=f"git checkout {tag}")
    head = _git(["rev-parse", "--short", "HEAD"], cwd=source_dir)
    logger.success(f"FFmpeg {tag} checked out at {head}")
    return head


def ensure_dav1d_source(version, paths):
    """Shallow-clone dav1d at ``version``, or move an existing checkout to it."""
    source_dir = paths.dav1d_dir
    if not os.path.isdir(os.path.join(source_dir, ".git")):
        if os.path.isdir(source_dir):
            logger.warning(f"{source_dir} is not a git checkout; removing it")
            shutil.rmtree(source_dir)
        os.makedirs(paths.deps_dir, exist_ok=True)
        logger.info(f"Cloning dav1d {version}...")
        _git(
            ["clone", "--branch", version, "--depth", "1", DAV1D_REPO_URL, source_dir],
            what=f"git clone of dav1d {version}",
        )
        return source_dir

    head = _git(["rev-parse", "HEAD"], cwd=source_dir)
    if _resolves(version, source_dir):
        if _git(["rev-parse", f"{version}^{{commit}}"], cwd=source_dir) == head:
            logger.info(f"Using existing dav1d {version} checkout at {source_dir}")
            return source_dir
        target = version
    else:
        logger.info(f"Fetching dav1d {version}...")
        _git(["fetch", "--depth", "1", "origin", version], cwd=source_dir, what=f"git fetch of dav1d {version}")
        target = "FETCH_HEAD"

    _git(["checkout", "--detach", target], cwd=source_dir, what=f"git checkout of dav1d {version}")
    logger.success(f"dav1d checkout switched to {version}")
    return source_dir


def ensure_pkg_config_fake(paths):
    """Write a pkg-config stand-in that fails every lookup."""
    os.makedirs(paths.bin_dir, exist_ok=True)
    with open(paths.pkg_config_fake, "w") as f:
        f.write(PKG_CONFIG_FAKE_SCRIPT)
    os.chmod(paths.pkg_config_fake, 0o755)
    return paths.pkg_config_fake


def provision(build_config, paths):
    """Everything shared by all ABIs: host packages, NDK, sources, shims."""
    logger.info("Provisioning toolchain and sources...")
    for directory in (paths.deps_dir, paths.bin_dir, paths.meson_cross_dir):
        os.makedirs(directory, exist_ok=True)

    install_host_dependencies(skip=build_config.skip_dep_install)
    ndk_dir = ensure_ndk(build_config.ndk_version, paths)
    ensure_ffmpeg_source(build_config.ffmpeg_tag, paths)
    ensure_dav1d_source(build_config.dav1d_version, paths)
    ensure_pkg_config_fake(paths)
    return ndk_dir
