import os
from dataclasses import dataclass
import toml
from .cli_logger import logger
from .errors import ConfigurationError

CONFIG_FILE = "ffdroid.toml"

SUPPORTED_ABIS = ("arm64-v8a", "armeabi-v7a", "x86_64")
DEFAULT_ABIS = SUPPORTED_ABIS

DEFAULT_FFMPEG_TAG = "n8.0"
DEFAULT_NDK_VERSION = "r27"
DEFAULT_MIN_API_LEVEL = 26
DEFAULT_INTERNAL_VERSION = "0.1.1"
DEFAULT_DAV1D_VERSION = "1.2.1"
FALLBACK_JOBS = 4

VERSION_MARKER = "as-ffmpeg-version"

# option name -> environment variable
ENV_VARS = {
    "ffmpeg_tag": "FFMPEG_TAG",
    "ndk_version": "NDK_VERSION",
    "min_api_level": "MIN_API_LEVEL",
    "internal_version": "INTERNAL_VERSION",
    "jobs": "JOBS",
    "dav1d_version": "DAV1D_VERSION",
    "skip_dep_install": "SKIP_DEP_INSTALL",
}

TRUTHY = {"1", "true", "yes", "on", "y"}


def load_config(path="."):
    config_path = os.path.join(path, CONFIG_FILE)
    if os.path.exists(config_path):
        logger.info(f"Loading configuration from {config_path}")
        try:
            with open(config_path, "r") as f:
                return toml.load(f)
        except toml.TomlDecodeError as e:
            logger.error(f"Error decoding TOML file at {config_path}: {e}")
            logger.info("Please check the file's format for syntax errors.")
        except IOError as e:
            logger.error(f"Error reading configuration file at {config_path}: {e}")
            logger.info("Please check file permissions.")
    return {}

def save_config(config, path="."):
    config_path = os.path.join(path, CONFIG_FILE)
    logger.info(f"Saving configuration to {config_path}")
    try:
        with open(config_path, "w") as f:
            toml.dump(config, f)
        return True
    except IOError as e:
        logger.error(f"Error saving configuration to {config_path}: {e}")
        logger.info("Please check file permissions and ensure the directory is writable.")
        return False


@dataclass(frozen=True)
class BuildConfig:
    abis: tuple
    ffmpeg_tag: str = DEFAULT_FFMPEG_TAG
    ndk_version: str = DEFAULT_NDK_VERSION
    min_api_level: int = DEFAULT_MIN_API_LEVEL
    internal_version: str = DEFAULT_INTERNAL_VERSION
    jobs: int = FALLBACK_JOBS
    dav1d_version: str = DEFAULT_DAV1D_VERSION
    skip_dep_install: bool = False


@dataclass(frozen=True)
class BuildPaths:
    """On-disk layout of a build, rooted at the work directory."""

    root: str
    ndk_version: str

    @property
    def ndk_dir(self):
        return os.path.join(self.root, f"android-ndk-{self.ndk_version}")

    @property
    def ndk_archive(self):
        return f"android-ndk-{self.ndk_version}-linux.zip"

    @property
    def ffmpeg_dir(self):
        return os.path.join(self.root, "ffmpeg-src")

    @property
    def ffmpeg_lock_file(self):
        # beside the checkout, since every ABI runs `git clean -xdf` inside it
        return os.path.join(self.root, ".ffdroid-ffmpeg-src.lock")

    @property
    def deps_dir(self):
        return os.path.join(self.root, "deps")

    @property
    def dav1d_dir(self):
        return os.path.join(self.deps_dir, "dav1d")

    @property
    def bin_dir(self):
        return os.path.join(self.root, "bin")

    @property
    def pkg_config_fake(self):
        return os.path.join(self.bin_dir, "pkg-config-fake")

    @property
    def meson_cross_dir(self):
        return os.path.join(self.root, "meson-cross")

    @property
    def output_dir(self):
        return os.path.join(self.root, "output", "ffmpeg")

    def meson_cross_file(self, abi):
        return os.path.join(self.meson_cross_dir, f"android-{abi}.ini")

    def dav1d_prefix(self, abi):
        return os.path.join(self.root, "android-libs", abi)

    def build_dir(self, abi):
        return os.path.join(self.root, "android-build", abi)

    def log_dir(self, abi):
        return os.path.join(self.build_dir(abi), "logs")


def default_jobs():
    return os.cpu_count() or FALLBACK_JOBS


def _pick(name, flags, environ, file_conf, default=None):
    """CLI flag, then environment variable, then ffdroid.toml, then ``default``.

    An unset or empty environment variable falls through; an explicit empty
    flag or file value does not.
    """
    value = flags.get(name)
    if value is not None:
        return value
    env_value = environ.get(ENV_VARS[name])
    if env_value not in (None, ""):
        return env_value
    value = file_conf.get(name)
    return default if value is None else value


def _positive_int(name, value):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if number < 1:
        raise ConfigurationError(f"{name} must be positive, got {number}")
    return number


def _non_empty(name, value):
    value = str(value).strip()
    if not value:
        raise ConfigurationError(f"{name} must not be empty")
    return value


def resolve_abis(requested):
    if not requested:
        return DEFAULT_ABIS
    abis = []
    for abi in requested:
        if abi not in SUPPORTED_ABIS:
            raise ConfigurationError(
                f"Unsupported ABI '{abi}'. Supported ABIs: {', '.join(SUPPORTED_ABIS)}"
            )
        if abi not in abis:
            abis.append(abi)
    return tuple(abis)


def resolve_build_config(flags=None, environ=None, file_config=None):
    """Merge CLI flags, environment and ffdroid.toml into a BuildConfig.

    ``flags`` maps option names to CLI values (``None`` when not given),
    ``environ`` defaults to ``os.environ`` and ``file_config`` is the parsed
    ffdroid.toml. Nothing is written and no commands are run.
    """
    flags = flags or {}
    environ = os.environ if environ is None else environ
    file_conf = (file_config or {}).get("build", {})

    abis = resolve_abis(flags.get("abis") or file_conf.get("abis"))

    ffmpeg_tag = _pick("ffmpeg_tag", flags, environ, file_conf, DEFAULT_FFMPEG_TAG)
    ndk_version = _pick("ndk_version", flags, environ, file_conf, DEFAULT_NDK_VERSION)
    internal_version = _pick("internal_version", flags, environ, file_conf, DEFAULT_INTERNAL_VERSION)
    dav1d_version = _pick("dav1d_version", flags, environ, file_conf, DEFAULT_DAV1D_VERSION)

    api_level = _pick("min_api_level", flags, environ, file_conf)
    jobs = _pick("jobs", flags, environ, file_conf)

    skip = _pick("skip_dep_install", flags, environ, file_conf)
    if isinstance(skip, str):
        skip = skip.strip().lower() in TRUTHY

    return BuildConfig(
        abis=abis,
        ffmpeg_tag=_non_empty("ffmpeg_tag", ffmpeg_tag),
        ndk_version=_non_empty("ndk_version", ndk_version),
        min_api_level=_positive_int("min_api_level", DEFAULT_MIN_API_LEVEL if api_level is None else api_level),
        internal_version=_non_empty("internal_version", internal_version),
        jobs=_positive_int("jobs", default_jobs() if jobs is None else jobs),
        dav1d_version=_non_empty("dav1d_version", dav1d_version),
        skip_dep_install=bool(skip),
    )
