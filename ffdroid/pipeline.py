import contextlib
import enum
import fcntl
import os
import shutil
from dataclasses import dataclass
from .cli_logger import logger
from .config import BuildPaths, VERSION_MARKER
from .errors import BuildError, FFDroidError
from .toolchain import derive_toolchain
from . import artifacts as artifacts_module
from . import builders
from . import provisioner
from . import verifier
from .stager import Stager


class AbiStage(enum.Enum):
    PROVISIONED = "provisioned"
    DEPENDENCY_BUILT = "dependency-built"
    PRIMARY_BUILT = "primary-built"
    SECONDARY_BUILT = "secondary-built"
    HEADERS_COPIED = "headers-copied"
    VERSION_STAMPED = "version-stamped"
    VERIFIED = "verified"
    STAGED = "staged"


STAGE_ORDER = list(AbiStage)


@dataclass(frozen=True)
class StageResult:
    abi: str
    stage: AbiStage
    ok: bool
    detail: str = ""


@contextlib.contextmanager
def checkout_lock(lock_path, source_dir):
    """Hold an exclusive lock on a source checkout that is mutated in place.

    ``lock_path`` must live outside ``source_dir``.
    """
    with open(lock_path, "w") as lock_file:
        try:
            fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            logger.warning(f"Waiting for another build to release {source_dir}...")
            fcntl.flock(lock_file, fcntl.LOCK_EX)
        try:
            yield lock_path
        finally:
            fcntl.flock(lock_file, fcntl.LOCK_UN)


class AbiBuildDriver:
    """Runs one ABI through the build stages, strictly in order."""

    def __init__(self, abi, build_config, paths, ndk_dir, stager, verbose=False):
        self.abi = abi
        self.build_config = build_config
        self.paths = paths
        self.stager = stager
        self.verbose = verbose
        self.toolchain = derive_toolchain(abi, ndk_dir, build_config.min_api_level)
        self.stage = AbiStage.PROVISIONED
        self.history = []
        self.dav1d_prefix = None
        self.link_result = None
        self.artifacts = None
        self.report = None

    @property
    def build_dir(self):
        return self.paths.build_dir(self.abi)

    @property
    def lib_dir(self):
        return os.path.join(self.build_dir, "lib")

    def transitions(self):
        return [
            (AbiStage.DEPENDENCY_BUILT, self.build_dependency),
            (AbiStage.PRIMARY_BUILT, self.build_primary),
            (AbiStage.SECONDARY_BUILT, self.build_secondary),
            (AbiStage.HEADERS_COPIED, self.copy_headers),
            (AbiStage.VERSION_STAMPED, self.stamp_version),
            (AbiStage.VERIFIED, self.verify),
            (AbiStage.STAGED, self.stage_output),
        ]

    def advance(self, target, step):
        expected = STAGE_ORDER[STAGE_ORDER.index(self.stage) + 1]
        if target is not expected:
            raise BuildError(f"Cannot move from {self.stage.value} to {target.value}", abi=self.abi)
        try:
            detail = step() or ""
        except FFDroidError as e:
            if e.abi is None:
                e.abi = self.abi
            self.history.append(StageResult(self.abi, target, False, e.message))
            raise
        self.stage = target
        self.history.append(StageResult(self.abi, target, True, str(detail)))
        logger.info(f"  [{self.abi}] {target.value}")

    def run(self):
        logger.info(f"=== Building ABI: {self.abi} ===")
        self.prepare_dirs()
        for target, step in self.transitions():
            self.advance(target, step)
        return self.artifacts

    def prepare_dirs(self):
        os.makedirs(self.paths.dav1d_prefix(self.abi), exist_ok=True)
        shutil.rmtree(self.build_dir, ignore_errors=True)
        os.makedirs(self.build_dir)

    # -------- stages --------

    def build_dependency(self):
        self.dav1d_prefix = builders.build_dav1d(self.toolchain, self.paths, self.build_config, verbose=self.verbose)
        return self.dav1d_prefix

    def build_primary(self):
        return builders.build_ffmpeg(
            self.toolchain, self.paths, self.build_config, self.dav1d_prefix, verbose=self.verbose
        )

    def build_secondary(self):
        self.link_result = builders.build_fftools(self.toolchain, self.paths, verbose=self.verbose)
        artifacts_module.copy_dependency_libraries(self.dav1d_prefix, self.lib_dir)
        artifacts_module.prune_output_tree(self.lib_dir)
        return self.link_result.mode

    def copy_headers(self):
        builders.install_header(os.path.join(self.build_dir, "include"))
        config_header = os.path.join(self.paths.ffmpeg_dir, "config.h")
        if not os.path.isfile(config_header):
            raise BuildError(f"config.h not found in {self.paths.ffmpeg_dir}", abi=self.abi)
        shutil.copy2(config_header, os.path.join(self.build_dir, "config.h"))

    def stamp_version(self):
        version = self.build_config.internal_version
        artifacts_module.write_version_marker(self.build_dir, version, VERSION_MARKER)
        self.artifacts = artifacts_module.collect_artifacts(self.abi, self.build_dir, version)
        return f"{len(self.artifacts.libraries)} artifacts"

    def verify(self):
        self.report = verifier.verify_artifacts(self.artifacts, self.toolchain)

    def stage_output(self):
        return self.stager.stage(self.artifacts, self.report)


def print_tree(root):
    for directory, _, files in sorted(os.walk(root)):
        for name in sorted(files):
            logger.step_info(os.path.relpath(os.path.join(directory, name), root), indent=2)


def run_pipeline(build_config, work_dir=".", verbose=False):
    """Provision once, then build, verify and stage every ABI in order.

    The first failure propagates and aborts the remaining ABIs.
    """
    paths = BuildPaths(os.path.abspath(work_dir), build_config.ndk_version)
    logger.info(f"ABIs: {', '.join(build_config.abis)}")
    logger.info(f"FFmpeg {build_config.ffmpeg_tag}, NDK {build_config.ndk_version}, "
                f"API {build_config.min_api_level}, dav1d {build_config.dav1d_version}, jobs {build_config.jobs}")

    stager = Stager(paths.output_dir)
    stager.reset()

    ndk_dir = provisioner.provision(build_config, paths)

    drivers = []
    with checkout_lock(paths.ffmpeg_lock_file, paths.ffmpeg_dir):
        for abi in build_config.abis:
            driver = AbiBuildDriver(abi, build_config, paths, ndk_dir, stager, verbose=verbose)
            try:
                driver.run()
            except BuildError as e:
                config_log = builders.config_log_path(paths.ffmpeg_dir)
                if os.path.isfile(config_log):
                    e.log_paths += (config_log,)
                raise
            drivers.append(driver)

    stager.write_package_version(build_config.internal_version)
    logger.success(f"All builds completed. Consolidated output: {paths.output_dir}")
    print_tree(paths.output_dir)
    return drivers
