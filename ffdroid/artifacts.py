import glob
import os
import shutil
from dataclasses import dataclass
from .cli_logger import logger


@dataclass(frozen=True)
class BuildArtifactSet:
    abi: str
    libraries: tuple
    version: str
    include_dir: str
    config_header: str

    @property
    def lib_dir(self):
        return os.path.dirname(self.libraries[0]) if self.libraries else None


def is_shared_object(name):
    return name.endswith(".so") or ".so." in name


def copy_dependency_libraries(dav1d_prefix, lib_dir):
    """Copy libdav1d.so* next to the FFmpeg libraries."""
    os.makedirs(lib_dir, exist_ok=True)
    copied = []
    for path in sorted(glob.glob(os.path.join(dav1d_prefix, "lib", "libdav1d.so*"))):
        destination = os.path.join(lib_dir, os.path.basename(path))
        shutil.copy2(path, destination)
        copied.append(destination)
    if not copied:
        logger.warning(f"  - No libdav1d.so found in {dav1d_prefix}/lib")
    return copied


def prune_output_tree(lib_dir):
    """Drop static archives and pkg-config files from the ABI's lib dir."""
    removed = []
    for path in glob.glob(os.path.join(lib_dir, "*.a")):
        os.remove(path)
        removed.append(path)
    pkgconfig_dir = os.path.join(lib_dir, "pkgconfig")
    if os.path.isdir(pkgconfig_dir):
        shutil.rmtree(pkgconfig_dir)
        removed.append(pkgconfig_dir)
    for path in removed:
        logger.step_info(f"removed: {path}", indent=4)
    return removed


def collect_artifacts(abi, build_dir, version):
    lib_dir = os.path.join(build_dir, "lib")
    libraries = []
    if os.path.isdir(lib_dir):
        libraries = [
            os.path.join(lib_dir, name)
            for name in sorted(os.listdir(lib_dir))
            if is_shared_object(name) and os.path.isfile(os.path.join(lib_dir, name))
        ]
    return BuildArtifactSet(
        abi=abi,
        libraries=tuple(libraries),
        version=version,
        include_dir=os.path.join(build_dir, "include"),
        config_header=os.path.join(build_dir, "config.h"),
    )


def write_version_marker(directory, version, filename):
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, filename)
    with open(path, "w") as f:
        f.write(f"{version}\n")
    return path
