import os
import shutil
from ..cli_logger import logger
from ..utils import run_logged_command

PAGE_SIZE_LDFLAG = "-Wl,-z,max-page-size=16384"


def write_meson_cross_file(toolchain, cross_file_path, pkg_config):
    """Write a meson cross file pinned to the ABI's NDK binaries."""
    os.makedirs(os.path.dirname(cross_file_path), exist_ok=True)
    with open(cross_file_path, "w") as f:
        f.write("[binaries]\n")
        f.write(f"c = '{toolchain.cc}'\n")
        f.write(f"cpp = '{toolchain.cxx}'\n")
        f.write(f"ar = '{toolchain.ar}'\n")
        f.write(f"strip = '{toolchain.strip}'\n")
        f.write(f"pkgconfig = '{pkg_config}'\n")
        f.write("\n")
        f.write("[host_machine]\n")
        f.write("system = 'android'\n")
        f.write(f"cpu_family = '{toolchain.meson_cpu_family}'\n")
        f.write(f"cpu = '{toolchain.meson_cpu}'\n")
        f.write("endian = 'little'\n")
        f.write("\n")
        f.write("[properties]\n")
        f.write(f"sys_root = '{toolchain.sysroot}'\n")
        f.write("\n")
        f.write("[built-in options]\n")
        f.write("c_args = ['-fPIC']\n")
        f.write("cpp_args = ['-fPIC']\n")
        f.write(f"c_link_args = ['{PAGE_SIZE_LDFLAG}']\n")
        f.write(f"cpp_link_args = ['{PAGE_SIZE_LDFLAG}']\n")
    return cross_file_path


def write_pkg_config_file(prefix, version):
    """Write dav1d.pc so FFmpeg's configure finds the cross-built library."""
    pkgconfig_dir = os.path.join(prefix, "lib", "pkgconfig")
    os.makedirs(pkgconfig_dir, exist_ok=True)
    pc_path = os.path.join(pkgconfig_dir, "dav1d.pc")
    with open(pc_path, "w") as f:
        f.write(
            f"prefix={prefix}\n"
            "exec_prefix=${prefix}\n"
            "libdir=${prefix}/lib\n"
            "includedir=${prefix}/include\n"
            "\n"
            "Name: dav1d\n"
            "Description: AV1 decoding library\n"
            f"Version: {version}\n"
            "Libs: -L${libdir} -ldav1d\n"
            "Libs.private: -ldl -lm\n"
            "Cflags: -I${includedir}\n"
        )
    return pc_path


def build_dav1d(toolchain, paths, build_config, verbose=False):
    """Cross-compile dav1d into the ABI's prefix. Returns the prefix."""
    abi = toolchain.abi
    prefix = paths.dav1d_prefix(abi)
    source_dir = paths.dav1d_dir
    build_dir = os.path.join(source_dir, "build")
    log_dir = paths.log_dir(abi)
    logger.info(f"  - Building dav1d {build_config.dav1d_version} for {abi}...")

    os.makedirs(prefix, exist_ok=True)
    cross_file = write_meson_cross_file(toolchain, paths.meson_cross_file(abi), paths.pkg_config_fake)

    shutil.rmtree(build_dir, ignore_errors=True)
    run_logged_command(
        [
            "meson", "setup", "build",
            "--cross-file", cross_file,
            "--prefix", prefix,
            "--libdir=lib",
            "--buildtype=release",
            "--default-library=shared",
        ],
        os.path.join(log_dir, "dav1d-setup.log"),
        "dav1d meson setup",
        cwd=source_dir, abi=abi, verbose=verbose,
    )
    run_logged_command(
        ["ninja", "-C", "build"],
        os.path.join(log_dir, "dav1d-build.log"),
        "dav1d build",
        cwd=source_dir, abi=abi, verbose=verbose,
    )
    run_logged_command(
        ["ninja", "-C", "build", "install"],
        os.path.join(log_dir, "dav1d-install.log"),
        "dav1d install",
        cwd=source_dir, abi=abi, verbose=verbose,
    )

    # Only used by FFmpeg's configure; pruned from the final output.
    write_pkg_config_file(prefix, build_config.dav1d_version)
    logger.success(f"  - dav1d installed to {prefix}")
    return prefix
