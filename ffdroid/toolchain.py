import os
from dataclasses import dataclass
from .errors import ConfigurationError

HOST_TAG = "linux-x86_64"

# abi -> (ffmpeg arch, ffmpeg cpu, clang target, binutils prefix, meson cpu_family, meson cpu)
ABI_TABLE = {
    "arm64-v8a": ("arm64", "armv8-a", "aarch64-linux-android", "aarch64-linux-android", "aarch64", "armv8-a"),
    "armeabi-v7a": ("arm", "armv7-a", "armv7a-linux-androideabi", "arm-linux-androideabi", "arm", "armv7-a"),
    "x86_64": ("x86_64", "x86-64", "x86_64-linux-android", "x86_64-linux-android", "x86_64", "x86-64"),
}

NEON_ARCHS = {"arm", "arm64"}


@dataclass(frozen=True)
class ToolchainDescriptor:
    abi: str
    api_level: int
    arch: str
    cpu: str
    target_host: str
    cross_prefix: str
    cc: str
    cxx: str
    ar: str
    ranlib: str
    strip: str
    nm: str
    readelf: str
    ld: str
    sysroot: str
    meson_cpu_family: str
    meson_cpu: str

    @property
    def neon(self):
        return self.arch in NEON_ARCHS

    @property
    def bin_dir(self):
        return os.path.dirname(self.cc)

    def env(self, base=None):
        """Environment for subprocesses, with the NDK binaries first on PATH."""
        env = dict(os.environ if base is None else base)
        env["CC"] = self.cc
        env["CXX"] = self.cxx
        env["AR"] = self.ar
        env["RANLIB"] = self.ranlib
        env["STRIP"] = self.strip
        env["NM"] = self.nm
        env["PATH"] = f"{self.bin_dir}{os.pathsep}{env.get('PATH', '')}"
        return env


def toolchain_root(ndk_root):
    return os.path.join(ndk_root, "toolchains", "llvm", "prebuilt", HOST_TAG)


def derive_toolchain(abi, ndk_root, api_level):
    """Build the immutable toolchain descriptor for one ABI."""
    try:
        arch, cpu, target, binutils_prefix, meson_family, meson_cpu = ABI_TABLE[abi]
    except KeyError:
        raise ConfigurationError(f"Unsupported ABI: {abi}")

    toolchain = toolchain_root(ndk_root)
    bin_dir = os.path.join(toolchain, "bin")

    return ToolchainDescriptor(
        abi=abi,
        api_level=int(api_level),
        arch=arch,
        cpu=cpu,
        target_host=target,
        cross_prefix=os.path.join(bin_dir, f"{binutils_prefix}-"),
        cc=os.path.join(bin_dir, f"{target}{api_level}-clang"),
        cxx=os.path.join(bin_dir, f"{target}{api_level}-clang++"),
        ar=os.path.join(bin_dir, "llvm-ar"),
        ranlib=os.path.join(bin_dir, "llvm-ranlib"),
        strip=os.path.join(bin_dir, "llvm-strip"),
        nm=os.path.join(bin_dir, "llvm-nm"),
        readelf=os.path.join(bin_dir, "llvm-readelf"),
        ld=os.path.join(bin_dir, "ld"),
        sysroot=os.path.join(toolchain, "sysroot"),
        meson_cpu_family=meson_family,
        meson_cpu=meson_cpu,
    )
