"""Build libfftools.so, FFmpeg's command-line tool as a shared library.

``fftools/ffmpeg.c`` is recompiled with ``main`` renamed to ``ffmpeg_main``
and linked together with the other fftools objects. The link is tried
against the shared FFmpeg libraries first; if that fails the static archives
are pulled in whole instead.
"""

import os
import shlex
from dataclasses import dataclass
from ..cli_logger import logger
from ..errors import BuildError
from ..utils import run_shell_command, run_logged_command
from .dav1d import PAGE_SIZE_LDFLAG

LIBRARY_NAME = "libfftools.so"
ENTRY_SYMBOL = "ffmpeg_main"
ENTRY_OBJECT = os.path.join("fftools", "ffmpeg_entry.o")

SKIPPED_OBJECTS = {"ffmpeg.o", "ffprobe.o", "ffplay.o", "ffmpeg_entry.o"}

FFMPEG_LIBS = ["avformat", "avcodec", "avutil", "swscale", "swresample", "avfilter", "avdevice"]
STATIC_ARCHIVES = [
    "libavcodec.a", "libavformat.a", "libavutil.a", "libswresample.a",
    "libswscale.a", "libavfilter.a", "libavdevice.a",
]
SYSTEM_LIBS = ["-ldl", "-lm", "-lz"]

LOG_PREVIEW_LINES = 250

HEADER = """#ifndef LIBFFTOOLS_FFMPEG_H
#define LIBFFTOOLS_FFMPEG_H
#ifdef __cplusplus
extern "C" {
#endif
int ffmpeg_main(int argc, char **argv);
#ifdef __cplusplus
}
#endif
#endif
"""


@dataclass(frozen=True)
class Linked:
    path: str
    mode: str
    logs: tuple = ()


@dataclass(frozen=True)
class FailedWithLog:
    logs: tuple
    reason: str = ""


def collect_tool_objects(ffmpeg_dir):
    """fftools objects to link, relative to the FFmpeg tree, entry object last."""
    objects = []
    for root, _, files in os.walk(os.path.join(ffmpeg_dir, "fftools")):
        for name in sorted(files):
            if name.endswith(".o") and name not in SKIPPED_OBJECTS:
                objects.append(os.path.relpath(os.path.join(root, name), ffmpeg_dir))
    objects.sort()
    objects.append(ENTRY_OBJECT)
    return objects


def compile_entry(toolchain, ffmpeg_dir, log_path, verbose=False):
    run_logged_command(
        [
            toolchain.cc, "-c", "-fPIC", "-O2", f"-Dmain={ENTRY_SYMBOL}",
            "-I.", "-I./fftools", "-I./ffbuild", "-I./compat",
            "-DHAVE_CONFIG_H",
            "-o", ENTRY_OBJECT, os.path.join("fftools", "ffmpeg.c"),
        ],
        log_path,
        f"Compiling ffmpeg entry point as {ENTRY_SYMBOL}",
        cwd=ffmpeg_dir, abi=toolchain.abi, verbose=verbose,
    )


def _link_command(toolchain, output, objects, libraries):
    return [
        toolchain.cc, "-shared", "-fPIC", "-O2",
        f"-Wl,-soname={LIBRARY_NAME}",
        PAGE_SIZE_LDFLAG,
        "-o", output,
    ] + objects + libraries


def _attempt(command, cwd, log_path):
    stdout, stderr, returncode = run_shell_command(command, cwd=cwd)
    with open(log_path, "w") as log:
        log.write(f"$ {shlex.join(command)}\n")
        log.write(stdout)
        log.write(stderr)
    return returncode == 0


def _preview(log_path, title):
    logger.warning(title)
    with open(log_path, "r", errors="replace") as f:
        for i, line in enumerate(f):
            if i >= LOG_PREVIEW_LINES:
                break
            logger.step_info(line.rstrip(), indent=4)


def link_tool_library(toolchain, ffmpeg_dir, lib_dir, dav1d_lib_dir, objects, log_dir):
    """Link libfftools.so, shared first, static --whole-archive second."""
    output = os.path.join(lib_dir, LIBRARY_NAME)
    shared_log = os.path.join(log_dir, "libfftools-shared.log")
    static_log = os.path.join(log_dir, "libfftools-static.log")

    logger.info(f"  - Linking {LIBRARY_NAME} (shared-first)...")
    shared_libs = [f"-L{lib_dir}", f"-L{dav1d_lib_dir}"] + [f"-l{name}" for name in FFMPEG_LIBS] + ["-ldav1d"] + SYSTEM_LIBS
    if _attempt(_link_command(toolchain, output, objects, shared_libs), ffmpeg_dir, shared_log):
        return Linked(output, "shared", (shared_log,))

    _preview(shared_log, f"Shared link failed; first {LOG_PREVIEW_LINES} lines of {shared_log}")
    logger.info("  - Falling back to static archives with --whole-archive...")

    archives = [os.path.join(lib_dir, name) for name in STATIC_ARCHIVES if os.path.isfile(os.path.join(lib_dir, name))]
    if not archives:
        with open(static_log, "w") as log:
            log.write(f"No static archives found for fallback in {lib_dir}\n")
            if os.path.isdir(lib_dir):
                log.writelines(f"{name}\n" for name in sorted(os.listdir(lib_dir)))
        return FailedWithLog((shared_log, static_log), reason=f"no static archives in {lib_dir}")

    static_libs = (
        ["-Wl,--whole-archive"] + archives + ["-Wl,--no-whole-archive", f"-L{dav1d_lib_dir}", "-ldav1d"] + SYSTEM_LIBS
    )
    linked = _attempt(_link_command(toolchain, output, objects, static_libs), ffmpeg_dir, static_log)
    _preview(static_log, f"Static fallback log; first {LOG_PREVIEW_LINES} lines")
    if linked:
        return Linked(output, "static", (shared_log, static_log))
    return FailedWithLog((shared_log, static_log), reason="shared and static links both failed")


def build_fftools(toolchain, paths, verbose=False):
    """Compile and link libfftools.so into the ABI's lib dir."""
    abi = toolchain.abi
    ffmpeg_dir = paths.ffmpeg_dir
    lib_dir = os.path.join(paths.build_dir(abi), "lib")
    log_dir = paths.log_dir(abi)
    os.makedirs(lib_dir, exist_ok=True)
    os.makedirs(log_dir, exist_ok=True)

    if not os.path.isdir(os.path.join(ffmpeg_dir, "fftools")):
        raise BuildError("fftools/ directory not found in this FFmpeg tree", abi=abi)

    compile_entry(toolchain, ffmpeg_dir, os.path.join(log_dir, "ffmpeg-entry.log"), verbose=verbose)

    objects = collect_tool_objects(ffmpeg_dir)
    if len(objects) < 2:
        raise BuildError("No fftools object files found. Did the build produce ffmpeg tool objects?", abi=abi)

    result = link_tool_library(
        toolchain, ffmpeg_dir, lib_dir, os.path.join(paths.dav1d_prefix(abi), "lib"), objects, log_dir
    )
    if isinstance(result, FailedWithLog):
        raise BuildError(f"Could not link {LIBRARY_NAME}: {result.reason}", abi=abi, log_paths=result.logs)

    logger.success(f"  - Built {LIBRARY_NAME} ({result.mode} link, {os.path.getsize(result.path)} bytes)")
    return result


def install_header(include_dir):
    header_dir = os.path.join(include_dir, "libfftools")
    os.makedirs(header_dir, exist_ok=True)
    header_path = os.path.join(header_dir, "ffmpeg.h")
    with open(header_path, "w") as f:
        f.write(HEADER)
    return header_path
