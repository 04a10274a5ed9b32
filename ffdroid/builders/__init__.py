from .dav1d import build_dav1d, write_meson_cross_file, write_pkg_config_file
from .ffmpeg import build_ffmpeg, config_log_path
from .fftools import build_fftools, install_header, link_tool_library, Linked, FailedWithLog
