import contextlib
import os
import shutil
import stat
import tarfile
import zipfile
import requests
from ..cli_logger import logger
from ..errors import ProvisioningError

CHUNK_SIZE = 256 * 1024

# -------------------- Archives --------------------

def _member_path(dest_dir, name):
    """Resolve an archive member below ``dest_dir``; reject anything escaping it."""
    root = os.path.abspath(dest_dir)
    target = os.path.abspath(os.path.join(root, name))
    if target != root and not target.startswith(root + os.sep):
        raise ProvisioningError(f"Archive member escapes the destination: {name}")
    return target

def _unpack_zip(archive, dest_dir, log_each=False):
    # NDK archives store clang as symlinks; zipfile keeps neither the link type
    # nor the mode bits on its own.
    for member in archive.infolist():
        target = _member_path(dest_dir, member.filename)
        if member.is_dir():
            os.makedirs(target, exist_ok=True)
            continue
        os.makedirs(os.path.dirname(target), exist_ok=True)
        if log_each:
            logger.step_info(f"inflating: {member.filename}", indent=2)

        mode = member.external_attr >> 16
        if stat.S_ISLNK(mode):
            if os.path.lexists(target):
                os.remove(target)
            os.symlink(archive.read(member).decode("utf-8"), target)
            continue

        with archive.open(member) as src, open(target, "wb") as out:
            shutil.copyfileobj(src, out)
        if mode:
            os.chmod(target, stat.S_IMODE(mode))

def _unpack_tar(archive, dest_dir, log_each=False):
    for member in archive.getmembers():
        target = _member_path(dest_dir, member.name)
        if member.isdir():
            os.makedirs(target, exist_ok=True)
            continue
        if not member.isfile():
            continue
        os.makedirs(os.path.dirname(target), exist_ok=True)
        if log_each:
            logger.step_info(f"extracting: {member.name}", indent=2)
        with archive.extractfile(member) as src, open(target, "wb") as out:
            shutil.copyfileobj(src, out)
        os.chmod(target, member.mode)

def extract(filepath, dest_dir, log_each=False):
    """Unpack a zip or tar archive into ``dest_dir``, then delete the archive."""
    os.makedirs(dest_dir, exist_ok=True)
    name = os.path.basename(filepath)
    try:
        if zipfile.is_zipfile(filepath):
            with zipfile.ZipFile(filepath) as archive:
                _unpack_zip(archive, dest_dir, log_each)
        elif tarfile.is_tarfile(filepath):
            with tarfile.open(filepath, "r:*") as archive:
                _unpack_tar(archive, dest_dir, log_each)
        else:
            raise ProvisioningError(f"Unsupported archive type for {name}")
    except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
        raise ProvisioningError(f"Error extracting {name}: {e}")

    with contextlib.suppress(OSError):
        os.remove(filepath)
    logger.success(f"Extracted {name} to {dest_dir}")
    return dest_dir

# -------------------- Downloads --------------------

def download(url, filepath, timeout=60):
    """Stream ``url`` into ``filepath``; the file only appears once complete."""
    partial = filepath + ".tmp"
    os.makedirs(os.path.dirname(partial), exist_ok=True)
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            size = int(response.headers.get("content-length", 0))
            chunks = logger.progress(
                response.iter_content(chunk_size=CHUNK_SIZE),
                description=f"Downloading {os.path.basename(filepath)}",
                total=size,
            )
            with open(partial, "wb") as out:
                for chunk in chunks:
                    if chunk:
                        out.write(chunk)
    except requests.exceptions.RequestException as e:
        with contextlib.suppress(OSError):
            os.remove(partial)
        raise ProvisioningError(f"Error downloading {url}: {e}")

    os.replace(partial, filepath)
    return filepath

def download_and_extract(url, dest_dir, filename=None, timeout=60):
    """Download an archive into ``dest_dir`` and unpack it there."""
    filename = filename or url.rsplit("/", 1)[-1]
    archive = download(url, os.path.join(dest_dir, filename), timeout=timeout)
    logger.step_info(f"Archive:  {filename}")
    return extract(archive, dest_dir)
