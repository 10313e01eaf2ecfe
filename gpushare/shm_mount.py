"""Setting up the tmpfs shared-memory mount used by the MPS daemon."""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from collections.abc import Iterator, Sequence

log = logging.getLogger(__name__)

SHM_DIR = "/mps/shm"
PROC_MOUNTINFO = "/proc/self/mountinfo"
MOUNT_OPTIONS = ("rw", "nosuid", "nodev", "noexec", "relatime", "size=65536k")

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def _mount_points(mountinfo: str) -> Iterator[str]:
    with open(mountinfo, encoding="utf-8") as stream:
        for line in stream:
            fields = line.split()
            if len(fields) >= 5:
                yield os.path.normpath(_unescape(fields[4]))


def is_mount_point(path: str, mountinfo: str = PROC_MOUNTINFO) -> bool:
    """Return whether path is listed as a mount point in the mountinfo file."""
    target = os.path.realpath(path)
    return any(point == target for point in _mount_points(mountinfo))


def _run(command: Sequence[str], what: str) -> None:
    try:
        result = subprocess.run(list(command), capture_output=True, text=True)
    except OSError as err:
        raise OSError(f"{what}: {err}") from err
    if result.returncode != 0:
        output = ((result.stdout or "") + (result.stderr or "")).strip()
        raise OSError(f"{what}: exit status {result.returncode}: {output}")


def cleanup_mount_point(path: str, mountinfo: str = PROC_MOUNTINFO) -> None:
    """Unmount path if it is mounted, then remove it.

    A path that does not exist is left alone.
    """
    if not os.path.lexists(path):
        log.warning("Unmount skipped because path does not exist: %s", path)
        return

    if is_mount_point(path, mountinfo):
        _run(["umount", path], f"error unmounting {path}")
        if is_mount_point(path, mountinfo):
            raise OSError(f"failed to unmount path {path}")

    if os.path.isdir(path) and not os.path.islink(path):
        os.rmdir(path)
    else:
        os.remove(path)


def mount_shm(shm_dir: str = SHM_DIR) -> None:
    """Create a fresh tmpfs mount at shm_dir for the MPS control daemon."""
    mount_executable = shutil.which("mount")
    if mount_executable is None:
        raise FileNotFoundError("error finding 'mount' executable")

    try:
        cleanup_mount_point(shm_dir)
    except OSError as err:
        raise OSError(f"error unmounting {shm_dir}: {err}") from err

    try:
        os.makedirs(shm_dir, 0o755, exist_ok=True)
    except OSError as err:
        raise OSError(f"error creating directory {shm_dir}: {err}") from err

    _run(
        [mount_executable, "-t", "tmpfs", "-o", ",".join(MOUNT_OPTIONS), "shm", shm_dir],
        f"error mounting {shm_dir} as tmpfs",
    )