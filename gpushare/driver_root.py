"""Locating driver files below a driver installation root."""

from __future__ import annotations

import os

DRIVER_LIBRARY_NAME = "libnvidia-ml.so.1"

LIBRARY_SEARCH_PATHS = (
    "/usr/lib64",
    "/usr/lib/x86_64-linux-gnu",
    "/usr/lib/aarch64-linux-gnu",
    "/lib64",
    "/lib/x86_64-linux-gnu",
    "/lib/aarch64-linux-gnu",
)


def resolve_link(path: str) -> str:
    """Return the final target of path, following every symlink.

    Behaves like ``readlink -f`` on an existing path; raises OSError when the
    path or any link target does not exist.
    """
    try:
        return os.path.realpath(path, strict=True)
    except OSError as err:
        raise OSError(f"error resolving link '{path}': {err}") from err


def find_file(root: str, name: str, *args: str) -> str:
    """Search root, then each directory in args below root, for name.

    The first candidate that resolves is returned with its links resolved.
    Raises FileNotFoundError when no candidate exists.
    """
    base = root or os.sep
    for directory in ("/", *args):
        candidate = os.path.normpath(os.path.join(base, directory.lstrip("/"), name))
        try:
            return resolve_link(candidate)
        except OSError:
            continue
    raise FileNotFoundError(f'error locating "{name}"')


def get_driver_library_path(root: str) -> str:
    """Return the resolved path of the NVML library below the driver root."""
    return find_file(root, DRIVER_LIBRARY_NAME, *LIBRARY_SEARCH_PATHS)