import os
import subprocess
from unittest import mock

import pytest

from gpushare.shm_mount import (
    MOUNT_OPTIONS,
    cleanup_mount_point,
    is_mount_point,
    mount_shm,
)


def _mountinfo(tmp_path, *points):
    lines = [
        f"{i + 20} 1 0:{i + 5} / {point} rw,relatime shared:1 - tmpfs tmpfs rw"
        for i, point in enumerate(points)
    ]
    path = tmp_path / "mountinfo"
    path.write_text("\n".join(lines) + "\n")
    return str(path)


def test_is_mount_point_detects_listed_path(tmp_path):
    target = tmp_path / "mnt"
    target.mkdir()
    info = _mountinfo(tmp_path, "/", os.path.realpath(target))
    assert is_mount_point(str(target), info) is True


def test_is_mount_point_false_for_unlisted_path(tmp_path):
    target = tmp_path / "mnt"
    target.mkdir()
    info = _mountinfo(tmp_path, "/")
    assert is_mount_point(str(target), info) is False


def test_is_mount_point_decodes_escaped_spaces(tmp_path):
    target = tmp_path / "with space"
    target.mkdir()
    escaped = os.path.realpath(target).replace(" ", "\\040")
    info = _mountinfo(tmp_path, escaped)
    assert is_mount_point(str(target), info) is True


def test_cleanup_missing_path_is_noop(tmp_path):
    info = _mountinfo(tmp_path, "/")
    missing = tmp_path / "missing"
    cleanup_mount_point(str(missing), info)
    assert not missing.exists()


def test_cleanup_removes_unmounted_directory(tmp_path):
    target = tmp_path / "shm"
    target.mkdir()
    info = _mountinfo(tmp_path, "/")
    cleanup_mount_point(str(target), info)
    assert not target.exists()


def test_cleanup_mounted_path_unmounts_first(tmp_path):
    target = tmp_path / "shm"
    target.mkdir()
    info = _mountinfo(tmp_path, os.path.realpath(target))
    done = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
    with mock.patch("subprocess.run", return_value=done) as run:
        with pytest.raises(OSError, match="failed to unmount"):
            cleanup_mount_point(str(target), info)
    assert run.call_args.args[0] == ["umount", str(target)]


def test_mount_shm_runs_tmpfs_mount(tmp_path):
    shm_dir = str(tmp_path / "mps" / "shm")
    done = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
    with mock.patch("shutil.which", return_value="/bin/mount"), mock.patch(
        "subprocess.run", return_value=done
    ) as run:
        mount_shm(shm_dir)
    command = run.call_args.args[0]
    assert command == [
        "/bin/mount", "-t", "tmpfs", "-o", ",".join(MOUNT_OPTIONS), "shm", shm_dir,
    ]
    assert "size=65536k" in command[4]
    assert os.path.isdir(shm_dir)


def test_mount_shm_without_mount_executable(tmp_path):
    with mock.patch("shutil.which", return_value=None):
        with pytest.raises(FileNotFoundError, match="mount"):
            mount_shm(str(tmp_path / "shm"))


def test_mount_shm_reports_mount_failure(tmp_path):
    failed = subprocess.CompletedProcess(args=[], returncode=32, stdout="", stderr="boom")
    with mock.patch("shutil.which", return_value="/bin/mount"), mock.patch(
        "subprocess.run", return_value=failed
    ):
        with pytest.raises(OSError, match="as tmpfs"):
            mount_shm(str(tmp_path / "shm"))