import os
import stat
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import psutil
import pytest

from launcher_core.utils.generic import (
    format_file_size,
    is_process_running,
    launch_process,
    rmtree,
    wait_for_process_exit,
)


@pytest.mark.parametrize(
    "size,expected",
    [
        (0, "0 B"),
        (1023, "1023 B"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024**3, "3.00 GB"),
    ],
)
def test_format_file_size(size: int, expected: str) -> None:
    assert format_file_size(size) == expected


class TestRmtree:
    """Tests for rmtree wrapper."""

    def test_missing_path_counts_as_removed(self, tmp_path: Path) -> None:
        assert rmtree(tmp_path / "missing") is True

    def test_file_is_rejected(self, tmp_path: Path) -> None:
        file = tmp_path / "file.txt"
        file.write_text("x")
        assert rmtree(file) is False
        assert file.exists()

    def test_removes_read_only_content(self, tmp_path: Path) -> None:
        folder = tmp_path / "folder"
        (folder / "sub").mkdir(parents=True)
        read_only = folder / "sub" / "locked.txt"
        read_only.write_text("x")
        os.chmod(read_only, stat.S_IREAD)

        assert rmtree(folder) is True
        assert not folder.exists()


class TestProcessHelpers:
    """Tests for process polling through psutil."""

    def test_running_by_pid(self) -> None:
        process = MagicMock()
        process.is_running.return_value = True
        process.status.return_value = psutil.STATUS_RUNNING
        with patch("launcher_core.utils.generic.psutil.Process", return_value=process):
            assert is_process_running(pid=1234) is True

    def test_zombie_is_not_running(self) -> None:
        process = MagicMock()
        process.is_running.return_value = True
        process.status.return_value = psutil.STATUS_ZOMBIE
        with patch("launcher_core.utils.generic.psutil.Process", return_value=process):
            assert is_process_running(pid=1234) is False

    def test_missing_pid(self) -> None:
        with patch(
            "launcher_core.utils.generic.psutil.Process",
            side_effect=psutil.NoSuchProcess(1234),
        ):
            assert is_process_running(pid=1234) is False

    def test_running_by_name_ignores_exe_suffix(self) -> None:
        mock_proc = MagicMock()
        mock_proc.info = {"name": "RecompLauncher.EXE"}
        with patch("psutil.process_iter", return_value=[mock_proc]):
            assert is_process_running(name="recomplauncher") is True

    def test_not_running_by_name(self) -> None:
        mock_proc = MagicMock()
        mock_proc.info = {"name": "firefox"}
        with patch("psutil.process_iter", return_value=[mock_proc]):
            assert is_process_running(name="RecompLauncher") is False

    def test_reused_pid_with_other_name(self) -> None:
        process = MagicMock()
        process.is_running.return_value = True
        process.status.return_value = psutil.STATUS_RUNNING
        process.name.return_value = "bash"
        with (
            patch("launcher_core.utils.generic.psutil.Process", return_value=process),
            patch("psutil.process_iter", return_value=[]),
        ):
            assert is_process_running(pid=1234, name="RecompLauncher") is False

    def test_other_instance_keeps_running_after_pid_exits(self) -> None:
        other = MagicMock()
        other.info = {"name": "RecompLauncher", "pid": 5678}
        with (
            patch(
                "launcher_core.utils.generic.psutil.Process",
                side_effect=psutil.NoSuchProcess(1234),
            ),
            patch("psutil.process_iter", return_value=[other]),
        ):
            assert is_process_running(pid=1234, name="RecompLauncher") is True

    def test_own_process_is_not_matched_by_name(self) -> None:
        helper = MagicMock()
        helper.info = {"name": "RecompLauncher", "pid": os.getpid()}
        with patch("psutil.process_iter", return_value=[helper]):
            assert is_process_running(name="RecompLauncher") is False

    def test_no_pid_or_name(self) -> None:
        assert is_process_running() is False

    def test_wait_returns_once_exited(self) -> None:
        with (
            patch(
                "launcher_core.utils.generic.is_process_running",
                side_effect=[True, True, False],
            ) as running,
            patch("launcher_core.utils.generic.time.sleep") as sleep,
        ):
            assert wait_for_process_exit(pid=1, timeout=60) is True
        assert running.call_count == 3
        assert sleep.call_count == 2

    def test_wait_times_out(self) -> None:
        with (
            patch("launcher_core.utils.generic.is_process_running", return_value=True),
            patch("launcher_core.utils.generic.time.sleep"),
            patch(
                "launcher_core.utils.generic.time.monotonic",
                side_effect=[0.0, 1.0, 200.0],
            ),
        ):
            assert wait_for_process_exit(pid=1, timeout=120) is False


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX launch flags")
def test_launch_process_detaches_session() -> None:
    popen = MagicMock()
    popen.return_value.pid = 42
    with (
        patch("launcher_core.utils.generic.platform.system", return_value="Linux"),
        patch("launcher_core.utils.generic.subprocess.Popen", popen),
    ):
        pid, args = launch_process("/opt/launcher/RecompLauncher", ["--flag"])

    assert pid == 42
    assert args == ["/opt/launcher/RecompLauncher", "--flag"]
    assert popen.call_args.kwargs["start_new_session"] is True


def test_launch_process_opens_app_bundle() -> None:
    popen = MagicMock()
    popen.return_value.pid = 7
    with (
        patch("launcher_core.utils.generic.platform.system", return_value="Darwin"),
        patch("launcher_core.utils.generic.subprocess.Popen", popen),
    ):
        _, args = launch_process("/Applications/RecompLauncher.app")

    assert args == ["open", "/Applications/RecompLauncher.app", "--args"]
