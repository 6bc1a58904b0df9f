import os
import platform
import shutil
import subprocess
import sys
import time
from errno import EACCES
from pathlib import Path
from stat import S_IRWXG, S_IRWXO, S_IRWXU
from typing import Any, Callable, Optional, Tuple

import psutil
from loguru import logger


def format_file_size(size_in_bytes: int) -> str:
    """Format bytes to a human-readable string."""
    if size_in_bytes < 1024:
        return f"{size_in_bytes} B"
    elif size_in_bytes < 1024 * 1024:
        return f"{size_in_bytes / 1024:.1f} KB"
    elif size_in_bytes < 1024 * 1024 * 1024:
        return f"{size_in_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_in_bytes / (1024 * 1024 * 1024):.2f} GB"


def attempt_chmod(
    func: Callable[[str], Any], path: str, excinfo: BaseException
) -> bool:
    if excinfo is not None and isinstance(excinfo, OSError):
        if (
            func in (os.rmdir, os.remove, os.unlink, os.listdir)
            and excinfo.errno == EACCES
        ):
            os.chmod(path, S_IRWXU | S_IRWXG | S_IRWXO)  # 0777
            try:
                func(path)
                return True
            except OSError as e:
                logger.warning(
                    f"attempt_chmod for {func.__name__} double failure at {path}: {e}"
                )
                return False

    return False


def rmtree(path: str | Path) -> bool:
    """Wrapper for improved rmtree error handling.

    Read-only files are made writable and retried before giving up.

    :param path: Path to directory to be deleted.
    :return: True if the directory was removed or did not exist, False otherwise.
    """
    path = Path(path)
    if not path.exists():
        return True

    if not path.is_dir():
        logger.error(f"rmtree path is not a directory: {path}")
        return False

    def _on_error(func: Callable[[str], Any], failed: str, exc: BaseException) -> None:
        if not attempt_chmod(func, failed, exc):
            raise exc

    try:
        shutil.rmtree(path, onexc=_on_error)
    except OSError as e:
        logger.error(f"Failed to remove directory {path}: {e}")
        return False

    return True


def _normalize_process_name(name: str) -> str:
    return name.lower().removesuffix(".exe")


def is_process_running(pid: Optional[int] = None, name: Optional[str] = None) -> bool:
    """
    Check whether a process is alive, by pid, by executable name or both.

    With both, a live pid counts only if its process carries the name, and any
    other process of that name still counts as running. The calling process is
    never matched by name. Name matching ignores case and a trailing .exe.
    """
    wanted = _normalize_process_name(name) if name else ""

    if pid is not None:
        try:
            process = psutil.Process(pid)
            if (
                process.is_running()
                and process.status() != psutil.STATUS_ZOMBIE
                and (not wanted or _normalize_process_name(process.name()) == wanted)
            ):
                return True
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    if not wanted:
        return False

    own_pid = os.getpid()
    for process in psutil.process_iter(attrs=["name", "pid"]):
        try:
            process_name = process.info["name"]
            if process.info.get("pid") == own_pid:
                continue
            if process_name and _normalize_process_name(process_name) == wanted:
                return True
        except (psutil.AccessDenied, psutil.NoSuchProcess):
            continue
    return False


def wait_for_process_exit(
    pid: Optional[int] = None,
    name: Optional[str] = None,
    timeout: float = 120.0,
    poll_interval: float = 0.5,
) -> bool:
    """
    Poll until the process has exited.

    Returns:
        True if the process is gone, False if it was still running at the deadline.
    """
    deadline = time.monotonic() + timeout
    while is_process_running(pid=pid, name=name):
        if time.monotonic() >= deadline:
            logger.warning(
                f"Process {name or pid} still running after {timeout:.0f} seconds"
            )
            return False
        time.sleep(poll_interval)
    return True


def launch_process(
    executable_path: str | Path, args: Optional[list[str]] = None, cwd: Optional[str] = None
) -> Tuple[int, list[str]]:
    """
    Start a process detached from the launcher.

    On macOS an `.app` bundle is opened through `open`.
    """
    args = args or []
    executable_path = str(executable_path)
    # https://stackoverflow.com/a/21805723
    if platform.system() == "Darwin" and executable_path.endswith(".app"):
        popen_args = ["open", executable_path, "--args"]
        popen_args.extend(args)
        p = subprocess.Popen(popen_args)
    else:
        popen_args = [executable_path]
        popen_args.extend(args)

        if sys.platform == "win32":
            p = subprocess.Popen(
                popen_args,
                creationflags=subprocess.CREATE_NEW_PROCESS_GROUP,
                cwd=cwd,
            )
        else:
            # not Windows, so assume POSIX; if not, we'll get a usable exception
            p = subprocess.Popen(popen_args, start_new_session=True, cwd=cwd)
    return p.pid, popen_args
