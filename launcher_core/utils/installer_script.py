"""
Generation and detached launch of the script that finishes a self-update.

The running launcher cannot replace its own files. It writes a small shell or
batch script into the temp folder, starts it detached and exits. The script
waits for the launcher process to go away, runs the `apply-update` command of
the helper and removes the staging folder and itself.

Only literal, pre-quoted paths end up in the script.
"""

import os
import platform
import shlex
import subprocess
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from launcher_core.utils.constants import APP_NAME, EXECUTABLE_NAME
from launcher_core.utils.update_validator import get_binary_path

__all__ = [
    "build_helper_command",
    "write_installer_script",
    "launch_installer_script",
]


def build_helper_command(
    staged_path: Path,
    install_dir: Path,
    pid: int,
    version: str,
    is_frozen: bool,
    system: Optional[str] = None,
    python_executable: Optional[str] = None,
) -> list[str]:
    """
    Command line running `apply-update` once the launcher has exited.

    A frozen build runs the executable shipped in the staged update, so no file
    of the installation being replaced is in use. On macOS that is the binary
    inside the staged app bundle. From source the module is run with the current
    interpreter.
    """
    system = system or platform.system()
    if is_frozen:
        executable_name = (
            f"{EXECUTABLE_NAME}.exe" if system == "Windows" else EXECUTABLE_NAME
        )
        binary = get_binary_path(staged_path, system)
        helper = [str(binary or staged_path / executable_name)]
        wait_for = ["--process-name", EXECUTABLE_NAME]
    else:
        helper = [python_executable or sys.executable, "-m", "launcher_core"]
        wait_for = []

    return helper + [
        "apply-update",
        "--source",
        str(staged_path),
        "--target",
        str(install_dir),
        "--pid",
        str(pid),
        *wait_for,
        "--version",
        version,
        "--keep-source",
    ]


def _quote_cmd(argument: str) -> str:
    # Double quotes are not allowed in Windows paths, percent signs must be doubled
    return '"' + argument.replace("%", "%%") + '"'


def _windows_script(
    pid: int,
    helper_command: Sequence[str],
    cleanup_path: Path,
    log_path: Optional[Path],
    version: str,
) -> str:
    command = " ".join(_quote_cmd(part) for part in helper_command)
    if log_path is not None:
        command += f" >> {_quote_cmd(str(log_path))} 2>&1"
    return "\r\n".join(
        [
            "@echo off",
            f"echo {APP_NAME} Updater - Version {version}",
            f"echo Waiting for {APP_NAME} to close...",
            ":wait_loop",
            f'tasklist /FI "PID eq {pid}" 2>NUL | find "{pid}" >NUL',
            'if "%ERRORLEVEL%"=="0" (',
            "    timeout /T 1 /NOBREAK >NUL",
            "    goto wait_loop",
            ")",
            "echo Applying update...",
            command,
            "echo Cleaning up temporary files...",
            f"if exist {_quote_cmd(str(cleanup_path))} rmdir /S /Q {_quote_cmd(str(cleanup_path))} >NUL 2>&1",
            '(goto) 2>NUL & del "%~f0"',
            "",
        ]
    )


def _posix_script(
    pid: int,
    helper_command: Sequence[str],
    cleanup_path: Path,
    log_path: Optional[Path],
    version: str,
) -> str:
    command = shlex.join(helper_command)
    if log_path is not None:
        command += f" >> {shlex.quote(str(log_path))} 2>&1"
    return "\n".join(
        [
            "#!/bin/sh",
            f"echo {shlex.quote(f'{APP_NAME} Updater - Version {version}')}",
            f"while kill -0 {pid} 2>/dev/null; do",
            "    sleep 1",
            "done",
            command,
            f"rm -rf {shlex.quote(str(cleanup_path))}",
            'rm -f -- "$0"',
            "",
        ]
    )


def write_installer_script(
    cleanup_path: Path,
    pid: int,
    helper_command: Sequence[str],
    version: str,
    log_path: Optional[Path] = None,
    system: Optional[str] = None,
    temp_dir: Optional[Path] = None,
) -> Path:
    """
    Write the installer script for the current platform.

    Args:
        cleanup_path: Staging folder, removed by the script when done
        pid: Launcher process to wait for
        helper_command: Command applying the update, see `build_helper_command`
        version: Version being installed, shown in the script output
        log_path: File receiving the helper's output
        system: platform.system() value, detected when omitted
        temp_dir: Folder receiving the script, the system temp folder by default

    Returns:
        Path to the written script
    """
    system = system or platform.system()
    directory = Path(temp_dir) if temp_dir is not None else Path(tempfile.gettempdir())
    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    if system == "Windows":
        script_path = directory / f"{APP_NAME}_Updater_{stamp}.cmd"
        content = _windows_script(pid, helper_command, cleanup_path, log_path, version)
    else:
        script_path = directory / f"{APP_NAME}_Updater_{stamp}.sh"
        content = _posix_script(pid, helper_command, cleanup_path, log_path, version)

    # newline="" keeps the CRLF line endings of batch files as written
    with open(script_path, "w", encoding="utf-8", newline="") as f:
        f.write(content)

    if system != "Windows":
        try:
            os.chmod(script_path, 0o755)
        except OSError as e:
            logger.warning(f"Could not make script executable: {e}")

    logger.info(f"Wrote installer script: {script_path}")
    return script_path


def launch_installer_script(
    script_path: Path, system: Optional[str] = None
) -> "subprocess.Popen[bytes]":
    """
    Start the installer script detached from the launcher process.

    Raises:
        OSError: If the script could not be started.
    """
    system = system or platform.system()
    if system == "Windows":
        p = subprocess.Popen(
            ["cmd.exe", "/C", str(script_path)],
            cwd=str(script_path.parent),
            creationflags=getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
            | getattr(subprocess, "CREATE_NEW_CONSOLE", 0),
        )
    else:
        p = subprocess.Popen(
            ["/bin/sh", str(script_path)],
            cwd=str(script_path.parent),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    logger.debug(f"Installer script launched with PID: {p.pid}")
    return p
