import os
import platform
import stat
from pathlib import Path
from typing import Optional

from loguru import logger

from launcher_core.utils.constants import EXECUTABLE_NAME, MIN_EXECUTABLE_SIZE
from launcher_core.utils.exception import ValidationError


def bundle_binary(bundle: Path) -> Path:
    """The executable inside a macOS .app bundle."""
    return bundle / "Contents" / "MacOS" / EXECUTABLE_NAME


def get_executable_path(folder: str | Path, system: Optional[str] = None) -> Optional[Path]:
    """
    Locate the launcher's primary executable in a folder.

    On macOS an `.app` bundle directly under the folder takes precedence over a
    bare executable.

    :param folder: Installation or extracted update folder
    :param system: platform.system() value, detected when omitted
    :return: The executable or bundle path, None if there is none
    """
    folder = Path(folder)
    system = system or platform.system()

    if system == "Windows":
        candidate = folder / f"{EXECUTABLE_NAME}.exe"
        return candidate if candidate.is_file() else None

    if system == "Darwin":
        bundles = sorted(p for p in folder.glob("*.app") if p.is_dir())
        if bundles:
            return bundles[0]

    candidate = folder / EXECUTABLE_NAME
    return candidate if candidate.is_file() else None


def get_binary_path(folder: str | Path, system: Optional[str] = None) -> Optional[Path]:
    """
    Locate the file that runs the launcher, looking inside a macOS bundle.

    :return: The binary, None if the folder holds no executable or the bundle
        has no binary
    """
    executable = get_executable_path(folder, system)
    if executable is None or executable.is_file():
        return executable
    binary = bundle_binary(executable)
    return binary if binary.is_file() else None


def ensure_executable(path: Path) -> None:
    """Add the execute bits to a binary. A no-op on Windows."""
    if platform.system() == "Windows":
        return
    mode = path.stat().st_mode
    os.chmod(path, stat.S_IMODE(mode) | 0o755)


def validate_update_tree(folder: str | Path, system: Optional[str] = None) -> Path:
    """
    Sanity-check an extracted update before anything is overwritten.

    The check applies to the binary inside a macOS bundle.

    Raises:
        ValidationError: If the primary executable is missing, or is a file
            smaller than the minimum plausible size.

    Returns:
        The located executable or bundle.
    """
    folder = Path(folder)
    executable = get_executable_path(folder, system)
    if executable is None:
        raise ValidationError(f"Main executable not found in update package: {folder}")

    binary = executable if executable.is_file() else bundle_binary(executable)
    if not binary.is_file():
        raise ValidationError(f"Main executable not found in app bundle: {executable}")

    size = binary.stat().st_size
    if size < MIN_EXECUTABLE_SIZE:
        raise ValidationError(f"Main executable too small: {size} bytes")

    logger.debug(f"Update package validated, executable: {executable}")
    return executable
