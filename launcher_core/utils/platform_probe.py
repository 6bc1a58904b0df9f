import os
import platform
from typing import Mapping, Optional

from loguru import logger

from launcher_core.utils.constants import FLATPAK_ENV, PlatformIdentifier
from launcher_core.utils.exception import UnsupportedPlatformError

ARM64_MACHINES = {"arm64", "aarch64", "armv8", "armv8l"}
X64_MACHINES = {"x86_64", "amd64", "x64"}


def is_flatpak(environ: Optional[Mapping[str, str]] = None) -> bool:
    """Whether the launcher runs inside a Flatpak sandbox."""
    environ = os.environ if environ is None else environ
    return environ.get(FLATPAK_ENV) is not None


def get_platform_identifier(
    system: Optional[str] = None,
    machine: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Get the identifier release assets are tagged with for this platform.

    Args:
        system: Value of platform.system(), probed when omitted.
        machine: Value of platform.machine(), probed when omitted.
        environ: Environment mapping, os.environ when omitted.

    Returns:
        One of the PlatformIdentifier values.

    Raises:
        UnsupportedPlatformError: For any OS other than Windows, macOS or Linux.
    """
    system = platform.system() if system is None else system
    machine = (platform.machine() if machine is None else machine).lower()

    if system == "Windows":
        return PlatformIdentifier.WINDOWS.value
    if system == "Darwin":
        return PlatformIdentifier.MACOS.value
    if system == "Linux":
        if machine in ARM64_MACHINES:
            return PlatformIdentifier.LINUX_ARM64.value
        if machine in X64_MACHINES and is_flatpak(environ):
            return PlatformIdentifier.LINUX_FLATPAK_X64.value
        if machine not in X64_MACHINES:
            logger.warning(f"Unknown Linux architecture {machine!r}, assuming x64")
        return PlatformIdentifier.LINUX_X64.value

    raise UnsupportedPlatformError(f"Unsupported operating system: {system}")
