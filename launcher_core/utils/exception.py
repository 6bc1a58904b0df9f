from pathlib import Path


class UpdateError(Exception):
    """Base exception for update and package installation errors."""

    pass


class NetworkError(UpdateError):
    """Raised when a transport failure or bad HTTP status occurs."""

    pass


class TransferTimeoutError(NetworkError):
    """Raised when a transfer exceeds its end-to-end deadline."""

    pass


class MalformedResponseError(UpdateError):
    """
    Raised when a registry body cannot be parsed,
    or the release it describes has no usable tag
    """

    pass


class UnsupportedPlatformError(UpdateError):
    pass


class NoMatchingAssetError(UpdateError):
    """Raised when a release carries no build for the current platform."""

    def __init__(self, platform_identifier: str, tag: str = "") -> None:
        self.platform_identifier = platform_identifier
        self.tag = tag
        super().__init__(
            f"No build for {platform_identifier} in release {tag or '<unknown>'}"
        )


class ExtractionError(UpdateError):
    """Raised when an archive cannot be expanded."""

    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Failed to extract {self.path}: {reason}")


class ValidationError(UpdateError):
    """Raised when an extracted update fails its sanity checks."""

    pass


class InstallFailure(UpdateError):
    """Raised when the destructive copy step of an install fails."""

    def __init__(self, message: str, failures: list[str] | None = None) -> None:
        self.failures = failures or []
        super().__init__(message)


class UpdateFailed(InstallFailure):
    """The installation was restored from backup after a failed copy."""

    pass


class RollbackFailedError(InstallFailure):
    """
    Restoring from backup failed after a failed copy.
    The installation is in an unknown state and needs manual repair.
    """

    def __init__(
        self, message: str, backup_folder: Path, failures: list[str] | None = None
    ) -> None:
        self.backup_folder = backup_folder
        super().__init__(message, failures)


class UpdateInProgressError(UpdateError):
    pass


class InvalidDependencyKeyError(UpdateError):
    pass


class TransferCancelled(Exception):
    """
    Raised when a transfer is cancelled by the user.

    Not an UpdateError, callers report it as a cancelled outcome.
    """

    def __init__(self, bytes_read: int = 0) -> None:
        self.bytes_read = bytes_read
        super().__init__(f"Transfer cancelled after {bytes_read} bytes")
