"""
State and outcome models for the self-update and mod install pipelines.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from launcher_core.models.release import Release


class UpdateState(Enum):
    """Stage of the self-update pipeline."""

    IDLE = "idle"  # Nothing running
    CHECKING = "checking"  # Querying the release registry
    UP_TO_DATE = "up_to_date"  # Installed version is current
    UPDATE_AVAILABLE = "update_available"  # Newer release found, awaiting acceptance
    DOWNLOADING = "downloading"  # Streaming the release asset
    EXTRACTING = "extracting"  # Expanding the asset into staging
    VALIDATING = "validating"  # Checking the staged tree before any destructive step
    INSTALLING = "installing"  # Backup, overwrite and finalize
    COMPLETED = "completed"  # New version installed
    ROLLED_BACK = "rolled_back"  # Overwrite failed, backup restored
    FAILED = "failed"  # Abandoned before any destructive step, or cancelled


@dataclass
class UpdateCheckOutcome:
    """Result of a single update check."""

    state: UpdateState
    current_version: str
    latest_version: str = ""
    release: Optional[Release] = None
    skipped: bool = False  # Answered from the cached state without a network call
    error: Optional[str] = None

    @property
    def update_available(self) -> bool:
        return self.state == UpdateState.UPDATE_AVAILABLE


@dataclass
class UpdateApplyOutcome:
    """Result of downloading and staging (or installing) an update."""

    state: UpdateState
    version: str = ""
    cancelled: bool = False
    error: Optional[str] = None
    staged_path: Optional[Path] = None
    script_path: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        # INSTALLING means the installer script took over
        return self.state in {UpdateState.COMPLETED, UpdateState.INSTALLING}


@dataclass
class ResolutionResult:
    """
    Outcome of resolving a dependency list.

    `resolved` holds every key considered satisfied: already installed, installed
    now, or skipped as unresolvable. `unresolved` and `failed` single out the keys
    that were skipped or errored so partial results can be told apart from success.
    """

    resolved: list[str] = field(default_factory=list)
    installed: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unresolved and not self.failed

    def merge(self, other: "ResolutionResult") -> None:
        self.resolved.extend(other.resolved)
        self.installed.extend(other.installed)
        self.unresolved.extend(other.unresolved)
        self.failed.extend(other.failed)


class PackageOperationStatus(Enum):
    """Terminal status of a mod install, update or delete."""

    INSTALLED = "installed"
    UPDATED = "updated"
    DELETED = "deleted"
    UP_TO_DATE = "up_to_date"
    NOT_INSTALLED = "not_installed"
    NOT_FOUND = "not_found"
    NO_PAYLOAD = "no_payload"  # Archive held no allowlisted files
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class PackageOperationResult:
    owner: str
    name: str
    status: PackageOperationStatus
    version: str = ""
    files: list[str] = field(default_factory=list)
    dependencies: Optional[ResolutionResult] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in {
            PackageOperationStatus.INSTALLED,
            PackageOperationStatus.UPDATED,
            PackageOperationStatus.DELETED,
            PackageOperationStatus.UP_TO_DATE,
        }
