from datetime import datetime

import msgspec

from launcher_core.models.package import package_identity


class InstalledPackageRecord(msgspec.Struct):
    """
    Ledger entry for an installed mod.

    `files` holds paths relative to the mods folder. The ledger, not the
    filesystem, is authoritative for what is installed.
    """

    owner: str
    name: str
    version: str = ""
    installed_at: datetime = msgspec.field(
        default_factory=datetime.now, name="installedDate"
    )
    files: list[str] = msgspec.field(default_factory=list)
    dependencies: list[str] = msgspec.field(default_factory=list)

    @property
    def identity(self) -> tuple[str, str]:
        return package_identity(self.owner, self.name)


class ModsManifest(msgspec.Struct):
    """On-disk document holding every installed mod record."""

    mods: list[InstalledPackageRecord] = msgspec.field(default_factory=list)
    last_updated: datetime | None = msgspec.field(default=None, name="lastUpdated")
