import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

import msgspec
from loguru import logger

from launcher_core.models.manifest import InstalledPackageRecord, ModsManifest
from launcher_core.models.package import package_identity


class InstallManifestStore:
    """
    Durable ledger of installed mods, persisted as mods.json.

    Every mutation is written to disk before it returns. The store is safe to
    share between worker threads.
    """

    def __init__(self, manifest_path: Path) -> None:
        self.manifest_path = Path(manifest_path)
        self._lock = threading.RLock()
        self._manifest = ModsManifest()

    @property
    def records(self) -> list[InstalledPackageRecord]:
        with self._lock:
            return list(self._manifest.mods)

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._manifest.last_updated

    def load(self) -> list[InstalledPackageRecord]:
        """
        Read the ledger from disk.

        A missing or unreadable file yields an empty ledger.
        """
        with self._lock:
            try:
                self._manifest = msgspec.json.decode(
                    self.manifest_path.read_bytes(), type=ModsManifest
                )
            except FileNotFoundError:
                logger.debug(f"No mods manifest at {self.manifest_path}")
                self._manifest = ModsManifest()
            except (msgspec.DecodeError, msgspec.ValidationError, OSError) as e:
                logger.warning(f"Failed to load mods manifest {self.manifest_path}: {e}")
                self._manifest = ModsManifest()
            return list(self._manifest.mods)

    def save(self) -> None:
        with self._lock:
            self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
            self._manifest.last_updated = datetime.now()
            data = msgspec.json.format(msgspec.json.encode(self._manifest), indent=2)
            tmp_path = self.manifest_path.with_suffix(".json.tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(self.manifest_path)

    def get(self, owner: str, name: str) -> Optional[InstalledPackageRecord]:
        identity = package_identity(owner, name)
        with self._lock:
            for record in self._manifest.mods:
                if record.identity == identity:
                    return record
        return None

    def contains(self, owner: str, name: str) -> bool:
        return self.get(owner, name) is not None

    def upsert(
        self,
        record: InstalledPackageRecord,
        mods_path: Optional[Path] = None,
        clean: bool = False,
    ) -> None:
        """
        Insert a record, replacing any existing one for the same package.

        Args:
            record: The new record
            mods_path: Folder the tracked files are relative to, needed when `clean`
            clean: Delete the previous record's files that the new record does
                not track
        """
        with self._lock:
            previous = self.get(record.owner, record.name)
            if previous is not None:
                if clean and mods_path is not None:
                    stale = [f for f in previous.files if f not in record.files]
                    self._delete_files(stale, mods_path)
                self._manifest.mods.remove(previous)
            self._manifest.mods.append(record)
            self.save()
        logger.info(f"Recorded {record.owner}/{record.name} {record.version}")

    def remove(self, owner: str, name: str, mods_path: Path) -> int:
        """
        Delete a package's tracked files and drop its record.

        Returns:
            Number of files deleted, 0 when the package was not installed.
        """
        with self._lock:
            record = self.get(owner, name)
            if record is None:
                logger.debug(f"{owner}/{name} is not in the mods manifest")
                return 0
            deleted = self._delete_files(record.files, mods_path)
            self._manifest.mods.remove(record)
            self.save()
        logger.info(f"Removed {owner}/{name} ({deleted} files deleted)")
        return deleted

    def delete_tracked_files(self, owner: str, name: str, mods_path: Path) -> int:
        """Delete a package's tracked files, keeping its record."""
        with self._lock:
            record = self.get(owner, name)
            if record is None:
                return 0
            return self._delete_files(record.files, mods_path)

    @staticmethod
    def _delete_files(files: list[str], mods_path: Path) -> int:
        deleted = 0
        for relative in files:
            file_path = mods_path / relative
            if not file_path.is_file():
                continue
            try:
                file_path.unlink()
                deleted += 1
            except OSError as e:
                logger.warning(f"Failed to delete {file_path}: {e}")
        return deleted
