import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger
from platformdirs import PlatformDirs

from launcher_core.controllers.dependency_resolver import DependencyResolver
from launcher_core.controllers.manifest_store import InstallManifestStore
from launcher_core.models.manifest import InstalledPackageRecord
from launcher_core.models.package import PackageView, RegistryPackage, package_identity
from launcher_core.models.settings import LauncherSettings
from launcher_core.models.transfer import CancelToken
from launcher_core.models.update_state import (
    PackageOperationResult,
    PackageOperationStatus,
)
from launcher_core.utils.archive import extract_archive, suffix_filter
from launcher_core.utils.constants import (
    MOD_PAYLOAD_EXTENSIONS,
    MODS_FOLDER_NAME,
    MODS_MANIFEST_FILENAME,
)
from launcher_core.utils.event_bus import EventBus
from launcher_core.utils.exception import (
    ExtractionError,
    TransferCancelled,
    UpdateError,
)
from launcher_core.utils.package_registry import PackageRegistry
from launcher_core.utils.transfer import TransferManager


def get_mods_path(game_folder_name: str, settings: LauncherSettings) -> Path:
    """
    Folder receiving a game's mod payload files.

    Portable installs keep mods next to the game, otherwise they live in the
    user's local data folder under the game's folder name.
    """
    if settings.is_portable:
        return Path(settings.games_folder) / game_folder_name / MODS_FOLDER_NAME
    platform_dirs = PlatformDirs(appname=game_folder_name, appauthor=False)
    return Path(platform_dirs.user_data_dir) / MODS_FOLDER_NAME


class PackageController:
    """
    Installs, updates and deletes mods for one game.

    Operations on the same package are serialized; operations on different
    packages may run concurrently through the `submit_*` methods.
    """

    def __init__(
        self,
        community: str,
        mods_path: Path,
        registry: Optional[PackageRegistry] = None,
        transfer: Optional[TransferManager] = None,
        manifest_store: Optional[InstallManifestStore] = None,
        payload_extensions: Iterable[str] = MOD_PAYLOAD_EXTENSIONS,
        max_workers: int = 4,
    ) -> None:
        self.community = community
        self.mods_path = Path(mods_path)
        self.registry = registry or PackageRegistry()
        self.transfer = transfer or TransferManager()
        self.manifest_store = manifest_store or InstallManifestStore(
            self.mods_path / MODS_MANIFEST_FILENAME
        )
        self.payload_extensions = tuple(payload_extensions)
        self._event_bus = EventBus()

        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="mod-worker"
        )

        self.manifest_store.load()

    def _package_lock(self, owner: str, name: str) -> threading.Lock:
        identity = package_identity(owner, name)
        with self._locks_guard:
            return self._locks.setdefault(identity, threading.Lock())

    def _make_resolver(self) -> DependencyResolver:
        return DependencyResolver(
            self.registry,
            self.transfer,
            self.manifest_store,
            self.mods_path,
            self.community,
            self.payload_extensions,
            lock_provider=self._package_lock,
        )

    def _finish(self, result: PackageOperationResult) -> PackageOperationResult:
        self._event_bus.mod_operation_finished.emit(result)
        if result.status not in {
            PackageOperationStatus.CANCELLED,
            PackageOperationStatus.FAILED,
            PackageOperationStatus.NOT_FOUND,
            PackageOperationStatus.NOT_INSTALLED,
        }:
            self._event_bus.mods_manifest_changed.emit()
        return result

    def list_packages(self) -> list[PackageView]:
        """
        List the community's packages joined with their install state.

        Deprecated and version-less packages are left out. Pinned packages come
        first, then by rating and total downloads.

        Raises:
            NetworkError: If the registry cannot be reached.
            MalformedResponseError: If the registry answer does not parse.
        """
        views = []
        for package in self.registry.get_packages(self.community):
            if package.is_deprecated or not package.versions:
                continue
            record = self.manifest_store.get(package.owner, package.name)
            views.append(
                PackageView(
                    package=package,
                    installed_version=record.version if record else "",
                )
            )
        views.sort(
            key=lambda view: (
                view.package.is_pinned,
                view.package.rating_score,
                view.total_downloads,
            ),
            reverse=True,
        )
        return views

    def installed_records(self) -> list[InstalledPackageRecord]:
        return self.manifest_store.records

    def has_update(self, package: RegistryPackage) -> bool:
        record = self.manifest_store.get(package.owner, package.name)
        latest = package.latest_version
        if record is None or latest is None:
            return False
        return latest.version_number != record.version

    def _lookup(self, owner: str, name: str) -> Optional[RegistryPackage]:
        package = self.registry.get_package(self.community, owner, name)
        if package is not None and package.versions:
            return package
        for candidate in self.registry.get_packages(self.community):
            if candidate.matches(owner, name):
                return candidate
        return None

    def install(
        self,
        owner: str,
        name: str,
        package: Optional[RegistryPackage] = None,
        cancel_token: Optional[CancelToken] = None,
        force: bool = False,
    ) -> PackageOperationResult:
        """
        Install or update a mod together with its dependencies.

        Dependencies are resolved first. The mod's archive is then downloaded, the
        files of the installed version are deleted, the allowlisted payload files
        are extracted flat into the mods folder and the ledger record is written.

        Args:
            owner: Package owner
            name: Package name
            package: Registry record, looked up when omitted
            cancel_token: Aborts the downloads, leaving the ledger untouched
            force: Reinstall even if the latest version is already installed

        Returns:
            PackageOperationResult. Errors are reported in it rather than raised.
        """
        key = f"{owner}/{name}"
        cancel_token = cancel_token or CancelToken()

        with self._package_lock(owner, name):
            try:
                if package is None:
                    package = self._lookup(owner, name)
                if package is None or package.latest_version is None:
                    logger.warning(f"Package {key} not found in {self.community}")
                    return self._finish(
                        PackageOperationResult(owner, name, PackageOperationStatus.NOT_FOUND)
                    )

                version = package.latest_version
                previous = self.manifest_store.get(package.owner, package.name)
                if (
                    previous is not None
                    and previous.version == version.version_number
                    and not force
                ):
                    logger.info(f"{key} {version.version_number} is already installed")
                    return self._finish(
                        PackageOperationResult(
                            owner,
                            name,
                            PackageOperationStatus.UP_TO_DATE,
                            version=previous.version,
                            files=list(previous.files),
                        )
                    )

                self._event_bus.mod_status_changed.emit(key, "Resolving dependencies...")
                dependencies = self._make_resolver().resolve(
                    version.dependencies, cancel_token, parent=package.identity
                )

                self._event_bus.mod_status_changed.emit(
                    key, f"Downloading {package.name} {version.version_number}..."
                )
                files = self._download_and_replace(package, cancel_token)
            except TransferCancelled:
                logger.info(f"Install of {key} cancelled")
                return self._finish(
                    PackageOperationResult(owner, name, PackageOperationStatus.CANCELLED)
                )
            except (UpdateError, OSError, ValueError) as e:
                logger.error(f"Failed to install {key}: {e}")
                return self._finish(
                    PackageOperationResult(
                        owner, name, PackageOperationStatus.FAILED, error=str(e)
                    )
                )

            if not files:
                logger.warning(f"{key} {version.version_number} has no mod files to install")
                self.manifest_store.remove(package.owner, package.name, self.mods_path)
                return self._finish(
                    PackageOperationResult(
                        owner,
                        name,
                        PackageOperationStatus.NO_PAYLOAD,
                        version=version.version_number,
                        dependencies=dependencies,
                    )
                )

            self.manifest_store.upsert(
                InstalledPackageRecord(
                    owner=package.owner,
                    name=package.name,
                    version=version.version_number,
                    files=files,
                    dependencies=list(dependencies.resolved),
                ),
                mods_path=self.mods_path,
                clean=True,
            )
            status = (
                PackageOperationStatus.UPDATED
                if previous is not None
                else PackageOperationStatus.INSTALLED
            )
            logger.info(f"{status.value.capitalize()}: {key} {version.version_number}")
            return self._finish(
                PackageOperationResult(
                    owner,
                    name,
                    status,
                    version=version.version_number,
                    files=files,
                    dependencies=dependencies,
                )
            )

    def _download_and_replace(
        self, package: RegistryPackage, cancel_token: CancelToken
    ) -> list[str]:
        version = package.latest_version
        if version is None:
            return []
        key = f"{package.owner}/{package.name}"

        def on_progress(percent: int, counters: str) -> None:
            self._event_bus.mod_progress.emit(key, percent)

        with tempfile.TemporaryDirectory(prefix="launcher_mod_") as temp_dir:
            archive_path = Path(temp_dir) / f"{package.full_name or package.name}-{version.version_number}.zip"
            self.transfer.download(
                version.download_url,
                archive_path,
                on_progress=on_progress,
                cancel_token=cancel_token,
            )

            # Past this point the install is not cancellable
            removed = self.manifest_store.delete_tracked_files(
                package.owner, package.name, self.mods_path
            )
            if removed:
                logger.debug(f"Removed {removed} files of the installed {key}")
            self.mods_path.mkdir(parents=True, exist_ok=True)
            try:
                return extract_archive(
                    archive_path,
                    self.mods_path,
                    name_filter=suffix_filter(self.payload_extensions),
                    flatten=True,
                )
            except ExtractionError:
                # The old files are gone, so is the record
                self.manifest_store.remove(package.owner, package.name, self.mods_path)
                raise

    def delete(self, owner: str, name: str) -> PackageOperationResult:
        """Delete a mod's files and drop it from the ledger."""
        with self._package_lock(owner, name):
            record = self.manifest_store.get(owner, name)
            if record is None:
                return self._finish(
                    PackageOperationResult(owner, name, PackageOperationStatus.NOT_INSTALLED)
                )
            deleted = self.manifest_store.remove(owner, name, self.mods_path)
            logger.info(f"Deleted {owner}/{name} ({deleted} files)")
            return self._finish(
                PackageOperationResult(
                    owner,
                    name,
                    PackageOperationStatus.DELETED,
                    version=record.version,
                    files=list(record.files),
                )
            )

    def update_all(
        self,
        packages: Optional[Iterable[RegistryPackage]] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> list[PackageOperationResult]:
        """
        Update every installed mod whose latest version differs from the installed one.

        Mods are updated one after another. A failure does not stop the others.
        """
        if packages is None:
            packages = self.registry.get_packages(self.community)
        outdated = [package for package in packages if self.has_update(package)]
        if not outdated:
            logger.info("All mods are up to date")
            return []

        logger.info(f"Updating {len(outdated)} mod(s)")
        results = []
        for package in outdated:
            results.append(
                self.install(
                    package.owner,
                    package.name,
                    package=package,
                    cancel_token=cancel_token,
                    force=True,
                )
            )
        return results

    def submit_install(
        self,
        owner: str,
        name: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> "Future[PackageOperationResult]":
        return self._executor.submit(
            self.install, owner, name, cancel_token=cancel_token
        )

    def submit_delete(self, owner: str, name: str) -> "Future[PackageOperationResult]":
        return self._executor.submit(self.delete, owner, name)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
