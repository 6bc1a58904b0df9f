import tempfile
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional

from loguru import logger

from launcher_core.controllers.manifest_store import InstallManifestStore
from launcher_core.models.manifest import InstalledPackageRecord
from launcher_core.models.package import DependencyKey, RegistryPackage, package_identity
from launcher_core.models.transfer import CancelToken
from launcher_core.models.update_state import ResolutionResult
from launcher_core.utils.archive import extract_archive, suffix_filter
from launcher_core.utils.constants import (
    DEPENDENCY_LOCK_TIMEOUT_SECONDS,
    MOD_PAYLOAD_EXTENSIONS,
)
from launcher_core.utils.exception import (
    InvalidDependencyKeyError,
    TransferCancelled,
    UpdateError,
)
from launcher_core.utils.package_registry import PackageRegistry
from launcher_core.utils.transfer import ProgressCallback, TransferManager

UNRESOLVED = "unresolved"
FAILED = "failed"

LockProvider = Callable[[str, str], threading.Lock]


def download_and_extract_payload(
    transfer: TransferManager,
    package: RegistryPackage,
    mods_path: Path,
    payload_extensions: Iterable[str] = MOD_PAYLOAD_EXTENSIONS,
    cancel_token: Optional[CancelToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> list[str]:
    """
    Download a package's latest version and extract its payload files into the
    mods folder, flattened to their file names.

    The downloaded archive is always removed, also on cancellation.
    """
    version = package.latest_version
    if version is None:
        return []

    with tempfile.TemporaryDirectory(prefix="launcher_mod_") as temp_dir:
        archive_name = f"{package.full_name or package.name}-{version.version_number}.zip"
        archive_path = Path(temp_dir) / archive_name
        transfer.download(
            version.download_url,
            archive_path,
            on_progress=on_progress,
            cancel_token=cancel_token,
        )
        mods_path.mkdir(parents=True, exist_ok=True)
        return extract_archive(
            archive_path,
            mods_path,
            name_filter=suffix_filter(payload_extensions),
            flatten=True,
        )


class DependencyResolver:
    """
    Installs the transitive dependencies of a mod.

    Resolution is depth-first. A dependency already in the ledger is never fetched
    again, and a package reached again while its own dependencies are still being
    resolved is treated as a cycle and skipped.

    A dependency is downloaded and recorded while holding its package lock, taken
    from `lock_provider` so that operations sharing the provider never install or
    delete the same package at once. Its own dependencies are resolved first,
    before the lock is taken.
    """

    def __init__(
        self,
        registry: PackageRegistry,
        transfer: TransferManager,
        manifest_store: InstallManifestStore,
        mods_path: Path,
        community: str,
        payload_extensions: Iterable[str] = MOD_PAYLOAD_EXTENSIONS,
        lock_provider: Optional[LockProvider] = None,
        lock_timeout: float = DEPENDENCY_LOCK_TIMEOUT_SECONDS,
    ) -> None:
        self.registry = registry
        self.transfer = transfer
        self.manifest_store = manifest_store
        self.mods_path = Path(mods_path)
        self.community = community
        self.payload_extensions = tuple(payload_extensions)
        self._package_list: Optional[list[RegistryPackage]] = None
        self._visited: dict[tuple[str, str], str] = {}
        self._lock_provider = lock_provider or self._local_lock
        self.lock_timeout = lock_timeout
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _local_lock(self, owner: str, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(package_identity(owner, name), threading.Lock())

    def resolve(
        self,
        dependency_keys: Iterable[str],
        cancel_token: Optional[CancelToken] = None,
        parent: Optional[tuple[str, str]] = None,
    ) -> ResolutionResult:
        """
        Resolve a dependency list.

        Args:
            dependency_keys: `owner-name-version` keys declared by a package version
            cancel_token: Aborts pending downloads
            parent: Identity of the package declaring the keys, guarded against cycles

        Returns:
            ResolutionResult holding every key of the walk. `resolved` covers keys
            already installed, installed now, or skipped as unresolvable.

        Raises:
            TransferCancelled: If the token was cancelled during a download.
        """
        self._package_list = None
        self._visited = {}
        in_progress = {parent} if parent is not None else set()

        result = self._resolve(list(dependency_keys), cancel_token, in_progress)
        if not result.complete:
            logger.warning(
                f"Dependency resolution incomplete. Unresolved: {result.unresolved}, failed: {result.failed}"
            )
        return result

    def _resolve(
        self,
        dependency_keys: list[str],
        cancel_token: Optional[CancelToken],
        in_progress: set[tuple[str, str]],
    ) -> ResolutionResult:
        result = ResolutionResult()

        for raw_key in dependency_keys:
            try:
                key = DependencyKey.parse(raw_key)
            except InvalidDependencyKeyError as e:
                logger.warning(f"{e}, skipping")
                continue

            if self.manifest_store.contains(key.owner, key.name):
                logger.debug(f"Dependency {key.owner}/{key.name} already installed, skipping")
                result.resolved.append(raw_key)
                continue

            if key.identity in in_progress:
                logger.warning(
                    f"Dependency cycle through {key.owner}/{key.name}, not following it again"
                )
                result.resolved.append(raw_key)
                continue

            previous = self._visited.get(key.identity)
            if previous == UNRESOLVED:
                result.resolved.append(raw_key)
                result.unresolved.append(raw_key)
                continue
            if previous == FAILED:
                result.failed.append(raw_key)
                continue

            try:
                result.merge(
                    self._install_dependency(raw_key, key, cancel_token, in_progress)
                )
            except TransferCancelled:
                raise
            except (UpdateError, OSError) as e:
                logger.error(f"Failed to install dependency {key.owner}/{key.name}: {e}")
                self._visited[key.identity] = FAILED
                result.failed.append(raw_key)

        return result

    def _install_dependency(
        self,
        raw_key: str,
        key: DependencyKey,
        cancel_token: Optional[CancelToken],
        in_progress: set[tuple[str, str]],
    ) -> ResolutionResult:
        result = ResolutionResult()
        package = self._find_package(key)
        if package is None or package.latest_version is None:
            logger.warning(
                f"Could not find dependency {key.owner}/{key.name} in {self.community}, treating it as optional"
            )
            self._visited[key.identity] = UNRESOLVED
            result.resolved.append(raw_key)
            result.unresolved.append(raw_key)
            return result

        version = package.latest_version
        in_progress.add(key.identity)
        try:
            nested = self._resolve(version.dependencies, cancel_token, in_progress)
        finally:
            in_progress.discard(key.identity)
        result.merge(nested)

        lock = self._lock_provider(package.owner, package.name)
        if not lock.acquire(timeout=self.lock_timeout):
            raise UpdateError(
                f"Dependency {package.owner}/{package.name} is busy with another operation"
            )
        try:
            if self.manifest_store.contains(package.owner, package.name):
                logger.debug(
                    f"Dependency {package.owner}/{package.name} was installed by another operation"
                )
                result.resolved.append(raw_key)
                return result

            logger.info(
                f"Downloading dependency: {package.owner}/{package.name} {version.version_number}"
            )
            files = download_and_extract_payload(
                self.transfer,
                package,
                self.mods_path,
                self.payload_extensions,
                cancel_token=cancel_token,
            )

            # Recorded even without files, some dependencies are pure libraries
            self.manifest_store.upsert(
                InstalledPackageRecord(
                    owner=package.owner,
                    name=package.name,
                    version=version.version_number,
                    files=files,
                    dependencies=[
                        dep for dep in version.dependencies if dep in nested.resolved
                    ],
                )
            )
        finally:
            lock.release()

        if files:
            logger.info(
                f"Installed dependency {package.owner}/{package.name} with {len(files)} file(s)"
            )
        else:
            logger.info(f"Installed dependency {package.owner}/{package.name} (no mod files)")

        result.resolved.append(raw_key)
        result.installed.append(raw_key)
        return result

    def _find_package(self, key: DependencyKey) -> Optional[RegistryPackage]:
        package = self.registry.get_package(self.community, key.owner, key.name)
        if package is not None and package.latest_version is not None:
            return package

        logger.debug(
            f"Direct lookup failed for {key.owner}/{key.name}, searching the package list"
        )
        if self._package_list is None:
            self._package_list = self.registry.get_packages(self.community)
        for candidate in self._package_list:
            if candidate.matches(key.owner, key.name):
                return candidate
        return None
