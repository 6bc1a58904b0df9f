import os
import platform
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import Optional

from loguru import logger

from launcher_core.controllers.update_check_cache import UpdateCheckCache
from launcher_core.models.release import Release
from launcher_core.models.settings import LauncherSettings
from launcher_core.models.transfer import CancelToken
from launcher_core.models.update_check import UpdateCheckState
from launcher_core.models.update_state import (
    UpdateApplyOutcome,
    UpdateCheckOutcome,
    UpdateState,
)
from launcher_core.utils.app_info import AppInfo
from launcher_core.utils.archive import archive_kind, extract_archive
from launcher_core.utils.asset_selector import require_asset
from launcher_core.utils.constants import CONFIRMATION_TIMEOUT_SECONDS, DEFAULT_VERSION
from launcher_core.utils.event_bus import ConfirmationRequest, EventBus
from launcher_core.utils.exception import (
    ExtractionError,
    MalformedResponseError,
    NetworkError,
    TransferCancelled,
    UpdateError,
    UpdateInProgressError,
)
from launcher_core.utils.generic import format_file_size, rmtree
from launcher_core.utils.installer_script import (
    build_helper_command,
    launch_installer_script,
    write_installer_script,
)
from launcher_core.utils.platform_probe import get_platform_identifier
from launcher_core.utils.release_fetcher import ReleaseFetcher
from launcher_core.utils.transfer import TransferManager
from launcher_core.utils.update_validator import (
    ensure_executable,
    get_binary_path,
    validate_update_tree,
)
from launcher_core.utils.version import is_forced_update_baseline, is_newer
from launcher_core.utils.zip_extractor import get_zip_contents, validate_zip_integrity

UPDATER_LOG_FILENAME = "updater.log"


class ProcessOnceGuard:
    """
    Once-per-process latch for the startup update check.

    `try_start()` returns True for exactly one caller.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started = False

    def try_start(self) -> bool:
        with self._lock:
            if self._started:
                return False
            self._started = True
            return True

    @property
    def started(self) -> bool:
        return self._started


class UpdateController:
    """
    Drives the self-update pipeline of the launcher.

    Only one check or apply runs at a time within the process. Outcomes are
    returned and mirrored on the EventBus; the controller never talks to UI code.
    Questions for the user go out as `ConfirmationRequest`s.
    """

    _pipeline_lock = threading.Lock()

    def __init__(
        self,
        settings: LauncherSettings,
        cache: Optional[UpdateCheckCache] = None,
        fetcher: Optional[ReleaseFetcher] = None,
        transfer: Optional[TransferManager] = None,
        version_file: Optional[Path] = None,
        application_folder: Optional[Path] = None,
        is_frozen: Optional[bool] = None,
        system: Optional[str] = None,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT_SECONDS,
    ) -> None:
        self.settings = settings
        self.cache = cache or UpdateCheckCache(AppInfo().update_check_file)
        self.fetcher = fetcher or ReleaseFetcher(
            settings.release_repository, token=settings.auth_token
        )
        self.transfer = transfer or TransferManager()
        self.version_file = version_file or AppInfo().version_file
        self.application_folder = application_folder or AppInfo().application_folder
        self.is_frozen = AppInfo().is_frozen if is_frozen is None else is_frozen
        self.system = system or platform.system()
        self.confirmation_timeout = confirmation_timeout
        self.startup_guard = ProcessOnceGuard()
        self._event_bus = EventBus()

        self._event_bus.do_check_for_application_update.connect(
            self._on_do_check_for_application_update
        )

    def _set_state(self, state: UpdateState, message: str = "") -> None:
        self._event_bus.update_state_changed.emit(state.value, message)

    def _acquire(self) -> None:
        if not UpdateController._pipeline_lock.acquire(blocking=False):
            raise UpdateInProgressError("An update check or install is already running")

    def current_version(self, state: Optional[UpdateCheckState] = None) -> str:
        """
        Version of the running installation.

        The shipped version file wins, then the version recorded by the last
        check or install, then "0.0".
        """
        try:
            text = self.version_file.read_text(encoding="utf-8").strip()
            if text:
                return text
        except OSError:
            pass
        if state is not None and state.current_version.strip():
            return state.current_version.strip()
        return DEFAULT_VERSION

    def check_for_update(self, manual: bool = False) -> UpdateCheckOutcome:
        """
        Check the release registry for a newer launcher.

        Automatic checks are answered from the persisted state while it is fresh.
        Network and parsing failures are reported in the outcome, never raised.

        Raises:
            UpdateInProgressError: If another check or install is running.
        """
        self._acquire()
        try:
            return self._check_for_update(manual)
        finally:
            UpdateController._pipeline_lock.release()

    def _check_for_update(self, manual: bool) -> UpdateCheckOutcome:
        state = self.cache.load()
        current = self.current_version(state)

        if self.settings.updater_disabled and not manual:
            logger.info("Updater disabled, skipping update check")
            return UpdateCheckOutcome(UpdateState.IDLE, current, skipped=True)

        if not manual and self.cache.should_skip(state, current):
            logger.info(
                f"Skipping update check, last checked {state.last_check_time}, current version {current}"
            )
            if state.update_available and is_newer(state.last_known_version, current):
                logger.info(f"Cached update available: {state.last_known_version}")
                return self._report(
                    UpdateCheckOutcome(
                        UpdateState.UPDATE_AVAILABLE,
                        current,
                        latest_version=state.last_known_version,
                        skipped=True,
                    )
                )
            return self._report(
                UpdateCheckOutcome(UpdateState.UP_TO_DATE, current, skipped=True)
            )

        self._set_state(UpdateState.CHECKING, "Checking for updates...")
        try:
            result = self.fetcher.fetch_latest(etag=state.conditional_tag or None)
        except NetworkError as e:
            logger.warning(f"Could not check for launcher updates: {e}")
            state.current_version = current
            self.cache.save(state)
            return self._report(
                UpdateCheckOutcome(UpdateState.FAILED, current, error=str(e))
            )
        except MalformedResponseError as e:
            logger.warning(f"Invalid release information: {e}")
            state.update_available = False
            self.cache.record_check(state, current)
            return self._report(
                UpdateCheckOutcome(UpdateState.FAILED, current, error=str(e))
            )

        if result.not_modified or result.release is None:
            # Nothing changed remotely, the cached verdict still holds
            state.update_available = bool(state.last_known_version) and is_newer(
                state.last_known_version, current
            )
            self.cache.record_check(state, current)
            if state.update_available:
                return self._report(
                    UpdateCheckOutcome(
                        UpdateState.UPDATE_AVAILABLE,
                        current,
                        latest_version=state.last_known_version,
                    )
                )
            return self._report(UpdateCheckOutcome(UpdateState.UP_TO_DATE, current))

        release = result.release
        state.conditional_tag = result.etag
        state.last_known_version = release.tag
        state.update_available = is_newer(release.tag, current)
        self.cache.record_check(state, current)

        if not state.update_available:
            logger.info(f"Launcher {current} is up to date (latest {release.tag})")
            return self._report(
                UpdateCheckOutcome(
                    UpdateState.UP_TO_DATE, current, latest_version=release.tag
                )
            )

        if is_forced_update_baseline(current):
            logger.info(f"Current version is '{current}', forcing update to {release.tag}")
        else:
            logger.info(f"Newer launcher version {release.tag} available, current {current}")
        return self._report(
            UpdateCheckOutcome(
                UpdateState.UPDATE_AVAILABLE,
                current,
                latest_version=release.tag,
                release=release,
            )
        )

    def _report(self, outcome: UpdateCheckOutcome) -> UpdateCheckOutcome:
        self._set_state(outcome.state, outcome.error or "")
        if outcome.update_available:
            self._event_bus.update_available.emit(
                outcome.latest_version, outcome.current_version
            )
        return outcome

    def request_confirmation(self, title: str, text: str) -> bool:
        """
        Ask the presentation layer a yes/no question and wait for the answer.

        Unanswered requests count as declined once the timeout passes.
        """
        request = ConfirmationRequest(title=title, text=text)
        self._event_bus.confirmation_requested.emit(request)
        try:
            return request.response.result(timeout=self.confirmation_timeout)
        except TimeoutError:
            logger.info(f"No answer to '{title}', treating it as declined")
            return False

    def apply_update(
        self,
        release: Optional[Release] = None,
        cancel_token: Optional[CancelToken] = None,
        exit_process: bool = True,
    ) -> UpdateApplyOutcome:
        """
        Download, extract and validate a release, then hand over to the installer script.

        Nothing in the installation is touched here. Failures before the handover
        abandon the update and remove the staging folder.

        Args:
            release: Release to install, fetched fresh when omitted
            cancel_token: Aborts the download
            exit_process: Exit the launcher once the installer script is running

        Raises:
            UpdateInProgressError: If another check or install is running.
        """
        self._acquire()
        try:
            outcome = self._apply_update(release, cancel_token or CancelToken())
        finally:
            UpdateController._pipeline_lock.release()

        self._event_bus.update_finished.emit(
            outcome.succeeded, outcome.error or "Restarting to finish the update..."
        )
        if outcome.succeeded and exit_process:
            logger.info("Exiting to allow the update to be installed")
            # Give the installer script time to start before exit
            time.sleep(1)
            sys.exit(0)
        return outcome

    def _apply_update(
        self, release: Optional[Release], cancel_token: CancelToken
    ) -> UpdateApplyOutcome:
        staging_root: Optional[Path] = None
        try:
            if release is None:
                result = self.fetcher.fetch_latest()
                release = result.release
                if release is None:
                    raise MalformedResponseError("No release information returned")

            platform_identifier = get_platform_identifier(system=self.system)
            asset = require_asset(release, platform_identifier)
            logger.info(
                f"Updating to {release.tag} with {asset.name} ({format_file_size(asset.size)})"
            )

            staging_root = Path(tempfile.mkdtemp(prefix="launcher_update_"))
            archive_path = staging_root / asset.name
            staged_path = staging_root / "update"

            self._set_state(UpdateState.DOWNLOADING, f"Downloading {release.tag}...")
            self.transfer.download(
                asset.download_url,
                archive_path,
                on_progress=self._event_bus.update_progress.emit,
                cancel_token=cancel_token,
            )

            self._set_state(UpdateState.EXTRACTING, "Extracting update...")
            if archive_kind(archive_path) == "zip":
                is_valid, error = validate_zip_integrity(archive_path)
                if not is_valid:
                    raise ExtractionError(archive_path, error)
                logger.debug(f"Update archive holds {len(get_zip_contents(archive_path))} entries")
            extract_archive(archive_path, staged_path, system=self.system)
            archive_path.unlink(missing_ok=True)

            self._set_state(UpdateState.VALIDATING, "Validating update...")
            validate_update_tree(staged_path, self.system)
            binary = get_binary_path(staged_path, self.system)
            if binary is not None:
                ensure_executable(binary)

            self._set_state(UpdateState.INSTALLING, "Preparing to install...")
            script_path = self._launch_installer(staged_path, release.tag)
        except TransferCancelled:
            logger.info("Update download cancelled")
            self._discard(staging_root)
            self._set_state(UpdateState.FAILED, "Update cancelled")
            return UpdateApplyOutcome(UpdateState.FAILED, cancelled=True)
        except (UpdateError, OSError) as e:
            logger.error(f"Update abandoned: {e}")
            self._discard(staging_root)
            self._set_state(UpdateState.FAILED, str(e))
            return UpdateApplyOutcome(
                UpdateState.FAILED,
                version=release.tag if release else "",
                error=str(e),
            )

        return UpdateApplyOutcome(
            UpdateState.INSTALLING,
            version=release.tag,
            staged_path=staged_path,
            script_path=script_path,
        )

    def _launch_installer(self, staged_path: Path, version: str) -> Path:
        helper_command = build_helper_command(
            staged_path,
            self.application_folder,
            os.getpid(),
            version,
            is_frozen=self.is_frozen,
            system=self.system,
        )
        script_path = write_installer_script(
            staged_path.parent,
            os.getpid(),
            helper_command,
            version,
            log_path=AppInfo().user_log_folder / UPDATER_LOG_FILENAME,
            system=self.system,
        )
        launch_installer_script(script_path, self.system)
        return script_path

    @staticmethod
    def _discard(staging_root: Optional[Path]) -> None:
        if staging_root is not None:
            rmtree(staging_root)

    def check_and_apply(self, manual: bool = False) -> None:
        """
        Check for an update and install it if the user accepts.

        The startup check runs once per process; manual checks always run.
        """
        if not manual and not self.startup_guard.try_start():
            logger.debug("Startup update check already ran")
            return

        try:
            outcome = self.check_for_update(manual=manual)
        except UpdateInProgressError as e:
            logger.info(str(e))
            return

        if not outcome.update_available:
            return
        if not self.request_confirmation(
            "Update Available",
            f"Launcher update {outcome.latest_version} is available!\n\nWould you like to update now?",
        ):
            logger.info(f"Update to {outcome.latest_version} declined")
            return

        try:
            self.apply_update(outcome.release)
        except UpdateInProgressError as e:
            logger.info(str(e))

    def _on_do_check_for_application_update(self, manual: bool) -> None:
        threading.Thread(
            target=self.check_and_apply,
            args=(manual,),
            name="update-check",
            daemon=True,
        ).start()
