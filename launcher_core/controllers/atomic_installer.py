from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from launcher_core.controllers.update_check_cache import UpdateCheckCache
from launcher_core.models.update_state import UpdateApplyOutcome, UpdateState
from launcher_core.utils.constants import (
    BACKUP_FOLDER_PREFIX,
    BACKUP_TIMESTAMP_FORMAT,
    PROCESS_EXIT_POLL_SECONDS,
    PROCESS_EXIT_TIMEOUT_SECONDS,
)
from launcher_core.utils.event_bus import EventBus
from launcher_core.utils.exception import (
    InstallFailure,
    RollbackFailedError,
    UpdateFailed,
)
from launcher_core.utils.file_copy import copy_tree, iter_files
from launcher_core.utils.generic import launch_process, rmtree, wait_for_process_exit
from launcher_core.utils.update_validator import (
    ensure_executable,
    get_binary_path,
    get_executable_path,
)


class AtomicInstaller:
    """
    Replaces the launcher installation with an extracted update.

    Runs outside the launcher process, after it has exited. The installation is
    backed up file by file before anything is overwritten, and restored from that
    backup if the overwrite fails part way. The update-check state is rewritten
    only once the new files are all in place.
    """

    def __init__(
        self,
        source: Path,
        target: Path,
        version: str,
        cache: UpdateCheckCache,
        pid: Optional[int] = None,
        process_name: Optional[str] = None,
        relaunch: bool = True,
        cleanup_source: bool = True,
        exit_timeout: float = PROCESS_EXIT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.source = Path(source)
        self.target = Path(target)
        self.version = version
        self.cache = cache
        self.pid = pid
        self.process_name = process_name
        self.relaunch = relaunch
        self.cleanup_source = cleanup_source
        self.exit_timeout = exit_timeout
        self._clock = clock
        self._event_bus = EventBus()

    def _emit(self, message: str) -> None:
        logger.info(message)
        self._event_bus.update_state_changed.emit(UpdateState.INSTALLING.value, message)

    def _skip(self, relative: Path) -> bool:
        # Never copy earlier backups, or the staging tree when it sits inside the target
        if relative.parts and relative.parts[0].startswith(BACKUP_FOLDER_PREFIX):
            return True
        return self.source.is_relative_to(self.target) and (
            self.target / relative
        ).is_relative_to(self.source)

    def install(self) -> UpdateApplyOutcome:
        """
        Wait for the launcher to exit, then back up, overwrite and finalize.

        Raises:
            InstallFailure: If the launcher did not exit or the backup failed.
                Nothing was overwritten.
            UpdateFailed: If the overwrite failed and the backup was restored.
            RollbackFailedError: If restoring the backup failed as well.
        """
        if self.pid is not None or self.process_name:
            self._emit(f"Waiting for process {self.process_name or self.pid} to exit...")
            if not wait_for_process_exit(
                pid=self.pid,
                name=self.process_name,
                timeout=self.exit_timeout,
                poll_interval=PROCESS_EXIT_POLL_SECONDS,
            ):
                raise InstallFailure(
                    "The launcher is still running, the update was not applied"
                )

        backup_folder = self.target / (
            BACKUP_FOLDER_PREFIX + self._clock().strftime(BACKUP_TIMESTAMP_FORMAT)
        )
        self._emit(f"Backing up current version to {backup_folder}")
        failures = copy_tree(self.target, backup_folder, skip=self._skip)
        if failures:
            rmtree(backup_folder)
            raise InstallFailure(
                f"Backup failed for {len(failures)} file(s), the update was not applied",
                failures,
            )

        added = [
            relative
            for relative in iter_files(self.source)
            if not (self.target / relative).exists()
        ]

        self._emit(f"Applying update {self.version}")
        failures = copy_tree(self.source, self.target)
        if failures:
            self._rollback(backup_folder, added, failures)

        binary = get_binary_path(self.target)
        if binary is not None:
            try:
                ensure_executable(binary)
            except OSError as e:
                logger.error(f"Could not mark {binary} executable: {e}")

        self.cache.mark_installed(self.version)
        if not rmtree(backup_folder):
            logger.warning(f"Could not delete backup folder {backup_folder}")
        if self.cleanup_source:
            rmtree(self.source)

        logger.info(f"Update to {self.version} completed successfully")
        self._event_bus.update_state_changed.emit(
            UpdateState.COMPLETED.value, f"Updated to {self.version}"
        )
        if self.relaunch:
            self._relaunch()
        return UpdateApplyOutcome(state=UpdateState.COMPLETED, version=self.version)

    def _rollback(
        self, backup_folder: Path, added: list[Path], failures: list[str]
    ) -> None:
        logger.error(f"Update failed for {len(failures)} file(s), restoring backup")
        restore_failures = copy_tree(backup_folder, self.target)
        for relative in added:
            try:
                (self.target / relative).unlink(missing_ok=True)
            except OSError as e:
                restore_failures.append(f"{relative}: {e}")

        if restore_failures:
            logger.critical(
                f"Restoring the backup failed for {len(restore_failures)} file(s). "
                f"The installation at {self.target} needs to be repaired from {backup_folder}"
            )
            raise RollbackFailedError(
                "Update failed and the previous version could not be restored",
                backup_folder,
                failures + restore_failures,
            )

        rmtree(backup_folder)
        self._event_bus.update_state_changed.emit(
            UpdateState.ROLLED_BACK.value, "Update failed, previous version restored"
        )
        raise UpdateFailed(
            "Update failed, the previous version was restored", failures
        )

    def _relaunch(self) -> None:
        executable = get_executable_path(self.target)
        if executable is None:
            logger.warning(f"No launcher executable in {self.target}, not relaunching")
            return
        try:
            pid, args = launch_process(executable, cwd=str(self.target))
            logger.info(f"Relaunched {args} with PID {pid}")
        except OSError as e:
            logger.error(f"Failed to relaunch {executable}: {e}")
