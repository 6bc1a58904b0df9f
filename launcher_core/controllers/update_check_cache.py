import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import msgspec
from loguru import logger

from launcher_core.models.update_check import UpdateCheckState
from launcher_core.utils.constants import UPDATE_CHECK_INTERVAL_SECONDS
from launcher_core.utils.version import is_newer, versions_match


def _as_utc(moment: datetime) -> datetime:
    # Timestamps without an offset were written as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class UpdateCheckCache:
    """
    Persisted state of the last self-update check, and the policy deciding
    whether an automatic check may be answered from it.
    """

    def __init__(
        self,
        state_path: Path,
        interval: timedelta = timedelta(seconds=UPDATE_CHECK_INTERVAL_SECONDS),
    ) -> None:
        self.state_path = Path(state_path)
        self.interval = interval
        self._lock = threading.Lock()

    def load(self) -> UpdateCheckState:
        """Read the state file. Missing or corrupt files yield a fresh state."""
        try:
            return msgspec.json.decode(
                self.state_path.read_bytes(), type=UpdateCheckState
            )
        except FileNotFoundError:
            return UpdateCheckState()
        except (msgspec.DecodeError, msgspec.ValidationError, OSError) as e:
            logger.warning(f"Failed to load update check state {self.state_path}: {e}")
            return UpdateCheckState()

    def save(self, state: UpdateCheckState) -> None:
        with self._lock:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            data = msgspec.json.format(msgspec.json.encode(state), indent=2)
            tmp_path = self.state_path.with_suffix(".json.tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(self.state_path)

    def should_skip(
        self,
        state: UpdateCheckState,
        live_version: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Decide whether an automatic check can skip the network.

        The check is skipped only when the last check is younger than the interval,
        the stored current version still matches the running one, and the last
        known remote version is not newer than it.
        """
        if not state.has_been_checked or state.last_check_time is None:
            return False

        now = _as_utc(now or datetime.now(timezone.utc))
        elapsed = now - _as_utc(state.last_check_time)
        if elapsed >= self.interval:
            return False

        if not versions_match(state.current_version, live_version):
            logger.debug(
                f"Version changed since last check ({state.current_version} -> {live_version})"
            )
            return False

        if state.last_known_version and is_newer(
            state.last_known_version, live_version
        ):
            return False

        return True

    def record_check(
        self,
        state: UpdateCheckState,
        current_version: str,
        now: Optional[datetime] = None,
    ) -> UpdateCheckState:
        """Stamp the state with a completed check and persist it."""
        state.last_check_time = now or datetime.now(timezone.utc)
        state.current_version = current_version
        self.save(state)
        return state

    def mark_installed(self, version: str) -> UpdateCheckState:
        """
        Record a successfully installed update.

        Clears the pending flag and the validation tag so the next check fetches
        the release body again.
        """
        state = self.load()
        state.current_version = version
        state.last_known_version = version
        state.update_available = False
        state.conditional_tag = ""
        self.save(state)
        logger.info(f"Update check state now records version {version}")
        return state
