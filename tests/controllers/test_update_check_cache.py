from datetime import datetime, timedelta, timezone
from pathlib import Path

from launcher_core.controllers.update_check_cache import UpdateCheckCache
from launcher_core.models.update_check import UpdateCheckState

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def checked_state(**kwargs: object) -> UpdateCheckState:
    state = UpdateCheckState(
        current_version="v1.0",
        last_check_time=NOW - timedelta(minutes=1),
        last_known_version="v1.0",
    )
    for key, value in kwargs.items():
        setattr(state, key, value)
    return state


class TestShouldSkip:
    """Tests for the automatic check skip policy."""

    def test_recent_check_same_version(self, tmp_path: Path) -> None:
        cache = UpdateCheckCache(tmp_path / "state.json")
        assert cache.should_skip(checked_state(), "1.0", now=NOW) is True

    def test_never_checked(self, tmp_path: Path) -> None:
        cache = UpdateCheckCache(tmp_path / "state.json")
        assert cache.should_skip(UpdateCheckState(), "v1.0", now=NOW) is False

    def test_interval_elapsed(self, tmp_path: Path) -> None:
        cache = UpdateCheckCache(tmp_path / "state.json")
        state = checked_state(last_check_time=NOW - timedelta(minutes=5))
        assert cache.should_skip(state, "v1.0", now=NOW) is False

    def test_version_changed(self, tmp_path: Path) -> None:
        cache = UpdateCheckCache(tmp_path / "state.json")
        assert cache.should_skip(checked_state(), "v1.1", now=NOW) is False

    def test_known_newer_release(self, tmp_path: Path) -> None:
        cache = UpdateCheckCache(tmp_path / "state.json")
        state = checked_state(last_known_version="v2.0")
        assert cache.should_skip(state, "v1.0", now=NOW) is False

    def test_naive_timestamp_is_utc(self, tmp_path: Path) -> None:
        cache = UpdateCheckCache(tmp_path / "state.json")
        state = checked_state(last_check_time=datetime(2024, 6, 1, 11, 59, 0))
        assert cache.should_skip(state, "v1.0", now=NOW) is True


def test_missing_and_corrupt_state(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    cache = UpdateCheckCache(path)
    assert cache.load().has_been_checked is False

    path.write_text("[")
    assert cache.load() == UpdateCheckState()


def test_record_check_persists(tmp_path: Path) -> None:
    cache = UpdateCheckCache(tmp_path / "state.json")
    state = UpdateCheckState(conditional_tag='"abc"', last_known_version="v1.0")

    cache.record_check(state, "v1.0", now=NOW)
    loaded = cache.load()

    assert loaded.current_version == "v1.0"
    assert loaded.conditional_tag == '"abc"'
    assert loaded.last_check_time == NOW


def test_mark_installed_clears_pending(tmp_path: Path) -> None:
    cache = UpdateCheckCache(tmp_path / "state.json")
    cache.save(
        UpdateCheckState(
            current_version="v1.0",
            last_known_version="v2.0",
            conditional_tag='"abc"',
            update_available=True,
        )
    )

    state = cache.mark_installed("v2.0")

    assert cache.load() == state
    assert state.current_version == "v2.0"
    assert state.update_available is False
    assert state.conditional_tag == ""
