from pathlib import Path

from launcher_core.controllers.manifest_store import InstallManifestStore
from launcher_core.models.manifest import InstalledPackageRecord


def make_record(name: str, version: str, files: list[str]) -> InstalledPackageRecord:
    return InstalledPackageRecord(owner="Alice", name=name, version=version, files=files)


def test_load_missing_file(tmp_path: Path) -> None:
    store = InstallManifestStore(tmp_path / "mods.json")
    assert store.load() == []


def test_load_corrupt_file(tmp_path: Path) -> None:
    manifest = tmp_path / "mods.json"
    manifest.write_text("not json")
    assert InstallManifestStore(manifest).load() == []


def test_upsert_persists(tmp_path: Path) -> None:
    manifest = tmp_path / "mods.json"
    store = InstallManifestStore(manifest)
    store.upsert(make_record("BetterHud", "1.0.0", ["BetterHud.nrm"]))

    reloaded = InstallManifestStore(manifest)
    records = reloaded.load()

    assert len(records) == 1
    assert records[0].version == "1.0.0"
    assert reloaded.last_updated is not None
    assert reloaded.contains("alice", "BETTERHUD")
    assert not manifest.with_suffix(".json.tmp").exists()


def test_upsert_replaces_and_cleans_stale_files(tmp_path: Path) -> None:
    (tmp_path / "old.nrm").write_bytes(b"old")
    (tmp_path / "shared.nrm").write_bytes(b"shared")
    store = InstallManifestStore(tmp_path / "mods.json")
    store.upsert(make_record("BetterHud", "1.0.0", ["old.nrm", "shared.nrm"]))

    store.upsert(
        make_record("BetterHud", "2.0.0", ["shared.nrm", "new.nrm"]),
        mods_path=tmp_path,
        clean=True,
    )

    assert len(store.records) == 1
    assert store.get("Alice", "BetterHud").version == "2.0.0"
    assert not (tmp_path / "old.nrm").exists()
    assert (tmp_path / "shared.nrm").exists()


def test_remove(tmp_path: Path) -> None:
    (tmp_path / "a.nrm").write_bytes(b"a")
    store = InstallManifestStore(tmp_path / "mods.json")
    store.upsert(make_record("BetterHud", "1.0.0", ["a.nrm", "missing.nrm"]))

    assert store.remove("Alice", "BetterHud", tmp_path) == 1
    assert not (tmp_path / "a.nrm").exists()
    assert store.records == []
    assert store.remove("Alice", "BetterHud", tmp_path) == 0


def test_delete_tracked_files_keeps_record(tmp_path: Path) -> None:
    (tmp_path / "a.nrm").write_bytes(b"a")
    store = InstallManifestStore(tmp_path / "mods.json")
    store.upsert(make_record("BetterHud", "1.0.0", ["a.nrm"]))

    assert store.delete_tracked_files("Alice", "BetterHud", tmp_path) == 1
    assert store.contains("Alice", "BetterHud")
