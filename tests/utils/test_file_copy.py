import shutil
from pathlib import Path
from unittest.mock import patch

from launcher_core.utils.file_copy import copy_tree, iter_files


def make_tree(root: Path) -> None:
    (root / "lib").mkdir(parents=True)
    (root / "RecompLauncher").write_bytes(b"binary")
    (root / "lib" / "core.so").write_bytes(b"core")
    (root / "backup_20240101_000000").mkdir()
    (root / "backup_20240101_000000" / "old").write_bytes(b"old")


def test_iter_files_sorted_and_filtered(tmp_path: Path) -> None:
    make_tree(tmp_path)

    files = list(
        iter_files(tmp_path, skip=lambda rel: rel.parts[0].startswith("backup_"))
    )

    assert files == [Path("RecompLauncher"), Path("lib/core.so")]


def test_copy_tree_overwrites(tmp_path: Path) -> None:
    source = tmp_path / "source"
    destination = tmp_path / "destination"
    make_tree(source)
    destination.mkdir()
    (destination / "RecompLauncher").write_bytes(b"stale")
    (destination / "keep.txt").write_text("untouched")

    failures = copy_tree(source, destination)

    assert failures == []
    assert (destination / "RecompLauncher").read_bytes() == b"binary"
    assert (destination / "lib" / "core.so").read_bytes() == b"core"
    assert (destination / "keep.txt").read_text() == "untouched"


def test_copy_tree_collects_failures(tmp_path: Path) -> None:
    source = tmp_path / "source"
    make_tree(source)
    real_copy = shutil.copy2

    def flaky_copy(src: Path, dst: Path, follow_symlinks: bool = True) -> object:
        if Path(src).name == "core.so":
            raise PermissionError("denied")
        return real_copy(src, dst, follow_symlinks=follow_symlinks)

    with patch("launcher_core.utils.file_copy.shutil.copy2", side_effect=flaky_copy):
        failures = copy_tree(source, tmp_path / "destination")

    assert len(failures) == 1
    assert failures[0].startswith(str(Path("lib/core.so")))
    assert (tmp_path / "destination" / "RecompLauncher").exists()
