import os
import sys
from pathlib import Path

import pytest

from launcher_core.utils.exception import ValidationError
from launcher_core.utils.update_validator import (
    ensure_executable,
    get_binary_path,
    get_executable_path,
    validate_update_tree,
)


def make_bundle(folder: Path, binary_size: int = 2048) -> Path:
    bundle = folder / "RecompLauncher.app"
    macos = bundle / "Contents" / "MacOS"
    macos.mkdir(parents=True)
    if binary_size:
        (macos / "RecompLauncher").write_bytes(b"\0" * binary_size)
    return bundle


def test_windows_executable(tmp_path: Path) -> None:
    (tmp_path / "RecompLauncher.exe").write_bytes(b"\0" * 2048)
    assert validate_update_tree(tmp_path, system="Windows") == tmp_path / "RecompLauncher.exe"


def test_missing_executable(tmp_path: Path) -> None:
    (tmp_path / "readme.txt").write_text("hello")
    with pytest.raises(ValidationError, match="not found"):
        validate_update_tree(tmp_path, system="Linux")


def test_too_small_executable(tmp_path: Path) -> None:
    (tmp_path / "RecompLauncher").write_bytes(b"#!/bin/sh\n")
    with pytest.raises(ValidationError, match="too small"):
        validate_update_tree(tmp_path, system="Linux")


def test_macos_prefers_bundle(tmp_path: Path) -> None:
    bundle = make_bundle(tmp_path)
    (tmp_path / "RecompLauncher").write_bytes(b"\0" * 2048)

    assert get_executable_path(tmp_path, system="Darwin") == bundle
    assert validate_update_tree(tmp_path, system="Darwin") == bundle
    assert get_binary_path(tmp_path, system="Darwin") == (
        bundle / "Contents" / "MacOS" / "RecompLauncher"
    )


def test_macos_empty_bundle_is_rejected(tmp_path: Path) -> None:
    (tmp_path / "RecompLauncher.app").mkdir()

    with pytest.raises(ValidationError, match="app bundle"):
        validate_update_tree(tmp_path, system="Darwin")
    assert get_binary_path(tmp_path, system="Darwin") is None


def test_macos_bundle_binary_too_small(tmp_path: Path) -> None:
    make_bundle(tmp_path, binary_size=10)

    with pytest.raises(ValidationError, match="too small"):
        validate_update_tree(tmp_path, system="Darwin")


def test_no_executable_returns_none(tmp_path: Path) -> None:
    assert get_executable_path(tmp_path, system="Windows") is None
    assert get_binary_path(tmp_path, system="Windows") is None


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_ensure_executable(tmp_path: Path) -> None:
    binary = tmp_path / "RecompLauncher"
    binary.write_bytes(b"\0" * 2048)
    binary.chmod(0o644)

    ensure_executable(binary)

    assert binary.stat().st_mode & 0o777 == 0o755
    assert os.access(binary, os.X_OK)
