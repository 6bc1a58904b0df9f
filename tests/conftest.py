import io
import zipfile
from pathlib import Path
from typing import Callable, Generator, Iterable, Optional
from unittest.mock import MagicMock

import pytest
from PySide6.QtCore import QCoreApplication

from launcher_core.models.package import RegistryPackage, RegistryVersion


@pytest.fixture(scope="session")
def qapp() -> Generator[QCoreApplication, None, None]:
    """Create a QCoreApplication instance for tests using signals."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


def make_zip_bytes(entries: dict[str, bytes]) -> bytes:
    """Build an in-memory zip archive from {name: content}. Names ending in / are folders."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in entries.items():
            if name.endswith("/"):
                zf.writestr(zipfile.ZipInfo(name), b"")
            else:
                zf.writestr(name, content)
    return buffer.getvalue()


def make_package(
    owner: str,
    name: str,
    version: str = "1.0.0",
    dependencies: Optional[list[str]] = None,
    download_url: Optional[str] = None,
) -> RegistryPackage:
    return RegistryPackage(
        name=name,
        full_name=f"{owner}-{name}",
        owner=owner,
        versions=[
            RegistryVersion(
                name=name,
                full_name=f"{owner}-{name}-{version}",
                version_number=version,
                dependencies=dependencies or [],
                download_url=download_url
                or f"https://example.invalid/{owner}/{name}/{version}.zip",
            )
        ],
    )


def make_stream_response(
    chunks: Iterable[bytes],
    content_length: Optional[int] = None,
    status_error: Optional[Exception] = None,
) -> MagicMock:
    """A streamed requests response usable as a context manager."""
    response = MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    response.headers = (
        {"content-length": str(content_length)} if content_length is not None else {}
    )
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    response.iter_content.return_value = iter(list(chunks))
    return response


class FakeTransfer:
    """
    Stands in for TransferManager, writing canned archives instead of downloading.

    `archives` maps a URL to the bytes written to the destination.
    """

    def __init__(self, archives: dict[str, bytes]) -> None:
        self.archives = archives
        self.calls: list[str] = []
        self.before_write: Optional[Callable[[str], None]] = None

    def download(
        self,
        url: str,
        destination: Path,
        on_progress: Optional[Callable[[int, str], None]] = None,
        cancel_token: Optional[object] = None,
    ) -> None:
        self.calls.append(url)
        if self.before_write is not None:
            self.before_write(url)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.archives[url])
        if on_progress is not None:
            on_progress(100, "done")


@pytest.fixture
def fake_transfer_factory() -> Callable[[dict[str, bytes]], FakeTransfer]:
    return FakeTransfer
