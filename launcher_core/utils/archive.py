import platform
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger

from launcher_core.utils.exception import ExtractionError
from launcher_core.utils.tar_extractor import extract_tar
from launcher_core.utils.zip_extractor import (
    NameFilter,
    extract_zip,
    normalize_app_bundle,
)


def archive_kind(archive_path: str | Path) -> Optional[str]:
    """Classify an archive by suffix: "zip", "tar.gz", "tar" or None."""
    name = Path(archive_path).name.lower()
    if name.endswith(".zip"):
        return "zip"
    if name.endswith(".tar.gz") or name.endswith(".tgz"):
        return "tar.gz"
    if name.endswith(".tar"):
        return "tar"
    return None


def suffix_filter(extensions: Iterable[str]) -> NameFilter:
    """Build a file-name filter accepting only the given suffixes, ignoring case."""
    allowed = tuple(ext.lower() for ext in extensions)

    def _accepts(file_name: str) -> bool:
        return file_name.lower().endswith(allowed)

    return _accepts


def extract_archive(
    archive_path: str | Path,
    destination: str | Path,
    name_filter: Optional[NameFilter] = None,
    flatten: bool = False,
    system: Optional[str] = None,
) -> list[str]:
    """
    Expand a release or mod archive into `destination`.

    The container format is chosen from the file suffix. On macOS, a .app bundle
    found anywhere in an extracted zip is moved directly under `destination`.

    Args:
        archive_path: Archive to expand
        destination: Target directory, created when missing
        name_filter: Zip only. Restricts extraction to matching file names
        flatten: Zip only. Writes files by name without their folders
        system: platform.system() value, probed when omitted

    Returns:
        Relative paths of the extracted files.

    Raises:
        ExtractionError: For unsupported suffixes, I/O errors and corrupt archives.
    """
    kind = archive_kind(archive_path)
    system = platform.system() if system is None else system
    logger.info(f"Extracting {Path(archive_path).name} ({kind}) to {destination}")

    if kind == "zip":
        extracted = extract_zip(
            archive_path, destination, name_filter=name_filter, flatten=flatten
        )
        if system == "Darwin":
            normalize_app_bundle(destination)
        return extracted
    if kind in ("tar.gz", "tar"):
        return extract_tar(archive_path, destination, gzipped=kind == "tar.gz")

    raise ExtractionError(archive_path, "Unsupported archive format")
