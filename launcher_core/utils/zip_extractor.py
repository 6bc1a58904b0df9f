"""ZIP file operations for release and mod archives.

This module provides:
- extract_zip: Extraction with overwrite, payload filtering and flattening
- normalize_app_bundle: Moves a nested macOS .app bundle to the extraction root
- Utility functions: validate_zip_integrity, get_zip_contents
"""

import os
import shutil
import stat
from pathlib import Path
from typing import Callable, Optional
from zipfile import BadZipFile, ZipFile

from loguru import logger

from launcher_core.utils.exception import ExtractionError

# Export for use in other modules
__all__ = [
    "extract_zip",
    "normalize_app_bundle",
    "validate_zip_integrity",
    "get_zip_contents",
    "is_within_directory",
    "apply_permissions",
    "BadZipFile",
]

NameFilter = Callable[[str], bool]


def is_within_directory(directory: Path, target: Path) -> bool:
    """Whether `target` resolves to a path inside `directory`."""
    directory = directory.resolve()
    try:
        target.resolve().relative_to(directory)
    except ValueError:
        return False
    return True


def apply_permissions(path: Path, mode: int) -> None:
    """Apply archived permission bits to an extracted file, keeping it owner-writable.

    A mode without permission bits leaves the file as created.
    """
    permissions = stat.S_IMODE(mode) & 0o777
    if not permissions:
        return
    os.chmod(path, permissions | stat.S_IRUSR | stat.S_IWUSR)


# ============================================================================
# ZIP Extraction
# ============================================================================


def extract_zip(
    zip_path: str | Path,
    target_path: str | Path,
    name_filter: Optional[NameFilter] = None,
    flatten: bool = False,
    overwrite_all: bool = True,
) -> list[str]:
    """Extract a ZIP archive.

    Args:
        zip_path: Path to ZIP file to extract
        target_path: Destination directory for extraction
        name_filter: If given, only entries whose file name passes are extracted
        flatten: Write entries by file name only, dropping their folders
        overwrite_all: Whether to overwrite existing files (default: True)

    Returns:
        Paths of the extracted files, relative to target_path, in archive order.

    Raises:
        ExtractionError: If the archive is corrupt or cannot be written out.
    """
    target = Path(target_path)
    target.mkdir(parents=True, exist_ok=True)
    extracted: list[str] = []

    try:
        with ZipFile(zip_path) as zipobj:
            for zip_info in zipobj.infolist():
                filename = zip_info.filename.replace("\\", "/")
                base_name = filename.rstrip("/").rsplit("/", 1)[-1]

                if zip_info.is_dir():
                    if not flatten and name_filter is None:
                        dst_dir = target / filename
                        if not is_within_directory(target, dst_dir):
                            logger.warning(f"Skipping unsafe ZIP entry: {filename}")
                            continue
                        dst_dir.mkdir(parents=True, exist_ok=True)
                    continue

                if not base_name:
                    continue
                if name_filter is not None and not name_filter(base_name):
                    continue

                relative = base_name if flatten else filename
                dst = target / relative
                if not is_within_directory(target, dst):
                    logger.warning(f"Skipping unsafe ZIP entry: {filename}")
                    continue
                if dst.exists() and not overwrite_all:
                    continue

                os.makedirs(dst.parent, exist_ok=True)
                with zipobj.open(zip_info) as src, open(dst, "wb") as out_file:
                    shutil.copyfileobj(src, out_file)
                apply_permissions(dst, zip_info.external_attr >> 16)
                extracted.append(relative)
    except BadZipFile as e:
        logger.error(f"ZIP extraction failed: {e}")
        raise ExtractionError(zip_path, f"Invalid ZIP file: {e}") from e
    except OSError as e:
        logger.error(f"ZIP extraction failed: {e}")
        raise ExtractionError(zip_path, str(e)) from e

    logger.info(f"Extracted {len(extracted)} files from {Path(zip_path).name}")
    return extracted


def normalize_app_bundle(extract_path: str | Path) -> Optional[Path]:
    """Move the first .app bundle found under `extract_path` to its root.

    Returns:
        The bundle's final path, or None when the tree holds no bundle.
    """
    root = Path(extract_path)
    bundles = sorted(
        (path for path in root.rglob("*.app") if path.is_dir()),
        key=lambda path: len(path.parts),
    )
    if not bundles:
        logger.debug(f"No .app bundle found under {root}")
        return None

    bundle = bundles[0]
    destination = root / bundle.name
    if bundle == destination:
        return destination

    if destination.exists():
        logger.warning(f"Replacing existing bundle at {destination}")
        shutil.rmtree(destination)
    logger.info(f"Moving app bundle {bundle} to {destination}")
    shutil.move(str(bundle), str(destination))
    return destination


# ============================================================================
# ZIP Utility Functions
# ============================================================================


def validate_zip_integrity(zip_path: str | Path) -> tuple[bool, str]:
    """Validate ZIP file integrity.

    Tests the ZIP file for corruption and checks if it's a valid archive.

    Args:
        zip_path: Path to ZIP file to validate

    Returns:
        Tuple of (is_valid, error_message). If valid, error_message is empty.
    """
    try:
        with ZipFile(zip_path) as zipobj:
            bad_file = zipobj.testzip()
            if bad_file:
                return False, f"Corrupted file in archive: {bad_file}"
        return True, ""
    except BadZipFile as e:
        return False, f"Invalid ZIP file: {e}"
    except OSError as e:
        return False, f"Error reading ZIP file: {e}"


def get_zip_contents(zip_path: str | Path) -> list[str]:
    """Get list of file names in a ZIP archive.

    Args:
        zip_path: Path to ZIP file

    Returns:
        List of file names, empty if the archive cannot be read.
    """
    try:
        with ZipFile(zip_path) as zipobj:
            return zipobj.namelist()
    except (BadZipFile, OSError) as e:
        logger.error(f"Failed to read ZIP contents: {e}")
        return []
