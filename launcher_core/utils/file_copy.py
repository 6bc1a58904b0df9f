import shutil
from pathlib import Path
from typing import Callable, Iterable, Optional

from loguru import logger

SkipPredicate = Callable[[Path], bool]


def iter_files(root: Path, skip: Optional[SkipPredicate] = None) -> Iterable[Path]:
    """Yield every file under root, relative to it, in a stable order."""
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if skip is not None and skip(relative):
            continue
        if path.is_file() or path.is_symlink():
            yield relative


def copy_tree(
    source: str | Path,
    destination: str | Path,
    skip: Optional[SkipPredicate] = None,
) -> list[str]:
    """
    Copy a directory tree file by file, collecting failures instead of stopping.

    Existing files in the destination are overwritten. Symlinks are copied as links.

    Args:
        source: Tree to copy
        destination: Folder receiving the copy, created if missing
        skip: Called with each path relative to source; True leaves it out

    Returns:
        A list of "relative/path: error" strings, empty when every file was copied.
    """
    source = Path(source)
    destination = Path(destination)
    failures: list[str] = []

    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return [f"{destination}: {e}"]

    copied = 0
    for relative in iter_files(source, skip):
        target = destination / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.is_symlink():
                target.unlink()
            shutil.copy2(source / relative, target, follow_symlinks=False)
            copied += 1
        except OSError as e:
            logger.warning(f"Failed to copy {relative}: {e}")
            failures.append(f"{relative}: {e}")

    logger.debug(
        f"Copied {copied} files from {source} to {destination} ({len(failures)} failed)"
    )
    return failures
