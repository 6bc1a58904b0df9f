"""
Sequential-block (tar) archive reader.

An archive is a run of 512-byte header blocks, each followed by its payload
padded to the next block boundary:

    name      bytes [0, 100)    NUL-terminated path
    mode      bytes [100, 108)  ASCII octal permission bits
    size      bytes [124, 136)  ASCII octal, NUL or space padded
    typeflag  byte  156         '5' directory, '0' or NUL regular file
    prefix    bytes [345, 500)  ustar path prefix, joined to name when present

A zero block, a short header or a blank name ends the archive. Other entry
types are skipped along with their payload.
"""

import gzip
import zlib
from pathlib import Path
from typing import BinaryIO, Optional

from loguru import logger

from launcher_core.utils.constants import TAR_BLOCK_SIZE
from launcher_core.utils.exception import ExtractionError
from launcher_core.utils.zip_extractor import apply_permissions, is_within_directory

COPY_CHUNK_SIZE = 65536

NAME_FIELD = slice(0, 100)
MODE_FIELD = slice(100, 108)
SIZE_FIELD = slice(124, 136)
TYPEFLAG_OFFSET = 156
MAGIC_FIELD = slice(257, 262)
PREFIX_FIELD = slice(345, 500)

TYPE_REGULAR = (b"0", b"\0")
TYPE_DIRECTORY = b"5"

ZERO_BLOCK = bytes(TAR_BLOCK_SIZE)


def block_padding(size: int) -> int:
    """Bytes needed after a payload of `size` bytes to reach the next block."""
    return (TAR_BLOCK_SIZE - size % TAR_BLOCK_SIZE) % TAR_BLOCK_SIZE


def parse_octal(field: bytes) -> int:
    """
    Parse a NUL/space padded ASCII octal field.

    Raises:
        ValueError: If the field holds anything other than octal digits.
    """
    text = field.strip(b"\0 ").decode("ascii")
    if not text:
        return 0
    return int(text, 8)


def _read_exact(stream: BinaryIO, count: int) -> bytes:
    data = bytearray()
    while len(data) < count:
        chunk = stream.read(count - len(data))
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)


def _skip(stream: BinaryIO, count: int) -> int:
    skipped = 0
    while skipped < count:
        chunk = stream.read(min(COPY_CHUNK_SIZE, count - skipped))
        if not chunk:
            break
        skipped += len(chunk)
    return skipped


def _entry_name(header: bytes) -> Optional[str]:
    try:
        name = header[NAME_FIELD].split(b"\0", 1)[0].decode("utf-8")
        if header[MAGIC_FIELD] == b"ustar":
            prefix = header[PREFIX_FIELD].split(b"\0", 1)[0].decode("utf-8")
            if prefix and name:
                name = f"{prefix}/{name}"
    except UnicodeDecodeError:
        return None
    name = name.strip()
    return name or None


def _entry_mode(header: bytes) -> int:
    try:
        return parse_octal(header[MODE_FIELD])
    except (ValueError, UnicodeDecodeError):
        return 0


def _copy_payload(stream: BinaryIO, destination: Path, size: int) -> int:
    written = 0
    with open(destination, "wb") as out_file:
        while written < size:
            chunk = stream.read(min(COPY_CHUNK_SIZE, size - written))
            if not chunk:
                break
            out_file.write(chunk)
            written += len(chunk)
    return written


def extract_tar_stream(stream: BinaryIO, target_path: str | Path) -> list[str]:
    """
    Extract every directory and regular file of a tar stream.

    Entries with a malformed size are skipped along with the block following
    their header, and extraction carries on after it. Permission bits of regular
    files are applied. A payload cut short by the end of the stream is kept as a partial
    file and logged.

    Args:
        stream: Binary stream positioned at the first header
        target_path: Destination directory

    Returns:
        Relative paths of the extracted files.
    """
    target = Path(target_path)
    target.mkdir(parents=True, exist_ok=True)
    extracted: list[str] = []

    while True:
        header = _read_exact(stream, TAR_BLOCK_SIZE)
        if len(header) < TAR_BLOCK_SIZE or header == ZERO_BLOCK:
            break

        name = _entry_name(header)
        if name is None:
            logger.debug("Blank or undecodable entry name, end of archive")
            break

        try:
            size = parse_octal(header[SIZE_FIELD])
        except (ValueError, UnicodeDecodeError):
            logger.warning(f"Malformed size field for tar entry {name!r}, skipping it")
            _skip(stream, TAR_BLOCK_SIZE)
            continue

        typeflag = header[TYPEFLAG_OFFSET : TYPEFLAG_OFFSET + 1]
        padding = block_padding(size)
        destination = target / name.lstrip("/")

        if not is_within_directory(target, destination) or ".." in Path(name).parts:
            logger.warning(f"Skipping unsafe tar entry: {name}")
            _skip(stream, size + padding)
            continue

        if typeflag == TYPE_DIRECTORY:
            destination.mkdir(parents=True, exist_ok=True)
            _skip(stream, size + padding)
        elif typeflag in TYPE_REGULAR:
            destination.parent.mkdir(parents=True, exist_ok=True)
            written = _copy_payload(stream, destination, size)
            apply_permissions(destination, _entry_mode(header))
            extracted.append(name.lstrip("/").rstrip("/"))
            if written < size:
                logger.warning(
                    f"Tar stream ended early: {name} has {written} of {size} bytes, keeping partial file"
                )
                break
            _skip(stream, padding)
        else:
            logger.debug(f"Skipping tar entry {name!r} of type {typeflag!r}")
            _skip(stream, size + padding)

    logger.info(f"Extracted {len(extracted)} files from tar stream")
    return extracted


def extract_tar(
    archive_path: str | Path, target_path: str | Path, gzipped: bool = False
) -> list[str]:
    """
    Extract a .tar or .tar.gz archive from disk.

    Raises:
        ExtractionError: If the file cannot be read or the compressed stream is corrupt.
    """
    try:
        if gzipped:
            with gzip.open(archive_path, "rb") as stream:
                return extract_tar_stream(stream, target_path)
        with open(archive_path, "rb") as stream:
            return extract_tar_stream(stream, target_path)
    except (gzip.BadGzipFile, EOFError, zlib.error) as e:
        logger.error(f"Corrupt compressed stream in {archive_path}: {e}")
        raise ExtractionError(archive_path, f"Corrupt compressed stream: {e}") from e
    except OSError as e:
        logger.error(f"Tar extraction failed: {e}")
        raise ExtractionError(archive_path, str(e)) from e
