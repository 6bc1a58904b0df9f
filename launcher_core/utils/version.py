"""
Version string parsing and ordering for release tags.

Release tags come from a remote registry and local version files that are
edited by hand, so every function here tolerates malformed input and never raises.
"""

import re
from typing import Iterable

from loguru import logger

from launcher_core.utils.constants import FORCED_UPDATE_BASELINES

Version = tuple[int, ...]

# Pre-compiled regex patterns for performance
TAG_PREFIX_PATTERN = re.compile(r"^v", re.IGNORECASE)
NUMERIC_SEGMENT_PATTERN = re.compile(r"^\d+$", re.ASCII)

MIN_COMPONENTS = 2
MAX_COMPONENTS = 4


def strip_tag_prefix(raw: str | None) -> str:
    """Remove surrounding whitespace and a leading 'v' or 'V' from a tag."""
    if not raw:
        return ""
    return TAG_PREFIX_PATTERN.sub("", str(raw).strip(), count=1).strip()


def _numeric_segments(raw: str | None) -> list[int]:
    return [
        int(segment)
        for segment in strip_tag_prefix(raw).split(".")
        if NUMERIC_SEGMENT_PATTERN.match(segment.strip())
    ]


def _pad(components: Iterable[int], length: int) -> Version:
    padded = list(components)
    padded.extend([0] * (length - len(padded)))
    return tuple(padded)


def normalize(raw: str | None) -> Version:
    """
    Normalize a version string into a tuple of 2 to 4 non-negative integers.

    Args:
        raw: Version string, optionally prefixed with 'v'.

    Returns:
        Version tuple. Empty input and the bare "0" normalize to (0, 0, 0, 0).

    Example:
        >>> normalize("v1.2.3-beta")
        (1, 2)
        >>> normalize("1")
        (1, 0)
    """
    stripped = strip_tag_prefix(raw)
    if not stripped or stripped == "0":
        return (0, 0, 0, 0)

    components = _numeric_segments(stripped)[:MAX_COMPONENTS]
    return _pad(components, MIN_COMPONENTS)


def format_version(version: Version) -> str:
    """Render a version tuple back to its dotted form."""
    return ".".join(str(component) for component in version)


def is_forced_update_baseline(baseline: str | None) -> bool:
    """Whether the baseline means that no release build is installed yet."""
    if baseline is None:
        return False
    return baseline.strip().lower() in FORCED_UPDATE_BASELINES


def versions_match(first: str | None, second: str | None) -> bool:
    """Case-insensitive equality of two tags, ignoring a leading 'v'."""
    return strip_tag_prefix(first).lower() == strip_tag_prefix(second).lower()


def is_newer(candidate: str | None, baseline: str | None) -> bool:
    """
    Check whether `candidate` is a newer version than `baseline`.

    "0", "0.0" and "v0.0" mark an unversioned build: if either side carries one,
    the candidate is always reported as newer. When either side has no numeric
    component at all, the comparison falls back to a case-insensitive inequality
    of the tags.

    Args:
        candidate: Remote version tag.
        baseline: Currently installed version.

    Returns:
        True if the candidate should replace the baseline.
    """
    if is_forced_update_baseline(baseline) or is_forced_update_baseline(candidate):
        logger.debug(f"Unversioned build in {candidate!r} vs {baseline!r}, forcing update")
        return True

    candidate_stripped = strip_tag_prefix(candidate)
    baseline_stripped = strip_tag_prefix(baseline)
    unparsable = [
        value
        for value in (candidate_stripped, baseline_stripped)
        if value and value != "0" and not _numeric_segments(value)
    ]
    if unparsable:
        logger.debug(
            f"Falling back to string comparison for unparsable version(s): {unparsable}"
        )
        return candidate_stripped.lower() != baseline_stripped.lower()

    candidate_version = normalize(candidate)
    baseline_version = normalize(baseline)
    length = max(len(candidate_version), len(baseline_version))
    return _pad(candidate_version, length) > _pad(baseline_version, length)
