"""
Release registry models.

Field names follow the GitHub releases API, renamed to the names used throughout
the launcher. Unknown keys in the payload are ignored.
"""

import msgspec


class Asset(msgspec.Struct, frozen=True):
    """A single downloadable artifact attached to a release."""

    name: str = ""
    download_url: str = msgspec.field(default="", name="browser_download_url")
    size: int = 0


class Release(msgspec.Struct, frozen=True):
    """A tagged release. The tag is the authoritative version string."""

    tag: str = msgspec.field(default="", name="tag_name")
    assets: tuple[Asset, ...] = ()
    name: str = ""
    html_url: str = ""


class FetchResult(msgspec.Struct, frozen=True):
    """
    Result of a conditional release query.

    `not_modified` is set when the registry confirmed the cached release is still
    current, in which case `release` is None and `etag` echoes the request tag.
    """

    release: Release | None = None
    not_modified: bool = False
    etag: str = ""


NOT_MODIFIED = FetchResult(not_modified=True)
