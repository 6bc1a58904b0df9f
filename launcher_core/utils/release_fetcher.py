from typing import Optional

import msgspec
import requests
from loguru import logger

from launcher_core.models.release import FetchResult, Release
from launcher_core.utils.constants import (
    API_TIMEOUT,
    GITHUB_API_RELEASE_URL,
    UPDATER_USER_AGENT,
)
from launcher_core.utils.exception import MalformedResponseError, NetworkError


class ReleaseFetcher:
    """
    Queries the release registry for the latest release of a repository.

    No retries are made here. Callers decide whether and when to try again.
    """

    def __init__(
        self,
        repository: str,
        token: Optional[str] = None,
        timeout: float = API_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.repository = repository
        self.timeout = timeout
        self._token = token
        self._session = session or requests.Session()

    @property
    def url(self) -> str:
        return GITHUB_API_RELEASE_URL.format(repository=self.repository)

    def _build_headers(self, etag: Optional[str]) -> dict[str, str]:
        headers = {
            "User-Agent": UPDATER_USER_AGENT,
            "Accept": "application/vnd.github+json",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if etag:
            headers["If-None-Match"] = etag
        return headers

    def fetch_latest(self, etag: Optional[str] = None) -> FetchResult:
        """
        Fetch the latest release, revalidating against a cached tag when given.

        Args:
            etag: Conditional-validation tag from the previous check.

        Returns:
            FetchResult holding the release and the new validation tag, or a
            not-modified result when the registry confirms nothing changed.

        Raises:
            NetworkError: On transport failure, timeout, or a non-success status.
            MalformedResponseError: If the body does not parse or has no tag.
        """
        logger.info(f"Fetching latest release information for {self.repository}")
        try:
            response = self._session.get(
                self.url, headers=self._build_headers(etag), timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"Failed to fetch release information: {e}")
            raise NetworkError(f"Failed to connect to release registry: {e}") from e

        if response.status_code == 304:
            logger.info("Release unchanged since last check (304 Not Modified)")
            return FetchResult(not_modified=True, etag=etag or "")

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            logger.warning(f"Release registry returned {response.status_code}: {e}")
            raise NetworkError(
                f"Release registry returned HTTP {response.status_code}"
            ) from e

        release = self._parse_release(response.content)
        new_etag = response.headers.get("ETag", "") or ""
        logger.info(f"Latest release: {release.tag} ({len(release.assets)} assets)")
        return FetchResult(release=release, etag=new_etag)

    @staticmethod
    def _parse_release(content: bytes) -> Release:
        try:
            release = msgspec.json.decode(content, type=Release)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise MalformedResponseError(f"Unparsable release body: {e}") from e

        if not release.tag.strip():
            raise MalformedResponseError("Release has no tag")
        return release
