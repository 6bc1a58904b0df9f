from typing import Optional

import msgspec
import requests
from loguru import logger

from launcher_core.models.package import RegistryPackage
from launcher_core.utils.constants import (
    COMMUNITY_BY_REPOSITORY,
    REGISTRY_TIMEOUT,
    THUNDERSTORE_PACKAGE_LIST_URL,
    THUNDERSTORE_PACKAGE_URL,
    USER_AGENT,
)
from launcher_core.utils.exception import MalformedResponseError, NetworkError


def get_community_for_repository(repository: str) -> Optional[str]:
    """
    Map a game's source repository to its package registry community.

    Returns:
        The community slug, or None when the game has no mod community.
    """
    if not repository:
        return None
    return COMMUNITY_BY_REPOSITORY.get(repository.strip().lower())


class PackageRegistry:
    """Read-only client for the mod package registry."""

    def __init__(
        self,
        timeout: float = REGISTRY_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})

    def get_packages(self, community: str) -> list[RegistryPackage]:
        """
        List every package published in a community.

        Raises:
            ValueError: If the community is blank.
            NetworkError: On transport failure or a non-success status.
            MalformedResponseError: If the body does not parse.
        """
        if not community or not community.strip():
            raise ValueError("Community identifier cannot be empty")

        url = THUNDERSTORE_PACKAGE_LIST_URL.format(community=community)
        logger.debug(f"Fetching mods from: {url}")
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Failed to fetch packages for {community}: {e}")
            raise NetworkError(f"Failed to fetch mods from registry: {e}") from e

        try:
            packages = msgspec.json.decode(
                response.content, type=list[RegistryPackage]
            )
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise MalformedResponseError(f"Failed to parse mod data: {e}") from e

        logger.info(f"Fetched {len(packages)} packages for {community}")
        return packages

    def get_package(
        self, community: str, owner: str, name: str
    ) -> Optional[RegistryPackage]:
        """
        Look up a single package.

        Direct lookups are unreliable on some communities, so every failure is
        logged and reported as None instead of raised.
        """
        url = THUNDERSTORE_PACKAGE_URL.format(
            community=community, owner=owner, name=name
        )
        logger.debug(f"Fetching package from: {url}")
        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug(f"Error fetching package {owner}/{name}: {e}")
            return None

        if not response.ok:
            logger.debug(
                f"Failed to fetch package {owner}/{name}: {response.status_code} - {response.reason}"
            )
            return None

        try:
            return msgspec.json.decode(response.content, type=RegistryPackage)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            logger.debug(f"Unparsable package record for {owner}/{name}: {e}")
            return None
