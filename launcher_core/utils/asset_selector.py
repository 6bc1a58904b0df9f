from typing import Iterable, Optional

from loguru import logger

from launcher_core.models.release import Asset, Release
from launcher_core.utils.constants import SUPPORTED_RELEASE_EXTENSIONS
from launcher_core.utils.exception import NoMatchingAssetError


def asset_matches(
    asset: Asset,
    platform_identifier: str,
    extensions: Iterable[str] = SUPPORTED_RELEASE_EXTENSIONS,
) -> bool:
    """
    Check if an asset is a supported archive built for the given platform.

    Args:
        asset: Asset from a release
        platform_identifier: Identifier the asset name must contain
        extensions: Accepted archive suffixes

    Returns:
        True if asset matches, False otherwise
    """
    asset_name_lower = asset.name.lower()

    # Early return if extension doesn't match
    if not any(asset_name_lower.endswith(ext.lower()) for ext in extensions):
        return False

    return platform_identifier.lower() in asset_name_lower


def select_asset(
    assets: Iterable[Asset], platform_identifier: str
) -> Optional[Asset]:
    """
    Pick the first downloadable asset for the platform.

    Returns:
        The matching asset, or None when the release has no build for the platform.
    """
    for asset in assets:
        if not asset.download_url:
            continue
        if asset_matches(asset, platform_identifier):
            logger.debug(f"Found matching asset: {asset.name} -> {asset.download_url}")
            return asset

    logger.warning(f"No matching asset found for {platform_identifier}")
    return None


def require_asset(release: Release, platform_identifier: str) -> Asset:
    """
    Like select_asset, but raises when nothing matches.

    Raises:
        NoMatchingAssetError: If the release has no build for the platform.
    """
    asset = select_asset(release.assets, platform_identifier)
    if asset is None:
        raise NoMatchingAssetError(platform_identifier, release.tag)
    return asset
