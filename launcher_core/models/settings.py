import os
from pathlib import Path

import msgspec
from loguru import logger

from launcher_core.utils.constants import (
    DEFAULT_RELEASE_REPOSITORY,
    DISABLE_UPDATER_ENV,
    GITHUB_TOKEN_ENV,
)


class LauncherSettings(msgspec.Struct):
    """
    User settings consumed by the update and mod pipelines.

    Pure data. Environment overrides are applied by `load_settings`.
    """

    github_api_token: str = ""
    is_portable: bool = False
    games_folder: str = ""
    release_repository: str = DEFAULT_RELEASE_REPOSITORY
    check_for_update_startup: bool = True
    updater_disabled: bool = False

    @property
    def auth_token(self) -> str | None:
        token = self.github_api_token.strip()
        return token or None


def load_settings(settings_file: Path) -> LauncherSettings:
    """
    Load settings from disk, writing defaults when the file does not exist yet.

    A corrupt file is logged and left untouched, defaults are used in memory.
    """
    settings = LauncherSettings()
    try:
        settings = msgspec.json.decode(settings_file.read_bytes(), type=LauncherSettings)
    except FileNotFoundError:
        logger.info(f"No settings file at {settings_file}, writing defaults")
        save_settings(settings, settings_file)
    except (msgspec.DecodeError, msgspec.ValidationError) as e:
        logger.warning(f"Failed to parse settings file {settings_file}: {e}")

    env_token = os.getenv(GITHUB_TOKEN_ENV)
    if env_token:
        settings.github_api_token = env_token
    if os.getenv(DISABLE_UPDATER_ENV):
        logger.info(f"{DISABLE_UPDATER_ENV} is set, disabling the updater")
        settings.updater_disabled = True
    return settings


def save_settings(settings: LauncherSettings, settings_file: Path) -> None:
    settings_file.parent.mkdir(parents=True, exist_ok=True)
    settings_file.write_bytes(msgspec.json.format(msgspec.json.encode(settings)))
