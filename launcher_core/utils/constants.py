from enum import Enum


class PlatformIdentifier(str, Enum):
    WINDOWS = "Windows"
    MACOS = "macOS"
    LINUX_ARM64 = "Linux-ARM64"
    LINUX_X64 = "Linux-X64"
    LINUX_FLATPAK_X64 = "Linux-Flatpak-X64"


APP_NAME = "RecompLauncher"
EXECUTABLE_NAME = "RecompLauncher"
DEFAULT_RELEASE_REPOSITORY = "RecompLauncher/RecompLauncher"
USER_AGENT = "RecompLauncher/1.0"
UPDATER_USER_AGENT = "RecompLauncher-Updater"

# Release registry
GITHUB_API_RELEASE_URL = "https://api.github.com/repos/{repository}/releases/latest"
API_TIMEOUT = 15

# Package registry
THUNDERSTORE_PACKAGE_LIST_URL = "https://thunderstore.io/c/{community}/api/v1/package/"
THUNDERSTORE_PACKAGE_URL = (
    "https://thunderstore.io/c/{community}/api/v1/package/{owner}/{name}/"
)
REGISTRY_TIMEOUT = 30

# Game repository -> package registry community
COMMUNITY_BY_REPOSITORY = {
    "zelda64recomp/zelda64recomp": "zelda-64-recompiled",
    "banjorecomp/banjorecomp": "banjo-recompiled",
    "sonicdcer/starfox64recomp": "starfox-64-recompiled",
}

# Transfers
DOWNLOAD_CHUNK_SIZE = 131072  # 128KB
DOWNLOAD_DEADLINE_SECONDS = 600  # 10 minutes end to end
DOWNLOAD_CONNECT_TIMEOUT = 30

# Update checks
UPDATE_CHECK_INTERVAL_SECONDS = 300  # 5 minutes
FORCED_UPDATE_BASELINES = ("0", "0.0", "v0.0")
DEFAULT_VERSION = "0.0"

# Archives
SUPPORTED_RELEASE_EXTENSIONS = (".zip", ".tar.gz")
MOD_PAYLOAD_EXTENSIONS = (".rtz", ".nrm")
TAR_BLOCK_SIZE = 512

# Installation
MIN_EXECUTABLE_SIZE = 1024  # Anything smaller is treated as a corrupt payload
BACKUP_FOLDER_PREFIX = "backup_"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
PROCESS_EXIT_TIMEOUT_SECONDS = 120
PROCESS_EXIT_POLL_SECONDS = 0.5
CONFIRMATION_TIMEOUT_SECONDS = 300
DEPENDENCY_LOCK_TIMEOUT_SECONDS = 300

# File names
UPDATE_CHECK_FILENAME = "update_check.json"
MODS_MANIFEST_FILENAME = "mods.json"
SETTINGS_FILENAME = "settings.json"
VERSION_FILENAME = "version.txt"
MODS_FOLDER_NAME = "mods"

# Environment
DISABLE_UPDATER_ENV = "LAUNCHER_DISABLE_UPDATER"
GITHUB_TOKEN_ENV = "LAUNCHER_GITHUB_TOKEN"
FLATPAK_ENV = "FLATPAK_ID"
