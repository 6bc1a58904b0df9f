import sys
from pathlib import Path

from platformdirs import PlatformDirs

from launcher_core.utils.constants import (
    APP_NAME,
    DEFAULT_VERSION,
    SETTINGS_FILENAME,
    UPDATE_CHECK_FILENAME,
    VERSION_FILENAME,
)


class AppInfo:
    """
    Singleton class that provides information about the launcher and its related directories.

    Directories are determined using the `platformdirs` package, ensuring
    platform-specific conventions are adhered to.

    Examples:
        >>> print(AppInfo().app_version)
        >>> print(AppInfo().update_check_file)
    """

    _instance: "None | AppInfo" = None

    def __new__(cls) -> "AppInfo":
        """
        Create a new instance or return the existing singleton instance of the `AppInfo` class.
        """
        if not cls._instance:
            cls._instance = super(AppInfo, cls).__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """
        Initialize the `AppInfo` instance, setting application metadata and determining important directories.
        """
        if hasattr(self, "_is_initialized") and self._is_initialized:
            return

        # __compiled__ will be present if Nuitka has frozen this
        self._is_frozen = "__compiled__" in globals()

        main_file = getattr(sys.modules["__main__"], "__file__", None)
        if self._is_frozen:
            self._application_folder = Path(sys.argv[0]).resolve().parent
        elif main_file is not None:
            # Need to go one up if we are running from source
            self._application_folder = Path(main_file).resolve().parent.parent
        else:
            self._application_folder = Path.cwd()

        # Application metadata

        self._app_name = APP_NAME
        self._app_version = DEFAULT_VERSION
        self._version_file = self._application_folder / VERSION_FILENAME
        if self._version_file.is_file():
            version_text = self._version_file.read_text(encoding="utf-8").strip()
            if version_text:
                self._app_version = version_text

        # Define important directories using platformdirs

        platform_dirs = PlatformDirs(appname=self._app_name, appauthor=False)
        self._app_storage_folder: Path = Path(platform_dirs.user_data_dir)
        self._user_log_folder: Path = Path(platform_dirs.user_log_dir)

        # Derive some secondary directory paths

        self._settings_file: Path = self._app_storage_folder / SETTINGS_FILENAME
        self._update_check_file: Path = (
            self._app_storage_folder / UPDATE_CHECK_FILENAME
        )

        # Make sure important directories exist

        self._app_storage_folder.mkdir(parents=True, exist_ok=True)
        self._user_log_folder.mkdir(parents=True, exist_ok=True)

        self._is_initialized: bool = True

    @property
    def app_name(self) -> str:
        return self._app_name

    @property
    def app_version(self) -> str:
        """
        Get the launcher version string read from version.txt.

        Returns:
            str: The version, "0.0" when no version file ships with the build.
        """
        return self._app_version

    @property
    def is_frozen(self) -> bool:
        return self._is_frozen

    @property
    def application_folder(self) -> Path:
        """
        Get the path to the folder where the launcher executable resides.

        This is the folder replaced by a self-update.
        """
        return self._application_folder

    @property
    def version_file(self) -> Path:
        return self._version_file

    @property
    def app_storage_folder(self) -> Path:
        """
        Get the path to the folder where user-specific data for the launcher is stored.

        This directory is determined using platform-specific conventions.
        """
        return self._app_storage_folder

    @property
    def app_settings_file(self) -> Path:
        return self._settings_file

    @property
    def update_check_file(self) -> Path:
        """
        Get the path to the persisted update-check state.

        May or may not exist.
        """
        return self._update_check_file

    @property
    def user_log_folder(self) -> Path:
        """
        Get the path to the folder where launcher logs are stored for the user.

        This directory is determined using platform-specific conventions.
        """
        return self._user_log_folder
