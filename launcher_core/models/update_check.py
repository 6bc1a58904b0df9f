from datetime import datetime

import msgspec


class UpdateCheckState(msgspec.Struct):
    """
    Persisted record of the last self-update check.

    Keys keep the PascalCase names written by earlier launcher releases so an
    existing update_check.json is picked up unchanged.
    """

    current_version: str = msgspec.field(default="", name="CurrentVersion")
    last_check_time: datetime | None = msgspec.field(
        default=None, name="LastCheckTime"
    )
    last_known_version: str = msgspec.field(default="", name="LastKnownVersion")
    conditional_tag: str = msgspec.field(default="", name="ETag")
    update_available: bool = msgspec.field(default=False, name="UpdateAvailable")

    @property
    def has_been_checked(self) -> bool:
        # Older files store 0001-01-01 for "never"
        return self.last_check_time is not None and self.last_check_time.year > 1
