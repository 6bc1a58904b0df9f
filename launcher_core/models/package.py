import msgspec

from launcher_core.utils.exception import InvalidDependencyKeyError


class RegistryVersion(msgspec.Struct):
    """One published version of a registry package."""

    name: str = ""
    full_name: str = ""
    description: str = ""
    version_number: str = ""
    dependencies: list[str] = msgspec.field(default_factory=list)
    download_url: str = ""
    downloads: int = 0
    date_created: str = ""
    website_url: str = ""
    is_active: bool = True
    file_size: int = 0


class RegistryPackage(msgspec.Struct):
    """
    Package record as listed by the package registry.

    Versions are ordered newest first.
    """

    name: str = ""
    full_name: str = ""
    owner: str = ""
    package_url: str = ""
    date_created: str = ""
    date_updated: str = ""
    rating_score: int = 0
    is_pinned: bool = False
    is_deprecated: bool = False
    categories: list[str] = msgspec.field(default_factory=list)
    versions: list[RegistryVersion] = msgspec.field(default_factory=list)

    @property
    def latest_version(self) -> RegistryVersion | None:
        return self.versions[0] if self.versions else None

    @property
    def identity(self) -> tuple[str, str]:
        return package_identity(self.owner, self.name)

    def matches(self, owner: str, name: str) -> bool:
        return self.identity == package_identity(owner, name)


class DependencyKey(msgspec.Struct, frozen=True):
    """
    Parsed `owner-name-version` dependency reference.

    The first two dash-separated parts are owner and name, the remainder
    is the version.
    """

    owner: str
    name: str
    version: str = ""
    raw: str = ""

    @classmethod
    def parse(cls, raw: str) -> "DependencyKey":
        """
        Split a dependency key into its parts.

        Raises:
            InvalidDependencyKeyError: If the key has fewer than two parts.
        """
        parts = [part.strip() for part in (raw or "").strip().split("-")]
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise InvalidDependencyKeyError(f"Invalid dependency key: {raw!r}")
        return cls(
            owner=parts[0],
            name=parts[1],
            version="-".join(parts[2:]),
            raw=raw.strip(),
        )

    @property
    def identity(self) -> tuple[str, str]:
        return package_identity(self.owner, self.name)


def package_identity(owner: str, name: str) -> tuple[str, str]:
    """Case-insensitive (owner, name) key used for all package lookups."""
    return owner.strip().lower(), name.strip().lower()


class PackageView(msgspec.Struct):
    """A registry package joined with its install state."""

    package: RegistryPackage
    installed_version: str = ""

    @property
    def is_installed(self) -> bool:
        return bool(self.installed_version)

    @property
    def latest_version_number(self) -> str:
        latest = self.package.latest_version
        return latest.version_number if latest else ""

    @property
    def has_update(self) -> bool:
        return self.is_installed and (
            self.latest_version_number != ""
            and self.latest_version_number != self.installed_version
        )

    @property
    def total_downloads(self) -> int:
        return sum(version.downloads for version in self.package.versions)
