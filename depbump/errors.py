"""Exceptions raised by depbump."""


class DepbumpError(Exception):
    """Base exception for all depbump errors."""


class RegistryError(DepbumpError):
    """A registry lookup failed for one package."""

    def __init__(self, package_name: str, message: str):
        super().__init__(message)
        self.package_name = package_name


class RegistryUnreachable(RegistryError):
    """Network error, timeout or unexpected response from the registry."""


class PackageNotFound(RegistryError):
    """The registry has no package with this name."""


class CacheCorrupt(DepbumpError):
    """The persisted registry cache could not be decoded."""


class ManifestError(DepbumpError):
    """A manifest could not be read or a package listing could not be built."""


class ManifestWriteFailure(DepbumpError):
    """Writing an updated manifest back to disk failed."""
