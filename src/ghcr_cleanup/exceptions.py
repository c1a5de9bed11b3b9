"""Custom exceptions for the container registry cleanup."""


class CleanupError(Exception):
    """Base exception for all cleanup-related errors."""

    pass


class ConfigurationError(CleanupError):
    """Raised when the supplied options are invalid or contradictory."""

    pass


class RegistryError(CleanupError):
    """Base exception for all registry-related errors."""

    pass


class RegistryConnectionError(RegistryError):
    """Raised when unable to connect to the registry."""

    pass


class AuthenticationError(RegistryError):
    """Raised when a registry token cannot be obtained."""

    pass


class ManifestError(RegistryError):
    """Raised when manifest operations fail."""

    pass


class PackageApiError(CleanupError):
    """Raised when a package API call fails."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class PackageNotFoundError(PackageApiError):
    """Raised when a package or package version no longer exists."""

    pass
