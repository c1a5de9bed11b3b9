"""GHCR Cleanup - Async cleanup of container images in GitHub Packages."""

__version__ = "0.1.0"

from .action import cleanup_package, run_cleanup, select_packages
from .cleanup.orchestrator import CleanupOrchestrator
from .config import CleanupConfig, build_config
from .core.package_repo import PackageRepo
from .core.registry_client import RegistryClient
from .core.types import CleanupStatistics
from .exceptions import (
    AuthenticationError,
    CleanupError,
    ConfigurationError,
    ManifestError,
    PackageApiError,
    PackageNotFoundError,
    RegistryConnectionError,
    RegistryError,
)

__all__ = [
    "run_cleanup",
    "cleanup_package",
    "select_packages",
    "build_config",
    "CleanupConfig",
    "CleanupOrchestrator",
    "CleanupStatistics",
    "PackageRepo",
    "RegistryClient",
    "CleanupError",
    "ConfigurationError",
    "RegistryError",
    "RegistryConnectionError",
    "AuthenticationError",
    "ManifestError",
    "PackageApiError",
    "PackageNotFoundError",
]
