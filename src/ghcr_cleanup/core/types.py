"""Core data types for the cleanup pipeline."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from ..config import CleanupConfig
    from .package_repo import PackageRepo
    from .registry_client import RegistryClient

logger = logging.getLogger(__name__)

OCI_INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
OCI_MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
DOCKER_LIST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"
IN_TOTO_MEDIA_TYPE = "application/vnd.in-toto+json"
SIGSTORE_BUNDLE_PREFIX = "application/vnd.dev.sigstore.bundle"


@dataclass
class Package:
    """One stored package version (a manifest in the registry)."""

    id: int
    digest: str
    tags: list[str] = field(default_factory=list)
    updated_at: datetime | None = None

    @property
    def is_tagged(self) -> bool:
        return len(self.tags) > 0


@dataclass(frozen=True)
class Platform:
    """Platform block of an index manifest child descriptor."""

    architecture: str | None = None
    os: str | None = None
    variant: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Platform:
        return cls(
            architecture=data.get("architecture"),
            os=data.get("os"),
            variant=data.get("variant"),
        )


@dataclass(frozen=True)
class Descriptor:
    """Content descriptor: a child manifest of an index, or a layer."""

    digest: str
    media_type: str | None = None
    size: int | None = None
    platform: Platform | None = None
    artifact_type: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Descriptor:
        platform = data.get("platform")
        return cls(
            digest=data["digest"],
            media_type=data.get("mediaType"),
            size=data.get("size"),
            platform=Platform.from_dict(platform) if platform else None,
            artifact_type=data.get("artifactType"),
        )


@dataclass
class IndexManifest:
    """Manifest whose payload is a list of child manifests."""

    children: list[Descriptor]
    media_type: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    is_index = True

    def emptied(self) -> IndexManifest:
        """Copy of this manifest with an empty child list."""
        raw = copy.deepcopy(self.raw)
        raw["manifests"] = []
        return IndexManifest(children=[], media_type=self.media_type, raw=raw)

    def default_media_type(self) -> str:
        return self.media_type or OCI_INDEX_MEDIA_TYPE


@dataclass
class LeafManifest:
    """Manifest whose payload is content layers."""

    layers: list[Descriptor]
    media_type: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    is_index = False

    def emptied(self) -> LeafManifest:
        """Copy of this manifest with an empty layer list."""
        raw = copy.deepcopy(self.raw)
        raw["layers"] = []
        return LeafManifest(layers=[], media_type=self.media_type, raw=raw)

    def default_media_type(self) -> str:
        return self.media_type or OCI_MANIFEST_MEDIA_TYPE


Manifest = Union[IndexManifest, LeafManifest]


def parse_manifest(data: dict[str, Any]) -> Manifest:
    """Convert a registry manifest payload into the tagged union.

    The kind is decided structurally: a ``manifests`` list makes it an index.

    Args:
        data: Decoded manifest JSON

    Returns:
        IndexManifest or LeafManifest
    """
    media_type = data.get("mediaType")
    if isinstance(data.get("manifests"), list):
        children = [Descriptor.from_dict(entry) for entry in data["manifests"]]
        return IndexManifest(children=children, media_type=media_type, raw=data)
    layers = [Descriptor.from_dict(entry) for entry in data.get("layers") or []]
    return LeafManifest(layers=layers, media_type=media_type, raw=data)


@dataclass
class DeletionPlan:
    """Planned tag based deletions.

    ``delete_set`` holds digests removed outright. ``untag_operations`` maps a
    multi-tagged digest to the tags that must be detached from it while the
    image itself (and its other tags) stays.
    """

    delete_set: set[str] = field(default_factory=set)
    untag_operations: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class DeletionResult:
    """Outcome of one deletion batch."""

    deleted: set[str]
    number_images_deleted: int = 0
    number_multi_images_deleted: int = 0


@dataclass
class ValidationResult:
    """Findings of a repository consistency scan."""

    has_errors: bool = False
    ghost_images: set[str] = field(default_factory=set)
    partial_images: set[str] = field(default_factory=set)
    orphaned_images: set[str] = field(default_factory=set)


@dataclass
class CleanupContext:
    """Shared services for one package pass."""

    config: CleanupConfig
    registry: RegistryClient
    package_repo: PackageRepo
    target_package: str


@dataclass
class CleanupStatistics:
    """Deletion counters for a package, or a combined run."""

    name: str
    number_multi_images_deleted: int = 0
    number_images_deleted: int = 0

    def __add__(self, other: CleanupStatistics) -> CleanupStatistics:
        return CleanupStatistics(
            self.name,
            self.number_multi_images_deleted + other.number_multi_images_deleted,
            self.number_images_deleted + other.number_images_deleted,
        )

    def log(self) -> None:
        logger.info(f"[{self.name}] Cleanup statistics")
        if self.number_multi_images_deleted > 0:
            logger.info(
                f"multi architecture images deleted = {self.number_multi_images_deleted}"
            )
        logger.info(f"total images deleted = {self.number_images_deleted}")
