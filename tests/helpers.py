"""In-memory collaborators and builders for isolated cleanup tests."""

import copy
import hashlib
import json
from datetime import datetime, timedelta, timezone

from ghcr_cleanup.config import CleanupConfig
from ghcr_cleanup.core.types import (
    OCI_INDEX_MEDIA_TYPE,
    OCI_MANIFEST_MEDIA_TYPE,
    CleanupContext,
    Package,
    parse_manifest,
)
from ghcr_cleanup.exceptions import ManifestError, PackageNotFoundError

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)
TARGET_PACKAGE = "app"


def make_digest(seed: str) -> str:
    """Build a deterministic sha256 digest from a seed string."""
    return "sha256:" + hashlib.sha256(seed.encode("utf-8")).hexdigest()


def referrer_tag(digest: str, suffix: str = ".sig") -> str:
    """Tag a signature/attestation for ``digest`` would carry."""
    return digest.replace("sha256:", "sha256-", 1) + suffix


def image_manifest(*layer_media_types: str) -> dict:
    """Single platform image manifest payload."""
    return {
        "schemaVersion": 2,
        "mediaType": OCI_MANIFEST_MEDIA_TYPE,
        "layers": [
            {"mediaType": media_type, "digest": make_digest(f"layer-{i}"), "size": 10}
            for i, media_type in enumerate(layer_media_types)
        ],
    }


def index_manifest(*children: str, platforms: list[dict] | None = None) -> dict:
    """Multi-architecture index payload referencing ``children``."""
    entries = []
    for i, child in enumerate(children):
        entry = {"mediaType": OCI_MANIFEST_MEDIA_TYPE, "digest": child, "size": 100}
        if platforms and i < len(platforms) and platforms[i] is not None:
            entry["platform"] = platforms[i]
        entries.append(entry)
    return {"schemaVersion": 2, "mediaType": OCI_INDEX_MEDIA_TYPE, "manifests": entries}


class FakeStore:
    """Server side state shared by the fake registry and package index."""

    def __init__(self):
        self.manifests: dict[str, dict] = {}
        self.versions: dict[str, Package] = {}
        self.next_id = 1

    def add(self, digest: str, manifest: dict, tags=(), age_days: int = 0) -> Package:
        """Store a manifest as a package version.

        ``age_days`` counts back from BASE_TIME, so larger values are older.
        """
        self.manifests[digest] = manifest
        pkg = Package(
            id=self.next_id,
            digest=digest,
            tags=list(tags),
            updated_at=BASE_TIME - timedelta(days=age_days),
        )
        self.next_id += 1
        self.versions[digest] = pkg
        return pkg

    def add_manifest_only(self, digest: str, manifest: dict) -> None:
        """Make a manifest fetchable without a package version."""
        self.manifests[digest] = manifest

    def digest_for_tag(self, tag: str) -> str | None:
        for pkg in self.versions.values():
            if tag in pkg.tags:
                return pkg.digest
        return None

    def remove_version(self, version_id: int) -> Package:
        for digest, pkg in list(self.versions.items()):
            if pkg.id == version_id:
                return self.versions.pop(digest)
        raise PackageNotFoundError(f"version {version_id} not found", status=404)


class FakePackageRepo:
    """Package index snapshot over a FakeStore."""

    def __init__(self, store: FakeStore, dry_run: bool = False):
        self.store = store
        self.dry_run = dry_run
        self.load_calls: list[bool] = []
        self.deleted_calls: list[tuple] = []
        self._packages: dict[str, Package] = {}
        self._tags: dict[str, str] = {}
        self._snapshot(reset=True)

    def _snapshot(self, reset: bool) -> None:
        if reset:
            self._packages.clear()
        for digest, pkg in self.store.versions.items():
            self._packages[digest] = copy.deepcopy(pkg)
        self._tags = {}
        for pkg in self.store.versions.values():
            for tag in pkg.tags:
                self._tags[tag] = pkg.digest
        for digest, pkg in self._packages.items():
            pkg.tags = [tag for tag in pkg.tags if self._tags.get(tag) == digest]

    async def load_packages(self, package: str, reset: bool) -> None:
        self.load_calls.append(reset)
        self._snapshot(reset)

    def get_digests(self) -> set[str]:
        return set(self._packages)

    def get_tags(self) -> set[str]:
        return set(self._tags)

    def get_digest_by_tag(self, tag: str) -> str | None:
        return self._tags.get(tag)

    def get_id_by_digest(self, digest: str) -> int | None:
        pkg = self._packages.get(digest)
        return pkg.id if pkg else None

    def get_package_by_digest(self, digest: str) -> Package | None:
        return self._packages.get(digest)

    async def delete_package_version(self, package, version_id, digest, tags, label=None):
        self.deleted_calls.append((version_id, digest, list(tags), label))
        if not self.dry_run:
            self.store.remove_version(version_id)

    @property
    def deleted_digests(self) -> list[str]:
        return [call[1] for call in self.deleted_calls]


class FakeRegistry:
    """Registry over a FakeStore. Writing a manifest under a tag moves the tag."""

    def __init__(self, store: FakeStore, dry_run: bool = False):
        self.store = store
        self.dry_run = dry_run
        self.logins: list[str] = []
        self.fetches: list[str] = []
        self.puts: list[tuple[str, dict]] = []

    async def login(self, package: str) -> None:
        self.logins.append(package)

    async def get_manifest_by_digest(self, digest: str):
        self.fetches.append(digest)
        if digest not in self.store.manifests:
            raise ManifestError(f"manifest {digest} not found")
        return parse_manifest(self.store.manifests[digest])

    async def get_manifest_by_tag(self, tag: str):
        digest = self.store.digest_for_tag(tag)
        if digest is None:
            raise ManifestError(f"tag {tag} not found")
        return await self.get_manifest_by_digest(digest)

    async def put_manifest(self, reference: str, manifest) -> str | None:
        if self.dry_run:
            return None
        raw = copy.deepcopy(manifest.raw)
        self.puts.append((reference, raw))
        payload = json.dumps(raw, sort_keys=True) + reference
        digest = "sha256:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()

        previous = self.store.digest_for_tag(reference)
        if previous:
            self.store.versions[previous].tags.remove(reference)
        self.store.add(digest, raw, tags=[reference])
        return digest


def make_config(**overrides) -> CleanupConfig:
    values = {
        "token": "test-token",
        "owner": "acme",
        "repository": TARGET_PACKAGE,
        "package": TARGET_PACKAGE,
    }
    values.update(overrides)
    return CleanupConfig(**values)


def make_context(store: FakeStore, **config_overrides) -> CleanupContext:
    """Build a pass context wired to fakes over ``store``."""
    config = make_config(**config_overrides)
    return CleanupContext(
        config=config,
        registry=FakeRegistry(store, dry_run=config.dry_run),
        package_repo=FakePackageRepo(store, dry_run=config.dry_run),
        target_package=TARGET_PACKAGE,
    )
