"""Manifest graph analysis: parent/child and referrer relationships."""

import json
import logging
import time

from ..config import LogLevel
from ..core.types import (
    IN_TOTO_MEDIA_TYPE,
    SIGSTORE_BUNDLE_PREFIX,
    CleanupContext,
    Descriptor,
    IndexManifest,
)
from ..utils.digest import find_referrer_tags

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 3.0


class ManifestAnalyzer:
    """Builds the digest graph and the top-level candidate set."""

    def __init__(self, context: CleanupContext) -> None:
        self.context = context

    async def load_digest_used_by_map(self) -> dict[str, set[str]]:
        """Map every child digest back to the index manifests referencing it.

        Only children that exist in the package index are recorded. A child
        consumed by one parent is not fetched again as a top-level manifest,
        but a later parent that shares it is still recorded.

        Returns:
            Mapping of child digest to the set of parent digests
        """
        package_repo = self.context.package_repo
        registry = self.context.registry
        digests = package_repo.get_digests()
        digest_count = len(digests)
        digest_used_by: dict[str, set[str]] = {}
        consumed: set[str] = set()
        processed = 0
        skipped = 0
        stopwatch = time.monotonic()

        logger.info(f"[{self.context.target_package}] Loading manifests")
        for digest in sorted(digests):
            if digest in consumed:
                continue
            manifest = await registry.get_manifest_by_digest(digest)
            processed += 1
            if self.context.config.log_level == LogLevel.DEBUG:
                logger.debug(f"{digest}:{json.dumps(manifest.raw, indent=4)}")
            elif time.monotonic() - stopwatch >= PROGRESS_INTERVAL:
                logger.info(f"loaded {processed} of {digest_count} manifests")
                stopwatch = time.monotonic()

            if not isinstance(manifest, IndexManifest):
                continue
            for child in manifest.children:
                if child.digest not in digests:
                    continue
                digest_used_by.setdefault(child.digest, set()).add(digest)
                if child.digest not in consumed:
                    consumed.add(child.digest)
                    skipped += 1
                    processed += 1

        logger.info(f"loaded {processed} manifests, {skipped} skipped")
        return digest_used_by

    async def init_filter_set(self) -> set[str]:
        """Build the top-level working set.

        Starts from every digest and removes index children, referrer
        artifacts (tags following the ``sha256-<hex>`` convention) and the
        referrers' own children. Every digest is visited, so referrers of
        referrers are removed too.

        Returns:
            Set of top-level digests eligible for cleanup decisions
        """
        package_repo = self.context.package_repo
        registry = self.context.registry
        digests = package_repo.get_digests()
        tags = package_repo.get_tags()
        filter_set = set(digests)

        for digest in sorted(digests):
            manifest = await registry.get_manifest_by_digest(digest)
            if isinstance(manifest, IndexManifest):
                for child in manifest.children:
                    filter_set.discard(child.digest)

            for tag in find_referrer_tags(digest, tags):
                tag_digest = package_repo.get_digest_by_tag(tag)
                if not tag_digest:
                    continue
                filter_set.discard(tag_digest)
                referrer_manifest = await registry.get_manifest_by_tag(tag)
                if isinstance(referrer_manifest, IndexManifest):
                    for child in referrer_manifest.children:
                        filter_set.discard(child.digest)

        return filter_set

    async def build_label(self, descriptor: Descriptor) -> str:
        """Describe a child descriptor for deletion logs.

        Platform children are labelled by architecture (and variant).
        Buildx publishes its attestation manifests with an ``unknown``
        architecture; those are recognised by an in-toto first layer.
        Children without a platform fall back to their artifact type.
        This is a labelling heuristic only.
        """
        label = ""
        if descriptor.platform:
            if descriptor.platform.architecture:
                label = descriptor.platform.architecture
            if label != "unknown":
                if descriptor.platform.variant:
                    label += f"/{descriptor.platform.variant}"
                label = f"architecture: {label}"
            else:
                manifest = await self.context.registry.get_manifest_by_digest(
                    descriptor.digest
                )
                if not isinstance(manifest, IndexManifest) and manifest.layers:
                    if manifest.layers[0].media_type == IN_TOTO_MEDIA_TYPE:
                        label = IN_TOTO_MEDIA_TYPE
        elif descriptor.artifact_type:
            if descriptor.artifact_type.startswith(SIGSTORE_BUNDLE_PREFIX):
                label = "sigstore attestation"
            else:
                label = descriptor.artifact_type
        return label

    async def prime_manifests(self, delete_set: set[str]) -> None:
        """Fetch every manifest the deletion of ``delete_set`` will need.

        Covers the images themselves, their children (through
        ``build_label``) and referrer chains.
        """
        package_repo = self.context.package_repo
        registry = self.context.registry
        digests = package_repo.get_digests()
        tags = package_repo.get_tags()

        pending = sorted(delete_set)
        seen: set[str] = set()
        while pending:
            digest = pending.pop()
            if digest in seen:
                continue
            seen.add(digest)

            manifest = await registry.get_manifest_by_digest(digest)
            if isinstance(manifest, IndexManifest):
                for child in manifest.children:
                    if child.digest in digests:
                        await self.build_label(child)
                        pending.append(child.digest)

            for tag in find_referrer_tags(digest, tags):
                tag_digest = package_repo.get_digest_by_tag(tag)
                if tag_digest:
                    pending.append(tag_digest)
