"""Untagging and cascading deletion of package versions."""

import logging

from ..core.types import CleanupContext, DeletionResult, IndexManifest, Package
from ..utils.digest import find_referrer_tags
from .analyzer import ManifestAnalyzer

logger = logging.getLogger(__name__)


class ImageDeleter:
    """Executes deletions for one package pass.

    ``deleted`` is the session's record of digests already removed; it makes
    ``delete_image`` idempotent and stops the cascade from looping on
    malformed graphs. ``digest_used_by`` is the analyzer's child -> parents
    map and is updated as parents go away.
    """

    def __init__(self, context: CleanupContext, digest_used_by: dict[str, set[str]]) -> None:
        self.context = context
        self.manifest_analyzer = ManifestAnalyzer(context)
        self.digest_used_by = digest_used_by
        self.deleted: set[str] = set()

    async def perform_untagging(self, untag_operations: dict[str, list[str]]) -> bool:
        """Detach tags from multi-tagged images without deleting the images.

        For each tag a copy of the image manifest with its children (or
        layers) emptied is written under the tag. The registry stores it as
        a new version and moves the tag there; that version is then
        deleted, taking the tag with it.

        Args:
            untag_operations: Mapping of digest to the tags to detach

        Returns:
            True if anything was written, meaning digests and ids have
            shifted and the snapshot must be reloaded
        """
        if not untag_operations:
            return False

        target = self.context.target_package
        package_repo = self.context.package_repo
        registry = self.context.registry
        all_tags = [tag for tags in untag_operations.values() for tag in tags]
        logger.info(f"[{target}] Untagging images: {','.join(all_tags)}")

        mutated = False
        for manifest_digest, tags in untag_operations.items():
            for tag in tags:
                # Tags may have moved since the plan was made
                pkg = package_repo.get_package_by_digest(manifest_digest)
                if pkg is None or len(pkg.tags) <= 1:
                    continue

                logger.info(tag)
                if self.context.config.dry_run:
                    logger.info(f"dry-run: not untagging {tag} from {manifest_digest}")
                    continue

                manifest = await registry.get_manifest_by_digest(manifest_digest)
                await registry.put_manifest(tag, manifest.emptied())
                mutated = True

                await package_repo.load_packages(target, False)

                untagged_digest = package_repo.get_digest_by_tag(tag)
                if not untagged_digest or untagged_digest == manifest_digest:
                    logger.info(f"couldn't find newly created package for tag {tag} to delete")
                    continue
                version_id = package_repo.get_id_by_digest(untagged_digest)
                if version_id is None:
                    logger.info(
                        f"couldn't find newly created package with digest {untagged_digest} to delete"
                    )
                    continue
                # The tag already moved with the empty manifest
                await package_repo.delete_package_version(
                    target, version_id, untagged_digest, [], f"untagged: {tag}"
                )

        return mutated

    async def delete_image(
        self, pkg: Package, label: str | None = None
    ) -> tuple[int, int]:
        """Delete an image, its unshared children and its referrers.

        Args:
            pkg: Package version to delete
            label: Classification used in the log when ``pkg`` is a child

        Returns:
            Tuple of (images deleted, multi-architecture images deleted)
        """
        if pkg.digest in self.deleted:
            return 0, 0

        target = self.context.target_package
        package_repo = self.context.package_repo
        manifest = await self.context.registry.get_manifest_by_digest(pkg.digest)

        await package_repo.delete_package_version(
            target, pkg.id, pkg.digest, [] if label else pkg.tags, label
        )
        self.deleted.add(pkg.digest)
        images_deleted = 1
        multi_images_deleted = 0

        if isinstance(manifest, IndexManifest):
            multi_images_deleted += 1
            for child in manifest.children:
                child_pkg = package_repo.get_package_by_digest(child.digest)
                if child_pkg is None or child_pkg.digest in self.deleted:
                    continue
                parents = self.digest_used_by.get(child_pkg.digest)
                if parents is None:
                    continue
                if parents == {pkg.digest}:
                    # Only referenced from this image
                    child_label = await self.manifest_analyzer.build_label(child)
                    deleted, multi_deleted = await self.delete_image(
                        child_pkg, child_label or None
                    )
                    images_deleted += deleted
                    multi_images_deleted += multi_deleted
                    self.digest_used_by.pop(child_pkg.digest, None)
                else:
                    logger.info(
                        f" skipping package id: {child_pkg.id} digest: {child_pkg.digest} "
                        "as it's in use by another image"
                    )
                    parents.discard(pkg.digest)

        # Referrers (signatures, attestations) may themselves have referrers
        for tag in sorted(find_referrer_tags(pkg.digest, package_repo.get_tags())):
            referrer_digest = package_repo.get_digest_by_tag(tag)
            if not referrer_digest:
                continue
            referrer = package_repo.get_package_by_digest(referrer_digest)
            if referrer is not None:
                deleted, multi_deleted = await self.delete_image(referrer)
                images_deleted += deleted
                multi_images_deleted += multi_deleted

        return images_deleted, multi_images_deleted

    async def delete_images(self, delete_set: set[str]) -> DeletionResult:
        """Delete every image in ``delete_set``.

        Manifests for the whole set are primed first so the cascade never
        stops on a cold fetch halfway through.
        """
        await self.manifest_analyzer.prime_manifests(delete_set)

        logger.info(f"[{self.context.target_package}] Deleting packages")
        result = DeletionResult(deleted=self.deleted)

        if not delete_set:
            logger.info("Nothing to delete")
            return result

        for digest in sorted(delete_set):
            pkg = self.context.package_repo.get_package_by_digest(digest)
            if pkg is None:
                logger.info(f"{digest} is no longer in the package index, skipping")
                continue
            deleted, multi_deleted = await self.delete_image(pkg)
            result.number_images_deleted += deleted
            result.number_multi_images_deleted += multi_deleted

        return result

    def reset(self) -> None:
        """Forget what this session deleted."""
        self.deleted.clear()
