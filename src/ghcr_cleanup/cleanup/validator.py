"""Integrity checks for multi-architecture and referrer images."""

import logging

from ..core.types import CleanupContext, IndexManifest, ValidationResult
from ..utils.digest import is_referrer_tag, parent_digest_from_referrer_tag

logger = logging.getLogger(__name__)


class ImageValidator:
    """Finds ghost, partial and orphaned images. Never deletes anything."""

    def __init__(self, context: CleanupContext) -> None:
        self.context = context

    def _describe(self, digest: str) -> str:
        pkg = self.context.package_repo.get_package_by_digest(digest)
        if pkg is not None and pkg.tags:
            return f"{digest} {','.join(pkg.tags)}"
        return digest

    async def _count_missing_children(self, digest: str) -> tuple[int, int] | None:
        """Return (missing, total) children of an index, None for leaf images."""
        manifest = await self.context.registry.get_manifest_by_digest(digest)
        if not isinstance(manifest, IndexManifest):
            return None
        package_repo = self.context.package_repo
        missing = sum(
            1 for child in manifest.children if package_repo.get_id_by_digest(child.digest) is None
        )
        return missing, len(manifest.children)

    async def find_ghost_images(self, filter_set: set[str]) -> set[str]:
        """Index images whose children are all missing from the package store."""
        logger.info(f"[{self.context.target_package}] Finding ghost images to delete")
        ghost_images: set[str] = set()

        for digest in sorted(filter_set):
            counts = await self._count_missing_children(digest)
            if counts is None:
                continue
            missing, total = counts
            if missing > 0 and missing == total:
                ghost_images.add(digest)
                logger.info(self._describe(digest))

        if not ghost_images:
            logger.info("no ghost images found")
        return ghost_images

    async def find_partial_images(self, filter_set: set[str]) -> set[str]:
        """Index images with some, but not all, children missing."""
        logger.info(f"[{self.context.target_package}] Finding partial images to delete")
        partial_images: set[str] = set()

        for digest in sorted(filter_set):
            counts = await self._count_missing_children(digest)
            if counts is None:
                continue
            missing, total = counts
            if 0 < missing < total:
                partial_images.add(digest)
                logger.info(self._describe(digest))

        if not partial_images:
            logger.info("no partial images found")
        return partial_images

    def _orphaned_tags(self) -> list[tuple[str, str]]:
        package_repo = self.context.package_repo
        orphans = []
        for tag in sorted(package_repo.get_tags()):
            if not is_referrer_tag(tag):
                continue
            parent = parent_digest_from_referrer_tag(tag)
            if parent and package_repo.get_id_by_digest(parent) is None:
                orphans.append((tag, parent))
        return orphans

    def find_orphaned_images(self) -> set[str]:
        """Referrer images whose parent image no longer exists."""
        logger.info(
            f"[{self.context.target_package}] Finding orphaned images (tags) to delete"
        )
        orphaned_images: set[str] = set()
        for tag, _ in self._orphaned_tags():
            orphan_digest = self.context.package_repo.get_digest_by_tag(tag)
            if orphan_digest:
                orphaned_images.add(orphan_digest)
                logger.info(tag)

        if not orphaned_images:
            logger.info("no orphaned images found")
        return orphaned_images

    async def validate(self) -> ValidationResult:
        """Scan the whole package for broken references.

        Every top-level index image is checked for missing children (ghost
        or partial), and every referrer tag for a missing parent. Findings
        are logged as warnings.

        Returns:
            Validation result with the offending digests
        """
        logger.info(
            f"[{self.context.target_package}] Validating multi-architecture/referrers images"
        )
        package_repo = self.context.package_repo
        registry = self.context.registry
        result = ValidationResult()
        children: set[str] = set()

        for digest in sorted(package_repo.get_digests()):
            if digest in children:
                continue
            manifest = await registry.get_manifest_by_digest(digest)
            if not isinstance(manifest, IndexManifest):
                continue

            pkg = package_repo.get_package_by_digest(digest)
            tags = pkg.tags if pkg else []
            missing = 0
            for child in manifest.children:
                children.add(child.digest)
                if package_repo.get_id_by_digest(child.digest) is None:
                    missing += 1
                    if tags:
                        logger.warning(
                            f"digest {child.digest} not found on image {','.join(tags)}"
                        )
                    else:
                        logger.warning(
                            f"digest {child.digest} not found on untagged image {digest}"
                        )
            if missing and missing == len(manifest.children):
                result.ghost_images.add(digest)
            elif missing:
                result.partial_images.add(digest)

        for tag, _ in self._orphaned_tags():
            logger.warning(f"parent image for referrer tag {tag} not found in repository")
            orphan_digest = package_repo.get_digest_by_tag(tag)
            if orphan_digest:
                result.orphaned_images.add(orphan_digest)

        result.has_errors = bool(
            result.ghost_images or result.partial_images or result.orphaned_images
        )
        if not result.has_errors:
            logger.info("no errors found")
        return result
