"""Deletion policies: tag selection, keep-n and delete-all-untagged."""

import logging
from datetime import datetime, timezone

from ..core.types import CleanupContext, DeletionPlan, Package
from ..utils.digest import is_digest_reference
from .filter import ImageFilter

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_newest_first(packages: list[Package]) -> list[Package]:
    """Sort by ``updated_at`` descending; ties keep their input order."""
    return sorted(packages, key=lambda pkg: pkg.updated_at or _EPOCH, reverse=True)


class DeletionStrategy:
    """Turns policy options into deletion sets.

    Every method that returns digests to delete also removes them from the
    candidate set it was given, so later policies never see them.
    """

    def __init__(self, context: CleanupContext) -> None:
        self.context = context
        self.image_filter = ImageFilter(context)

    def process_tag_deletions(
        self, filter_set: set[str], exclude_tags: list[str]
    ) -> DeletionPlan:
        """Plan deletions for the tag selector.

        A selected digest, or a tag that is the only tag of its image,
        deletes the image. A tag on a multi-tagged image is detached
        instead (untagging). When keep-n-tagged is configured the outright
        deletions are left to it and only untag operations are planned.

        Args:
            filter_set: Candidate set, outright deletions are removed from it
            exclude_tags: Tags and digests that must not be touched

        Returns:
            Deletion plan
        """
        plan = DeletionPlan()
        config = self.context.config
        if not config.delete_tags:
            return plan

        package_repo = self.context.package_repo
        match_tags = self.image_filter.expand_tags(filter_set)

        if not match_tags:
            logger.info(
                f"[{self.context.target_package}] Finding tagged images to delete: "
                f"{config.delete_tags}"
            )
            logger.info("no matching tags found")
            return plan

        standard_tags: list[str] = []
        for tag in sorted(match_tags):
            if tag in exclude_tags:
                continue
            if is_digest_reference(tag):
                standard_tags.append(tag)
                continue
            manifest_digest = package_repo.get_digest_by_tag(tag)
            if not manifest_digest:
                continue
            pkg = package_repo.get_package_by_digest(manifest_digest)
            if pkg is None:
                continue
            if len(pkg.tags) > 1:
                plan.untag_operations.setdefault(manifest_digest, []).append(tag)
            elif len(pkg.tags) == 1:
                standard_tags.append(tag)

        # keep-n-tagged takes care of every outright deletion itself
        if standard_tags and config.keep_n_tagged is None:
            logger.info(
                f"[{self.context.target_package}] Find tagged images to delete: "
                f"{config.delete_tags}"
            )
            for tag in standard_tags:
                logger.info(tag)
                if is_digest_reference(tag):
                    manifest_digest = tag
                else:
                    manifest_digest = package_repo.get_digest_by_tag(tag)
                if manifest_digest:
                    plan.delete_set.add(manifest_digest)
                    filter_set.discard(manifest_digest)

        return plan

    def keep_n_untagged(self, filter_set: set[str]) -> set[str]:
        """Select all but the newest N untagged images for deletion.

        Args:
            filter_set: Candidate set, modified in place

        Returns:
            Digests to delete
        """
        delete_set: set[str] = set()
        keep = self.context.config.keep_n_untagged
        if keep is None:
            return delete_set

        logger.info(
            f"[{self.context.target_package}] Finding untagged images to delete, "
            f"keeping {keep} versions"
        )

        untagged = []
        for digest in sorted(filter_set):
            pkg = self.context.package_repo.get_package_by_digest(digest)
            if pkg is not None and not pkg.tags:
                untagged.append(pkg)

        for pkg in sort_newest_first(untagged)[keep:]:
            delete_set.add(pkg.digest)
            filter_set.discard(pkg.digest)
            logger.info(pkg.digest)

        if not delete_set:
            logger.info("no untagged images found to delete")
        return delete_set

    def keep_n_tagged(self, filter_set: set[str]) -> set[str]:
        """Select all but the newest N tagged images for deletion.

        With a tag selector configured only the images it selects are
        ranked; otherwise every tagged candidate is.

        Args:
            filter_set: Candidate set, modified in place

        Returns:
            Digests to delete
        """
        delete_set: set[str] = set()
        config = self.context.config
        keep = config.keep_n_tagged
        if keep is None:
            return delete_set

        logger.info(
            f"[{self.context.target_package}] Finding tagged images to delete, "
            f"keeping {keep} versions"
        )

        package_repo = self.context.package_repo
        tagged: dict[str, Package] = {}
        if config.delete_tags:
            for tag in sorted(self.image_filter.expand_tags(filter_set)):
                if is_digest_reference(tag):
                    digest = tag
                else:
                    digest = package_repo.get_digest_by_tag(tag)
                pkg = package_repo.get_package_by_digest(digest) if digest else None
                if pkg is not None:
                    tagged.setdefault(pkg.digest, pkg)
        else:
            for digest in sorted(filter_set):
                pkg = package_repo.get_package_by_digest(digest)
                if pkg is not None and pkg.tags:
                    tagged[digest] = pkg

        for pkg in sort_newest_first(list(tagged.values()))[keep:]:
            delete_set.add(pkg.digest)
            filter_set.discard(pkg.digest)
            logger.info(f"{pkg.digest} {','.join(pkg.tags)}")

        if not delete_set:
            logger.info("no tagged images found to delete")
        return delete_set

    def delete_all_untagged(self, filter_set: set[str]) -> set[str]:
        """Select every untagged candidate for deletion.

        Args:
            filter_set: Candidate set, modified in place

        Returns:
            Digests to delete
        """
        delete_set: set[str] = set()
        logger.info(
            f"[{self.context.target_package}] Finding all untagged images to delete"
        )

        for digest in sorted(filter_set):
            pkg = self.context.package_repo.get_package_by_digest(digest)
            if pkg is not None and not pkg.tags:
                delete_set.add(digest)
                filter_set.discard(digest)
                logger.info(digest)

        if not delete_set:
            logger.info("no untagged images found")
        return delete_set
