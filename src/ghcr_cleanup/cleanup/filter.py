"""Candidate set filtering by exclusion selector, age and tag selection."""

import logging
from datetime import datetime, timezone

from ..core.types import CleanupContext
from ..utils.matching import TagMatcher

logger = logging.getLogger(__name__)


class ImageFilter:
    """Narrows the candidate set and expands tag selectors."""

    def __init__(self, context: CleanupContext) -> None:
        self.context = context

    def _matcher(self, selector: str) -> TagMatcher:
        return TagMatcher(selector, use_regex=self.context.config.use_regex)

    def apply_exclusion_filters(self, filter_set: set[str]) -> list[str]:
        """Remove every image matched by the exclusion selector.

        Both tags and raw digests are matched. Removed digests can no longer
        be selected by any later step.

        Args:
            filter_set: Candidate set, modified in place

        Returns:
            Excluded tags and digests, in match order
        """
        exclude_tags: list[str] = []
        selector = self.context.config.exclude_tags
        if not selector:
            return exclude_tags

        package_repo = self.context.package_repo
        is_match = self._matcher(selector)

        for tag in sorted(package_repo.get_tags()):
            if is_match(tag):
                digest = package_repo.get_digest_by_tag(tag)
                if digest:
                    filter_set.discard(digest)
                exclude_tags.append(tag)

        for digest in sorted(package_repo.get_digests()):
            if is_match(digest):
                filter_set.discard(digest)
                exclude_tags.append(digest)

        if exclude_tags:
            logger.info(f"[{self.context.target_package}] Excluding tags from deletion")
            for tag in exclude_tags:
                logger.info(tag)

        return exclude_tags

    def apply_age_filter(self, filter_set: set[str], now: datetime | None = None) -> None:
        """Keep only images last updated before ``now - older_than``.

        Args:
            filter_set: Candidate set, modified in place
            now: Reference time, defaults to the current UTC time
        """
        older_than = self.context.config.older_than
        if older_than is None:
            return

        logger.info(
            f"[{self.context.target_package}] Finding images that are older than: "
            f"{self.context.config.older_than_readable or older_than}"
        )

        cutoff = (now or datetime.now(timezone.utc)) - older_than
        for digest in sorted(filter_set):
            pkg = self.context.package_repo.get_package_by_digest(digest)
            if pkg is None or pkg.updated_at is None:
                continue
            if pkg.updated_at >= cutoff:
                filter_set.discard(digest)
            elif pkg.tags:
                logger.info(f"{digest} {','.join(pkg.tags)}")
            else:
                logger.info(digest)

        if not filter_set:
            logger.info("no images found")

    def expand_tags(self, filter_set: set[str]) -> set[str]:
        """Resolve the tag selector to concrete tags and digests.

        Args:
            filter_set: Candidate set to select from (not modified)

        Returns:
            Matching tag names of candidate images, plus candidate digests
            matched directly
        """
        match_tags: set[str] = set()
        selector = self.context.config.delete_tags
        if not selector:
            return match_tags

        is_match = self._matcher(selector)
        for digest in filter_set:
            pkg = self.context.package_repo.get_package_by_digest(digest)
            if pkg is None:
                continue
            for tag in pkg.tags:
                if is_match(tag):
                    match_tags.add(tag)

        for digest in filter_set:
            if is_match(digest):
                match_tags.add(digest)

        return match_tags
