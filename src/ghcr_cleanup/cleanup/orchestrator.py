"""Per-package cleanup pass."""

import logging

from ..config import CleanupConfig
from ..core.package_repo import PackageRepo
from ..core.registry_client import RegistryClient
from ..core.types import CleanupContext, CleanupStatistics, ValidationResult
from .analyzer import ManifestAnalyzer
from .deleter import ImageDeleter
from .filter import ImageFilter
from .strategy import DeletionStrategy
from .validator import ImageValidator

logger = logging.getLogger(__name__)


class CleanupOrchestrator:
    """Runs the cleanup pipeline for one package.

    The orchestrator owns the pass state (candidate set, delete set,
    exclusions and the digest graph) and hands it by reference to the
    components that update it.
    """

    def __init__(
        self,
        config: CleanupConfig,
        target_package: str,
        registry: RegistryClient,
        package_repo: PackageRepo,
    ) -> None:
        self.config = config
        self.target_package = target_package
        self.context = CleanupContext(
            config=config,
            registry=registry,
            package_repo=package_repo,
            target_package=target_package,
        )

        self.image_filter = ImageFilter(self.context)
        self.manifest_analyzer = ManifestAnalyzer(self.context)
        self.image_validator = ImageValidator(self.context)
        self.deletion_strategy = DeletionStrategy(self.context)
        self.image_deleter: ImageDeleter | None = None

        self.filter_set: set[str] = set()
        self.delete_set: set[str] = set()
        self.exclude_tags: list[str] = []
        self.digest_used_by: dict[str, set[str]] = {}
        self.statistics = CleanupStatistics(target_package)
        self.validation: ValidationResult | None = None

    async def init(self) -> None:
        """Authenticate the registry for this package."""
        await self.context.registry.login(self.target_package)

    async def reload(self) -> None:
        """Take a fresh snapshot and rebuild every derived structure."""
        self.delete_set.clear()
        await self.context.package_repo.load_packages(self.target_package, True)

        self.digest_used_by = await self.manifest_analyzer.load_digest_used_by_map()
        self.image_deleter = ImageDeleter(self.context, self.digest_used_by)

        # Children and referrers are only ever handled through their parent
        self.filter_set = await self.manifest_analyzer.init_filter_set()

        self.exclude_tags = self.image_filter.apply_exclusion_filters(self.filter_set)
        self.image_filter.apply_age_filter(self.filter_set)

    async def _apply_tag_deletions(self) -> None:
        plan = self.deletion_strategy.process_tag_deletions(
            self.filter_set, self.exclude_tags
        )

        needs_resnapshot = False
        if plan.untag_operations and self.image_deleter:
            needs_resnapshot = await self.image_deleter.perform_untagging(
                plan.untag_operations
            )

        if needs_resnapshot:
            # Untagging created and removed versions, the plan is stale
            logger.info("Reloading action due to untagging")
            await self.reload()
            plan = self.deletion_strategy.process_tag_deletions(
                self.filter_set, self.exclude_tags
            )

        self.delete_set.update(plan.delete_set)

    def _stage(self, digests: set[str]) -> None:
        self.delete_set.update(digests)
        self.filter_set.difference_update(digests)

    async def run(self) -> CleanupStatistics:
        """Plan and execute the cleanup for the package.

        Returns:
            Deletion statistics for the package
        """
        if self.config.delete_tags:
            await self._apply_tag_deletions()

        if self.config.delete_partial_images:
            self._stage(await self.image_validator.find_partial_images(self.filter_set))
        elif self.config.delete_ghost_images:
            self._stage(await self.image_validator.find_ghost_images(self.filter_set))

        if self.config.delete_orphaned_images:
            self._stage(self.image_validator.find_orphaned_images())

        if self.config.keep_n_tagged is not None:
            self.delete_set.update(self.deletion_strategy.keep_n_tagged(self.filter_set))

        if self.config.keep_n_untagged is not None:
            self.delete_set.update(self.deletion_strategy.keep_n_untagged(self.filter_set))
        elif self.config.delete_untagged:
            self.delete_set.update(self.deletion_strategy.delete_all_untagged(self.filter_set))

        if self.image_deleter:
            result = await self.image_deleter.delete_images(self.delete_set)
            self.statistics.number_images_deleted = result.number_images_deleted
            self.statistics.number_multi_images_deleted = result.number_multi_images_deleted

        self.statistics.log()

        if self.config.validate:
            logger.info(f"[{self.target_package}] Running Validation Task")
            await self.reload()
            self.validation = await self.image_validator.validate()

        return self.statistics
