"""Tests for the per-package cleanup pass."""

import pytest

from ghcr_cleanup.cleanup.orchestrator import CleanupOrchestrator
from ghcr_cleanup.exceptions import ManifestError
from tests.helpers import image_manifest, index_manifest, make_digest, referrer_tag

LAYER = "application/vnd.oci.image.layer.v1.tar+gzip"


def make_orchestrator(context):
    return CleanupOrchestrator(
        context.config, context.target_package, context.registry, context.package_repo
    )


async def run_pass(context):
    orchestrator = make_orchestrator(context)
    await orchestrator.init()
    await orchestrator.reload()
    stats = await orchestrator.run()
    return orchestrator, stats


@pytest.fixture
def repository(store):
    """A multi-arch release, tagged releases, untagged leftovers and a signature."""
    amd64 = make_digest("amd64")
    arm64 = make_digest("arm64")
    release = make_digest("release")
    store.add(amd64, image_manifest(LAYER))
    store.add(arm64, image_manifest(LAYER))
    store.add(release, index_manifest(amd64, arm64), tags=["v2", "latest"], age_days=0)

    digests = {"amd64": amd64, "arm64": arm64, "release": release}
    for name, tags, age in [
        ("v1.1", ["v1.1"], 1),
        ("v1.0", ["v1.0"], 2),
        ("u1", [], 3),
        ("u2", [], 4),
    ]:
        digest = make_digest(name)
        store.add(digest, image_manifest(LAYER), tags=tags, age_days=age)
        digests[name] = digest

    sig = make_digest("sig")
    store.add(sig, image_manifest(LAYER), tags=[referrer_tag(digests["u1"])])
    digests["sig"] = sig
    return digests


class TestRun:
    """Test complete passes."""

    @pytest.mark.asyncio
    async def test_delete_untagged(self, store, context_factory, repository):
        """Test untagged images and their referrers go, children of tagged images stay."""
        context = context_factory(delete_untagged=True)

        orchestrator, stats = await run_pass(context)

        assert context.registry.logins == ["app"]
        assert stats.number_images_deleted == 3
        assert stats.number_multi_images_deleted == 0
        assert repository["u1"] not in store.versions
        assert repository["u2"] not in store.versions
        assert repository["sig"] not in store.versions
        assert repository["amd64"] in store.versions
        assert orchestrator.validation is None

    @pytest.mark.asyncio
    async def test_untagging_reloads_before_deleting(self, store, context_factory, repository):
        """Test untagging forces a fresh snapshot before later policies run."""
        context = context_factory(delete_tags="latest,v1.0", delete_untagged=True)

        _, stats = await run_pass(context)

        assert context.package_repo.load_calls == [True, False, True]
        assert store.versions[repository["release"]].tags == ["v2"]
        assert repository["v1.0"] not in store.versions
        assert repository["u1"] not in store.versions
        assert repository["amd64"] in store.versions
        assert stats.number_images_deleted == 4

    @pytest.mark.asyncio
    async def test_keep_n_tagged_with_selector(self, store, context_factory, repository):
        """Test keep-n-tagged ranks only the selected images."""
        context = context_factory(delete_tags="v1.*", keep_n_tagged=1)

        _, stats = await run_pass(context)

        assert stats.number_images_deleted == 1
        assert repository["v1.0"] not in store.versions
        assert repository["v1.1"] in store.versions
        assert repository["release"] in store.versions

    @pytest.mark.asyncio
    async def test_keep_n_tagged_multi_arch(self, store, context_factory, repository):
        """Test deleting a multi-arch image through keep-n-tagged counts it."""
        context = context_factory(keep_n_tagged=0, exclude_tags="v1.*")

        _, stats = await run_pass(context)

        assert stats.number_images_deleted == 3
        assert stats.number_multi_images_deleted == 1
        assert repository["v1.0"] in store.versions
        assert repository["amd64"] not in store.versions

    @pytest.mark.asyncio
    async def test_keep_n_untagged(self, store, context_factory, repository):
        """Test keep-n-untagged keeps the newest untagged image."""
        context = context_factory(keep_n_untagged=1)

        await run_pass(context)

        assert repository["u1"] in store.versions
        assert repository["u2"] not in store.versions

    @pytest.mark.asyncio
    async def test_exclusion_wins(self, store, context_factory, repository):
        """Test an excluded image survives every policy."""
        context = context_factory(delete_untagged=True, exclude_tags=repository["u2"])

        await run_pass(context)

        assert repository["u2"] in store.versions
        assert repository["u1"] not in store.versions

    @pytest.mark.asyncio
    async def test_partial_preferred_over_ghost(self, store, context_factory):
        """Test partial selection replaces ghost selection when both are set."""
        present = make_digest("present")
        ghost = make_digest("ghost")
        partial = make_digest("partial")
        store.add(present, image_manifest(LAYER))
        store.add(ghost, index_manifest(make_digest("gone-a")), tags=["g"])
        store.add(partial, index_manifest(present, make_digest("gone-b")), tags=["p"])
        context = context_factory(delete_partial_images=True, delete_ghost_images=True)

        _, stats = await run_pass(context)

        assert partial not in store.versions
        assert present not in store.versions
        assert ghost in store.versions
        assert stats.number_images_deleted == 2
        assert stats.number_multi_images_deleted == 1

    @pytest.mark.asyncio
    async def test_ghost_images(self, store, context_factory):
        """Test ghost images are deleted."""
        ghost = make_digest("ghost")
        store.add(ghost, index_manifest(make_digest("gone-a"), make_digest("gone-b")))
        context = context_factory(delete_ghost_images=True)

        _, stats = await run_pass(context)

        assert ghost not in store.versions
        assert stats.number_images_deleted == 1

    @pytest.mark.asyncio
    async def test_orphaned_images(self, store, context_factory, repository):
        """Test referrers without a parent are deleted."""
        orphan = make_digest("orphan")
        store.add(orphan, image_manifest(LAYER), tags=[referrer_tag(make_digest("gone"))])
        context = context_factory(delete_orphaned_images=True)

        _, stats = await run_pass(context)

        assert orphan not in store.versions
        assert repository["sig"] in store.versions
        assert stats.number_images_deleted == 1

    @pytest.mark.asyncio
    async def test_dry_run_counts_without_deleting(self, store, context_factory, repository):
        """Test dry-run reports what would be deleted."""
        context = context_factory(delete_untagged=True, dry_run=True)
        before = set(store.versions)

        _, stats = await run_pass(context)

        assert stats.number_images_deleted == 3
        assert set(store.versions) == before

    @pytest.mark.asyncio
    async def test_validation_after_run(self, context_factory, repository):
        """Test the final validation runs on a fresh snapshot."""
        context = context_factory(delete_untagged=True, validate=True)

        orchestrator, _ = await run_pass(context)

        assert orchestrator.validation is not None
        assert not orchestrator.validation.has_errors
        assert context.package_repo.load_calls == [True, True]

    @pytest.mark.asyncio
    async def test_nothing_selected(self, store, context_factory, repository):
        """Test a pass without policies deletes nothing."""
        context = context_factory()

        _, stats = await run_pass(context)

        assert stats.number_images_deleted == 0
        assert context.package_repo.deleted_calls == []

    @pytest.mark.asyncio
    async def test_registry_failure_aborts(self, store, context_factory, repository):
        """Test a failed manifest fetch propagates."""
        del store.manifests[repository["u2"]]
        context = context_factory(delete_untagged=True)
        orchestrator = make_orchestrator(context)

        with pytest.raises(ManifestError):
            await orchestrator.reload()
