"""GitHub Packages API client holding the package version snapshot."""

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import aiohttp

from ..exceptions import PackageApiError, PackageNotFoundError
from .session import create_session, parse_json_response
from .types import Package

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
GITHUB_API_VERSION = "2022-11-28"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an API timestamp such as ``2024-01-01T00:00:00Z``."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def package_from_version(version: dict[str, Any]) -> Package:
    """Map a package version API object onto a Package."""
    metadata = version.get("metadata") or {}
    container = metadata.get("container") or {}
    return Package(
        id=version["id"],
        digest=version["name"],
        tags=list(container.get("tags") or []),
        updated_at=parse_timestamp(version.get("updated_at")),
    )


class PackageRepo:
    """Snapshot of one container package's versions plus the API to change it.

    The snapshot maps digest -> package and tag -> digest. It is rebuilt by
    ``load_packages`` and never updated implicitly; deletions do not remove
    entries, callers track what they deleted.
    """

    def __init__(
        self,
        owner: str,
        token: str,
        owner_type: str = "Organization",
        api_url: str = "https://api.github.com",
        dry_run: bool = False,
        timeout: int = 30,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the package API client.

        Args:
            owner: User or organization owning the packages
            token: GitHub token
            owner_type: "Organization" or "User"
            api_url: GitHub API base URL
            dry_run: Log deletions instead of performing them
            timeout: Request timeout in seconds
            session: Shared aiohttp session; one is created when omitted
        """
        self.owner = owner
        self.token = token
        self.owner_type = owner_type
        self.api_url = api_url.rstrip("/")
        self.dry_run = dry_run
        self.timeout = timeout
        self.session = session
        self._owns_session = session is None
        self._packages: dict[str, Package] = {}
        self._tags: dict[str, str] = {}

    async def __aenter__(self) -> "PackageRepo":
        if not self.session:
            self.session = await create_session(self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.token}",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def _packages_url(self) -> str:
        if self.owner_type == "Organization":
            return f"{self.api_url}/orgs/{self.owner}/packages"
        return f"{self.api_url}/user/packages"

    def _versions_url(self, package: str) -> str:
        return f"{self._packages_url()}/container/{quote(package, safe='')}/versions"

    async def _request(
        self, method: str, url: str, params: dict[str, Any] | None = None
    ) -> Any:
        try:
            async with self.session.request(
                method, url, params=params, headers=self._headers()
            ) as resp:
                if resp.status == 404:
                    raise PackageNotFoundError(f"{method} {url} returned 404", status=404)
                if resp.status >= 400:
                    body = await resp.text()
                    raise PackageApiError(
                        f"{method} {url} failed with status {resp.status}: {body}",
                        status=resp.status,
                    )
                return await parse_json_response(resp)
        except aiohttp.ClientError as e:
            raise PackageApiError(f"{method} {url} failed: {e}") from e

    async def _paginate(self, url: str, params: dict[str, Any] | None = None) -> list:
        results: list = []
        page = 1
        while True:
            page_params = dict(params or {})
            page_params.update({"per_page": PAGE_SIZE, "page": page})
            data = await self._request("GET", url, page_params)
            if not data:
                break
            results.extend(data)
            if len(data) < PAGE_SIZE:
                break
            page += 1
        return results

    async def load_packages(self, package: str, reset: bool) -> None:
        """Load the version snapshot for ``package``.

        Args:
            package: Container package name
            reset: Discard the previous snapshot first. Without a reset the
                fresh listing is laid over the existing snapshot, so versions
                created since the last load appear and moved tags follow
                their new digest.

        Raises:
            PackageApiError: If listing fails
        """
        versions = await self._paginate(self._versions_url(package))
        if reset:
            self._packages.clear()
            self._tags.clear()

        for version in versions:
            pkg = package_from_version(version)
            previous = self._packages.get(pkg.digest)
            if previous:
                for tag in previous.tags:
                    if self._tags.get(tag) == pkg.digest:
                        del self._tags[tag]
            self._packages[pkg.digest] = pkg
            for tag in pkg.tags:
                moved_from = self._tags.get(tag)
                if moved_from and moved_from != pkg.digest:
                    old = self._packages.get(moved_from)
                    if old and tag in old.tags:
                        old.tags.remove(tag)
                self._tags[tag] = pkg.digest

        logger.debug(f"loaded {len(versions)} versions of {package}")

    def get_digests(self) -> set[str]:
        """Copy of all digests in the snapshot."""
        return set(self._packages)

    def get_tags(self) -> set[str]:
        """Copy of all tags in the snapshot."""
        return set(self._tags)

    def get_digest_by_tag(self, tag: str) -> str | None:
        return self._tags.get(tag)

    def get_id_by_digest(self, digest: str) -> int | None:
        pkg = self._packages.get(digest)
        return pkg.id if pkg else None

    def get_package_by_digest(self, digest: str) -> Package | None:
        return self._packages.get(digest)

    async def delete_package_version(
        self,
        package: str,
        version_id: int,
        digest: str,
        tags: list[str],
        label: str | None = None,
    ) -> None:
        """Delete one package version.

        Args:
            package: Container package name
            version_id: Package version id
            digest: Manifest digest of the version, for logging
            tags: Tags of the version, for logging
            label: Classification shown for untagged child images

        Raises:
            PackageNotFoundError: If the version is already gone
            PackageApiError: If deletion fails
        """
        if tags:
            logger.info(f"deleting package id: {version_id} digest: {digest} tag: {','.join(tags)}")
        elif label:
            logger.info(f"deleting package id: {version_id} digest: {digest} {label}")
        else:
            logger.info(f"deleting package id: {version_id} digest: {digest}")

        if self.dry_run:
            return
        await self._request("DELETE", f"{self._versions_url(package)}/{version_id}")

    async def get_package_list(self) -> list[str]:
        """Names of all container packages owned by the owner."""
        packages = await self._paginate(
            self._packages_url(), {"package_type": "container"}
        )
        return [pkg["name"] for pkg in packages]

    async def get_repository(self, owner: str, repository: str) -> tuple[bool, str]:
        """Look up a repository's visibility and owner type.

        Returns:
            Tuple of (is_private, owner_type)

        Raises:
            PackageNotFoundError: If the repository does not exist
        """
        try:
            data = await self._request("GET", f"{self.api_url}/repos/{owner}/{repository}")
        except PackageNotFoundError:
            logger.warning(
                f'The repository is not found, check the owner value "{owner}" '
                f'or the repository value "{repository}" are correct'
            )
            raise
        return bool(data.get("private")), data["owner"]["type"]
