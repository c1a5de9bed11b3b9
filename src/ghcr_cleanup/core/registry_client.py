"""Container registry (OCI distribution API) async client."""

import base64
import json
import logging

import aiohttp

from ..exceptions import (
    AuthenticationError,
    ManifestError,
    RegistryConnectionError,
    RegistryError,
)
from ..utils.challenge import is_valid_challenge, parse_challenge
from .session import create_session, parse_json_response
from .types import (
    DOCKER_LIST_MEDIA_TYPE,
    DOCKER_MANIFEST_MEDIA_TYPE,
    OCI_INDEX_MEDIA_TYPE,
    OCI_MANIFEST_MEDIA_TYPE,
    Manifest,
    parse_manifest,
)

logger = logging.getLogger(__name__)

MANIFEST_ACCEPT = ", ".join(
    [
        OCI_INDEX_MEDIA_TYPE,
        OCI_MANIFEST_MEDIA_TYPE,
        DOCKER_LIST_MEDIA_TYPE,
        DOCKER_MANIFEST_MEDIA_TYPE,
    ]
)


class RegistryClient:
    """Registry client scoped to one package (repository) at a time.

    Manifests fetched by digest are cached for the lifetime of the client;
    they are content addressed so a cached entry can never go stale. Lookups
    by tag always go to the registry because tags move.
    """

    def __init__(
        self,
        registry_url: str,
        owner: str,
        token: str,
        dry_run: bool = False,
        timeout: int = 30,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the registry client.

        Args:
            registry_url: Registry URL (e.g., https://ghcr.io/)
            owner: Package owner, the first path component of the repository
            token: GitHub token used to obtain a registry token
            dry_run: Skip manifest writes, logging them instead
            timeout: Request timeout in seconds
            session: Shared aiohttp session; one is created when omitted
        """
        self.registry_url = registry_url.rstrip("/")
        self.owner = owner
        self.token = token
        self.dry_run = dry_run
        self.timeout = timeout
        self.session = session
        self._owns_session = session is None
        self.package: str | None = None
        self._bearer: str | None = None
        self._manifests: dict[str, Manifest] = {}

    async def __aenter__(self) -> "RegistryClient":
        """Enter async context manager."""
        if not self.session:
            self.session = await create_session(self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the client session if this client created it."""
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()

    def _repository_url(self) -> str:
        if not self.package:
            raise RegistryError("login() must be called before using the registry")
        return f"{self.registry_url}/v2/{self.owner}/{self.package}"

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {}
        if self._bearer:
            headers["Authorization"] = f"Bearer {self._bearer}"
        if extra:
            headers.update(extra)
        return headers

    async def login(self, package: str) -> None:
        """Establish a registry session scoped to ``package``.

        The registry answers an anonymous request with a Bearer challenge;
        a token is requested from the challenge realm using the GitHub
        token. Registries that do not issue a usable challenge get the
        GitHub token itself as the bearer.

        Args:
            package: Package (repository) name below the owner

        Raises:
            RegistryConnectionError: If the registry cannot be reached
            AuthenticationError: If the token endpoint rejects the request
        """
        if self.package != package:
            # A new repository means new manifests
            self._manifests.clear()
        self.package = package
        self._bearer = None

        url = f"{self._repository_url()}/tags/list"
        try:
            async with self.session.get(url) as resp:
                challenge = resp.headers.get("WWW-Authenticate", "")
                status = resp.status
        except aiohttp.ClientError as e:
            raise RegistryConnectionError(
                f"Unable to reach registry at {self.registry_url}: {e}"
            ) from e

        if status == 401:
            attributes = parse_challenge(challenge)
            if is_valid_challenge(attributes):
                self._bearer = await self._request_token(attributes)
                return

        self._bearer = base64.b64encode(self.token.encode("utf-8")).decode("ascii")

    async def _request_token(self, attributes: dict[str, str]) -> str:
        scope = attributes["scope"]
        if scope.endswith(":pull"):
            # Untagging writes manifests
            scope += ",push"
        params = {"service": attributes["service"], "scope": scope}
        try:
            async with self.session.get(
                attributes["realm"],
                params=params,
                auth=aiohttp.BasicAuth(self.owner, self.token),
            ) as resp:
                if resp.status != 200:
                    raise AuthenticationError(
                        f"Registry token request failed with status {resp.status}"
                    )
                data = await parse_json_response(resp)
        except aiohttp.ClientError as e:
            raise AuthenticationError(f"Failed to obtain registry token: {e}") from e

        token = (data or {}).get("token") or (data or {}).get("access_token")
        if not token:
            raise AuthenticationError("Registry token response did not contain a token")
        return token

    async def _fetch_manifest(self, reference: str) -> tuple[Manifest, str | None]:
        url = f"{self._repository_url()}/manifests/{reference}"
        try:
            async with self.session.get(
                url, headers=self._headers({"Accept": MANIFEST_ACCEPT})
            ) as resp:
                resp.raise_for_status()
                data = await parse_json_response(resp)
                digest = resp.headers.get("Docker-Content-Digest")
        except aiohttp.ClientResponseError as e:
            raise ManifestError(
                f"Failed to get manifest {self.package}@{reference}: {e.status} {e.message}"
            ) from e
        except aiohttp.ClientError as e:
            raise ManifestError(f"Failed to get manifest {reference}: {e}") from e

        if not isinstance(data, dict):
            raise ManifestError(f"Manifest {reference} is not a JSON object")
        return parse_manifest(data), digest

    async def get_manifest_by_digest(self, digest: str) -> Manifest:
        """Retrieve a manifest by digest, served from cache when possible.

        Args:
            digest: Manifest digest

        Returns:
            Parsed manifest

        Raises:
            ManifestError: If retrieval fails
        """
        manifest = self._manifests.get(digest)
        if manifest is None:
            manifest, _ = await self._fetch_manifest(digest)
            self._manifests[digest] = manifest
        return manifest

    async def get_manifest_by_tag(self, tag: str) -> Manifest:
        """Retrieve the manifest a tag currently points at.

        Args:
            tag: Tag name

        Returns:
            Parsed manifest

        Raises:
            ManifestError: If retrieval fails
        """
        manifest, digest = await self._fetch_manifest(tag)
        if digest:
            self._manifests.setdefault(digest, manifest)
        return manifest

    async def put_manifest(self, reference: str, manifest: Manifest) -> str | None:
        """Write a manifest under a tag or digest.

        The registry computes the digest of the uploaded content, so writing
        a different manifest under an existing tag moves the tag.

        Args:
            reference: Tag or digest reference
            manifest: Manifest to upload

        Returns:
            Digest reported by the registry, None in dry-run mode

        Raises:
            ManifestError: If upload fails
        """
        if self.dry_run:
            logger.info(f"dry-run: not writing manifest for {self.package}:{reference}")
            return None

        url = f"{self._repository_url()}/manifests/{reference}"
        manifest_data = json.dumps(manifest.raw).encode("utf-8")
        try:
            async with self.session.put(
                url,
                data=manifest_data,
                headers=self._headers(
                    {
                        "Content-Type": manifest.default_media_type(),
                        "Content-Length": str(len(manifest_data)),
                    }
                ),
            ) as resp:
                resp.raise_for_status()
                return resp.headers.get("Docker-Content-Digest", "")

        except aiohttp.ClientError as e:
            raise ManifestError(f"Failed to upload manifest: {e}") from e
