"""aiohttp session helpers."""

import json
from typing import Any

import aiohttp

USER_AGENT = "ghcr-cleanup"


async def create_session(
    timeout: int = 30, headers: dict[str, str] | None = None
) -> aiohttp.ClientSession:
    """Create an aiohttp session with the default timeout and user agent.

    Args:
        timeout: Total request timeout in seconds
        headers: Extra default headers

    Returns:
        New client session; the caller owns it and must close it
    """
    default_headers = {"User-Agent": USER_AGENT}
    if headers:
        default_headers.update(headers)
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=timeout),
        headers=default_headers,
    )


async def parse_json_response(resp: aiohttp.ClientResponse) -> Any:
    """Decode a JSON body regardless of the declared content type.

    Registries answer manifest requests with vendor media types
    (``application/vnd.oci.image.index.v1+json``), which aiohttp's
    ``resp.json()`` rejects by default.
    """
    text = await resp.text()
    if not text:
        return None
    return json.loads(text)
