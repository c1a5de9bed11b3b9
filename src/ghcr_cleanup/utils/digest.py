"""Digest validation and referrer tag utilities."""

import re
from collections.abc import Iterable

# Regex pattern for valid digest format (algorithm:hex)
DIGEST_PATTERN = re.compile(r"^[a-z0-9]+:[a-f0-9]+$")

REFERRER_TAG_PREFIX = "sha256-"
SHA256_PREFIX = "sha256:"
SHA256_HEX_LENGTH = 64


def validate_digest(digest: str) -> bool:
    """Validate digest format.

    Args:
        digest: Digest string to validate

    Returns:
        True if valid digest format
    """
    if not isinstance(digest, str):
        return False

    if not DIGEST_PATTERN.match(digest):
        return False

    # Check if algorithm is valid
    algorithm, _ = digest.split(":", 1)
    return algorithm in ["sha256", "sha512"]


def is_digest_reference(reference: str) -> bool:
    """Return True if a selector/reference names a digest rather than a tag."""
    return reference.startswith(SHA256_PREFIX)


def referrer_tag_prefix(digest: str) -> str:
    """Tag prefix used by artifacts that refer to ``digest``.

    Signatures and attestations pushed with the tag schema are tagged
    ``sha256-<hex>[.suffix]`` for the image ``sha256:<hex>``.

    Args:
        digest: Parent manifest digest

    Returns:
        Tag prefix (e.g. "sha256-abc123...")
    """
    return digest.replace(SHA256_PREFIX, REFERRER_TAG_PREFIX, 1)


def is_referrer_tag(tag: str) -> bool:
    """Check if a tag follows the referrer naming convention."""
    return tag.startswith(REFERRER_TAG_PREFIX)


def parent_digest_from_referrer_tag(tag: str) -> str | None:
    """Reconstruct the parent digest encoded in a referrer tag.

    Only the first 64 hex characters after ``sha256-`` are significant, so
    ``sha256-<hex>.sig`` and ``sha256-<hex>.att`` map to the same parent.

    Args:
        tag: Referrer tag (e.g. "sha256-abc...def.sig")

    Returns:
        Parent digest, or None if the tag is not a referrer tag
    """
    if not is_referrer_tag(tag):
        return None
    digest = SHA256_PREFIX + tag[len(REFERRER_TAG_PREFIX) :]
    return digest[: len(SHA256_PREFIX) + SHA256_HEX_LENGTH]


def find_referrer_tags(digest: str, tags: Iterable[str]) -> list[str]:
    """Return the tags in ``tags`` that refer to ``digest``."""
    prefix = referrer_tag_prefix(digest)
    return [tag for tag in tags if tag.startswith(prefix)]
