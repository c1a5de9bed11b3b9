"""WWW-Authenticate challenge parsing."""

REQUIRED_ATTRIBUTES = ("realm", "service", "scope")


def parse_challenge(challenge: str) -> dict[str, str]:
    """Parse a Bearer ``WWW-Authenticate`` header into its attributes.

    Args:
        challenge: Header value, e.g.
            'Bearer realm="https://ghcr.io/token",service="ghcr.io",scope="..."'

    Returns:
        Mapping of attribute name to unquoted value. Empty for non-Bearer
        challenges; entries without ``=`` are ignored.
    """
    attributes: dict[str, str] = {}
    if not challenge.startswith("Bearer "):
        return attributes

    for part in challenge[len("Bearer ") :].split(","):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        attributes[key.strip()] = value
    return attributes


def is_valid_challenge(attributes: dict[str, str]) -> bool:
    """Check a parsed challenge has everything needed to request a token."""
    return all(name in attributes for name in REQUIRED_ATTRIBUTES)
