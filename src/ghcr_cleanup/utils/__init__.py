"""Utility functions for the cleanup pipeline."""

from .digest import is_referrer_tag, parent_digest_from_referrer_tag, validate_digest
from .interval import parse_interval
from .matching import TagMatcher

__all__ = [
    "validate_digest",
    "is_referrer_tag",
    "parent_digest_from_referrer_tag",
    "parse_interval",
    "TagMatcher",
]
