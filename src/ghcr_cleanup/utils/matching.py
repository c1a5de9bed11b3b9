"""Wildcard and regular expression selectors for tags, digests and packages."""

import re
from collections.abc import Iterable
from fnmatch import fnmatchcase


class TagMatcher:
    """Match names against a selector string.

    In wildcard mode the selector is a comma-separated list of shell style
    patterns (``*``, ``?``, ``[...]``); a name matches if any pattern matches
    it entirely. In regex mode the whole selector is one regular expression
    searched anywhere in the name.
    """

    def __init__(self, selector: str, use_regex: bool = False) -> None:
        self.selector = selector
        self.use_regex = use_regex
        if use_regex:
            self._regex: re.Pattern[str] | None = re.compile(selector)
            self._patterns: list[str] = []
        else:
            self._regex = None
            self._patterns = [p.strip() for p in selector.split(",") if p.strip()]

    def matches(self, name: str) -> bool:
        if self._regex is not None:
            return self._regex.search(name) is not None
        return any(fnmatchcase(name, pattern) for pattern in self._patterns)

    __call__ = matches

    def filter(self, names: Iterable[str]) -> list[str]:
        """Return the names that match, preserving input order."""
        return [name for name in names if self.matches(name)]

    def __repr__(self) -> str:
        mode = "regex" if self.use_regex else "wildcard"
        return f"TagMatcher({self.selector!r}, {mode})"
