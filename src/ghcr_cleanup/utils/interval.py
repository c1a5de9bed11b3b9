"""Human readable interval parsing (e.g. "15 days", "1 year and 6 months")."""

import re
from datetime import timedelta

# Calendar units are approximated the same way for every run.
UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 60 * 60,
    "day": 24 * 60 * 60,
    "week": 7 * 24 * 60 * 60,
    "month": 30 * 24 * 60 * 60,
    "year": 365 * 24 * 60 * 60,
}

_NUMBER_WORDS = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}

_TERM_PATTERN = re.compile(
    r"(?P<amount>\d+(?:\.\d+)?|[a-z]+)\s*(?P<unit>second|minute|hour|day|week|month|year)s?",
    re.IGNORECASE,
)
_UNIT_PATTERN = re.compile(r"(second|minute|hour|day|week|month|year)s?", re.IGNORECASE)
_SEPARATORS = re.compile(r"^(?:\s|,|and)*$", re.IGNORECASE)


def has_interval_unit(text: str) -> bool:
    """Check whether text mentions any supported interval unit."""
    return _UNIT_PATTERN.search(text) is not None


def parse_interval(text: str) -> timedelta | None:
    """Parse a human readable interval.

    Args:
        text: Interval text such as "50 seconds", "15 days", "6 months",
            "2 years" or "1 week and 2 days"

    Returns:
        timedelta for the interval, or None if the text is not a valid
        interval
    """
    if not text or not text.strip():
        return None

    total = 0.0
    position = 0
    found = False
    for match in _TERM_PATTERN.finditer(text):
        if not _SEPARATORS.match(text[position : match.start()]):
            return None
        amount_text = match.group("amount").lower()
        if amount_text in _NUMBER_WORDS:
            amount = float(_NUMBER_WORDS[amount_text])
        else:
            try:
                amount = float(amount_text)
            except ValueError:
                return None
        total += amount * UNIT_SECONDS[match.group("unit").lower()]
        position = match.end()
        found = True

    if not found or not _SEPARATORS.match(text[position:]):
        return None
    return timedelta(seconds=total)
