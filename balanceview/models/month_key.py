"""
Month Keys

A month key is the canonical "YYYY-MM" string that names one ledger bucket.
The month is always zero-padded, so plain string ordering is chronological
ordering. Everything that needs a month goes through these helpers rather
than formatting dates by hand.
"""

import re
from datetime import date, datetime
from typing import Iterable, Optional, Union

MONTH_KEY_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def month_key_for(when: Optional[Union[date, datetime]] = None) -> str:
    """Month key for a date, or for the current local time if omitted."""
    when = when or datetime.now()
    return f"{when.year:04d}-{when.month:02d}"


def current_month_key() -> str:
    return month_key_for(datetime.now())


def is_month_key(value: object) -> bool:
    return isinstance(value, str) and MONTH_KEY_PATTERN.match(value) is not None


def parse_month_key(key: str) -> tuple[int, int]:
    """
    Split a month key into (year, month).

    Raises:
        ValueError: If the key is not in "YYYY-MM" form
    """
    match = MONTH_KEY_PATTERN.match(key) if isinstance(key, str) else None
    if not match:
        raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
    return int(match.group(1)), int(match.group(2))


def shift_month(key: str, delta: int) -> str:
    """Step a month key forwards (delta > 0) or backwards (delta < 0)."""
    year, month = parse_month_key(key)
    index = year * 12 + (month - 1) + delta
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def month_start(key: str) -> date:
    year, month = parse_month_key(key)
    return date(year, month, 1)


def month_label(key: str, fmt: str = "%B %Y") -> str:
    """Human label for a month key, e.g. "March 2024"."""
    return month_start(key).strftime(fmt)


def sort_month_keys(keys: Iterable[str], descending: bool = True) -> list[str]:
    """Order month keys chronologically (newest first by default)."""
    return sorted(keys, reverse=descending)
