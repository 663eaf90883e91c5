"""Timestamp and duration parsing for raw records and rule configuration."""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhdw])\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Coerce a raw record timestamp into an aware UTC datetime.

    Accepts datetimes, dates, ISO-8601 strings (a trailing ``Z`` is allowed)
    and epoch seconds or milliseconds. Returns None when the value cannot be
    interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, date):
        ts = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        seconds = value / 1000.0 if abs(value) > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def parse_duration(value: str) -> timedelta:
    """Parse a duration string such as ``"30m"``, ``"2h"`` or ``"1d"``.

    Raises:
        ValueError: If the string is not ``<number><s|m|h|d|w>``.
    """
    match = _DURATION_RE.match(value or "")
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=float(amount) * _UNIT_SECONDS[unit.lower()])
