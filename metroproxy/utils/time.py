# metroproxy/utils/time.py
# -*- coding: utf-8 -*-
"""
Time utilities for the metro proxy client.

The proxy transmits instants either as Unix epoch milliseconds or as
ISO-8601 strings. Everything inside the client is an aware UTC datetime.

Dependencies: standard library only.
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Union

__all__ = [
    "UTC",
    "Instant",
    "ensure_aware",
    "to_epoch_ms",
    "from_epoch_ms",
    "parse_instant",
    "format_date",
]

UTC = timezone.utc

Instant = Union[datetime, int, float]

_ISO_RE = re.compile(
    r"""
    ^
    (?P<date>\d{4}-\d{2}-\d{2})
    (?:[Tt ]
    (?P<time>\d{2}:\d{2}(?::\d{2})?)
    (?P<fraction>\.\d{1,9})?
    (?P<tz>Z|z|[+-]\d{2}:?\d{2})?)?
    $
    """,
    re.X,
)
_NUMERIC_RE = re.compile(r"^-?\d+(?:\.\d+)?$")


def ensure_aware(dt: datetime, *, tz: timezone = UTC) -> datetime:
    """
    Ensure datetime is timezone-aware. If naive, attach tz (assumed to be given in that tz).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt


def to_epoch_ms(value: Instant) -> int:
    """Epoch milliseconds for an aware datetime (naive is read as UTC) or a raw ms number."""
    if isinstance(value, datetime):
        dt = ensure_aware(value).astimezone(UTC)
        delta = dt - datetime(1970, 1, 1, tzinfo=UTC)
        return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected datetime or epoch milliseconds, got {type(value).__name__}")
    return int(value)


def from_epoch_ms(ms: Union[int, float]) -> datetime:
    """Aware UTC datetime from Unix epoch milliseconds."""
    return datetime(1970, 1, 1, tzinfo=UTC) + timedelta(milliseconds=ms)


def parse_instant(value: Any) -> datetime:
    """
    Parse a wire instant into an aware UTC datetime.

    Accepts:
      * datetime (returned as is, naive read as UTC)
      * int/float epoch milliseconds, and numeric strings of the same
      * ISO-8601 / RFC3339 strings, 'Z' or offset; date-only and naive read as UTC

    Raises ValueError/TypeError for anything else. Booleans are rejected even
    though they are ints.
    """
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, bool):
        raise TypeError("bool is not an instant")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError(f"Non-finite epoch value: {value!r}")
        try:
            return from_epoch_ms(value)
        except OverflowError as e:
            raise ValueError(f"Epoch value out of range: {value!r}") from e
    if not isinstance(value, str):
        raise TypeError(f"Unsupported instant type: {type(value).__name__}")

    s = value.strip()
    if _NUMERIC_RE.match(s):
        return parse_instant(float(s) if "." in s else int(s))
    m = _ISO_RE.match(s)
    if not m:
        raise ValueError(f"Invalid ISO-8601 instant: {value!r}")

    iso = m.group("date")
    if m.group("time"):
        iso += "T" + m.group("time")
        frac = m.group("fraction")
        if frac:
            # datetime keeps microseconds; longer fractions are truncated
            iso += "." + (frac[1:] + "000000")[:6]
        tz = m.group("tz")
        if tz and tz not in ("Z", "z"):
            if ":" not in tz:
                tz = f"{tz[:3]}:{tz[3:]}"
            iso += tz
    dt = datetime.fromisoformat(iso)
    return ensure_aware(dt).astimezone(UTC)


def format_date(value: Union[date, datetime]) -> str:
    """YYYY-MM-DD. Aware datetimes are taken in UTC."""
    if isinstance(value, datetime):
        value = ensure_aware(value).astimezone(UTC).date()
    return value.isoformat()
