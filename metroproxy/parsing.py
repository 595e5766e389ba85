# metroproxy/parsing.py
"""
Helpers for the free-text fields the upstream APIs produce.

Both parsers return None for strings that do not follow the known format;
upstream occasionally emits other wording and callers are expected to fall
back to displaying the raw text.
"""

from __future__ import annotations

import re
from typing import Optional

from .models import ActiveTrainState, ParsedLastSeen, ParsedTimesAPILocation

__all__ = ["parse_last_seen", "parse_times_api_location", "compare_times"]

SECONDS_PER_DAY = 86_400

_LAST_SEEN_RE = re.compile(
    r"^(?P<state>Approaching|Arrived|Ready to start|Departed) "
    r"(?P<station>[a-zA-Z' ]*) platform (?P<platform>[1-4]) "
    r"at (?P<hours>[01][0-9]|2[0-3]):(?P<minutes>[0-5][0-9])$"
)
_TIMES_API_LOCATION_RE = re.compile(r"^(?P<station>[a-zA-Z' ]*) Platform (?P<platform>[1-4])$")


def parse_last_seen(last_seen: str) -> Optional[ParsedLastSeen]:
    """
    Parse a Train Statuses API `lastSeen` string.

    >>> parse_last_seen("Departed Monument platform 2 at 14:05").station
    'Monument'
    """
    m = _LAST_SEEN_RE.match(last_seen)
    if m is None:
        return None
    return ParsedLastSeen(
        state=ActiveTrainState(m.group("state")),
        station=m.group("station"),
        platform=int(m.group("platform")),
        hours=int(m.group("hours")),
        minutes=int(m.group("minutes")),
    )


def parse_times_api_location(location: str) -> Optional[ParsedTimesAPILocation]:
    """Parse a Times API location such as "South Gosforth Platform 1"."""
    m = _TIMES_API_LOCATION_RE.match(location)
    if m is None:
        return None
    return ParsedTimesAPILocation(station=m.group("station"), platform=int(m.group("platform")))


def compare_times(a: int, b: int, new_day_hour: int) -> int:
    """
    Compare two timetable times (seconds since midnight) where the operating
    day starts at `new_day_hour`, so 00:30 sorts after 23:30 when the day
    boundary is 03:00. Negative when a is earlier, zero when equal.
    """
    offset = new_day_hour * 3600
    return (a - offset) % SECONDS_PER_DAY - (b - offset) % SECONDS_PER_DAY
