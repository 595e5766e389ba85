# tests/unit/test_time.py
"""
Unit tests for metroproxy.utils.time.

Scope:
- epoch milliseconds and ISO-8601 instants parse to aware UTC datetimes
- offsets are converted, naive values are read as UTC
- booleans and garbage are rejected
- already-parsed datetimes pass through unchanged
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from metroproxy.utils.time import (
    UTC,
    ensure_aware,
    format_date,
    from_epoch_ms,
    parse_instant,
    to_epoch_ms,
)

NEW_YEAR = datetime(2024, 1, 1, tzinfo=UTC)
NEW_YEAR_MS = 1_704_067_200_000


def test_epoch_ms_int_and_float():
    assert parse_instant(NEW_YEAR_MS) == NEW_YEAR
    assert parse_instant(NEW_YEAR_MS + 0.0) == NEW_YEAR
    assert parse_instant(NEW_YEAR_MS + 1500) == NEW_YEAR + timedelta(seconds=1, milliseconds=500)


def test_numeric_string_is_epoch_ms():
    assert parse_instant(str(NEW_YEAR_MS)) == NEW_YEAR


@pytest.mark.parametrize(
    "text",
    [
        "2024-01-01T00:00:00Z",
        "2024-01-01T00:00:00.000Z",
        "2024-01-01T01:00:00+01:00",
        "2023-12-31T19:00:00-0500",
        "2024-01-01T00:00:00",
        "2024-01-01",
    ],
)
def test_iso_forms(text):
    dt = parse_instant(text)
    assert dt == NEW_YEAR
    assert dt.utcoffset() == timedelta(0)


def test_long_fraction_is_truncated_to_microseconds():
    dt = parse_instant("2024-01-01T00:00:00.123456789Z")
    assert dt.microsecond == 123456


def test_short_fraction_is_padded():
    assert parse_instant("2024-01-01T00:00:00.5Z").microsecond == 500000


def test_aware_datetime_passes_through():
    dt = datetime(2024, 5, 1, 12, tzinfo=UTC)
    assert parse_instant(dt) is dt


def test_naive_datetime_read_as_utc():
    assert parse_instant(datetime(2024, 1, 1)) == NEW_YEAR


@pytest.mark.parametrize("value", [True, False, None, [], {}])
def test_rejects_non_instants(value):
    with pytest.raises((TypeError, ValueError)):
        parse_instant(value)


@pytest.mark.parametrize("value", ["yesterday", "2024-13-01T00:00:00Z", "", float("nan"), float("inf")])
def test_rejects_unparseable(value):
    with pytest.raises(ValueError):
        parse_instant(value)


def test_to_epoch_ms():
    assert to_epoch_ms(NEW_YEAR) == NEW_YEAR_MS
    assert to_epoch_ms(datetime(2024, 1, 1, 1, tzinfo=timezone(timedelta(hours=1)))) == NEW_YEAR_MS
    assert to_epoch_ms(NEW_YEAR + timedelta(microseconds=1999)) == NEW_YEAR_MS + 1
    assert to_epoch_ms(42) == 42
    with pytest.raises(TypeError):
        to_epoch_ms(True)
    with pytest.raises(TypeError):
        to_epoch_ms("2024-01-01")


def test_from_epoch_ms_is_utc():
    dt = from_epoch_ms(0)
    assert dt == datetime(1970, 1, 1, tzinfo=UTC)
    assert dt.tzinfo is UTC


def test_formatting():
    assert format_date(date(2024, 3, 1)) == "2024-03-01"
    assert format_date(datetime(2024, 3, 1, 23, 30, tzinfo=timezone(timedelta(hours=-2)))) == "2024-03-02"


def test_ensure_aware():
    naive = datetime(2024, 1, 1)
    assert ensure_aware(naive).tzinfo is UTC
    aware = datetime(2024, 1, 1, tzinfo=timezone(timedelta(hours=3)))
    assert ensure_aware(aware) is aware
