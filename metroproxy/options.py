# metroproxy/options.py
# -*- coding: utf-8 -*-
"""
Typed request options.

Every options object validates itself on construction and declares, in wire
order, the query parameters it contributes (`query_fields()`); the query
encoder turns those into the canonical query string.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Sequence, Tuple, Union

from .errors import ValidationError
from .query import ParamKind, QueryField
from .utils.time import Instant, to_epoch_ms

__all__ = [
    "TimeFilter",
    "PropsOptions",
    "TrainsOptions",
    "TrainOptions",
    "DueTimesOptions",
    "TrainHistoryOptions",
    "HeartbeatErrorsOptions",
    "TimetableOptions",
    "HistoryStreamOptions",
    "TrainHistoryStreamOptions",
    "TrainsHistoryStreamOptions",
    "DueTimesStreamOptions",
    "HeartbeatErrorsStreamOptions",
]

PropsFilter = Tuple[str, ...]


def _props(value: Optional[Sequence[str]], field_name: str) -> Optional[PropsFilter]:
    if value is None:
        return None
    if isinstance(value, str):
        raise ValidationError(f"{field_name} must be a sequence of paths, not a string")
    paths = tuple(value)
    if not paths:
        raise ValidationError(f"{field_name} must name at least one path; use None to send no filter")
    for p in paths:
        if not isinstance(p, str) or not p:
            raise ValidationError(f"{field_name} contains an empty or non-string path: {p!r}")
        if "," in p:
            raise ValidationError(f"{field_name} path may not contain ',': {p!r}")
    return paths


def _names(value: Optional[Sequence[str]], field_name: str) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        raise ValidationError(f"{field_name} must be a sequence, not a string")
    items = tuple(str(v) for v in value)
    if not items:
        raise ValidationError(f"{field_name} must not be empty; use None to send no filter")
    for v in items:
        if not v or "," in v:
            raise ValidationError(f"{field_name} item may not be empty or contain ',': {v!r}")
    return items


def _instant(value: Optional[Instant], field_name: str) -> Optional[Instant]:
    if value is None:
        return None
    try:
        to_epoch_ms(value)
    except TypeError as e:
        raise ValidationError(f"{field_name}: {e}") from e
    return value


@dataclass(frozen=True)
class TimeFilter:
    """
    Point in time (`at`) or a range open on either side (`from_`, `to`).

    Legal forms: {at}, {from_}, {to}, {from_, to}.
    """
    at: Optional[Instant] = None
    from_: Optional[Instant] = None
    to: Optional[Instant] = None

    def __post_init__(self) -> None:
        _instant(self.at, "at")
        _instant(self.from_, "from")
        _instant(self.to, "to")
        if self.at is not None and (self.from_ is not None or self.to is not None):
            raise ValidationError("TimeFilter.at cannot be combined with from/to")
        if self.at is None and self.from_ is None and self.to is None:
            raise ValidationError("TimeFilter requires at, from or to")
        if self.from_ is not None and self.to is not None and to_epoch_ms(self.from_) > to_epoch_ms(self.to):
            raise ValidationError("TimeFilter.from must not be after to")

    @classmethod
    def point(cls, at: Instant) -> "TimeFilter":
        return cls(at=at)

    @classmethod
    def between(cls, start: Instant, end: Instant) -> "TimeFilter":
        return cls(from_=start, to=end)

    @classmethod
    def since(cls, start: Instant) -> "TimeFilter":
        return cls(from_=start)

    @classmethod
    def until(cls, end: Instant) -> "TimeFilter":
        return cls(to=end)


@dataclass(frozen=True)
class PropsOptions:
    """Options for endpoints that only accept a property filter."""
    props: Optional[Sequence[str]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "props", _props(self.props, "props"))

    def query_fields(self) -> Tuple[QueryField, ...]:
        return (QueryField("props", ParamKind.PROPS, self.props),)


TrainsOptions = PropsOptions
TrainOptions = PropsOptions
DueTimesOptions = PropsOptions
TrainHistoryStreamOptions = PropsOptions
DueTimesStreamOptions = PropsOptions


@dataclass(frozen=True)
class TrainHistoryOptions:
    """
    Options for `/history/train/{trn}`.

    active: True = only entries while active, False = only active/inactive
    transitions, None = everything.
    """
    time: Optional[TimeFilter] = None
    limit: Optional[int] = None
    active: Optional[bool] = None
    props: Optional[Sequence[str]] = None

    def __post_init__(self) -> None:
        if self.time is not None and not isinstance(self.time, TimeFilter):
            raise ValidationError("time must be a TimeFilter")
        if self.limit is not None and (isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit <= 0):
            raise ValidationError(f"limit must be a positive integer, got {self.limit!r}")
        if self.active is not None and not isinstance(self.active, bool):
            raise ValidationError("active must be a bool or None")
        object.__setattr__(self, "props", _props(self.props, "props"))

    def query_fields(self) -> Tuple[QueryField, ...]:
        return (
            QueryField("time", ParamKind.TIME, self.time),
            QueryField("limit", ParamKind.INTEGER, self.limit),
            QueryField("active", ParamKind.TRISTATE, self.active),
            QueryField("props", ParamKind.PROPS, self.props),
        )


@dataclass(frozen=True)
class HeartbeatErrorsOptions:
    """
    Options for `/history/heartbeat-errors`.

    With warnings=True the response is {"errors": [...], "warnings": [...]},
    otherwise a bare list of errors.
    """
    warnings: bool = False
    time: Optional[TimeFilter] = None
    apis: Optional[Sequence[str]] = None

    def __post_init__(self) -> None:
        if self.time is not None and not isinstance(self.time, TimeFilter):
            raise ValidationError("time must be a TimeFilter")
        object.__setattr__(self, "apis", _names(self.apis, "apis"))

    def query_fields(self) -> Tuple[QueryField, ...]:
        return (
            QueryField("warnings", ParamKind.FLAG, self.warnings),
            QueryField("time", ParamKind.TIME, self.time),
            QueryField("apis", ParamKind.LIST, self.apis),
        )


@dataclass(frozen=True)
class TimetableOptions:
    """Options for `/timetable`. `date` defaults to today on the server."""
    date: Optional[Union[date, datetime]] = None
    trn: Optional[str] = None
    station: Optional[str] = None
    direction: Optional[str] = None
    empty_maneuvers: bool = False
    empty_maneuver_props: Optional[Sequence[str]] = None
    table_props: Optional[Sequence[str]] = None

    def __post_init__(self) -> None:
        if self.date is not None and not isinstance(self.date, date):
            raise ValidationError("date must be a date or datetime")
        object.__setattr__(self, "empty_maneuver_props", _props(self.empty_maneuver_props, "empty_maneuver_props"))
        object.__setattr__(self, "table_props", _props(self.table_props, "table_props"))

    def query_fields(self) -> Tuple[QueryField, ...]:
        return (
            QueryField("trn", ParamKind.TEXT, self.trn),
            QueryField("station", ParamKind.TEXT, self.station),
            QueryField("direction", ParamKind.TEXT, self.direction),
            QueryField("emptyManeuvers", ParamKind.FLAG, self.empty_maneuvers),
            QueryField("date", ParamKind.DATE, self.date),
            QueryField("emptyManeuverProps", ParamKind.PROPS, self.empty_maneuver_props),
            QueryField("tableProps", ParamKind.PROPS, self.table_props),
        )


# --------------------------- Streams --------------------------- #

@dataclass(frozen=True)
class HistoryStreamOptions:
    """`/history/stream`: `train_props` filters the `new-trains-history` payloads."""
    train_props: Optional[Sequence[str]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "train_props", _props(self.train_props, "train_props"))

    def query_fields(self) -> Tuple[QueryField, ...]:
        return (QueryField("trainProps", ParamKind.PROPS, self.train_props),)


@dataclass(frozen=True)
class TrainsHistoryStreamOptions:
    """`/history/trains/stream`: restrict to `trns`, filter with `train_props`."""
    trns: Optional[Sequence[str]] = None
    train_props: Optional[Sequence[str]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "trns", _names(self.trns, "trns"))
        object.__setattr__(self, "train_props", _props(self.train_props, "train_props"))

    def query_fields(self) -> Tuple[QueryField, ...]:
        return (
            QueryField("trains", ParamKind.LIST, self.trns),
            QueryField("trainProps", ParamKind.PROPS, self.train_props),
        )


@dataclass(frozen=True)
class HeartbeatErrorsStreamOptions:
    """`/history/heartbeat-errors/stream`. `warnings` is set by the client from the callbacks given."""
    apis: Optional[Sequence[str]] = None
    warnings: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "apis", _names(self.apis, "apis"))

    def query_fields(self) -> Tuple[QueryField, ...]:
        return (
            QueryField("warnings", ParamKind.FLAG, self.warnings),
            QueryField("apis", ParamKind.LIST, self.apis),
        )
