# metroproxy/models.py
# -*- coding: utf-8 -*-
"""
Domain records returned by the metro proxy client.

Most responses stay plain dicts after normalization, because the proxy can
filter any subtree away (`props`) and a dict represents "absent" faithfully.
The two tagged unions of the wire format are resolved into explicit variants:

  * collated train status  -> CollatedStatus (source arm(s) chosen by presence)
  * train history entry    -> ActiveHistoryEntry | InactiveHistoryEntry

TypedDicts below document the full (unfiltered) wire shapes for type checkers.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, TypedDict, Union

__all__ = [
    "StatusSource",
    "ActiveTrainState",
    "TimetableType",
    "PlatformNumber",
    "CollatedStatus",
    "ActiveHistoryEntry",
    "InactiveHistoryEntry",
    "TrainHistoryEntry",
    "ParsedLastSeen",
    "ParsedTimesAPILocation",
    "DueTime",
    "TimesApiData",
    "TrainStatusesApiData",
    "HistorySummary",
    "TrainsResponse",
    "TrainResponse",
    "TrainHistoryResponse",
    "HistorySummaryResponse",
    "HeartbeatErrorEntry",
    "HeartbeatWarningsEntry",
]

TIMES_API = "timesAPI"
TRAIN_STATUSES_API = "trainStatusesAPI"

PlatformNumber = Literal[1, 2, 3, 4]


class StatusSource(str, enum.Enum):
    """Which upstream API(s) contributed to a collated status."""
    TIMES_API = "timesAPI"
    TRAIN_STATUSES_API = "trainStatusesAPI"
    BOTH = "both"
    # Both arms removed by a props filter
    NONE = "none"


class ActiveTrainState(str, enum.Enum):
    APPROACHING = "Approaching"
    ARRIVED = "Arrived"
    READY_TO_START = "Ready to start"
    DEPARTED = "Departed"


class TimetableType(enum.IntEnum):
    DEPOT_START = 1
    PASSENGER_STOP = 2
    ECS_OR_SKIP = 3
    DEPOT_END = 4


# --------------------------- Resolved unions --------------------------- #

@dataclass(frozen=True)
class CollatedStatus:
    """
    Train status collated from the Times API and/or the Train Statuses API.

    On the wire at least one arm is present; a props filter may remove both,
    in which case `source` is StatusSource.NONE.
    """
    times_api: Optional[Dict[str, Any]] = None
    train_statuses_api: Optional[Dict[str, Any]] = None

    @property
    def source(self) -> StatusSource:
        if self.times_api is not None and self.train_statuses_api is not None:
            return StatusSource.BOTH
        if self.times_api is not None:
            return StatusSource.TIMES_API
        if self.train_statuses_api is not None:
            return StatusSource.TRAIN_STATUSES_API
        return StatusSource.NONE

    def to_wire(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.times_api is not None:
            out[TIMES_API] = self.times_api
        if self.train_statuses_api is not None:
            out[TRAIN_STATUSES_API] = self.train_statuses_api
        return out


@dataclass(frozen=True)
class InactiveHistoryEntry:
    """History entry recorded while the train was not active. `date` is None when filtered out."""
    date: Optional[datetime] = None

    @property
    def active(self) -> Literal[False]:
        return False


@dataclass(frozen=True)
class ActiveHistoryEntry:
    """History entry recorded while the train was active."""
    date: Optional[datetime] = None
    status: Optional[CollatedStatus] = None

    @property
    def active(self) -> Literal[True]:
        return True


TrainHistoryEntry = Union[ActiveHistoryEntry, InactiveHistoryEntry]


# --------------------------- Parsed strings --------------------------- #

@dataclass(frozen=True)
class ParsedLastSeen:
    state: ActiveTrainState
    station: str
    platform: int
    hours: int
    minutes: int


@dataclass(frozen=True)
class ParsedTimesAPILocation:
    station: str
    platform: int


# --------------------------- Wire shapes (documentation) --------------------------- #

class DueTime(TypedDict):
    # 0 = "Due", -1 = "Arrived", -2 = "Delayed"
    dueIn: int
    actualScheduledTime: Optional[datetime]
    actualPredictedTime: datetime


class _LastEvent(TypedDict):
    type: str
    location: str
    time: datetime


class _DestinationFrom(TypedDict):
    platformCode: str
    time: datetime


_PlannedDestination = TypedDict("_PlannedDestination", {"name": str, "from": _DestinationFrom})


class _NextPlatform(TypedDict):
    code: str
    time: DueTime


class TimesApiData(TypedDict, total=False):
    lastEvent: _LastEvent
    plannedDestinations: List[_PlannedDestination]
    nextPlatforms: List[_NextPlatform]


class TrainStatusesApiData(TypedDict):
    destination: str
    lastSeen: str


class HistorySummary(TypedDict):
    numEntries: int
    firstEntry: datetime
    lastEntry: datetime


class _TrainsEntry(TypedDict, total=False):
    status: CollatedStatus
    lastChanged: datetime


class TrainsResponse(TypedDict, total=False):
    lastChecked: datetime
    trains: Dict[str, _TrainsEntry]


class TrainResponse(TypedDict, total=False):
    lastChecked: datetime
    lastChanged: Optional[datetime]
    timetable: Optional[Dict[str, Any]]
    status: CollatedStatus


class TrainHistoryResponse(TypedDict, total=False):
    lastChecked: datetime
    summary: HistorySummary
    extract: List[TrainHistoryEntry]


class HistorySummaryResponse(TypedDict, total=False):
    lastChecked: datetime
    trains: Dict[str, HistorySummary]
    heartbeatErrors: HistorySummary
    heartbeatWarnings: HistorySummary


class HeartbeatErrorEntry(TypedDict):
    date: datetime
    api: str
    message: str


class HeartbeatWarningsEntry(TypedDict):
    date: datetime
    api: str
    # structure depends on the producing API
    warnings: Any
