# metroproxy/shapes.py
# -*- coding: utf-8 -*-
"""
Response shapes, one per endpoint and per stream event kind.

Only the paths that need conversion are declared; everything else in a
payload is carried through as plain JSON.
"""

from __future__ import annotations

from .normalize import (
    CollatedStatusNode,
    EitherShape,
    HistoryEntryNode,
    Instant,
    ListOf,
    MapOf,
    Record,
)

# --------------------------- Building blocks --------------------------- #

DUE_TIME = Record(actualScheduledTime=Instant(), actualPredictedTime=Instant())

TIMES_API_DATA = Record(
    lastEvent=Record(time=Instant()),
    plannedDestinations=ListOf(Record({"from": Record(time=Instant())})),
    nextPlatforms=ListOf(Record(time=DUE_TIME)),
)

# Train Statuses API data has no temporal fields; lastSeen is a display string.
TRAIN_STATUSES_API_DATA = Record()

COLLATED_STATUS = CollatedStatusNode(
    times_api=TIMES_API_DATA,
    train_statuses_api=TRAIN_STATUSES_API_DATA,
)

# History only stores where a train has been, not where it is due.
HISTORY_STATUS = CollatedStatusNode(
    times_api=TIMES_API_DATA.without("nextPlatforms"),
    train_statuses_api=TRAIN_STATUSES_API_DATA,
)

HISTORY_ENTRY = HistoryEntryNode(status=HISTORY_STATUS)

HISTORY_SUMMARY_ENTRY = Record(firstEntry=Instant(), lastEntry=Instant())

HEARTBEAT_ENTRY = Record(date=Instant())

PLATFORM_DUE = Record(time=DUE_TIME, status=COLLATED_STATUS)
STATION_DUE = PLATFORM_DUE

# --------------------------- REST responses --------------------------- #

TRAINS = Record(
    lastChecked=Instant(),
    trains=MapOf(Record(status=COLLATED_STATUS, lastChanged=Instant())),
)

TRAIN = Record(
    lastChecked=Instant(),
    lastChanged=Instant(),
    status=COLLATED_STATUS,
)

DUE_TIMES = Record(
    lastChecked=Instant(),
    dueTimes=MapOf(ListOf(Record(time=DUE_TIME))),
)

STATION_DUE_TIMES = Record(lastChecked=Instant(), dueTimes=ListOf(STATION_DUE))

PLATFORM_DUE_TIMES = Record(lastChecked=Instant(), dueTimes=ListOf(PLATFORM_DUE))

HISTORY_SUMMARY = Record(
    lastChecked=Instant(),
    trains=MapOf(HISTORY_SUMMARY_ENTRY),
    heartbeatErrors=HISTORY_SUMMARY_ENTRY,
    heartbeatWarnings=HISTORY_SUMMARY_ENTRY,
)

TRAIN_HISTORY = Record(
    lastChecked=Instant(),
    summary=HISTORY_SUMMARY_ENTRY,
    extract=ListOf(HISTORY_ENTRY),
)

HEARTBEAT_ERRORS = EitherShape(
    list_shape=ListOf(HEARTBEAT_ENTRY),
    mapping_shape=Record(errors=ListOf(HEARTBEAT_ENTRY), warnings=ListOf(HEARTBEAT_ENTRY)),
)

# --------------------------- Stream payloads --------------------------- #

NEW_TRAINS_HISTORY = Record(date=Instant(), trains=MapOf(HISTORY_ENTRY))

# A single history entry with the heartbeat date in place of its own.
NEW_TRAIN_HISTORY = HISTORY_ENTRY

HEARTBEAT_ERROR_EVENT = HEARTBEAT_ENTRY
HEARTBEAT_WARNINGS_EVENT = HEARTBEAT_ENTRY

STATION_DUE_TIMES_EVENT = Record(date=Instant(), dueTimes=ListOf(STATION_DUE))
PLATFORM_DUE_TIMES_EVENT = Record(date=Instant(), dueTimes=ListOf(PLATFORM_DUE))
