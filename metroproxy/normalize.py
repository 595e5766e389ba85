# metroproxy/normalize.py
# -*- coding: utf-8 -*-
"""
Response normalizer.

Normalization is shape-directed: every endpoint declares (shapes.py) the
finite set of paths where an instant or a tagged union can occur. The walker
visits only those paths, on a deep copy of the decoded payload:

  * absent key            -> skipped, nothing substituted
  * None                  -> kept as None
  * Instant               -> aware UTC datetime, ShapeError if unreadable
  * CollatedStatusNode    -> CollatedStatus, arms chosen by key presence
  * HistoryEntryNode      -> ActiveHistoryEntry | InactiveHistoryEntry
  * ListOf / MapOf        -> each element independently
  * unexpected container  -> left as is (filters such as `trains.keys`
                             legitimately turn a mapping into a list)

Already-converted values (datetime, resolved unions) are left untouched, which
makes normalize(shape, normalize(shape, x)) == normalize(shape, x).
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping, Optional

from .errors import ShapeError
from .models import (
    TIMES_API,
    TRAIN_STATUSES_API,
    ActiveHistoryEntry,
    CollatedStatus,
    InactiveHistoryEntry,
)
from .utils.time import parse_instant

__all__ = [
    "Node",
    "Opaque",
    "Instant",
    "Record",
    "ListOf",
    "MapOf",
    "EitherShape",
    "CollatedStatusNode",
    "HistoryEntryNode",
    "normalize",
]


def _key(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


class Node:
    """A position in a response shape."""

    def apply(self, value: Any, path: str) -> Any:
        raise NotImplementedError


class Opaque(Node):
    """Plain data, copied through untouched."""

    def apply(self, value: Any, path: str) -> Any:
        return value

    def __repr__(self) -> str:
        return "Opaque()"


class Instant(Node):
    """A temporal field; epoch milliseconds or ISO-8601 on the wire."""

    def apply(self, value: Any, path: str) -> Any:
        if value is None:
            return None
        try:
            return parse_instant(value)
        except (TypeError, ValueError, OverflowError) as e:
            raise ShapeError(path or "$", value, str(e)) from e

    def __repr__(self) -> str:
        return "Instant()"


class Record(Node):
    """An object with a known set of optional fields."""

    def __init__(self, fields: Optional[Mapping[str, Node]] = None, **kwargs: Node):
        self.fields: Dict[str, Node] = {**(fields or {}), **kwargs}

    def extend(self, **kwargs: Node) -> "Record":
        return Record(self.fields, **kwargs)

    def without(self, *names: str) -> "Record":
        return Record({k: v for k, v in self.fields.items() if k not in names})

    def apply(self, value: Any, path: str) -> Any:
        if not isinstance(value, dict):
            return value
        for name, node in self.fields.items():
            if name in value:
                value[name] = node.apply(value[name], _key(path, name))
        return value

    def __repr__(self) -> str:
        return f"Record({self.fields!r})"


class ListOf(Node):
    def __init__(self, item: Node):
        self.item = item

    def apply(self, value: Any, path: str) -> Any:
        if not isinstance(value, list):
            return value
        for i, item in enumerate(value):
            value[i] = self.item.apply(item, f"{path}[{i}]")
        return value

    def __repr__(self) -> str:
        return f"ListOf({self.item!r})"


class MapOf(Node):
    """A mapping keyed by identifiers (TRN, platform code)."""

    def __init__(self, item: Node):
        self.item = item

    def apply(self, value: Any, path: str) -> Any:
        if not isinstance(value, dict):
            return value
        for key in list(value):
            value[key] = self.item.apply(value[key], _key(path, str(key)))
        return value

    def __repr__(self) -> str:
        return f"MapOf({self.item!r})"


class EitherShape(Node):
    """Top-level form chosen by the request (e.g. heartbeat errors with/without warnings)."""

    def __init__(self, *, list_shape: Node, mapping_shape: Node):
        self.list_shape = list_shape
        self.mapping_shape = mapping_shape

    def apply(self, value: Any, path: str) -> Any:
        if isinstance(value, list):
            return self.list_shape.apply(value, path)
        if isinstance(value, dict):
            return self.mapping_shape.apply(value, path)
        return value


class CollatedStatusNode(Node):
    """Tagged union over the Times API and Train Statuses API arms."""

    def __init__(self, *, times_api: Node, train_statuses_api: Node):
        self.times_api = times_api
        self.train_statuses_api = train_statuses_api

    def apply(self, value: Any, path: str) -> Any:
        if isinstance(value, CollatedStatus) or not isinstance(value, dict):
            return value
        times = value.get(TIMES_API)
        statuses = value.get(TRAIN_STATUSES_API)
        if times is not None:
            times = self.times_api.apply(times, _key(path, TIMES_API))
        if statuses is not None:
            statuses = self.train_statuses_api.apply(statuses, _key(path, TRAIN_STATUSES_API))
        return CollatedStatus(times_api=times, train_statuses_api=statuses)


class HistoryEntryNode(Node):
    """
    Two-variant union keyed by `active`.

    When a props filter removed `active`, a present `status` still selects the
    active arm; with neither, the entry stays an (normalized) mapping.
    """

    def __init__(self, *, status: Node):
        self.status = status
        self._date = Instant()

    def apply(self, value: Any, path: str) -> Any:
        if isinstance(value, (ActiveHistoryEntry, InactiveHistoryEntry)) or not isinstance(value, dict):
            return value
        if "date" in value:
            value["date"] = self._date.apply(value["date"], _key(path, "date"))
        if "status" in value:
            value["status"] = self.status.apply(value["status"], _key(path, "status"))

        active = value.get("active")
        if active is True or ("active" not in value and "status" in value):
            return ActiveHistoryEntry(date=value.get("date"), status=value.get("status"))
        if active is False:
            return InactiveHistoryEntry(date=value.get("date"))
        return value


def normalize(shape: Node, raw: Any) -> Any:
    """Normalize a decoded JSON value. `raw` itself is never mutated."""
    return shape.apply(copy.deepcopy(raw), "")
