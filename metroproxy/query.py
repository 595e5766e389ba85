# metroproxy/query.py
# -*- coding: utf-8 -*-
"""
Query encoder.

Turns options objects into the canonical query representation the proxy
expects:

    props      -> "a.b,c"              comma-joined dot paths, no escaping
    time       -> "<from>...<to>"      epoch ms, either side may be empty
                  "<at>"               a point in time, no "..."
    flags      -> present, valueless   omitted when false
    lists      -> "x,y"
    active     -> "1" | "0"            omitted when unset
    date       -> "YYYY-MM-DD"

Options that are unset are omitted, never sent empty. Encoding is pure and
total over validated options (see options.py).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, Union

import httpx

from .utils.time import format_date, from_epoch_ms, to_epoch_ms

__all__ = [
    "ParamKind",
    "QueryField",
    "SupportsQuery",
    "serialize_props",
    "serialize_time_filter",
    "serialize_flag",
    "serialize_list",
    "serialize_date",
    "encode_fields",
    "build_query",
    "parse_props",
    "parse_time_filter",
    "parse_list",
]

RANGE_SEP = "..."


class ParamKind(enum.Enum):
    PROPS = "props"
    TIME = "time"
    INTEGER = "integer"
    TRISTATE = "tristate"
    FLAG = "flag"
    LIST = "list"
    DATE = "date"
    TEXT = "text"


@dataclass(frozen=True)
class QueryField:
    name: str
    kind: ParamKind
    value: Any


class SupportsQuery(Protocol):
    def query_fields(self) -> Tuple[QueryField, ...]: ...


# --------------------------- Serializers --------------------------- #

def serialize_props(props: Sequence[str]) -> str:
    return ",".join(props)


def serialize_time_filter(time_filter: Any) -> str:
    """Works on anything with `at`, `from_` and `to` attributes (TimeFilter)."""
    if time_filter.at is not None:
        return str(to_epoch_ms(time_filter.at))
    start = "" if time_filter.from_ is None else str(to_epoch_ms(time_filter.from_))
    end = "" if time_filter.to is None else str(to_epoch_ms(time_filter.to))
    return f"{start}{RANGE_SEP}{end}"


def serialize_flag(value: Optional[bool]) -> Optional[str]:
    return "" if value else None


def serialize_list(values: Iterable[Any]) -> str:
    return ",".join(str(v) for v in values)


def serialize_date(value: Union[date, datetime]) -> str:
    return format_date(value)


def _encode_value(field: QueryField) -> Optional[str]:
    value = field.value
    if value is None:
        return None
    kind = field.kind
    # an empty filter is the same as no filter
    if kind in (ParamKind.PROPS, ParamKind.LIST) and not value:
        return None
    if kind is ParamKind.PROPS:
        return serialize_props(value)
    if kind is ParamKind.TIME:
        return serialize_time_filter(value)
    if kind is ParamKind.INTEGER:
        return str(int(value))
    if kind is ParamKind.TRISTATE:
        return "1" if value else "0"
    if kind is ParamKind.FLAG:
        return serialize_flag(value)
    if kind is ParamKind.LIST:
        return serialize_list(value)
    if kind is ParamKind.DATE:
        return serialize_date(value)
    return str(value)


def encode_fields(fields: Iterable[QueryField]) -> List[Tuple[str, str]]:
    """Ordered (name, value) pairs, unset fields dropped."""
    pairs: List[Tuple[str, str]] = []
    for field in fields:
        encoded = _encode_value(field)
        if encoded is not None:
            pairs.append((field.name, encoded))
    return pairs


def build_query(options: Optional[SupportsQuery], *extra: QueryField) -> httpx.QueryParams:
    fields: List[QueryField] = list(extra)
    if options is not None:
        fields.extend(options.query_fields())
    return httpx.QueryParams(encode_fields(fields))


# --------------------------- Decoders --------------------------- #

def parse_props(value: str) -> Tuple[str, ...]:
    return tuple(p for p in value.split(",") if p)


def parse_list(value: str) -> Tuple[str, ...]:
    return tuple(v for v in value.split(",") if v)


def parse_time_filter(value: str) -> Dict[str, datetime]:
    """
    Inverse of serialize_time_filter, as a mapping with keys 'at', 'from', 'to'.
    Raises ValueError on malformed input.
    """
    if RANGE_SEP not in value:
        return {"at": from_epoch_ms(int(value))}
    start, end = value.split(RANGE_SEP, 1)
    out: Dict[str, datetime] = {}
    if start:
        out["from"] = from_epoch_ms(int(start))
    if end:
        out["to"] = from_epoch_ms(int(end))
    if not out:
        raise ValueError("Empty time range")
    return out
