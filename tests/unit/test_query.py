# tests/unit/test_query.py
"""
Query encoder: canonical parameter strings for props, time filters, flags,
lists and the tri-state `active`; unset options are never sent.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

import httpx
import pytest

from metroproxy.options import (
    HeartbeatErrorsOptions,
    HeartbeatErrorsStreamOptions,
    HistoryStreamOptions,
    PropsOptions,
    TimeFilter,
    TimetableOptions,
    TrainHistoryOptions,
    TrainsHistoryStreamOptions,
)
from metroproxy.query import (
    ParamKind,
    QueryField,
    build_query,
    encode_fields,
    parse_list,
    parse_props,
    parse_time_filter,
    serialize_flag,
    serialize_list,
    serialize_props,
    serialize_time_filter,
)
from metroproxy.utils.time import UTC

T1 = datetime(2024, 1, 1, tzinfo=UTC)
T2 = T1 + timedelta(hours=1)
T1_MS = 1_704_067_200_000
T2_MS = T1_MS + 3_600_000


# ---------------------------- time filters ---------------------------- #

def test_range_encodes_with_three_dots():
    assert serialize_time_filter(TimeFilter(from_=T1, to=T2)) == f"{T1_MS}...{T2_MS}"


def test_point_has_no_separator():
    assert serialize_time_filter(TimeFilter(at=T1)) == str(T1_MS)


def test_open_ranges():
    assert serialize_time_filter(TimeFilter.since(T1)) == f"{T1_MS}..."
    assert serialize_time_filter(TimeFilter.until(T2)) == f"...{T2_MS}"


def test_epoch_ms_numbers_are_accepted():
    assert serialize_time_filter(TimeFilter.between(T1_MS, T2_MS)) == f"{T1_MS}...{T2_MS}"


@pytest.mark.parametrize(
    "tf",
    [TimeFilter(at=T1), TimeFilter(from_=T1, to=T2), TimeFilter(from_=T1), TimeFilter(to=T2)],
)
def test_time_filter_decodes_back(tf):
    decoded = parse_time_filter(serialize_time_filter(tf))
    expected = {k: v for k, v in (("at", tf.at), ("from", tf.from_), ("to", tf.to)) if v is not None}
    assert decoded == expected


def test_parse_time_filter_rejects_empty_range():
    with pytest.raises(ValueError):
        parse_time_filter("...")
    with pytest.raises(ValueError):
        parse_time_filter("soon")


# ---------------------------- scalars ---------------------------- #

def test_props_are_comma_joined_without_escaping():
    assert serialize_props(["trains.status.timesAPI", "lastChecked"]) == "trains.status.timesAPI,lastChecked"
    assert parse_props("trains.keys,lastChecked") == ("trains.keys", "lastChecked")


def test_flags_and_lists():
    assert serialize_flag(True) == ""
    assert serialize_flag(False) is None
    assert serialize_list(["timesAPI", "trainStatusesAPI"]) == "timesAPI,trainStatusesAPI"
    assert parse_list("101,102,") == ("101", "102")


def test_encode_fields_drops_unset():
    pairs = encode_fields(
        [
            QueryField("a", ParamKind.TEXT, None),
            QueryField("b", ParamKind.FLAG, False),
            QueryField("c", ParamKind.INTEGER, 3),
            QueryField("d", ParamKind.FLAG, True),
        ]
    )
    assert pairs == [("c", "3"), ("d", "")]


def test_empty_sequences_are_never_sent_as_empty_values():
    pairs = encode_fields(
        [
            QueryField("props", ParamKind.PROPS, ()),
            QueryField("apis", ParamKind.LIST, []),
            QueryField("trains", ParamKind.LIST, ["101"]),
        ]
    )
    assert pairs == [("trains", "101")]


# ---------------------------- options -> query ---------------------------- #

def test_no_options_means_no_query():
    assert str(build_query(None)) == ""
    assert str(build_query(PropsOptions())) == ""


def test_props_options():
    q = build_query(PropsOptions(props=["trains.status", "lastChecked"]))
    assert q.multi_items() == [("props", "trains.status,lastChecked")]


def test_train_history_options_in_declaration_order():
    opts = TrainHistoryOptions(time=TimeFilter(from_=T1, to=T2), limit=5, active=True, props=["extract"])
    q = build_query(opts)
    assert q.multi_items() == [
        ("time", f"{T1_MS}...{T2_MS}"),
        ("limit", "5"),
        ("active", "1"),
        ("props", "extract"),
    ]


def test_active_false_is_zero_and_unset_is_omitted():
    assert build_query(TrainHistoryOptions(active=False)).get("active") == "0"
    assert "active" not in build_query(TrainHistoryOptions())


def test_equal_options_encode_identically():
    a = TrainHistoryOptions(limit=3, props=["summary"])
    b = TrainHistoryOptions(limit=3, props=("summary",))
    assert str(build_query(a)) == str(build_query(b))


def test_heartbeat_errors_flag_is_valueless():
    q = build_query(HeartbeatErrorsOptions(warnings=True, apis=["timesAPI"]))
    assert q.multi_items() == [("warnings", ""), ("apis", "timesAPI")]
    assert str(q).startswith("warnings=&")
    assert "warnings" not in build_query(HeartbeatErrorsOptions(apis=["timesAPI"]))


def test_timetable_options():
    q = build_query(
        TimetableOptions(date=date(2024, 3, 1), trn="101", empty_maneuvers=True, table_props=["departures"])
    )
    assert q.multi_items() == [
        ("trn", "101"),
        ("emptyManeuvers", ""),
        ("date", "2024-03-01"),
        ("tableProps", "departures"),
    ]


def test_stream_options():
    assert build_query(HistoryStreamOptions(train_props=["status"])).multi_items() == [("trainProps", "status")]
    assert build_query(TrainsHistoryStreamOptions(trns=["101", "102"])).multi_items() == [("trains", "101,102")]
    assert build_query(HeartbeatErrorsStreamOptions(apis=["a"], warnings=True)).multi_items() == [
        ("warnings", ""),
        ("apis", "a"),
    ]


def test_extra_fields_come_first():
    q = build_query(PropsOptions(props=["x"]), QueryField("type", ParamKind.TEXT, "all"))
    assert q.multi_items() == [("type", "all"), ("props", "x")]
    assert isinstance(q, httpx.QueryParams)
