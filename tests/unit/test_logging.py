# tests/unit/test_logging.py
"""
Structured logging: JSON schema, redaction, correlation id binding, the
event adapter and the rate limit filter.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys

import pytest

from metroproxy.observability.logging import (
    ContextFilter,
    JSONFormatter,
    LogConfig,
    RateLimitFilter,
    bind_correlation_id,
    configure_logging,
    correlation_id_var,
    get_logger,
    shutdown_logging,
)


def _record(msg: str = "hello %s", args=("world",), level=logging.INFO, **extra) -> logging.LogRecord:
    logger = logging.getLogger("metroproxy.test")
    return logger.makeRecord(logger.name, level, __file__, 1, msg, args, None, extra=extra or None)


def test_json_schema_and_extras():
    fmt = JSONFormatter(LogConfig(service="svc", version="1.2.3"))
    out = json.loads(fmt.format(_record(url="https://metro.test/trains")))
    assert out["message"] == "hello world"
    assert out["level"] == "INFO"
    assert out["logger"] == "metroproxy.test"
    assert out["service"] == "svc"
    assert out["version"] == "1.2.3"
    assert out["extra"]["url"] == "https://metro.test/trains"
    assert out["ts"].endswith("+00:00")


def test_redaction_of_keys_and_values():
    fmt = JSONFormatter(LogConfig())
    rec = _record("using token=abc123", (), headers={"Authorization": "Bearer x", "Accept": "json"})
    out = json.loads(fmt.format(rec))
    assert out["extra"]["headers"]["Authorization"] == "***"
    assert out["extra"]["headers"]["Accept"] == "json"
    assert "abc123" not in out["message"]


def test_exception_is_serialized():
    fmt = JSONFormatter(LogConfig(include_stack=True))
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        rec = logging.getLogger("metroproxy.test").makeRecord(
            "metroproxy.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
        )
    out = json.loads(fmt.format(rec))
    assert out["exception"]["type"] == "RuntimeError"
    assert "boom" in out["exception"]["stacktrace"]


def test_bind_correlation_id():
    assert correlation_id_var.get() is None
    with bind_correlation_id("req-1") as cid:
        assert cid == "req-1"
        rec = _record()
        ContextFilter().filter(rec)
        assert rec.correlation_id == "req-1"
        assert json.loads(JSONFormatter(LogConfig()).format(rec))["correlation_id"] == "req-1"
    assert correlation_id_var.get() is None

    with bind_correlation_id() as generated:
        assert generated and len(generated) > 10


def test_event_adapter(caplog):
    log = get_logger("metroproxy.test")
    with caplog.at_level(logging.INFO, logger="metroproxy.test"):
        log.event("stream.connected", url="https://metro.test", attempt=2, obj=object())
    rec = caplog.records[-1]
    assert rec.event == "stream.connected"
    assert rec.fields["url"] == "https://metro.test"
    assert rec.fields["attempt"] == 2
    assert isinstance(rec.fields["obj"], str)


def test_adapter_keeps_caller_extra(caplog):
    log = get_logger("metroproxy.test")
    with caplog.at_level(logging.INFO, logger="metroproxy.test"):
        log.info("fetched", extra={"url": "https://metro.test/trains", "elapsed_ms": 3.5})
    rec = caplog.records[-1]
    assert rec.url == "https://metro.test/trains"
    assert rec.elapsed_ms == 3.5


def test_rate_limit_filter():
    f = RateLimitFilter(rate=0.0, burst=2.0)
    results = [f.filter(_record("same", ())) for _ in range(3)]
    assert results == [True, True, False]
    assert f.filter(_record("other", ())) is True


def test_configure_and_shutdown():
    base = logging.getLogger("metroproxy")
    adapter = configure_logging(LogConfig(level="DEBUG", stdout=False))
    try:
        assert adapter.logger is base
        assert base.level == logging.DEBUG
        assert base.propagate is False
        assert any(isinstance(h, logging.handlers.QueueHandler) for h in base.handlers)
    finally:
        shutdown_logging()
    assert base.propagate is True
    assert not any(isinstance(h, logging.handlers.QueueHandler) for h in base.handlers)
    base.setLevel(logging.NOTSET)


@pytest.mark.parametrize("level,expected", [("warning", logging.WARNING), ("bogus", logging.INFO)])
def test_level_parsing(level, expected):
    configure_logging(LogConfig(level=level, stdout=False))
    try:
        assert logging.getLogger("metroproxy").level == expected
    finally:
        shutdown_logging()
        logging.getLogger("metroproxy").setLevel(logging.NOTSET)
