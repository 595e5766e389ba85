# metroproxy/observability/logging.py
"""
Structured logging for the metro proxy client.

The library itself only ever calls `logging.getLogger("metroproxy.<module>")`;
nothing here runs unless the application opts in with `configure_logging()`.

Features:
- JSON formatter with stable schema: ts, level, logger, message, event, fields,
  service, version, correlation_id, extra, exception.
- Correlation id propagated with contextvars and sent as X-Request-Id.
- Secret redaction (configurable keys and patterns), safe JSON serialization.
- Non-blocking output via QueueHandler + QueueListener.
- Per-key rate limiting, so a misbehaving stream cannot flood the log with
  dropped-frame warnings.
- Structured adapter: log.event("stream.connected", url=...).

Only stdlib required.
"""

from __future__ import annotations

import contextlib
import contextvars
import datetime as _dt
import json
import logging
import logging.handlers
import os
import queue
import re
import sys
import threading
import time
import traceback
import typing as t
from dataclasses import dataclass, field

correlation_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("metro_correlation_id", default=None)

_RESERVED = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module", "exc_info", "exc_text",
    "stack_info", "lineno", "funcName", "created", "msecs", "relativeCreated", "thread", "threadName", "processName",
    "process", "asctime", "taskName", "message",
}
_OWN = ("event", "fields", "correlation_id", "suppressed")


def _utc_now_iso() -> str:
    return _dt.datetime.now(tz=_dt.timezone.utc).isoformat(timespec="milliseconds")


def _safe_repr(obj: t.Any) -> t.Any:
    try:
        json.dumps(obj)
        return obj
    except (TypeError, ValueError):
        try:
            return repr(obj)
        except Exception:
            return f"<unserializable type={type(obj).__name__}>"


def _walk_and_redact(value: t.Any, redact_keys: list[re.Pattern], redact_patterns: list[re.Pattern], depth: int = 0) -> t.Any:
    if depth > 6:
        return _safe_repr(value)
    if isinstance(value, dict):
        out: dict[str, t.Any] = {}
        for k, v in value.items():
            if any(p.search(str(k)) for p in redact_keys):
                out[str(k)] = "***"
            else:
                out[str(k)] = _walk_and_redact(v, redact_keys, redact_patterns, depth + 1)
        return out
    if isinstance(value, (list, tuple)):
        return [_walk_and_redact(v, redact_keys, redact_patterns, depth + 1) for v in value]
    if isinstance(value, str):
        s = value
        for p in redact_patterns:
            s = p.sub("***", s)
        return s
    return _safe_repr(value)


# ----------------------------
# Config
# ----------------------------
@dataclass
class LogConfig:
    service: str = field(default_factory=lambda: os.getenv("METRO_SERVICE", "metroproxy"))
    version: str = field(default_factory=lambda: os.getenv("METRO_VERSION", "dev"))
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    json: bool = field(default_factory=lambda: os.getenv("LOG_JSON", "1") not in ("0", "false", "False"))
    include_stack: bool = True
    redact_keys: list[str] = field(default_factory=lambda: [
        "password", "secret", "token", "authorization", "api_key", "apiKey", "x-api-key", "cookie"
    ])
    redact_patterns: list[str] = field(default_factory=lambda: [
        r"(?i)token\s*=\s*[^&\s]+",
        r"(?i)api[_-]?key\s*=\s*[^&\s]+",
        r"(?i)Authorization:\s*Bearer\s+[A-Za-z0-9\._\-]+",
    ])
    stdout: bool = True
    queue_size: int = 10000
    rate_limit_per_key: float = 20.0          # events per second allowed per key
    rate_burst_per_key: float = 50.0


# ----------------------------
# Filters
# ----------------------------
class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


class RateLimitFilter(logging.Filter):
    """Token bucket per (logger, level, message template) key."""

    def __init__(self, rate: float, burst: float) -> None:
        super().__init__()
        self.rate = float(rate)
        self.burst = float(burst)
        self._lock = threading.Lock()
        self._buckets: dict[str, tuple[float, float]] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        key = f"{record.name}:{record.levelno}:{record.msg}"
        now = time.perf_counter()
        with self._lock:
            tokens, last = self._buckets.get(key, (self.burst, now))
            tokens = min(self.burst, tokens + (now - last) * self.rate)
            allow = tokens >= 1.0
            tokens = tokens - 1.0 if allow else tokens
            self._buckets[key] = (tokens, now)
        record.suppressed = not allow  # type: ignore[attr-defined]
        return allow


# ----------------------------
# Formatter
# ----------------------------
class JSONFormatter(logging.Formatter):
    def __init__(self, config: LogConfig) -> None:
        super().__init__()
        self.config = config
        self._redact_key_patterns = [re.compile(pat, re.I) for pat in config.redact_keys]
        self._redact_value_patterns = [re.compile(pat) for pat in config.redact_patterns]

    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, t.Any] = {
            "ts": _utc_now_iso(),
            "level": record.levelname,
            "logger": record.name,
            "service": self.config.service,
            "version": self.config.version,
            "message": _safe_message(record),
            "correlation_id": getattr(record, "correlation_id", correlation_id_var.get()),
        }

        event = getattr(record, "event", None)
        if event:
            base["event"] = str(event)
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            base["fields"] = fields

        extras = {k: v for k, v in record.__dict__.items() if k not in _RESERVED and k not in _OWN}
        if extras:
            base["extra"] = extras

        if record.exc_info:
            etype, evalue, etb = record.exc_info
            base["exception"] = {
                "type": getattr(etype, "__name__", str(etype)),
                "message": str(evalue),
                "stacktrace": "".join(traceback.format_exception(etype, evalue, etb)) if self.config.include_stack else None,
            }

        redacted = _walk_and_redact(base, self._redact_key_patterns, self._redact_value_patterns)
        return json.dumps(redacted, separators=(",", ":"), ensure_ascii=False, default=repr)


def _safe_message(record: logging.LogRecord) -> str:
    try:
        return record.getMessage()
    except (TypeError, ValueError):
        return str(record.msg)


# ----------------------------
# Structured adapter
# ----------------------------
class StructuredAdapter(logging.LoggerAdapter):
    """
    Logger adapter that accepts an event name and structured fields:

        log = get_logger("metroproxy.stream")
        log.event("stream.connected", url="https://...")

    Values that are not JSON serializable are repr()-ed.
    """

    def process(self, msg, kwargs):
        # keep the caller's extra; the base class would replace it with self.extra
        return msg, kwargs

    def event(self, name: str, /, *, level: int = logging.INFO, **fields: t.Any) -> None:
        extra = {"event": name, "fields": {k: _safe_repr(v) for k, v in fields.items()}}
        self.logger.log(level, name, extra=extra)


# ----------------------------
# Setup
# ----------------------------
class _Queueing:
    def __init__(self, config: LogConfig, formatter: logging.Formatter) -> None:
        self.queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
        self.handler = logging.handlers.QueueHandler(self.queue)
        handlers: list[logging.Handler] = []
        if config.stdout:
            sh = logging.StreamHandler(stream=sys.stdout)
            sh.setFormatter(formatter)
            handlers.append(sh)
        self.listener = logging.handlers.QueueListener(self.queue, *handlers, respect_handler_level=True)

    def start(self) -> None:
        self.listener.start()

    def stop(self) -> None:
        self.listener.stop()


def configure_logging(config: LogConfig | None = None) -> StructuredAdapter:
    """
    Route the `metroproxy` logger tree through a queued JSON (or plain) handler.
    Calling it again replaces the previous setup.
    """
    cfg = config or LogConfig()
    shutdown_logging()

    base = logging.getLogger("metroproxy")
    base.setLevel(_parse_level(cfg.level))
    for h in list(base.handlers):
        base.removeHandler(h)

    formatter: logging.Formatter
    if cfg.json:
        formatter = JSONFormatter(cfg)
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s")
    q = _Queueing(cfg, formatter)
    q.handler.addFilter(ContextFilter())
    q.handler.addFilter(RateLimitFilter(cfg.rate_limit_per_key, cfg.rate_burst_per_key))
    base.addHandler(q.handler)
    base.propagate = False
    q.start()

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    base._metro_listener = q  # type: ignore[attr-defined]
    return get_logger("metroproxy")


def shutdown_logging() -> None:
    base = logging.getLogger("metroproxy")
    q = getattr(base, "_metro_listener", None)
    if isinstance(q, _Queueing):
        q.stop()
        base.removeHandler(q.handler)
        base.propagate = True
        del base._metro_listener  # type: ignore[attr-defined]


def _parse_level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


def get_logger(name: str | None = None) -> StructuredAdapter:
    return StructuredAdapter(logging.getLogger(name or "metroproxy"), extra={})


# ----------------------------
# Correlation helpers
# ----------------------------
@contextlib.contextmanager
def bind_correlation_id(correlation_id: str | None = None):
    """
    Bind correlation_id to current context. Generates one if not provided.
    """
    token = correlation_id_var.set(correlation_id or _gen_correlation_id())
    try:
        yield correlation_id_var.get()
    finally:
        correlation_id_var.reset(token)


def _gen_correlation_id() -> str:
    # compact, sortable-ish: yyyymmddThhmmssZ-rand
    ts = _dt.datetime.now(tz=_dt.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    rand = os.urandom(6).hex()
    return f"{ts}-{rand}"
