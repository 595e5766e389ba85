# metroproxy/stream.py
# -*- coding: utf-8 -*-
"""
Server-sent event subscriptions.

A StreamClient owns one long-lived GET against a `.../stream` endpoint. Frames
are routed by their `event:` name to a (shape, callback) pair fixed at
construction: the JSON body is decoded, normalized with that shape and handed
to the callback, strictly in arrival order.

Lifecycle:

    DISCONNECTED --connect()--> CONNECTING --2xx--> CONNECTED
         ^                          ^                   |
         |                          |   EOF / error / non-2xx
       close()                      |                   v
      (any state)               (after delay)  SCHEDULED_TO_RECONNECT

Bad frames (unknown kind, invalid JSON, unreadable instant) are dropped with a
warning and never end the connection. Exceptions raised by user callbacks are
logged and swallowed so one faulty handler cannot stop the subscription.
Any other unexpected error (a closed http client, a failing reconnect policy)
ends the subscription: the stream goes to DISCONNECTED, reports a
"stream_error" warning and can be connected again.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import json
import logging
import random
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Callable,
    List,
    Mapping,
    Optional,
    Union,
)

import httpx

from .errors import APIError, DecodeError, MetroError, error_from_response
from .normalize import Node, normalize

__all__ = [
    "StreamState",
    "SseEvent",
    "parse_sse",
    "EventRoute",
    "ReconnectInfo",
    "StreamWarning",
    "ExponentialBackoff",
    "StreamClient",
]

logger = logging.getLogger("metroproxy.stream")

ReconnectPolicy = Callable[[int], float]


class StreamState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SCHEDULED_TO_RECONNECT = "scheduled_to_reconnect"


# --------------------------- SSE text protocol --------------------------- #

@dataclass(frozen=True)
class SseEvent:
    event: str = "message"
    # None when the block carried only control fields (e.g. `retry:`)
    data: Optional[str] = None
    id: Optional[str] = None
    # reconnection time in milliseconds
    retry: Optional[int] = None


async def parse_sse(lines: AsyncIterable[str]) -> AsyncIterator[SseEvent]:
    """
    Incremental parser for the text/event-stream format.

    Lines come without their terminator (httpx `aiter_lines`). A blank line
    dispatches the pending block; an unterminated block at EOF is discarded.
    """
    event_type = ""
    data: List[str] = []
    has_data = False
    last_id: Optional[str] = None
    retry: Optional[int] = None

    async for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if has_data or retry is not None:
                yield SseEvent(
                    event=event_type or "message",
                    data="\n".join(data) if has_data else None,
                    id=last_id,
                    retry=retry,
                )
            event_type, data, has_data, retry = "", [], False, None
            continue
        if line.startswith(":"):
            continue

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if name == "event":
            event_type = value
        elif name == "data":
            data.append(value)
            has_data = True
        elif name == "id":
            if "\0" not in value:
                last_id = value
        elif name == "retry":
            if value.isdigit():
                retry = int(value)
        # other field names are ignored


# --------------------------- Routing and callbacks --------------------------- #

@dataclass(frozen=True)
class EventRoute:
    """Shape and handler for one event kind. A None callback ignores the kind quietly."""
    shape: Node
    callback: Optional[Callable[[Any], Any]] = None


@dataclass(frozen=True)
class ReconnectInfo:
    delay: float


@dataclass(frozen=True)
class StreamWarning:
    # "unknown_event" | "decode_error" | "shape_error" | "stream_error"
    kind: str
    message: str
    event: Optional[str] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ExponentialBackoff:
    """
    Capped exponential backoff with full jitter:
    uniform(0, min(max_delay, initial_delay * multiplier ** attempt)).
    """
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True

    def __call__(self, attempt: int) -> float:
        try:
            delay = min(self.max_delay, self.initial_delay * (self.multiplier ** attempt))
        except OverflowError:
            delay = self.max_delay
        if self.jitter:
            return random.uniform(0, delay)
        return delay

    def with_initial_delay(self, initial_delay: float) -> "ExponentialBackoff":
        return dataclasses.replace(self, initial_delay=initial_delay)


class _Session:
    """Book-keeping for one connect()..close() cycle."""

    __slots__ = ("closed", "established")

    def __init__(self) -> None:
        self.closed = False
        self.established = False


# --------------------------- Client --------------------------- #

class StreamClient:
    """
    One SSE subscription with automatic reconnect.

    `routes` maps event names to EventRoute; it is copied and frozen here.
    Lifecycle callbacks are optional; without them a dropped connection is
    retried silently. `reconnect_policy(attempt) -> seconds` is consulted with
    attempt = 0, 1, 2, ... and reset after every successful connection. When
    the server sends `retry:`, its value becomes the initial delay of the
    default ExponentialBackoff; a custom policy is used as given.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str,
        params: Union[httpx.QueryParams, Mapping[str, str], None] = None,
        routes: Optional[Mapping[str, EventRoute]] = None,
        *,
        on_connect: Optional[Callable[[], Any]] = None,
        on_disconnect: Optional[Callable[[], Any]] = None,
        on_schedule_reconnect: Optional[Callable[[ReconnectInfo], Any]] = None,
        on_warning: Optional[Callable[[StreamWarning], Any]] = None,
        reconnect_policy: Optional[ReconnectPolicy] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Union[httpx.Timeout, float, None] = None,
    ) -> None:
        self._http = http
        self._url = url
        self._params = httpx.QueryParams(params) if params is not None else httpx.QueryParams()
        self._routes: Mapping[str, EventRoute] = MappingProxyType(dict(routes or {}))
        self._on_connect = on_connect
        self._on_disconnect = on_disconnect
        self._on_schedule_reconnect = on_schedule_reconnect
        self._on_warning = on_warning
        self._policy: ReconnectPolicy = reconnect_policy or ExponentialBackoff()
        self._headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache", **(headers or {})}
        self._timeout = timeout if timeout is not None else httpx.Timeout(10.0, read=None)

        self._state = StreamState.DISCONNECTED
        self._session: Optional[_Session] = None
        self._task: Optional[asyncio.Task] = None
        self._attempt = 0
        self._server_retry: Optional[float] = None

    def __repr__(self) -> str:
        return f"<StreamClient {self._url} state={self._state.value}>"

    # ----- Public API ----- #

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def url(self) -> str:
        return self._url

    @property
    def params(self) -> httpx.QueryParams:
        return self._params

    @property
    def routes(self) -> Mapping[str, EventRoute]:
        return self._routes

    def connect(self) -> None:
        """Start the subscription in the background. No-op unless DISCONNECTED."""
        if self._state is not StreamState.DISCONNECTED:
            return
        loop = asyncio.get_running_loop()
        session = _Session()
        self._session = session
        self._attempt = 0
        self._server_retry = None
        self._state = StreamState.CONNECTING
        self._task = loop.create_task(self._run(session), name=f"metroproxy-stream:{self._url}")

    def close(self) -> None:
        """
        Stop the subscription and release the connection. Safe to call more
        than once and from inside any callback of this stream.
        """
        session = self._session
        if session is None or session.closed:
            return
        session.closed = True
        self._state = StreamState.DISCONNECTED
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.info("Stream closed", extra={"url": self._url})
        self._fire_disconnect(session)

    async def wait_closed(self) -> None:
        """Wait until the background task has finished after close()."""
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            await asyncio.wait({task})

    async def __aenter__(self) -> "StreamClient":
        self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
        await self.wait_closed()

    # ----- Connection loop ----- #

    async def _run(self, session: _Session) -> None:
        try:
            await self._loop(session)
        except Exception as e:
            if session.closed:
                return
            logger.exception("Stream stopped by unexpected error", extra={"url": self._url})
            self._abandon(session)
            self._emit(self._on_warning, StreamWarning("stream_error", f"Stream stopped: {e!r}", None, e))
        finally:
            # the task never outlives its session in a non-DISCONNECTED state
            self._abandon(session)

    def _abandon(self, session: _Session) -> None:
        if session.closed:
            return
        session.closed = True
        if self._session is session:
            self._state = StreamState.DISCONNECTED
        self._fire_disconnect(session)

    async def _loop(self, session: _Session) -> None:
        while not session.closed:
            self._state = StreamState.CONNECTING
            reason: str
            try:
                await self._consume(session)
                reason = "end of stream"
            except (httpx.HTTPError, httpx.StreamError, APIError) as e:
                reason = repr(e)
            if session.closed:
                return

            self._fire_disconnect(session)
            delay = self._next_delay()
            self._state = StreamState.SCHEDULED_TO_RECONNECT
            logger.warning(
                "Stream disconnected (%s), reconnecting in %.3fs",
                reason, delay, extra={"url": self._url, "attempt": self._attempt},
            )
            self._emit(self._on_schedule_reconnect, ReconnectInfo(delay=delay))
            if session.closed:
                return
            await asyncio.sleep(delay)

    async def _consume(self, session: _Session) -> None:
        logger.debug("Stream connecting", extra={"url": self._url, "params": str(self._params)})
        async with self._http.stream(
            "GET", self._url, params=self._params, headers=self._headers, timeout=self._timeout
        ) as resp:
            if not resp.is_success:
                await resp.aread()
                raise error_from_response(resp)
            if session.closed:
                return

            self._state = StreamState.CONNECTED
            session.established = True
            self._attempt = 0
            logger.info("Stream connected", extra={"url": self._url})
            self._emit(self._on_connect)
            if session.closed:
                return

            async for sse in parse_sse(resp.aiter_lines()):
                if sse.retry is not None:
                    self._server_retry = sse.retry / 1000.0
                if sse.data is not None:
                    self._dispatch(sse)
                # a callback may have closed the stream
                if session.closed:
                    return

    def _next_delay(self) -> float:
        policy = self._policy
        if self._server_retry is not None and isinstance(policy, ExponentialBackoff):
            policy = policy.with_initial_delay(self._server_retry)
        delay = max(0.0, float(policy(self._attempt)))
        self._attempt += 1
        return delay

    # ----- Frame handling ----- #

    def _dispatch(self, sse: SseEvent) -> None:
        route = self._routes.get(sse.event)
        if route is None:
            self._warn(StreamWarning("unknown_event", f"Unknown event kind {sse.event!r}", sse.event))
            return
        if route.callback is None:
            logger.debug("No handler for %s, frame ignored", sse.event)
            return
        try:
            raw = json.loads(sse.data or "")
        except ValueError as e:
            err = DecodeError(f"Invalid JSON in {sse.event!r} frame: {e}", sse.data)
            self._warn(StreamWarning("decode_error", str(err), sse.event, err))
            return
        try:
            payload = normalize(route.shape, raw)
        except MetroError as e:
            self._warn(StreamWarning("shape_error", str(e), sse.event, e))
            return
        logger.debug("Stream frame %s", sse.event, extra={"url": self._url, "id": sse.id})
        self._emit(route.callback, payload)

    def _warn(self, warning: StreamWarning) -> None:
        logger.warning("Dropped stream frame: %s", warning.message, extra={"url": self._url, "kind": warning.kind})
        self._emit(self._on_warning, warning)

    def _fire_disconnect(self, session: _Session) -> None:
        if not session.established:
            return
        session.established = False
        self._emit(self._on_disconnect)

    def _emit(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Stream callback %r failed", callback, extra={"url": self._url})


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
