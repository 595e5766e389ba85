# metroproxy/client.py
# -*- coding: utf-8 -*-
"""
Async client for the metro proxy.

Usage:
    settings = load_settings(base_url="https://metro-proxy.example")
    configure_logging(settings.log_config())
    async with MetroClient(settings) as metro:
        trains = await metro.get_trains(TrainsOptions(props=["trains.status"]))
        stream = metro.stream_train_history("101", on_new_train_history=print)
        ...

Every REST call is: options -> query -> GET -> JSON -> normalize. There are
no retries; failures surface as metroproxy.errors exceptions. Stream methods
return a StreamClient that is already connecting unless connect=False;
aclose() closes every stream the client opened before the http client.

The client only emits records on the "metroproxy.*" loggers. Installing
handlers is left to the application: `settings.logging` takes effect through
configure_logging(settings.log_config()).
"""

from __future__ import annotations

import logging
import time
import uuid
import weakref
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

import httpx

from . import shapes
from .errors import DecodeError, TransportError, ValidationError, error_from_response
from .models import (
    HistorySummaryResponse,
    TrainHistoryResponse,
    TrainResponse,
    TrainsResponse,
)
from .normalize import Node, normalize
from .observability.logging import correlation_id_var
from .options import (
    DueTimesOptions,
    DueTimesStreamOptions,
    HeartbeatErrorsOptions,
    HeartbeatErrorsStreamOptions,
    HistoryStreamOptions,
    TimetableOptions,
    TrainHistoryOptions,
    TrainHistoryStreamOptions,
    TrainOptions,
    TrainsHistoryStreamOptions,
    TrainsOptions,
)
from .query import SupportsQuery, build_query
from .settings import ClientSettings, load_settings
from .stream import EventRoute, ExponentialBackoff, StreamClient

__all__ = ["MetroClient", "PATHS", "EVENTS"]

logger = logging.getLogger("metroproxy.client")

PATHS: Dict[str, str] = {
    "constants": "/constants",
    "trains": "/trains",
    "train": "/train/{trn}",
    "due_times": "/due-times",
    "station_due_times": "/due-times/station/{station}",
    "platform_due_times": "/due-times/platform/{platform}",
    "history": "/history",
    "train_history": "/history/train/{trn}",
    "heartbeat_errors": "/history/heartbeat-errors",
    "timetable": "/timetable",
    # streams
    "history_stream": "/history/stream",
    "train_history_stream": "/history/train/{trn}/stream",
    "trains_history_stream": "/history/trains/stream",
    "heartbeat_errors_stream": "/history/heartbeat-errors/stream",
    "station_due_times_stream": "/due-times/station/{station}/stream",
    "platform_due_times_stream": "/due-times/platform/{platform}/stream",
}

EVENTS = {
    "new_trains_history": "new-trains-history",
    "new_train_history": "new-train-history",
    "heartbeat_error": "heartbeat-error",
    "heartbeat_warnings": "heartbeat-warnings",
    "station_due_times": "station-due-times",
    "platform_due_times": "platform-due-times",
}

Callback = Optional[Callable[[Any], Any]]


def _segment(value: Union[str, int]) -> str:
    text = str(value)
    if not text:
        raise ValidationError("Path parameter must not be empty")
    return quote(text, safe="")


def _timeout(settings: ClientSettings, *, read: Optional[float]) -> httpx.Timeout:
    parts: Dict[str, Optional[float]] = {"read": read}
    if settings.connect_timeout is not None:
        parts["connect"] = settings.connect_timeout
    return httpx.Timeout(settings.timeout, **parts)


def _make_headers(settings: ClientSettings) -> Dict[str, str]:
    h = {"User-Agent": settings.user_agent, "Accept": "application/json"}
    return {**h, **dict(settings.default_headers)}


class MetroClient:
    """
    Asynchronous metro proxy client.

    `settings` may be a ClientSettings or a bare base URL. Pass `transport`
    (e.g. httpx.MockTransport) or a ready `http` client to control the
    connection layer; a client passed in is not closed by aclose().
    """

    def __init__(
        self,
        settings: Union[ClientSettings, str],
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if isinstance(settings, str):
            settings = load_settings(base_url=settings)
        self.settings = settings
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=_timeout(settings, read=settings.read_timeout or settings.timeout),
            verify=settings.verify_ssl,
            headers=_make_headers(settings),
            transport=transport,
        )
        r = settings.reconnect
        self._backoff = ExponentialBackoff(
            initial_delay=r.initial_delay, max_delay=r.max_delay, multiplier=r.multiplier, jitter=r.jitter
        )
        # streams opened by this client; a running stream is kept alive by its task
        self._streams: "weakref.WeakSet[StreamClient]" = weakref.WeakSet()

    async def aclose(self) -> None:
        """Close every stream opened by this client, then the owned http client."""
        streams = list(self._streams)
        for stream in streams:
            stream.close()
        for stream in streams:
            await stream.wait_closed()
        self._streams.clear()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "MetroClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ---------- Transport ---------- #

    def _request_headers(self) -> Dict[str, str]:
        return {"X-Request-Id": correlation_id_var.get() or str(uuid.uuid4())}

    async def _get(self, path: str, query: Optional[httpx.QueryParams] = None) -> Any:
        started = time.perf_counter()
        try:
            resp = await self._http.get(path, params=query, headers=self._request_headers())
        except httpx.TransportError as e:
            raise TransportError(f"GET {path} failed: {e!r}") from e
        logger.debug(
            "GET %s -> %s", path, resp.status_code,
            extra={"query": str(query or ""), "elapsed_ms": round((time.perf_counter() - started) * 1000, 2)},
        )
        if not resp.is_success:
            raise error_from_response(resp)
        try:
            return resp.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {path}: {e}", resp.text) from e

    async def _fetch(self, shape: Optional[Node], path: str, options: Optional[SupportsQuery] = None) -> Any:
        data = await self._get(path, build_query(options))
        return data if shape is None else normalize(shape, data)

    # ---------- REST ---------- #

    async def get_constants(self) -> Dict[str, Any]:
        """Server limits and defaults, returned as sent."""
        return await self._fetch(None, PATHS["constants"])

    async def get_trains(self, options: Optional[TrainsOptions] = None) -> TrainsResponse:
        return await self._fetch(shapes.TRAINS, PATHS["trains"], options)

    async def get_train(self, trn: str, options: Optional[TrainOptions] = None) -> TrainResponse:
        return await self._fetch(shapes.TRAIN, PATHS["train"].format(trn=_segment(trn)), options)

    async def get_due_times(self, options: Optional[DueTimesOptions] = None) -> Dict[str, Any]:
        return await self._fetch(shapes.DUE_TIMES, PATHS["due_times"], options)

    async def get_station_due_times(self, station: str, options: Optional[DueTimesOptions] = None) -> Dict[str, Any]:
        path = PATHS["station_due_times"].format(station=_segment(station))
        return await self._fetch(shapes.STATION_DUE_TIMES, path, options)

    async def get_platform_due_times(self, platform: str, options: Optional[DueTimesOptions] = None) -> Dict[str, Any]:
        path = PATHS["platform_due_times"].format(platform=_segment(platform))
        return await self._fetch(shapes.PLATFORM_DUE_TIMES, path, options)

    async def get_history_summary(self) -> HistorySummaryResponse:
        return await self._fetch(shapes.HISTORY_SUMMARY, PATHS["history"])

    async def get_train_history(self, trn: str, options: Optional[TrainHistoryOptions] = None) -> TrainHistoryResponse:
        """
        History of one train. `extract` entries come back as ActiveHistoryEntry
        or InactiveHistoryEntry (a plain dict if a props filter removed both
        `active` and `status`).
        """
        path = PATHS["train_history"].format(trn=_segment(trn))
        return await self._fetch(shapes.TRAIN_HISTORY, path, options)

    async def get_heartbeat_errors(
        self, options: Optional[HeartbeatErrorsOptions] = None
    ) -> Union[List[Dict[str, Any]], Dict[str, List[Dict[str, Any]]]]:
        """A list of errors, or {"errors": [...], "warnings": [...]} when warnings were requested."""
        return await self._fetch(shapes.HEARTBEAT_ERRORS, PATHS["heartbeat_errors"], options)

    async def get_timetable(self, options: Optional[TimetableOptions] = None) -> Any:
        # times in timetables are seconds since midnight, nothing to convert
        return await self._fetch(None, PATHS["timetable"], options)

    # ---------- Streams ---------- #

    def _open_stream(
        self,
        path: str,
        options: Optional[SupportsQuery],
        routes: Mapping[str, EventRoute],
        *,
        connect: bool,
        on_connect: Optional[Callable[[], Any]] = None,
        on_disconnect: Optional[Callable[[], Any]] = None,
        on_schedule_reconnect: Callback = None,
        on_warning: Callback = None,
        reconnect_policy: Optional[Callable[[int], float]] = None,
    ) -> StreamClient:
        stream = StreamClient(
            self._http,
            path,
            build_query(options),
            routes,
            on_connect=on_connect,
            on_disconnect=on_disconnect,
            on_schedule_reconnect=on_schedule_reconnect,
            on_warning=on_warning,
            reconnect_policy=reconnect_policy or self._backoff,
            headers=self._request_headers(),
            timeout=_timeout(self.settings, read=self.settings.stream_read_timeout),
        )
        self._streams.add(stream)
        if connect:
            stream.connect()
        return stream

    def stream_history(
        self,
        *,
        on_new_trains_history: Callback = None,
        on_heartbeat_error: Callback = None,
        on_heartbeat_warnings: Callback = None,
        options: Optional[HistoryStreamOptions] = None,
        connect: bool = True,
        **lifecycle: Any,
    ) -> StreamClient:
        """
        All history: new entries for every train plus heartbeat errors and
        warnings. `lifecycle` takes on_connect, on_disconnect,
        on_schedule_reconnect, on_warning and reconnect_policy.
        """
        routes = {
            EVENTS["new_trains_history"]: EventRoute(shapes.NEW_TRAINS_HISTORY, on_new_trains_history),
            EVENTS["heartbeat_error"]: EventRoute(shapes.HEARTBEAT_ERROR_EVENT, on_heartbeat_error),
            EVENTS["heartbeat_warnings"]: EventRoute(shapes.HEARTBEAT_WARNINGS_EVENT, on_heartbeat_warnings),
        }
        return self._open_stream(PATHS["history_stream"], options, routes, connect=connect, **lifecycle)

    def stream_train_history(
        self,
        trn: str,
        *,
        on_new_train_history: Callback = None,
        options: Optional[TrainHistoryStreamOptions] = None,
        connect: bool = True,
        **lifecycle: Any,
    ) -> StreamClient:
        routes = {EVENTS["new_train_history"]: EventRoute(shapes.NEW_TRAIN_HISTORY, on_new_train_history)}
        path = PATHS["train_history_stream"].format(trn=_segment(trn))
        return self._open_stream(path, options, routes, connect=connect, **lifecycle)

    def stream_trains_history(
        self,
        *,
        on_new_trains_history: Callback = None,
        options: Optional[TrainsHistoryStreamOptions] = None,
        connect: bool = True,
        **lifecycle: Any,
    ) -> StreamClient:
        routes = {EVENTS["new_trains_history"]: EventRoute(shapes.NEW_TRAINS_HISTORY, on_new_trains_history)}
        return self._open_stream(PATHS["trains_history_stream"], options, routes, connect=connect, **lifecycle)

    def stream_heartbeat_errors(
        self,
        *,
        on_heartbeat_error: Callback = None,
        on_heartbeat_warnings: Callback = None,
        apis: Optional[List[str]] = None,
        connect: bool = True,
        **lifecycle: Any,
    ) -> StreamClient:
        """Warnings are only requested from the server when `on_heartbeat_warnings` is given."""
        options = HeartbeatErrorsStreamOptions(apis=apis, warnings=on_heartbeat_warnings is not None)
        routes = {
            EVENTS["heartbeat_error"]: EventRoute(shapes.HEARTBEAT_ERROR_EVENT, on_heartbeat_error),
            EVENTS["heartbeat_warnings"]: EventRoute(shapes.HEARTBEAT_WARNINGS_EVENT, on_heartbeat_warnings),
        }
        return self._open_stream(PATHS["heartbeat_errors_stream"], options, routes, connect=connect, **lifecycle)

    def stream_station_due_times(
        self,
        station: str,
        *,
        on_station_due_times: Callback = None,
        options: Optional[DueTimesStreamOptions] = None,
        connect: bool = True,
        **lifecycle: Any,
    ) -> StreamClient:
        routes = {EVENTS["station_due_times"]: EventRoute(shapes.STATION_DUE_TIMES_EVENT, on_station_due_times)}
        path = PATHS["station_due_times_stream"].format(station=_segment(station))
        return self._open_stream(path, options, routes, connect=connect, **lifecycle)

    def stream_platform_due_times(
        self,
        platform: str,
        *,
        on_platform_due_times: Callback = None,
        options: Optional[DueTimesStreamOptions] = None,
        connect: bool = True,
        **lifecycle: Any,
    ) -> StreamClient:
        routes = {EVENTS["platform_due_times"]: EventRoute(shapes.PLATFORM_DUE_TIMES_EVENT, on_platform_due_times)}
        path = PATHS["platform_due_times_stream"].format(platform=_segment(platform))
        return self._open_stream(path, options, routes, connect=connect, **lifecycle)


