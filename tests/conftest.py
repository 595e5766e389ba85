# tests/conftest.py
"""
Shared fixtures: isolated environment, settings with instant reconnects, and
helpers for building text/event-stream bodies served by httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, AsyncIterator, Iterable, Optional

import pytest

from metroproxy import load_settings

BASE_URL = "https://metro.test"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("METRO_") or name in ("LOG_LEVEL", "LOG_JSON"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def base_url() -> str:
    return BASE_URL


@pytest.fixture()
def settings():
    return load_settings(base_url=BASE_URL, reconnect={"initial_delay": 0, "max_delay": 0, "jitter": False})


def _frame(event: Optional[str], data: Any, *, id: Optional[str] = None, retry: Optional[int] = None) -> bytes:
    lines = []
    if event:
        lines.append(f"event: {event}")
    if id is not None:
        lines.append(f"id: {id}")
    if retry is not None:
        lines.append(f"retry: {retry}")
    if data is not None:
        text = data if isinstance(data, str) else json.dumps(data)
        lines.extend(f"data: {part}" for part in text.split("\n"))
    return ("\n".join(lines) + "\n\n").encode("utf-8")


@pytest.fixture()
def sse_frame():
    """sse_frame("new-train-history", {...}) -> bytes of one event block."""
    return _frame


@pytest.fixture()
def sse_body():
    """
    sse_body(frames, hold=event) -> async byte iterator for httpx.Response(content=...).
    With `hold` the body stays open after the frames until the event is set
    (or the reader goes away), like a live stream between heartbeats.
    """
    def make(frames: Iterable[bytes], hold: Optional[asyncio.Event] = None) -> AsyncIterator[bytes]:
        async def body() -> AsyncIterator[bytes]:
            for chunk in frames:
                yield chunk
            if hold is not None:
                await hold.wait()
        return body()
    return make
