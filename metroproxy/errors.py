# metroproxy/errors.py
"""
Exception hierarchy for the metro proxy client.

Request/response calls raise these directly. The stream client never raises
them out of its task: transport and API errors send it down the reconnect
path, decode and shape errors are reported as warnings and the frame is dropped.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

__all__ = [
    "MetroError",
    "ValidationError",
    "TransportError",
    "APIError",
    "NotFoundError",
    "RateLimitError",
    "DecodeError",
    "ShapeError",
    "error_from_response",
]


class MetroError(Exception):
    """Base SDK exception."""


class ValidationError(MetroError, ValueError):
    """Invalid request options."""


class TransportError(MetroError):
    """Connection refused, DNS failure, timeout or protocol failure."""


class APIError(MetroError):
    """Non-2xx HTTP response."""

    def __init__(self, status: int, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message
        self.code = code
        self.details = details


class NotFoundError(APIError):
    pass


class RateLimitError(APIError):
    pass


class DecodeError(MetroError, ValueError):
    """Payload is not valid JSON."""

    def __init__(self, message: str, payload: Optional[str] = None):
        super().__init__(message)
        self.payload = payload


class ShapeError(MetroError, ValueError):
    """A temporal field is present but cannot be read as an instant."""

    def __init__(self, path: str, value: Any, reason: str = "not a valid instant"):
        super().__init__(f"{path}: {reason} ({value!r})")
        self.path = path
        self.value = value


def error_from_response(resp: httpx.Response) -> APIError:
    """Map a non-2xx response (body already read) to the matching APIError subclass."""
    try:
        payload = resp.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {"body": payload}
    message = payload.get("message") or payload.get("error") or resp.text or resp.reason_phrase
    code = payload.get("code")
    if resp.status_code == 404:
        return NotFoundError(resp.status_code, message or "Not Found", code=code, details=payload)
    if resp.status_code == 429:
        return RateLimitError(resp.status_code, message or "Too Many Requests", code=code, details=payload)
    return APIError(resp.status_code, message or f"HTTP {resp.status_code}", code=code, details=payload)
