"""
metroproxy: typed async client for the metro proxy real-time transit API.

    from metroproxy import MetroClient, TrainHistoryOptions, TimeFilter

    async with MetroClient("https://metro-proxy.example") as metro:
        history = await metro.get_train_history("101", TrainHistoryOptions(limit=10))
"""

from .client import EVENTS, PATHS, MetroClient
from .errors import (
    APIError,
    DecodeError,
    MetroError,
    NotFoundError,
    RateLimitError,
    ShapeError,
    TransportError,
    ValidationError,
)
from .models import (
    ActiveHistoryEntry,
    ActiveTrainState,
    CollatedStatus,
    InactiveHistoryEntry,
    ParsedLastSeen,
    ParsedTimesAPILocation,
    StatusSource,
    TimetableType,
    TrainHistoryEntry,
)
from .normalize import normalize
from .options import (
    DueTimesOptions,
    DueTimesStreamOptions,
    HeartbeatErrorsOptions,
    HeartbeatErrorsStreamOptions,
    HistoryStreamOptions,
    PropsOptions,
    TimeFilter,
    TimetableOptions,
    TrainHistoryOptions,
    TrainHistoryStreamOptions,
    TrainOptions,
    TrainsHistoryStreamOptions,
    TrainsOptions,
)
from .parsing import compare_times, parse_last_seen, parse_times_api_location
from .query import build_query
from .settings import ClientSettings, load_settings
from .stream import (
    ExponentialBackoff,
    ReconnectInfo,
    StreamClient,
    StreamState,
    StreamWarning,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "MetroClient",
    "PATHS",
    "EVENTS",
    "ClientSettings",
    "load_settings",
    # errors
    "MetroError",
    "ValidationError",
    "TransportError",
    "APIError",
    "NotFoundError",
    "RateLimitError",
    "DecodeError",
    "ShapeError",
    # models
    "StatusSource",
    "ActiveTrainState",
    "TimetableType",
    "CollatedStatus",
    "ActiveHistoryEntry",
    "InactiveHistoryEntry",
    "TrainHistoryEntry",
    "ParsedLastSeen",
    "ParsedTimesAPILocation",
    # options
    "TimeFilter",
    "PropsOptions",
    "TrainsOptions",
    "TrainOptions",
    "DueTimesOptions",
    "TrainHistoryOptions",
    "HeartbeatErrorsOptions",
    "TimetableOptions",
    "HistoryStreamOptions",
    "TrainHistoryStreamOptions",
    "TrainsHistoryStreamOptions",
    "DueTimesStreamOptions",
    "HeartbeatErrorsStreamOptions",
    # helpers
    "build_query",
    "normalize",
    "parse_last_seen",
    "parse_times_api_location",
    "compare_times",
    # streams
    "StreamClient",
    "StreamState",
    "StreamWarning",
    "ReconnectInfo",
    "ExponentialBackoff",
]
