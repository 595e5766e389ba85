# -*- coding: utf-8 -*-
"""
Settings loader for the metro proxy client.

Features:
- Source precedence: explicit kwargs > ENV (METRO_*) > YAML file
- YAML file from an explicit path or METRO_CONFIG_FILE
- YAML variable expansion: ${VAR:-default}, ${VAR}
- Deep merge of sources (base + overlay)
- Validation via Pydantic v2; failures surface as metroproxy.ValidationError
"""

from __future__ import annotations

import copy
import os
import pathlib
import re
import typing as t

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .observability.logging import LogConfig

__all__ = [
    "ReconnectSettings",
    "LoggingSettings",
    "ClientSettings",
    "load_settings",
    "expand_env_vars",
    "deep_merge",
]

CONFIG_FILE_ENV = "METRO_CONFIG_FILE"

# --------------------------
# Utility: dict operations
# --------------------------

_VAR_PATTERN = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)?(?::-(?P<default>[^}]*))?\}")


def expand_env_vars(value: t.Any) -> t.Any:
    """
    Recursively expand ${VAR:-default} in strings.
    """
    if isinstance(value, str):
        def repl(m: re.Match[str]) -> str:
            name = m.group("name")
            default = m.group("default")
            return os.getenv(name, default if default is not None else "") if name else (default or "")
        return _VAR_PATTERN.sub(repl, value)
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    return value


def deep_merge(a: dict, b: dict) -> dict:
    """
    Recursively merge b into a (copy), returning new dict.
    Later keys in b override a.
    """
    out = copy.deepcopy(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def _read_yaml(path: pathlib.Path) -> dict:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValidationError(f"Config root must be a mapping: {path}")
    return data


# --------------------------
# Pydantic models
# --------------------------

class ReconnectSettings(BaseModel):
    """Stream reconnect backoff: min(max_delay, initial_delay * multiplier**attempt), jittered."""
    model_config = ConfigDict(extra="forbid")

    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    jitter: bool = True


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    level: str = "INFO"
    # "json" in YAML/env; renamed so it does not shadow BaseModel.json
    json_logs: bool = Field(default=True, alias="json")

    @field_validator("level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class ClientSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str
    timeout: float = Field(default=10.0, gt=0)
    connect_timeout: t.Optional[float] = Field(default=None, gt=0)
    read_timeout: t.Optional[float] = Field(default=None, gt=0)
    # None: a quiet stream is never cut by the client
    stream_read_timeout: t.Optional[float] = Field(default=None, gt=0)
    user_agent: str = "metroproxy-python/0.1"
    default_headers: t.Dict[str, str] = Field(default_factory=dict)
    verify_ssl: bool = True
    reconnect: ReconnectSettings = Field(default_factory=ReconnectSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v

    @field_validator("connect_timeout", "read_timeout", "stream_read_timeout", mode="before")
    @classmethod
    def _blank_is_none(cls, v: t.Any) -> t.Any:
        if isinstance(v, str) and v.strip().lower() in ("", "none", "null"):
            return None
        return v

    # ----- Loader API -----
    @staticmethod
    def _load_file(path: t.Union[str, pathlib.Path, None] = None) -> dict:
        cfg_path = path or os.getenv(CONFIG_FILE_ENV)
        if not cfg_path:
            return {}
        p = pathlib.Path(cfg_path).expanduser().resolve()
        if not p.exists():
            raise FileNotFoundError(f"Config file {p} not found")
        return expand_env_vars(_read_yaml(p))

    @staticmethod
    def _env_overlay() -> dict:
        overlay: dict = {}
        for env_name, key in (
            ("METRO_BASE_URL", "base_url"),
            ("METRO_TIMEOUT", "timeout"),
            ("METRO_CONNECT_TIMEOUT", "connect_timeout"),
            ("METRO_READ_TIMEOUT", "read_timeout"),
            ("METRO_STREAM_READ_TIMEOUT", "stream_read_timeout"),
            ("METRO_USER_AGENT", "user_agent"),
            ("METRO_VERIFY_SSL", "verify_ssl"),
        ):
            v = os.getenv(env_name)
            if v is not None:
                overlay[key] = v

        for env_name, key in (
            ("METRO_RECONNECT_INITIAL_DELAY", "initial_delay"),
            ("METRO_RECONNECT_MAX_DELAY", "max_delay"),
            ("METRO_RECONNECT_MULTIPLIER", "multiplier"),
            ("METRO_RECONNECT_JITTER", "jitter"),
        ):
            v = os.getenv(env_name)
            if v is not None:
                overlay.setdefault("reconnect", {})[key] = v

        lvl = os.getenv("METRO_LOG_LEVEL") or os.getenv("LOG_LEVEL")
        if lvl:
            overlay.setdefault("logging", {})["level"] = lvl
        lj = os.getenv("METRO_LOG_JSON")
        if lj is not None:
            overlay.setdefault("logging", {})["json"] = lj
        return overlay

    @classmethod
    def from_sources(
        cls,
        *,
        path: t.Union[str, pathlib.Path, None] = None,
        extra_overlay: t.Optional[dict] = None,
    ) -> "ClientSettings":
        merged = deep_merge(cls._load_file(path), cls._env_overlay())
        if extra_overlay:
            merged = deep_merge(merged, extra_overlay)
        try:
            return cls(**merged)
        except PydanticValidationError as ve:
            raise ValidationError(f"Configuration validation failed: {ve}") from ve

    @classmethod
    def from_env(cls) -> "ClientSettings":
        return cls.from_sources()

    def log_config(self) -> LogConfig:
        """
        LogConfig for observability.logging.configure_logging(). MetroClient
        never installs handlers itself; the application applies this once.
        """
        return LogConfig(level=self.logging.level, json=self.logging.json_logs)


def load_settings(path: t.Union[str, pathlib.Path, None] = None, **overrides: t.Any) -> ClientSettings:
    """
    Build ClientSettings from YAML (`path` or $METRO_CONFIG_FILE), METRO_* environment
    variables and keyword overrides, later sources winning.

        settings = load_settings(base_url="https://metro.example", reconnect={"max_delay": 10})
    """
    return ClientSettings.from_sources(path=path, extra_overlay=overrides or None)
