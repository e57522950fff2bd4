"""MatchChat client configuration.

Loads settings from ``matchchat.settings.yaml`` (non-secret configuration).
The settings file is searched in the working directory and in ``./config``;
``MATCHCHAT_SETTINGS`` points at an explicit file instead.

The ``NEXT_PUBLIC_API_URL`` environment variable overrides ``api.base_url``
so the same deployment variable drives both the REST and the socket
transport.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILENAME = "matchchat.settings.yaml"
SETTINGS_ENV_VAR = "MATCHCHAT_SETTINGS"
API_URL_ENV_VAR = "NEXT_PUBLIC_API_URL"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _find_settings_file() -> Path:
    explicit = os.environ.get(SETTINGS_ENV_VAR)
    if explicit:
        return Path(explicit)
    for candidate in (Path(SETTINGS_FILENAME), Path("config") / SETTINGS_FILENAME):
        if candidate.exists():
            return candidate
    return Path(SETTINGS_FILENAME)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ApiSettings(BaseModel):
    """REST boundary settings."""
    base_url:        str   = "http://localhost:3001"
    timeout_seconds: float = 10.0

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class RealtimeSettings(BaseModel):
    """Socket transport settings."""
    transports:              List[str] = Field(default_factory=lambda: ["websocket"])
    socketio_path:           str       = "socket.io"
    connect_timeout_seconds: float     = 5.0


class SessionSettings(BaseModel):
    refresh_on_start: bool = True


class NoticeSettings(BaseModel):
    max_items: int = 50


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    api:      ApiSettings      = Field(default_factory=ApiSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    session:  SessionSettings  = Field(default_factory=SessionSettings)
    notices:  NoticeSettings   = Field(default_factory=NoticeSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings from YAML and apply environment overrides."""
    path = Path(settings_path) if settings_path else _find_settings_file()
    data = _load_yaml(path)

    api_url = os.environ.get(API_URL_ENV_VAR)
    if api_url:
        data.setdefault("api", {})
        data["api"]["base_url"] = api_url

    config = AppConfig(**data)
    logger.info(
        "Settings loaded (api=%s, timeout=%ss, transports=%s)",
        config.api.base_url,
        config.api.timeout_seconds,
        ",".join(config.realtime.transports),
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (used by tests)."""
    global _config
    _config = None
