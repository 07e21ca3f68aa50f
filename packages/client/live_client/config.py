"""
Configuration loading and validation.

Loads listener configuration from a YAML file. Secrets (hub token, API
token) are resolved from environment variables named in the file and never
stored in it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from live_shared.topics import Ident

from .connection import CONNECT_TIMEOUT_SECONDS, RECONNECT_DELAY_SECONDS
from .manager import DEFAULT_HUB_URL


def _check_http_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"expected an http(s) URL, got {value!r}")
    return value


class HubConfig(BaseModel):
    url: str = DEFAULT_HUB_URL
    verify_tls: bool = True
    reconnect_delay_seconds: float = Field(default=RECONNECT_DELAY_SECONDS, gt=0)
    connect_timeout_seconds: float = Field(default=CONNECT_TIMEOUT_SECONDS, gt=0)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _check_http_url(value)


class AuthConfig(BaseModel):
    token_env: str = "MARKETLIVE_HUB_TOKEN"
    # Fetch hub tokens from the API's token endpoint instead of the env var
    use_token_endpoint: bool = False

    @property
    def token(self) -> str | None:
        return os.environ.get(self.token_env)


class ApiConfig(BaseModel):
    url: Optional[str] = None
    token_env: str = "MARKETLIVE_API_TOKEN"
    verify_tls: bool = True
    request_timeout_seconds: float = 30.0

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        return value if value is None else _check_http_url(value)

    @property
    def token(self) -> str | None:
        return os.environ.get(self.token_env)


class ChatConfig(BaseModel):
    conversations: list[Ident] = Field(default_factory=list)
    typing_ttl_seconds: float = Field(default=6.0, gt=0)


class LiveStreamConfig(BaseModel):
    streams: list[Ident] = Field(default_factory=list)
    join: bool = False
    highlight_clear_seconds: float = Field(default=10.0, gt=0)


class NotificationsConfig(BaseModel):
    enabled: bool = True
    fallback_timeout_seconds: float = Field(default=3.0, gt=0)
    fallback_unread_count: Optional[int] = Field(default=None, ge=0)


class LoggingConfig(BaseModel):
    level: str = "info"
    format: Literal["json", "text"] = "json"


class MetricsConfig(BaseModel):
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 9090
    status_interval_seconds: float = 30.0


class ClientConfig(BaseModel):
    user_id: Optional[Ident] = None
    hub: HubConfig = Field(default_factory=HubConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    live_streams: LiveStreamConfig = Field(default_factory=LiveStreamConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="after")
    def _check_requirements(self) -> "ClientConfig":
        if self.user_id is None and (self.chat.conversations or self.notifications.enabled):
            raise ValueError("user_id is required for chat and notifications")
        if self.auth.use_token_endpoint and not self.api.url:
            raise ValueError("auth.use_token_endpoint needs api.url")
        return self


def load_config(path: str | Path) -> ClientConfig:
    """Load and validate listener configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return ClientConfig.model_validate(raw)
