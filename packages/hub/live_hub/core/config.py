"""
Hub configuration loaded from environment variables.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Real-time hub configuration."""

    model_config = SettingsConfigDict(env_prefix="HUB_", env_file=".env", extra="ignore")

    # Security
    jwt_secret: str = "CHANGE_ME_IN_PRODUCTION"
    jwt_algorithm: str = "HS256"
    allow_anonymous: bool = False

    # Cross-process fan-out (optional)
    redis_url: Optional[str] = None
    redis_channel: str = "hub:updates"

    # Streaming
    heartbeat_interval_seconds: float = 15.0
    subscriber_queue_size: int = 100
    max_subscribers: int = 1000

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False

    # Logging
    log_level: str = "info"
    log_format: Literal["json", "text"] = "json"

    # CORS
    cors_origins: list[str] = ["http://localhost:5173"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
