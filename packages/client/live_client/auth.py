"""
Hub credentials.

The connection layer only needs "fetch the current token"; how tokens are
minted is the API layer's business. A provider is asked once per connection
attempt, so a reconnect after expiry picks up a fresh token.
"""

from __future__ import annotations

import os
import time
from typing import TYPE_CHECKING, Optional, Protocol

import jwt
import structlog

if TYPE_CHECKING:
    from .api import MarketApiClient

log = structlog.get_logger()


class TokenProvider(Protocol):
    async def get_token(self) -> Optional[str]:
        """Return the bearer token for the next handshake, or None for anonymous."""
        ...


class StaticTokenProvider:
    """A fixed token, typically from configuration or the environment."""

    def __init__(self, token: Optional[str]):
        self._token = token or None

    @classmethod
    def from_env(cls, env_var: str) -> "StaticTokenProvider":
        return cls(os.environ.get(env_var))

    async def get_token(self) -> Optional[str]:
        return self._token


class EndpointTokenProvider:
    """
    Fetches the token from the API layer and caches it until shortly
    before its ``exp`` claim.
    """

    def __init__(self, api: "MarketApiClient", refresh_leeway: float = 30.0):
        self._api = api
        self._refresh_leeway = refresh_leeway
        self._token: Optional[str] = None
        self._expires_at: float | None = None

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = None

    async def get_token(self) -> Optional[str]:
        if self._token and (
            self._expires_at is None or time.time() < self._expires_at - self._refresh_leeway
        ):
            return self._token

        token = await self._api.fetch_hub_token()
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.DecodeError:
            log.warning("auth.token_not_jwt")
            self.invalidate()
            return token

        self._token = token
        exp = claims.get("exp")
        self._expires_at = float(exp) if exp is not None else None
        log.debug("auth.token_refreshed", expires_at=self._expires_at)
        return token
