"""
HTTP publisher for backends.

API handlers (send message, viewer joined, notification created, ...) use
this to push updates to the hub after their own writes succeed.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import httpx
import structlog

from live_hub.core.auth import create_token

log = structlog.get_logger()

PUBLISH_TOKEN_TTL = timedelta(minutes=1)


class HubClient:
    """Publishes updates to the hub over HTTP, signing a short-lived token per call."""

    def __init__(
        self,
        hub_url: str,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        request_timeout: float = 10.0,
        verify_tls: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._hub_url = hub_url
        self._jwt_secret = jwt_secret
        self._jwt_algorithm = jwt_algorithm
        self._request_timeout = request_timeout
        self._verify_tls = verify_tls
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._request_timeout),
            verify=self._verify_tls,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HubClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def publish(
        self,
        topics: list[str] | str,
        data: dict[str, Any],
        event_id: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> str:
        """Publish one update. Returns the hub-assigned update id."""
        if self._client is None:
            await self.open()
        assert self._client

        if isinstance(topics, str):
            topics = [topics]
        token = create_token(
            self._jwt_secret,
            publish=list(topics),
            algorithm=self._jwt_algorithm,
            expires_delta=PUBLISH_TOKEN_TTL,
        )
        body: dict[str, Any] = {"topics": topics, "data": data}
        if event_id:
            body["id"] = event_id
        if event_type:
            body["type"] = event_type

        resp = await self._client.post(
            self._hub_url,
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )
        resp.raise_for_status()
        update_id = resp.json()["id"]
        log.debug("hub_client.published", topics=topics, type=data.get("type"), id=update_id)
        return update_id
