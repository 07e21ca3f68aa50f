"""
Marketplace API client for outbound real-time actions.

Adapters never publish to the hub themselves: they call the API layer, which
persists the action and publishes the resulting event. Handles:
- Bearer auth from the configured API token
- Retry with exponential backoff on 429, 5xx and transport errors
- No retry on other 4xx
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
import structlog

from live_shared.topics import Ident

from .errors import ApiError
from .metrics import MetricsCollector

log = structlog.get_logger()

# Retry configuration
MAX_RETRIES = 3
RETRY_BASE_SECONDS = 1.0


class MarketApiClient:
    """Thin async client over the marketplace REST routes used by the adapters."""

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        verify_tls: bool = True,
        request_timeout: float = 30.0,
        retry_base_seconds: float = RETRY_BASE_SECONDS,
        metrics: MetricsCollector | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._verify_tls = verify_tls
        self._request_timeout = request_timeout
        self._retry_base = retry_base_seconds
        self._metrics = metrics
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(self._request_timeout),
            verify=self._verify_tls,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MarketApiClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # --- Conversations ---

    async def send_message(
        self,
        conversation_id: Ident,
        content: str,
        receiver_id: Ident,
        message_type: str = "text",
    ) -> dict[str, Any]:
        """Send a chat message. Returns the stored message."""
        body = await self._request(
            "POST",
            f"/api/conversations/{conversation_id}/messages",
            json={"content": content, "receiverId": receiver_id, "type": message_type},
        )
        return (body or {}).get("data", {})

    async def send_typing(self, conversation_id: Ident, is_typing: bool) -> None:
        await self._request(
            "POST",
            f"/api/conversations/{conversation_id}/typing",
            json={"isTyping": is_typing},
        )

    async def mark_conversation_read(self, conversation_id: Ident) -> int:
        body = await self._request("PUT", f"/api/conversations/{conversation_id}/read")
        return int((body or {}).get("count", 0))

    # --- Live streams ---

    async def join_live_stream(self, stream_id: Ident, session_id: str) -> dict[str, Any]:
        return await self._request(
            "POST", f"/api/live-streams/{stream_id}/join", json={"sessionId": session_id}
        ) or {}

    async def leave_live_stream(self, stream_id: Ident, session_id: str) -> None:
        await self._request(
            "POST", f"/api/live-streams/{stream_id}/leave", json={"sessionId": session_id}
        )

    async def send_live_chat(
        self, stream_id: Ident, content: str, message_type: str = "text"
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/live-streams/{stream_id}/chat",
            json={"content": content, "type": message_type},
        ) or {}

    async def highlight_product(self, stream_id: Ident, product_id: Ident) -> None:
        await self._request(
            "POST",
            f"/api/live-streams/{stream_id}/highlight-product",
            json={"productId": product_id},
        )

    # --- Notifications ---

    async def list_notifications(self, page: int = 1, limit: int = 20) -> list[dict[str, Any]]:
        body = await self._request(
            "GET", "/api/notifications", params={"page": page, "limit": limit}
        )
        return (body or {}).get("notifications", [])

    async def mark_notification_read(self, notification_id: Ident) -> None:
        await self._request("PUT", f"/api/notifications/{notification_id}/read")

    async def mark_all_notifications_read(self) -> None:
        await self._request("PUT", "/api/notifications/mark-all-read")

    async def delete_notification(self, notification_id: Ident) -> None:
        await self._request("DELETE", f"/api/notifications/{notification_id}")

    # --- Hub credentials ---

    async def fetch_hub_token(self) -> str:
        body = await self._request("GET", "/api/mercure/token")
        token = (body or {}).get("token")
        if not token:
            raise ApiError("token endpoint returned no token")
        return token

    # --- Health ---

    async def check_health(self) -> bool:
        if not self._client:
            return False
        try:
            resp = await self._client.get("/health")
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    # --- Transport ---

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        if self._client is None:
            await self.open()
        assert self._client

        last_exc: Exception | None = None
        for attempt in range(MAX_RETRIES):
            try:
                resp = await self._client.request(method, path, json=json, params=params)

                if resp.status_code == 429:
                    retry_after = float(
                        resp.headers.get("Retry-After", self._retry_base * (attempt + 1))
                    )
                    log.warning("api.rate_limited", path=path, retry_after=retry_after)
                    last_exc = ApiError(f"{method} {path}: rate limited", 429)
                    await asyncio.sleep(retry_after)
                    continue

                resp.raise_for_status()
                if self._metrics:
                    self._metrics.inc("api_requests_total")
                if not resp.content:
                    return None
                return resp.json()

            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if 400 <= status < 500:
                    log.error("api.client_error", method=method, path=path, status=status)
                    if self._metrics:
                        self._metrics.inc("api_errors_total")
                    raise ApiError(f"{method} {path}: HTTP {status}", status) from exc
                last_exc = exc
            except httpx.TransportError as exc:
                last_exc = exc

            backoff = self._retry_base * (2 ** attempt)
            log.warning(
                "api.retry",
                method=method,
                path=path,
                attempt=attempt + 1,
                backoff=backoff,
                error=str(last_exc),
            )
            await asyncio.sleep(backoff)

        if self._metrics:
            self._metrics.inc("api_errors_total")
        status = getattr(getattr(last_exc, "response", None), "status_code", None)
        if isinstance(last_exc, ApiError):
            status = last_exc.status_code
        raise ApiError(f"{method} {path} failed after {MAX_RETRIES} attempts: {last_exc}", status)
