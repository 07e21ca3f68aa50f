"""Live-stream adapter: viewer count, stream chat and product highlights."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any, Optional

import structlog
from pydantic import ValidationError

from live_shared import topics
from live_shared.schemas import EventType, LiveStreamMessage
from live_shared.topics import Ident

from ..manager import ConnectionManager
from .base import RealtimeAdapter

if TYPE_CHECKING:
    from ..api import MarketApiClient

log = structlog.get_logger()

HIGHLIGHT_CLEAR_SECONDS = 10.0

_HIGHLIGHT_TIMER = "highlight"


def _viewer_count(value: Any) -> Optional[int]:
    """Accept 47, 47.0 or "47"; anything else (negative, fractional, bool) is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int) and value >= 0:
        return value
    return None


class LiveStreamAdapter(RealtimeAdapter):
    name = "live_stream"

    def __init__(
        self,
        manager: ConnectionManager,
        stream_id: Ident,
        api: Optional["MarketApiClient"] = None,
        highlight_clear_seconds: float = HIGHLIGHT_CLEAR_SECONDS,
    ):
        super().__init__(manager, api)
        self.stream_id = stream_id
        self._highlight_clear = highlight_clear_seconds
        self.viewer_count = 0
        self.messages: list[LiveStreamMessage] = []
        self.highlighted_product: Optional[dict[str, Any]] = None
        self.last_stream_update: Optional[dict[str, Any]] = None
        self.session_id: str | None = None

    @property
    def topics(self) -> list[str]:
        return topics.live_stream_topics(self.stream_id)

    def handle_event(self, data: dict[str, Any], topic: str) -> None:
        event_type = data.get("type")

        if event_type == EventType.STREAM_UPDATE:
            self.last_stream_update = data
            log.info("live_stream.update", stream=self.stream_id, status=data.get("status"))
        elif event_type == EventType.VIEWER_COUNT_UPDATE:
            count = _viewer_count(data.get("viewerCount"))
            if count is None:
                log.warning(
                    "live_stream.bad_viewer_count",
                    stream=self.stream_id,
                    value=repr(data.get("viewerCount"))[:50],
                )
            else:
                self.viewer_count = count
        elif event_type == EventType.CHAT_MESSAGE:
            self._handle_chat_message(data)
        elif event_type == EventType.PRODUCT_HIGHLIGHT:
            self.highlighted_product = data.get("product")
            self._schedule(_HIGHLIGHT_TIMER, self._highlight_clear, self._clear_highlight)
        elif event_type == EventType.PURCHASE_NOTIFICATION:
            log.info(
                "live_stream.purchase",
                stream=self.stream_id,
                product=data.get("productId"),
                buyer=data.get("userName"),
            )

    def _handle_chat_message(self, data: dict[str, Any]) -> None:
        try:
            message = LiveStreamMessage.model_validate(data.get("message"))
        except ValidationError:
            log.warning("live_stream.bad_chat_message", stream=self.stream_id)
            return
        if message.id is not None and any(
            m.id is not None and str(m.id) == str(message.id) for m in self.messages
        ):
            return
        self.messages.append(message)

    def _clear_highlight(self) -> None:
        self.highlighted_product = None

    # --- Outbound ---

    async def join_live_stream(self, stream_id: Optional[Ident] = None) -> dict[str, Any]:
        """Register as a viewer. The server publishes the new viewer count."""
        api = self._require_api()
        self.session_id = self.session_id or uuid.uuid4().hex
        return await api.join_live_stream(
            stream_id if stream_id is not None else self.stream_id, self.session_id
        )

    async def leave_live_stream(self, stream_id: Optional[Ident] = None) -> None:
        api = self._require_api()
        if self.session_id is None:
            return
        session_id, self.session_id = self.session_id, None
        await api.leave_live_stream(
            stream_id if stream_id is not None else self.stream_id, session_id
        )

    async def highlight_product(self, product_id: Ident) -> None:
        await self._require_api().highlight_product(self.stream_id, product_id)

    async def send_chat_message(self, content: str) -> dict[str, Any]:
        return await self._require_api().send_live_chat(self.stream_id, content)

    def status(self) -> dict[str, Any]:
        status = super().status()
        status["viewer_count"] = self.viewer_count
        status["highlighted_product"] = (
            self.highlighted_product.get("id")
            if isinstance(self.highlighted_product, dict)
            else None
        )
        return status
