"""
Chat adapter: one conversation's messages, typing indicators and read
receipts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import structlog
from pydantic import ValidationError

from live_shared import topics
from live_shared.schemas import ChatMessage, EventType
from live_shared.topics import Ident

from ..manager import ConnectionManager
from .base import RealtimeAdapter

if TYPE_CHECKING:
    from ..api import MarketApiClient

log = structlog.get_logger()

TYPING_TTL_SECONDS = 6.0


class ChatAdapter(RealtimeAdapter):
    name = "chat"

    def __init__(
        self,
        manager: ConnectionManager,
        conversation_id: Ident,
        current_user_id: Ident,
        api: Optional["MarketApiClient"] = None,
        receiver_id: Optional[Ident] = None,
        typing_ttl: float = TYPING_TTL_SECONDS,
    ):
        super().__init__(manager, api)
        self.conversation_id = conversation_id
        self.current_user_id = current_user_id
        self.receiver_id = receiver_id
        self._typing_ttl = typing_ttl
        self.messages: list[ChatMessage] = []
        self.typing: dict[str, bool] = {}

    @property
    def topics(self) -> list[str]:
        return topics.chat_topics(self.conversation_id)

    def find_message(self, message_id: Ident) -> ChatMessage | None:
        for message in self.messages:
            if message.id is not None and str(message.id) == str(message_id):
                return message
        return None

    def handle_event(self, data: dict[str, Any], topic: str) -> None:
        event_type = data.get("type")

        if event_type == EventType.NEW_MESSAGE:
            self._handle_new_message(data)
        elif event_type == EventType.TYPING:
            user_id = data.get("userId")
            if user_id is not None:
                self._set_typing(user_id, bool(data.get("isTyping")))
        elif event_type == EventType.MESSAGES_READ:
            self._handle_messages_read(data)

    def _handle_new_message(self, data: dict[str, Any]) -> None:
        try:
            message = ChatMessage.model_validate(data.get("message"))
        except ValidationError:
            log.warning("chat.bad_message", conversation=self.conversation_id)
            return

        if message.id is None or self.find_message(message.id) is None:
            self.messages.append(message)
        else:
            log.debug("chat.duplicate_message", id=message.id)
        self._set_typing(message.sender_id, False)

    def _handle_messages_read(self, data: dict[str, Any]) -> None:
        reader = data.get("userId")
        me = str(self.current_user_id)
        if reader is not None and str(reader) == me:
            return
        for message in self.messages:
            if str(message.sender_id) == me and not message.read:
                message.read = True

    def _set_typing(self, user_id: Ident, is_typing: bool) -> None:
        key = str(user_id)
        self.typing[key] = is_typing
        if is_typing:
            self._schedule(("typing", key), self._typing_ttl, self._expire_typing, key)
        else:
            self._cancel(("typing", key))

    def _expire_typing(self, key: str) -> None:
        self.typing[key] = False

    # --- Outbound ---

    async def send_typing_indicator(self, is_typing: bool) -> None:
        """Show the indicator locally and publish it through the API."""
        self._set_typing(self.current_user_id, is_typing)
        if self._api is not None:
            await self._api.send_typing(self.conversation_id, is_typing)

    async def send_message(self, content: str, receiver_id: Optional[Ident] = None) -> ChatMessage:
        """
        Append the message optimistically, then send it. The hub echo is
        recognised by id and not appended twice.
        """
        api = self._require_api()
        receiver = receiver_id if receiver_id is not None else self.receiver_id
        local = ChatMessage(
            conversation_id=self.conversation_id,
            sender_id=self.current_user_id,
            receiver_id=receiver,
            content=content,
        )
        self.messages.append(local)

        try:
            stored = await api.send_message(self.conversation_id, content, receiver)
        except Exception:
            self.messages = [m for m in self.messages if m is not local]
            raise

        stored_id = stored.get("id")
        if stored_id is None:
            return local
        echoed = self.find_message(stored_id)
        if echoed is not None:
            # Echo arrived before the API response
            self.messages = [m for m in self.messages if m is not local]
            return echoed
        local.id = stored_id
        local.created_at = stored.get("createdAt")
        return local

    async def mark_read(self) -> int:
        return await self._require_api().mark_conversation_read(self.conversation_id)

    def status(self) -> dict[str, Any]:
        status = super().status()
        status["messages"] = len(self.messages)
        status["typing"] = sorted(k for k, v in self.typing.items() if v)
        return status
