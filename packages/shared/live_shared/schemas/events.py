"""Event payload schemas shared by the hub, publishers and client adapters."""

from __future__ import annotations

import uuid
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..topics import is_valid_topic
from .common import NotificationPriority

Ident = Union[int, str]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; unknown fields are kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class ChatMessage(WireModel):
    id: Optional[Ident] = None
    conversation_id: Optional[Ident] = None
    sender_id: Ident
    sender_name: Optional[str] = None
    receiver_id: Optional[Ident] = None
    content: str = ""
    type: str = "text"
    read: bool = False
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Live stream
# ---------------------------------------------------------------------------

class LiveStreamMessage(WireModel):
    id: Optional[Ident] = None
    user_id: Optional[Ident] = None
    user_name: Optional[str] = None
    content: str = ""
    type: str = "text"
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class Notification(WireModel):
    id: Ident
    type: str = "system"
    title: str = ""
    message: str = ""
    is_read: bool = False
    action_url: Optional[str] = None
    created_at: Optional[str] = None
    read_at: Optional[str] = None
    priority: str = NotificationPriority.MEDIUM.value


# ---------------------------------------------------------------------------
# Hub updates
# ---------------------------------------------------------------------------

def _new_update_id() -> str:
    return f"urn:uuid:{uuid.uuid4()}"


class Update(BaseModel):
    """A single publish: one payload fanned out to one or more topics."""

    id: str = Field(default_factory=_new_update_id)
    topics: List[str] = Field(min_length=1)
    data: dict[str, Any]
    type: Optional[str] = None

    @field_validator("topics")
    @classmethod
    def _check_topics(cls, topics: list[str]) -> list[str]:
        for topic in topics:
            if not is_valid_topic(topic):
                raise ValueError(f"invalid topic: {topic!r}")
        return topics

    @field_validator("data")
    @classmethod
    def _check_event_type(cls, data: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(data.get("type"), str) or not data["type"]:
            raise ValueError("event data must carry a string 'type'")
        return data
