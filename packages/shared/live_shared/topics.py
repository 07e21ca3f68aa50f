"""
Topic naming conventions.

Topics are opaque strings to the hub; these helpers keep the hierarchy
consistent between publishers and subscribers:

- user/<id>/notifications, notifications/global
- conversation/<id>, conversation/<id>/typing, conversation/<id>/read
- live-stream/<id>, live-stream/<id>/chat, /viewers, /products
"""

from __future__ import annotations

from typing import Union

Ident = Union[str, int]

GLOBAL_NOTIFICATIONS = "notifications/global"


def conversation(conversation_id: Ident) -> str:
    return f"conversation/{conversation_id}"


def conversation_typing(conversation_id: Ident) -> str:
    return f"conversation/{conversation_id}/typing"


def conversation_read(conversation_id: Ident) -> str:
    return f"conversation/{conversation_id}/read"


def live_stream(stream_id: Ident) -> str:
    return f"live-stream/{stream_id}"


def live_stream_chat(stream_id: Ident) -> str:
    return f"live-stream/{stream_id}/chat"


def live_stream_viewers(stream_id: Ident) -> str:
    return f"live-stream/{stream_id}/viewers"


def live_stream_products(stream_id: Ident) -> str:
    return f"live-stream/{stream_id}/products"


def user_notifications(user_id: Ident) -> str:
    return f"user/{user_id}/notifications"


# --- Topic sets per domain ---


def chat_topics(conversation_id: Ident) -> list[str]:
    return [
        conversation(conversation_id),
        conversation_typing(conversation_id),
        conversation_read(conversation_id),
    ]


def live_stream_topics(stream_id: Ident) -> list[str]:
    return [
        live_stream(stream_id),
        live_stream_chat(stream_id),
        live_stream_viewers(stream_id),
        live_stream_products(stream_id),
    ]


def notification_topics(user_id: Ident) -> list[str]:
    return [user_notifications(user_id), GLOBAL_NOTIFICATIONS]


def is_valid_topic(topic: object) -> bool:
    """A topic must be a non-blank string without line breaks."""
    if not isinstance(topic, str) or not topic.strip():
        return False
    return "\n" not in topic and "\r" not in topic
