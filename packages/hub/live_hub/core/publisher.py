"""
Publisher: the single entry point for pushing updates to subscribers.

Validates the update, then delivers it to the local TopicRegistry or, when a
Redis relay is configured, to every hub process through Redis Pub/Sub.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from live_shared.schemas import Update

from .errors import InvalidUpdate
from .redis import RedisRelay
from .registry import TopicRegistry

logger = logging.getLogger(__name__)


def build_update(
    topics: list[str] | str,
    data: Any,
    event_id: Optional[str] = None,
    event_type: Optional[str] = None,
) -> Update:
    """Validate a publish request. Raises InvalidUpdate."""
    if isinstance(topics, str):
        topics = [topics]
    if not isinstance(data, dict):
        raise InvalidUpdate("event data must be a JSON object")

    fields: dict[str, Any] = {"topics": list(topics), "data": data, "type": event_type}
    if event_id:
        fields["id"] = event_id
    try:
        return Update.model_validate(fields)
    except ValidationError as exc:
        errors = "; ".join(err["msg"] for err in exc.errors())
        raise InvalidUpdate(errors) from exc


class Publisher:
    def __init__(self, registry: TopicRegistry, relay: RedisRelay | None = None):
        self._registry = registry
        self._relay = relay

    async def publish(
        self,
        topics: list[str] | str,
        data: Any,
        event_id: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> Update:
        update = build_update(topics, data, event_id, event_type)

        if self._relay is not None:
            await self._relay.publish(update)
            logger.debug("Update %s relayed via Redis", update.id)
        else:
            delivered = self._registry.publish(update)
            logger.debug(
                "Update %s (%s) delivered to %d subscriber(s)",
                update.id,
                update.data["type"],
                delivered,
            )
        return update
