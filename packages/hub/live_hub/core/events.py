"""
SSE stream generator for hub subscribers.

Features:
- One stream per subscribe request, multiplexing all requested topics
- Publisher order preserved per stream
- Keepalive heartbeat comment when idle
- Stream ends when the subscriber is evicted or the hub shuts down
- Graceful cleanup on disconnect
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncGenerator

from starlette.requests import Request

from .registry import Subscriber, TopicRegistry

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 15.0  # seconds


async def event_generator(
    request: Request,
    registry: TopicRegistry,
    subscriber: Subscriber,
    heartbeat_interval: float = HEARTBEAT_INTERVAL,
) -> AsyncGenerator[dict, None]:
    try:
        while True:
            if await request.is_disconnected():
                break

            try:
                delivery = await asyncio.wait_for(
                    subscriber.queue.get(), timeout=heartbeat_interval
                )
            except asyncio.TimeoutError:
                yield {"comment": "heartbeat"}
                continue

            if delivery is None:
                logger.info(
                    "SSE stream for subscriber %s ended (evicted=%s)",
                    subscriber.id[:8],
                    subscriber.evicted,
                )
                break

            event = {"id": delivery.id, "data": json.dumps(delivery.data)}
            if delivery.type:
                event["event"] = delivery.type
            yield event

    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for subscriber %s", subscriber.id[:8])
        raise
    finally:
        registry.unsubscribe(subscriber)
