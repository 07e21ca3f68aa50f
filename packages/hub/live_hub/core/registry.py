"""
Topic registry: topic -> subscribers currently connected to it.

Each subscriber owns a bounded FIFO queue; publish order is preserved per
subscriber. Delivery is fire-and-forget with no replay: a subscriber that
registers after a publish never sees it. A subscriber whose queue is full is
evicted so its stream ends and the client reconnects and catches up.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, NamedTuple, Optional

from live_shared.schemas import Update

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class Delivery(NamedTuple):
    id: str
    type: Optional[str]
    data: dict[str, Any]


class Subscriber:
    """One open SSE stream and the topics it asked for."""

    __slots__ = ("id", "topics", "queue", "closed", "evicted", "connected_at")

    def __init__(self, topics: list[str], queue_size: int = DEFAULT_QUEUE_SIZE):
        self.id = uuid.uuid4().hex
        self.topics: tuple[str, ...] = tuple(dict.fromkeys(topics))
        # None in the queue marks the end of the stream
        self.queue: asyncio.Queue[Optional[Delivery]] = asyncio.Queue(maxsize=queue_size)
        self.closed = False
        self.evicted = False
        self.connected_at = time.time()


class TopicRegistry:
    """In-process index of subscribers per topic."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        # topic -> subscriber_id -> Subscriber
        self._topics: dict[str, dict[str, Subscriber]] = {}
        self._subscribers: dict[str, Subscriber] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def topics(self) -> list[str]:
        return sorted(self._topics)

    def subscribers_for(self, topic: str) -> list[Subscriber]:
        return list(self._topics.get(topic, {}).values())

    def subscribe(self, topics: list[str]) -> Subscriber:
        subscriber = Subscriber(topics, self._queue_size)
        self._subscribers[subscriber.id] = subscriber
        for topic in subscriber.topics:
            self._topics.setdefault(topic, {})[subscriber.id] = subscriber
        logger.info(
            "Subscriber %s registered for %d topic(s), total=%d",
            subscriber.id[:8],
            len(subscriber.topics),
            len(self._subscribers),
        )
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        """Remove a subscriber from every topic. Safe to call twice."""
        if self._subscribers.pop(subscriber.id, None) is None:
            return
        subscriber.closed = True
        for topic in subscriber.topics:
            bucket = self._topics.get(topic)
            if bucket is None:
                continue
            bucket.pop(subscriber.id, None)
            if not bucket:
                del self._topics[topic]
        logger.info(
            "Subscriber %s removed, total=%d", subscriber.id[:8], len(self._subscribers)
        )

    def publish(self, update: Update) -> int:
        """
        Enqueue an update for every subscriber of any of its topics.

        A subscriber matching several topics receives the update once. The
        delivered payload carries a ``topic`` field: the payload's own one if
        set, otherwise the first update topic the subscriber asked for.
        Returns the number of subscribers reached.
        """
        reached: dict[str, tuple[Subscriber, str]] = {}
        for topic in update.topics:
            for subscriber in self._topics.get(topic, {}).values():
                if subscriber.id not in reached:
                    reached[subscriber.id] = (subscriber, topic)

        delivered = 0
        for subscriber, topic in reached.values():
            data = update.data if "topic" in update.data else {**update.data, "topic": topic}
            try:
                subscriber.queue.put_nowait(Delivery(update.id, update.type, data))
                delivered += 1
            except asyncio.QueueFull:
                self._evict(subscriber)

        return delivered

    def _evict(self, subscriber: Subscriber) -> None:
        logger.warning(
            "Subscriber %s queue full, evicting (topics=%s)",
            subscriber.id[:8],
            ",".join(subscriber.topics),
        )
        subscriber.evicted = True
        self.unsubscribe(subscriber)
        while not subscriber.queue.empty():
            subscriber.queue.get_nowait()
        subscriber.queue.put_nowait(None)

    def close_all(self) -> None:
        """End every open stream (shutdown)."""
        for subscriber in list(self._subscribers.values()):
            self.unsubscribe(subscriber)
            try:
                subscriber.queue.put_nowait(None)
            except asyncio.QueueFull:
                subscriber.queue.get_nowait()
                subscriber.queue.put_nowait(None)
