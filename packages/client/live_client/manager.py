"""
Process-wide table of live subscriptions.

Every ``subscribe`` call gets its own Connection, tracked under a
subscription ID until ``unsubscribe``. All access happens on the event loop
thread.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from typing import Optional, Sequence

import httpx
import structlog

from live_shared.topics import is_valid_topic

from .auth import TokenProvider
from .connection import (
    CONNECT_TIMEOUT_SECONDS,
    RECONNECT_DELAY_SECONDS,
    Connection,
    ErrorHandler,
    MessageHandler,
    OpenHandler,
)
from .errors import SubscribeError
from .metrics import MetricsCollector

log = structlog.get_logger()

DEFAULT_HUB_URL = "http://localhost:3000/.well-known/mercure"


class ConnectionManager:
    """Opens, tracks and closes hub connections keyed by subscription ID."""

    def __init__(
        self,
        hub_url: str = DEFAULT_HUB_URL,
        token_provider: Optional[TokenProvider] = None,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        verify_tls: bool = True,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        metrics: MetricsCollector | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._hub_url = hub_url
        self._token_provider = token_provider
        self._reconnect_delay = reconnect_delay
        self._verify_tls = verify_tls
        self._connect_timeout = connect_timeout
        self._metrics = metrics
        self._transport = transport
        self._connections: dict[str, Connection] = {}
        self._issued: set[str] = set()
        self._closing: list[Connection] = []

    @property
    def active_count(self) -> int:
        return len(self._connections)

    def subscription_ids(self) -> list[str]:
        return list(self._connections)

    def get(self, subscription_id: str) -> Connection | None:
        return self._connections.get(subscription_id)

    def subscribe(
        self,
        topics: Sequence[str],
        on_message: MessageHandler,
        on_error: Optional[ErrorHandler] = None,
        on_open: Optional[OpenHandler] = None,
    ) -> str:
        """
        Open a connection for ``topics`` and return its subscription ID.

        Raises SubscribeError for input that can never connect: no topics, a
        topic that is not a non-empty single-line string, or no running
        event loop. Transport problems after this point never raise; they
        reach ``on_error`` and the connection keeps retrying.
        """
        if isinstance(topics, str) or not topics:
            raise SubscribeError("topics must be a non-empty list of strings")
        invalid = [t for t in topics if not is_valid_topic(t)]
        if invalid:
            raise SubscribeError(f"invalid topic: {invalid[0]!r}")
        if not callable(on_message):
            raise SubscribeError("on_message must be callable")
        try:
            asyncio.get_running_loop()
        except RuntimeError as exc:
            raise SubscribeError("subscribe() needs a running event loop") from exc

        subscription_id = self._new_id()
        connection = Connection(
            subscription_id,
            self._hub_url,
            list(topics),
            on_message,
            on_error,
            on_open,
            token_provider=self._token_provider,
            reconnect_delay=self._reconnect_delay,
            verify_tls=self._verify_tls,
            connect_timeout=self._connect_timeout,
            transport=self._transport,
            metrics=self._metrics,
            on_closed=self._forget,
        )
        self._connections[subscription_id] = connection
        connection.start()
        self._update_gauge()
        log.info("manager.subscribed", subscription=subscription_id, topics=list(topics))
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> None:
        """Close a subscription. Unknown or already closed IDs are a no-op."""
        connection = self._connections.pop(subscription_id, None)
        if connection is None:
            return
        connection.close()
        self._closing = [c for c in self._closing if c.running]
        self._closing.append(connection)
        self._update_gauge()
        log.info("manager.unsubscribed", subscription=subscription_id)

    def unsubscribe_all(self) -> None:
        for subscription_id in list(self._connections):
            self.unsubscribe(subscription_id)

    async def close(self) -> None:
        """Unsubscribe everything and wait for the connection tasks to end."""
        self.unsubscribe_all()
        closing, self._closing = self._closing, []
        await asyncio.gather(*(c.wait_closed() for c in closing))

    def _new_id(self) -> str:
        while True:
            subscription_id = f"sub_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
            if subscription_id not in self._issued:
                self._issued.add(subscription_id)
                return subscription_id

    def _forget(self, subscription_id: str) -> None:
        # Connection closed itself after a fatal handshake rejection
        if self._connections.pop(subscription_id, None) is not None:
            self._update_gauge()
            log.info("manager.dropped", subscription=subscription_id)

    def _update_gauge(self) -> None:
        if self._metrics:
            self._metrics.set_gauge("subscriptions_active", len(self._connections))
