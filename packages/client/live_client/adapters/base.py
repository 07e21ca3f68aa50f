"""
Client dispatch layer.

An adapter owns one subscription on a fixed topic set and folds each event
into local view state by its ``type``. Adapters never retry; reconnecting is
the connection's job.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Optional

import structlog

from ..connection import ConnectionState
from ..errors import RealtimeError
from ..manager import ConnectionManager

if TYPE_CHECKING:
    from ..api import MarketApiClient

log = structlog.get_logger()


class RealtimeAdapter:
    """
    Base for domain adapters.

    ``connected`` is a heuristic: True once any event arrived since the last
    (re)connect attempt, False after an error or when a new attempt opens.
    """

    name = "adapter"

    def __init__(self, manager: ConnectionManager, api: Optional["MarketApiClient"] = None):
        self._manager = manager
        self._api = api
        self.subscription_id: str | None = None
        self.connected = False
        self.events_received = 0
        self.last_error: Exception | None = None
        self._timers: dict[Any, asyncio.TimerHandle] = {}

    @property
    def topics(self) -> list[str]:
        raise NotImplementedError

    @property
    def running(self) -> bool:
        return self.subscription_id is not None

    @property
    def stream_open(self) -> bool:
        """True while the hub has accepted the handshake, even before any event."""
        if self.subscription_id is None:
            return False
        connection = self._manager.get(self.subscription_id)
        return connection is not None and connection.state is ConnectionState.OPEN

    def start(self) -> str:
        """Subscribe to the adapter's topics. Returns the subscription ID."""
        if self.subscription_id is None:
            self.subscription_id = self._manager.subscribe(
                self.topics, self._on_message, self._on_error, self._on_open
            )
            log.info(f"{self.name}.started", subscription=self.subscription_id)
        return self.subscription_id

    def stop(self) -> None:
        """Unsubscribe and cancel pending timers. Idempotent."""
        if self.subscription_id is not None:
            self._manager.unsubscribe(self.subscription_id)
            log.info(f"{self.name}.stopped", subscription=self.subscription_id)
            self.subscription_id = None
        self.connected = False
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def handle_event(self, data: dict[str, Any], topic: str) -> None:
        raise NotImplementedError

    def status(self) -> dict[str, Any]:
        connection = self._manager.get(self.subscription_id) if self.subscription_id else None
        return {
            "name": self.name,
            "topics": self.topics,
            "subscription": self.subscription_id,
            "state": connection.state.value if connection else "closed",
            "connected": self.connected,
            "events_received": self.events_received,
            "reconnect_count": connection.reconnect_count if connection else 0,
        }

    async def on_connected(self) -> None:
        """Hook run each time the connection opens."""

    # --- Timers ---

    def _schedule(self, key: Any, delay: float, callback, *args: Any) -> None:
        """(Re)arm the timer ``key``; a pending one is cancelled first."""
        self._cancel(key)
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(delay, self._fire, key, callback, args)

    def _cancel(self, key: Any) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _fire(self, key: Any, callback, args: tuple) -> None:
        self._timers.pop(key, None)
        callback(*args)

    def _require_api(self) -> "MarketApiClient":
        if self._api is None:
            raise RealtimeError(f"{self.name}: no API client configured")
        return self._api

    # --- Connection callbacks ---

    def _on_message(self, data: dict[str, Any], topic: str) -> None:
        self.connected = True
        self.events_received += 1
        self.handle_event(data, topic)

    def _on_error(self, error: Exception) -> None:
        self.connected = False
        self.last_error = error
        log.warning(f"{self.name}.connection_error", error=str(error))

    async def _on_open(self) -> None:
        self.connected = False
        await self.on_connected()
