"""
One streaming connection to the hub per subscription.

Maintains a persistent SSE stream carrying all of a subscription's topics:
- Fixed-delay reconnection, unbounded attempts, same topics and handlers
- Fresh token from the provider on every attempt
- Malformed frames dropped without tearing the stream down
- Synchronous close: no callback fires once close() has returned
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from enum import Enum
from typing import Any, Callable, Optional

import httpx
import structlog

from .auth import TokenProvider
from .errors import HandshakeRejected, TransportError
from .metrics import MetricsCollector

log = structlog.get_logger()

RECONNECT_DELAY_SECONDS = 5.0
CONNECT_TIMEOUT_SECONDS = 10.0

# Handshake statuses retrying cannot fix: bad request, no hub, bad topics
FATAL_STATUS_CODES = frozenset({400, 404, 422})

MessageHandler = Callable[[dict[str, Any], str], Any]
ErrorHandler = Callable[[Exception], Any]
OpenHandler = Callable[[], Any]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


async def _call(handler: Callable[..., Any], *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class Connection:
    """
    Streaming GET to the hub endpoint with ``topic`` repeated per topic.

    Each frame's data is decoded as a JSON object and handed to
    ``on_message(data, topic)``; ``topic`` is the frame's own ``topic`` field
    or, failing that, the first subscribed topic. Handlers may be plain
    functions or coroutines.
    """

    def __init__(
        self,
        subscription_id: str,
        hub_url: str,
        topics: list[str],
        on_message: MessageHandler,
        on_error: Optional[ErrorHandler] = None,
        on_open: Optional[OpenHandler] = None,
        *,
        token_provider: Optional[TokenProvider] = None,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        verify_tls: bool = True,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        metrics: MetricsCollector | None = None,
        on_closed: Optional[Callable[[str], None]] = None,
    ):
        self.subscription_id = subscription_id
        self.topics = tuple(topics)
        self._hub_url = hub_url
        self._on_message = on_message
        self._on_error = on_error
        self._on_open = on_open
        self._token_provider = token_provider
        self._reconnect_delay = reconnect_delay
        self._verify_tls = verify_tls
        self._connect_timeout = connect_timeout
        self._transport = transport
        self._metrics = metrics
        self._on_closed = on_closed

        self._state = ConnectionState.CONNECTING
        self._closed = False
        self._task: asyncio.Task | None = None
        self._attempts = 0
        self._reconnect_count = 0
        self._events_since_connect = 0
        self._last_event_at: float | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    @property
    def events_since_connect(self) -> int:
        return self._events_since_connect

    @property
    def last_event_at(self) -> float | None:
        return self._last_event_at

    def start(self) -> None:
        """Schedule the connection loop on the running event loop."""
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"connection:{self.subscription_id}")

    def close(self) -> None:
        """Stop the connection. Idempotent, safe from inside a handler."""
        if self._closed:
            return
        self._closed = True
        self._set_state(ConnectionState.CLOSED)
        if self._task and not self._task.done():
            self._task.cancel()
        log.info("connection.closed", subscription=self.subscription_id)

    async def wait_closed(self) -> None:
        """Wait for the connection task to finish after close()."""
        if self._task is None or self._task is asyncio.current_task():
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        log.debug(
            "connection.state",
            subscription=self.subscription_id,
            old=self._state.value,
            new=state.value,
        )
        self._state = state

    async def _run(self) -> None:
        while not self._closed:
            self._attempts += 1
            self._events_since_connect = 0
            try:
                await self._connect_and_stream()
                error: TransportError = TransportError("stream closed by hub")
            except asyncio.CancelledError:
                raise
            except HandshakeRejected as exc:
                log.error(
                    "connection.rejected",
                    subscription=self.subscription_id,
                    status=exc.status_code,
                    topics=self.topics,
                )
                await self._notify_error(exc)
                self._fail()
                return
            except TransportError as exc:
                error = exc
            except Exception as exc:
                error = TransportError(f"{type(exc).__name__}: {exc}")
                error.__cause__ = exc

            if self._closed:
                break

            log.warning(
                "connection.lost",
                subscription=self.subscription_id,
                error=str(error),
                delay=self._reconnect_delay,
            )
            if self._metrics:
                self._metrics.inc("connection_errors_total")
            await self._notify_error(error)
            if self._closed:
                break

            self._set_state(ConnectionState.RECONNECTING)
            self._reconnect_count += 1
            if self._metrics:
                self._metrics.inc("reconnects_total")
            await asyncio.sleep(self._reconnect_delay)

            if not self._closed:
                self._set_state(ConnectionState.CONNECTING)
                log.info(
                    "connection.reconnecting",
                    subscription=self.subscription_id,
                    attempt=self._attempts + 1,
                )

    def _fail(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._set_state(ConnectionState.CLOSED)
        if self._on_closed:
            self._on_closed(self.subscription_id)

    async def _connect_and_stream(self) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if self._token_provider is not None:
            token = await self._token_provider.get_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        params = [("topic", topic) for topic in self.topics]

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=self._connect_timeout),
            verify=self._verify_tls,
            transport=self._transport,
        ) as client:
            async with client.stream("GET", self._hub_url, params=params, headers=headers) as response:
                status = response.status_code
                if status in FATAL_STATUS_CODES:
                    raise HandshakeRejected(f"hub rejected subscription: HTTP {status}", status)
                if not response.is_success:
                    if status == 401:
                        # Drop a cached token so the next attempt fetches a new one
                        invalidate = getattr(self._token_provider, "invalidate", None)
                        if invalidate is not None:
                            invalidate()
                    raise TransportError(f"hub handshake failed: HTTP {status}", status)
                if self._closed:
                    return

                self._set_state(ConnectionState.OPEN)
                if self._metrics:
                    self._metrics.inc("connections_opened_total")
                log.info(
                    "connection.opened",
                    subscription=self.subscription_id,
                    topics=self.topics,
                    attempt=self._attempts,
                )
                await self._notify_open()

                current_event_id: str | None = None
                current_data_lines: list[str] = []

                async for line in response.aiter_lines():
                    if self._closed:
                        return

                    line = line.rstrip("\r\n")

                    if line.startswith("data:"):
                        current_data_lines.append(line[5:].strip())
                    elif line.startswith("id:"):
                        current_event_id = line[3:].strip()
                    elif line.startswith(":") or line.startswith("event:"):
                        # Comment / heartbeat; the event name is carried in data
                        pass
                    elif line == "":
                        if current_data_lines:
                            await self._dispatch(current_event_id, current_data_lines)
                        current_event_id = None
                        current_data_lines = []

    async def _dispatch(self, event_id: str | None, data_lines: list[str]) -> None:
        raw = "\n".join(data_lines)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            log.warning(
                "connection.parse_error",
                subscription=self.subscription_id,
                event_id=event_id,
                data=raw[:200],
            )
            if self._metrics:
                self._metrics.inc("frames_dropped_total")
            return

        topic = data.get("topic")
        if not isinstance(topic, str) or not topic:
            topic = self.topics[0]

        self._events_since_connect += 1
        self._last_event_at = time.time()
        if self._metrics:
            self._metrics.inc("events_received_total")

        if self._closed:
            return
        try:
            await _call(self._on_message, data, topic)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception(
                "connection.handler_error",
                subscription=self.subscription_id,
                event_type=data.get("type"),
            )

    async def _notify_open(self) -> None:
        if self._on_open is None or self._closed:
            return
        try:
            await _call(self._on_open)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("connection.open_handler_error", subscription=self.subscription_id)

    async def _notify_error(self, error: Exception) -> None:
        if self._on_error is None or self._closed:
            return
        try:
            await _call(self._on_error, error)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("connection.error_handler_error", subscription=self.subscription_id)
