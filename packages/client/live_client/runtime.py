"""
Headless listener process.

Builds the configured adapters on one ConnectionManager and runs them until
shutdown, publishing adapter status to the health server.
"""

from __future__ import annotations

import asyncio
import signal

import httpx
import structlog

from .adapters import ChatAdapter, LiveStreamAdapter, NotificationsAdapter, RealtimeAdapter
from .api import MarketApiClient
from .auth import EndpointTokenProvider, StaticTokenProvider, TokenProvider
from .config import ClientConfig
from .errors import ApiError
from .health import HealthServer
from .manager import ConnectionManager
from .metrics import MetricsCollector

log = structlog.get_logger()

SHUTDOWN_TIMEOUT = 15.0


class RealtimeClient:
    """Owns the connection manager, API client, adapters and health server."""

    def __init__(self, config: ClientConfig, transport: httpx.AsyncBaseTransport | None = None):
        self._config = config
        self.metrics = MetricsCollector()
        self.api: MarketApiClient | None = None
        if config.api.url:
            self.api = MarketApiClient(
                config.api.url,
                api_token=config.api.token,
                verify_tls=config.api.verify_tls,
                request_timeout=config.api.request_timeout_seconds,
                metrics=self.metrics,
            )

        token_provider: TokenProvider
        if config.auth.use_token_endpoint and self.api is not None:
            token_provider = EndpointTokenProvider(self.api)
        else:
            token_provider = StaticTokenProvider(config.auth.token)

        self.manager = ConnectionManager(
            config.hub.url,
            token_provider=token_provider,
            reconnect_delay=config.hub.reconnect_delay_seconds,
            verify_tls=config.hub.verify_tls,
            connect_timeout=config.hub.connect_timeout_seconds,
            metrics=self.metrics,
            transport=transport,
        )
        self._health = HealthServer(
            host=config.metrics.host,
            port=config.metrics.port,
            metrics=self.metrics,
        )
        self.adapters: list[RealtimeAdapter] = self._build_adapters()
        self._running = False
        self._shutdown_event = asyncio.Event()

    def _build_adapters(self) -> list[RealtimeAdapter]:
        cfg = self._config
        adapters: list[RealtimeAdapter] = []
        if cfg.notifications.enabled and cfg.user_id is not None:
            adapters.append(
                NotificationsAdapter(
                    self.manager,
                    cfg.user_id,
                    api=self.api,
                    fallback_timeout=cfg.notifications.fallback_timeout_seconds,
                    fallback_unread_count=cfg.notifications.fallback_unread_count,
                )
            )
        for conversation_id in cfg.chat.conversations:
            adapters.append(
                ChatAdapter(
                    self.manager,
                    conversation_id,
                    cfg.user_id,
                    api=self.api,
                    typing_ttl=cfg.chat.typing_ttl_seconds,
                )
            )
        for stream_id in cfg.live_streams.streams:
            adapters.append(
                LiveStreamAdapter(
                    self.manager,
                    stream_id,
                    api=self.api,
                    highlight_clear_seconds=cfg.live_streams.highlight_clear_seconds,
                )
            )
        return adapters

    async def start(self) -> None:
        log.info("client.starting", adapters=len(self.adapters), hub=self._config.hub.url)

        if self.api is not None:
            await self.api.open()

        if self._config.metrics.enabled:
            try:
                await self._health.start()
                log.info(
                    "client.health_started",
                    host=self._config.metrics.host,
                    port=self._health.port,
                )
            except OSError as exc:
                log.warning("client.health_start_failed", error=str(exc))

        for adapter in self.adapters:
            adapter.start()

        if self._config.live_streams.join and self.api is not None:
            for adapter in self.adapters:
                if isinstance(adapter, LiveStreamAdapter):
                    try:
                        await adapter.join_live_stream()
                    except ApiError as exc:
                        log.warning("client.join_failed", stream=adapter.stream_id, error=str(exc))

        self._running = True
        log.info("client.started", subscriptions=self.manager.active_count)

    async def stop(self) -> None:
        """Leave streams, close every subscription, then the HTTP clients."""
        if not self._running:
            return
        self._running = False
        log.info("client.stopping")

        for adapter in self.adapters:
            if isinstance(adapter, LiveStreamAdapter) and adapter.session_id:
                try:
                    await adapter.leave_live_stream()
                except ApiError as exc:
                    log.warning("client.leave_failed", stream=adapter.stream_id, error=str(exc))
            adapter.stop()

        await self.manager.close()
        await self._health.stop()
        if self.api is not None:
            await self.api.close()
        log.info("client.stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run_forever(self) -> None:
        """Run until SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.request_shutdown)

        await self.start()
        try:
            while not self._shutdown_event.is_set():
                await self.update_health()
                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self._config.metrics.status_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            await asyncio.wait_for(self.stop(), timeout=SHUTDOWN_TIMEOUT)

    async def update_health(self) -> None:
        statuses = [adapter.status() for adapter in self.adapters]
        api_ok = await self.api.check_health() if self.api is not None else None
        self.metrics.set_gauge(
            "adapters_connected", sum(1 for adapter in self.adapters if adapter.connected)
        )
        subscriptions = []
        for subscription_id in self.manager.subscription_ids():
            connection = self.manager.get(subscription_id)
            if connection is None:
                continue
            subscriptions.append(
                {
                    "id": subscription_id,
                    "state": connection.state.value,
                    "topics": list(connection.topics),
                    "reconnects": connection.reconnect_count,
                    "last_event_at": connection.last_event_at,
                }
            )
        self._health.update_status(statuses, api_ok, subscriptions)
