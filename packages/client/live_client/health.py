"""
Listener health endpoint.

GET /health   adapter and subscription status, "healthy" or "degraded"
GET /metrics  Prometheus text from the MetricsCollector
"""

from __future__ import annotations

from typing import Any

from aiohttp import web

from .metrics import MetricsCollector


class HealthServer:
    """aiohttp app serving the last status snapshot pushed by the runtime."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 9090,
        metrics: MetricsCollector | None = None,
    ):
        self.host = host
        self._requested_port = port
        self.metrics = metrics or MetricsCollector()
        self._snapshot: dict[str, Any] = {"adapters": [], "subscriptions": [], "api_reachable": None}
        self._runner: web.AppRunner | None = None

    @property
    def port(self) -> int:
        # Port 0 asks the OS for a free port; report the one actually bound
        if self._runner is not None and self._runner.addresses:
            return self._runner.addresses[0][1]
        return self._requested_port

    def update_status(
        self,
        adapters: list[dict[str, Any]],
        api_reachable: bool | None = None,
        subscriptions: list[dict[str, Any]] | None = None,
    ) -> None:
        self._snapshot = {
            "adapters": adapters,
            "subscriptions": subscriptions or [],
            "api_reachable": api_reachable,
        }

    @property
    def healthy(self) -> bool:
        adapters_ok = all(a.get("connected") for a in self._snapshot["adapters"])
        return adapters_ok and self._snapshot["api_reachable"] is not False

    async def start(self) -> None:
        app = web.Application()
        app.add_routes([web.get("/health", self._health), web.get("/metrics", self._metrics)])
        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        await web.TCPSite(self._runner, self.host, self._requested_port).start()

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None

    async def _health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"status": "healthy" if self.healthy else "degraded", **self._snapshot}
        )

    async def _metrics(self, request: web.Request) -> web.Response:
        return web.Response(text=self.metrics.to_prometheus(), content_type="text/plain")
