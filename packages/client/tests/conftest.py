"""
Shared fixtures for client tests.

``fake_hub`` serves SSE streams through an httpx MockTransport so tests can
push frames and drop connections at will; ``hub_server`` runs the real hub
under uvicorn for end-to-end tests.
"""

import asyncio
import json
import random
from typing import Any, Callable

import httpx
import pytest
import uvicorn

from live_hub.core.auth import create_token
from live_hub.core.config import Settings
from live_hub.main import create_app

HUB_SECRET = "integration-secret"


class FakeHub:
    """Scriptable SSE endpoint. Each handshake gets its own frame queue."""

    url = "http://hub.test/.well-known/mercure"

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.request_times: list[float] = []
        self.status_code = 200
        self._streams: list[asyncio.Queue] = []
        self.transport = httpx.MockTransport(self._handle)

    @property
    def connection_count(self) -> int:
        return len(self.requests)

    def topics(self, index: int = -1) -> list[str]:
        return self.requests[index].url.params.get_list("topic")

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.request_times.append(asyncio.get_running_loop().time())
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"detail": "nope"})

        queue: asyncio.Queue = asyncio.Queue()
        self._streams.append(queue)

        async def body():
            while True:
                chunk = await queue.get()
                if chunk is None:
                    return
                yield chunk.encode()

        return httpx.Response(
            200, headers={"content-type": "text/event-stream"}, content=body()
        )

    def send_raw(self, text: str, stream: int = -1) -> None:
        self._streams[stream].put_nowait(text)

    def send(self, data: Any, stream: int = -1, event_id: str | None = None) -> None:
        frame = f"id: {event_id}\n" if event_id else ""
        frame += f"data: {json.dumps(data)}\n\n"
        self.send_raw(frame, stream)

    def drop(self, stream: int = -1) -> float:
        """End a stream from the hub side. Returns the loop time of the drop."""
        self._streams[stream].put_nowait(None)
        return asyncio.get_running_loop().time()


@pytest.fixture
def fake_hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
def eventually():
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""

    async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError(f"condition not met within {timeout}s")
            await asyncio.sleep(0.01)

    return _eventually


class _UvicornServer:
    def __init__(self, app, host: str, port: int):
        self.config = uvicorn.Config(
            app, host=host, port=port, log_level="error", timeout_graceful_shutdown=1
        )
        self.server = uvicorn.Server(self.config)
        self._task: asyncio.Task | None = None

    async def start(self):
        self._task = asyncio.create_task(self.server.serve())
        for _ in range(100):
            if self.server.started:
                return
            await asyncio.sleep(0.05)
        raise RuntimeError("Server did not start")

    async def stop(self):
        self.server.should_exit = True
        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=5)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                self._task.cancel()


def _pick_port():
    return random.randint(19000, 19999)


def _reset_sse_starlette() -> None:
    # sse-starlette keeps a process-wide exit event bound to the first loop
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    AppStatus.should_exit = False


class HubServer:
    def __init__(self, base_url: str, app):
        self.base_url = base_url
        self.url = f"{base_url}/.well-known/mercure"
        self.app = app
        self.secret = HUB_SECRET

    def subscriber_token(self, topics: list[str] | None = None) -> str:
        return create_token(self.secret, subscribe=topics or ["*"])


@pytest.fixture
async def hub_server():
    _reset_sse_starlette()
    port = _pick_port()
    app = create_app(Settings(jwt_secret=HUB_SECRET, heartbeat_interval_seconds=1.0))
    srv = _UvicornServer(app, "127.0.0.1", port)
    await srv.start()
    yield HubServer(f"http://127.0.0.1:{port}", app)
    await srv.stop()
