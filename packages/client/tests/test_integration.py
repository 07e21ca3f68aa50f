"""End-to-end tests: real hub under uvicorn, real SSE over TCP."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from live_client.adapters import ChatAdapter, NotificationsAdapter
from live_client.auth import StaticTokenProvider
from live_client.config import ClientConfig
from live_client.errors import TransportError
from live_client.manager import ConnectionManager
from live_client.runtime import RealtimeClient
from live_hub.publisher_client import HubClient
from live_shared import topics


async def _wait_for_subscribers(hub_server, count: int, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    async with httpx.AsyncClient(base_url=hub_server.base_url) as client:
        while True:
            seen = (await client.get("/ready")).json()["subscribers"]
            if seen >= count:
                return
            if loop.time() > deadline:
                raise AssertionError(f"expected {count} subscribers, saw {seen}")
            await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_chat_message_published_through_hub(hub_server, eventually):
    manager = ConnectionManager(
        hub_server.url,
        token_provider=StaticTokenProvider(hub_server.subscriber_token()),
        reconnect_delay=0.2,
    )
    adapter = ChatAdapter(manager, 42, current_user_id=1)
    adapter.start()
    try:
        await _wait_for_subscribers(hub_server, 1)

        async with HubClient(hub_server.url, hub_server.secret) as hub:
            await hub.publish(
                topics.conversation(42),
                {
                    "type": "new_message",
                    "message": {"id": 1, "senderId": 2, "content": "hello"},
                },
            )
            await hub.publish(
                topics.conversation_typing(42),
                {"type": "typing", "userId": 2, "isTyping": True},
            )

        await eventually(lambda: len(adapter.messages) == 1 and adapter.typing.get("2"))
        assert adapter.messages[0].content == "hello"
        assert adapter.connected is True
    finally:
        adapter.stop()
        await manager.close()


@pytest.mark.asyncio
async def test_bad_token_is_retried_with_status(hub_server, eventually):
    errors: list[Exception] = []
    manager = ConnectionManager(
        hub_server.url,
        token_provider=StaticTokenProvider("not-a-jwt"),
        reconnect_delay=0.1,
    )
    manager.subscribe(
        topics.notification_topics(7),
        lambda data, topic: None,
        on_error=errors.append,
    )
    try:
        await eventually(lambda: len(errors) >= 2, timeout=3.0)
        assert all(isinstance(e, TransportError) and e.status_code == 401 for e in errors)
        assert manager.active_count == 1
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_realtime_client_tracks_published_updates(hub_server, eventually, monkeypatch):
    monkeypatch.setenv("IT_HUB_TOKEN", hub_server.subscriber_token())
    config = ClientConfig.model_validate(
        {
            "user_id": 7,
            "hub": {"url": hub_server.url, "reconnect_delay_seconds": 0.2},
            "auth": {"token_env": "IT_HUB_TOKEN"},
            "chat": {"conversations": [42]},
            "metrics": {"enabled": False},
        }
    )
    client = RealtimeClient(config)
    await client.start()
    try:
        notifications = next(a for a in client.adapters if isinstance(a, NotificationsAdapter))
        chat = next(a for a in client.adapters if isinstance(a, ChatAdapter))
        await _wait_for_subscribers(hub_server, 2)

        async with HubClient(hub_server.url, hub_server.secret) as hub:
            await hub.publish(
                topics.user_notifications(7),
                {"type": "notification", "notification": {"id": "n1", "title": "Sold"}},
            )
            await hub.publish(
                topics.conversation(42),
                {"type": "new_message", "message": {"id": 9, "senderId": 3}},
            )

        await eventually(lambda: notifications.unread_count == 1 and len(chat.messages) == 1)
        assert client.metrics.get("events_received_total") == 2

        await client.update_health()
        assert client.metrics.get("adapters_connected") == 2
    finally:
        await client.stop()
    assert client.manager.active_count == 0
