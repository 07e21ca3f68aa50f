"""Tests for the notifications adapter."""

from __future__ import annotations

import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from live_client.adapters import NOTIFICATION_FALLBACK_SECONDS, NotificationsAdapter
from live_client.errors import ApiError
from live_client.manager import ConnectionManager


@pytest.fixture
def manager(fake_hub):
    return ConnectionManager(fake_hub.url, transport=fake_hub.transport, reconnect_delay=0.05)


def _notification(id, is_read=False, **extra):
    return {"type": "notification", "notification": {"id": id, "isRead": is_read, "title": "t", **extra}}


def _assert_counter_consistent(adapter):
    assert adapter.unread_count >= 0
    assert adapter.unread_count == sum(1 for n in adapter.notifications if not n.is_read)


def test_default_fallback_timeout():
    assert NOTIFICATION_FALLBACK_SECONDS == 3.0


def test_topics(manager):
    assert NotificationsAdapter(manager, 7).topics == ["user/7/notifications", "notifications/global"]


@pytest.mark.asyncio
async def test_notification_then_read(manager, fake_hub, eventually):
    adapter = NotificationsAdapter(manager, 7)
    adapter.start()
    try:
        await eventually(lambda: fake_hub.connection_count == 1)
        assert fake_hub.topics() == ["user/7/notifications", "notifications/global"]

        fake_hub.send(_notification("n1"))
        await eventually(lambda: adapter.unread_count == 1)

        fake_hub.send({"type": "notification_read", "notificationId": "n1"})
        await eventually(lambda: adapter.unread_count == 0)

        entry = adapter.find("n1")
        assert entry.is_read is True
        assert entry.read_at is not None
    finally:
        adapter.stop()
        await manager.close()


@pytest.mark.asyncio
async def test_new_notifications_are_prepended_once(manager):
    adapter = NotificationsAdapter(manager, 7)
    adapter.handle_event(_notification("n1"), "user/7/notifications")
    adapter.handle_event(_notification("n2"), "user/7/notifications")
    adapter.handle_event(_notification("n1"), "user/7/notifications")

    assert [n.id for n in adapter.notifications] == ["n2", "n1"]
    assert adapter.unread_count == 2


@pytest.mark.asyncio
async def test_read_notification_does_not_count(manager):
    adapter = NotificationsAdapter(manager, 7)
    adapter.handle_event(_notification("n1", is_read=True), "t")
    assert adapter.unread_count == 0


@pytest.mark.asyncio
async def test_read_twice_or_unknown_id_is_noop(manager):
    adapter = NotificationsAdapter(manager, 7)
    adapter.handle_event(_notification("n1"), "t")
    adapter.handle_event(_notification("n2"), "t")

    adapter.handle_event({"type": "notification_read", "notificationId": "n1"}, "t")
    adapter.handle_event({"type": "notification_read", "notificationId": "n1"}, "t")
    adapter.handle_event({"type": "notification_read", "notificationId": "missing"}, "t")

    assert adapter.unread_count == 1
    _assert_counter_consistent(adapter)


@pytest.mark.asyncio
async def test_delete_decrements_only_unread(manager):
    adapter = NotificationsAdapter(manager, 7)
    adapter.handle_event(_notification("n1"), "t")
    adapter.handle_event(_notification("n2", is_read=True), "t")

    adapter.handle_event({"type": "notification_deleted", "notificationId": "n2"}, "t")
    assert adapter.unread_count == 1
    adapter.handle_event({"type": "notification_deleted", "notificationId": "n1"}, "t")
    assert adapter.unread_count == 0
    assert adapter.notifications == []


@pytest.mark.asyncio
async def test_all_read(manager):
    adapter = NotificationsAdapter(manager, 7)
    for i in range(3):
        adapter.handle_event(_notification(f"n{i}"), "t")

    adapter.handle_event({"type": "all_notifications_read"}, "notifications/global")

    assert adapter.unread_count == 0
    assert all(n.is_read and n.read_at for n in adapter.notifications)


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
async def test_counter_matches_list_for_any_interleaving(manager, seed):
    rng = random.Random(seed)
    adapter = NotificationsAdapter(manager, 7)
    ids = [f"n{i}" for i in range(8)]

    for _ in range(300):
        kind = rng.choice(["notification", "read", "all_read", "deleted"])
        if kind == "notification":
            event = _notification(rng.choice(ids), is_read=rng.random() < 0.2)
        elif kind == "read":
            event = {"type": "notification_read", "notificationId": rng.choice(ids)}
        elif kind == "all_read":
            event = {"type": "all_notifications_read"}
        else:
            event = {"type": "notification_deleted", "notificationId": rng.choice(ids)}
        adapter.handle_event(event, "user/7/notifications")
        _assert_counter_consistent(adapter)


# ---------------------------------------------------------------------------
# Degraded mode and catch-up
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_degraded_mode_when_hub_unreachable(manager, fake_hub, eventually):
    fake_hub.status_code = 503
    adapter = NotificationsAdapter(
        manager, 7, fallback_timeout=0.05, fallback_unread_count=3
    )
    adapter.start()
    try:
        await eventually(lambda: adapter.degraded)
        assert adapter.unread_count == 3
        assert adapter.connected is False

        # First real event leaves degraded mode and recounts
        adapter.handle_event(_notification("n1"), "user/7/notifications")
        assert adapter.degraded is False
        assert adapter.unread_count == 1
    finally:
        adapter.stop()
        await manager.close()


@pytest.mark.asyncio
async def test_no_degraded_mode_once_events_flow(manager, fake_hub, eventually):
    adapter = NotificationsAdapter(manager, 7, fallback_timeout=0.1, fallback_unread_count=3)
    adapter.start()
    try:
        await eventually(lambda: fake_hub.connection_count == 1)
        fake_hub.send({"type": "all_notifications_read"})
        await eventually(lambda: adapter.connected)

        await asyncio.sleep(0.15)
        assert adapter.degraded is False
        assert adapter.unread_count == 0
    finally:
        adapter.stop()
        await manager.close()


@pytest.mark.asyncio
async def test_quiet_open_stream_is_not_degraded(manager, fake_hub, eventually):
    adapter = NotificationsAdapter(manager, 7, fallback_timeout=0.1, fallback_unread_count=4)
    adapter.start()
    try:
        await eventually(lambda: adapter.stream_open)
        await asyncio.sleep(0.2)
        assert adapter.degraded is False
        assert adapter.unread_count == 0
        assert adapter.notifications == []
    finally:
        adapter.stop()
        await manager.close()


@pytest.mark.asyncio
async def test_catch_up_on_every_open(manager, fake_hub, eventually):
    api = AsyncMock()
    api.list_notifications.return_value = [
        {"id": "n2", "isRead": False, "title": "b"},
        {"id": "n1", "isRead": True, "title": "a"},
    ]
    adapter = NotificationsAdapter(manager, 7, api=api)
    adapter.start()
    try:
        await eventually(lambda: api.list_notifications.await_count == 1)
        assert [n.id for n in adapter.notifications] == ["n2", "n1"]
        assert adapter.unread_count == 1

        api.list_notifications.return_value = [{"id": "n3", "isRead": False}]
        fake_hub.drop()
        await eventually(lambda: api.list_notifications.await_count == 2)
        assert [n.id for n in adapter.notifications] == ["n3"]
        _assert_counter_consistent(adapter)
    finally:
        adapter.stop()
        await manager.close()


@pytest.mark.asyncio
async def test_catch_up_failure_keeps_stream(manager, fake_hub, eventually):
    api = AsyncMock()
    api.list_notifications.side_effect = ApiError("down", 503)
    adapter = NotificationsAdapter(manager, 7, api=api)
    adapter.start()
    try:
        await eventually(lambda: api.list_notifications.await_count == 1)
        fake_hub.send(_notification("n1"))
        await eventually(lambda: adapter.unread_count == 1)
        assert fake_hub.connection_count == 1
    finally:
        adapter.stop()
        await manager.close()


@pytest.mark.asyncio
async def test_reconcile_drops_invalid_and_duplicate_entries(manager):
    adapter = NotificationsAdapter(manager, 7, fallback_unread_count=5)
    adapter.degraded = True
    adapter.reconcile([{"id": "a"}, {"title": "no id"}, {"id": "a"}, {"id": "b", "isRead": True}])

    assert [n.id for n in adapter.notifications] == ["a", "b"]
    assert adapter.unread_count == 1
    assert adapter.degraded is False


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mark_as_read_calls_api_and_updates_cache(manager):
    api = AsyncMock()
    adapter = NotificationsAdapter(manager, 7, api=api)
    adapter.handle_event(_notification("n1"), "t")
    adapter.handle_event(_notification("n2"), "t")

    await adapter.mark_as_read("n1")
    api.mark_notification_read.assert_awaited_once_with("n1")
    assert adapter.unread_count == 1

    # The server echo changes nothing
    adapter.handle_event({"type": "notification_read", "notificationId": "n1"}, "t")
    assert adapter.unread_count == 1

    await adapter.mark_all_as_read()
    api.mark_all_notifications_read.assert_awaited_once()
    assert adapter.unread_count == 0

    await adapter.delete_notification("n2")
    api.delete_notification.assert_awaited_once_with("n2")
    assert [n.id for n in adapter.notifications] == ["n1"]


@pytest.mark.asyncio
async def test_failed_mark_as_read_leaves_cache(manager):
    api = AsyncMock()
    api.mark_notification_read.side_effect = ApiError("nope", 404)
    adapter = NotificationsAdapter(manager, 7, api=api)
    adapter.handle_event(_notification("n1"), "t")

    with pytest.raises(ApiError):
        await adapter.mark_as_read("n1")
    assert adapter.unread_count == 1
