"""
Notifications adapter.

Keeps a newest-first cache of the user's notifications and an unread
counter that always equals the number of unread entries. The server holds
the canonical list; the cache is reconciled against it whenever the
connection opens and an API client is available.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

import structlog
from pydantic import ValidationError

from live_shared import topics
from live_shared.schemas import EventType, Notification
from live_shared.topics import Ident

from ..errors import ApiError
from ..manager import ConnectionManager
from .base import RealtimeAdapter

if TYPE_CHECKING:
    from ..api import MarketApiClient

log = structlog.get_logger()

NOTIFICATION_FALLBACK_SECONDS = 3.0

_FALLBACK_TIMER = "fallback"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class NotificationsAdapter(RealtimeAdapter):
    """
    Degraded mode: when nothing has arrived ``fallback_timeout`` seconds
    after start and the hub has not accepted the stream, ``unread_count`` shows
    ``fallback_unread_count`` (if configured) and ``degraded`` is set. The
    first event or reconciliation leaves degraded mode and recounts.
    """

    name = "notifications"

    def __init__(
        self,
        manager: ConnectionManager,
        user_id: Ident,
        api: Optional["MarketApiClient"] = None,
        fallback_timeout: float = NOTIFICATION_FALLBACK_SECONDS,
        fallback_unread_count: Optional[int] = None,
    ):
        super().__init__(manager, api)
        self.user_id = user_id
        self._fallback_timeout = fallback_timeout
        self._fallback_unread_count = fallback_unread_count
        self.notifications: list[Notification] = []
        self.unread_count = 0
        self.degraded = False

    @property
    def topics(self) -> list[str]:
        return topics.notification_topics(self.user_id)

    def start(self) -> str:
        subscription_id = super().start()
        if not self.events_received:
            self._schedule(_FALLBACK_TIMER, self._fallback_timeout, self._enter_degraded)
        return subscription_id

    def find(self, notification_id: Ident) -> Notification | None:
        for notification in self.notifications:
            if str(notification.id) == str(notification_id):
                return notification
        return None

    def handle_event(self, data: dict[str, Any], topic: str) -> None:
        self._leave_degraded()
        event_type = data.get("type")

        if event_type == EventType.NOTIFICATION:
            self._handle_notification(data)
        elif event_type == EventType.NOTIFICATION_READ:
            self._mark_read(data.get("notificationId"))
        elif event_type == EventType.ALL_NOTIFICATIONS_READ:
            self._mark_all_read()
        elif event_type == EventType.NOTIFICATION_DELETED:
            self._delete(data.get("notificationId"))

    def _handle_notification(self, data: dict[str, Any]) -> None:
        try:
            notification = Notification.model_validate(data.get("notification"))
        except ValidationError:
            log.warning("notifications.bad_notification", user=self.user_id)
            return
        if self.find(notification.id) is not None:
            log.debug("notifications.duplicate", id=notification.id)
            return
        self.notifications.insert(0, notification)
        if not notification.is_read:
            self.unread_count += 1

    def _mark_read(self, notification_id: Optional[Ident]) -> None:
        if notification_id is None:
            return
        notification = self.find(notification_id)
        if notification is None or notification.is_read:
            return
        notification.is_read = True
        notification.read_at = _now()
        self.unread_count = max(0, self.unread_count - 1)

    def _mark_all_read(self) -> None:
        now = _now()
        for notification in self.notifications:
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = notification.read_at or now
        self.unread_count = 0

    def _delete(self, notification_id: Optional[Ident]) -> None:
        if notification_id is None:
            return
        notification = self.find(notification_id)
        if notification is None:
            return
        self.notifications = [n for n in self.notifications if n is not notification]
        if not notification.is_read:
            self.unread_count = max(0, self.unread_count - 1)

    # --- Degraded mode and reconciliation ---

    def _enter_degraded(self) -> None:
        if self.connected or self.events_received or self.stream_open:
            return
        self.degraded = True
        if self._fallback_unread_count is not None:
            self.unread_count = self._fallback_unread_count
        log.warning(
            "notifications.degraded",
            user=self.user_id,
            fallback_unread_count=self._fallback_unread_count,
        )

    def _leave_degraded(self) -> None:
        self._cancel(_FALLBACK_TIMER)
        if self.degraded:
            self.degraded = False
            self.unread_count = sum(1 for n in self.notifications if not n.is_read)
            log.info("notifications.recovered", user=self.user_id, unread=self.unread_count)

    def reconcile(self, items: Iterable[Union[Notification, dict[str, Any]]]) -> None:
        """Replace the cache with the server's list (newest first)."""
        fresh: list[Notification] = []
        seen: set[str] = set()
        for item in items:
            try:
                notification = (
                    item if isinstance(item, Notification) else Notification.model_validate(item)
                )
            except ValidationError:
                log.warning("notifications.bad_notification", user=self.user_id)
                continue
            if str(notification.id) in seen:
                continue
            seen.add(str(notification.id))
            fresh.append(notification)

        self.notifications = fresh
        self.degraded = False
        self._cancel(_FALLBACK_TIMER)
        self.unread_count = sum(1 for n in fresh if not n.is_read)
        log.info("notifications.reconciled", count=len(fresh), unread=self.unread_count)

    async def on_connected(self) -> None:
        if self._api is None:
            return
        try:
            items = await self._api.list_notifications()
        except ApiError as exc:
            log.warning("notifications.catch_up_failed", error=str(exc))
            return
        self.reconcile(items)

    # --- Outbound ---

    async def mark_as_read(self, notification_id: Ident) -> None:
        await self._require_api().mark_notification_read(notification_id)
        self._mark_read(notification_id)

    async def mark_all_as_read(self) -> None:
        await self._require_api().mark_all_notifications_read()
        self._mark_all_read()

    async def delete_notification(self, notification_id: Ident) -> None:
        await self._require_api().delete_notification(notification_id)
        self._delete(notification_id)

    def status(self) -> dict[str, Any]:
        status = super().status()
        status["unread_count"] = self.unread_count
        status["degraded"] = self.degraded
        return status
