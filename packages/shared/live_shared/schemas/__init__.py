from .common import EventType, NotificationPriority
from .events import ChatMessage, LiveStreamMessage, Notification, Update, WireModel

__all__ = [
    "ChatMessage",
    "EventType",
    "LiveStreamMessage",
    "Notification",
    "NotificationPriority",
    "Update",
    "WireModel",
]
