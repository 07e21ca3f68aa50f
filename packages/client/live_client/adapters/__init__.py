from .base import RealtimeAdapter
from .chat import TYPING_TTL_SECONDS, ChatAdapter
from .live_stream import HIGHLIGHT_CLEAR_SECONDS, LiveStreamAdapter
from .notifications import NOTIFICATION_FALLBACK_SECONDS, NotificationsAdapter

__all__ = [
    "ChatAdapter",
    "HIGHLIGHT_CLEAR_SECONDS",
    "LiveStreamAdapter",
    "NOTIFICATION_FALLBACK_SECONDS",
    "NotificationsAdapter",
    "RealtimeAdapter",
    "TYPING_TTL_SECONDS",
]
