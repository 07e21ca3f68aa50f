from enum import Enum


class EventType(str, Enum):
    # Chat
    NEW_MESSAGE = "new_message"
    TYPING = "typing"
    MESSAGES_READ = "messages_read"
    # Live stream
    STREAM_UPDATE = "stream_update"
    VIEWER_COUNT_UPDATE = "viewer_count_update"
    CHAT_MESSAGE = "chat_message"
    PRODUCT_HIGHLIGHT = "product_highlight"
    PURCHASE_NOTIFICATION = "purchase_notification"
    # Notifications
    NOTIFICATION = "notification"
    NOTIFICATION_READ = "notification_read"
    ALL_NOTIFICATIONS_READ = "all_notifications_read"
    NOTIFICATION_DELETED = "notification_deleted"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
