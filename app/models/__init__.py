"""SQLModel entities for the notifications service."""

from app.models.notification import (
    MarkAsReadRequest,
    MarkAsReadResponse,
    Notification,
    NotificationListResponse,
    NotificationResponse,
    NotificationType,
    PaginationMeta,
    UnreadCountResponse,
)

__all__ = [
    "Notification",
    "NotificationType",
    "NotificationResponse",
    "NotificationListResponse",
    "PaginationMeta",
    "MarkAsReadRequest",
    "MarkAsReadResponse",
    "UnreadCountResponse",
]
