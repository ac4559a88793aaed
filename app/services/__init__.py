"""Services module for the notifications service.

Services:
- notifications.py: Notification store scoped to the owning user
- events.py: Task event emission helpers used by the tasks service
"""

from app.services.notifications import (
    NotificationNotFoundError,
    NotificationPage,
    delete_notification,
    find_all,
    find_one,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
    mark_task_notifications_obsolete,
)

__all__ = [
    # Notification store
    "NotificationNotFoundError",
    "NotificationPage",
    "find_all",
    "find_one",
    "mark_as_read",
    "mark_all_as_read",
    "get_unread_count",
    "delete_notification",
    "mark_task_notifications_obsolete",
]
