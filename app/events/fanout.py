"""Notification fan-out for task events.

Expands one task event into zero or more per-recipient notifications:

    task.created / task.assigned  -> assignee
    task.updated                  -> assignee, creator
    task.commented                -> assignee, creator, previous commenters
    task.deleted                  -> existing notifications tagged, one task_changed signal

The actor of an event never receives a notification for it.
"""

import logging
from typing import Any, Callable

from sqlmodel import Session

from app.events.realtime import TASK_DELETED, RealtimePublisher
from app.events.types import (
    TaskAssignedEvent,
    TaskCommentedEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskEvent,
    TaskEventKind,
    TaskUpdatedEvent,
)
from app.models.notification import Notification, NotificationType
from app.services.notifications import mark_task_notifications_obsolete

logger = logging.getLogger(__name__)


def compute_addressees(event: TaskEvent) -> list[str]:
    """Distinct recipients for an event, in first-seen order, actor excluded."""
    data = event.data
    candidates: list[str | None]

    if isinstance(event, (TaskCreatedEvent, TaskAssignedEvent)):
        candidates = [data.assigned_to_id]
    elif isinstance(event, TaskUpdatedEvent):
        candidates = [data.assigned_to_id, data.created_by_id]
    elif isinstance(event, TaskCommentedEvent):
        candidates = [
            data.assigned_to_id,
            data.created_by_id,
            *data.previous_commenter_ids,
        ]
    else:
        candidates = []

    addressees: list[str] = []
    for user_id in candidates:
        if not user_id or user_id == event.user_id or user_id in addressees:
            continue
        addressees.append(user_id)
    return addressees


class NotificationFanout:
    """Turns task events into persisted notifications and realtime pushes.

    Stateless per event: everything it needs travels in the event payload.
    """

    # Notification type and message template per event kind
    TEMPLATES: dict[TaskEventKind, tuple[NotificationType, str]] = {
        TaskEventKind.TASK_CREATED: (
            NotificationType.TASK_CREATED,
            'You have been assigned to a new task "{title}"',
        ),
        TaskEventKind.TASK_ASSIGNED: (
            NotificationType.TASK_ASSIGNED,
            'You have been assigned to task "{title}"',
        ),
        TaskEventKind.TASK_UPDATED: (
            NotificationType.TASK_UPDATED,
            'Task "{title}" has been updated',
        ),
        TaskEventKind.TASK_COMMENTED: (
            NotificationType.TASK_COMMENTED,
            'New comment on task "{title}"',
        ),
    }

    def __init__(
        self,
        session: Session,
        realtime_publisher: RealtimePublisher | None = None,
    ) -> None:
        self.session = session
        self.realtime_publisher = realtime_publisher
        self._handlers: dict[TaskEventKind, Callable[[Any], list[Notification]]] = {
            TaskEventKind.TASK_CREATED: self.handle_task_created,
            TaskEventKind.TASK_UPDATED: self.handle_task_updated,
            TaskEventKind.TASK_ASSIGNED: self.handle_task_assigned,
            TaskEventKind.TASK_COMMENTED: self.handle_task_commented,
            TaskEventKind.TASK_DELETED: self.handle_task_deleted,
        }

    def dispatch(self, event: TaskEvent) -> list[Notification]:
        """Route an event to its handler.

        Returns:
            Notifications created (or tagged, for task.deleted)
        """
        return self._handlers[event.kind](event)

    def handle_task_created(self, event: TaskCreatedEvent) -> list[Notification]:
        data = event.data
        return self._fan_out(
            event,
            {
                "taskTitle": data.title,
                "taskStatus": data.status,
                "taskPriority": data.priority,
                "createdBy": event.user_id,
            },
        )

    def handle_task_assigned(self, event: TaskAssignedEvent) -> list[Notification]:
        data = event.data
        return self._fan_out(
            event,
            {
                "taskTitle": data.title,
                "taskStatus": data.status,
                "taskPriority": data.priority,
                "assignedBy": event.user_id,
            },
        )

    def handle_task_updated(self, event: TaskUpdatedEvent) -> list[Notification]:
        data = event.data
        return self._fan_out(
            event,
            {
                "taskTitle": data.title,
                "changes": {
                    field: change.model_dump(mode="json")
                    for field, change in data.changes.items()
                },
                "updatedBy": event.user_id,
            },
        )

    def handle_task_commented(self, event: TaskCommentedEvent) -> list[Notification]:
        data = event.data
        return self._fan_out(
            event,
            {
                "taskTitle": data.title,
                "commentId": data.comment_id,
                "commentedBy": event.user_id,
            },
        )

    def handle_task_deleted(self, event: TaskDeletedEvent) -> list[Notification]:
        """Tag the task's notifications as obsolete and signal clients once."""
        tagged = mark_task_notifications_obsolete(self.session, event.task_id)

        if self.realtime_publisher is not None:
            try:
                self.realtime_publisher.publish_task_changed(event.task_id, TASK_DELETED)
            except Exception as e:
                logger.error(
                    "Task change signal failed after tagging notifications",
                    extra={"task_id": event.task_id, "error": str(e)},
                    exc_info=True,
                )
        return tagged

    def build_notifications(
        self, event: TaskEvent, metadata: dict[str, Any]
    ) -> list[Notification]:
        """Build (unsaved) notification rows for every addressee of the event."""
        notification_type, template = self.TEMPLATES[event.kind]
        message = template.format(title=event.data.title)

        return [
            Notification(
                user_id=user_id,
                type=notification_type,
                message=message,
                task_id=event.task_id,
                meta=dict(metadata),
            )
            for user_id in compute_addressees(event)
        ]

    def _fan_out(self, event: TaskEvent, metadata: dict[str, Any]) -> list[Notification]:
        notifications = self.build_notifications(event, metadata)
        if not notifications:
            logger.debug(
                "No addressees for event",
                extra={"event_type": event.event, "task_id": event.task_id},
            )
            return []

        saved = self._persist(notifications)
        logger.info(
            f"Created {len(saved)} {saved[0].type.value} notifications",
            extra={
                "event_type": event.event,
                "task_id": event.task_id,
                "recipients": [n.user_id for n in saved],
            },
        )

        self._publish(saved)
        return saved

    def _persist(self, notifications: list[Notification]) -> list[Notification]:
        """Save all rows in one transaction: all of them become visible or none."""
        try:
            self.session.add_all(notifications)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        for notification in notifications:
            self.session.refresh(notification)
        return notifications

    def _publish(self, notifications: list[Notification]) -> None:
        # Committed rows stay committed whatever happens here
        if self.realtime_publisher is None:
            return
        try:
            self.realtime_publisher.publish_batch(notifications)
        except Exception as e:
            logger.error(
                "Realtime publish failed after notifications were saved",
                extra={"count": len(notifications), "error": str(e)},
                exc_info=True,
            )
