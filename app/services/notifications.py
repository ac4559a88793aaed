"""Notification store: queries and mutations scoped to the owning user."""

import logging
import math
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import cast, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Session, func, select

from app.models.notification import Notification, NotificationType, PaginationMeta

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
TASK_DELETED_TAG = {"taskDeleted": True}


class NotificationNotFoundError(Exception):
    """Notification does not exist or is not owned by the caller."""

    def __init__(self, notification_id: UUID | str):
        super().__init__("Notification not found")
        self.notification_id = notification_id


@dataclass
class NotificationPage:
    """One page of a user's notifications."""

    data: list[Notification]
    meta: PaginationMeta


def _as_uuid(value: UUID | str) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def find_all(
    session: Session,
    user_id: str,
    type: NotificationType | None = None,
    read: bool | None = None,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT,
) -> NotificationPage:
    """
    Get a user's notifications, newest first.
    Filters are combined with AND; pagination is offset based.
    """
    conditions = [Notification.user_id == user_id]
    if type is not None:
        conditions.append(Notification.type == type)
    if read is not None:
        conditions.append(Notification.read == read)

    query = (
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    count_query = select(func.count()).select_from(Notification).where(*conditions)

    notifications = list(session.exec(query).all())
    total = session.exec(count_query).one()

    return NotificationPage(
        data=notifications,
        meta=PaginationMeta(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        ),
    )


def find_one(session: Session, notification_id: UUID | str, user_id: str) -> Notification:
    """Get a notification owned by the user.

    Raises:
        NotificationNotFoundError: If missing or owned by someone else
    """
    try:
        notification_uuid = _as_uuid(notification_id)
    except ValueError:
        raise NotificationNotFoundError(notification_id) from None

    notification = session.exec(
        select(Notification).where(
            Notification.id == notification_uuid,
            Notification.user_id == user_id,
        )
    ).first()

    if notification is None:
        raise NotificationNotFoundError(notification_id)

    return notification


def mark_as_read(
    session: Session, user_id: str, notification_ids: list[UUID | str]
) -> int:
    """Mark the given notifications as read; returns the number of rows affected.

    Raises:
        ValueError: If ``notification_ids`` is empty
    """
    if not notification_ids:
        raise ValueError("notification_ids must not be empty")

    result = session.exec(
        update(Notification)
        .where(
            Notification.id.in_([_as_uuid(i) for i in notification_ids]),
            Notification.user_id == user_id,
        )
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    session.commit()

    logger.info(
        f"Marked {result.rowcount} notifications as read for user {user_id}",
        extra={"user_id": user_id, "affected": result.rowcount},
    )
    return result.rowcount


def mark_all_as_read(session: Session, user_id: str) -> int:
    """Mark every unread notification of the user as read."""
    result = session.exec(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    session.commit()

    logger.info(
        f"Marked all notifications as read for user {user_id}",
        extra={"user_id": user_id, "affected": result.rowcount},
    )
    return result.rowcount


def get_unread_count(session: Session, user_id: str) -> int:
    """Count the user's unread notifications."""
    return session.exec(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
    ).one()


def delete_notification(session: Session, notification_id: UUID | str, user_id: str) -> None:
    """Hard-delete a notification owned by the user.

    Raises:
        NotificationNotFoundError: If missing or owned by someone else
    """
    notification = find_one(session, notification_id, user_id)
    deleted_id = str(notification.id)
    session.delete(notification)
    session.commit()

    logger.info(
        "Notification deleted",
        extra={"notification_id": deleted_id, "user_id": user_id},
    )


def tag_deleted_statement(task_id: str):
    """Bulk UPDATE merging the deleted-task tag into each row's JSONB metadata."""
    merged = func.coalesce(cast(Notification.meta, JSONB), cast({}, JSONB)).op("||")(
        cast(TASK_DELETED_TAG, JSONB)
    )
    return (
        update(Notification)
        .where(Notification.task_id == task_id)
        .values({Notification.meta: merged})
        .execution_options(synchronize_session=False)
    )


def mark_task_notifications_obsolete(session: Session, task_id: str) -> list[Notification]:
    """Tag every notification of a deleted task with ``taskDeleted: true``.

    Existing metadata keys are kept; rows are never removed. PostgreSQL merges
    the tag in a single UPDATE; other backends rewrite the rows one by one.
    """
    if session.get_bind().dialect.name == "postgresql":
        session.exec(tag_deleted_statement(task_id))
        session.commit()
        notifications = list(
            session.exec(
                select(Notification)
                .where(Notification.task_id == task_id)
                .execution_options(populate_existing=True)
            ).all()
        )
    else:
        notifications = list(
            session.exec(select(Notification).where(Notification.task_id == task_id)).all()
        )
        for notification in notifications:
            notification.meta = {**(notification.meta or {}), **TASK_DELETED_TAG}
            session.add(notification)
        session.commit()

    logger.info(
        f"Marked {len(notifications)} notifications as obsolete for deleted task {task_id}",
        extra={"task_id": task_id, "affected": len(notifications)},
    )
    return notifications
