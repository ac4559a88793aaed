"""Notification API endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from app.api.deps import CurrentUserId, DBSession
from app.models.notification import (
    MarkAsReadRequest,
    MarkAsReadResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationType,
    UnreadCountResponse,
)
from app.services.notifications import (
    NotificationNotFoundError,
    delete_notification,
    find_all,
    find_one,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Notification not found",
    )


@router.get("", response_model=NotificationListResponse)
def list_notifications_endpoint(
    session: DBSession,
    user_id: CurrentUserId,
    type: NotificationType | None = Query(default=None, description="Filter by notification type"),
    read: bool | None = Query(default=None, description="Filter by read state"),
    page: int = Query(default=1, ge=1, description="Page number"),
    limit: int = Query(default=20, ge=1, le=100, description="Page size"),
) -> NotificationListResponse:
    """List the authenticated user's notifications, newest first."""
    result = find_all(session, user_id, type=type, read=read, page=page, limit=limit)
    return NotificationListResponse(
        data=[NotificationResponse.from_notification(n) for n in result.data],
        meta=result.meta,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count_endpoint(
    session: DBSession,
    user_id: CurrentUserId,
) -> UnreadCountResponse:
    """Count the authenticated user's unread notifications."""
    return UnreadCountResponse(count=get_unread_count(session, user_id))


@router.post("/mark-as-read", response_model=MarkAsReadResponse)
def mark_as_read_endpoint(
    session: DBSession,
    user_id: CurrentUserId,
    body: MarkAsReadRequest,
) -> MarkAsReadResponse:
    """Mark the given notifications as read."""
    affected = mark_as_read(session, user_id, body.notification_ids)
    return MarkAsReadResponse(
        message=f"{affected} notification(s) marked as read",
        affected=affected,
    )


@router.post("/mark-all-as-read", response_model=MarkAsReadResponse)
def mark_all_as_read_endpoint(
    session: DBSession,
    user_id: CurrentUserId,
) -> MarkAsReadResponse:
    """Mark every unread notification as read."""
    affected = mark_all_as_read(session, user_id)
    return MarkAsReadResponse(
        message="All notifications marked as read",
        affected=affected,
    )


@router.get("/{notification_id}", response_model=NotificationResponse)
def get_notification_endpoint(
    session: DBSession,
    user_id: CurrentUserId,
    notification_id: UUID,
) -> NotificationResponse:
    """Get a specific notification by ID."""
    try:
        notification = find_one(session, notification_id, user_id)
    except NotificationNotFoundError:
        raise _not_found()
    return NotificationResponse.from_notification(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification_endpoint(
    session: DBSession,
    user_id: CurrentUserId,
    notification_id: UUID,
) -> None:
    """Delete a notification."""
    try:
        delete_notification(session, notification_id, user_id)
    except NotificationNotFoundError:
        raise _not_found()
