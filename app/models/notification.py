"""Notification entity model and its API projections."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field as PydanticField
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, Column, DateTime, Enum as SAEnum, Index, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


class NotificationType(str, Enum):
    """Kinds of notifications created by the fan-out."""

    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_COMMENTED = "TASK_COMMENTED"


class Notification(SQLModel, table=True):
    """Notification database model.

    One row per recipient. Rows are only mutated to flip ``read`` or to tag
    ``metadata.taskDeleted`` once the referenced task is gone.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_id_read", "user_id", "read"),
        Index("ix_notifications_user_id_created_at", "user_id", "created_at"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(max_length=255, index=True)
    type: NotificationType = Field(
        sa_column=Column(
            SAEnum(NotificationType, name="notification_type_enum"),
            nullable=False,
        )
    )
    message: str = Field(sa_column=Column(Text, nullable=False))
    task_id: str | None = Field(default=None, max_length=255, index=True)
    # "metadata" is reserved on declarative classes, so the attribute is "meta"
    meta: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column("metadata", JSON().with_variant(JSONB, "postgresql")),
    )
    read: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationResponse(CamelModel):
    """Notification projection used by the HTTP API and the realtime queue."""

    id: UUID
    user_id: str
    type: NotificationType
    message: str
    task_id: str | None = None
    metadata: dict[str, Any] | None = None
    read: bool
    created_at: datetime

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            type=notification.type,
            message=notification.message,
            task_id=notification.task_id,
            metadata=notification.meta,
            read=notification.read,
            created_at=notification.created_at,
        )


class PaginationMeta(CamelModel):
    """Offset pagination details."""

    total: int
    page: int
    limit: int
    total_pages: int


class NotificationListResponse(CamelModel):
    """Schema for notification list response."""

    data: list[NotificationResponse]
    meta: PaginationMeta


class MarkAsReadRequest(CamelModel):
    """Schema for bulk mark-as-read."""

    notification_ids: list[UUID]


class MarkAsReadResponse(CamelModel):
    """Schema for mark-as-read results."""

    message: str
    affected: int


class UnreadCountResponse(CamelModel):
    """Schema for unread count response."""

    count: int = PydanticField(ge=0)
