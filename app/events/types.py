"""Task event definitions shared by the task-event producer and consumer.

Wire envelope (one JSON message per task mutation)::

    {"event": "task.created", "taskId": "...", "userId": "<actor>",
     "timestamp": "<ISO8601>", "data": {...kind-specific fields...}}
"""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel


class TaskEventKind(str, Enum):
    """Task lifecycle events published by the tasks service."""

    TASK_CREATED = "task.created"
    TASK_UPDATED = "task.updated"
    TASK_DELETED = "task.deleted"
    TASK_ASSIGNED = "task.assigned"
    TASK_COMMENTED = "task.commented"


class EventDecodeError(ValueError):
    """Raised when a queue message is not a valid task event."""


class UnknownEventKindError(EventDecodeError):
    """Raised when the envelope names an event kind we do not handle."""

    def __init__(self, kind: Any):
        super().__init__(f"Unknown task event kind: {kind!r}")
        self.kind = kind


class WireModel(BaseModel):
    """Base for wire payloads (camelCase on the wire, snake_case in Python)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class FieldChange(WireModel):
    """Before/after value of a single changed task field."""

    old: Any = None
    new: Any = None


class TaskCreatedData(WireModel):
    title: str
    status: str
    priority: str
    created_by_id: str
    assigned_to_id: str | None = None
    description: str | None = None


class TaskUpdatedData(TaskCreatedData):
    changes: dict[str, FieldChange] = Field(default_factory=dict)


class TaskAssignedData(WireModel):
    title: str
    status: str
    priority: str
    assigned_to_id: str
    created_by_id: str


class TaskCommentedData(WireModel):
    title: str
    created_by_id: str
    assigned_to_id: str | None = None
    comment_id: str
    comment_text: str | None = None
    previous_commenter_ids: list[str] = Field(default_factory=list)


class TaskDeletedData(WireModel):
    title: str
    created_by_id: str
    assigned_to_id: str | None = None


class BaseTaskEvent(WireModel):
    """Fields common to every task event envelope.

    ``user_id`` is the actor who performed the mutation, never a recipient.
    """

    task_id: str
    user_id: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @property
    def kind(self) -> TaskEventKind:
        return TaskEventKind(self.event)

    @property
    def actor_user_id(self) -> str:
        return self.user_id

    def to_message(self) -> dict[str, Any]:
        """Serialize to the JSON-ready wire envelope."""
        return self.model_dump(mode="json", by_alias=True)


class TaskCreatedEvent(BaseTaskEvent):
    event: Literal["task.created"] = "task.created"
    data: TaskCreatedData


class TaskUpdatedEvent(BaseTaskEvent):
    event: Literal["task.updated"] = "task.updated"
    data: TaskUpdatedData


class TaskAssignedEvent(BaseTaskEvent):
    event: Literal["task.assigned"] = "task.assigned"
    data: TaskAssignedData


class TaskCommentedEvent(BaseTaskEvent):
    event: Literal["task.commented"] = "task.commented"
    data: TaskCommentedData


class TaskDeletedEvent(BaseTaskEvent):
    event: Literal["task.deleted"] = "task.deleted"
    data: TaskDeletedData


TaskEvent = Annotated[
    Union[
        TaskCreatedEvent,
        TaskUpdatedEvent,
        TaskAssignedEvent,
        TaskCommentedEvent,
        TaskDeletedEvent,
    ],
    Field(discriminator="event"),
]

TASK_EVENT_ADAPTER: TypeAdapter[TaskEvent] = TypeAdapter(TaskEvent)

EVENT_DATA_MODELS: dict[TaskEventKind, type[WireModel]] = {
    TaskEventKind.TASK_CREATED: TaskCreatedData,
    TaskEventKind.TASK_UPDATED: TaskUpdatedData,
    TaskEventKind.TASK_ASSIGNED: TaskAssignedData,
    TaskEventKind.TASK_COMMENTED: TaskCommentedData,
    TaskEventKind.TASK_DELETED: TaskDeletedData,
}


def build_task_event(
    kind: TaskEventKind,
    task_id: str,
    actor_user_id: str,
    data: WireModel | dict[str, Any],
    timestamp: datetime | None = None,
) -> TaskEvent:
    """Build a typed event envelope, validating ``data`` for the given kind.

    Raises:
        pydantic.ValidationError: If ``data`` does not match the kind's payload
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)

    raw: dict[str, Any] = {
        "event": TaskEventKind(kind).value,
        "taskId": str(task_id),
        "userId": str(actor_user_id),
        "data": data,
    }
    if timestamp is not None:
        raw["timestamp"] = timestamp
    return TASK_EVENT_ADAPTER.validate_python(raw)


def decode_task_event(body: bytes | str | dict[str, Any]) -> TaskEvent:
    """Decode a raw queue message body into a typed task event.

    Accepts the bare envelope or the NestJS microservice frame
    ``{"pattern": "<event>", "data": <envelope>}`` used by the tasks service.

    Raises:
        UnknownEventKindError: If the envelope names an unknown kind
        EventDecodeError: If the body is not JSON or fails validation
    """
    raw: Any = body
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EventDecodeError(f"Message body is not UTF-8: {e}") from e

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise EventDecodeError(f"Message body is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise EventDecodeError("Message body must be a JSON object")

    if "pattern" in raw and isinstance(raw.get("data"), dict) and "event" in raw["data"]:
        raw = raw["data"]

    kind = raw.get("event")
    if kind not in {k.value for k in TaskEventKind}:
        raise UnknownEventKindError(kind)

    try:
        return TASK_EVENT_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise EventDecodeError(
            f"Invalid {kind} envelope: {e.error_count()} validation error(s)"
        ) from e
