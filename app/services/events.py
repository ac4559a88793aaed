"""Task event emission helpers for the tasks service.

Usage:
    from app.services.events import emit_task_updated

    emit_task_updated(task_id, actor_id, before, after)

Task snapshots are plain dicts keyed like the task entity:
``title, description, status, priority, createdBy, assignedTo``.
Emission never raises; a failed publish only means a missing notification.
"""

import logging
from typing import Any

from app.events.publisher import TaskEventPublisher, get_event_publisher
from app.events.types import TaskEventKind

logger = logging.getLogger(__name__)

# Task fields whose changes are reported in task.updated events
TRACKED_FIELDS = ("title", "description", "status", "priority", "assignedTo")


def diff_task_fields(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Build the ``changes`` map of a task update.

    Returns:
        {field: {"old": ..., "new": ...}} for every tracked field that changed
    """
    return {
        field: {"old": before.get(field), "new": after.get(field)}
        for field in TRACKED_FIELDS
        if before.get(field) != after.get(field)
    }


def resolve_update_kind(changes: dict[str, dict[str, Any]]) -> TaskEventKind:
    """Pick the event kind for an update.

    A reassignment is reported as task.assigned, unless the status changed
    in the same update or the task was left without an assignee.
    """
    assignment = changes.get("assignedTo")
    if assignment is not None and "status" not in changes and assignment.get("new"):
        return TaskEventKind.TASK_ASSIGNED
    return TaskEventKind.TASK_UPDATED


def _task_payload(task: dict[str, Any]) -> dict[str, Any]:
    return {
        "title": task.get("title"),
        "description": task.get("description"),
        "status": task.get("status"),
        "priority": task.get("priority"),
        "createdById": task.get("createdBy"),
        "assignedToId": task.get("assignedTo"),
    }


def emit_task_event(
    kind: TaskEventKind,
    task_id: str,
    actor_user_id: str,
    payload: dict[str, Any],
    publisher: TaskEventPublisher | None = None,
) -> bool:
    """Publish a task event; failures are logged by the publisher.

    Args:
        kind: Type of event (task.created, etc.)
        task_id: ID of the mutated task
        actor_user_id: ID of the user who performed the mutation
        payload: Kind-specific payload in wire (camelCase) form
        publisher: Override the publisher singleton

    Returns:
        True if the event reached the broker
    """
    publisher = publisher or get_event_publisher()
    return publisher.publish(kind, str(task_id), str(actor_user_id), payload)


def emit_task_created(
    task_id: str,
    actor_user_id: str,
    task: dict[str, Any],
    publisher: TaskEventPublisher | None = None,
) -> bool:
    return emit_task_event(
        TaskEventKind.TASK_CREATED, task_id, actor_user_id, _task_payload(task), publisher
    )


def emit_task_updated(
    task_id: str,
    actor_user_id: str,
    before: dict[str, Any],
    after: dict[str, Any],
    publisher: TaskEventPublisher | None = None,
) -> bool:
    """Publish task.updated or task.assigned for an update.

    Updates that change no tracked field publish nothing.
    """
    changes = diff_task_fields(before, after)
    if not changes:
        logger.debug("Task update changed no tracked fields", extra={"task_id": str(task_id)})
        return False

    kind = resolve_update_kind(changes)
    payload = _task_payload(after)
    if kind == TaskEventKind.TASK_UPDATED:
        payload["changes"] = changes
    return emit_task_event(kind, task_id, actor_user_id, payload, publisher)


def emit_task_deleted(
    task_id: str,
    actor_user_id: str,
    task: dict[str, Any],
    publisher: TaskEventPublisher | None = None,
) -> bool:
    payload = {
        "title": task.get("title"),
        "createdById": task.get("createdBy"),
        "assignedToId": task.get("assignedTo"),
    }
    return emit_task_event(
        TaskEventKind.TASK_DELETED, task_id, actor_user_id, payload, publisher
    )


def emit_task_commented(
    task_id: str,
    actor_user_id: str,
    task: dict[str, Any],
    comment_id: str,
    previous_commenter_ids: list[str],
    comment_text: str | None = None,
    publisher: TaskEventPublisher | None = None,
) -> bool:
    """Publish task.commented.

    Args:
        previous_commenter_ids: Authors of earlier comments on the task
    """
    payload = {
        "title": task.get("title"),
        "createdById": task.get("createdBy"),
        "assignedToId": task.get("assignedTo"),
        "commentId": str(comment_id),
        "commentText": comment_text,
        "previousCommenterIds": [str(user_id) for user_id in previous_commenter_ids],
    }
    return emit_task_event(
        TaskEventKind.TASK_COMMENTED, task_id, actor_user_id, payload, publisher
    )
