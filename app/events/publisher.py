"""Task event publisher used by the tasks service.

Publishing is best-effort with respect to the task mutation that triggered it:
1. Build the typed envelope for the mutation
2. Publish it to the durable task-event queue as a persistent message
3. On failure, log and return False; the task write is never rolled back
"""

import logging
from datetime import datetime
from typing import Any

from kombu import Connection, Queue
from kombu.exceptions import OperationalError

from app.config import get_settings
from app.events.types import TaskEvent, TaskEventKind, WireModel, build_task_event

logger = logging.getLogger(__name__)

PERSISTENT = "persistent"


def publish_retry_policy(max_retries: int) -> dict[str, Any]:
    """Backoff for broker reconnects while publishing: 1s, then +2s per retry, at most 30s."""
    return {
        "max_retries": max_retries,
        "interval_start": 1,
        "interval_step": 2,
        "interval_max": 30,
    }


class TaskEventPublisher:
    """Publisher for the durable task-event queue."""

    def __init__(
        self,
        broker_url: str | None = None,
        queue_name: str | None = None,
        max_retries: int | None = None,
    ) -> None:
        """Initialize the event publisher.

        Args:
            broker_url: AMQP URL (default: RABBITMQ_URL)
            queue_name: Task-event queue name (default: RABBITMQ_QUEUE)
            max_retries: Publish retry attempts (default: RABBITMQ_PUBLISH_MAX_RETRIES)
        """
        settings = get_settings()
        self.broker_url = broker_url or settings.RABBITMQ_URL
        self.queue = Queue(queue_name or settings.RABBITMQ_QUEUE, durable=True)
        self.max_retries = (
            max_retries
            if max_retries is not None
            else settings.RABBITMQ_PUBLISH_MAX_RETRIES
        )
        self._connection: Connection | None = None

    @property
    def connection(self) -> Connection:
        """Lazy-initialize broker connection."""
        if self._connection is None:
            self._connection = Connection(self.broker_url)
        return self._connection

    def create_event(
        self,
        kind: TaskEventKind,
        task_id: str,
        actor_user_id: str,
        payload: WireModel | dict[str, Any],
    ) -> TaskEvent:
        """Create a new task event envelope.

        Args:
            kind: Type of event (task.created, etc.)
            task_id: ID of the mutated task
            actor_user_id: ID of the user who performed the mutation
            payload: Kind-specific payload data

        Returns:
            TaskEvent: The typed envelope
        """
        return build_task_event(
            kind=kind,
            task_id=task_id,
            actor_user_id=actor_user_id,
            data=payload,
            timestamp=datetime.utcnow(),
        )

    def publish_event(self, event: TaskEvent) -> bool:
        """Send an envelope to the task-event queue.

        Failures are logged but do NOT raise exceptions.

        Returns:
            bool: True if published successfully, False otherwise
        """
        try:
            producer = self.connection.Producer(serializer="json")
            producer.publish(
                event.to_message(),
                routing_key=self.queue.name,
                declare=[self.queue],
                delivery_mode=PERSISTENT,
                retry=True,
                retry_policy=publish_retry_policy(self.max_retries),
            )

            logger.info(
                "Event published",
                extra={
                    "event_type": event.event,
                    "task_id": event.task_id,
                    "queue": self.queue.name,
                },
            )
            return True

        except (OperationalError, OSError) as e:
            logger.error(
                "Broker unavailable, task event dropped",
                extra={
                    "event_type": event.event,
                    "task_id": event.task_id,
                    "error": str(e),
                },
            )
            return False

        except Exception as e:
            logger.error(
                "Unexpected error publishing event",
                extra={
                    "event_type": event.event,
                    "task_id": event.task_id,
                    "error": str(e),
                },
                exc_info=True,
            )
            return False

    def publish(
        self,
        kind: TaskEventKind,
        task_id: str,
        actor_user_id: str,
        payload: WireModel | dict[str, Any],
    ) -> bool:
        """Build and publish a task event.

        This is the main entry point for the tasks service. Invalid payloads
        are logged and dropped like transport failures.

        Returns:
            bool: True if the event reached the broker
        """
        try:
            event = self.create_event(kind, task_id, actor_user_id, payload)
        except ValueError as e:
            logger.error(
                "Invalid task event payload, not published",
                extra={"event_type": str(kind), "task_id": str(task_id), "error": str(e)},
            )
            return False

        return self.publish_event(event)

    def close(self) -> None:
        """Close the broker connection."""
        if self._connection is not None:
            self._connection.release()
            self._connection = None


# Singleton instance for dependency injection
_publisher_instance: TaskEventPublisher | None = None


def get_event_publisher() -> TaskEventPublisher:
    """Get or create the event publisher singleton.

    Returns:
        TaskEventPublisher: The publisher instance
    """
    global _publisher_instance
    if _publisher_instance is None:
        _publisher_instance = TaskEventPublisher()
    return _publisher_instance
