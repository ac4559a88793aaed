"""Realtime publisher: hands persisted notifications to the live-delivery queue.

Delivery through this queue is best-effort. When the broker connection is down
the message is skipped; clients recover by polling the notification store.
"""

import logging
from datetime import datetime
from typing import Any, Iterable
from uuid import uuid4

from kombu import Connection, Queue
from kombu.exceptions import OperationalError

from app.config import get_settings
from app.events.publisher import PERSISTENT
from app.models.notification import Notification, NotificationResponse

logger = logging.getLogger(__name__)

SYSTEM_USER_ID = "system"
TASK_DELETED = "TASK_DELETED"


def build_realtime_payload(notification: Notification) -> dict[str, Any]:
    """Project a notification onto the realtime wire format."""
    return NotificationResponse.from_notification(notification).model_dump(
        mode="json", by_alias=True
    )


def build_task_changed_payload(task_id: str, change_type: str) -> dict[str, Any]:
    """Build a cache-invalidation signal for a task.

    Carries no notification content; the id is synthetic and the recipient is
    the system sentinel so the gateway broadcasts it.
    """
    return {
        "id": f"task-changed-{uuid4()}",
        "userId": SYSTEM_USER_ID,
        "type": change_type,
        "message": f"Task {task_id} changed: {change_type}",
        "taskId": task_id,
        "metadata": None,
        "read": False,
        "createdAt": datetime.utcnow().isoformat(),
    }


class RealtimePublisher:
    """Publisher for the realtime notifications queue."""

    def __init__(
        self,
        broker_url: str | None = None,
        queue_name: str | None = None,
    ) -> None:
        settings = get_settings()
        self.broker_url = broker_url or settings.RABBITMQ_URL
        self.queue = Queue(
            queue_name or settings.RABBITMQ_NOTIFICATIONS_QUEUE, durable=True
        )
        self._connection: Connection | None = None
        self._healthy = False

    def connect(self) -> bool:
        """Open the broker connection and declare the realtime queue.

        Connection failures are logged, not raised; the publisher stays
        unhealthy and skips publishing.
        """
        try:
            connection = Connection(self.broker_url)
            connection.ensure_connection(max_retries=3)
            with connection.channel() as channel:
                self.queue(channel).declare()

            self._connection = connection
            self._healthy = True
            logger.info(
                "Connected to RabbitMQ for realtime publishing",
                extra={"queue": self.queue.name},
            )
        except (OperationalError, OSError) as e:
            logger.error(
                "Failed to connect to RabbitMQ for realtime publishing",
                extra={"queue": self.queue.name, "error": str(e)},
            )
            self._healthy = False

        return self._healthy

    def close(self) -> None:
        """Release the broker connection."""
        if self._connection is not None:
            try:
                self._connection.release()
                logger.info("Disconnected realtime publisher from RabbitMQ")
            except Exception as e:
                logger.error(
                    "Error disconnecting realtime publisher",
                    extra={"error": str(e)},
                )
            self._connection = None
        self._healthy = False

    def is_connected(self) -> bool:
        """Health indicator for the service health check."""
        return self._healthy and self._connection is not None

    def _send(self, payload: dict[str, Any]) -> bool:
        if not self.is_connected():
            logger.warning(
                "Cannot publish realtime notification: RabbitMQ not connected",
                extra={"type": payload.get("type"), "task_id": payload.get("taskId")},
            )
            return False

        connection = self._connection
        try:
            producer = connection.Producer(serializer="json")
            producer.publish(
                payload,
                routing_key=self.queue.name,
                delivery_mode=PERSISTENT,
            )
            return True
        except (
            OperationalError,
            OSError,
            *connection.connection_errors,
            *connection.recoverable_connection_errors,
            *connection.channel_errors,
        ) as e:
            logger.error(
                "RabbitMQ connection lost while publishing realtime notification",
                extra={"type": payload.get("type"), "error": str(e)},
            )
            self._healthy = False
            return False
        except Exception as e:
            logger.error(
                "Failed to publish realtime notification",
                extra={"type": payload.get("type"), "error": str(e)},
                exc_info=True,
            )
            return False

    def publish(self, notification: Notification) -> bool:
        """Publish one persisted notification for live delivery."""
        sent = self._send(build_realtime_payload(notification))
        if sent:
            logger.info(
                "Published realtime notification",
                extra={
                    "notification_id": str(notification.id),
                    "user_id": notification.user_id,
                },
            )
        return sent

    def publish_batch(self, notifications: Iterable[Notification]) -> int:
        """Publish several notifications; returns how many were sent."""
        return sum(1 for notification in notifications if self.publish(notification))

    def publish_task_changed(self, task_id: str, change_type: str = TASK_DELETED) -> bool:
        """Publish a single cache-invalidation signal for a task."""
        sent = self._send(build_task_changed_payload(task_id, change_type))
        if sent:
            logger.info(
                "Published task change signal",
                extra={"task_id": task_id, "change_type": change_type},
            )
        return sent


_realtime_publisher: RealtimePublisher | None = None


def get_realtime_publisher() -> RealtimePublisher:
    """Get or create the realtime publisher singleton."""
    global _realtime_publisher
    if _realtime_publisher is None:
        _realtime_publisher = RealtimePublisher()
    return _realtime_publisher
