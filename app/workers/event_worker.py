"""Task-event consumer.

Drains the durable task-event queue and hands each event to the fan-out:
1. Decode the message body into a typed task event
2. Dispatch it to NotificationFanout inside its own database session
3. Ack on success, requeue on failure

Undecodable bodies and unknown event kinds are acked and dropped so they
never block the queue. Prefetch is 1: a consumer holds at most one
unacknowledged message, so competing consumers share the queue fairly.
"""

import logging
from typing import Any, Callable

from kombu import Connection, Queue
from kombu.mixins import ConsumerMixin
from sqlmodel import Session

from app.config import get_settings
from app.db.session import engine
from app.events.fanout import NotificationFanout
from app.events.realtime import RealtimePublisher, get_realtime_publisher
from app.events.types import EventDecodeError, UnknownEventKindError, decode_task_event
from app.workers.base import ConsumerStats, MessageOutcome

logger = logging.getLogger(__name__)


def _default_session_factory() -> Session:
    return Session(engine)


class TaskEventConsumer(ConsumerMixin):
    """Competing consumer for the task-event queue."""

    def __init__(
        self,
        connection: Connection,
        queue_name: str | None = None,
        prefetch_count: int | None = None,
        session_factory: Callable[[], Session] | None = None,
        realtime_publisher: RealtimePublisher | None = None,
    ) -> None:
        """Initialize the consumer.

        Args:
            connection: Broker connection (not yet connected is fine)
            queue_name: Task-event queue name (default: RABBITMQ_QUEUE)
            prefetch_count: Unacked messages held at once (default: RABBITMQ_PREFETCH_COUNT)
            session_factory: Callable returning a new database session
            realtime_publisher: Publisher for live delivery after persistence
        """
        settings = get_settings()
        self.connection = connection
        self.queue = Queue(queue_name or settings.RABBITMQ_QUEUE, durable=True)
        self.prefetch_count = prefetch_count or settings.RABBITMQ_PREFETCH_COUNT
        self.session_factory = session_factory or _default_session_factory
        self.realtime_publisher = realtime_publisher
        self.stats = ConsumerStats()
        self._ready = False

    @property
    def worker_name(self) -> str:
        return "TaskEventConsumer"

    def get_consumers(self, Consumer, channel) -> list[Any]:
        return [
            Consumer(
                queues=[self.queue],
                on_message=self.handle_message,
                no_ack=False,
                prefetch_count=self.prefetch_count,
            )
        ]

    def on_consume_ready(self, connection, channel, consumers, **kwargs) -> None:
        self._ready = True
        logger.info(
            f"[{self.worker_name}] Consuming task events",
            extra={"queue": self.queue.name, "prefetch_count": self.prefetch_count},
        )

    def on_connection_error(self, exc, interval) -> None:
        self._ready = False
        logger.error(
            f"[{self.worker_name}] Broker connection error, retrying in {interval}s",
            extra={"queue": self.queue.name, "error": str(exc)},
        )

    def on_connection_revived(self) -> None:
        logger.info(f"[{self.worker_name}] Broker connection re-established")

    def is_ready(self) -> bool:
        """Health indicator: True while attached to the queue."""
        return self._ready and not self.should_stop

    def stop(self) -> None:
        """Ask the consume loop to exit after the in-flight message."""
        self.should_stop = True
        self._ready = False

    def handle_message(self, message) -> MessageOutcome:
        """Process one delivered message and settle it with the broker.

        Args:
            message: kombu message with a raw JSON body

        Returns:
            MessageOutcome describing how the message was settled
        """
        try:
            event = decode_task_event(message.body)
        except UnknownEventKindError as e:
            logger.warning(
                f"[{self.worker_name}] Unknown event kind, dropping message",
                extra={"kind": str(e.kind)},
            )
            message.ack()
            return self._record(MessageOutcome.DROPPED_UNKNOWN)
        except EventDecodeError as e:
            logger.error(
                f"[{self.worker_name}] Undecodable message, dropping",
                extra={"error": str(e)},
            )
            message.ack()
            return self._record(MessageOutcome.DROPPED_POISON, str(e))

        try:
            with self.session_factory() as session:
                fanout = NotificationFanout(session, self.realtime_publisher)
                notifications = fanout.dispatch(event)
        except Exception as e:
            logger.error(
                f"[{self.worker_name}] Failed to process {event.event} event, requeueing",
                extra={"task_id": event.task_id, "error": str(e)},
                exc_info=True,
            )
            message.requeue()
            return self._record(MessageOutcome.REQUEUED, str(e))

        message.ack()
        logger.info(
            f"[{self.worker_name}] Processed {event.event} event",
            extra={"task_id": event.task_id, "notifications": len(notifications)},
        )
        return self._record(MessageOutcome.ACKED)

    def _record(self, outcome: MessageOutcome, error: str | None = None) -> MessageOutcome:
        self.stats.record(outcome, error)
        return outcome


def build_event_consumer(
    broker_url: str | None = None,
    realtime_publisher: RealtimePublisher | None = None,
) -> TaskEventConsumer:
    """Create a task-event consumer wired to the configured broker."""
    settings = get_settings()
    return TaskEventConsumer(
        Connection(broker_url or settings.RABBITMQ_URL),
        realtime_publisher=realtime_publisher or get_realtime_publisher(),
    )
