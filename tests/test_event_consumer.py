"""Tests for the task-event consumer.

Tests cover:
- Ack after successful fan-out
- Requeue on processing failure
- Poison and unknown-kind messages acked and dropped
- Duplicate rows on redelivery
- Consumer wiring (prefetch, manual ack)
"""

import json
from unittest.mock import Mock, patch

from kombu import Connection
from sqlmodel import Session, select

from app.db.session import engine
from app.models.notification import Notification
from app.workers.base import ConsumerStats, MessageOutcome
from app.workers.event_worker import TaskEventConsumer

CREATED_BODY = {
    "event": "task.created",
    "taskId": "task-1",
    "userId": "alice",
    "timestamp": "2026-01-01T12:00:00",
    "data": {
        "title": "Ship it",
        "status": "TODO",
        "priority": "HIGH",
        "createdById": "alice",
        "assignedToId": "bob",
    },
}


def _message(body) -> Mock:
    message = Mock()
    message.body = body if isinstance(body, bytes) else json.dumps(body).encode()
    return message


def _consumer(realtime_publisher=None) -> TaskEventConsumer:
    return TaskEventConsumer(
        Connection("memory://"),
        queue_name="task_events_consumer_test",
        session_factory=lambda: Session(engine),
        realtime_publisher=realtime_publisher,
    )


def _rows(session: Session) -> list[Notification]:
    return list(session.exec(select(Notification)).all())


class TestHandleMessage:
    """Tests for TaskEventConsumer.handle_message."""

    def test_success_acks(self, db_session: Session):
        """Processed events are acked and their rows persisted."""
        publisher = Mock()
        message = _message(CREATED_BODY)

        outcome = _consumer(publisher).handle_message(message)

        assert outcome == MessageOutcome.ACKED
        message.ack.assert_called_once()
        message.requeue.assert_not_called()
        assert [r.user_id for r in _rows(db_session)] == ["bob"]
        publisher.publish_batch.assert_called_once()

    def test_nestjs_frame_is_processed(self, db_session: Session):
        """Messages wrapped as {"pattern", "data"} are handled."""
        message = _message({"pattern": "task.created", "data": CREATED_BODY})

        assert _consumer().handle_message(message) == MessageOutcome.ACKED
        assert len(_rows(db_session)) == 1

    def test_no_addressees_still_acks(self, db_session: Session):
        """An event that notifies nobody is a success."""
        body = json.loads(json.dumps(CREATED_BODY))
        body["data"]["assignedToId"] = "alice"

        message = _message(body)

        assert _consumer().handle_message(message) == MessageOutcome.ACKED
        message.ack.assert_called_once()
        assert _rows(db_session) == []

    def test_processing_failure_requeues(self, db_session: Session):
        """Exceptions from the fan-out requeue instead of acking."""
        message = _message(CREATED_BODY)
        consumer = _consumer()

        with patch(
            "app.workers.event_worker.NotificationFanout.dispatch",
            side_effect=RuntimeError("database unavailable"),
        ):
            outcome = consumer.handle_message(message)

        assert outcome == MessageOutcome.REQUEUED
        message.requeue.assert_called_once()
        message.ack.assert_not_called()
        assert consumer.stats.last_error == "database unavailable"

    def test_deleted_signal_failure_still_acks(self, db_session: Session):
        """A failing task_changed signal after tagging does not requeue."""
        _consumer().handle_message(_message(CREATED_BODY))
        publisher = Mock()
        publisher.publish_task_changed.side_effect = RuntimeError("broker down")
        message = _message(
            {
                "event": "task.deleted",
                "taskId": "task-1",
                "userId": "alice",
                "timestamp": "2026-01-01T12:05:00",
                "data": {"title": "Ship it", "createdById": "alice"},
            }
        )

        outcome = _consumer(publisher).handle_message(message)

        assert outcome == MessageOutcome.ACKED
        message.ack.assert_called_once()
        message.requeue.assert_not_called()
        db_session.expire_all()
        assert _rows(db_session)[0].meta["taskDeleted"] is True

    def test_poison_message_is_acked(self, db_session: Session):
        """Undecodable bodies are acked and never requeued."""
        message = _message(b"\x00not-json")

        outcome = _consumer().handle_message(message)

        assert outcome == MessageOutcome.DROPPED_POISON
        message.ack.assert_called_once()
        message.requeue.assert_not_called()

    def test_invalid_envelope_is_acked(self, db_session: Session):
        """Known kind with missing fields is poison too."""
        body = json.loads(json.dumps(CREATED_BODY))
        del body["taskId"]

        message = _message(body)

        assert _consumer().handle_message(message) == MessageOutcome.DROPPED_POISON
        message.ack.assert_called_once()

    def test_unknown_kind_is_acked(self, db_session: Session):
        """Unknown kinds are acked, not requeued, and create nothing."""
        body = dict(CREATED_BODY, event="task.archived")
        message = _message(body)

        outcome = _consumer().handle_message(message)

        assert outcome == MessageOutcome.DROPPED_UNKNOWN
        message.ack.assert_called_once()
        message.requeue.assert_not_called()
        assert _rows(db_session) == []

    def test_redelivery_creates_duplicates(self, db_session: Session):
        """The same message handled twice yields two rows."""
        consumer = _consumer()

        consumer.handle_message(_message(CREATED_BODY))
        consumer.handle_message(_message(CREATED_BODY))

        rows = _rows(db_session)
        assert len(rows) == 2
        assert {r.user_id for r in rows} == {"bob"}

    def test_stats_count_outcomes(self, db_session: Session):
        consumer = _consumer()

        consumer.handle_message(_message(CREATED_BODY))
        consumer.handle_message(_message(b"garbage"))

        stats = consumer.stats.to_dict()
        assert stats["total"] == 2
        assert stats["acked"] == 1
        assert stats["dropped_poison"] == 1


class TestConsumerWiring:
    """Tests for the kombu consumer setup."""

    def test_manual_ack_with_prefetch_one(self):
        """Consumers are created with no_ack=False and prefetch 1."""
        consumer = _consumer()
        Consumer = Mock()

        consumer.get_consumers(Consumer, channel=Mock())

        kwargs = Consumer.call_args.kwargs
        assert kwargs["no_ack"] is False
        assert kwargs["prefetch_count"] == 1
        assert kwargs["on_message"] == consumer.handle_message
        assert kwargs["queues"][0].name == "task_events_consumer_test"
        assert kwargs["queues"][0].durable is True

    def test_ready_flag_follows_lifecycle(self):
        consumer = _consumer()
        assert consumer.is_ready() is False

        consumer.on_consume_ready(Mock(), Mock(), [])
        assert consumer.is_ready() is True

        consumer.stop()
        assert consumer.is_ready() is False


class TestConsumerStats:
    """Tests for ConsumerStats."""

    def test_defaults(self):
        stats = ConsumerStats()

        assert stats.total == 0
        assert stats.last_error is None

    def test_truncates_long_errors(self):
        stats = ConsumerStats()

        stats.record(MessageOutcome.REQUEUED, "x" * 1000)

        assert len(stats.last_error) == 500
        assert stats.outcomes[MessageOutcome.REQUEUED] == 1
