"""Queue consumers for the notifications service.

- TaskEventConsumer: durable task-event queue -> fan-out -> store
- RealtimeQueueListener: realtime queue -> WebSocket gateway

Consumers can be started via:
- run_event_consumer(): foreground worker process
- ConsumerThread: background thread inside the web process
"""

from app.workers.base import ConsumerStats, MessageOutcome
from app.workers.event_worker import TaskEventConsumer, build_event_consumer
from app.workers.realtime_worker import RealtimeQueueListener, build_realtime_listener
from app.workers.runner import (
    ConsumerThread,
    WorkerRunner,
    check_broker,
    configure_worker_logging,
    run_event_consumer,
)

__all__ = [
    # Bookkeeping
    "ConsumerStats",
    "MessageOutcome",
    # Consumers
    "TaskEventConsumer",
    "RealtimeQueueListener",
    "build_event_consumer",
    "build_realtime_listener",
    # Runner
    "ConsumerThread",
    "WorkerRunner",
    "run_event_consumer",
    "check_broker",
    "configure_worker_logging",
]
