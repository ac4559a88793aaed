"""Event-driven notification pipeline.

Components:
- types.py: Task event envelopes (tagged union on ``event``)
- publisher.py: Task-event producer (durable queue, persistent delivery)
- fanout.py: Per-recipient notification fan-out
- realtime.py: Realtime publisher for live delivery
"""

from app.events.types import (
    EventDecodeError,
    TaskEvent,
    TaskEventKind,
    UnknownEventKindError,
    build_task_event,
    decode_task_event,
)
from app.events.publisher import TaskEventPublisher, get_event_publisher
from app.events.realtime import RealtimePublisher, get_realtime_publisher
from app.events.fanout import NotificationFanout, compute_addressees

__all__ = [
    # Types
    "TaskEvent",
    "TaskEventKind",
    "EventDecodeError",
    "UnknownEventKindError",
    "build_task_event",
    "decode_task_event",
    # Publishers
    "TaskEventPublisher",
    "get_event_publisher",
    "RealtimePublisher",
    "get_realtime_publisher",
    # Fan-out
    "NotificationFanout",
    "compute_addressees",
]
