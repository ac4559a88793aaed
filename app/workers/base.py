"""Shared bookkeeping for the queue consumers.

Every delivered message ends in exactly one outcome:
1. ACKED - handled, removed from the queue
2. REQUEUED - handling failed, broker redelivers it
3. DROPPED_POISON - undecodable body, acked so it never blocks the queue
4. DROPPED_UNKNOWN - valid envelope of a kind we do not handle, acked
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class MessageOutcome(str, Enum):
    """What happened to a delivered message."""

    ACKED = "acked"
    REQUEUED = "requeued"
    DROPPED_POISON = "dropped_poison"
    DROPPED_UNKNOWN = "dropped_unknown"


@dataclass
class ConsumerStats:
    """Running counters for a consumer.

    Attributes:
        started_at: When the consumer was created
        outcomes: Count of messages per outcome
        last_error: Message of the most recent handling failure
    """

    started_at: datetime = field(default_factory=datetime.utcnow)
    outcomes: dict[MessageOutcome, int] = field(
        default_factory=lambda: {outcome: 0 for outcome in MessageOutcome}
    )
    last_error: str | None = None

    def record(self, outcome: MessageOutcome, error: str | None = None) -> None:
        self.outcomes[outcome] += 1
        if error is not None:
            self.last_error = error[:500]  # Truncate long errors

    @property
    def total(self) -> int:
        return sum(self.outcomes.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "started_at": self.started_at.isoformat(),
            "total": self.total,
            **{outcome.value: count for outcome, count in self.outcomes.items()},
            "last_error": self.last_error,
        }
