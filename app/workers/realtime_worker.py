"""Realtime queue listener.

Runs in a background thread of the web process and forwards each payload of
the realtime queue to the notifications gateway on the event loop. Messages
are acked on receipt: live delivery is best-effort and never redelivered.
"""

import asyncio
import json
import logging
from concurrent.futures import Future
from typing import Any

from kombu import Connection, Queue
from kombu.mixins import ConsumerMixin

from app.config import get_settings
from app.websocket.gateway import NotificationsGateway

logger = logging.getLogger(__name__)


class RealtimeQueueListener(ConsumerMixin):
    """Consumer of the realtime notifications queue."""

    def __init__(
        self,
        connection: Connection,
        gateway: NotificationsGateway,
        loop: asyncio.AbstractEventLoop,
        queue_name: str | None = None,
    ) -> None:
        settings = get_settings()
        self.connection = connection
        self.gateway = gateway
        self.loop = loop
        self.queue = Queue(
            queue_name or settings.RABBITMQ_NOTIFICATIONS_QUEUE, durable=True
        )
        self._ready = False

    @property
    def worker_name(self) -> str:
        return "RealtimeQueueListener"

    def get_consumers(self, Consumer, channel) -> list[Any]:
        return [
            Consumer(
                queues=[self.queue],
                on_message=self.handle_message,
                no_ack=False,
            )
        ]

    def on_consume_ready(self, connection, channel, consumers, **kwargs) -> None:
        self._ready = True
        logger.info(
            f"[{self.worker_name}] Listening for realtime notifications",
            extra={"queue": self.queue.name},
        )

    def on_connection_error(self, exc, interval) -> None:
        self._ready = False
        logger.error(
            f"[{self.worker_name}] Broker connection error, retrying in {interval}s",
            extra={"queue": self.queue.name, "error": str(exc)},
        )

    def is_ready(self) -> bool:
        return self._ready and not self.should_stop

    def stop(self) -> None:
        self.should_stop = True
        self._ready = False

    def handle_message(self, message) -> Future | None:
        """Ack the message and schedule its delivery on the event loop.

        Returns:
            Future of the gateway delivery, or None if the body was unusable
        """
        message.ack()

        body = message.body
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8", errors="replace")

        try:
            payload = json.loads(body) if isinstance(body, str) else body
        except json.JSONDecodeError as e:
            logger.error(
                f"[{self.worker_name}] Invalid realtime payload, dropping",
                extra={"error": str(e)},
            )
            return None

        if not isinstance(payload, dict):
            logger.error(f"[{self.worker_name}] Realtime payload is not an object, dropping")
            return None

        future = asyncio.run_coroutine_threadsafe(
            self.gateway.handle_notification(payload), self.loop
        )
        future.add_done_callback(self._log_delivery_failure)
        return future

    def _log_delivery_failure(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                f"[{self.worker_name}] Realtime delivery failed",
                extra={"error": str(exc)},
            )


def build_realtime_listener(
    gateway: NotificationsGateway,
    loop: asyncio.AbstractEventLoop,
    broker_url: str | None = None,
) -> RealtimeQueueListener:
    """Create a realtime listener wired to the configured broker."""
    settings = get_settings()
    return RealtimeQueueListener(
        Connection(broker_url or settings.RABBITMQ_URL), gateway, loop
    )
