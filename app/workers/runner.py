"""Runners for the queue consumers.

Provides entry points for running consumers:
- ConsumerThread: a consumer in a background thread of the web process
- run_event_consumer(): the task-event consumer in the foreground (worker process)
- check_broker(): configuration and broker reachability check
"""

import logging
import signal
import threading

from kombu import Connection
from kombu.exceptions import OperationalError
from kombu.mixins import ConsumerMixin

from app.config import get_settings
from app.events.realtime import get_realtime_publisher
from app.workers.event_worker import TaskEventConsumer, build_event_consumer

logger = logging.getLogger(__name__)


class ConsumerThread(threading.Thread):
    """Daemon thread driving a kombu consumer's ``run()`` loop."""

    def __init__(self, consumer: ConsumerMixin, name: str) -> None:
        super().__init__(name=name, daemon=True)
        self.consumer = consumer

    def run(self) -> None:
        logger.info(f"Starting consumer thread {self.name}")
        try:
            self.consumer.run()
        except Exception as e:
            logger.error(
                f"Consumer thread {self.name} crashed",
                extra={"error": str(e)},
                exc_info=True,
            )
        finally:
            logger.info(f"Consumer thread {self.name} stopped")

    def is_ready(self) -> bool:
        return self.is_alive() and self.consumer.is_ready()

    def stop(self, timeout: float = 5.0) -> None:
        """Ask the consumer to stop and wait for the thread to exit."""
        self.consumer.stop()
        self.join(timeout=timeout)
        if self.is_alive():
            logger.warning(f"Consumer thread {self.name} did not stop within {timeout}s")
        self.consumer.connection.release()


class WorkerRunner:
    """Runs the task-event consumer in the foreground until signalled.

    Usage:
        runner = WorkerRunner()
        runner.run()
    """

    def __init__(self, consumer: TaskEventConsumer | None = None) -> None:
        self.consumer = consumer
        self._logger = logging.getLogger(self.__class__.__name__)

    def run(self) -> None:
        settings = get_settings()
        settings.validate()

        publisher = get_realtime_publisher()
        publisher.connect()

        if self.consumer is None:
            self.consumer = build_event_consumer(realtime_publisher=publisher)

        self._setup_signal_handlers()
        self._logger.info(
            "Starting task-event consumer",
            extra={
                "queue": self.consumer.queue.name,
                "prefetch_count": self.consumer.prefetch_count,
            },
        )

        try:
            self.consumer.run()
        except KeyboardInterrupt:
            self._logger.info("Keyboard interrupt received, shutting down")
        finally:
            self.consumer.connection.release()
            publisher.close()

        self._logger.info(
            "Task-event consumer stopped",
            extra=self.consumer.stats.to_dict(),
        )

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def handle_signal(signum, frame):
            self._logger.info(f"Received signal {signum}, requesting shutdown")
            self.request_shutdown()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

    def request_shutdown(self) -> None:
        """Stop consuming once the in-flight message is settled."""
        if self.consumer is not None:
            self.consumer.stop()


def run_event_consumer() -> None:
    """Consume task events until interrupted (Ctrl+C or SIGTERM).

    Example:
        >>> from app.workers import run_event_consumer
        >>> run_event_consumer()
    """
    WorkerRunner().run()


def check_broker(broker_url: str | None = None) -> bool:
    """Validate configuration and check that the broker is reachable."""
    settings = get_settings()
    try:
        settings.validate()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return False

    connection = Connection(broker_url or settings.RABBITMQ_URL)
    try:
        connection.ensure_connection(max_retries=1)
    except (OperationalError, OSError) as e:
        logger.error(
            "RabbitMQ is not reachable",
            extra={"error": str(e)},
        )
        return False
    finally:
        connection.release()

    logger.info("Configuration valid and RabbitMQ reachable")
    return True


# Configure logging for worker runs
def configure_worker_logging(level: int = logging.INFO) -> None:
    """Configure logging for worker processes.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Set specific loggers
    logging.getLogger("app").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("kombu").setLevel(logging.WARNING)
    logging.getLogger("amqp").setLevel(logging.WARNING)
