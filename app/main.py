"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel

from app.api.notifications import router as notifications_router
from app.api.websocket import router as websocket_router
from app.config import get_settings
from app.db.session import engine
from app.events.realtime import get_realtime_publisher
from app.websocket.gateway import get_notifications_gateway
from app.workers.event_worker import build_event_consumer
from app.workers.realtime_worker import build_realtime_listener
from app.workers.runner import ConsumerThread

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, connect publishers and start the queue consumers."""
    settings.validate()

    # Import models to register them with SQLModel
    from app.models import Notification  # noqa: F401
    SQLModel.metadata.create_all(engine)

    # Realtime push degrades to "store only" if the broker is down
    realtime_publisher = get_realtime_publisher()
    realtime_publisher.connect()

    threads: list[ConsumerThread] = []
    app.state.realtime_listener = None
    app.state.event_consumer = None

    if settings.REALTIME_LISTENER_ENABLED:
        listener = ConsumerThread(
            build_realtime_listener(
                get_notifications_gateway(), asyncio.get_running_loop()
            ),
            name="realtime-listener",
        )
        listener.start()
        app.state.realtime_listener = listener
        threads.append(listener)

    if settings.EVENT_CONSUMER_ENABLED:
        consumer = ConsumerThread(
            build_event_consumer(realtime_publisher=realtime_publisher),
            name="task-event-consumer",
        )
        consumer.start()
        app.state.event_consumer = consumer
        threads.append(consumer)

    yield

    for thread in threads:
        thread.stop()
    realtime_publisher.close()


app = FastAPI(
    title="Task Notifications API",
    description="Task notification fan-out, store and live delivery",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS or ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(notifications_router)
app.include_router(websocket_router)


def _thread_ready(thread: ConsumerThread | None) -> bool:
    return thread is not None and thread.is_ready()


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint with broker connection indicators."""
    rabbitmq = {
        "realtimePublisher": get_realtime_publisher().is_connected(),
        "eventConsumer": _thread_ready(getattr(app.state, "event_consumer", None)),
        "realtimeListener": _thread_ready(getattr(app.state, "realtime_listener", None)),
    }
    return {
        "status": "healthy" if rabbitmq["realtimePublisher"] else "degraded",
        "rabbitmq": rabbitmq,
    }
