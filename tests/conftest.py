"""Shared fixtures: in-memory SQLite, in-memory broker, signed tokens."""

import os

# Must be set before any app module reads the settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["RABBITMQ_URL"] = "memory://"
os.environ["RABBITMQ_QUEUE"] = "task_events_test"
os.environ["RABBITMQ_NOTIFICATIONS_QUEUE"] = "notifications_test"
os.environ["EVENT_CONSUMER_ENABLED"] = "false"
os.environ["REALTIME_LISTENER_ENABLED"] = "false"

from uuid import uuid4

import pytest
from jose import jwt
from sqlmodel import Session, SQLModel

from app.db.session import engine
from app.models import Notification  # noqa: F401


@pytest.fixture
def db_session():
    """Fresh schema per test on the shared in-memory database."""
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def queue_name() -> str:
    """Unique queue name; the memory transport keeps queues process-wide."""
    return f"test-queue-{uuid4()}"


def make_token(user_id: str, secret: str = "test-secret") -> str:
    return jwt.encode({"sub": user_id}, secret, algorithm="HS256")


@pytest.fixture
def token_for():
    return make_token
