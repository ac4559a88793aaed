"""Database session management for the notifications PostgreSQL database."""

from collections.abc import Generator

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from app.config import get_settings

settings = get_settings()


def build_engine(url: str):
    """Create an engine for the configured database URL."""
    # Convert postgresql:// to postgresql+psycopg:// for psycopg v3 driver
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)

    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
    )


engine = build_engine(settings.DATABASE_URL or "sqlite://")


def get_session() -> Generator[Session, None, None]:
    """Get database session with automatic cleanup."""
    with Session(engine) as session:
        yield session
