"""Environment configuration for the notifications service."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")
        self.JWT_SECRET: str = os.getenv("JWT_SECRET", "")
        self.JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
        self.CORS_ORIGINS: list[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "").split(",")
            if origin.strip()
        ]

        # RabbitMQ
        self.RABBITMQ_URL: str = os.getenv("RABBITMQ_URL", "")
        self.RABBITMQ_QUEUE: str = os.getenv("RABBITMQ_QUEUE", "")
        self.RABBITMQ_NOTIFICATIONS_QUEUE: str = os.getenv(
            "RABBITMQ_NOTIFICATIONS_QUEUE", ""
        )
        self.RABBITMQ_PREFETCH_COUNT: int = int(
            os.getenv("RABBITMQ_PREFETCH_COUNT", "1")
        )
        self.RABBITMQ_PUBLISH_MAX_RETRIES: int = int(
            os.getenv("RABBITMQ_PUBLISH_MAX_RETRIES", "5")
        )

        # Background consumers hosted by the web process
        self.EVENT_CONSUMER_ENABLED: bool = _env_bool("EVENT_CONSUMER_ENABLED", True)
        self.REALTIME_LISTENER_ENABLED: bool = _env_bool(
            "REALTIME_LISTENER_ENABLED", True
        )

    def validate(self) -> None:
        """Validate that required environment variables are set."""
        required = (
            "DATABASE_URL",
            "JWT_SECRET",
            "RABBITMQ_URL",
            "RABBITMQ_QUEUE",
            "RABBITMQ_NOTIFICATIONS_QUEUE",
        )
        for name in required:
            if not getattr(self, name):
                raise ValueError(f"{name} environment variable is required")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
