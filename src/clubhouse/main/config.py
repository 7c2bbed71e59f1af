import logging
import os
import sys
from typing import Optional

from pydantic import computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    # Infrastructure dependencies
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: Optional[int] = None
    redis_password: Optional[str] = None

    # Redis connection resilience
    redis_conn_timeout: float = 5.0
    redis_retry_on_timeout: bool = True
    redis_socket_keepalive: bool = True
    redis_health_check_interval: int = 30
    redis_max_connections: Optional[int] = None

    # Link persistence (optional, only needed by the result sink)
    postgres_user: Optional[str] = None
    postgres_host: Optional[str] = None
    postgres_password: Optional[str] = None
    postgres_port: int = 5432
    postgres_db: Optional[str] = None

    # Link metadata pipeline
    link_metadata_enabled: bool = True
    metadata_queue_namespace: str = "metadata_queue"
    metadata_worker_count: int = 3  # <= 0 falls back to the pool default
    metadata_reserve_timeout_seconds: float = 1.0
    metadata_fetch_timeout_seconds: float = 30.0
    metadata_fetch_max_body_bytes: int = 2 * 1024 * 1024
    metadata_publish_events: bool = True

    # Requeueing in-flight jobs is only safe when no worker is running
    metadata_queue_maintenance_mode: bool = False

    @model_validator(mode="after")
    def validate_metadata_worker_settings(self):
        """Ensure queue and worker timeouts are usable."""
        if self.metadata_reserve_timeout_seconds <= 0:
            logging.error(
                "METADATA_RESERVE_TIMEOUT_SECONDS must be greater than zero. Current value: %s",
                self.metadata_reserve_timeout_seconds,
            )
            sys.exit(1)

        if self.metadata_fetch_timeout_seconds <= 0:
            logging.error(
                "METADATA_FETCH_TIMEOUT_SECONDS must be greater than zero. Current value: %s",
                self.metadata_fetch_timeout_seconds,
            )
            sys.exit(1)

        if self.metadata_fetch_max_body_bytes <= 0:
            logging.error(
                "METADATA_FETCH_MAX_BODY_BYTES must be greater than zero. Current value: %s",
                self.metadata_fetch_max_body_bytes,
            )
            sys.exit(1)

        if not self.metadata_queue_namespace.strip():
            logging.error("METADATA_QUEUE_NAMESPACE cannot be empty")
            sys.exit(1)

        if (
            self.redis_max_connections is not None
            and self.redis_max_connections <= self.metadata_worker_count
        ):
            logging.warning(
                "REDIS_MAX_CONNECTIONS (%s) does not exceed METADATA_WORKER_COUNT (%s). "
                "Each worker holds a connection while blocked on reserve.",
                self.redis_max_connections,
                self.metadata_worker_count,
            )

        return self

    @computed_field
    @property
    def database_url(self) -> Optional[str]:
        if not (self.postgres_user and self.postgres_host and self.postgres_db):
            return None
        return (
            f"postgresql+asyncpg://{self.postgres_user}:"
            f"{self.postgres_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton, creating it if needed.

    Returns:
        Settings: The application settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Override settings (primarily for testing).

    Args:
        settings: The Settings instance to use.
    """
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset settings to None (for test cleanup)."""
    global _settings
    _settings = None


def get_loglevel():
    loglevel = os.getenv("LOGLEVEL", "INFO")

    match loglevel:
        case "INFO":
            return logging.INFO
        case "WARNING":
            return logging.WARNING
        case "ERROR":
            return logging.ERROR
        case "CRITICAL":
            return logging.CRITICAL
        case "DEBUG":
            return logging.DEBUG
        case _:
            return logging.INFO
