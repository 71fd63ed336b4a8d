# src/threadsync/infrastructure/__init__.py
"""Infrastructure layer - provider adapters, storage, and configuration."""

from threadsync.infrastructure.container import ServiceContainer
from threadsync.infrastructure.log_config import configure_logging
from threadsync.infrastructure.postgres_client import PostgresClientWrapper
from threadsync.infrastructure.settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "configure_logging",
    # Postgres
    "PostgresClientWrapper",
    # Wiring
    "ServiceContainer",
]
