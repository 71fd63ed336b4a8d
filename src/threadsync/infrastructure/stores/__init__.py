"""Store implementations."""

from threadsync.infrastructure.stores.memory import (
    MemoryCursorStore,
    MemorySyncStatusStore,
    MemoryThreadStore,
)
from threadsync.infrastructure.stores.postgres_cursor_store import (
    PostgresCursorStore,
    PostgresSyncStatusStore,
)
from threadsync.infrastructure.stores.postgres_thread_store import PostgresThreadStore

__all__ = [
    "MemoryThreadStore",
    "MemoryCursorStore",
    "MemorySyncStatusStore",
    "PostgresThreadStore",
    "PostgresCursorStore",
    "PostgresSyncStatusStore",
]
