"""Domain models and entities."""

from threadsync.domain.entities.attachment import AttachmentMeta
from threadsync.domain.entities.message import Message
from threadsync.domain.entities.sync_cursor import SyncCursor
from threadsync.domain.entities.thread import Thread, ThreadKey
from threadsync.domain.models import (
    SyncMode,
    SyncOptions,
    SyncResult,
    SyncScope,
    SyncState,
    SyncStatus,
    SyncTrigger,
    SyncWindow,
)

__all__ = [
    "AttachmentMeta",
    "Message",
    "SyncCursor",
    "Thread",
    "ThreadKey",
    "SyncMode",
    "SyncOptions",
    "SyncResult",
    "SyncScope",
    "SyncState",
    "SyncStatus",
    "SyncTrigger",
    "SyncWindow",
]
