"""Domain models for threadsync."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SyncMode(str, Enum):
    """How wide a sync cycle looks back."""

    FULL = "full"
    POLLING = "polling"
    BACKGROUND = "background"


class SyncScope(str, Enum):
    """Folder scope asked of the provider."""

    ALL_FOLDERS = "all_folders"
    # inbox, sent, from me, to me
    BROAD = "broad"


class SyncTrigger(str, Enum):
    """Who started a sync cycle. Informational only."""

    MANUAL = "manual"
    PERIODIC = "periodic"
    REPLY = "reply"


class SyncState(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SyncOptions(BaseModel):
    """Options accepted by a sync cycle."""

    days: int | None = Field(default=None, ge=1, le=365)
    force_full: bool = False
    polling: bool = False
    trigger: SyncTrigger = SyncTrigger.MANUAL

    @property
    def mode(self) -> SyncMode:
        if self.force_full:
            return SyncMode.FULL
        if self.polling:
            return SyncMode.POLLING
        return SyncMode.BACKGROUND


class SyncWindow(BaseModel):
    """Time window and folder scope for one fetch."""

    mode: SyncMode
    lower_bound: datetime
    scope: SyncScope
    # Page size requested from the provider
    max_results: int = Field(default=250, ge=1)
    # Listing stops here and reports itself truncated
    max_pages: int = Field(default=40, ge=1)


class SyncResult(BaseModel):
    """Outcome of one sync cycle (or the committed part of an aborted one)."""

    user_email: str
    provider: str
    mode: SyncMode
    window_start: datetime | None = None
    inserted_count: int = 0
    thread_count: int = 0
    skipped_count: int = 0
    dropped_count: int = 0
    malformed_count: int = 0
    classified_count: int = 0
    # Provider still had pages after the page cap; cursor is not advanced
    truncated: bool = False


class SyncStatus(BaseModel):
    """Best-effort status record for a (user, provider), for display only."""

    user_email: str
    provider: str
    state: SyncState
    trigger: SyncTrigger = SyncTrigger.MANUAL
    started_at: datetime
    finished_at: datetime | None = None
    inserted_count: int = 0
    thread_count: int = 0
    error: str | None = None
