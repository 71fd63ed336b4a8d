from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class SyncCursor:
    # Bookmark of the last completed sync cycle for one (user, provider)
    user_email: str
    provider: str
    last_sync_time: datetime
    is_valid: bool = True
