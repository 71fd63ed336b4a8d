from __future__ import annotations
from datetime import datetime
from typing import Optional, Protocol
from threadsync.domain.entities.sync_cursor import SyncCursor

class CursorStore(Protocol):
    async def get(self, user_email: str, provider: str) -> Optional[SyncCursor]: ...
    async def update(self, user_email: str, provider: str, timestamp: datetime) -> None: ...
    async def invalidate(self, user_email: str, provider: str) -> None: ...
