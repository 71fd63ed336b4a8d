from __future__ import annotations
from typing import Optional, Protocol
from threadsync.domain.models import SyncStatus

class SyncStatusStore(Protocol):
    async def get(self, user_email: str, provider: str) -> Optional[SyncStatus]: ...
    async def put(self, status: SyncStatus) -> None: ...
