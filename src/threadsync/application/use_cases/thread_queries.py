"""Read access and local mutations for stored threads."""

from __future__ import annotations

from typing import Optional

from loguru import logger

from threadsync.application.ports.thread_store import ThreadStore
from threadsync.domain.entities.thread import Thread, ThreadKey
from threadsync.domain.errors import ThreadNotFoundError

MAX_PAGE_SIZE = 200


class ThreadQueries:
    def __init__(self, store: ThreadStore) -> None:
        self.store = store

    async def list_threads(
        self,
        provider: str,
        user_email: str,
        *,
        include_archived: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Thread], int]:
        """Threads ordered by latest_timestamp, newest first, plus the partition total."""
        key = ThreadKey.of("", provider, user_email)
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        threads = await self.store.list_threads(
            key.provider,
            key.user_email,
            include_archived=include_archived,
            limit=limit,
            offset=max(0, offset),
        )
        total = await self.store.count_threads(key.provider, key.user_email)
        return threads, total

    async def get_thread(self, thread_id: str, provider: str, user_email: str) -> Thread:
        key = ThreadKey.of(thread_id, provider, user_email)
        thread = await self.store.get_thread(key)
        if thread is None:
            raise ThreadNotFoundError(key)
        return thread

    async def set_archived(
        self, thread_id: str, provider: str, user_email: str, archived: bool = True
    ) -> None:
        key = ThreadKey.of(thread_id, provider, user_email)
        if not await self.store.set_archived(key, archived):
            raise ThreadNotFoundError(key)
        logger.info(f"{'Archived' if archived else 'Unarchived'} thread {key}")

    async def mark_read(
        self,
        thread_id: str,
        provider: str,
        user_email: str,
        message_id: Optional[str] = None,
    ) -> int:
        """Mark one message, or every message of the thread, as read. Returns how many changed."""
        key = ThreadKey.of(thread_id, provider, user_email)
        if await self.store.get_thread(key) is None:
            raise ThreadNotFoundError(key)
        changed = await self.store.mark_read(key, message_id)
        logger.debug(f"Marked {changed} messages read in {key}")
        return changed
