"""In-process stores.

Every call yields to the event loop before touching state so concurrent sync
cycles interleave the way they would against a real database. Records are
deep-copied in and out; callers never hold a live reference.
"""

from __future__ import annotations

import asyncio
from copy import deepcopy
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from threadsync.application.ports.thread_store import UpsertOutcome
from threadsync.domain.classification import MessageClassification, ThreadClassification
from threadsync.domain.entities.message import Message
from threadsync.domain.entities.sync_cursor import SyncCursor
from threadsync.domain.entities.thread import Thread, ThreadKey, normalize_user_email
from threadsync.domain.models import SyncStatus

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class MemoryThreadStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._threads: dict[ThreadKey, Thread] = {}
        # (provider, user_email, message_id) -> thread_id
        self._message_index: dict[tuple[str, str, str], str] = {}

    async def try_append(self, key: ThreadKey, message: Message) -> UpsertOutcome:
        await asyncio.sleep(0)
        async with self._lock:
            index_key = (key.provider, key.user_email, message.message_id)
            if index_key in self._message_index:
                return UpsertOutcome.CONFLICT

            thread = self._threads.get(key)
            if thread is None:
                thread = Thread.start(key, message)
            else:
                thread.add_message(message)

            thread.version += 1
            self._threads[key] = thread
            self._message_index[index_key] = key.thread_id
            return UpsertOutcome.APPLIED

    async def get_thread(self, key: ThreadKey) -> Optional[Thread]:
        await asyncio.sleep(0)
        async with self._lock:
            thread = self._threads.get(key)
            return deepcopy(thread) if thread is not None else None

    async def find_message_thread(
        self, provider: str, user_email: str, message_id: str
    ) -> Optional[ThreadKey]:
        await asyncio.sleep(0)
        async with self._lock:
            thread_id = self._message_index.get((provider, user_email, message_id))
            return ThreadKey(thread_id, provider, user_email) if thread_id is not None else None

    async def save_thread(self, thread: Thread, expected_version: Optional[int]) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            key = thread.key
            current = self._threads.get(key)

            if expected_version is None:
                if current is not None:
                    return False
            elif current is None or current.version != expected_version:
                return False

            for message_id in thread.message_ids():
                owner = self._message_index.get((key.provider, key.user_email, message_id))
                if owner is not None and owner != key.thread_id:
                    logger.debug(f"Save of {key} rejected, {message_id} belongs to thread {owner}")
                    return False

            stored = deepcopy(thread)
            stored.version = (current.version if current else 0) + 1
            self._threads[key] = stored
            for message_id in stored.message_ids():
                self._message_index[(key.provider, key.user_email, message_id)] = key.thread_id

            thread.version = stored.version
            return True

    async def list_threads(
        self,
        provider: str,
        user_email: str,
        *,
        include_archived: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Thread]:
        await asyncio.sleep(0)
        async with self._lock:
            threads = [
                t
                for t in self._partition(provider, user_email)
                if include_archived or not t.is_archived
            ]
            threads.sort(key=lambda t: t.latest_timestamp or _EPOCH, reverse=True)
            return [deepcopy(t) for t in threads[offset : offset + limit]]

    async def count_threads(self, provider: str, user_email: str) -> int:
        await asyncio.sleep(0)
        async with self._lock:
            return sum(1 for _ in self._partition(provider, user_email))

    async def set_archived(self, key: ThreadKey, archived: bool) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            thread = self._threads.get(key)
            if thread is None:
                return False
            if thread.is_archived != archived:
                thread.is_archived = archived
                thread.version += 1
            return True

    async def mark_read(self, key: ThreadKey, message_id: Optional[str] = None) -> int:
        await asyncio.sleep(0)
        async with self._lock:
            thread = self._threads.get(key)
            if thread is None:
                return 0

            changed = 0
            for m in list(thread.messages):
                if m.is_read or (message_id is not None and m.message_id != message_id):
                    continue
                thread.replace_message(m.with_read(True))
                changed += 1

            if changed:
                thread.version += 1
            return changed

    async def refresh_message(
        self, key: ThreadKey, message_id: str, *, is_read: bool, subject: str
    ) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            thread = self._threads.get(key)
            existing = thread.get_message(message_id) if thread is not None else None
            if existing is None:
                return False

            changed = False
            if existing.is_read != is_read:
                thread.replace_message(existing.with_read(is_read))
                changed = True
            if not thread.subject and subject:
                thread.subject = subject
                changed = True

            if changed:
                thread.version += 1
            return True

    async def set_message_classification(
        self, key: ThreadKey, message_id: str, classification: MessageClassification
    ) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            thread = self._threads.get(key)
            existing = thread.get_message(message_id) if thread is not None else None
            if existing is None:
                return False
            thread.replace_message(existing.with_classification(classification))
            thread.version += 1
            return True

    async def set_thread_classification(
        self, key: ThreadKey, classification: ThreadClassification
    ) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            thread = self._threads.get(key)
            if thread is None:
                return False
            thread.classification = classification
            thread.version += 1
            return True

    def _partition(self, provider: str, user_email: str):
        return (
            t
            for k, t in self._threads.items()
            if k.provider == provider and k.user_email == user_email
        )


class MemoryCursorStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._cursors: dict[tuple[str, str], SyncCursor] = {}

    async def get(self, user_email: str, provider: str) -> Optional[SyncCursor]:
        await asyncio.sleep(0)
        async with self._lock:
            return self._cursors.get(self._key(user_email, provider))

    async def update(self, user_email: str, provider: str, timestamp: datetime) -> None:
        await asyncio.sleep(0)
        async with self._lock:
            key = self._key(user_email, provider)
            self._cursors[key] = SyncCursor(
                user_email=key[0], provider=key[1], last_sync_time=timestamp, is_valid=True
            )

    async def invalidate(self, user_email: str, provider: str) -> None:
        await asyncio.sleep(0)
        async with self._lock:
            key = self._key(user_email, provider)
            cursor = self._cursors.get(key)
            if cursor is not None:
                self._cursors[key] = SyncCursor(
                    user_email=cursor.user_email,
                    provider=cursor.provider,
                    last_sync_time=cursor.last_sync_time,
                    is_valid=False,
                )

    @staticmethod
    def _key(user_email: str, provider: str) -> tuple[str, str]:
        return normalize_user_email(user_email), provider.strip().lower()


class MemorySyncStatusStore:
    def __init__(self) -> None:
        self._statuses: dict[tuple[str, str], SyncStatus] = {}

    async def get(self, user_email: str, provider: str) -> Optional[SyncStatus]:
        await asyncio.sleep(0)
        status = self._statuses.get((normalize_user_email(user_email), provider.strip().lower()))
        return status.model_copy() if status is not None else None

    async def put(self, status: SyncStatus) -> None:
        await asyncio.sleep(0)
        self._statuses[(normalize_user_email(status.user_email), status.provider.lower())] = status.model_copy()
