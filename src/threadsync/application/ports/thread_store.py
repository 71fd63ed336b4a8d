from __future__ import annotations
from enum import Enum
from typing import Optional, Protocol

from threadsync.domain.classification import MessageClassification, ThreadClassification
from threadsync.domain.entities.message import Message
from threadsync.domain.entities.thread import Thread, ThreadKey


class UpsertOutcome(str, Enum):
    APPLIED = "applied"
    # Message id already stored, or a uniqueness/serialization conflict fired
    CONFLICT = "conflict"


class ThreadStore(Protocol):
    async def try_append(self, key: ThreadKey, message: Message) -> UpsertOutcome:
        """Atomic conditional upsert.

        In one step: create the thread if absent (subject set only on insert),
        require that no message of the partition has ``message.message_id``,
        append the message, add its participants and raise latest_timestamp.
        """
        ...

    async def get_thread(self, key: ThreadKey) -> Optional[Thread]: ...

    async def find_message_thread(
        self, provider: str, user_email: str, message_id: str
    ) -> Optional[ThreadKey]: ...

    async def save_thread(self, thread: Thread, expected_version: Optional[int]) -> bool:
        """Version-checked write of a whole thread.

        ``expected_version=None`` means the thread must not exist yet. Returns
        False on any conflict (version moved, thread appeared, message id taken).
        """
        ...

    async def list_threads(
        self,
        provider: str,
        user_email: str,
        *,
        include_archived: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Thread]: ...

    async def count_threads(self, provider: str, user_email: str) -> int: ...

    async def set_archived(self, key: ThreadKey, archived: bool) -> bool: ...

    async def mark_read(self, key: ThreadKey, message_id: Optional[str] = None) -> int: ...

    async def refresh_message(
        self, key: ThreadKey, message_id: str, *, is_read: bool, subject: str
    ) -> bool:
        """Resync an existing message's read flag; fill a blank thread subject."""
        ...

    async def set_message_classification(
        self, key: ThreadKey, message_id: str, classification: MessageClassification
    ) -> bool: ...

    async def set_thread_classification(
        self, key: ThreadKey, classification: ThreadClassification
    ) -> bool: ...
