"""Merge canonical messages into the thread store.

Each message ends in exactly one terminal outcome:

    Pending -> INSERTED                       (atomic conditional upsert applied)
    Pending -> conflict -> SKIPPED            (already stored; another writer won)
                        -> MERGED             (read-modify-write fallback saved it)
                        -> DROPPED            (merge attempts exhausted, or store failure)

Every path checks message-id membership before writing, so replaying a batch
(after a crash, or from an overlapping cycle) never duplicates anything. A
dropped message is picked up again by a later cycle because the provider keeps
returning it inside the window.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from loguru import logger

from threadsync.application.ports.thread_store import ThreadStore, UpsertOutcome
from threadsync.domain.entities.message import Message
from threadsync.domain.entities.thread import Thread, ThreadKey
from threadsync.domain.errors import ThreadStoreError

DEFAULT_MAX_MERGE_ATTEMPTS = 2


class ReconcileOutcome(str, Enum):
    INSERTED = "inserted"
    SKIPPED = "skipped"
    MERGED = "merged"
    DROPPED = "dropped"


@dataclass(frozen=True)
class MessageOutcome:
    message_id: str
    key: ThreadKey
    outcome: ReconcileOutcome

    @property
    def is_new(self) -> bool:
        return self.outcome in (ReconcileOutcome.INSERTED, ReconcileOutcome.MERGED)


@dataclass
class ReconcileResult:
    outcomes: list[MessageOutcome] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return sum(1 for o in self.outcomes if o.is_new)

    @property
    def threads(self) -> int:
        """Distinct threads that received at least one new message."""
        return len({o.key for o in self.outcomes if o.is_new})

    @property
    def skipped(self) -> int:
        return self._count(ReconcileOutcome.SKIPPED)

    @property
    def dropped(self) -> int:
        return self._count(ReconcileOutcome.DROPPED)

    def new_messages(self) -> list[MessageOutcome]:
        return [o for o in self.outcomes if o.is_new]

    def _count(self, outcome: ReconcileOutcome) -> int:
        return sum(1 for o in self.outcomes if o.outcome is outcome)


class ThreadReconciler:
    """Optimistic, lock-free merge of message batches into threads."""

    def __init__(
        self,
        store: ThreadStore,
        max_merge_attempts: int = DEFAULT_MAX_MERGE_ATTEMPTS,
    ) -> None:
        """Initialize the reconciler.

        Args:
            store: Thread store exposing the conditional upsert primitive
            max_merge_attempts: Read-modify-write attempts after a conflict
                                (first fallback plus last-resort retries)
        """
        self.store = store
        self.max_merge_attempts = max(1, max_merge_attempts)

    async def reconcile(
        self, user_email: str, provider: str, messages: Iterable[Message]
    ) -> ReconcileResult:
        result = ReconcileResult()
        for message in messages:
            result.outcomes.append(await self.reconcile_one(user_email, provider, message))

        if result.outcomes:
            logger.info(
                f"Reconciled {len(result.outcomes)} messages for {user_email} ({provider}): "
                f"inserted={result.inserted}, threads={result.threads}, "
                f"skipped={result.skipped}, dropped={result.dropped}"
            )
        return result

    async def reconcile_one(self, user_email: str, provider: str, message: Message) -> MessageOutcome:
        key = ThreadKey.of(message.thread_id, provider, user_email)
        try:
            outcome = await self._apply(key, message)
        except ThreadStoreError as e:
            logger.error(f"Store failure for message {message.message_id} in {key}, dropping: {e}")
            outcome = ReconcileOutcome.DROPPED
        except Exception:
            logger.exception(f"Unexpected failure reconciling {message.message_id} into {key}, dropping")
            outcome = ReconcileOutcome.DROPPED
        return MessageOutcome(message_id=message.message_id, key=key, outcome=outcome)

    async def _apply(self, key: ThreadKey, message: Message) -> ReconcileOutcome:
        if await self.store.try_append(key, message) is UpsertOutcome.APPLIED:
            logger.debug(f"Inserted message {message.message_id} into {key}")
            return ReconcileOutcome.INSERTED

        logger.debug(f"Conflict inserting {message.message_id} into {key}, re-reading")
        return await self._resolve_conflict(key, message)

    async def _resolve_conflict(self, key: ThreadKey, message: Message) -> ReconcileOutcome:
        for attempt in range(1, self.max_merge_attempts + 1):
            thread = await self.store.get_thread(key)
            if await self._already_stored(key, message, thread):
                return ReconcileOutcome.SKIPPED

            expected_version: Optional[int]
            if thread is None:
                thread = Thread.start(key, message)
                expected_version = None
            else:
                expected_version = thread.version
                thread.add_message(message)

            if await self.store.save_thread(thread, expected_version=expected_version):
                logger.info(
                    f"Merged message {message.message_id} into {key} via fallback (attempt {attempt})"
                )
                return ReconcileOutcome.MERGED

            stage = "fallback" if attempt == 1 else "last-resort"
            logger.warning(f"{stage} save of {message.message_id} into {key} conflicted")

        if await self._already_stored(key, message, await self.store.get_thread(key)):
            return ReconcileOutcome.SKIPPED

        logger.error(
            f"Dropping message {message.message_id} for {key} after "
            f"{self.max_merge_attempts} merge attempts"
        )
        return ReconcileOutcome.DROPPED

    async def _already_stored(
        self, key: ThreadKey, message: Message, thread: Optional[Thread]
    ) -> bool:
        if thread is not None and thread.contains(message.message_id):
            logger.debug(f"Message {message.message_id} already in {key}, skipping")
            return True

        owner = await self.store.find_message_thread(key.provider, key.user_email, message.message_id)
        if owner is not None:
            if owner != key:
                logger.warning(
                    f"Message {message.message_id} already stored under {owner}, "
                    f"not adding it to {key}"
                )
            return True
        return False
