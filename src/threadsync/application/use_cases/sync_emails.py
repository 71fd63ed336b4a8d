"""Run one sync cycle for a (user, provider).

Flow:
1. Read the cursor and plan the fetch window
2. List message refs inside the window
3. Fetch and normalize in chunks (bounded concurrency), skipping malformed payloads
4. Reconcile each chunk into the thread store
5. Full mode: refresh read flags of messages that were already stored
6. Classify what was newly stored
7. Advance the cursor to the cycle's start time, unless the listing was truncated

Cycles may overlap for the same mailbox. Nothing here takes a lock; the
reconciler's conditional upsert is the only concurrency control.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from loguru import logger

from threadsync.application.ports.cursor_store import CursorStore
from threadsync.application.ports.email_provider import EmailProvider, RawMessageRef, Skipped
from threadsync.application.ports.sync_status_store import SyncStatusStore
from threadsync.application.ports.thread_store import ThreadStore
from threadsync.application.provider_registry import ProviderRegistry
from threadsync.application.use_cases.classify_messages import ClassifyMessagesUseCase
from threadsync.application.use_cases.plan_sync_window import SyncWindowPlanner
from threadsync.application.use_cases.reconcile_threads import (
    ReconcileOutcome,
    ReconcileResult,
    ThreadReconciler,
)
from threadsync.domain.entities.message import Message
from threadsync.domain.entities.sync_cursor import SyncCursor
from threadsync.domain.entities.thread import normalize_user_email
from threadsync.domain.errors import AuthError, ProviderError, ThreadStoreError
from threadsync.domain.models import (
    SyncMode,
    SyncOptions,
    SyncResult,
    SyncState,
    SyncStatus,
    SyncWindow,
)


class SyncEmailsUseCase:
    """Single entry point for manual, periodic and reply-triggered syncs."""

    def __init__(
        self,
        registry: ProviderRegistry,
        store: ThreadStore,
        cursors: CursorStore,
        statuses: Optional[SyncStatusStore] = None,
        reconciler: Optional[ThreadReconciler] = None,
        planner: Optional[SyncWindowPlanner] = None,
        classifier: Optional[ClassifyMessagesUseCase] = None,
        fetch_concurrency: int = 8,
        chunk_size: int = 50,
    ) -> None:
        """Initialize the sync use case.

        Args:
            registry: Provider adapters keyed by name
            store: Thread store
            cursors: Per-mailbox sync cursors
            statuses: Optional best-effort status records for display
            reconciler: Defaults to a ThreadReconciler over ``store``
            planner: Defaults to a SyncWindowPlanner with a 7 day full window
            classifier: Optional post-insert classification step
            fetch_concurrency: Max in-flight get_message calls
            chunk_size: Messages fetched and reconciled per chunk
        """
        self.registry = registry
        self.store = store
        self.cursors = cursors
        self.statuses = statuses
        self.reconciler = reconciler or ThreadReconciler(store)
        self.planner = planner or SyncWindowPlanner()
        self.classifier = classifier
        self.fetch_concurrency = max(1, fetch_concurrency)
        self.chunk_size = max(1, chunk_size)

    async def sync_emails(
        self,
        user_email: str,
        provider: str,
        options: Optional[SyncOptions] = None,
    ) -> SyncResult:
        """Sync one mailbox.

        Raises:
            UnsupportedProviderError: ``provider`` has no registered adapter
            AuthError: credential rejected (``partial_result`` attached)
            TransientProviderError: provider unreachable (``partial_result`` attached)
            ProviderError: any other provider failure (``partial_result`` attached)
        """
        options = options or SyncOptions()
        user_email = normalize_user_email(user_email)
        adapter = self.registry.get(provider)
        provider = adapter.name

        started_at = datetime.now(timezone.utc)
        cursor = await self._read_cursor(user_email, provider)
        window = self.planner.plan(options.mode, cursor, options.days, now=started_at)

        result = SyncResult(
            user_email=user_email,
            provider=provider,
            mode=window.mode,
            window_start=window.lower_bound,
        )
        status = SyncStatus(
            user_email=user_email,
            provider=provider,
            state=SyncState.RUNNING,
            trigger=options.trigger,
            started_at=started_at,
        )
        await self._put_status(status)

        logger.info(
            f"Sync started for {user_email} ({provider}): mode={window.mode.value}, "
            f"since={window.lower_bound.isoformat()}, trigger={options.trigger.value}"
        )

        try:
            await self._run(adapter, user_email, window, result)
        except ProviderError as e:
            e.provider = e.provider or provider
            e.partial_result = result
            if isinstance(e, AuthError):
                await self._invalidate_cursor(user_email, provider)
            logger.error(
                f"Sync aborted for {user_email} ({provider}) after "
                f"{result.inserted_count} inserts: {type(e).__name__}: {e}"
            )
            await self._put_status(self._finish(status, result, SyncState.FAILED, str(e)))
            raise
        except Exception as e:
            logger.exception(f"Sync crashed for {user_email} ({provider})")
            await self._put_status(self._finish(status, result, SyncState.FAILED, str(e)))
            raise

        if result.truncated:
            # Older pages were never listed; keep the window anchored to the old cursor
            logger.warning(
                f"Listing for {user_email} ({provider}) was truncated, cursor left at its previous value"
            )
        else:
            await self._advance_cursor(user_email, provider, started_at)
        await self._put_status(self._finish(status, result, SyncState.SUCCEEDED))

        logger.info(
            f"Sync finished for {user_email} ({provider}): inserted={result.inserted_count}, "
            f"threads={result.thread_count}, skipped={result.skipped_count}, "
            f"dropped={result.dropped_count}, malformed={result.malformed_count}"
        )
        return result

    async def _run(
        self,
        adapter: EmailProvider,
        user_email: str,
        window: SyncWindow,
        result: SyncResult,
    ) -> None:
        listing = await adapter.list_messages(user_email, window)
        refs = listing.refs
        result.truncated = listing.truncated
        logger.debug(
            f"Provider {adapter.name} returned {len(refs)} refs for {user_email}"
            + (" (truncated)" if listing.truncated else "")
        )

        touched = set()
        for start in range(0, len(refs), self.chunk_size):
            chunk = refs[start : start + self.chunk_size]
            messages = await self._fetch_chunk(adapter, user_email, chunk, result)
            if not messages:
                continue

            reconciled = await self.reconciler.reconcile(user_email, adapter.name, messages)
            result.inserted_count += reconciled.inserted
            result.skipped_count += reconciled.skipped
            result.dropped_count += reconciled.dropped
            touched |= {o.key for o in reconciled.new_messages()}
            result.thread_count = len(touched)

            by_id = {m.message_id: m for m in messages}
            if window.mode is SyncMode.FULL:
                await self._refresh_existing(reconciled, by_id)
            if self.classifier is not None:
                result.classified_count += await self._classify(reconciled, by_id)

    async def _fetch_chunk(
        self,
        adapter: EmailProvider,
        user_email: str,
        refs: Sequence[RawMessageRef],
        result: SyncResult,
    ) -> list[Message]:
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def fetch(ref: RawMessageRef) -> Optional[dict[str, Any]]:
            async with semaphore:
                return await adapter.get_message(user_email, ref)

        usable = []
        for ref in refs:
            if ref.message_id:
                usable.append(ref)
            else:
                logger.warning(f"Skipping {adapter.name} ref without message id (thread={ref.thread_id})")
                result.malformed_count += 1

        fetched = await asyncio.gather(*(fetch(ref) for ref in usable), return_exceptions=True)

        messages: list[Message] = []
        for ref, raw in zip(usable, fetched):
            if isinstance(raw, BaseException):
                raise raw
            if raw is None:
                logger.debug(f"Message {ref.message_id} disappeared before it could be fetched")
                continue

            try:
                normalized = adapter.normalize(raw, user_email)
            except Exception:
                logger.exception(f"Normalizer crashed on {adapter.name} message {ref.message_id}")
                result.malformed_count += 1
                continue

            if isinstance(normalized, Skipped):
                result.malformed_count += 1
                continue
            messages.append(normalized)

        return messages

    async def _refresh_existing(self, reconciled: ReconcileResult, by_id: dict[str, Message]) -> None:
        for outcome in reconciled.outcomes:
            if outcome.outcome is not ReconcileOutcome.SKIPPED:
                continue
            message = by_id[outcome.message_id]
            try:
                await self.store.refresh_message(
                    outcome.key, message.message_id, is_read=message.is_read, subject=message.subject
                )
            except ThreadStoreError as e:
                logger.warning(f"Could not refresh {message.message_id} in {outcome.key}: {e}")

    async def _classify(self, reconciled: ReconcileResult, by_id: dict[str, Message]) -> int:
        pairs = [(o.key, by_id[o.message_id]) for o in reconciled.new_messages()]
        if not pairs:
            return 0
        try:
            return await self.classifier.classify_new(pairs)
        except ThreadStoreError as e:
            logger.warning(f"Classification results could not be stored: {e}")
            return 0

    async def _read_cursor(self, user_email: str, provider: str) -> Optional[SyncCursor]:
        try:
            return await self.cursors.get(user_email, provider)
        except ThreadStoreError as e:
            logger.warning(f"Cursor read failed for {user_email} ({provider}), planning without it: {e}")
            return None

    async def _advance_cursor(self, user_email: str, provider: str, timestamp: datetime) -> None:
        try:
            await self.cursors.update(user_email, provider, timestamp)
        except ThreadStoreError as e:
            # Next cycle plans from the stale cursor, which only widens the window
            logger.warning(f"Cursor update failed for {user_email} ({provider}): {e}")

    async def _invalidate_cursor(self, user_email: str, provider: str) -> None:
        try:
            await self.cursors.invalidate(user_email, provider)
        except ThreadStoreError as e:
            logger.warning(f"Cursor invalidation failed for {user_email} ({provider}): {e}")

    async def _put_status(self, status: SyncStatus) -> None:
        if self.statuses is None:
            return
        try:
            await self.statuses.put(status)
        except ThreadStoreError as e:
            logger.warning(f"Sync status write failed for {status.user_email} ({status.provider}): {e}")

    @staticmethod
    def _finish(
        status: SyncStatus,
        result: SyncResult,
        state: SyncState,
        error: Optional[str] = None,
    ) -> SyncStatus:
        return status.model_copy(
            update={
                "state": state,
                "finished_at": datetime.now(timezone.utc),
                "inserted_count": result.inserted_count,
                "thread_count": result.thread_count,
                "error": error,
            }
        )
