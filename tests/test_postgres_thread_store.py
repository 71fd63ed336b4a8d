"""Integration tests for the PostgreSQL stores.

Skipped unless THREADSYNC_TEST_POSTGRES is set. Connection details come from the
usual POSTGRES_* environment variables, e.g.

    THREADSYNC_TEST_POSTGRES=1 POSTGRES_HOST=localhost POSTGRES_DB=threadsync_test pytest
"""

import asyncio
import os
import uuid
from contextlib import asynccontextmanager

import pytest
from factories import FakeProvider, gmail_raw, make_message

from threadsync.application.provider_registry import ProviderRegistry
from threadsync.application.ports.thread_store import UpsertOutcome
from threadsync.application.use_cases.reconcile_threads import ReconcileOutcome, ThreadReconciler
from threadsync.application.use_cases.sync_emails import SyncEmailsUseCase
from threadsync.domain.entities.thread import Thread, ThreadKey
from threadsync.domain.models import SyncOptions
from threadsync.infrastructure.postgres_client import PostgresClientWrapper
from threadsync.infrastructure.settings import Settings
from threadsync.infrastructure.stores import PostgresCursorStore, PostgresThreadStore

pytestmark = pytest.mark.skipif(
    not os.getenv("THREADSYNC_TEST_POSTGRES"),
    reason="set THREADSYNC_TEST_POSTGRES to run against a live PostgreSQL",
)


@asynccontextmanager
async def postgres_client():
    client = PostgresClientWrapper(Settings(_env_file=None, postgres_pool_max_size=8))
    await client.connect()
    try:
        await client.setup_schema()
        yield client
    finally:
        await client.disconnect()


def fresh_user() -> str:
    """A mailbox nobody else has written to, so tests never see each other's rows."""
    return f"{uuid.uuid4().hex[:12]}@it.example.com"


@pytest.mark.asyncio
async def test_try_append_applies_once_then_conflicts() -> None:
    user = fresh_user()
    key = ThreadKey.of("t1", "gmail", user)

    async with postgres_client() as client:
        store = PostgresThreadStore(client)

        assert await store.try_append(key, make_message("m1", recipient=user)) is UpsertOutcome.APPLIED
        assert await store.try_append(key, make_message("m1", recipient=user)) is UpsertOutcome.CONFLICT

        thread = await store.get_thread(key)
        assert thread.message_ids() == ["m1"]
        assert thread.participants == {"a@x.com", user}
        assert await store.find_message_thread("gmail", user, "m1") == key


@pytest.mark.asyncio
async def test_replayed_sync_inserts_nothing_new() -> None:
    user = fresh_user()
    raws = [
        gmail_raw("m1", "t1", to=user),
        gmail_raw("m2", "t1", sender=user, to="a@x.com"),
        gmail_raw("m3", "t2", sender="B <b@x.com>", to=user, subject="Other"),
    ]

    async with postgres_client() as client:
        store = PostgresThreadStore(client)
        sync = SyncEmailsUseCase(ProviderRegistry([FakeProvider(raws)]), store, PostgresCursorStore(client))

        first = await sync.sync_emails(user, "gmail", SyncOptions(force_full=True))
        before = [(t.thread_id, t.message_ids(), t.version) for t in await store.list_threads("gmail", user)]
        again = await sync.sync_emails(user, "gmail", SyncOptions(force_full=True))
        after = [(t.thread_id, t.message_ids(), t.version) for t in await store.list_threads("gmail", user)]

        assert (first.inserted_count, first.thread_count) == (3, 2)
        assert (again.inserted_count, again.skipped_count) == (0, 3)
        assert sorted(after) == sorted(before)


@pytest.mark.asyncio
async def test_concurrent_identical_message_is_stored_once() -> None:
    user = fresh_user()
    key = ThreadKey.of("t1", "gmail", user)
    message = make_message("m1", recipient=user)

    async with postgres_client() as client:
        store = PostgresThreadStore(client)
        reconciler = ThreadReconciler(store)

        outcomes = await asyncio.gather(
            *(reconciler.reconcile_one(user, "gmail", message) for _ in range(5))
        )

        assert sum(o.is_new for o in outcomes) == 1
        assert all(o.outcome is ReconcileOutcome.SKIPPED for o in outcomes if not o.is_new)
        thread = await store.get_thread(key)
        assert thread.message_ids() == ["m1"]
        assert thread.invariant_violations() == []


@pytest.mark.asyncio
async def test_concurrent_distinct_messages_for_new_thread_all_land() -> None:
    user = fresh_user()
    key = ThreadKey.of("t1", "gmail", user)
    messages = [make_message(f"m{i}", recipient=user) for i in range(4)]

    async with postgres_client() as client:
        store = PostgresThreadStore(client)
        reconciler = ThreadReconciler(store)

        outcomes = await asyncio.gather(*(reconciler.reconcile_one(user, "gmail", m) for m in messages))

        assert all(o.is_new for o in outcomes)
        thread = await store.get_thread(key)
        assert sorted(thread.message_ids()) == ["m0", "m1", "m2", "m3"]
        assert thread.invariant_violations() == []


@pytest.mark.asyncio
async def test_save_thread_checks_expected_version() -> None:
    user = fresh_user()
    key = ThreadKey.of("t1", "gmail", user)

    async with postgres_client() as client:
        store = PostgresThreadStore(client)

        fresh = Thread.start(key, make_message("m1", recipient=user))
        assert await store.save_thread(fresh, expected_version=None) is True
        assert fresh.version == 1
        assert await store.save_thread(Thread.start(key, make_message("m1", recipient=user)), None) is False

        current = await store.get_thread(key)
        current.add_message(make_message("m2", recipient=user))
        assert await store.save_thread(current, expected_version=1) is True
        assert current.version == 2

        stale = await store.get_thread(key)
        stale.add_message(make_message("m3", recipient=user))
        assert await store.save_thread(stale, expected_version=1) is False

        stored = await store.get_thread(key)
        assert stored.message_ids() == ["m1", "m2"]
        assert stored.version == 2


@pytest.mark.asyncio
async def test_save_thread_refuses_message_owned_by_other_thread() -> None:
    user = fresh_user()

    async with postgres_client() as client:
        store = PostgresThreadStore(client)
        await store.try_append(ThreadKey.of("t1", "gmail", user), make_message("m1", recipient=user))

        other = Thread.start(ThreadKey.of("t2", "gmail", user), make_message("m1", "t2", recipient=user))

        assert await store.save_thread(other, expected_version=None) is False
        assert await store.get_thread(ThreadKey.of("t2", "gmail", user)) is None
