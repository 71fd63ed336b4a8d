"""Tests for the in-process thread, cursor and status stores."""

from datetime import timedelta

import pytest
from factories import OWNER, T0, make_message

from threadsync.application.ports.thread_store import UpsertOutcome
from threadsync.domain.classification import MessageClassification, ThreadClassification
from threadsync.domain.entities.message import Message
from threadsync.domain.entities.thread import Thread, ThreadKey
from threadsync.domain.models import SyncState, SyncStatus

KEY = ThreadKey.of("t1", "gmail", OWNER)


@pytest.mark.asyncio
async def test_try_append_reports_conflict_for_known_message(thread_store) -> None:
    assert await thread_store.try_append(KEY, make_message()) is UpsertOutcome.APPLIED
    assert await thread_store.try_append(KEY, make_message()) is UpsertOutcome.CONFLICT

    thread = await thread_store.get_thread(KEY)
    assert thread.version == 1
    assert await thread_store.find_message_thread("gmail", OWNER, "m1") == KEY


@pytest.mark.asyncio
async def test_failed_append_leaves_no_partial_thread(thread_store, monkeypatch) -> None:
    def broken(self):
        raise ValueError("unparseable address")

    monkeypatch.setattr(Message, "participants", broken)

    with pytest.raises(ValueError):
        await thread_store.try_append(KEY, make_message())

    assert await thread_store.get_thread(KEY) is None
    assert await thread_store.find_message_thread("gmail", OWNER, "m1") is None
    assert await thread_store.count_threads("gmail", OWNER) == 0


@pytest.mark.asyncio
async def test_returned_threads_are_copies(thread_store) -> None:
    await thread_store.try_append(KEY, make_message())

    thread = await thread_store.get_thread(KEY)
    thread.messages.clear()

    assert (await thread_store.get_thread(KEY)).message_ids() == ["m1"]


@pytest.mark.asyncio
async def test_save_thread_checks_expected_version(thread_store) -> None:
    fresh = Thread.start(KEY, make_message())
    assert await thread_store.save_thread(fresh, expected_version=None) is True
    assert fresh.version == 1

    # creating again must fail
    assert await thread_store.save_thread(Thread.start(KEY, make_message("m9")), expected_version=None) is False

    stale = await thread_store.get_thread(KEY)
    await thread_store.try_append(KEY, make_message("m2"))
    stale.add_message(make_message("m3"))
    assert await thread_store.save_thread(stale, expected_version=stale.version) is False

    current = await thread_store.get_thread(KEY)
    current.add_message(make_message("m3"))
    assert await thread_store.save_thread(current, expected_version=current.version) is True
    assert (await thread_store.get_thread(KEY)).message_ids() == ["m1", "m2", "m3"]


@pytest.mark.asyncio
async def test_save_thread_refuses_message_owned_by_other_thread(thread_store) -> None:
    await thread_store.try_append(ThreadKey.of("t2", "gmail", OWNER), make_message("m1", "t2"))

    saved = await thread_store.save_thread(Thread.start(KEY, make_message("m1")), expected_version=None)

    assert saved is False
    assert await thread_store.get_thread(KEY) is None


@pytest.mark.asyncio
async def test_list_threads_orders_by_latest_activity_and_pages(thread_store) -> None:
    for i in range(3):
        key = ThreadKey.of(f"t{i}", "gmail", OWNER)
        await thread_store.try_append(key, make_message(f"m{i}", f"t{i}", timestamp=T0 + timedelta(hours=i)))
    await thread_store.try_append(ThreadKey.of("t0", "gmail", "other@x.com"), make_message("m0", "t0"))

    page = await thread_store.list_threads("gmail", OWNER, limit=2)
    rest = await thread_store.list_threads("gmail", OWNER, limit=2, offset=2)

    assert [t.thread_id for t in page] == ["t2", "t1"]
    assert [t.thread_id for t in rest] == ["t0"]
    assert await thread_store.count_threads("gmail", OWNER) == 3


@pytest.mark.asyncio
async def test_archive_hides_thread_when_requested(thread_store) -> None:
    await thread_store.try_append(KEY, make_message())

    assert await thread_store.set_archived(KEY, True) is True
    assert await thread_store.list_threads("gmail", OWNER, include_archived=False) == []
    assert len(await thread_store.list_threads("gmail", OWNER)) == 1
    assert await thread_store.set_archived(ThreadKey.of("nope", "gmail", OWNER), True) is False


@pytest.mark.asyncio
async def test_mark_read_single_message_or_whole_thread(thread_store) -> None:
    await thread_store.try_append(KEY, make_message("m1"))
    await thread_store.try_append(KEY, make_message("m2"))
    await thread_store.try_append(KEY, make_message("m3", is_read=True))

    assert await thread_store.mark_read(KEY, "m1") == 1
    assert await thread_store.mark_read(KEY) == 1
    assert await thread_store.mark_read(KEY) == 0
    assert all(m.is_read for m in await thread_store.get_thread(KEY))


@pytest.mark.asyncio
async def test_refresh_message_updates_read_flag_and_fills_blank_subject(thread_store) -> None:
    await thread_store.try_append(KEY, make_message(subject=""))

    assert await thread_store.refresh_message(KEY, "m1", is_read=True, subject="Found it") is True
    thread = await thread_store.get_thread(KEY)
    assert thread.get_message("m1").is_read is True
    assert thread.subject == "Found it"

    await thread_store.refresh_message(KEY, "m1", is_read=True, subject="Changed")
    assert (await thread_store.get_thread(KEY)).subject == "Found it"
    assert await thread_store.refresh_message(KEY, "unknown", is_read=True, subject="") is False


@pytest.mark.asyncio
async def test_classification_writes(thread_store) -> None:
    await thread_store.try_append(KEY, make_message())
    label = MessageClassification("Neutral", "Billing", "Low", ("invoice",))

    assert await thread_store.set_message_classification(KEY, "m1", label) is True
    assert await thread_store.set_thread_classification(KEY, ThreadClassification(dominant_topic="Billing")) is True

    thread = await thread_store.get_thread(KEY)
    assert thread.get_message("m1").classification == label
    assert thread.classification.dominant_topic == "Billing"


@pytest.mark.asyncio
async def test_cursor_invalidate_keeps_last_sync_time(cursor_store) -> None:
    await cursor_store.invalidate(OWNER, "gmail")
    assert await cursor_store.get(OWNER, "gmail") is None

    await cursor_store.update(" Me@X.com ", "Gmail", T0)
    await cursor_store.invalidate(OWNER, "gmail")

    cursor = await cursor_store.get(OWNER, "gmail")
    assert cursor.is_valid is False
    assert cursor.last_sync_time == T0

    await cursor_store.update(OWNER, "gmail", T0 + timedelta(hours=1))
    assert (await cursor_store.get(OWNER, "gmail")).is_valid is True


@pytest.mark.asyncio
async def test_status_store_keeps_latest_record(status_store) -> None:
    running = SyncStatus(user_email=OWNER, provider="gmail", state=SyncState.RUNNING, started_at=T0)
    await status_store.put(running)
    await status_store.put(running.model_copy(update={"state": SyncState.SUCCEEDED}))

    assert (await status_store.get(OWNER, "gmail")).state is SyncState.SUCCEEDED
    assert await status_store.get(OWNER, "outlook") is None
