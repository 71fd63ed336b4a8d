"""Tests for the polling worker and the one-shot CLI."""

import asyncio
import sys
from unittest.mock import AsyncMock

import pytest
from factories import OWNER, FakeProvider, gmail_raw

from threadsync.cli import sync_once
from threadsync.cli.worker import Mailbox, SyncWorker
from threadsync.domain.errors import AuthError, TransientProviderError
from threadsync.domain.models import SyncMode, SyncResult, SyncTrigger


@pytest.mark.asyncio
async def test_poll_once_isolates_failing_mailboxes(make_sync, status_store) -> None:
    sync = make_sync(FakeProvider([gmail_raw("m1", "t1"), gmail_raw("m2", "t2")]))
    worker = SyncWorker(
        sync,
        [Mailbox(OWNER, "gmail"), Mailbox(OWNER, "yahoo")],
        poll_interval_seconds=1,
    )

    inserted = await worker.poll_once()

    assert inserted == 2
    assert worker.stats.total_errors == 1
    assert worker.stats.by_mailbox == {f"gmail:{OWNER}": 2}
    status = await status_store.get(OWNER, "gmail")
    assert status.trigger is SyncTrigger.PERIODIC


@pytest.mark.asyncio
async def test_auth_failure_is_counted_and_worker_keeps_going(make_sync) -> None:
    provider = FakeProvider([], list_error=AuthError("expired", status_code=401))
    worker = SyncWorker(make_sync(provider), [Mailbox(OWNER, "gmail")])

    assert await worker.poll_once() == 0
    assert await worker.poll_once() == 0

    assert worker.stats.auth_failures == 2
    assert worker.stats.polls_completed == 2


@pytest.mark.asyncio
async def test_worker_polls_in_polling_mode() -> None:
    sync = AsyncMock()
    sync.sync_emails.return_value = SyncResult(user_email=OWNER, provider="gmail", mode=SyncMode.POLLING)
    worker = SyncWorker(sync, [Mailbox(OWNER, "gmail")])

    await worker.poll_once()

    options = sync.sync_emails.await_args.args[2]
    assert options.mode is SyncMode.POLLING


@pytest.mark.asyncio
async def test_run_stops_when_signalled(make_sync) -> None:
    worker = SyncWorker(make_sync(FakeProvider([])), [Mailbox(OWNER, "gmail")], poll_interval_seconds=3600)
    asyncio.get_running_loop().call_later(0.05, worker.stop)

    assert await asyncio.wait_for(worker.run(), timeout=5) == 0
    assert worker.stats.polls_completed == 1
    assert worker.running is False


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (AuthError("revoked", status_code=401), 2),
        (TransientProviderError("timeout"), 1),
    ],
)
def test_sync_once_exit_codes(monkeypatch, error, code) -> None:
    monkeypatch.setattr(sync_once, "run_sync", AsyncMock(side_effect=error))
    monkeypatch.setattr(sys, "argv", ["threadsync-sync", OWNER, "gmail", "--polling"])

    assert sync_once.main() == code


def test_sync_once_success(monkeypatch, capsys) -> None:
    result = SyncResult(user_email=OWNER, provider="gmail", mode=SyncMode.FULL, inserted_count=4, thread_count=2)
    run_sync = AsyncMock(return_value=result)
    monkeypatch.setattr(sync_once, "run_sync", run_sync)
    monkeypatch.setattr(sys, "argv", ["threadsync-sync", OWNER, "gmail", "--full", "--days", "30"])

    assert sync_once.main() == 0

    options = run_sync.await_args.args[2]
    assert options.mode is SyncMode.FULL
    assert options.days == 30
    assert "Inserted 4 messages across 2 threads" in capsys.readouterr().out
