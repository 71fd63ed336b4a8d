"""Email sync worker - polls configured mailboxes at a fixed interval."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass, field
from datetime import datetime, timezone

from loguru import logger

from threadsync.application.use_cases.sync_emails import SyncEmailsUseCase
from threadsync.domain.errors import AuthError, ThreadSyncError
from threadsync.domain.models import SyncOptions, SyncTrigger
from threadsync.infrastructure import ServiceContainer, configure_logging, get_settings


@dataclass(frozen=True)
class Mailbox:
    """One (user, provider) pair to poll."""

    user_email: str
    provider: str

    @property
    def name(self) -> str:
        return f"{self.provider}:{self.user_email}"


@dataclass
class WorkerStats:
    """Track worker statistics."""

    total_inserted: int = 0
    total_errors: int = 0
    auth_failures: int = 0
    last_poll: datetime | None = None
    polls_completed: int = 0
    by_mailbox: dict[str, int] = field(default_factory=dict)


class SyncWorker:
    """
    Multi-mailbox polling worker.

    Every poll runs one polling-mode sync per mailbox concurrently. A failing
    mailbox never stops the others.
    """

    def __init__(
        self,
        sync: SyncEmailsUseCase,
        mailboxes: list[Mailbox],
        poll_interval_seconds: int = 60,
    ):
        self.sync = sync
        self.mailboxes = mailboxes
        self.poll_interval = poll_interval_seconds
        self.stats = WorkerStats()
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    async def _sync_mailbox(self, mailbox: Mailbox) -> int:
        options = SyncOptions(polling=True, trigger=SyncTrigger.PERIODIC)
        try:
            result = await self.sync.sync_emails(mailbox.user_email, mailbox.provider, options)
        except AuthError as e:
            self.stats.auth_failures += 1
            self.stats.total_errors += 1
            logger.error(f"Mailbox {mailbox.name} needs reconnecting: {e}")
            return 0
        except ThreadSyncError as e:
            self.stats.total_errors += 1
            logger.error(f"Error syncing {mailbox.name}: {e}")
            return 0
        except Exception as e:
            self.stats.total_errors += 1
            logger.exception(f"Unexpected failure syncing {mailbox.name}: {e}")
            return 0

        self.stats.by_mailbox[mailbox.name] = self.stats.by_mailbox.get(mailbox.name, 0) + result.inserted_count
        return result.inserted_count

    async def poll_once(self) -> int:
        """Poll all configured mailboxes once."""
        self.stats.last_poll = datetime.now(timezone.utc)
        logger.info(f"Starting poll cycle #{self.stats.polls_completed + 1}")

        counts = await asyncio.gather(*(self._sync_mailbox(mb) for mb in self.mailboxes))
        inserted = sum(counts)
        self.stats.total_inserted += inserted
        self.stats.polls_completed += 1
        self._log_stats()
        return inserted

    def _log_stats(self) -> None:
        """Log current worker statistics."""
        logger.info(
            f"Worker stats: "
            f"polls={self.stats.polls_completed}, "
            f"inserted={self.stats.total_inserted}, "
            f"errors={self.stats.total_errors}, "
            f"auth_failures={self.stats.auth_failures}, "
            f"by_mailbox={self.stats.by_mailbox}"
        )

    async def run(self) -> int:
        """Run the worker loop until stopped."""
        logger.info(f"Sync worker starting with {len(self.mailboxes)} mailbox(es)")
        logger.info(f"Poll interval: {self.poll_interval} seconds")
        for mb in self.mailboxes:
            logger.info(f"  - {mb.name}")

        while self.running:
            await self.poll_once()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Worker shutdown complete")
        self._log_stats()
        return 0


async def run_worker() -> int:
    settings = get_settings()

    try:
        mailboxes = [Mailbox(user, provider) for user, provider in settings.mailboxes()]
    except ValueError as e:
        logger.error(str(e))
        return 1

    if not mailboxes:
        logger.error("No mailboxes configured! Set WORKER_MAILBOXES=user@example.com:gmail,...")
        return 1

    try:
        container = await ServiceContainer.create(settings)
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        return 1

    worker = SyncWorker(container.sync, mailboxes, poll_interval_seconds=settings.worker_poll_interval)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown_handler(worker, sig))

    try:
        return await worker.run()
    finally:
        await container.close()


def _shutdown_handler(worker: SyncWorker, sig: signal.Signals):
    def handle() -> None:
        logger.info(f"Received signal {sig.name}, shutting down...")
        worker.stop()

    return handle


def main() -> int:
    """Entry point for the sync worker."""
    configure_logging(get_settings().log_level)

    logger.info("=" * 60)
    logger.info("Threadsync Worker")
    logger.info("=" * 60)

    return asyncio.run(run_worker())


if __name__ == "__main__":
    raise SystemExit(main())
