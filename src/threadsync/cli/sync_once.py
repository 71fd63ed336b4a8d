"""One-shot email sync for a single mailbox."""

from __future__ import annotations

import argparse
import asyncio

from loguru import logger

from threadsync.domain.errors import AuthError, ProviderError, ThreadSyncError
from threadsync.domain.models import SyncOptions, SyncResult
from threadsync.infrastructure import ServiceContainer, configure_logging, get_settings


async def run_sync(user_email: str, provider: str, options: SyncOptions) -> SyncResult:
    container = await ServiceContainer.create(get_settings())
    try:
        return await container.sync.sync_emails(user_email, provider, options)
    finally:
        await container.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync one mailbox into threads")
    parser.add_argument("user_email", help="Mailbox owner, e.g. me@example.com")
    parser.add_argument("provider", help="Provider name (gmail, outlook)")
    parser.add_argument("--days", type=int, default=None, help="Look-back for a full sync (default: 7)")
    parser.add_argument("--full", action="store_true", help="Full sync across all folders")
    parser.add_argument("--polling", action="store_true", help="Adaptive polling window from the last sync")
    args = parser.parse_args()

    configure_logging(get_settings().log_level)

    options = SyncOptions(days=args.days, force_full=args.full, polling=args.polling)

    print(f"Syncing {args.user_email} ({args.provider}), mode={options.mode.value}")
    try:
        result = asyncio.run(run_sync(args.user_email, args.provider, options))
    except AuthError as e:
        print(f"Credentials rejected, reconnect the account: {e}")
        if e.partial_result:
            print(f"Stored {e.partial_result.inserted_count} messages before the failure")
        return 2
    except ProviderError as e:
        print(f"Provider failure, retry later: {e}")
        if e.partial_result:
            print(f"Stored {e.partial_result.inserted_count} messages before the failure")
        return 1
    except ThreadSyncError as e:
        logger.error(str(e))
        return 1

    print(
        f"Inserted {result.inserted_count} messages across {result.thread_count} threads "
        f"(skipped={result.skipped_count}, dropped={result.dropped_count}, "
        f"malformed={result.malformed_count})"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
