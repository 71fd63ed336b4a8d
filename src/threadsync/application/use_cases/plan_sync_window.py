"""Choose how far back a sync cycle asks the provider to look."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from loguru import logger

from threadsync.domain.entities.sync_cursor import SyncCursor
from threadsync.domain.models import SyncMode, SyncScope, SyncWindow

DEFAULT_FULL_DAYS = 7
BOOTSTRAP_WINDOW = timedelta(hours=24)
AWAY_THRESHOLD = timedelta(minutes=60)
CLOCK_SKEW_BUFFER = timedelta(minutes=10)
STEADY_POLL_WINDOW = timedelta(minutes=15)
BACKGROUND_WINDOW = timedelta(hours=1)

FULL_MAX_RESULTS = 500
DEFAULT_MAX_RESULTS = 250


class SyncWindowPlanner:
    """Pure window computation. Never fails, never touches storage.

    Under-covering a window silently loses mail; over-covering only costs
    extra provider calls that the reconciler deduplicates.
    """

    def __init__(self, default_days: int = DEFAULT_FULL_DAYS) -> None:
        self.default_days = default_days

    def plan(
        self,
        mode: SyncMode,
        cursor: Optional[SyncCursor],
        requested_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SyncWindow:
        now = now or datetime.now(timezone.utc)

        if mode is SyncMode.FULL:
            days = requested_days or self.default_days
            return SyncWindow(
                mode=mode,
                lower_bound=now - timedelta(days=days),
                scope=SyncScope.ALL_FOLDERS,
                max_results=FULL_MAX_RESULTS,
            )

        if mode is SyncMode.POLLING:
            return SyncWindow(
                mode=mode,
                lower_bound=self._polling_lower_bound(cursor, now),
                scope=SyncScope.ALL_FOLDERS,
                max_results=DEFAULT_MAX_RESULTS,
            )

        return SyncWindow(
            mode=SyncMode.BACKGROUND,
            lower_bound=now - BACKGROUND_WINDOW,
            scope=SyncScope.BROAD,
            max_results=DEFAULT_MAX_RESULTS,
        )

    def _polling_lower_bound(self, cursor: Optional[SyncCursor], now: datetime) -> datetime:
        if cursor is None or not cursor.is_valid:
            logger.debug("No usable sync cursor, polling the last 24 hours")
            return now - BOOTSTRAP_WINDOW

        last_sync = cursor.last_sync_time
        if last_sync.tzinfo is None:
            last_sync = last_sync.replace(tzinfo=timezone.utc)

        away = now - last_sync
        if away > AWAY_THRESHOLD:
            logger.debug(
                f"Last sync was {int(away.total_seconds() // 60)} minutes ago, "
                f"polling since last sync with buffer"
            )
            return last_sync - CLOCK_SKEW_BUFFER

        return now - STEADY_POLL_WINDOW
