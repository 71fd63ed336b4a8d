"""Tests for sync window planning."""

from datetime import timedelta

from factories import T0

from threadsync.application.use_cases.plan_sync_window import SyncWindowPlanner
from threadsync.domain.entities.sync_cursor import SyncCursor
from threadsync.domain.models import SyncMode, SyncOptions, SyncScope

NOW = T0


def cursor(minutes_ago: int, is_valid: bool = True) -> SyncCursor:
    return SyncCursor(
        user_email="me@x.com",
        provider="gmail",
        last_sync_time=NOW - timedelta(minutes=minutes_ago),
        is_valid=is_valid,
    )


def test_polling_after_long_absence_uses_last_sync_minus_buffer() -> None:
    """90 minutes away: window starts 10 minutes before the last sync."""
    c = cursor(90)

    window = SyncWindowPlanner().plan(SyncMode.POLLING, c, now=NOW)

    assert window.lower_bound == c.last_sync_time - timedelta(minutes=10)
    assert window.lower_bound != NOW - timedelta(minutes=15)
    assert window.scope is SyncScope.ALL_FOLDERS


def test_polling_recent_sync_uses_fifteen_minute_window() -> None:
    window = SyncWindowPlanner().plan(SyncMode.POLLING, cursor(5), now=NOW)

    assert window.lower_bound == NOW - timedelta(minutes=15)


def test_polling_exactly_sixty_minutes_stays_on_steady_window() -> None:
    window = SyncWindowPlanner().plan(SyncMode.POLLING, cursor(60), now=NOW)

    assert window.lower_bound == NOW - timedelta(minutes=15)


def test_polling_without_cursor_bootstraps_one_day() -> None:
    window = SyncWindowPlanner().plan(SyncMode.POLLING, None, now=NOW)

    assert window.lower_bound == NOW - timedelta(hours=24)


def test_polling_with_invalidated_cursor_bootstraps_one_day() -> None:
    window = SyncWindowPlanner().plan(SyncMode.POLLING, cursor(5, is_valid=False), now=NOW)

    assert window.lower_bound == NOW - timedelta(hours=24)


def test_polling_with_naive_cursor_time_treated_as_utc() -> None:
    naive = SyncCursor("me@x.com", "gmail", (NOW - timedelta(minutes=120)).replace(tzinfo=None))

    window = SyncWindowPlanner().plan(SyncMode.POLLING, naive, now=NOW)

    assert window.lower_bound == NOW - timedelta(minutes=130)


def test_full_sync_defaults_to_seven_days_all_folders() -> None:
    window = SyncWindowPlanner().plan(SyncMode.FULL, cursor(5), now=NOW)

    assert window.lower_bound == NOW - timedelta(days=7)
    assert window.scope is SyncScope.ALL_FOLDERS
    assert window.max_results == 500


def test_full_sync_honours_requested_days() -> None:
    window = SyncWindowPlanner(default_days=7).plan(SyncMode.FULL, None, requested_days=30, now=NOW)

    assert window.lower_bound == NOW - timedelta(days=30)


def test_background_sync_is_one_hour_broad_scope() -> None:
    window = SyncWindowPlanner().plan(SyncMode.BACKGROUND, cursor(500), now=NOW)

    assert window.lower_bound == NOW - timedelta(hours=1)
    assert window.scope is SyncScope.BROAD
    assert window.max_results == 250


def test_sync_options_mode_precedence() -> None:
    assert SyncOptions(force_full=True, polling=True).mode is SyncMode.FULL
    assert SyncOptions(polling=True).mode is SyncMode.POLLING
    assert SyncOptions().mode is SyncMode.BACKGROUND
