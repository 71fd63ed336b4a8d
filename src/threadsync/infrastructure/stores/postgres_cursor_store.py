"""PostgreSQL-backed sync cursors and sync status records."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import psycopg
from loguru import logger

from threadsync.domain.entities.sync_cursor import SyncCursor
from threadsync.domain.entities.thread import normalize_user_email
from threadsync.domain.errors import ThreadStoreError
from threadsync.domain.models import SyncState, SyncStatus, SyncTrigger
from threadsync.infrastructure.postgres_client import PostgresClientWrapper


class PostgresCursorStore:
    """One row per (user_email, provider)."""

    def __init__(self, client: PostgresClientWrapper):
        self.client = client

    async def get(self, user_email: str, provider: str) -> Optional[SyncCursor]:
        try:
            async with self.client.pool.connection() as conn:
                cur = await conn.execute(
                    "SELECT user_email, provider, last_sync_time, is_valid FROM sync_cursors "
                    "WHERE user_email = %s AND provider = %s",
                    (normalize_user_email(user_email), provider.lower()),
                )
                row = await cur.fetchone()
        except psycopg.Error as e:
            raise ThreadStoreError(f"cursor read failed: {e}") from e

        if row is None:
            logger.debug(f"No sync cursor for {user_email} ({provider})")
            return None
        return SyncCursor(
            user_email=row["user_email"],
            provider=row["provider"],
            last_sync_time=row["last_sync_time"],
            is_valid=row["is_valid"],
        )

    async def update(self, user_email: str, provider: str, timestamp: datetime) -> None:
        try:
            async with self.client.pool.connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO sync_cursors (user_email, provider, last_sync_time, is_valid)
                    VALUES (%s, %s, %s, TRUE)
                    ON CONFLICT (user_email, provider) DO UPDATE
                    SET last_sync_time = EXCLUDED.last_sync_time,
                        is_valid = TRUE,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (normalize_user_email(user_email), provider.lower(), timestamp),
                )
        except psycopg.Error as e:
            raise ThreadStoreError(f"cursor update failed: {e}") from e
        logger.debug(f"Cursor for {user_email} ({provider}) set to {timestamp.isoformat()}")

    async def invalidate(self, user_email: str, provider: str) -> None:
        try:
            async with self.client.pool.connection() as conn:
                await conn.execute(
                    "UPDATE sync_cursors SET is_valid = FALSE, updated_at = CURRENT_TIMESTAMP "
                    "WHERE user_email = %s AND provider = %s",
                    (normalize_user_email(user_email), provider.lower()),
                )
        except psycopg.Error as e:
            raise ThreadStoreError(f"cursor invalidation failed: {e}") from e


class PostgresSyncStatusStore:
    """Last known sync status per (user_email, provider), for display."""

    def __init__(self, client: PostgresClientWrapper):
        self.client = client

    async def get(self, user_email: str, provider: str) -> Optional[SyncStatus]:
        try:
            async with self.client.pool.connection() as conn:
                cur = await conn.execute(
                    "SELECT user_email, provider, state, trigger, started_at, finished_at, "
                    "inserted_count, thread_count, error FROM sync_status "
                    "WHERE user_email = %s AND provider = %s",
                    (normalize_user_email(user_email), provider.lower()),
                )
                row = await cur.fetchone()
        except psycopg.Error as e:
            raise ThreadStoreError(f"sync status read failed: {e}") from e

        if row is None:
            return None
        return SyncStatus(
            user_email=row["user_email"],
            provider=row["provider"],
            state=SyncState(row["state"]),
            trigger=SyncTrigger(row["trigger"]),
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            inserted_count=row["inserted_count"],
            thread_count=row["thread_count"],
            error=row["error"],
        )

    async def put(self, status: SyncStatus) -> None:
        try:
            async with self.client.pool.connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO sync_status (
                        user_email, provider, state, trigger, started_at, finished_at,
                        inserted_count, thread_count, error
                    ) VALUES (
                        %(user_email)s, %(provider)s, %(state)s, %(trigger)s, %(started_at)s,
                        %(finished_at)s, %(inserted_count)s, %(thread_count)s, %(error)s
                    )
                    ON CONFLICT (user_email, provider) DO UPDATE
                    SET state = EXCLUDED.state,
                        trigger = EXCLUDED.trigger,
                        started_at = EXCLUDED.started_at,
                        finished_at = EXCLUDED.finished_at,
                        inserted_count = EXCLUDED.inserted_count,
                        thread_count = EXCLUDED.thread_count,
                        error = EXCLUDED.error
                    """,
                    {
                        **status.model_dump(include={"started_at", "finished_at", "inserted_count", "thread_count", "error"}),
                        "user_email": normalize_user_email(status.user_email),
                        "provider": status.provider.lower(),
                        "state": status.state.value,
                        "trigger": status.trigger.value,
                    },
                )
        except psycopg.Error as e:
            raise ThreadStoreError(f"sync status write failed: {e}") from e
