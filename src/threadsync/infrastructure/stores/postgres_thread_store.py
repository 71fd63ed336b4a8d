"""PostgreSQL implementation of ThreadStore.

The primary key of ``thread_messages`` (provider, user_email, message_id) is
the uniqueness guarantee. The conditional upsert runs as one transaction and
rolls back when the message row already exists.
"""

from __future__ import annotations

import functools
from typing import Any, Optional

import psycopg
from loguru import logger
from psycopg import errors
from psycopg.types.json import Jsonb

from threadsync.application.ports.thread_store import UpsertOutcome
from threadsync.domain.classification import MessageClassification, ThreadClassification
from threadsync.domain.entities.attachment import AttachmentMeta
from threadsync.domain.entities.message import Message
from threadsync.domain.entities.thread import Thread, ThreadKey
from threadsync.domain.errors import ThreadStoreError
from threadsync.infrastructure.postgres_client import PostgresClientWrapper

CONFLICT_ERRORS = (errors.UniqueViolation, errors.SerializationFailure, errors.DeadlockDetected)

_INSERT_THREAD_IF_ABSENT = """
    INSERT INTO email_threads (provider, user_email, thread_id, subject, version)
    VALUES (%(provider)s, %(user_email)s, %(thread_id)s, %(subject)s, 0)
    ON CONFLICT (provider, user_email, thread_id) DO NOTHING
"""

_INSERT_MESSAGE = """
    INSERT INTO thread_messages (
        provider, user_email, message_id, thread_id, sender, recipient, subject,
        body, body_type, snippet, sent_at, is_inbound, is_read, attachments, classification
    ) VALUES (
        %(provider)s, %(user_email)s, %(message_id)s, %(thread_id)s, %(sender)s, %(recipient)s,
        %(subject)s, %(body)s, %(body_type)s, %(snippet)s, %(sent_at)s, %(is_inbound)s,
        %(is_read)s, %(attachments)s, %(classification)s
    )
    ON CONFLICT (provider, user_email, message_id) DO NOTHING
    RETURNING message_id
"""

_APPEND_TO_THREAD = """
    UPDATE email_threads
    SET participants = ARRAY(
            SELECT DISTINCT p FROM unnest(participants || %(participants)s::text[]) AS p
        ),
        latest_timestamp = GREATEST(latest_timestamp, %(sent_at)s),
        version = version + 1,
        updated_at = CURRENT_TIMESTAMP
    WHERE provider = %(provider)s AND user_email = %(user_email)s AND thread_id = %(thread_id)s
"""

_THREAD_COLUMNS = """
    provider, user_email, thread_id, subject, participants, latest_timestamp,
    is_archived, classification, version
"""

_MESSAGE_COLUMNS = """
    thread_id, message_id, sender, recipient, subject, body, body_type, snippet,
    sent_at, is_inbound, is_read, attachments, classification
"""


def _store_errors(func):
    """Translate unexpected driver errors into ThreadStoreError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except psycopg.Error as e:
            logger.error(f"{func.__name__} failed: {e}")
            raise ThreadStoreError(str(e)) from e

    return wrapper


def _message_params(key: ThreadKey, message: Message) -> dict[str, Any]:
    return {
        "provider": key.provider,
        "user_email": key.user_email,
        "thread_id": key.thread_id,
        "message_id": message.message_id,
        "sender": message.sender,
        "recipient": message.recipient,
        "subject": message.subject,
        "body": message.body,
        "body_type": message.body_type,
        "snippet": message.snippet,
        "sent_at": message.timestamp,
        "is_inbound": message.is_inbound,
        "is_read": message.is_read,
        "attachments": Jsonb([a.to_dict() for a in message.attachments]),
        "classification": Jsonb(message.classification.to_dict()) if message.classification else None,
    }


def _row_to_message(row: dict[str, Any]) -> Message:
    return Message(
        message_id=row["message_id"],
        thread_id=row["thread_id"],
        sender=row["sender"],
        recipient=row["recipient"],
        subject=row["subject"],
        body=row["body"],
        body_type=row["body_type"],
        snippet=row["snippet"],
        timestamp=row["sent_at"],
        is_inbound=row["is_inbound"],
        is_read=row["is_read"],
        attachments=tuple(AttachmentMeta.from_dict(a) for a in row["attachments"] or ()),
        classification=MessageClassification.from_dict(row["classification"]) if row["classification"] else None,
    )


def _row_to_thread(row: dict[str, Any], messages: list[Message]) -> Thread:
    return Thread(
        thread_id=row["thread_id"],
        provider=row["provider"],
        user_email=row["user_email"],
        subject=row["subject"],
        participants=set(row["participants"] or ()),
        latest_timestamp=row["latest_timestamp"],
        messages=messages,
        is_archived=row["is_archived"],
        classification=ThreadClassification.from_dict(row["classification"]) if row["classification"] else None,
        version=row["version"],
    )


def _key_params(key: ThreadKey) -> dict[str, Any]:
    return {"provider": key.provider, "user_email": key.user_email, "thread_id": key.thread_id}


class PostgresThreadStore:
    """Threads and messages in PostgreSQL."""

    def __init__(self, client: PostgresClientWrapper):
        self.client = client

    @_store_errors
    async def try_append(self, key: ThreadKey, message: Message) -> UpsertOutcome:
        params = _message_params(key, message)
        params["participants"] = sorted(message.participants())
        applied = False

        try:
            async with self.client.pool.connection() as conn:
                async with conn.transaction():
                    await conn.execute(_INSERT_THREAD_IF_ABSENT, params)
                    cur = await conn.execute(_INSERT_MESSAGE, params)
                    if await cur.fetchone() is None:
                        raise psycopg.Rollback()
                    await conn.execute(_APPEND_TO_THREAD, params)
                    applied = True
        except CONFLICT_ERRORS as e:
            logger.debug(f"Conditional upsert of {message.message_id} into {key} conflicted: {e}")
            return UpsertOutcome.CONFLICT

        return UpsertOutcome.APPLIED if applied else UpsertOutcome.CONFLICT

    @_store_errors
    async def get_thread(self, key: ThreadKey) -> Optional[Thread]:
        async with self.client.pool.connection() as conn:
            cur = await conn.execute(
                f"SELECT {_THREAD_COLUMNS} FROM email_threads "
                "WHERE provider = %(provider)s AND user_email = %(user_email)s AND thread_id = %(thread_id)s",
                _key_params(key),
            )
            row = await cur.fetchone()
            if row is None:
                return None

            cur = await conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM thread_messages "
                "WHERE provider = %(provider)s AND user_email = %(user_email)s AND thread_id = %(thread_id)s "
                "ORDER BY seq",
                _key_params(key),
            )
            messages = [_row_to_message(r) for r in await cur.fetchall()]

        return _row_to_thread(row, messages)

    @_store_errors
    async def find_message_thread(
        self, provider: str, user_email: str, message_id: str
    ) -> Optional[ThreadKey]:
        async with self.client.pool.connection() as conn:
            cur = await conn.execute(
                "SELECT thread_id FROM thread_messages "
                "WHERE provider = %s AND user_email = %s AND message_id = %s",
                (provider, user_email, message_id),
            )
            row = await cur.fetchone()
        return ThreadKey(row["thread_id"], provider, user_email) if row else None

    @_store_errors
    async def save_thread(self, thread: Thread, expected_version: Optional[int]) -> bool:
        key = thread.key
        params = {
            **_key_params(key),
            "subject": thread.subject,
            "participants": sorted(thread.participants),
            "latest_timestamp": thread.latest_timestamp,
            "is_archived": thread.is_archived,
            "classification": Jsonb(thread.classification.to_dict()) if thread.classification else None,
            "expected_version": expected_version,
        }
        saved_version: Optional[int] = None

        try:
            async with self.client.pool.connection() as conn:
                async with conn.transaction():
                    if expected_version is None:
                        cur = await conn.execute(
                            """
                            INSERT INTO email_threads (
                                provider, user_email, thread_id, subject, participants,
                                latest_timestamp, is_archived, classification, version
                            ) VALUES (
                                %(provider)s, %(user_email)s, %(thread_id)s, %(subject)s, %(participants)s,
                                %(latest_timestamp)s, %(is_archived)s, %(classification)s, 1
                            )
                            ON CONFLICT (provider, user_email, thread_id) DO NOTHING
                            RETURNING version
                            """,
                            params,
                        )
                    else:
                        cur = await conn.execute(
                            """
                            UPDATE email_threads
                            SET subject = %(subject)s,
                                participants = %(participants)s,
                                latest_timestamp = %(latest_timestamp)s,
                                is_archived = %(is_archived)s,
                                classification = %(classification)s,
                                version = version + 1,
                                updated_at = CURRENT_TIMESTAMP
                            WHERE provider = %(provider)s AND user_email = %(user_email)s
                              AND thread_id = %(thread_id)s AND version = %(expected_version)s
                            RETURNING version
                            """,
                            params,
                        )
                    row = await cur.fetchone()
                    if row is None:
                        raise psycopg.Rollback()

                    async with conn.cursor() as mcur:
                        await mcur.executemany(
                            _INSERT_MESSAGE, [_message_params(key, m) for m in thread.messages]
                        )

                    # Existing rows were left alone by ON CONFLICT; they must belong to this thread
                    cur = await conn.execute(
                        "SELECT message_id FROM thread_messages "
                        "WHERE provider = %s AND user_email = %s AND message_id = ANY(%s) "
                        "AND thread_id <> %s LIMIT 1",
                        (key.provider, key.user_email, thread.message_ids(), key.thread_id),
                    )
                    if await cur.fetchone() is not None:
                        raise psycopg.Rollback()

                    saved_version = row["version"]
        except CONFLICT_ERRORS as e:
            logger.debug(f"Save of {key} conflicted: {e}")
            return False

        if saved_version is None:
            return False
        thread.version = saved_version
        return True

    @_store_errors
    async def list_threads(
        self,
        provider: str,
        user_email: str,
        *,
        include_archived: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Thread]:
        async with self.client.pool.connection() as conn:
            cur = await conn.execute(
                f"SELECT {_THREAD_COLUMNS} FROM email_threads "
                "WHERE provider = %(provider)s AND user_email = %(user_email)s "
                "AND (%(include_archived)s OR NOT is_archived) "
                "ORDER BY latest_timestamp DESC NULLS LAST, thread_id "
                "LIMIT %(limit)s OFFSET %(offset)s",
                {
                    "provider": provider,
                    "user_email": user_email,
                    "include_archived": include_archived,
                    "limit": limit,
                    "offset": offset,
                },
            )
            rows = await cur.fetchall()
            if not rows:
                return []

            cur = await conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM thread_messages "
                "WHERE provider = %s AND user_email = %s AND thread_id = ANY(%s) "
                "ORDER BY seq",
                (provider, user_email, [r["thread_id"] for r in rows]),
            )
            by_thread: dict[str, list[Message]] = {r["thread_id"]: [] for r in rows}
            for r in await cur.fetchall():
                by_thread[r["thread_id"]].append(_row_to_message(r))

        return [_row_to_thread(r, by_thread[r["thread_id"]]) for r in rows]

    @_store_errors
    async def count_threads(self, provider: str, user_email: str) -> int:
        async with self.client.pool.connection() as conn:
            cur = await conn.execute(
                "SELECT COUNT(*) AS n FROM email_threads WHERE provider = %s AND user_email = %s",
                (provider, user_email),
            )
            row = await cur.fetchone()
        return row["n"]

    @_store_errors
    async def set_archived(self, key: ThreadKey, archived: bool) -> bool:
        async with self.client.pool.connection() as conn:
            cur = await conn.execute(
                "UPDATE email_threads SET is_archived = %(archived)s, version = version + 1, "
                "updated_at = CURRENT_TIMESTAMP "
                "WHERE provider = %(provider)s AND user_email = %(user_email)s AND thread_id = %(thread_id)s",
                {**_key_params(key), "archived": archived},
            )
            return cur.rowcount > 0

    @_store_errors
    async def mark_read(self, key: ThreadKey, message_id: Optional[str] = None) -> int:
        async with self.client.pool.connection() as conn:
            async with conn.transaction():
                cur = await conn.execute(
                    "UPDATE thread_messages SET is_read = TRUE "
                    "WHERE provider = %(provider)s AND user_email = %(user_email)s "
                    "AND thread_id = %(thread_id)s AND NOT is_read "
                    "AND (%(message_id)s::text IS NULL OR message_id = %(message_id)s)",
                    {**_key_params(key), "message_id": message_id},
                )
                changed = cur.rowcount
                if changed:
                    await self._bump_version(conn, key)
        return changed

    @_store_errors
    async def refresh_message(
        self, key: ThreadKey, message_id: str, *, is_read: bool, subject: str
    ) -> bool:
        params = {**_key_params(key), "message_id": message_id, "is_read": is_read, "subject": subject}
        async with self.client.pool.connection() as conn:
            async with conn.transaction():
                cur = await conn.execute(
                    "SELECT is_read FROM thread_messages "
                    "WHERE provider = %(provider)s AND user_email = %(user_email)s "
                    "AND thread_id = %(thread_id)s AND message_id = %(message_id)s",
                    params,
                )
                row = await cur.fetchone()
                if row is None:
                    return False

                changed = False
                if row["is_read"] != is_read:
                    await conn.execute(
                        "UPDATE thread_messages SET is_read = %(is_read)s "
                        "WHERE provider = %(provider)s AND user_email = %(user_email)s "
                        "AND message_id = %(message_id)s",
                        params,
                    )
                    changed = True
                if subject:
                    cur = await conn.execute(
                        "UPDATE email_threads SET subject = %(subject)s "
                        "WHERE provider = %(provider)s AND user_email = %(user_email)s "
                        "AND thread_id = %(thread_id)s AND subject = ''",
                        params,
                    )
                    changed = changed or cur.rowcount > 0
                if changed:
                    await self._bump_version(conn, key)
        return True

    @_store_errors
    async def set_message_classification(
        self, key: ThreadKey, message_id: str, classification: MessageClassification
    ) -> bool:
        async with self.client.pool.connection() as conn:
            async with conn.transaction():
                cur = await conn.execute(
                    "UPDATE thread_messages SET classification = %(classification)s "
                    "WHERE provider = %(provider)s AND user_email = %(user_email)s "
                    "AND thread_id = %(thread_id)s AND message_id = %(message_id)s",
                    {
                        **_key_params(key),
                        "message_id": message_id,
                        "classification": Jsonb(classification.to_dict()),
                    },
                )
                if cur.rowcount == 0:
                    return False
                await self._bump_version(conn, key)
        return True

    @_store_errors
    async def set_thread_classification(
        self, key: ThreadKey, classification: ThreadClassification
    ) -> bool:
        async with self.client.pool.connection() as conn:
            cur = await conn.execute(
                "UPDATE email_threads SET classification = %(classification)s, version = version + 1, "
                "updated_at = CURRENT_TIMESTAMP "
                "WHERE provider = %(provider)s AND user_email = %(user_email)s AND thread_id = %(thread_id)s",
                {**_key_params(key), "classification": Jsonb(classification.to_dict())},
            )
            return cur.rowcount > 0

    @staticmethod
    async def _bump_version(conn: psycopg.AsyncConnection, key: ThreadKey) -> None:
        await conn.execute(
            "UPDATE email_threads SET version = version + 1, updated_at = CURRENT_TIMESTAMP "
            "WHERE provider = %(provider)s AND user_email = %(user_email)s AND thread_id = %(thread_id)s",
            _key_params(key),
        )
