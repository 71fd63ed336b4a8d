"""PostgreSQL connection pool and schema for thread, cursor and status storage."""

from typing import Any

from loguru import logger
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from threadsync.infrastructure.settings import Settings, get_settings

SCHEMA = """
    CREATE TABLE IF NOT EXISTS email_threads (
        provider VARCHAR(32) NOT NULL,
        user_email VARCHAR(320) NOT NULL,
        thread_id VARCHAR(255) NOT NULL,
        subject TEXT NOT NULL DEFAULT '',
        participants TEXT[] NOT NULL DEFAULT '{}',
        latest_timestamp TIMESTAMP WITH TIME ZONE,
        is_archived BOOLEAN NOT NULL DEFAULT FALSE,
        classification JSONB,
        version INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (provider, user_email, thread_id)
    );

    CREATE INDEX IF NOT EXISTS idx_email_threads_latest
        ON email_threads(provider, user_email, latest_timestamp DESC);

    CREATE TABLE IF NOT EXISTS thread_messages (
        provider VARCHAR(32) NOT NULL,
        user_email VARCHAR(320) NOT NULL,
        message_id VARCHAR(255) NOT NULL,
        thread_id VARCHAR(255) NOT NULL,
        seq BIGSERIAL,
        sender TEXT NOT NULL DEFAULT '',
        recipient TEXT NOT NULL DEFAULT '',
        subject TEXT NOT NULL DEFAULT '',
        body TEXT NOT NULL DEFAULT '',
        body_type VARCHAR(16) NOT NULL DEFAULT 'snippet',
        snippet TEXT NOT NULL DEFAULT '',
        sent_at TIMESTAMP WITH TIME ZONE NOT NULL,
        is_inbound BOOLEAN NOT NULL DEFAULT TRUE,
        is_read BOOLEAN NOT NULL DEFAULT FALSE,
        attachments JSONB NOT NULL DEFAULT '[]'::jsonb,
        classification JSONB,
        PRIMARY KEY (provider, user_email, message_id),
        FOREIGN KEY (provider, user_email, thread_id)
            REFERENCES email_threads(provider, user_email, thread_id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_thread_messages_thread
        ON thread_messages(provider, user_email, thread_id, seq);

    CREATE TABLE IF NOT EXISTS sync_cursors (
        user_email VARCHAR(320) NOT NULL,
        provider VARCHAR(32) NOT NULL,
        last_sync_time TIMESTAMP WITH TIME ZONE NOT NULL,
        is_valid BOOLEAN NOT NULL DEFAULT TRUE,
        updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (user_email, provider)
    );

    CREATE TABLE IF NOT EXISTS sync_status (
        user_email VARCHAR(320) NOT NULL,
        provider VARCHAR(32) NOT NULL,
        state VARCHAR(16) NOT NULL,
        trigger VARCHAR(16) NOT NULL,
        started_at TIMESTAMP WITH TIME ZONE NOT NULL,
        finished_at TIMESTAMP WITH TIME ZONE,
        inserted_count INTEGER NOT NULL DEFAULT 0,
        thread_count INTEGER NOT NULL DEFAULT 0,
        error TEXT,
        PRIMARY KEY (user_email, provider)
    );
"""


class PostgresClientWrapper:
    """Wrapper around an async psycopg connection pool."""

    def __init__(self, settings: Settings | None = None):
        """Initialize PostgreSQL client wrapper."""
        self.settings = settings or get_settings()
        self._pool: AsyncConnectionPool | None = None

    async def connect(self) -> AsyncConnectionPool:
        """Open the connection pool."""
        if self._pool is None:
            logger.info(f"Connecting to PostgreSQL at {self.settings.postgres_host}:{self.settings.postgres_port}")
            self._pool = AsyncConnectionPool(
                conninfo=self.settings.postgres_dsn,
                min_size=self.settings.postgres_pool_min_size,
                max_size=self.settings.postgres_pool_max_size,
                kwargs={"row_factory": dict_row},
                open=False,
            )
            await self._pool.open()
            logger.info("PostgreSQL pool established")
        return self._pool

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")

    @property
    def pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            raise RuntimeError("PostgreSQL pool is not open, call connect() first")
        return self._pool

    async def health_check(self) -> dict[str, Any]:
        """Check PostgreSQL connection health."""
        try:
            pool = await self.connect()
            async with pool.connection() as conn:
                cur = await conn.execute("SELECT version() AS version")
                row = await cur.fetchone()
            return {
                "status": "healthy",
                "host": self.settings.postgres_host,
                "port": self.settings.postgres_port,
                "database": self.settings.postgres_db,
                "version": row["version"],
            }
        except Exception as e:
            logger.error(f"PostgreSQL health check failed: {e}")
            return {
                "status": "unhealthy",
                "host": self.settings.postgres_host,
                "port": self.settings.postgres_port,
                "database": self.settings.postgres_db,
                "error": str(e),
            }

    async def setup_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        pool = await self.connect()
        async with pool.connection() as conn:
            await conn.execute(SCHEMA)
        logger.info("Database schema setup complete")
