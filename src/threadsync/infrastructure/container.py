"""Wiring of stores, provider adapters and use cases from settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from loguru import logger

from threadsync.application.ports.classifier import Classifier
from threadsync.application.ports.cursor_store import CursorStore
from threadsync.application.ports.email_provider import EmailProvider
from threadsync.application.ports.sync_status_store import SyncStatusStore
from threadsync.application.ports.thread_store import ThreadStore
from threadsync.application.provider_registry import ProviderRegistry
from threadsync.application.use_cases.classify_messages import ClassifyMessagesUseCase
from threadsync.application.use_cases.plan_sync_window import SyncWindowPlanner
from threadsync.application.use_cases.reconcile_threads import ThreadReconciler
from threadsync.application.use_cases.sync_emails import SyncEmailsUseCase
from threadsync.application.use_cases.thread_queries import ThreadQueries
from threadsync.infrastructure.classification import NullClassifier
from threadsync.infrastructure.credentials import StaticCredentialProvider
from threadsync.infrastructure.email.providers.gmail.client import GmailProvider
from threadsync.infrastructure.email.providers.outlook.client import OutlookProvider
from threadsync.infrastructure.postgres_client import PostgresClientWrapper
from threadsync.infrastructure.settings import Settings, get_settings
from threadsync.infrastructure.stores import (
    MemoryCursorStore,
    MemorySyncStatusStore,
    MemoryThreadStore,
    PostgresCursorStore,
    PostgresSyncStatusStore,
    PostgresThreadStore,
)


def default_providers(settings: Settings) -> list[EmailProvider]:
    credentials = StaticCredentialProvider(settings.provider_tokens)
    return [
        GmailProvider(
            credentials,
            base_url=settings.gmail_api_base_url,
            timeout=settings.provider_timeout_seconds,
        ),
        OutlookProvider(
            credentials,
            base_url=settings.graph_api_base_url,
            timeout=settings.provider_timeout_seconds,
        ),
    ]


@dataclass
class ServiceContainer:
    """Everything the API and the CLI need, built once per process."""

    settings: Settings
    store: ThreadStore
    cursors: CursorStore
    statuses: SyncStatusStore
    registry: ProviderRegistry
    sync: SyncEmailsUseCase
    threads: ThreadQueries
    postgres: Optional[PostgresClientWrapper] = None

    @classmethod
    async def create(
        cls,
        settings: Settings | None = None,
        *,
        providers: Iterable[EmailProvider] | None = None,
        classifier: Classifier | None = None,
    ) -> ServiceContainer:
        settings = settings or get_settings()
        postgres: Optional[PostgresClientWrapper] = None

        if settings.storage_backend == "postgres":
            postgres = PostgresClientWrapper(settings)
            await postgres.connect()
            await postgres.setup_schema()
            store: ThreadStore = PostgresThreadStore(postgres)
            cursors: CursorStore = PostgresCursorStore(postgres)
            statuses: SyncStatusStore = PostgresSyncStatusStore(postgres)
        else:
            store = MemoryThreadStore()
            cursors = MemoryCursorStore()
            statuses = MemorySyncStatusStore()

        registry = ProviderRegistry(providers if providers is not None else default_providers(settings))

        sync = SyncEmailsUseCase(
            registry=registry,
            store=store,
            cursors=cursors,
            statuses=statuses,
            reconciler=ThreadReconciler(store, max_merge_attempts=settings.max_merge_attempts),
            planner=SyncWindowPlanner(default_days=settings.sync_default_days),
            classifier=ClassifyMessagesUseCase(
                store,
                classifier or NullClassifier(),
                include_outbound=settings.classify_outbound,
            ),
            fetch_concurrency=settings.fetch_concurrency,
            chunk_size=settings.reconcile_chunk_size,
        )

        logger.info(
            f"Services ready: storage={settings.storage_backend}, providers={registry.names()}"
        )
        return cls(
            settings=settings,
            store=store,
            cursors=cursors,
            statuses=statuses,
            registry=registry,
            sync=sync,
            threads=ThreadQueries(store),
            postgres=postgres,
        )

    async def health(self) -> dict[str, Any]:
        if self.postgres is None:
            return {"status": "healthy", "backend": "memory"}
        return {**await self.postgres.health_check(), "backend": "postgres"}

    async def close(self) -> None:
        for provider in self.registry:
            aclose = getattr(provider, "aclose", None)
            if aclose is not None:
                await aclose()
        if self.postgres is not None:
            await self.postgres.disconnect()
