"""Shared fixtures for threadsync tests."""

import pytest

from threadsync.application.provider_registry import ProviderRegistry
from threadsync.application.use_cases.reconcile_threads import ThreadReconciler
from threadsync.application.use_cases.sync_emails import SyncEmailsUseCase
from threadsync.infrastructure.stores import (
    MemoryCursorStore,
    MemorySyncStatusStore,
    MemoryThreadStore,
)


@pytest.fixture
def thread_store():
    return MemoryThreadStore()


@pytest.fixture
def cursor_store():
    return MemoryCursorStore()


@pytest.fixture
def status_store():
    return MemorySyncStatusStore()


@pytest.fixture
def reconciler(thread_store):
    return ThreadReconciler(thread_store)


@pytest.fixture
def make_sync(thread_store, cursor_store, status_store):
    """Build a SyncEmailsUseCase around the given providers and the memory stores."""

    def build(*providers, **kwargs):
        return SyncEmailsUseCase(
            registry=ProviderRegistry(providers),
            store=thread_store,
            cursors=cursor_store,
            statuses=status_store,
            **kwargs,
        )

    return build
