"""Application layer - sync use cases, reconciliation and provider ports."""

from threadsync.application.provider_registry import ProviderRegistry
from threadsync.application.use_cases.plan_sync_window import SyncWindowPlanner
from threadsync.application.use_cases.reconcile_threads import (
    MessageOutcome,
    ReconcileOutcome,
    ReconcileResult,
    ThreadReconciler,
)
from threadsync.application.use_cases.sync_emails import SyncEmailsUseCase
from threadsync.application.use_cases.thread_queries import ThreadQueries

__all__ = [
    "ProviderRegistry",
    "SyncWindowPlanner",
    "ThreadReconciler",
    "ReconcileOutcome",
    "ReconcileResult",
    "MessageOutcome",
    "SyncEmailsUseCase",
    "ThreadQueries",
]
