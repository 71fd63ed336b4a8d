"""Exception taxonomy for sync cycles.

Only ProviderError and its subclasses escape ``sync_emails``. Message-level
problems (malformed payloads, lost races, exhausted merges) are absorbed and
show up in logs and in the per-message outcomes instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from threadsync.domain.models import SyncResult


class ThreadSyncError(Exception):
    """Base class for all threadsync errors."""


class ProviderError(ThreadSyncError):
    """A provider call failed in a way that aborts the sync cycle."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        # Set by the sync use case when the cycle aborts part-way
        self.partial_result: Optional[SyncResult] = None


class TransientProviderError(ProviderError):
    """Network failure, timeout, rate limit or 5xx. The next cycle recovers the gap."""


class AuthError(ProviderError):
    """Credential rejected or missing. The account needs reconnecting."""


class UnsupportedProviderError(ThreadSyncError):
    def __init__(self, provider: str, available: list[str]) -> None:
        super().__init__(
            f"Unsupported email provider: {provider}. Must be one of: {', '.join(available)}"
        )
        self.provider = provider
        self.available = available


class MalformedMessageError(ThreadSyncError):
    """Raw payload lacks an id needed to place the message."""


class ThreadStoreError(ThreadSyncError):
    """Unexpected storage failure (not a uniqueness conflict)."""


class ThreadNotFoundError(ThreadSyncError):
    def __init__(self, key: object) -> None:
        super().__init__(f"Thread {key} not found")
        self.key = key
