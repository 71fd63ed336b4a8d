from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Union

from threadsync.domain.entities.message import Message
from threadsync.domain.models import SyncWindow


@dataclass(frozen=True)
class RawMessageRef:
    # What a list call returns; either id may be missing on a bad page
    message_id: Optional[str]
    thread_id: Optional[str]


@dataclass(frozen=True)
class Skipped:
    # Normalizer verdict for a payload that cannot be placed in a thread
    reason: str
    message_id: Optional[str] = None
    thread_id: Optional[str] = None


@dataclass(frozen=True)
class MessageListing:
    refs: list[RawMessageRef] = field(default_factory=list)
    # Pages were left unread when the page cap was reached
    truncated: bool = False


NormalizeResult = Union[Message, Skipped]


class MessageNormalizer(Protocol):
    def normalize(self, raw: dict[str, Any], owner_email: str) -> NormalizeResult: ...


class EmailProvider(Protocol):
    """Capability interface every mail provider adapter implements."""

    name: str

    async def list_messages(self, user_email: str, window: SyncWindow) -> MessageListing: ...

    async def get_message(self, user_email: str, ref: RawMessageRef) -> Optional[dict[str, Any]]: ...

    def normalize(self, raw: dict[str, Any], owner_email: str) -> NormalizeResult: ...
