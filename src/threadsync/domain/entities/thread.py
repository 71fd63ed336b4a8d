from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional

from threadsync.domain.classification import ThreadClassification
from threadsync.domain.entities.message import Message


def normalize_user_email(user_email: str) -> str:
    return user_email.strip().lower()


@dataclass(frozen=True)
class ThreadKey:
    # Partition key: one thread per (thread_id, provider, user_email)
    thread_id: str
    provider: str
    user_email: str

    @classmethod
    def of(cls, thread_id: str, provider: str, user_email: str) -> ThreadKey:
        return cls(
            thread_id=thread_id,
            provider=provider.strip().lower(),
            user_email=normalize_user_email(user_email),
        )

    def __str__(self) -> str:
        return f"{self.provider}:{self.user_email}:{self.thread_id}"


@dataclass
class Thread:
    thread_id: str
    provider: str
    user_email: str
    subject: str = ""
    participants: set[str] = field(default_factory=set)
    latest_timestamp: Optional[datetime] = None
    messages: list[Message] = field(default_factory=list)
    is_archived: bool = False
    classification: Optional[ThreadClassification] = None
    # 0 means the thread has never been persisted
    version: int = 0

    @classmethod
    def start(cls, key: ThreadKey, first: Message) -> Thread:
        """A new, unsaved thread holding its first message."""
        thread = cls(
            thread_id=key.thread_id,
            provider=key.provider,
            user_email=key.user_email,
            subject=first.subject,
        )
        thread.add_message(first)
        return thread

    @property
    def key(self) -> ThreadKey:
        return ThreadKey(self.thread_id, self.provider, self.user_email)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def contains(self, message_id: str) -> bool:
        return any(m.message_id == message_id for m in self.messages)

    def get_message(self, message_id: str) -> Optional[Message]:
        for m in self.messages:
            if m.message_id == message_id:
                return m
        return None

    def message_ids(self) -> list[str]:
        return [m.message_id for m in self.messages]

    def add_message(self, message: Message) -> bool:
        """Append a message, keeping participants and latest_timestamp in step.

        Returns False, and leaves the thread untouched, if the id is already present.
        Subject and classification are never changed here.
        """
        if self.contains(message.message_id):
            return False

        participants = message.participants()
        self.messages.append(message)
        self.participants |= participants
        if self.latest_timestamp is None or message.timestamp > self.latest_timestamp:
            self.latest_timestamp = message.timestamp
        return True

    def replace_message(self, message: Message) -> bool:
        """Swap in a new copy of an existing message (read flag, classification)."""
        for i, m in enumerate(self.messages):
            if m.message_id == message.message_id:
                self.messages[i] = message
                return True
        return False

    def invariant_violations(self) -> list[str]:
        problems: list[str] = []

        ids = self.message_ids()
        if len(ids) != len(set(ids)):
            problems.append(f"duplicate message ids in {self.key}")

        if self.messages:
            expected = max(m.timestamp for m in self.messages)
            if self.latest_timestamp != expected:
                problems.append(
                    f"latest_timestamp {self.latest_timestamp} != max message timestamp {expected}"
                )

        for m in self.messages:
            for addr in (m.normalized_sender, m.normalized_recipient):
                if addr and addr not in self.participants:
                    problems.append(f"{addr} from {m.message_id} missing from participants")

        return problems
