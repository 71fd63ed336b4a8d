from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Optional

from threadsync.domain.addresses import normalize_address, participant_addresses
from threadsync.domain.classification import MessageClassification
from threadsync.domain.entities.attachment import AttachmentMeta

BodyType = Literal["html", "text", "snippet"]


@dataclass(frozen=True)
class Message:
    message_id: str
    thread_id: str
    sender: str
    recipient: str
    subject: str
    body: str
    body_type: BodyType
    timestamp: datetime
    is_inbound: bool
    is_read: bool = False
    snippet: str = ""
    attachments: tuple[AttachmentMeta, ...] = ()
    classification: Optional[MessageClassification] = None

    def __post_init__(self) -> None:
        # Naive timestamps are taken as UTC so max() comparisons never mix kinds
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))

    @property
    def normalized_sender(self) -> str:
        return normalize_address(self.sender)

    @property
    def normalized_recipient(self) -> str:
        return normalize_address(self.recipient)

    def participants(self) -> set[str]:
        return participant_addresses(self.sender, self.recipient)

    def with_read(self, is_read: bool) -> Message:
        return replace(self, is_read=is_read)

    def with_classification(self, classification: Optional[MessageClassification]) -> Message:
        return replace(self, classification=classification)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "thread_id": self.thread_id,
            "sender": self.sender,
            "recipient": self.recipient,
            "subject": self.subject,
            "body": self.body,
            "body_type": self.body_type,
            "snippet": self.snippet,
            "timestamp": self.timestamp.isoformat(),
            "is_inbound": self.is_inbound,
            "is_read": self.is_read,
            "attachments": [a.to_dict() for a in self.attachments],
            "classification": self.classification.to_dict() if self.classification else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        ts = data["timestamp"]
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)
        classification = data.get("classification")
        return cls(
            message_id=data["message_id"],
            thread_id=data["thread_id"],
            sender=data.get("sender") or "",
            recipient=data.get("recipient") or "",
            subject=data.get("subject") or "",
            body=data.get("body") or "",
            body_type=data.get("body_type") or "snippet",
            snippet=data.get("snippet") or "",
            timestamp=ts,
            is_inbound=bool(data.get("is_inbound")),
            is_read=bool(data.get("is_read")),
            attachments=tuple(AttachmentMeta.from_dict(a) for a in data.get("attachments") or ()),
            classification=MessageClassification.from_dict(classification) if classification else None,
        )
