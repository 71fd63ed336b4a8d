from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class AttachmentMeta:
    # Metadata only; bytes stay with the provider
    filename: str
    mime_type: str
    size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"filename": self.filename, "mime_type": self.mime_type, "size": self.size}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AttachmentMeta:
        return cls(
            filename=str(data.get("filename") or ""),
            mime_type=str(data.get("mime_type") or "application/octet-stream"),
            size=int(data.get("size") or 0),
        )
