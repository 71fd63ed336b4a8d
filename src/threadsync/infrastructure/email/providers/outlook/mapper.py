from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from threadsync.application.normalization import (
    is_inbound,
    parse_iso,
    pick_body,
    require_ids,
    skipped,
)
from threadsync.application.ports.email_provider import NormalizeResult
from threadsync.domain.entities.attachment import AttachmentMeta
from threadsync.domain.entities.message import Message
from threadsync.domain.errors import MalformedMessageError

PROVIDER = "outlook"


def _format_address(recipient: Mapping[str, Any] | None) -> str:
    email = ((recipient or {}).get("emailAddress") or {})
    address = (email.get("address") or "").strip()
    name = (email.get("name") or "").strip()
    if name and address and name.lower() != address.lower():
        return f"{name} <{address}>"
    return address


def outlook_to_message(raw: Mapping[str, Any], owner_email: str) -> Message:
    """Map a Graph message resource to a Message.

    Raises:
        MalformedMessageError: id or conversationId missing
    """
    message_id, thread_id = require_ids(raw.get("id"), raw.get("conversationId"))

    body = raw.get("body") or {}
    content = body.get("content") or ""
    content_type = (body.get("contentType") or "").lower()
    snippet = raw.get("bodyPreview") or ""
    html = content if content_type == "html" else ""
    text = content if content_type == "text" else ""
    picked, body_type = pick_body(html, text, snippet)

    sender = _format_address(raw.get("from") or raw.get("sender"))
    recipient = ", ".join(a for a in (_format_address(r) for r in raw.get("toRecipients") or ()) if a)

    attachments = tuple(
        AttachmentMeta(
            filename=a.get("name") or "",
            mime_type=a.get("contentType") or "",
            size=int(a.get("size") or 0),
        )
        for a in raw.get("attachments") or ()
    )

    return Message(
        message_id=message_id,
        thread_id=thread_id,
        sender=sender,
        recipient=recipient,
        subject=raw.get("subject") or "",
        body=picked,
        body_type=body_type,
        snippet=snippet,
        timestamp=parse_iso(raw.get("receivedDateTime"))
        or parse_iso(raw.get("sentDateTime"))
        or datetime.now(timezone.utc),
        is_inbound=is_inbound(sender, owner_email),
        is_read=bool(raw.get("isRead")),
        attachments=attachments,
    )


def normalize_outlook_message(raw: Mapping[str, Any], owner_email: str) -> NormalizeResult:
    try:
        return outlook_to_message(raw, owner_email)
    except MalformedMessageError as e:
        return skipped(PROVIDER, e, raw)
