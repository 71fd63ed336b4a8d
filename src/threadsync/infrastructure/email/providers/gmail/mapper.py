from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from threadsync.application.normalization import (
    decode_base64url,
    header_value,
    is_inbound,
    parse_epoch_millis,
    parse_rfc2822,
    pick_body,
    require_ids,
    skipped,
)
from threadsync.application.ports.email_provider import NormalizeResult
from threadsync.domain.entities.attachment import AttachmentMeta
from threadsync.domain.entities.message import Message
from threadsync.domain.errors import MalformedMessageError

PROVIDER = "gmail"
UNREAD_LABEL = "UNREAD"


def _walk_parts(part: Mapping[str, Any], found: dict[str, str], attachments: list[AttachmentMeta]) -> None:
    # First text/html and first text/plain win; parts with a filename are attachments
    mime_type = (part.get("mimeType") or "").lower()
    body = part.get("body") or {}
    filename = part.get("filename") or ""

    if filename:
        attachments.append(
            AttachmentMeta(filename=filename, mime_type=mime_type, size=int(body.get("size") or 0))
        )
    elif mime_type in ("text/html", "text/plain") and mime_type not in found and body.get("data"):
        found[mime_type] = decode_base64url(body["data"])

    for child in part.get("parts") or ():
        _walk_parts(child, found, attachments)


def _timestamp(raw: Mapping[str, Any], headers) -> datetime:
    # internalDate is when Gmail received it; the Date header is sender-controlled
    return (
        parse_epoch_millis(raw.get("internalDate"))
        or parse_rfc2822(header_value(headers, "Date"))
        or datetime.now(timezone.utc)
    )


def gmail_to_message(raw: Mapping[str, Any], owner_email: str) -> Message:
    """Map a users.messages.get (format=full) payload to a Message.

    Raises:
        MalformedMessageError: id or threadId missing
    """
    message_id, thread_id = require_ids(raw.get("id"), raw.get("threadId"))

    payload = raw.get("payload") or {}
    headers = payload.get("headers") or []

    found: dict[str, str] = {}
    attachments: list[AttachmentMeta] = []
    _walk_parts(payload, found, attachments)

    snippet = raw.get("snippet") or ""
    body, body_type = pick_body(found.get("text/html", ""), found.get("text/plain", ""), snippet)
    sender = header_value(headers, "From")

    return Message(
        message_id=message_id,
        thread_id=thread_id,
        sender=sender,
        recipient=header_value(headers, "To"),
        subject=header_value(headers, "Subject"),
        body=body,
        body_type=body_type,
        snippet=snippet,
        timestamp=_timestamp(raw, headers),
        is_inbound=is_inbound(sender, owner_email),
        is_read=UNREAD_LABEL not in (raw.get("labelIds") or ()),
        attachments=tuple(attachments),
    )


def normalize_gmail_message(raw: Mapping[str, Any], owner_email: str) -> NormalizeResult:
    try:
        return gmail_to_message(raw, owner_email)
    except MalformedMessageError as e:
        return skipped(PROVIDER, e, raw)
