"""Helpers shared by the per-provider message normalizers."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Mapping, Optional

from loguru import logger

from threadsync.application.ports.email_provider import Skipped
from threadsync.domain.addresses import normalize_address
from threadsync.domain.entities.message import BodyType
from threadsync.domain.errors import MalformedMessageError


def header_value(headers: Iterable[Mapping[str, Any]] | None, name: str) -> str:
    """Case-insensitive lookup in a [{name, value}] header list. Missing → ""."""
    wanted = name.lower()
    for header in headers or ():
        if str(header.get("name", "")).lower() == wanted:
            return str(header.get("value") or "")
    return ""


def decode_base64url(data: str) -> str:
    """Decode URL-safe base64 (padding optional) into text."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Could not decode body part: {e}")
        return ""


def pick_body(html: str, text: str, snippet: str) -> tuple[str, BodyType]:
    """Prefer HTML, then plain text, then the provider snippet."""
    if html:
        return html, "html"
    if text:
        return text, "text"
    return snippet or "", "snippet"


def is_inbound(sender: str, owner_email: str) -> bool:
    return normalize_address(sender) != normalize_address(owner_email)


def require_ids(message_id: Optional[str], thread_id: Optional[str]) -> tuple[str, str]:
    if not message_id:
        raise MalformedMessageError(f"missing messageId (threadId={thread_id!r})")
    if not thread_id:
        raise MalformedMessageError(f"missing threadId (messageId={message_id!r})")
    return message_id, thread_id


def skipped(provider: str, error: MalformedMessageError, raw: Mapping[str, Any]) -> Skipped:
    logger.warning(f"Skipping malformed {provider} message: {error}")
    return Skipped(
        reason=str(error),
        message_id=raw.get("id") or None,
        thread_id=raw.get("threadId") or raw.get("conversationId") or None,
    )


def parse_epoch_millis(value: Any) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_rfc2822(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
