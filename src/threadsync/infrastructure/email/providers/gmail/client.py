"""Gmail REST API adapter."""

from __future__ import annotations

from typing import Any, Optional

import httpx
from loguru import logger

from threadsync.application.ports.credential_provider import CredentialProvider
from threadsync.application.ports.email_provider import MessageListing, NormalizeResult, RawMessageRef
from threadsync.domain.models import SyncScope, SyncWindow
from threadsync.infrastructure.email.providers.gmail.mapper import PROVIDER, normalize_gmail_message
from threadsync.infrastructure.email.providers.http import ProviderHttp

DEFAULT_BASE_URL = "https://gmail.googleapis.com/gmail/v1"
MAX_PAGE_SIZE = 500


def build_query(window: SyncWindow) -> str:
    """Gmail search query for a sync window."""
    after = int(window.lower_bound.timestamp())
    if window.scope is SyncScope.BROAD:
        return f"after:{after} (in:inbox OR in:sent OR from:me OR to:me)"
    return f"after:{after} in:anywhere"


class GmailProvider:
    """Lists and fetches Gmail messages for one user token at a time."""

    name = PROVIDER

    def __init__(
        self,
        credentials: CredentialProvider,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.http = ProviderHttp(PROVIDER, base_url, credentials, timeout=timeout, transport=transport)

    async def list_messages(self, user_email: str, window: SyncWindow) -> MessageListing:
        """Page through every message in the window, up to ``window.max_pages`` pages."""
        query = build_query(window)
        refs: list[RawMessageRef] = []
        page_token: Optional[str] = None

        for _ in range(window.max_pages):
            params: dict[str, Any] = {
                "q": query,
                "maxResults": min(window.max_results, MAX_PAGE_SIZE),
            }
            if page_token:
                params["pageToken"] = page_token

            data = await self.http.get_json(user_email, "/users/me/messages", params=params)
            for item in data.get("messages") or ():
                refs.append(RawMessageRef(message_id=item.get("id"), thread_id=item.get("threadId")))

            page_token = data.get("nextPageToken")
            if not page_token:
                logger.debug(f"Gmail listed {len(refs)} messages for {user_email} with query {query!r}")
                return MessageListing(refs)

        logger.warning(
            f"Gmail listing for {user_email} stopped after {window.max_pages} pages "
            f"({len(refs)} messages) with more pages available"
        )
        return MessageListing(refs, truncated=True)

    async def get_message(self, user_email: str, ref: RawMessageRef) -> Optional[dict[str, Any]]:
        return await self.http.get_json(
            user_email,
            f"/users/me/messages/{ref.message_id}",
            params={"format": "full"},
            not_found_ok=True,
        )

    def normalize(self, raw: dict[str, Any], owner_email: str) -> NormalizeResult:
        return normalize_gmail_message(raw, owner_email)

    async def aclose(self) -> None:
        await self.http.aclose()
