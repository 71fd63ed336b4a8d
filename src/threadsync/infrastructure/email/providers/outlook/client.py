"""Microsoft Graph mail adapter."""

from __future__ import annotations

from typing import Any, Optional

import httpx
from loguru import logger

from threadsync.application.ports.credential_provider import CredentialProvider
from threadsync.application.ports.email_provider import MessageListing, NormalizeResult, RawMessageRef
from threadsync.domain.models import SyncScope, SyncWindow
from threadsync.infrastructure.email.providers.http import ProviderHttp
from threadsync.infrastructure.email.providers.outlook.mapper import PROVIDER, normalize_outlook_message

DEFAULT_BASE_URL = "https://graph.microsoft.com/v1.0"
MAX_PAGE_SIZE = 100
BROAD_FOLDERS = ("inbox", "sentitems")
MESSAGE_FIELDS = (
    "id,conversationId,subject,from,sender,toRecipients,body,bodyPreview,"
    "receivedDateTime,sentDateTime,isRead,hasAttachments"
)


def build_filter(window: SyncWindow) -> str:
    since = window.lower_bound.strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"receivedDateTime ge {since}"


class OutlookProvider:
    """Lists and fetches Outlook messages through Microsoft Graph."""

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
        """List every folder in scope; each folder gets its own ``window.max_pages`` page cap."""
        if window.scope is SyncScope.BROAD:
            paths = [f"/me/mailFolders/{folder}/messages" for folder in BROAD_FOLDERS]
        else:
            paths = ["/me/messages"]

        refs: list[RawMessageRef] = []
        seen: set[str] = set()
        truncated = False
        for path in paths:
            path_refs, path_truncated = await self._list_path(user_email, path, window)
            truncated = truncated or path_truncated
            for ref in path_refs:
                if ref.message_id and ref.message_id in seen:
                    continue
                if ref.message_id:
                    seen.add(ref.message_id)
                refs.append(ref)

        logger.debug(f"Outlook listed {len(refs)} messages for {user_email} since {window.lower_bound}")
        return MessageListing(refs, truncated=truncated)

    async def _list_path(
        self, user_email: str, path: str, window: SyncWindow
    ) -> tuple[list[RawMessageRef], bool]:
        refs: list[RawMessageRef] = []
        url: Optional[str] = path
        params: Optional[dict[str, Any]] = {
            "$filter": build_filter(window),
            "$orderby": "receivedDateTime desc",
            "$select": "id,conversationId",
            "$top": min(window.max_results, MAX_PAGE_SIZE),
        }

        for _ in range(window.max_pages):
            data = await self.http.get_json(user_email, url, params=params)
            for item in data.get("value") or ():
                refs.append(RawMessageRef(message_id=item.get("id"), thread_id=item.get("conversationId")))
            # nextLink is an absolute URL carrying its own query
            url = data.get("@odata.nextLink")
            params = None
            if not url:
                return refs, False

        logger.warning(
            f"Outlook listing of {path} for {user_email} stopped after {window.max_pages} pages "
            f"({len(refs)} messages) with more pages available"
        )
        return refs, True

    async def get_message(self, user_email: str, ref: RawMessageRef) -> Optional[dict[str, Any]]:
        return await self.http.get_json(
            user_email,
            f"/me/messages/{ref.message_id}",
            params={
                "$select": MESSAGE_FIELDS,
                "$expand": "attachments($select=name,contentType,size)",
            },
            not_found_ok=True,
        )

    def normalize(self, raw: dict[str, Any], owner_email: str) -> NormalizeResult:
        return normalize_outlook_message(raw, owner_email)

    async def aclose(self) -> None:
        await self.http.aclose()
