"""Tests for the Microsoft Graph mapper and adapter."""

import httpx
import pytest
from factories import OWNER, T0

from threadsync.application.ports.email_provider import RawMessageRef, Skipped
from threadsync.domain.errors import AuthError, TransientProviderError
from threadsync.domain.models import SyncMode, SyncScope, SyncWindow
from threadsync.infrastructure.credentials import StaticCredentialProvider
from threadsync.infrastructure.email.providers.outlook.client import OutlookProvider, build_filter
from threadsync.infrastructure.email.providers.outlook.mapper import (
    normalize_outlook_message,
    outlook_to_message,
)

BASE_URL = "https://graph.test/v1.0"
WINDOW = SyncWindow(mode=SyncMode.POLLING, lower_bound=T0, scope=SyncScope.ALL_FOLDERS, max_results=250)


def graph_message(message_id="AAk1", conversation_id="conv-1", **overrides):
    raw = {
        "id": message_id,
        "conversationId": conversation_id,
        "subject": "Quarterly numbers",
        "from": {"emailAddress": {"name": "Alice", "address": "alice@x.com"}},
        "toRecipients": [
            {"emailAddress": {"name": "Me", "address": OWNER}},
            {"emailAddress": {"address": "bob@x.com"}},
        ],
        "body": {"contentType": "html", "content": "<p>numbers</p>"},
        "bodyPreview": "numbers",
        "receivedDateTime": "2024-05-01T12:00:00Z",
        "isRead": False,
    }
    raw.update(overrides)
    return raw


def make_provider(handler) -> OutlookProvider:
    credentials = StaticCredentialProvider({f"outlook:{OWNER}": "graph-token"})
    return OutlookProvider(credentials, base_url=BASE_URL, transport=httpx.MockTransport(handler))


def test_mapper_builds_message_with_recipients() -> None:
    message = outlook_to_message(graph_message(), OWNER)

    assert message.message_id == "AAk1"
    assert message.thread_id == "conv-1"
    assert message.sender == "Alice <alice@x.com>"
    assert message.recipient == f"Me <{OWNER}>, bob@x.com"
    assert message.body_type == "html"
    assert message.timestamp == T0
    assert message.is_inbound is True
    assert message.is_read is False


def test_mapper_text_body_and_sent_time_fallback() -> None:
    raw = graph_message(body={"contentType": "text", "content": "plain"}, receivedDateTime=None)
    raw["sentDateTime"] = "2024-05-01T12:00:00Z"

    message = outlook_to_message(raw, OWNER)

    assert (message.body, message.body_type) == ("plain", "text")
    assert message.timestamp == T0


def test_mapper_reads_expanded_attachments() -> None:
    raw = graph_message(attachments=[{"name": "deck.pptx", "contentType": "application/vnd.ms-powerpoint", "size": 99}])

    message = outlook_to_message(raw, OWNER)

    assert message.attachments[0].filename == "deck.pptx"
    assert message.attachments[0].size == 99


def test_missing_conversation_id_is_skipped() -> None:
    result = normalize_outlook_message(graph_message(conversation_id=None), OWNER)

    assert isinstance(result, Skipped)
    assert result.message_id == "AAk1"


def test_build_filter_uses_utc_timestamp() -> None:
    assert build_filter(WINDOW) == "receivedDateTime ge 2024-05-01T12:00:00Z"


@pytest.mark.asyncio
async def test_list_messages_follows_next_link() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if "skiptoken" in str(request.url):
            return httpx.Response(200, json={"value": [{"id": "m3", "conversationId": "c2"}]})
        return httpx.Response(
            200,
            json={
                "value": [{"id": "m1", "conversationId": "c1"}, {"id": "m2", "conversationId": "c1"}],
                "@odata.nextLink": f"{BASE_URL}/me/messages?$skiptoken=abc",
            },
        )

    listing = await make_provider(handler).list_messages(OWNER, WINDOW)

    assert [(r.message_id, r.thread_id) for r in listing.refs] == [("m1", "c1"), ("m2", "c1"), ("m3", "c2")]
    assert listing.truncated is False
    assert seen[0].url.path == "/v1.0/me/messages"
    assert seen[0].url.params["$filter"] == build_filter(WINDOW)
    assert seen[0].headers["Authorization"] == "Bearer graph-token"


@pytest.mark.asyncio
async def test_broad_scope_reads_inbox_and_sent_without_duplicates() -> None:
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if "/inbox/" in request.url.path:
            return httpx.Response(200, json={"value": [{"id": "m1", "conversationId": "c1"}]})
        return httpx.Response(
            200,
            json={"value": [{"id": "m1", "conversationId": "c1"}, {"id": "m2", "conversationId": "c1"}]},
        )

    window = WINDOW.model_copy(update={"scope": SyncScope.BROAD})
    listing = await make_provider(handler).list_messages(OWNER, window)

    assert paths == ["/v1.0/me/mailFolders/inbox/messages", "/v1.0/me/mailFolders/sentitems/messages"]
    assert [r.message_id for r in listing.refs] == ["m1", "m2"]


@pytest.mark.asyncio
async def test_broad_scope_reads_sent_items_after_a_capped_inbox() -> None:
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if "/inbox/" in request.url.path:
            return httpx.Response(
                200,
                json={
                    "value": [{"id": f"in-{len(paths)}", "conversationId": "c1"}],
                    "@odata.nextLink": f"{BASE_URL}/me/mailFolders/inbox/messages?$skiptoken=more",
                },
            )
        return httpx.Response(200, json={"value": [{"id": "sent-1", "conversationId": "c2"}]})

    window = WINDOW.model_copy(update={"scope": SyncScope.BROAD, "max_results": 1, "max_pages": 2})
    listing = await make_provider(handler).list_messages(OWNER, window)

    assert listing.truncated is True
    assert paths.count("/v1.0/me/mailFolders/inbox/messages") == 2
    assert paths[-1] == "/v1.0/me/mailFolders/sentitems/messages"
    assert [r.message_id for r in listing.refs] == ["in-1", "in-2", "sent-1"]


@pytest.mark.asyncio
async def test_get_message_expands_attachments_and_tolerates_404() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/missing"):
            return httpx.Response(404, json={"error": {"code": "ErrorItemNotFound"}})
        assert "attachments" in request.url.params["$expand"]
        return httpx.Response(200, json=graph_message())

    provider = make_provider(handler)

    raw = await provider.get_message(OWNER, RawMessageRef("AAk1", "conv-1"))
    assert provider.normalize(raw, OWNER).subject == "Quarterly numbers"
    assert await provider.get_message(OWNER, RawMessageRef("missing", "conv-1")) is None


@pytest.mark.asyncio
async def test_expired_token_is_auth_error() -> None:
    provider = make_provider(lambda request: httpx.Response(401, json={"error": {"code": "InvalidAuthenticationToken"}}))

    with pytest.raises(AuthError):
        await provider.list_messages(OWNER, WINDOW)


@pytest.mark.asyncio
async def test_throttled_403_is_transient() -> None:
    provider = make_provider(
        lambda request: httpx.Response(403, json={"error": {"code": "ApplicationThrottled"}})
    )

    with pytest.raises(TransientProviderError):
        await provider.list_messages(OWNER, WINDOW)


@pytest.mark.asyncio
async def test_timeout_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransientProviderError):
        await make_provider(handler).list_messages(OWNER, WINDOW)
