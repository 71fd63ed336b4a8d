"""HTTP surface tests against an in-memory container."""

import asyncio

import pytest
from factories import OWNER, FakeProvider, gmail_raw
from fastapi.testclient import TestClient

from threadsync.api.main import create_app
from threadsync.domain.errors import AuthError
from threadsync.infrastructure.container import ServiceContainer
from threadsync.infrastructure.settings import Settings

RAWS = [
    gmail_raw("m1", "t1", sender="a@x.com"),
    gmail_raw("m2", "t2", sender="b@x.com", subject="Second"),
]


def build_client(provider: FakeProvider) -> TestClient:
    settings = Settings(_env_file=None, storage_backend="memory")
    container = asyncio.run(ServiceContainer.create(settings, providers=[provider]))
    return TestClient(create_app(container))


@pytest.fixture
def client():
    with build_client(FakeProvider(RAWS)) as client:
        yield client


def sync(client, **body):
    return client.post("/providers/gmail/sync", json={"user_email": OWNER, **body})


def test_health_endpoints(client) -> None:
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/health/live").json()["status"] == "alive"

    ready = client.get("/health/ready").json()
    assert ready["status"] == "ready"
    assert ready["services"]["memory"] == "healthy"


def test_providers_lists_registered_adapters(client) -> None:
    assert client.get("/providers").json() == [{"name": "gmail"}]


def test_sync_returns_counts_and_records_status(client) -> None:
    response = sync(client, force_full=True)

    assert response.status_code == 200
    body = response.json()
    assert body["inserted_count"] == 2
    assert body["thread_count"] == 2
    assert body["result"]["mode"] == "full"

    status = client.get("/providers/gmail/sync-status", params={"user_email": OWNER}).json()
    assert status["state"] == "succeeded"


def test_unknown_provider_is_bad_request(client) -> None:
    response = client.post("/providers/yahoo/sync", json={"user_email": OWNER})

    assert response.status_code == 400
    assert "Unsupported email provider" in response.json()["detail"]


def test_sync_status_before_any_sync_is_not_found(client) -> None:
    response = client.get("/providers/gmail/sync-status", params={"user_email": OWNER})

    assert response.status_code == 404


def test_auth_failure_maps_to_401_with_reconnect_hint() -> None:
    provider = FakeProvider(RAWS, get_errors={"m2": AuthError("token revoked", status_code=401)})

    with build_client(provider) as client:
        response = sync(client)

    assert response.status_code == 401
    detail = response.json()["detail"]
    assert detail["action"] == "reconnect"
    assert detail["partial_result"]["inserted_count"] == 0


def test_list_threads_newest_first_with_paging(client) -> None:
    sync(client)

    body = client.get("/threads", params={"user_email": OWNER, "provider": "gmail", "limit": 1}).json()

    assert body["total"] == 2
    assert len(body["threads"]) == 1
    assert body["threads"][0]["message_count"] == 1


def test_thread_detail_and_read_and_archive(client) -> None:
    sync(client)
    params = {"user_email": OWNER}

    detail = client.get("/threads/gmail/t1", params=params).json()
    assert detail["unread_count"] == 1
    assert detail["messages"][0]["message_id"] == "m1"
    assert detail["participants"] == ["a@x.com", OWNER]

    read = client.post("/threads/gmail/t1/read", json={"user_email": OWNER})
    assert read.json() == {"updated": 1}
    assert client.get("/threads/gmail/t1", params=params).json()["unread_count"] == 0

    archived = client.post("/threads/gmail/t1/archive", json={"user_email": OWNER})
    assert archived.json() == {"thread_id": "t1", "archived": True}
    visible = client.get(
        "/threads", params={"user_email": OWNER, "provider": "gmail", "include_archived": False}
    ).json()
    assert [t["thread_id"] for t in visible["threads"]] == ["t2"]


def test_missing_thread_is_404(client) -> None:
    assert client.get("/threads/gmail/nope", params={"user_email": OWNER}).status_code == 404
    assert client.post("/threads/gmail/nope/archive", json={"user_email": OWNER}).status_code == 404
    assert client.post("/threads/gmail/nope/read", json={"user_email": OWNER}).status_code == 404
