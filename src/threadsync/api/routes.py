"""
API routes for the Threadsync service.

Sync triggers, sync status and the thread read surface.
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel, Field

from threadsync.domain.entities.message import Message
from threadsync.domain.entities.thread import Thread
from threadsync.domain.errors import (
    AuthError,
    ProviderError,
    ThreadNotFoundError,
    ThreadStoreError,
    TransientProviderError,
    UnsupportedProviderError,
)
from threadsync.domain.models import SyncOptions, SyncResult, SyncStatus, SyncTrigger
from threadsync.infrastructure.container import ServiceContainer

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response with service status."""

    status: str
    timestamp: str
    services: dict[str, str]


class SyncRequest(BaseModel):
    """Request body for a sync trigger."""

    user_email: str = Field(..., min_length=3, description="Mailbox owner")
    days: int | None = Field(None, ge=1, le=365, description="Full sync look-back in days")
    force_full: bool = Field(False, description="Full sync over all folders")
    polling: bool = Field(False, description="Lightweight adaptive-window sync")
    trigger: SyncTrigger = Field(SyncTrigger.MANUAL, description="Who started the sync")


class SyncResponse(BaseModel):
    """Counts from a completed sync cycle."""

    inserted_count: int
    thread_count: int
    result: SyncResult


class ArchiveRequest(BaseModel):
    user_email: str
    archived: bool = True


class MarkReadRequest(BaseModel):
    user_email: str
    message_id: str | None = Field(None, description="Single message; omit for the whole thread")


class MarkReadResponse(BaseModel):
    updated: int


class MessageOut(BaseModel):
    message_id: str
    sender: str
    recipient: str
    subject: str
    body: str
    body_type: str
    snippet: str
    timestamp: datetime
    is_inbound: bool
    is_read: bool
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    classification: dict[str, Any] | None = None


class ThreadSummary(BaseModel):
    thread_id: str
    provider: str
    user_email: str
    subject: str
    participants: list[str]
    latest_timestamp: datetime | None
    message_count: int
    unread_count: int
    is_archived: bool
    classification: dict[str, Any] | None = None


class ThreadDetail(ThreadSummary):
    messages: list[MessageOut]


class ThreadListResponse(BaseModel):
    threads: list[ThreadSummary]
    total: int
    limit: int
    offset: int


class ProviderInfo(BaseModel):
    name: str


# ============================================================================
# Helpers
# ============================================================================


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return container


def _message_out(message: Message) -> MessageOut:
    return MessageOut(
        message_id=message.message_id,
        sender=message.sender,
        recipient=message.recipient,
        subject=message.subject,
        body=message.body,
        body_type=message.body_type,
        snippet=message.snippet,
        timestamp=message.timestamp,
        is_inbound=message.is_inbound,
        is_read=message.is_read,
        attachments=[a.to_dict() for a in message.attachments],
        classification=message.classification.to_dict() if message.classification else None,
    )


def _summary_fields(thread: Thread) -> dict[str, Any]:
    return {
        "thread_id": thread.thread_id,
        "provider": thread.provider,
        "user_email": thread.user_email,
        "subject": thread.subject,
        "participants": sorted(thread.participants),
        "latest_timestamp": thread.latest_timestamp,
        "message_count": len(thread),
        "unread_count": sum(1 for m in thread if not m.is_read),
        "is_archived": thread.is_archived,
        "classification": thread.classification.to_dict() if thread.classification else None,
    }


def _provider_error(e: ProviderError) -> HTTPException:
    if isinstance(e, AuthError):
        status_code = 401
    elif isinstance(e, TransientProviderError):
        status_code = 503
    else:
        status_code = 502

    detail: dict[str, Any] = {"error": type(e).__name__, "message": str(e)}
    if isinstance(e, AuthError):
        detail["action"] = "reconnect"
    if e.partial_result is not None:
        detail["partial_result"] = e.partial_result.model_dump(mode="json")
    return HTTPException(status_code=status_code, detail=detail)


def _store_unavailable(e: ThreadStoreError) -> HTTPException:
    logger.error(f"Thread store unavailable: {e}")
    return HTTPException(status_code=503, detail="Thread store unavailable")


# ============================================================================
# Health Endpoints
# ============================================================================


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(request: Request) -> HealthResponse:
    """Basic health check endpoint."""
    container = get_container(request)
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=container.settings.app_version,
    )


@router.get("/health/ready", response_model=ReadinessResponse, tags=["health"])
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness check with storage connectivity status."""
    container = get_container(request)
    services: dict[str, str] = {}

    try:
        health = await container.health()
        services[health.get("backend", "storage")] = health.get("status", "unknown")
    except Exception as e:
        logger.warning(f"Storage health check failed: {e}")
        services["storage"] = f"error: {str(e)[:50]}"

    services["providers"] = ",".join(container.registry.names()) or "none"

    status = "ready" if all(v == "healthy" for k, v in services.items() if k != "providers") else "degraded"
    return ReadinessResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        services=services,
    )


@router.get("/health/live", tags=["health"])
async def liveness_check() -> dict[str, str]:
    """Liveness check - is the process running?"""
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


# ============================================================================
# Sync Endpoints
# ============================================================================


@router.get("/providers", response_model=list[ProviderInfo], tags=["sync"])
async def list_providers(request: Request) -> list[ProviderInfo]:
    """Providers with a registered adapter."""
    return [ProviderInfo(name=name) for name in get_container(request).registry.names()]


@router.post("/providers/{provider}/sync", response_model=SyncResponse, tags=["sync"])
async def sync_provider(provider: str, body: SyncRequest, request: Request) -> SyncResponse:
    """Run one sync cycle and report what was stored."""
    container = get_container(request)
    options = SyncOptions(
        days=body.days,
        force_full=body.force_full,
        polling=body.polling,
        trigger=body.trigger,
    )

    try:
        result = await container.sync.sync_emails(body.user_email, provider, options)
    except UnsupportedProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.warning(f"Sync for {body.user_email} ({provider}) failed: {e}")
        raise _provider_error(e)
    except Exception as e:
        logger.exception(f"Error syncing {body.user_email} ({provider}): {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return SyncResponse(
        inserted_count=result.inserted_count,
        thread_count=result.thread_count,
        result=result,
    )


@router.get("/providers/{provider}/sync-status", response_model=SyncStatus, tags=["sync"])
async def sync_status(provider: str, request: Request, user_email: str = Query(...)) -> SyncStatus:
    """Last recorded sync status. Display only."""
    container = get_container(request)
    if provider.lower() not in container.registry:
        raise HTTPException(status_code=400, detail=f"Unsupported email provider: {provider}")

    try:
        status = await container.statuses.get(user_email, provider)
    except ThreadStoreError as e:
        raise _store_unavailable(e)
    if status is None:
        raise HTTPException(status_code=404, detail=f"No sync recorded for {user_email} on {provider}")
    return status


# ============================================================================
# Thread Endpoints
# ============================================================================


@router.get("/threads", response_model=ThreadListResponse, tags=["threads"])
async def list_threads(
    request: Request,
    user_email: str = Query(...),
    provider: str = Query(...),
    include_archived: bool = Query(True),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> ThreadListResponse:
    """Threads for a mailbox, most recent activity first."""
    container = get_container(request)
    try:
        threads, total = await container.threads.list_threads(
            provider, user_email, include_archived=include_archived, limit=limit, offset=offset
        )
    except ThreadStoreError as e:
        raise _store_unavailable(e)

    return ThreadListResponse(
        threads=[ThreadSummary(**_summary_fields(t)) for t in threads],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/threads/{provider}/{thread_id}", response_model=ThreadDetail, tags=["threads"])
async def get_thread(
    provider: str, thread_id: str, request: Request, user_email: str = Query(...)
) -> ThreadDetail:
    container = get_container(request)
    try:
        thread = await container.threads.get_thread(thread_id, provider, user_email)
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ThreadStoreError as e:
        raise _store_unavailable(e)

    return ThreadDetail(**_summary_fields(thread), messages=[_message_out(m) for m in thread])


@router.post("/threads/{provider}/{thread_id}/archive", tags=["threads"])
async def archive_thread(
    provider: str, thread_id: str, body: ArchiveRequest, request: Request
) -> dict[str, Any]:
    container = get_container(request)
    try:
        await container.threads.set_archived(thread_id, provider, body.user_email, body.archived)
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ThreadStoreError as e:
        raise _store_unavailable(e)
    return {"thread_id": thread_id, "archived": body.archived}


@router.post("/threads/{provider}/{thread_id}/read", response_model=MarkReadResponse, tags=["threads"])
async def mark_thread_read(
    provider: str, thread_id: str, body: MarkReadRequest, request: Request
) -> MarkReadResponse:
    container = get_container(request)
    try:
        updated = await container.threads.mark_read(thread_id, provider, body.user_email, body.message_id)
    except ThreadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ThreadStoreError as e:
        raise _store_unavailable(e)
    return MarkReadResponse(updated=updated)
