"""Webhook ingestion endpoints - Browse AI dispatch, raw capture and service status."""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.capture import convert_timestamps
from app.config import settings
from app.errors import PayloadError
from app.ingest import IngestResult, ingest_browse_ai
from app.stores import DocumentStore, get_store

logger = logging.getLogger(__name__)
router = APIRouter()

limiter = Limiter(key_func=get_remote_address)

VERSION = "0.1.0"
_startup_time = datetime.now(timezone.utc)


async def _browse_ai(body, store: DocumentStore) -> IngestResult:
    return await ingest_browse_ai(
        body,
        store,
        require_task_id=settings.require_task_id,
        event_sites=settings.event_date_sites,
    )


# webhook_id path segment -> handler
_HANDLERS: dict[str, Callable[..., Awaitable[IngestResult]]] = {
    "browseAI": _browse_ai,
}


def _format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    return f"{days}d {hours}h {minutes}m {seconds}s"


@router.get("/webhooks/status")
async def webhook_status():
    """Report that the webhook service is up, with its uptime."""
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "message": "Webhook service is running",
        "timestamp": now.isoformat(),
        "uptime": _format_uptime((now - _startup_time).total_seconds()),
        "version": VERSION,
        "environment": settings.environment,
    }


@router.post("/webhooks/{webhook_id}", response_model=IngestResult)
@limiter.limit(settings.webhook_rate_limit)
async def dispatch_webhook(
    request: Request, webhook_id: str, store: DocumentStore = Depends(get_store)
):
    """Process an incoming provider webhook, e.g. POST /api/webhooks/browseAI."""
    logger.info(f"[Webhook] Incoming request for '{webhook_id}'")

    handler = _HANDLERS.get(webhook_id)
    if handler is None:
        return JSONResponse(
            {"success": False, "error": f"Webhook handler not found for: {webhook_id}"},
            status_code=404,
        )

    try:
        body = await request.json()
    except ValueError:
        logger.warning(f"[Webhook] '{webhook_id}' body is not valid JSON")
        body = None

    try:
        return await handler(body, store)
    except PayloadError as e:
        return JSONResponse({"success": False, "error": str(e)}, status_code=400)
    except Exception as e:
        logger.exception(f"[Webhook] '{webhook_id}' processing failed")
        return JSONResponse(
            {"success": False, "error": str(e) or f"Error processing {webhook_id} webhook data"},
            status_code=500,
        )


@router.post("/webhook")
async def capture_raw(request: Request, store: DocumentStore = Depends(get_store)):
    """Store any JSON body as-is alongside request metadata.

    The target collection comes from the X-Webhook-Type header (default 'webhooks').
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"success": False, "error": "Body must be JSON"}, status_code=400)

    received_at = datetime.now(timezone.utc)
    collection = request.headers.get("x-webhook-type") or "webhooks"
    document = {
        "raw": body,
        "metadata": {
            "receivedAt": received_at,
            "source": request.headers.get("user-agent", "unknown"),
            "ipAddress": request.client.host if request.client else None,
            "contentType": request.headers.get("content-type"),
            "endpoint": "/api/webhook",
        },
        "processed": convert_timestamps(body),
    }

    doc_id = await store.add(collection, document)
    logger.info(f"Stored raw webhook as {collection}/{doc_id}")

    return {
        "success": True,
        "data": document,
        "meta": {
            "id": doc_id,
            "collection": collection,
            "processedAt": received_at.isoformat(),
            "path": f"{collection}/{doc_id}",
        },
    }
