"""Outbound webhook registry endpoints - register, list, delete and trigger."""

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.config import settings
from app.registry import WebhookRegistry, get_registry, trigger

logger = logging.getLogger(__name__)
router = APIRouter()


class RegisterRequest(BaseModel):
    url: str = Field(..., min_length=1)
    events: list[str] = Field(..., min_length=1)


class RegisterResponse(BaseModel):
    webhookId: str
    secret: str
    message: str = "Webhook registered successfully"


class WebhookInfo(BaseModel):
    id: str
    url: str
    events: list[str]


class TriggerRequest(BaseModel):
    event: str = Field(..., min_length=1)
    data: dict | list | str | int | float | bool


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.trigger_timeout)


@router.post("/webhooks/register", response_model=RegisterResponse, status_code=201)
async def register_webhook(body: RegisterRequest, registry: WebhookRegistry = Depends(get_registry)):
    """Subscribe a URL to events. The returned secret signs every delivery."""
    webhook_id, registration = registry.register(body.url, body.events)
    return RegisterResponse(webhookId=webhook_id, secret=registration.secret)


@router.get("/webhooks", response_model=list[WebhookInfo])
async def list_webhooks(registry: WebhookRegistry = Depends(get_registry)):
    """List registered webhooks (secrets are never returned)."""
    return [WebhookInfo(id=i, url=r.url, events=r.events) for i, r in registry.items()]


@router.delete("/webhooks/{webhook_id}")
async def delete_webhook(webhook_id: str, registry: WebhookRegistry = Depends(get_registry)):
    if not registry.remove(webhook_id):
        raise HTTPException(404, "Webhook not found")
    return {"message": "Webhook deleted successfully"}


@router.post("/trigger")
async def trigger_event(body: TriggerRequest, registry: WebhookRegistry = Depends(get_registry)):
    """Deliver an event to every webhook subscribed to it.

    Each delivery is a JSON POST signed with HMAC-SHA256 of the body
    (X-Webhook-Signature). Failed deliveries are reported, not raised.
    """
    async with _http_client() as client:
        results = await trigger(registry, body.event, body.data, client)
    logger.info(f"Triggered '{body.event}' on {len(results)} webhook(s)")
    return {"triggered": len(results), "results": results}
