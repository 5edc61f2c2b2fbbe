"""Outbound webhook registry - subscriptions and signed event delivery."""

import asyncio
import hashlib
import hmac
import json
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx
from fastapi import Request

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


@dataclass
class Registration:
    url: str
    events: list[str]
    secret: str = field(default_factory=lambda: secrets.token_hex(32))


class WebhookRegistry:
    """Registered outbound webhooks, keyed by id. One instance per application."""

    def __init__(self):
        self._hooks: dict[str, Registration] = {}

    def __len__(self) -> int:
        return len(self._hooks)

    def register(self, url: str, events: list[str]) -> tuple[str, Registration]:
        webhook_id = str(uuid.uuid4())
        registration = Registration(url=url, events=list(events))
        self._hooks[webhook_id] = registration
        logger.info(f"Registered webhook {webhook_id} -> {url} for {events}")
        return webhook_id, registration

    def items(self) -> list[tuple[str, Registration]]:
        return list(self._hooks.items())

    def remove(self, webhook_id: str) -> bool:
        return self._hooks.pop(webhook_id, None) is not None

    def subscribers(self, event: str) -> list[tuple[str, Registration]]:
        return [(i, r) for i, r in self._hooks.items() if event in r.events]


def sign(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


async def _deliver(
    client: httpx.AsyncClient, webhook_id: str, registration: Registration, event: str, data
) -> dict:
    payload = {
        "event": event,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "webhookId": webhook_id,
    }
    body = json.dumps(payload).encode("utf-8")
    try:
        response = await client.post(
            registration.url,
            content=body,
            headers={
                "Content-Type": "application/json",
                SIGNATURE_HEADER: sign(registration.secret, body),
            },
        )
    except httpx.HTTPError as e:
        logger.warning(f"Delivery of '{event}' to webhook {webhook_id} failed: {e}")
        return {"webhookId": webhook_id, "status": 500, "success": False, "error": str(e)}

    return {
        "webhookId": webhook_id,
        "status": response.status_code,
        "success": response.is_success,
    }


async def trigger(
    registry: WebhookRegistry, event: str, data, client: httpx.AsyncClient
) -> list[dict]:
    """POST ``event`` to every subscriber concurrently; one result per subscriber."""
    targets = registry.subscribers(event)
    return list(
        await asyncio.gather(*(_deliver(client, i, r, event, data) for i, r in targets))
    )


def get_registry(request: Request) -> WebhookRegistry:
    """FastAPI dependency returning the application's registry."""
    return request.app.state.registry
