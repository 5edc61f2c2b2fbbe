from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.stores import DocumentStore, get_store


router = APIRouter(tags=["health"])

_startup_time = datetime.now(timezone.utc)


class EndpointInfo(BaseModel):
    path: str
    description: str


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    store_backend: str
    endpoints: list[EndpointInfo]


ENDPOINTS = [
    EndpointInfo(path="/health", description="Gateway status and API directory"),
    EndpointInfo(path="/api/webhooks/{webhook_id}", description="Provider webhook dispatch (browseAI)"),
    EndpointInfo(path="/api/webhooks/status", description="Webhook service status"),
    EndpointInfo(path="/api/webhook", description="Raw webhook capture"),
    EndpointInfo(path="/api/webhooks", description="Outbound webhook registry"),
    EndpointInfo(path="/api/trigger", description="Deliver an event to registered webhooks"),
    EndpointInfo(path="/api/firestore", description="Captured document reads and deletes"),
]


@router.get("/health", response_model=HealthResponse)
async def health_check(store: DocumentStore = Depends(get_store)):
    uptime = (datetime.now(timezone.utc) - _startup_time).total_seconds()

    return HealthResponse(
        status="ok",
        version="0.1.0",
        uptime_seconds=round(uptime, 2),
        store_backend=store.backend_name,
        endpoints=ENDPOINTS,
    )
