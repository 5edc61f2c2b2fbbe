"""Capture Gateway - FastAPI application entry point."""

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.dependencies import verify_api_key
from app.errors import StoreError
from app.registry import WebhookRegistry
from app.routers import documents, health, registry, webhooks

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Capture Gateway",
    description="Browse AI webhook ingestion into per-site Firestore documents",
    version="0.1.0",
    debug=settings.debug,
)

# Outbound webhook subscriptions, injected into routes via get_registry
app.state.registry = WebhookRegistry()

# Rate limiting
app.state.limiter = webhooks.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse({"success": False, "error": str(exc)}, status_code=500)


app.add_exception_handler(StoreError, _store_error_handler)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"[INCOMING REQUEST] {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"[REQUEST DONE] {request.method} {request.url.path} with status {response.status_code}")
    return response


# Routers (health and inbound webhooks are public; admin and registry require
# the API key when API_KEY is set). The registry router goes first so its
# fixed /api/webhooks/register path wins over /api/webhooks/{webhook_id}.
app.include_router(health.router)
app.include_router(
    registry.router, prefix="/api", tags=["registry"], dependencies=[Depends(verify_api_key)]
)
app.include_router(webhooks.router, prefix="/api", tags=["webhooks"])
app.include_router(
    documents.router,
    prefix="/api/firestore",
    tags=["documents"],
    dependencies=[Depends(verify_api_key)],
)
