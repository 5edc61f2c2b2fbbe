"""Shared route dependencies."""

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from app.config import settings

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str | None = Security(_api_key_header)) -> None:
    """Require X-API-Key when API_KEY is configured; no-op otherwise."""
    if not settings.api_key:
        return
    if api_key != settings.api_key:
        raise HTTPException(401, "Invalid or missing API key")
