"""Shared fixtures: in-process store, fresh registry and a TestClient per test."""

from __future__ import annotations

import os

# Settings are read at import time; never touch Firestore or require a key in tests
os.environ["STORE_BACKEND"] = "memory"
os.environ["API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

from app.registry import WebhookRegistry
from app.stores import MemoryStore, get_store


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def app(store):
    from app.main import app as fastapi_app
    from app.routers import webhooks

    fastapi_app.dependency_overrides[get_store] = lambda: store
    fastapi_app.state.registry = WebhookRegistry()
    webhooks.limiter.enabled = False
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.clear()
        webhooks.limiter.enabled = True


@pytest.fixture()
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


def browse_ai_payload(url: str = "https://www.espn.com", **captured) -> dict:
    """Build a Browse AI task payload, e.g. browse_ai_payload(capturedLists={...})."""
    return {"task": {"id": "task-1", "inputParameters": {"originUrl": url}, **captured}}
