"""
Document Stores

Storage backends for captured webhook data.
"""

from app.config import settings

from .base import DocumentPath, DocumentStore
from .memory import MemoryStore

__all__ = ["DocumentPath", "DocumentStore", "MemoryStore", "build_store", "get_store"]

_store: DocumentStore | None = None


def build_store(backend: str) -> DocumentStore:
    if backend == "memory":
        return MemoryStore(max_attempts=settings.firestore_max_attempts)
    if backend == "firestore":
        from .firestore import FirestoreStore

        return FirestoreStore(
            project=settings.firestore_project,
            max_attempts=settings.firestore_max_attempts,
        )
    raise ValueError(f"Unknown store backend: {backend}")


def get_store() -> DocumentStore:
    """FastAPI dependency returning the configured store (created on first use)."""
    global _store
    if _store is None:
        _store = build_store(settings.store_backend)
    return _store
