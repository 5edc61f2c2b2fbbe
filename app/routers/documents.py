"""Document endpoints - read and delete captured documents in the store."""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.stores import DocumentStore, get_store

router = APIRouter()
logger = logging.getLogger(__name__)

# Checked in order; the first present field decides an item's sort date
_DATE_FIELDS = ("publishedDate", "createdAt", "createdAtFormatted")
_FORMATTED_DATE = "%B %d, %Y %I:%M %p"  # "June 13, 2025 4:30 PM"


def _epoch(value: Any) -> float:
    """Best-effort seconds since epoch for a stored date value; 0 when unknown."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        # Values past 1e11 are epoch milliseconds
        return value / 1000 if value > 1e11 else float(value)
    if isinstance(value, dict):
        # Serialized Firestore Timestamp
        seconds = value.get("_seconds", value.get("seconds"))
        nanos = value.get("_nanoseconds", value.get("nanoseconds", 0)) or 0
        if isinstance(seconds, (int, float)):
            return seconds + nanos / 1e9
        return 0.0
    if isinstance(value, str):
        text = value.strip()
        try:
            return _epoch(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            pass
        try:
            return _epoch(datetime.strptime(text, _FORMATTED_DATE))
        except ValueError:
            return 0.0
    return 0.0


def item_sort_key(item: Any) -> float:
    if not isinstance(item, dict):
        return 0.0
    for name in _DATE_FIELDS:
        if item.get(name):
            return _epoch(item[name])
    return 0.0


def _error(message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=404)


def _not_found(collection: str, doc_id: str) -> JSONResponse:
    return _error(f"Document with ID {doc_id} not found in collection {collection}")


def _categories(doc: dict) -> dict[str, list]:
    data = doc.get("data")
    if not isinstance(data, dict):
        return {}
    return {k: v for k, v in data.items() if isinstance(v, list)}


class DocumentList(BaseModel):
    collection: str
    documents: list[str]
    count: int


class CategoryList(BaseModel):
    collection: str
    document: str
    categories: list[str]
    count: int


@router.get("/{collection}", response_model=DocumentList)
async def list_documents(collection: str, store: DocumentStore = Depends(get_store)):
    """List the document keys of a collection, e.g. captured_lists."""
    keys = sorted(await store.list_keys(collection))
    return DocumentList(collection=collection, documents=keys, count=len(keys))


@router.get("/{collection}/{doc_id}")
async def get_document(collection: str, doc_id: str, store: DocumentStore = Depends(get_store)):
    doc = await store.get(collection, doc_id)
    if doc is None:
        return _not_found(collection, doc_id)
    return {"id": doc_id, **doc}


@router.delete("/{collection}/{doc_id}")
async def delete_document(collection: str, doc_id: str, store: DocumentStore = Depends(get_store)):
    """Delete a document by ID."""
    if not await store.delete(collection, doc_id):
        return _not_found(collection, doc_id)
    logger.info(f"Deleted {collection}/{doc_id}")
    return {
        "success": True,
        "message": f"Document with ID {doc_id} deleted successfully from collection {collection}",
    }


@router.get("/{collection}/{doc_id}/categories", response_model=CategoryList)
async def list_categories(collection: str, doc_id: str, store: DocumentStore = Depends(get_store)):
    """Names of the array-valued fields (categories) of a document's data."""
    doc = await store.get(collection, doc_id)
    if doc is None:
        return _not_found(collection, doc_id)
    names = list(_categories(doc))
    return CategoryList(collection=collection, document=doc_id, categories=names, count=len(names))


@router.get("/{collection}/{doc_id}/categories/{category}")
async def get_category(
    collection: str, doc_id: str, category: str, store: DocumentStore = Depends(get_store)
):
    """Items of one category, newest first.

    Dates come from publishedDate, then createdAt, then createdAtFormatted;
    items without any sort last.
    """
    doc = await store.get(collection, doc_id)
    if doc is None:
        return _not_found(collection, doc_id)
    categories = _categories(doc)
    if category not in categories:
        return _error(f"Category '{category}' not found in {collection}/{doc_id}")

    items = sorted(categories[category], key=item_sort_key, reverse=True)
    return {"category": category, "items": items, "count": len(items)}
