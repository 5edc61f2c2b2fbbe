"""Browse AI webhook ingestion - payload models and the read-merge-write pass."""

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from app.capture import UNKNOWN, clean_fields, derive_document_key, merge_document
from app.errors import PayloadError
from app.stores.base import DocumentPath, DocumentStore

logger = logging.getLogger(__name__)

# Payload section -> collection holding one document per site
SECTION_COLLECTIONS = {
    "capturedTexts": "captured_texts",
    "capturedScreenshots": "captured_screenshots",
    "capturedLists": "captured_lists",
}


class BrowseAITask(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | int | None = None
    inputParameters: dict[str, Any] = Field(default_factory=dict)
    capturedTexts: dict[str, Any] | None = None
    capturedScreenshots: dict[str, Any] | None = None
    capturedLists: dict[str, Any] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _scalar_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, (str, int)):
            return value
        logger.warning(f"[BrowseAI Webhook] Ignoring non-scalar task id: {type(value).__name__}")
        return None

    @field_validator("inputParameters", mode="before")
    @classmethod
    def _parameters_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator(*SECTION_COLLECTIONS, mode="before")
    @classmethod
    def _mapping_or_skip(cls, value: Any, info: ValidationInfo) -> Any:
        """A section that is not an object is skipped; the other sections still count."""
        if value is None or isinstance(value, dict):
            return value
        logger.warning(
            f"[BrowseAI Webhook] Skipping {info.field_name}: expected an object, "
            f"got {type(value).__name__}"
        )
        return None

    @property
    def origin_url(self) -> str:
        """First input parameter value, which Browse AI sets to the robot's start URL."""
        for value in self.inputParameters.values():
            if isinstance(value, str) and value:
                return value
            break
        return UNKNOWN


class BrowseAIPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    task: BrowseAITask | None = None


class IngestResult(BaseModel):
    success: bool = True
    message: str
    docName: str


def parse_payload(body: Any) -> BrowseAITask:
    """Validate a raw body, degrading to an empty task when the task itself is unusable."""
    try:
        payload = BrowseAIPayload.model_validate(body if isinstance(body, dict) else {})
    except ValidationError as e:
        logger.warning(f"[BrowseAI Webhook] Malformed task, ignoring it: {e.error_count()} errors")
        return BrowseAITask()
    if payload.task is None:
        logger.warning("[BrowseAI Webhook] Payload has no task")
        return BrowseAITask()
    return payload.task


async def ingest_browse_ai(
    body: Any,
    store: DocumentStore,
    require_task_id: bool = False,
    event_sites: list[str] | None = None,
) -> IngestResult:
    """Clean every captured section and merge it into the site's documents.

    All sections are read and written in one store transaction so concurrent
    deliveries for the same site cannot drop each other's items.
    """
    task = parse_payload(body)
    if require_task_id and not task.id:
        raise PayloadError("Task ID is required")

    origin_url = task.origin_url
    doc_name = derive_document_key(origin_url)
    logger.info(f"[BrowseAI Webhook] Task {task.id or '-'} from {origin_url} -> '{doc_name}'")

    sections: dict[DocumentPath, dict] = {}
    for field, collection in SECTION_COLLECTIONS.items():
        captured = getattr(task, field)
        if captured:
            sections[DocumentPath(collection, doc_name)] = captured

    if not sections:
        logger.info(f"[BrowseAI Webhook] Nothing captured for '{doc_name}'")
        return IngestResult(message="Webhook received, no captured data", docName=doc_name)

    now = datetime.now(timezone.utc)
    sites = event_sites or []

    def _merge(current: dict[DocumentPath, dict | None]) -> dict[DocumentPath, dict]:
        updated = {}
        for path, captured in sections.items():
            normalized = clean_fields(captured, origin_url, doc_name, sites)
            existing = current.get(path)
            if existing is not None:
                logger.info(f"[BrowseAI Webhook] Document '{path}' exists, appending")
            updated[path] = merge_document(existing, normalized, origin_url, now)
        return updated

    await store.transact(list(sections), _merge)
    logger.info(f"[BrowseAI Webhook] Saved {len(sections)} section(s) for '{doc_name}'")

    return IngestResult(message="Webhook data processed successfully", docName=doc_name)
