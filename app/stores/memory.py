"""In-process document store with versioned conditional writes."""

import copy
import logging
import threading
import uuid

from app.errors import ConflictError
from app.stores.base import DocumentPath, DocumentStore, Mutation

logger = logging.getLogger(__name__)


class MemoryStore(DocumentStore):
    """Documents held in a dict, each with a version bumped on every write.

    Version 0 means "does not exist", so a conditional set expecting 0 is a
    create-if-absent.
    """

    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts
        self._docs: dict[DocumentPath, tuple[int, dict]] = {}
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    def snapshot(self, path: DocumentPath) -> tuple[int, dict | None]:
        """Return (version, copy of document) for a path."""
        with self._lock:
            version, doc = self._docs.get(path, (0, None))
            return version, copy.deepcopy(doc)

    def conditional_set(self, path: DocumentPath, document: dict, expected_version: int) -> bool:
        """Write ``document`` only if the stored version still equals ``expected_version``."""
        return self.commit([(path, document, expected_version)])

    def commit(self, writes: list[tuple[DocumentPath, dict, int]]) -> bool:
        """Apply a batch of conditional writes, all or nothing."""
        with self._lock:
            for path, _, expected in writes:
                if self._docs.get(path, (0, None))[0] != expected:
                    return False
            for path, document, expected in writes:
                self._docs[path] = (expected + 1, copy.deepcopy(document))
            return True

    async def get(self, collection: str, key: str) -> dict | None:
        return self.snapshot(DocumentPath(collection, key))[1]

    async def list_keys(self, collection: str) -> list[str]:
        with self._lock:
            return [path.key for path in self._docs if path.collection == collection]

    async def delete(self, collection: str, key: str) -> bool:
        with self._lock:
            return self._docs.pop(DocumentPath(collection, key), None) is not None

    async def add(self, collection: str, document: dict) -> str:
        key = uuid.uuid4().hex
        self.commit([(DocumentPath(collection, key), document, 0)])
        return key

    async def transact(self, paths: list[DocumentPath], mutate: Mutation) -> dict[DocumentPath, dict]:
        for attempt in range(1, self.max_attempts + 1):
            versions: dict[DocumentPath, int] = {}
            current: dict[DocumentPath, dict | None] = {}
            for path in paths:
                versions[path], current[path] = self.snapshot(path)

            updated = mutate(current)
            writes = [(path, doc, versions.get(path, 0)) for path, doc in updated.items()]
            if self.commit(writes):
                return updated
            logger.info(f"Write conflict on {', '.join(map(str, paths))} (attempt {attempt})")

        first = paths[0] if paths else DocumentPath("", "")
        raise ConflictError(
            first.collection, first.key, f"gave up after {self.max_attempts} conflicting attempts"
        )
