"""Google Cloud Firestore document store."""

import logging

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from app.errors import ConflictError, StoreError
from app.stores.base import DocumentPath, DocumentStore, Mutation

logger = logging.getLogger(__name__)


class FirestoreStore(DocumentStore):
    """Firestore-backed store using the async client.

    ``transact`` runs inside a Firestore transaction: snapshots are read
    through the transaction and every write is committed together, so a
    concurrent change to any read document makes the client retry.
    """

    def __init__(
        self,
        client: firestore.AsyncClient | None = None,
        project: str | None = None,
        max_attempts: int = 5,
    ):
        self._db = client or firestore.AsyncClient(project=project or None)
        self.max_attempts = max_attempts

    @property
    def backend_name(self) -> str:
        return "firestore"

    def _ref(self, collection: str, key: str):
        return self._db.collection(collection).document(key)

    async def get(self, collection: str, key: str) -> dict | None:
        try:
            snapshot = await self._ref(collection, key).get()
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(collection, key, f"get failed: {e}") from e
        return snapshot.to_dict() if snapshot.exists else None

    async def list_keys(self, collection: str) -> list[str]:
        try:
            return [ref.id async for ref in self._db.collection(collection).list_documents()]
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(collection, None, f"list failed: {e}") from e

    async def delete(self, collection: str, key: str) -> bool:
        ref = self._ref(collection, key)
        try:
            snapshot = await ref.get()
            if not snapshot.exists:
                return False
            await ref.delete()
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(collection, key, f"delete failed: {e}") from e
        return True

    async def add(self, collection: str, document: dict) -> str:
        try:
            _, ref = await self._db.collection(collection).add(document)
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(collection, None, f"add failed: {e}") from e
        return ref.id

    async def transact(self, paths: list[DocumentPath], mutate: Mutation) -> dict[DocumentPath, dict]:
        refs = {path: self._ref(*path) for path in paths}

        @firestore.async_transactional
        async def _run(transaction) -> dict[DocumentPath, dict]:
            current: dict[DocumentPath, dict | None] = {}
            for path, ref in refs.items():
                snapshot = await ref.get(transaction=transaction)
                current[path] = snapshot.to_dict() if snapshot.exists else None

            updated = mutate(current)
            for path, document in updated.items():
                transaction.set(refs.get(path) or self._ref(*path), document)
            return updated

        first = paths[0] if paths else DocumentPath("", "")
        try:
            return await _run(self._db.transaction(max_attempts=self.max_attempts))
        except google_exceptions.Aborted as e:
            raise ConflictError(first.collection, first.key, f"transaction aborted: {e}") from e
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(first.collection, first.key, f"transaction failed: {e}") from e
        except ValueError as e:
            # Raised by the client once max_attempts commits have failed
            logger.error(f"Transaction on {', '.join(map(str, paths))} exhausted retries: {e}")
            raise ConflictError(first.collection, first.key, str(e)) from e
