"""Base document store interface."""

from abc import ABC, abstractmethod
from typing import Callable, NamedTuple


class DocumentPath(NamedTuple):
    """Location of one document: collection name plus document key."""
    collection: str
    key: str

    def __str__(self) -> str:
        return f"{self.collection}/{self.key}"


# Receives the current snapshot of every requested path (None when absent)
# and returns the documents to write. May be called more than once.
Mutation = Callable[[dict[DocumentPath, dict | None]], dict[DocumentPath, dict]]


class DocumentStore(ABC):
    """Abstract base class for document stores."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return backend identifier."""
        pass

    @abstractmethod
    async def get(self, collection: str, key: str) -> dict | None:
        """Fetch one document, or None when it does not exist."""
        pass

    @abstractmethod
    async def list_keys(self, collection: str) -> list[str]:
        """List the document keys of a collection."""
        pass

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool:
        """Delete a document. Returns False when it did not exist."""
        pass

    @abstractmethod
    async def add(self, collection: str, document: dict) -> str:
        """Store a document under a generated key and return the key."""
        pass

    @abstractmethod
    async def transact(self, paths: list[DocumentPath], mutate: Mutation) -> dict[DocumentPath, dict]:
        """Read ``paths``, apply ``mutate`` and write its result atomically.

        The write only lands if none of the read documents changed in the
        meantime; otherwise the read and ``mutate`` are retried. Raises
        ConflictError once retries are exhausted.
        """
        pass
