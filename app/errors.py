"""Shared exception types for ingestion and the document store."""


class PayloadError(ValueError):
    """A webhook payload is missing a field the contract requires."""


class StoreError(RuntimeError):
    """A document store call failed.

    Carries the collection and key so failures can be traced to a document.
    """

    def __init__(self, collection: str, key: str | None, message: str):
        self.collection = collection
        self.key = key
        target = f"{collection}/{key}" if key else collection
        super().__init__(f"{target}: {message}")


class ConflictError(StoreError):
    """A conditional write kept losing to concurrent writers."""
