"""Tests for the document stores: conditional writes, transactions and Firestore wiring."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from app.errors import ConflictError, StoreError
from app.stores import DocumentPath, MemoryStore
from app.stores.firestore import FirestoreStore, firestore

LISTS = DocumentPath("captured_lists", "espn.com")


def _append(title: str):
    """Mutation appending one headline to the captured_lists document."""

    def mutate(current):
        doc = current[LISTS] or {"data": {"Headlines": []}}
        doc["data"]["Headlines"].append({"Title": title})
        return {LISTS: doc}

    return mutate


class TestMemoryStore:
    def test_conditional_set_checks_version(self):
        store = MemoryStore()
        assert store.conditional_set(LISTS, {"v": 1}, expected_version=0) is True
        assert store.conditional_set(LISTS, {"v": 2}, expected_version=0) is False
        assert store.conditional_set(LISTS, {"v": 2}, expected_version=1) is True
        assert store.snapshot(LISTS) == (2, {"v": 2})

    def test_commit_is_all_or_nothing(self):
        store = MemoryStore()
        other = DocumentPath("captured_texts", "espn.com")
        store.conditional_set(other, {"v": 1}, expected_version=0)

        assert store.commit([(LISTS, {"v": 1}, 0), (other, {"v": 2}, 0)]) is False
        assert store.snapshot(LISTS) == (0, None)
        assert store.snapshot(other) == (1, {"v": 1})

    def test_get_returns_a_copy(self):
        store = MemoryStore()
        store.conditional_set(LISTS, {"data": {"a": [1]}}, 0)
        doc = asyncio.run(store.get(*LISTS))
        doc["data"]["a"].append(2)
        assert asyncio.run(store.get(*LISTS)) == {"data": {"a": [1]}}

    def test_list_delete_add(self):
        store = MemoryStore()
        key = asyncio.run(store.add("webhooks", {"raw": {}}))
        store.conditional_set(LISTS, {}, 0)

        assert asyncio.run(store.list_keys("webhooks")) == [key]
        assert asyncio.run(store.delete("webhooks", key)) is True
        assert asyncio.run(store.delete("webhooks", key)) is False
        assert asyncio.run(store.list_keys("captured_lists")) == ["espn.com"]

    def test_transact_retries_after_concurrent_write(self):
        store = MemoryStore()
        calls = []

        def mutate(current):
            calls.append(current[LISTS])
            if len(calls) == 1:
                # Another delivery commits between our read and our write
                store.conditional_set(LISTS, {"data": {"Headlines": [{"Title": "other"}]}}, 0)
            return _append("mine")(current)

        asyncio.run(store.transact([LISTS], mutate))

        assert len(calls) == 2
        doc = asyncio.run(store.get(*LISTS))
        assert doc["data"]["Headlines"] == [{"Title": "other"}, {"Title": "mine"}]

    def test_concurrent_transactions_keep_every_item(self):
        store = MemoryStore(max_attempts=50)

        async def run_all():
            await asyncio.gather(*(store.transact([LISTS], _append(str(i))) for i in range(20)))

        asyncio.run(run_all())
        titles = [h["Title"] for h in asyncio.run(store.get(*LISTS))["data"]["Headlines"]]
        assert sorted(titles, key=int) == [str(i) for i in range(20)]

    def test_transact_gives_up(self):
        store = MemoryStore(max_attempts=3)

        def always_conflicting(current):
            version, _ = store.snapshot(LISTS)
            store.conditional_set(LISTS, {"v": version}, version)
            return {LISTS: {"v": "mine"}}

        with pytest.raises(ConflictError) as exc_info:
            asyncio.run(store.transact([LISTS], always_conflicting))
        assert exc_info.value.collection == "captured_lists"
        assert exc_info.value.key == "espn.com"


def _firestore_store(snapshot=None, error=None):
    """FirestoreStore over a mocked async client whose document refs return ``snapshot``."""
    ref = MagicMock()
    ref.id = "espn.com"
    ref.get = AsyncMock(return_value=snapshot, side_effect=error)
    ref.delete = AsyncMock()

    collection = MagicMock()
    collection.document.return_value = ref
    collection.add = AsyncMock(return_value=(None, SimpleNamespace(id="generated")))

    client = MagicMock()
    client.collection.return_value = collection
    return FirestoreStore(client=client), client, ref


class TestFirestoreStore:
    def test_get_existing(self):
        snap = SimpleNamespace(exists=True, to_dict=lambda: {"data": {}})
        store, client, _ = _firestore_store(snap)
        assert asyncio.run(store.get("captured_lists", "espn.com")) == {"data": {}}
        client.collection.assert_called_with("captured_lists")

    def test_get_missing(self):
        store, _, _ = _firestore_store(SimpleNamespace(exists=False, to_dict=lambda: None))
        assert asyncio.run(store.get("captured_lists", "espn.com")) is None

    def test_delete_missing_returns_false(self):
        store, _, ref = _firestore_store(SimpleNamespace(exists=False))
        assert asyncio.run(store.delete("captured_lists", "espn.com")) is False
        ref.delete.assert_not_called()

    def test_delete_existing(self):
        store, _, ref = _firestore_store(SimpleNamespace(exists=True))
        assert asyncio.run(store.delete("captured_lists", "espn.com")) is True
        ref.delete.assert_awaited_once()

    def test_add_returns_generated_id(self):
        store, _, _ = _firestore_store()
        assert asyncio.run(store.add("webhooks", {"raw": {}})) == "generated"

    def test_api_errors_become_store_errors(self):
        store, _, _ = _firestore_store(error=google_exceptions.ServiceUnavailable("down"))
        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.get("captured_lists", "espn.com"))
        assert "captured_lists/espn.com" in str(exc_info.value)


def _run_once(fn):
    """Stand-in for ``firestore.async_transactional`` that calls the body once."""
    return fn


def _failing(error: Exception):
    def decorate(fn):
        async def run(transaction):
            raise error

        return run

    return decorate


class TestFirestoreTransact:
    def _store(self, snapshot):
        store, client, ref = _firestore_store(snapshot)
        transaction = MagicMock()
        client.transaction.return_value = transaction
        return store, client, ref, transaction

    def test_reads_and_writes_through_the_transaction(self):
        stored = {"data": {"Headlines": [{"Title": "A"}]}}
        snap = SimpleNamespace(exists=True, to_dict=lambda: stored)
        store, client, ref, transaction = self._store(snap)

        with patch.object(firestore, "async_transactional", _run_once):
            updated = asyncio.run(store.transact([LISTS], _append("B")))

        client.transaction.assert_called_once_with(max_attempts=5)
        ref.get.assert_awaited_once_with(transaction=transaction)
        transaction.set.assert_called_once_with(ref, updated[LISTS])
        assert [h["Title"] for h in updated[LISTS]["data"]["Headlines"]] == ["A", "B"]

    def test_missing_document_is_created(self):
        store, _, ref, transaction = self._store(SimpleNamespace(exists=False, to_dict=lambda: None))

        with patch.object(firestore, "async_transactional", _run_once):
            asyncio.run(store.transact([LISTS], _append("A")))

        transaction.set.assert_called_once_with(ref, {"data": {"Headlines": [{"Title": "A"}]}})

    def test_exhausted_retries_raise_conflict(self):
        store, _, _, transaction = self._store(SimpleNamespace(exists=False, to_dict=lambda: None))
        exhausted = ValueError("Failed to commit transaction in 5 attempts.")

        with patch.object(firestore, "async_transactional", _failing(exhausted)):
            with pytest.raises(ConflictError) as exc_info:
                asyncio.run(store.transact([LISTS], _append("A")))
        assert exc_info.value.collection == "captured_lists"
        assert exc_info.value.key == "espn.com"
        transaction.set.assert_not_called()

    def test_aborted_raises_conflict(self):
        store, _, _, _ = self._store(None)
        aborted = google_exceptions.Aborted("contention")

        with patch.object(firestore, "async_transactional", _failing(aborted)):
            with pytest.raises(ConflictError):
                asyncio.run(store.transact([LISTS], _append("A")))

    def test_api_error_raises_store_error(self):
        store, _, _, _ = self._store(None)
        down = google_exceptions.ServiceUnavailable("down")

        with patch.object(firestore, "async_transactional", _failing(down)):
            with pytest.raises(StoreError) as exc_info:
                asyncio.run(store.transact([LISTS], _append("A")))
        assert not isinstance(exc_info.value, ConflictError)
