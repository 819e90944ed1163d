"""Unit tests for core/datastore.py -- keyed JSON documents.

Covers:
- insert / select round trip through JSON bytes
- select_latest prefers the most recently modified document under a key
- update re-stamps modified and raises NotFoundError for unknown ids
- delete_all / delete_older_than only touch the requested key
"""

from datetime import timedelta

import pytest

from core.codec import decode_payload, now_utc
from core.database import Database
from core.datastore import DataStore
from core.errors import NotFoundError


@pytest.fixture
def store(db: Database) -> DataStore:
    return DataStore(db)


class TestInsertSelect:
    def test_round_trip(self, store: DataStore) -> None:
        doc = store.insert("sets", {"user_seed": 12345, "name": "Gatehouse"})
        fetched = store.select(doc.id)
        assert fetched.key == "sets"
        assert decode_payload(fetched.data) == {"user_seed": 12345, "name": "Gatehouse"}
        assert fetched.record.created == doc.record.created

    def test_missing_document(self, store: DataStore) -> None:
        with pytest.raises(NotFoundError):
            store.select(999)
        with pytest.raises(NotFoundError):
            store.select_latest("sets")

    def test_select_latest_returns_newest(self, store: DataStore) -> None:
        store.insert("sets", {"v": 1})
        newest = store.insert("sets", {"v": 2})
        store.insert("other", {"v": 3})
        latest = store.select_latest("sets")
        assert latest.id == newest.id
        assert decode_payload(latest.data) == {"v": 2}

    def test_select_latest_follows_update(self, store: DataStore) -> None:
        first = store.insert("sets", {"v": 1})
        store.insert("sets", {"v": 2})
        store.update(first.id, "sets", {"v": 10})
        assert store.select_latest("sets").id == first.id

    def test_select_all_newest_first(self, store: DataStore) -> None:
        ids = [store.insert("log", {"n": n}).id for n in range(3)]
        assert [d.id for d in store.select_all("log")] == list(reversed(ids))
        assert store.select_all("missing") == []

    def test_count(self, store: DataStore) -> None:
        assert store.count() == 0
        store.insert("a", 1)
        store.insert("b", [1, 2])
        assert store.count() == 2


class TestMutations:
    def test_update_restamps_modified(self, store: DataStore) -> None:
        doc = store.insert("sets", {"v": 1})
        store.update(doc.id, "sets", {"v": 2})
        fetched = store.select(doc.id)
        assert decode_payload(fetched.data) == {"v": 2}
        assert fetched.record.modified >= doc.record.modified
        assert fetched.record.created == doc.record.created

    def test_update_missing_raises(self, store: DataStore) -> None:
        with pytest.raises(NotFoundError):
            store.update(42, "sets", {})

    def test_delete(self, store: DataStore) -> None:
        doc = store.insert("sets", {})
        store.delete(doc.id)
        with pytest.raises(NotFoundError):
            store.select(doc.id)

    def test_delete_all_is_scoped_to_key(self, store: DataStore) -> None:
        store.insert("a", 1)
        store.insert("a", 2)
        store.insert("b", 3)
        assert store.delete_all("a") == 2
        assert store.count() == 1

    def test_delete_older_than(self, store: DataStore) -> None:
        store.insert("a", 1)
        store.insert("b", 2)
        assert store.delete_older_than(now_utc() - timedelta(hours=1), "a") == 0
        assert store.delete_older_than(now_utc() + timedelta(seconds=1), "a") == 1
        assert store.count() == 1
