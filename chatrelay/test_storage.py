"""
Tests for the durable message log.

Tests cover:
- Id assignment (strictly increasing, unique, never reused)
- Range-from queries (find_after)
- Point lookup
- Delete semantics (second delete reports not found)
- Storage failures surface as StorageUnavailable
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import OperationalError

from chatrelay import models  # noqa: F401  registers the messages table
from chatrelay.errors import StorageUnavailable
from chatrelay.storage import Base, MessageLog, engine


@pytest.fixture(scope="function")
def log():
    """Message log over a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    yield MessageLog()
    Base.metadata.drop_all(bind=engine)


def broken_session_factory():
    raise OperationalError("SELECT 1", {}, Exception("database is down"))


class TestAppend:
    """Test id and timestamp assignment."""

    def test_append_returns_record(self, log):
        record = log.append("hi", "alice")

        assert record.id > 0
        assert record.content == "hi"
        assert record.author == "alice"
        assert record.created_at.endswith("Z")

    def test_sequential_ids_strictly_increasing(self, log):
        ids = [log.append(f"msg {i}", "alice").id for i in range(10)]

        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)

    def test_concurrent_appends_get_unique_ids(self, log):
        def append(i):
            return log.append(f"msg {i}", f"user{i % 3}").id

        with ThreadPoolExecutor(max_workers=4) as pool:
            ids = list(pool.map(append, range(20)))

        assert len(set(ids)) == 20
        stored = [record.id for record in log.find_after(0)]
        assert stored == sorted(ids)

    def test_ids_not_reused_after_delete(self, log):
        first = log.append("one", "alice")
        second = log.append("two", "alice")
        log.delete_by_id(second.id)

        third = log.append("three", "alice")

        assert third.id > second.id > first.id


class TestFindAfter:
    """Test range-from queries."""

    def test_empty_log(self, log):
        assert log.find_after(0) == []

    def test_zero_and_none_return_full_log(self, log):
        appended = [log.append(text, "alice") for text in ("a", "b", "c")]

        assert log.find_after(0) == appended
        assert log.find_after(None) == appended

    def test_returns_suffix_after_offset(self, log):
        a = log.append("a", "alice")
        b = log.append("b", "bob")
        c = log.append("c", "alice")

        assert [r.id for r in log.find_after(a.id)] == [b.id, c.id]
        assert [r.content for r in log.find_after(b.id)] == ["c"]
        assert log.find_after(c.id) == []

    def test_offset_beyond_log(self, log):
        log.append("a", "alice")

        assert log.find_after(10_000) == []


class TestFindAndDelete:
    """Test point lookup and delete-by-id."""

    def test_find_by_id(self, log):
        record = log.append("hi", "alice")

        assert log.find_by_id(record.id) == record

    def test_find_missing_returns_none(self, log):
        assert log.find_by_id(999) is None

    def test_delete_twice(self, log):
        record = log.append("hi", "alice")

        assert log.delete_by_id(record.id) is True
        assert log.delete_by_id(record.id) is False
        assert log.find_by_id(record.id) is None

    def test_delete_leaves_other_messages(self, log):
        keep = log.append("keep", "alice")
        drop = log.append("drop", "alice")

        log.delete_by_id(drop.id)

        assert log.find_after(0) == [keep]

    def test_concurrent_deletes_exactly_one_wins(self, log):
        record = log.append("contested", "alice")

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: log.delete_by_id(record.id), range(8)))

        assert results.count(True) == 1
        assert log.find_by_id(record.id) is None


class TestStorageUnavailable:
    """Test that database failures are translated."""

    @pytest.mark.parametrize("operation, args", [
        ("append", ("hi", "alice")),
        ("find_after", (0,)),
        ("find_by_id", (1,)),
        ("delete_by_id", (1,)),
    ])
    def test_operations_raise_storage_unavailable(self, operation, args):
        broken = MessageLog(session_factory=broken_session_factory)

        with pytest.raises(StorageUnavailable):
            getattr(broken, operation)(*args)
