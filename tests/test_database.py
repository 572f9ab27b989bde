"""Tests for the store helpers that don't need a live PostgreSQL."""
import pytest

from readshelf.database import AsyncDatabase, TABLE_COLUMNS, _check_columns


def test_known_columns_pass():
    """Test that whitelisted columns are accepted."""
    _check_columns("books", ["title", "author", "rating"])


@pytest.mark.parametrize("table, columns", [
    ("users", []),
    ("books", ["title", "password"]),
    ("likes", ["note_id; DROP TABLE likes"]),
])
def test_unknown_identifiers_are_rejected(table, columns):
    """Test that unknown tables and columns are rejected."""
    with pytest.raises(ValueError):
        _check_columns(table, columns)


def test_every_table_has_an_id():
    """Test that every whitelisted table has an id column."""
    assert all("id" in columns for columns in TABLE_COLUMNS.values())


class RecordingDatabase:
    def __init__(self):
        self.calls = []

    def select(self, table, **kwargs):
        self.calls.append(("select", table, kwargs))
        return [{"id": "1"}]

    def insert(self, table, values):
        self.calls.append(("insert", table, values))
        return {"id": "2", **values}

    def update(self, table, row_id, values):
        self.calls.append(("update", table, row_id, values))
        return {"id": row_id, **values}

    def delete(self, table, row_id):
        self.calls.append(("delete", table, row_id))

    def add_note_atomic(self, values):
        self.calls.append(("add_note_atomic", values))
        return {"id": "n1", **values}, {"id": values["book_id"], "ideas_count": 1}


@pytest.mark.asyncio
async def test_async_facade_delegates_each_call():
    """Test that the awaitable store forwards every call to the blocking one."""
    db = RecordingDatabase()
    store = AsyncDatabase(db)

    assert await store.select("books", filters={"id": "1"}, limit=1) == [{"id": "1"}]
    assert (await store.insert("likes", {"note_id": "n"}))["id"] == "2"
    await store.update("books", "b", {"rating": 3})
    await store.delete("likes", "2")
    note, book = await store.add_note_atomic({"book_id": "b", "content": "x"})

    assert book["ideas_count"] == 1
    assert [call[0] for call in db.calls] == ["select", "insert", "update", "delete", "add_note_atomic"]
    assert db.calls[0][2] == {"filters": {"id": "1"}, "limit": 1}


def test_pool_is_safe_to_share_between_worker_threads(monkeypatch):
    """Test that the store builds the thread-safe connection pool."""
    import psycopg2.pool
    from readshelf.database import Database

    created = []

    class RecordingPool:
        def __init__(self, minconn, maxconn, *args, **kwargs):
            created.append((minconn, maxconn, args))

        def closeall(self):
            pass

    monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", RecordingPool)

    db = Database("postgresql://reader@localhost/shelf", min_conn=1, max_conn=4)

    assert isinstance(db.connection_pool, RecordingPool)
    assert created == [(1, 4, ("postgresql://reader@localhost/shelf",))]
