"""Shared fixtures: in-memory stand-ins for the row store and the search API."""
import asyncio
import itertools
from datetime import datetime, timezone

import pytest

from readshelf.errors import RemoteFetchError, RemoteWriteError
from readshelf.models import Actor, SearchCandidate, IndustryIdentifier
from readshelf.mutations import OptimisticMutationCoordinator

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
ACTOR = Actor("local", "Grace")

TABLE_DEFAULTS = {
    "books": {
        "cover_url": None, "status": "To Read", "source": "Physical Book",
        "rating": 0, "ideas_count": 0,
    },
    "book_notes": {"shared_at": None, "likes_count": 0, "comments_count": 0},
    "comments": {},
    "likes": {"actor_id": "local"},
}


class FakeStore:
    """Async row store kept in dicts, with per-operation failure injection."""

    def __init__(self):
        self.tables = {name: [] for name in TABLE_DEFAULTS}
        self.calls = []
        self.failures = set()
        self.one_shot = []
        self._ids = itertools.count(1)

    def fail_on(self, op, table=None):
        self.failures.add((op, table))

    def fail_next(self, op, table=None):
        """Fail only the next matching call."""
        self.one_shot.append((op, table))

    def recover(self):
        self.failures.clear()
        self.one_shot.clear()

    def seed(self, table, **values):
        row = {"id": f"{table}-{next(self._ids)}", "created_at": NOW}
        row.update(TABLE_DEFAULTS[table])
        if table == "books":
            row["updated_at"] = NOW
        row.update(values)
        self.tables[table].append(row)
        return dict(row)

    def row(self, table, row_id):
        return next((r for r in self.tables[table] if r["id"] == row_id), None)

    def count(self, op, table=None):
        return sum(1 for call in self.calls if call[0] == op and (table is None or call[1] == table))

    async def _enter(self, op, table, error_cls):
        self.calls.append((op, table))
        await asyncio.sleep(0)
        if (op, table) in self.failures or (op, None) in self.failures:
            raise error_cls(f"injected {op} failure on {table}")
        for key in ((op, table), (op, None)):
            if key in self.one_shot:
                self.one_shot.remove(key)
                raise error_cls(f"injected {op} failure on {table}")

    async def select(self, table, columns=None, filters=None, not_null=None,
                     order_by=None, descending=False, limit=None):
        await self._enter("select", table, RemoteFetchError)
        rows = [
            dict(r) for r in self.tables[table]
            if all(r.get(k) == v for k, v in (filters or {}).items())
            and all(r.get(c) is not None for c in (not_null or []))
        ]
        if order_by:
            rows.sort(key=lambda r: r[order_by], reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        if columns:
            rows = [{c: r.get(c) for c in columns} for r in rows]
        return rows

    async def insert(self, table, values):
        await self._enter("insert", table, RemoteWriteError)
        return self.seed(table, **values)

    async def update(self, table, row_id, values):
        await self._enter("update", table, RemoteWriteError)
        row = self.row(table, row_id)
        if row is None:
            raise RemoteWriteError(f"No {table} row with id {row_id}")
        row.update(values)
        return dict(row)

    async def delete(self, table, row_id):
        await self._enter("delete", table, RemoteWriteError)
        row = self.row(table, row_id)
        if row is None:
            raise RemoteWriteError(f"No {table} row with id {row_id}")
        self.tables[table].remove(row)


class AtomicFakeStore(FakeStore):
    """Store that can insert a note and bump the counter in one call."""

    async def add_note_atomic(self, values):
        await self._enter("add_note_atomic", "book_notes", RemoteWriteError)
        note = self.seed("book_notes", **values)
        book = self.row("books", values["book_id"])
        book["ideas_count"] += 1
        return note, dict(book)


class FakeSearchClient:
    """Search API stand-in; a query can be held open with an asyncio.Event."""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []
        self.gates = {}
        self.error = None

    async def search(self, query, max_results=20):
        self.calls.append(query)
        gate = self.gates.get(query)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return list(self.results.get(query, []))[:max_results]


def make_candidate(external_id, title, authors=None, isbn13=None, **kwargs):
    identifiers = [IndustryIdentifier("ISBN_13", isbn13)] if isbn13 else []
    return SearchCandidate(
        external_id=external_id,
        title=title,
        authors=authors or [],
        identifiers=identifiers,
        **kwargs
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def errors():
    return []


@pytest.fixture
def coordinator(store, errors):
    return OptimisticMutationCoordinator(store, ACTOR, on_error=errors.append, clock=lambda: NOW)
