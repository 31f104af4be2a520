import os

# database.py refuses to import without a URL
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import copy  # noqa: E402
import itertools  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from database import ColumnTypeError, RowStore, UnknownColumnError  # noqa: E402
from main import create_app  # noqa: E402


class FakeStore:
    """
    In-memory stand-in for RowStore.

    missing_columns: table -> columns the "backend" does not have (writes
        and filters/ordering on them raise UnknownColumnError)
    text_columns: table -> columns that cannot hold lists/dicts
    failing: tables whose reads raise OperationalError
    """

    def __init__(self):
        self.tables = {}
        self.calls = []
        self.missing_columns = {}
        self.text_columns = {}
        self.failing = set()
        self._ids = itertools.count(1)

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def _check(self, table, payload):
        missing = set(payload) & set(self.missing_columns.get(table, ()))
        if missing:
            raise UnknownColumnError(table, missing)
        for key in self.text_columns.get(table, ()):
            if isinstance(payload.get(key), (list, dict)):
                raise ColumnTypeError(table, key)

    def _fail_if_down(self, table):
        if table in self.failing:
            raise OperationalError(f"SELECT * FROM {table}", {}, Exception("connection refused"))

    def invalidate(self, table=None):
        self.calls.append(("invalidate", table))

    async def columns(self, table):
        names = set()
        for row in self.rows(table):
            names.update(row)
        return names

    async def select(self, table, *, order_by=None, descending=False, **equals):
        self.calls.append(("select", table, equals))
        self._fail_if_down(table)
        wanted = set(equals) | ({order_by} if order_by else set())
        missing = wanted & set(self.missing_columns.get(table, ()))
        if missing:
            raise UnknownColumnError(table, missing)
        rows = [copy.deepcopy(r) for r in self.rows(table) if all(r.get(k) == v for k, v in equals.items())]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or "", reverse=descending)
        return rows

    async def get(self, table, row_id):
        rows = await self.select(table, id=row_id)
        return rows[0] if rows else None

    async def insert(self, table, rows):
        self.calls.append(("insert", table, copy.deepcopy(rows)))
        for row in rows:
            self._check(table, row)
        saved = []
        for row in rows:
            row = dict(row)
            if row.get("id") is None:
                row["id"] = next(self._ids)
            self.rows(table).append(copy.deepcopy(row))
            saved.append(row)
        return saved

    async def update(self, table, patch, row_id):
        self.calls.append(("update", table, copy.deepcopy(patch), row_id))
        self._check(table, patch)
        count = 0
        for row in self.rows(table):
            if row.get("id") == row_id:
                row.update(copy.deepcopy(patch))
                count += 1
        return count

    async def delete(self, table, ids):
        ids = list(ids)
        self.calls.append(("delete", table, ids))
        before = len(self.rows(table))
        self.tables[table] = [r for r in self.rows(table) if r.get("id") not in ids]
        return before - len(self.tables[table])

    async def delete_where_not(self, table, field, sentinel):
        self.calls.append(("delete_where_not", table, field, sentinel))
        before = len(self.rows(table))
        self.tables[table] = [r for r in self.rows(table) if r.get(field) == sentinel]
        return before - len(self.tables[table])

    async def upsert(self, table, row, on_conflict="id"):
        self.calls.append(("upsert", table, copy.deepcopy(row)))
        self._check(table, row)
        for existing in self.rows(table):
            if existing.get(on_conflict) == row[on_conflict]:
                existing.update(copy.deepcopy(row))
                return dict(row)
        self.rows(table).append(copy.deepcopy(row))
        return dict(row)

    def writes(self, table=None):
        return [
            c for c in self.calls
            if c[0] in ("insert", "update", "upsert", "delete", "delete_where_not")
            and (table is None or c[1] == table)
        ]


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}"


@pytest.fixture
def client(sqlite_url):
    # NullPool: TestClient runs the app on its own event loop
    engine = create_async_engine(sqlite_url, poolclass=NullPool)
    app = create_app(RowStore(engine))
    with TestClient(app) as c:
        yield c
