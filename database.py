import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Set

from dotenv import load_dotenv
from sqlalchemy import JSON, MetaData, Table, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

import models  # noqa: F401  registers the tables on SQLModel.metadata

logger = logging.getLogger(__name__)

# 1. Load environment variables from .env file
load_dotenv()

# 2. Get the URL. If it's not found, raise an error to fail fast.
DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set. Please check your .env file.")

# 3. Create the Async Engine
engine = create_async_engine(DATABASE_URL, echo=False, future=True)


async def init_db(bind: AsyncEngine = engine):
    async with bind.begin() as conn:
        # This creates the tables if they don't exist
        await conn.run_sync(SQLModel.metadata.create_all)


class SchemaMismatchError(Exception):
    """The live table cannot store a payload as given."""

    def __init__(self, table: str, columns: Iterable[str], message: str):
        self.table = table
        self.columns = sorted(columns)
        super().__init__(message)


class UnknownColumnError(SchemaMismatchError):
    def __init__(self, table: str, columns: Iterable[str]):
        columns = sorted(columns)
        super().__init__(
            table, columns, f"Table '{table}' has no column(s): {', '.join(columns)}"
        )


class ColumnTypeError(SchemaMismatchError):
    def __init__(self, table: str, column: str):
        super().__init__(
            table, [column], f"Column '{table}.{column}' cannot store structured (JSON) values"
        )


class RowStore:
    """
    Generic row store over the live database schema.

    Tables are reflected from the database rather than taken from the SQLModel
    declarations, so a deployment whose tables lag behind the models can still
    be read and written. Every write is probed against the reflected columns
    first: a key with no column raises UnknownColumnError, a list/dict aimed at
    a non-JSON column raises ColumnTypeError. Nothing is sent in either case.
    """

    def __init__(self, bind: AsyncEngine):
        self.engine = bind
        self._tables: Dict[str, Table] = {}

    async def _table(self, name: str) -> Table:
        table = self._tables.get(name)
        if table is None:
            async with self.engine.connect() as conn:
                table = await conn.run_sync(
                    lambda sync_conn: Table(name, MetaData(), autoload_with=sync_conn)
                )
            self._tables[name] = table
        return table

    def invalidate(self, table: Optional[str] = None) -> None:
        """Forget reflected schemas so the next call re-probes the database."""
        if table is None:
            self._tables.clear()
        else:
            self._tables.pop(table, None)

    async def columns(self, table: str) -> Set[str]:
        t = await self._table(table)
        return {c.name for c in t.columns}

    @staticmethod
    def _check_payload(table: Table, payload: Dict[str, Any]) -> None:
        unknown = set(payload) - {c.name for c in table.columns}
        if unknown:
            raise UnknownColumnError(table.name, unknown)
        for key, value in payload.items():
            if isinstance(value, (list, dict)) and not isinstance(table.c[key].type, JSON):
                raise ColumnTypeError(table.name, key)

    async def select(
        self,
        table: str,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        **equals: Any,
    ) -> List[Dict[str, Any]]:
        t = await self._table(table)
        unknown = (set(equals) | ({order_by} if order_by else set())) - {c.name for c in t.columns}
        if unknown:
            raise UnknownColumnError(table, unknown)
        statement = select(t)
        for key, value in equals.items():
            statement = statement.where(t.c[key] == value)
        if order_by:
            column = t.c[order_by]
            statement = statement.order_by(column.desc() if descending else column.asc())
        async with self.engine.connect() as conn:
            result = await conn.execute(statement)
            return [dict(row) for row in result.mappings().all()]

    async def get(self, table: str, row_id: Any) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, id=row_id)
        return rows[0] if rows else None

    async def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        t = await self._table(table)
        for row in rows:
            self._check_payload(t, row)
        rows = [dict(row) for row in rows]
        async with self.engine.begin() as conn:
            if len(rows) == 1:
                result = await conn.execute(insert(t).values(**rows[0]))
                # Server-assigned key, when the table has one
                if rows[0].get("id") is None and result.inserted_primary_key:
                    rows[0]["id"] = result.inserted_primary_key[0]
            else:
                await conn.execute(insert(t), rows)
        logger.debug("Inserted %d row(s) into %s", len(rows), table)
        return rows

    async def update(self, table: str, patch: Dict[str, Any], row_id: Any) -> int:
        t = await self._table(table)
        self._check_payload(t, patch)
        async with self.engine.begin() as conn:
            result = await conn.execute(update(t).where(t.c.id == row_id).values(**patch))
            return result.rowcount

    async def delete(self, table: str, ids: Iterable[Any]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        t = await self._table(table)
        async with self.engine.begin() as conn:
            result = await conn.execute(delete(t).where(t.c.id.in_(ids)))
            return result.rowcount

    async def delete_where_not(self, table: str, field: str, sentinel: Any) -> int:
        t = await self._table(table)
        async with self.engine.begin() as conn:
            result = await conn.execute(delete(t).where(t.c[field] != sentinel))
            return result.rowcount

    async def upsert(self, table: str, row: Dict[str, Any], on_conflict: str = "id") -> Dict[str, Any]:
        t = await self._table(table)
        self._check_payload(t, row)
        key = row[on_conflict]
        async with self.engine.begin() as conn:
            existing = await conn.execute(select(t.c[on_conflict]).where(t.c[on_conflict] == key))
            if existing.first() is None:
                await conn.execute(insert(t).values(**row))
            else:
                patch = {k: v for k, v in row.items() if k != on_conflict}
                await conn.execute(update(t).where(t.c[on_conflict] == key).values(**patch))
        return dict(row)


store = RowStore(engine)
