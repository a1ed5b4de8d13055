# gigsync/db/row_store.py
"""
Generic row store contract used by every core service.

Services depend on ``RowStore`` only (select/insert/upsert/update/delete over
named relations with simple filter predicates). ``PostgresRowStore`` is the
production implementation on top of the shared psycopg pool.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from psycopg import sql

from gigsync.db.helpers import with_db_retry
from gigsync.db.pool import DatabasePoolManager, db_pool
from gigsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Row = dict[str, Any]
FilterOp = Literal["eq", "neq", "in", "is_null", "not_null", "gte", "lte"]


@dataclass(slots=True, frozen=True)
class Filter:
    """Single column predicate; filters in a list are AND-ed."""

    column: str
    op: FilterOp
    value: Any = None

    def matches(self, row: Row) -> bool:
        actual = row.get(self.column)
        if self.op == "eq":
            return actual == self.value
        if self.op == "neq":
            return actual != self.value
        if self.op == "in":
            return actual in self.value
        if self.op == "is_null":
            return actual is None
        if self.op == "not_null":
            return actual is not None
        if actual is None:
            return False
        if self.op == "gte":
            return actual >= self.value
        if self.op == "lte":
            return actual <= self.value
        raise ValueError(f"Unknown filter op: {self.op}")


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def in_(column: str, values: Sequence[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def is_null(column: str) -> Filter:
    return Filter(column, "is_null")


def not_null(column: str) -> Filter:
    return Filter(column, "not_null")


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


class RowStore(Protocol):
    async def select(
        self,
        relation: str,
        filters: Sequence[Filter] = (),
        *,
        columns: Sequence[str] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Row]: ...

    async def select_one(
        self, relation: str, filters: Sequence[Filter] = (), *, columns: Sequence[str] | None = None
    ) -> Row | None: ...

    async def insert(self, relation: str, values: Row) -> Row: ...

    async def upsert(self, relation: str, values: Row, conflict_columns: Sequence[str]) -> Row: ...

    async def update(self, relation: str, values: Row, filters: Sequence[Filter]) -> int: ...

    async def delete(self, relation: str, filters: Sequence[Filter]) -> int: ...


def _where(filters: Sequence[Filter]) -> tuple[sql.Composable, list[Any]]:
    if not filters:
        return sql.SQL(""), []

    clauses: list[sql.Composable] = []
    params: list[Any] = []
    for f in filters:
        column = sql.Identifier(f.column)
        if f.op == "eq":
            clauses.append(sql.SQL("{} = %s").format(column))
            params.append(f.value)
        elif f.op == "neq":
            clauses.append(sql.SQL("{} IS DISTINCT FROM %s").format(column))
            params.append(f.value)
        elif f.op == "in":
            clauses.append(sql.SQL("{} = ANY(%s)").format(column))
            params.append(list(f.value))
        elif f.op == "is_null":
            clauses.append(sql.SQL("{} IS NULL").format(column))
        elif f.op == "not_null":
            clauses.append(sql.SQL("{} IS NOT NULL").format(column))
        elif f.op == "gte":
            clauses.append(sql.SQL("{} >= %s").format(column))
            params.append(f.value)
        elif f.op == "lte":
            clauses.append(sql.SQL("{} <= %s").format(column))
            params.append(f.value)
        else:
            raise ValueError(f"Unknown filter op: {f.op}")

    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params


def _columns(columns: Sequence[str] | None) -> sql.Composable:
    if not columns:
        return sql.SQL("*")
    return sql.SQL(", ").join(sql.Identifier(c) for c in columns)


class PostgresRowStore:
    """RowStore over the shared psycopg AsyncConnectionPool (dict rows)."""

    def __init__(self, pool: DatabasePoolManager | None = None):
        self._pool = pool or db_pool

    async def _fetch(self, query: sql.Composable, params: list[Any]) -> list[Row]:
        async with self._pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                if cur.description is None:
                    return []
                return list(await cur.fetchall())

    async def _execute(self, query: sql.Composable, params: list[Any]) -> int:
        async with self._pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount

    @with_db_retry()
    async def select(
        self,
        relation: str,
        filters: Sequence[Filter] = (),
        *,
        columns: Sequence[str] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        where, params = _where(filters)
        query = sql.SQL("SELECT {} FROM {}{}").format(
            _columns(columns), sql.Identifier(relation), where
        )
        if order_by:
            descending = order_by.startswith("-")
            query += sql.SQL(" ORDER BY {} {}").format(
                sql.Identifier(order_by.lstrip("-")), sql.SQL("DESC" if descending else "ASC")
            )
        if limit is not None:
            query += sql.SQL(" LIMIT {}").format(sql.Literal(limit))
        return await self._fetch(query, params)

    async def select_one(
        self, relation: str, filters: Sequence[Filter] = (), *, columns: Sequence[str] | None = None
    ) -> Row | None:
        rows = await self.select(relation, filters, columns=columns, limit=1)
        return rows[0] if rows else None

    @with_db_retry()
    async def insert(self, relation: str, values: Row) -> Row:
        keys = list(values)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            sql.Identifier(relation),
            sql.SQL(", ").join(sql.Identifier(k) for k in keys),
            sql.SQL(", ").join(sql.Placeholder() for _ in keys),
        )
        rows = await self._fetch(query, [values[k] for k in keys])
        return rows[0]

    @with_db_retry()
    async def upsert(self, relation: str, values: Row, conflict_columns: Sequence[str]) -> Row:
        keys = list(values)
        updates = [k for k in keys if k not in conflict_columns]
        query = sql.SQL(
            "INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO UPDATE SET {} RETURNING *"
        ).format(
            sql.Identifier(relation),
            sql.SQL(", ").join(sql.Identifier(k) for k in keys),
            sql.SQL(", ").join(sql.Placeholder() for _ in keys),
            sql.SQL(", ").join(sql.Identifier(c) for c in conflict_columns),
            sql.SQL(", ").join(
                sql.SQL("{} = EXCLUDED.{}").format(sql.Identifier(k), sql.Identifier(k))
                for k in updates
            ),
        )
        rows = await self._fetch(query, [values[k] for k in keys])
        return rows[0]

    @with_db_retry()
    async def update(self, relation: str, values: Row, filters: Sequence[Filter]) -> int:
        if not filters:
            raise ValueError("update requires at least one filter")
        if not values:
            return 0
        keys = list(values)
        where, where_params = _where(filters)
        query = sql.SQL("UPDATE {} SET {}{}").format(
            sql.Identifier(relation),
            sql.SQL(", ").join(sql.SQL("{} = %s").format(sql.Identifier(k)) for k in keys),
            where,
        )
        return await self._execute(query, [values[k] for k in keys] + where_params)

    @with_db_retry()
    async def delete(self, relation: str, filters: Sequence[Filter]) -> int:
        if not filters:
            raise ValueError("delete requires at least one filter")
        where, params = _where(filters)
        query = sql.SQL("DELETE FROM {}{}").format(sql.Identifier(relation), where)
        return await self._execute(query, params)


row_store = PostgresRowStore()


__all__ = [
    "Filter",
    "PostgresRowStore",
    "Row",
    "RowStore",
    "eq",
    "gte",
    "in_",
    "is_null",
    "lte",
    "neq",
    "not_null",
    "row_store",
]
