# the narrow data access interface, and its sqlite implementation
from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

import aiosqlite

from db import database
from utils.errors import RemoteOperationFailed
from utils.logger import get_logger

_logger = get_logger(__name__)

Record = Dict[str, Any]
Ids = Union[int, Iterable[int]]

TABLES = database.REQUIRED_TABLES


@dataclass(frozen=True)
class Query:
    """
    What to read from a table.

    filters: column -> value; a list/tuple/set value matches any member (IN)
    not_null: columns that must be set
    """

    owner_id: Optional[int] = None
    filters: Mapping[str, Any] = field(default_factory=dict)
    not_null: Tuple[str, ...] = ()
    order_by: Optional[str] = None
    descending: bool = False


@dataclass(frozen=True)
class Session:
    user_id: int
    email: str
    signed_in_at: datetime


class DataAccess(Protocol):
    session: Optional[Session]

    async def get(self, table: str, query: Optional[Query] = None) -> List[Record]: ...

    async def insert(self, table: str, record: Mapping[str, Any]) -> Record: ...

    async def update(
        self,
        table: str,
        id: int,
        patch: Mapping[str, Any],
        owner_id: Optional[int] = None,
    ) -> None: ...

    async def delete(self, table: str, ids: Ids, owner_id: Optional[int] = None) -> None: ...

    def current_user_id(self) -> Optional[int]: ...


def _normalize_ids(ids: Ids) -> List[int]:
    if isinstance(ids, int):
        return [ids]
    return list(ids)


def _to_param(val: Any) -> Any:
    # timestamps are stored as ISO-8601 text
    if isinstance(val, datetime):
        return val.isoformat()
    return val


class SqliteDataAccess:
    """
    DataAccess over the local sqlite file managed by ``db.database``.

    Table and column names are checked against the live schema before they
    are spliced into SQL; values always go through parameters.
    """

    def __init__(self, session: Optional[Session] = None) -> None:
        self.session = session
        self._columns: Dict[str, Tuple[str, ...]] = {}

    def current_user_id(self) -> Optional[int]:
        return self.session.user_id if self.session else None

    # ---------------------------
    # Schema checks
    # ---------------------------

    async def _table_columns(self, conn: aiosqlite.Connection, table: str) -> Tuple[str, ...]:
        if table not in TABLES:
            raise RemoteOperationFailed(f"Unknown table {table!r}")
        if table not in self._columns:
            cur = await conn.execute(f"PRAGMA table_info({table});")
            rows = await cur.fetchall()
            await cur.close()
            self._columns[table] = tuple(r["name"] for r in rows)
        return self._columns[table]

    async def _check_columns(
        self, conn: aiosqlite.Connection, table: str, names: Iterable[str]
    ) -> Tuple[str, ...]:
        known = await self._table_columns(conn, table)
        for name in names:
            if name not in known:
                raise RemoteOperationFailed(f"Unknown column {table}.{name}")
        return known

    # ---------------------------
    # Operations
    # ---------------------------

    async def get(self, table: str, query: Optional[Query] = None) -> List[Record]:
        query = query or Query()
        try:
            async with database.connect() as conn:
                names = list(query.filters) + list(query.not_null)
                if query.order_by:
                    names.append(query.order_by)
                await self._check_columns(conn, table, names)

                where: List[str] = []
                params: List[Any] = []
                if query.owner_id is not None:
                    where.append("owner_id = ?")
                    params.append(query.owner_id)
                for col, val in query.filters.items():
                    if isinstance(val, (list, tuple, set, frozenset)):
                        vals = list(val)
                        if not vals:
                            # nothing can match an empty IN list
                            return []
                        where.append(f"{col} IN ({', '.join('?' * len(vals))})")
                        params.extend(_to_param(v) for v in vals)
                    elif val is None:
                        where.append(f"{col} IS NULL")
                    else:
                        where.append(f"{col} = ?")
                        params.append(_to_param(val))
                for col in query.not_null:
                    where.append(f"{col} IS NOT NULL")

                sql = f"SELECT * FROM {table}"
                if where:
                    sql += " WHERE " + " AND ".join(where)
                if query.order_by:
                    direction = "DESC" if query.descending else "ASC"
                    sql += f" ORDER BY {query.order_by} {direction}, id {direction}"
                cur = await conn.execute(sql + ";", tuple(params))
                rows = await cur.fetchall()
                await cur.close()
        except sqlite3.Error as err:
            _logger.error(f"Read from {table} failed: {err}")
            raise RemoteOperationFailed(str(err)) from err
        return [dict(row) for row in rows]

    async def insert(self, table: str, record: Mapping[str, Any]) -> Record:
        cols: Sequence[str] = list(record)
        try:
            async with database.connect() as conn:
                await self._check_columns(conn, table, cols)
                cur = await conn.execute(
                    f"INSERT INTO {table} ({', '.join(cols)}) "
                    f"VALUES ({', '.join('?' * len(cols))});",
                    tuple(_to_param(record[c]) for c in cols),
                )
                new_id = cur.lastrowid
                await cur.close()
                await conn.commit()
                cur = await conn.execute(f"SELECT * FROM {table} WHERE id = ?;", (new_id,))
                row = await cur.fetchone()
                await cur.close()
        except sqlite3.Error as err:
            _logger.error(f"Insert into {table} failed: {err}")
            raise RemoteOperationFailed(str(err)) from err
        return dict(row)

    async def update(
        self,
        table: str,
        id: int,
        patch: Mapping[str, Any],
        owner_id: Optional[int] = None,
    ) -> None:
        if not patch:
            return
        cols = list(patch)
        try:
            async with database.connect() as conn:
                await self._check_columns(conn, table, cols)
                sql = f"UPDATE {table} SET {', '.join(f'{c} = ?' for c in cols)} WHERE id = ?"
                params: List[Any] = [_to_param(patch[c]) for c in cols] + [id]
                if owner_id is not None:
                    sql += " AND owner_id = ?"
                    params.append(owner_id)
                res = await conn.execute(sql + ";", tuple(params))
                changed = res.rowcount
                await conn.commit()
        except sqlite3.Error as err:
            _logger.error(f"Update of {table}#{id} failed: {err}")
            raise RemoteOperationFailed(str(err)) from err
        if changed == 0:
            raise RemoteOperationFailed(f"No {table} row with id {id}")

    async def delete(self, table: str, ids: Ids, owner_id: Optional[int] = None) -> None:
        id_list = _normalize_ids(ids)
        if not id_list:
            return
        try:
            async with database.connect() as conn:
                await self._table_columns(conn, table)
                sql = f"DELETE FROM {table} WHERE id IN ({', '.join('?' * len(id_list))})"
                params: List[Any] = list(id_list)
                if owner_id is not None:
                    sql += " AND owner_id = ?"
                    params.append(owner_id)
                await conn.execute(sql + ";", tuple(params))
                await conn.commit()
        except sqlite3.Error as err:
            _logger.error(f"Delete from {table} failed: {err}")
            raise RemoteOperationFailed(str(err)) from err
