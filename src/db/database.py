# sqlite file location, schema bootstrap and the connection helper used by db.access
import asyncio
import os.path
from contextlib import asynccontextmanager
from sqlite3 import Row
from typing import AsyncIterator, Iterable, List

import aiosqlite

from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

DB_PATH = config.DB_PATH
SCHEMA_SCRIPT = os.path.join(os.path.dirname(__file__), "schema.sql")
REQUIRED_TABLES = ("users", "customers", "products", "invoices", "invoice_items", "events")

_initialized = False
_init_lock = asyncio.Lock()


def use_database(path: str) -> None:
    """Point every later connection at ``path``; its schema is checked on first use."""
    global DB_PATH, _initialized
    DB_PATH = path
    _initialized = False


async def _missing_tables(conn: aiosqlite.Connection, names: Iterable[str]) -> List[str]:
    cur = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table';")
    present = {row["name"] for row in await cur.fetchall()}
    await cur.close()
    return [name for name in names if name not in present]


async def _apply_schema(conn: aiosqlite.Connection) -> None:
    # every statement is CREATE ... IF NOT EXISTS, so a partial schema is completed
    with open(SCHEMA_SCRIPT, "r", encoding="utf-8") as f:
        await conn.executescript(f.read())
    await conn.commit()


@asynccontextmanager
async def connect() -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    The first connection to a database creates its folder and any missing tables.
    """
    global _initialized
    folder = os.path.dirname(DB_PATH)
    if folder and not os.path.isdir(folder):
        os.makedirs(folder, exist_ok=True)

    conn = await aiosqlite.connect(DB_PATH)
    conn.row_factory = Row
    await conn.execute("PRAGMA foreign_keys = ON;")
    try:
        if not _initialized:
            async with _init_lock:
                if not _initialized:
                    missing = await _missing_tables(conn, REQUIRED_TABLES)
                    if missing:
                        _logger.info(f"Creating tables {', '.join(missing)} in {DB_PATH}")
                        await _apply_schema(conn)
                    _initialized = True
        yield conn
    finally:
        await conn.close()
