from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

import aiosqlite

from linkfeed.storage.errors import (
    StorageError,
    ERROR_CONSTRAINT,
    ERROR_INVALID,
    ERROR_NOT_CONNECTED,
    ERROR_OPERATIONAL,
)
from linkfeed.storage.schema import ITEMS_TABLE, MAX_CATEGORY_CHARS, MAX_URL_CHARS, SCHEMA_SQL
from linkfeed.storage.types import INSERT_CREATED, INSERT_EXISTS, InsertResult, NewItem, StoredItem
from linkfeed.utils import now_ts


logger = logging.getLogger(__name__)


MAX_QUERY_LIMIT = 1000


@contextmanager
def _sql_errors(action: str):
    try:
        yield
    except sqlite3.IntegrityError as e:
        raise StorageError(ERROR_CONSTRAINT, f"{action}: {e}") from e
    except (sqlite3.ProgrammingError, sqlite3.InterfaceError) as e:
        raise StorageError(ERROR_INVALID, f"{action}: {e}") from e
    except sqlite3.Error as e:
        raise StorageError(ERROR_OPERATIONAL, f"{action}: {e}") from e


def _check_text(name: str, value: object, max_chars: int | None = None, required: bool = False) -> str:
    if not isinstance(value, str):
        raise StorageError(ERROR_INVALID, f"{name} must be a string")
    if required and not value.strip():
        raise StorageError(ERROR_INVALID, f"{name} must not be empty")
    if max_chars is not None and len(value) > max_chars:
        raise StorageError(ERROR_INVALID, f"{name} longer than {max_chars} chars")
    return value


def _check_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise StorageError(ERROR_INVALID, f"{name} must be an integer")
    if not -(2**63) <= value < 2**63:
        raise StorageError(ERROR_INVALID, f"{name} out of 64-bit range")
    return value


def _validate_item(item: NewItem) -> None:
    _check_text("category", item.category, MAX_CATEGORY_CHARS)
    _check_text("title", item.title, required=True)
    _check_text("link", item.link, MAX_URL_CHARS)
    _check_text("description", item.description)
    _check_int("publish_date", item.publish_date)
    _check_text("source_name", item.source_name, required=True)
    _check_text("source_url", item.source_url, MAX_URL_CHARS)
    _check_text("logo_url", item.logo_url, MAX_URL_CHARS)


def _category_clause(category: str | None) -> tuple[str, tuple]:
    if category is None:
        return "", ()
    _check_text("category", category, MAX_CATEGORY_CHARS)
    return " WHERE category=?", (category,)


class Storage:
    def __init__(self, sqlite_path: Path):
        self._path = sqlite_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def connect(self, ensure_schema: bool = True) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._db = await aiosqlite.connect(self._path.as_posix())
        except sqlite3.Error as e:
            raise StorageError(ERROR_NOT_CONNECTED, str(e)) from e
        self._db.row_factory = aiosqlite.Row
        if ensure_schema:
            await self.ensure_schema()

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(ERROR_NOT_CONNECTED, "storage not connected")
        return self._db

    async def ensure_schema(self) -> None:
        async with self._lock:
            conn = self._conn()
            try:
                with _sql_errors("ensure schema"):
                    await conn.executescript(SCHEMA_SQL)
                    await conn.commit()
            except StorageError:
                logger.error("schema creation failed for %s", self._path, exc_info=True)
                raise
        logger.info("schema ready: table=%s db=%s", ITEMS_TABLE, self._path)

    async def schema_exists(self) -> bool:
        async with self._lock:
            conn = self._conn()
            with _sql_errors("check schema"):
                cursor = await conn.execute(
                    "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?",
                    (ITEMS_TABLE,),
                )
                return (await cursor.fetchone()) is not None

    async def insert_item(self, item: NewItem) -> InsertResult:
        _validate_item(item)
        async with self._lock:
            conn = self._conn()
            now = now_ts()
            with _sql_errors("insert item"):
                cursor = await conn.execute(
                    f"INSERT INTO {ITEMS_TABLE}(category, title, link, description, publish_date, source_name, source_url, logo_url, created_at, updated_at) "
                    "VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(link, source_name) DO NOTHING",
                    (
                        item.category,
                        item.title,
                        item.link,
                        item.description,
                        item.publish_date,
                        item.source_name,
                        item.source_url,
                        item.logo_url,
                        now,
                        now,
                    ),
                )
                inserted = cursor.rowcount == 1
                item_id = cursor.lastrowid if inserted else None
                await conn.commit()

                if not inserted:
                    cursor = await conn.execute(
                        f"SELECT id FROM {ITEMS_TABLE} WHERE link=? AND source_name=?",
                        (item.link, item.source_name),
                    )
                    row = await cursor.fetchone()
                    item_id = int(row["id"]) if row is not None else None
                    return InsertResult(status=INSERT_EXISTS, item_id=item_id)

            return InsertResult(status=INSERT_CREATED, item_id=int(item_id))

    async def get_item(self, item_id: int) -> StoredItem | None:
        _check_int("item_id", item_id)
        async with self._lock:
            conn = self._conn()
            with _sql_errors("get item"):
                cursor = await conn.execute(
                    f"SELECT * FROM {ITEMS_TABLE} WHERE id=?",
                    (item_id,),
                )
                row = await cursor.fetchone()
            if row is None:
                return None
            return StoredItem(**dict(row))

    async def delete_older_than(self, cutoff_ts: int) -> int:
        _check_int("cutoff_ts", cutoff_ts)
        async with self._lock:
            conn = self._conn()
            with _sql_errors("retention sweep"):
                cursor = await conn.execute(
                    f"DELETE FROM {ITEMS_TABLE} WHERE publish_date < ?",
                    (cutoff_ts,),
                )
                deleted = cursor.rowcount
                await conn.commit()
            return max(0, int(deleted))

    async def query_items(self, category: str | None = None, limit: int = 10, offset: int = 0) -> list[StoredItem]:
        _check_int("limit", limit)
        _check_int("offset", offset)
        if limit < 1 or limit > MAX_QUERY_LIMIT:
            raise StorageError(ERROR_INVALID, f"limit must be within 1..{MAX_QUERY_LIMIT}")
        if offset < 0:
            raise StorageError(ERROR_INVALID, "offset must not be negative")

        where, args = _category_clause(category)
        async with self._lock:
            conn = self._conn()
            with _sql_errors("query items"):
                cursor = await conn.execute(
                    f"SELECT * FROM {ITEMS_TABLE}{where} ORDER BY publish_date DESC, id DESC LIMIT ? OFFSET ?",
                    (*args, limit, offset),
                )
                rows = await cursor.fetchall()
            return [StoredItem(**dict(r)) for r in rows]

    async def count_items(self, category: str | None = None) -> int:
        where, args = _category_clause(category)
        async with self._lock:
            conn = self._conn()
            with _sql_errors("count items"):
                cursor = await conn.execute(
                    f"SELECT COUNT(1) AS n FROM {ITEMS_TABLE}{where}",
                    args,
                )
                row = await cursor.fetchone()
            return int(row["n"] if row is not None else 0)
