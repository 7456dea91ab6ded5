"""SQLite catalog store for autofilter.

Holds content records, the trending/request counters, blocked keywords and a
small metadata table. Every public coroutine converts ``sqlite3.Error`` and
overflowing bound integers into ``StoreError`` so callers handle a single
failure type.
"""

import functools
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from autofilter.config import INDEX_DIR, INDEX_NAME
from autofilter.errors import StoreError
from autofilter.filters import Predicate, compile_clause
from autofilter.models import ContentRecord, CounterEntry, MediaKind

logger = logging.getLogger(__name__)

INDEX_PATH = INDEX_DIR / INDEX_NAME

TRENDING = "trending"
REQUESTS = "requests"

SCHEMA = """
-- Content records; seq gives ingestion order
CREATE TABLE IF NOT EXISTS records (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    ref TEXT NOT NULL,
    name TEXT NOT NULL,
    size INTEGER NOT NULL,
    kind TEXT NOT NULL,
    mime_type TEXT,
    caption TEXT,
    indexed_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_records_ref ON records(ref);

-- Trending and request counters
CREATE TABLE IF NOT EXISTS counters (
    kind TEXT NOT NULL,
    key TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    last_seen TEXT NOT NULL,
    PRIMARY KEY (kind, key)
);

CREATE TABLE IF NOT EXISTS blocked_keywords (
    word TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def _store_op(func):
    """Re-raise sqlite failures from a store coroutine as StoreError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (sqlite3.Error, OverflowError) as e:
            raise StoreError(f"{func.__name__} failed: {e}") from e

    return wrapper


def _regexp(pattern: str, value: str | None) -> bool:
    if value is None:
        return False
    return compile_clause(pattern).search(value) is not None


@_store_op
async def get_connection(path: Path | None = None) -> aiosqlite.Connection:
    """Open a connection to the catalog database."""
    path = path or INDEX_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(str(path))
    conn.row_factory = aiosqlite.Row
    await conn.create_function("regexp", 2, _regexp, deterministic=True)
    return conn


@_store_op
async def init_schema(conn: aiosqlite.Connection) -> None:
    """Initialize the database schema."""
    await conn.execute("PRAGMA journal_mode = WAL")
    await conn.executescript(SCHEMA)
    await conn.commit()


async def ensure_index_exists(path: Path | None = None) -> aiosqlite.Connection:
    """Open the catalog and make sure its schema exists."""
    conn = await get_connection(path)
    await init_schema(conn)
    return conn


def _where(predicate: Predicate) -> tuple[str, list[Any]]:
    if not predicate:
        return "", []
    sql = " WHERE " + " AND ".join("name REGEXP ?" for _ in predicate.clauses)
    return sql, list(predicate.clauses)


def _row_to_record(row: aiosqlite.Row) -> ContentRecord:
    return ContentRecord(
        id=row["id"],
        ref=row["ref"],
        name=row["name"],
        size=row["size"],
        kind=MediaKind(row["kind"]),
        mime_type=row["mime_type"],
        caption=row["caption"],
        seq=row["seq"],
    )


@_store_op
async def insert_record(conn: aiosqlite.Connection, record: ContentRecord) -> ContentRecord | None:
    """Insert a record. Returns the stored record, or None if the id already exists."""
    cursor = await conn.execute(
        """
        INSERT OR IGNORE INTO records (id, ref, name, size, kind, mime_type, caption, indexed_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            record.id,
            record.ref,
            record.name,
            record.size,
            record.kind.value,
            record.mime_type,
            record.caption,
            datetime.now(tz=timezone.utc).isoformat(),
        ),
    )
    await conn.commit()
    if cursor.rowcount == 0:
        return None
    return await get_record(conn, record.id)


@_store_op
async def get_record(conn: aiosqlite.Connection, id_or_ref: str) -> ContentRecord | None:
    """Get a record by primary key or secondary reference."""
    async with conn.execute(
        "SELECT * FROM records WHERE id = ? OR ref = ? ORDER BY seq DESC LIMIT 1",
        (id_or_ref, id_or_ref),
    ) as cursor:
        row = await cursor.fetchone()
    return _row_to_record(row) if row else None


@_store_op
async def find_records(
    conn: aiosqlite.Connection,
    predicate: Predicate,
    skip: int = 0,
    limit: int | None = None,
) -> list[ContentRecord]:
    """Find records matching a predicate, most recently ingested first."""
    where, params = _where(predicate)
    sql = f"SELECT * FROM records{where} ORDER BY seq DESC LIMIT ? OFFSET ?"
    params.extend([-1 if limit is None else limit, skip])
    async with conn.execute(sql, params) as cursor:
        rows = await cursor.fetchall()
    return [_row_to_record(row) for row in rows]


@_store_op
async def count_records(conn: aiosqlite.Connection, predicate: Predicate | None = None) -> int:
    """Count records matching a predicate."""
    where, params = _where(predicate or Predicate())
    async with conn.execute(f"SELECT COUNT(*) FROM records{where}", params) as cursor:
        row = await cursor.fetchone()
    return row[0]


@_store_op
async def delete_record(conn: aiosqlite.Connection, record_id: str) -> bool:
    """Delete one record by primary key."""
    cursor = await conn.execute("DELETE FROM records WHERE id = ?", (record_id,))
    await conn.commit()
    return cursor.rowcount > 0


@_store_op
async def increment_counter(
    conn: aiosqlite.Connection,
    kind: str,
    key: str,
    when: datetime | None = None,
) -> None:
    """Atomically increment a counter and stamp its last-seen time."""
    when = when or datetime.now(tz=timezone.utc)
    await conn.execute(
        """
        INSERT INTO counters (kind, key, count, last_seen) VALUES (?, ?, 1, ?)
        ON CONFLICT(kind, key) DO UPDATE SET
            count = count + 1,
            last_seen = excluded.last_seen
        """,
        (kind, key, when.isoformat()),
    )
    await conn.commit()


@_store_op
async def top_counters(conn: aiosqlite.Connection, kind: str, limit: int = 5) -> list[CounterEntry]:
    """Get the highest counters of a kind."""
    async with conn.execute(
        "SELECT key, count, last_seen FROM counters WHERE kind = ? "
        "ORDER BY count DESC, last_seen DESC LIMIT ?",
        (kind, limit),
    ) as cursor:
        rows = await cursor.fetchall()
    return [
        CounterEntry(
            key=row["key"],
            count=row["count"],
            last_seen=datetime.fromisoformat(row["last_seen"]),
        )
        for row in rows
    ]


@_store_op
async def prune_counters(conn: aiosqlite.Connection, older_than: datetime) -> int:
    """Drop counters not seen since ``older_than``."""
    cursor = await conn.execute(
        "DELETE FROM counters WHERE last_seen < ?", (older_than.isoformat(),)
    )
    await conn.commit()
    return cursor.rowcount


@_store_op
async def block_keyword(conn: aiosqlite.Connection, word: str) -> None:
    await conn.execute(
        "INSERT OR IGNORE INTO blocked_keywords (word) VALUES (?)", (word.lower(),)
    )
    await conn.commit()


@_store_op
async def unblock_keyword(conn: aiosqlite.Connection, word: str) -> None:
    await conn.execute("DELETE FROM blocked_keywords WHERE word = ?", (word.lower(),))
    await conn.commit()


@_store_op
async def get_blocked_keywords(conn: aiosqlite.Connection) -> set[str]:
    async with conn.execute("SELECT word FROM blocked_keywords") as cursor:
        rows = await cursor.fetchall()
    return {row["word"] for row in rows}


@_store_op
async def set_metadata(conn: aiosqlite.Connection, key: str, value: str) -> None:
    """Set a metadata value."""
    await conn.execute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
        (key, value),
    )
    await conn.commit()


@_store_op
async def get_metadata(conn: aiosqlite.Connection, key: str) -> str | None:
    """Get a metadata value."""
    async with conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)) as cursor:
        row = await cursor.fetchone()
    return row["value"] if row else None


@_store_op
async def get_index_stats(conn: aiosqlite.Connection, path: Path | None = None) -> dict[str, Any]:
    """Get catalog statistics."""
    path = path or INDEX_PATH
    record_count = await count_records(conn)
    async with conn.execute(
        "SELECT kind, COUNT(*) AS n, COALESCE(SUM(size), 0) AS total FROM records GROUP BY kind"
    ) as cursor:
        by_kind = {row["kind"]: {"records": row["n"], "bytes": row["total"]} for row in await cursor.fetchall()}
    index_size = path.stat().st_size if path.exists() else 0

    return {
        "record_count": record_count,
        "by_kind": by_kind,
        "index_path": str(path),
        "index_size_human": format_size(index_size),
        "last_indexed": await get_metadata(conn, "last_indexed"),
    }


def format_size(size_bytes: int) -> str:
    """Format byte size as human-readable string."""
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"
