from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence
from urllib.parse import urlparse

import aiosqlite

from specforge.config import DATABASE_MAX_CONNECTIONS, DATABASE_PATH, DATABASE_URL
from specforge.models.transformation import TransformationListItem, TransformationResult

try:  # Optional: only required when DATABASE_URL points at Postgres
    import asyncpg  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    asyncpg = None

logger = logging.getLogger(__name__)


class DatabaseAdapter:
    engine: str

    async def execute(self, query: str, params: Sequence | None = None) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_one(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_all(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def commit(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass
class SQLiteAdapter(DatabaseAdapter):
    conn: aiosqlite.Connection
    engine: str = "sqlite"

    async def execute(self, query: str, params: Sequence | None = None) -> None:
        await self.conn.execute(query, params or ())

    async def fetch_one(self, query: str, params: Sequence | None = None):
        cursor = await self.conn.execute(query, params or ())
        return await cursor.fetchone()

    async def fetch_all(self, query: str, params: Sequence | None = None):
        cursor = await self.conn.execute(query, params or ())
        return await cursor.fetchall()

    async def commit(self) -> None:
        await self.conn.commit()

    async def close(self) -> None:
        await self.conn.close()


@dataclass
class PostgresAdapter(DatabaseAdapter):
    pool: "asyncpg.Pool"  # type: ignore[name-defined]
    engine: str = "postgres"

    @staticmethod
    def _translate_query(query: str) -> str:
        # SQLite-style ? placeholders to asyncpg-style $1, $2, ...
        if "$1" in query:
            return query
        idx = 1
        out = []
        for ch in query:
            if ch == "?":
                out.append(f"${idx}")
                idx += 1
            else:
                out.append(ch)
        return "".join(out)

    async def execute(self, query: str, params: Sequence | None = None) -> None:
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            await conn.execute(q, *(params or ()))

    async def fetch_one(self, query: str, params: Sequence | None = None):
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(q, *(params or ()))

    async def fetch_all(self, query: str, params: Sequence | None = None):
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            return await conn.fetch(q, *(params or ()))

    async def commit(self) -> None:
        # asyncpg autocommits per statement outside explicit transactions
        return

    async def close(self) -> None:
        await self.pool.close()


_db: DatabaseAdapter | None = None


async def get_db() -> DatabaseAdapter:
    global _db
    if _db is None:
        if DATABASE_URL and not DATABASE_URL.startswith("sqlite"):
            if asyncpg is None:
                raise RuntimeError(
                    "DATABASE_URL is set but asyncpg is not installed. "
                    "Install specforge[postgres] or unset DATABASE_URL."
                )
            pool = await asyncpg.create_pool(
                dsn=DATABASE_URL,
                min_size=1,
                max_size=DATABASE_MAX_CONNECTIONS,
            )
            _db = PostgresAdapter(pool)
            logger.info("Connected to Postgres database")
        else:
            sqlite_path = _sqlite_path_from_url(DATABASE_URL) if DATABASE_URL else ""
            sqlite_path = sqlite_path or DATABASE_PATH
            conn = await aiosqlite.connect(sqlite_path)
            conn.row_factory = aiosqlite.Row
            _db = SQLiteAdapter(conn)
            logger.info("Connected to SQLite database at %s", sqlite_path)
    return _db


def _sqlite_path_from_url(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path or ""
    if not path or path == "/":
        return ""
    # sqlite:////absolute/path.db keeps the absolute path
    if url.startswith("sqlite:////"):
        return "/" + path.lstrip("/")
    if path.startswith("/"):
        return path[1:]
    return path


SQLITE_SCHEMA = """
    CREATE TABLE IF NOT EXISTS transformations (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        hospital_id TEXT NOT NULL,
        hospital_name TEXT NOT NULL,
        quality_score REAL NOT NULL,
        processing_time_ms REAL NOT NULL,
        refinement_applied INTEGER NOT NULL DEFAULT 0,
        record TEXT NOT NULL
    )
"""

POSTGRES_SCHEMA = """
    CREATE TABLE IF NOT EXISTS transformations (
        id TEXT PRIMARY KEY,
        created_at TIMESTAMPTZ NOT NULL,
        hospital_id TEXT NOT NULL,
        hospital_name TEXT NOT NULL,
        quality_score DOUBLE PRECISION NOT NULL,
        processing_time_ms DOUBLE PRECISION NOT NULL,
        refinement_applied INTEGER NOT NULL DEFAULT 0,
        record TEXT NOT NULL
    )
"""

INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_transformations_hospital ON transformations (hospital_id)",
    "CREATE INDEX IF NOT EXISTS idx_transformations_created ON transformations (created_at)",
)


async def init_db() -> None:
    db = await get_db()
    await db.execute(SQLITE_SCHEMA if db.engine == "sqlite" else POSTGRES_SCHEMA)
    for stmt in INDEXES:
        await db.execute(stmt)
    await db.commit()


async def close_db() -> None:
    global _db
    if _db is not None:
        await _db.close()
        _db = None


async def save_transformation(result: TransformationResult) -> None:
    """Persist a completed transformation; failed runs never reach this point."""
    db = await get_db()
    created_at: Any = result.created_at
    if db.engine == "postgres":
        created_at = datetime.fromisoformat(result.created_at)
    await db.execute(
        """INSERT INTO transformations (
            id, created_at, hospital_id, hospital_name, quality_score,
            processing_time_ms, refinement_applied, record
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            result.id,
            created_at,
            result.hospital_id,
            result.hospital_name,
            result.quality_score,
            result.processing_time_ms,
            int(result.refinement_applied),
            json.dumps(result.to_record()),
        ),
    )
    await db.commit()
    logger.info("Saved transformation %s for %s", result.id, result.hospital_id)


async def get_transformation(transformation_id: str) -> TransformationResult | None:
    db = await get_db()
    row = await db.fetch_one("SELECT record FROM transformations WHERE id = ?", (transformation_id,))
    if not row:
        return None
    return TransformationResult.model_validate_json(row["record"])


async def list_transformations(
    hospital_id: str | None = None,
    limit: int = 50,
) -> list[TransformationListItem]:
    db = await get_db()
    query = (
        "SELECT id, created_at, hospital_id, hospital_name, quality_score, processing_time_ms "
        "FROM transformations"
    )
    params: list[Any] = []
    if hospital_id:
        query += " WHERE hospital_id = ?"
        params.append(hospital_id)
    query += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit)

    rows = await db.fetch_all(query, params)
    return [
        TransformationListItem(
            id=row["id"],
            created_at=str(row["created_at"]),
            hospital_id=row["hospital_id"],
            hospital_name=row["hospital_name"],
            quality_score=row["quality_score"],
            processing_time_ms=row["processing_time_ms"],
        )
        for row in rows
    ]
