"""SQLite-backed fallback chunk table.

Holds one row per ``(material_id, chunk_index)`` with the chunk text, token
count, embedding array and metadata map (both JSON-encoded).  Used only
when the primary similarity store is unavailable; reads are positional
(ordered by ``chunk_index``), never ranked.
"""

from __future__ import annotations

import json
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.material_store import IChunkStore
from src.models.rag import ChunkMetadata, ChunkRecord, RetrievalResult

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/course_rag.db")

_CREATE_CHUNKS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS material_chunks (
    material_id  TEXT    NOT NULL,
    chunk_index  INTEGER NOT NULL,
    unit         INTEGER NOT NULL,
    title        TEXT    NOT NULL DEFAULT '',
    content      TEXT    NOT NULL,
    token_count  INTEGER NOT NULL DEFAULT 0,
    embedding    TEXT    NOT NULL,
    metadata     TEXT    NOT NULL DEFAULT '{}',
    created_at   TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (material_id, chunk_index)
);
"""

_INSERT_CHUNK_SQL = """\
INSERT OR IGNORE INTO material_chunks (
    material_id, chunk_index, unit, title, content, token_count, embedding, metadata
) VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_CHUNKS_SQL = """\
SELECT material_id, chunk_index, unit, title, content, token_count, metadata
FROM material_chunks
WHERE material_id = ?
ORDER BY chunk_index
LIMIT ?;
"""

_DELETE_CHUNKS_SQL = "DELETE FROM material_chunks WHERE material_id = ?;"

_COUNT_CHUNKS_SQL = "SELECT COUNT(*) FROM material_chunks WHERE material_id = ?;"

_COUNT_CHUNKS_BY_UNIT_SQL = (
    "SELECT COUNT(*) FROM material_chunks WHERE material_id = ? AND unit = ?;"
)


class SQLiteChunkStore(IChunkStore):
    """Positional fallback chunk storage."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the material_chunks table if it doesn't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_CHUNKS_TABLE_SQL)
            await db.commit()
        logger.info("chunk_db_initialized", path=str(self._db_path))

    async def insert_chunks(self, records: list[ChunkRecord]) -> int:
        if not records:
            return 0

        inserted = 0
        async with aiosqlite.connect(str(self._db_path)) as db:
            for record in records:
                cursor = await db.execute(
                    _INSERT_CHUNK_SQL,
                    (
                        record.material_id,
                        record.chunk_index,
                        record.unit,
                        record.title,
                        record.content,
                        record.token_count,
                        json.dumps(record.embedding),
                        record.metadata.model_dump_json(),
                    ),
                )
                inserted += cursor.rowcount
            await db.commit()

        logger.info(
            "fallback_chunks_inserted",
            material_id=records[0].material_id,
            requested=len(records),
            inserted=inserted,
        )
        return inserted

    async def read_chunks(self, material_id: str, limit: int) -> list[RetrievalResult]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_CHUNKS_SQL, (material_id, max(0, limit)))
            rows = await cursor.fetchall()

        return [
            RetrievalResult(
                record_id=f"{row['material_id']}_{row['chunk_index']}",
                material_id=row["material_id"],
                chunk_index=row["chunk_index"],
                unit=row["unit"],
                title=row["title"],
                content=row["content"],
                token_count=row["token_count"],
                metadata=ChunkMetadata.model_validate_json(row["metadata"] or "{}"),
                distance=None,
                source="fallback",
            )
            for row in rows
        ]

    async def delete_material(self, material_id: str) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_DELETE_CHUNKS_SQL, (material_id,))
            await db.commit()
            deleted = cursor.rowcount
        logger.info("fallback_chunks_deleted", material_id=material_id, deleted_count=deleted)
        return deleted

    async def count(self, material_id: str, unit: int | None = None) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            if unit is None:
                cursor = await db.execute(_COUNT_CHUNKS_SQL, (material_id,))
            else:
                cursor = await db.execute(_COUNT_CHUNKS_BY_UNIT_SQL, (material_id, unit))
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
