"""SQLite-backed material store.

Persists :class:`~src.models.material.Material` rows, including both status
fields and the parsed markdown, using ``aiosqlite`` for async I/O.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.material_store import IMaterialStore
from src.models.material import Material, ProcessingStatus
from src.utils.errors import ResourceNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/course_rag.db")

_CREATE_MATERIALS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS materials (
    id               TEXT    PRIMARY KEY,
    title            TEXT    NOT NULL,
    filename         TEXT    NOT NULL,
    file_path        TEXT    NOT NULL,
    unit             INTEGER NOT NULL DEFAULT 1,
    course_id        TEXT,
    parsing_status   TEXT    NOT NULL DEFAULT 'PENDING',
    parsing_error    TEXT,
    parsed_content   TEXT,
    page_count       INTEGER,
    embedding_status TEXT,
    embedding_error  TEXT,
    created_at       TEXT    NOT NULL,
    updated_at       TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_materials_parsing ON materials(parsing_status);",
    "CREATE INDEX IF NOT EXISTS idx_materials_embedding ON materials(embedding_status);",
]

_INSERT_MATERIAL_SQL = """\
INSERT INTO materials (
    id, title, filename, file_path, unit, course_id,
    parsing_status, parsing_error, parsed_content, page_count,
    embedding_status, embedding_error, created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_MATERIAL_SQL = "SELECT * FROM materials WHERE id = ?;"

_DELETE_MATERIAL_SQL = "DELETE FROM materials WHERE id = ?;"

# Columns the pipeline is allowed to change after creation.
_UPDATABLE_COLUMNS = frozenset(
    {
        "title",
        "unit",
        "course_id",
        "parsing_status",
        "parsing_error",
        "parsed_content",
        "page_count",
        "embedding_status",
        "embedding_error",
    }
)


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()  # noqa: UP017


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SQLiteMaterialStore(IMaterialStore):
    """SQLite-backed material persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the materials table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_MATERIALS_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("material_db_initialized", path=str(self._db_path))

    async def create(self, material: Material) -> Material:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_MATERIAL_SQL,
                (
                    material.id,
                    material.title,
                    material.filename,
                    material.file_path,
                    material.unit,
                    material.course_id,
                    _to_db(material.parsing_status),
                    material.parsing_error,
                    material.parsed_content,
                    material.page_count,
                    _to_db(material.embedding_status),
                    material.embedding_error,
                    _to_db(material.created_at),
                    _to_db(material.updated_at),
                ),
            )
            await db.commit()
        logger.info("material_created", material_id=material.id, filename=material.filename)
        return material

    async def get(self, material_id: str) -> Material | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_MATERIAL_SQL, (material_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_material(row)

    async def update(self, material_id: str, **fields: Any) -> Material:
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update material columns: {sorted(unknown)}")

        assignments = {name: _to_db(value) for name, value in fields.items()}
        assignments["updated_at"] = _now_iso()
        set_clause = ", ".join(f"{name} = ?" for name in assignments)

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"UPDATE materials SET {set_clause} WHERE id = ?;",  # noqa: S608
                (*assignments.values(), material_id),
            )
            if cursor.rowcount == 0:
                raise ResourceNotFoundError(
                    message=f"Material {material_id} not found",
                    provider_name="sqlite",
                )
            await db.commit()
            cursor = await db.execute(_SELECT_MATERIAL_SQL, (material_id,))
            row = await cursor.fetchone()

        return self._row_to_material(row)

    async def delete(self, material_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_DELETE_MATERIAL_SQL, (material_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        logger.info("material_deleted", material_id=material_id, deleted=deleted)
        return deleted

    async def list_by_status(
        self,
        parsing: list[ProcessingStatus] | None = None,
        embedding: list[ProcessingStatus] | None = None,
    ) -> list[Material]:
        clauses: list[str] = []
        params: list[str] = []
        if parsing:
            clauses.append(f"parsing_status IN ({', '.join('?' for _ in parsing)})")
            params.extend(s.value for s in parsing)
        if embedding:
            clauses.append(f"embedding_status IN ({', '.join('?' for _ in embedding)})")
            params.extend(s.value for s in embedding)
        if not clauses:
            return []

        query = f"SELECT * FROM materials WHERE {' OR '.join(clauses)} ORDER BY created_at;"  # noqa: S608
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
        return [self._row_to_material(row) for row in rows]

    @staticmethod
    def _row_to_material(row: aiosqlite.Row) -> Material:
        data = dict(row)
        return Material(
            id=data["id"],
            title=data["title"],
            filename=data["filename"],
            file_path=data["file_path"],
            unit=data["unit"],
            course_id=data["course_id"],
            parsing_status=ProcessingStatus(data["parsing_status"]),
            parsing_error=data["parsing_error"],
            parsed_content=data["parsed_content"],
            page_count=data["page_count"],
            embedding_status=(
                ProcessingStatus(data["embedding_status"]) if data["embedding_status"] else None
            ),
            embedding_error=data["embedding_error"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )
