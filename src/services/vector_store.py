"""Dual-backend chunk storage: ChromaDB primary, SQLite positional fallback.

Write policy:
    probe the primary store; if the probe fails or the upsert raises, the
    same rows go to the relational fallback table instead (insert with
    skip-on-conflict).  A material's chunks therefore live in exactly one
    backend at a time.

Delete policy:
    primary deletion is best-effort (logged, never raised); fallback
    deletion always runs.

Count policy:
    primary count (when reachable) plus fallback count.
"""

from __future__ import annotations

import structlog

from src.interfaces.material_store import IChunkStore
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import ChunkRecord, RetrievalResult, SearchFilters, StoreReport
from src.utils.errors import ValidationError, VectorStoreError

logger = structlog.get_logger(logger_name=__name__)


class VectorStoreService:
    """Chunk persistence and search across the primary and fallback stores."""

    def __init__(self, primary: IVectorStoreProvider, fallback: IChunkStore) -> None:
        self._primary = primary
        self._fallback = fallback

    async def store_chunks(self, records: list[ChunkRecord]) -> StoreReport:
        """Persist *records*, falling back to the relational table on failure.

        Raises
        ------
        ValidationError
            If any record has an empty embedding.
        """
        if not records:
            return StoreReport(backend="primary", stored=0)
        if any(not r.embedding for r in records):
            raise ValidationError("Refusing to store chunks with empty embeddings")

        material_id = records[0].material_id
        reason = ""
        if await self._primary.heartbeat():
            try:
                stored = await self._primary.upsert_chunks(records)
                return StoreReport(backend="primary", stored=stored)
            except VectorStoreError as exc:
                reason = str(exc)
                logger.error(
                    "primary_store_failed",
                    material_id=material_id,
                    count=len(records),
                    error=reason,
                )
        else:
            reason = "primary store probe failed"
            logger.warning("primary_store_unreachable", material_id=material_id)

        stored = await self._fallback.insert_chunks(records)
        logger.info(
            "chunks_stored_in_fallback",
            material_id=material_id,
            count=len(records),
            inserted=stored,
        )
        return StoreReport(backend="fallback", stored=stored, reason=reason)

    async def search_chunks(
        self,
        query_embedding: list[float],
        filters: SearchFilters,
        limit: int = 5,
    ) -> list[RetrievalResult]:
        """Ranked search against the primary store.

        Raises
        ------
        VectorStoreError
            If the primary store cannot serve the query.
        """
        return await self._primary.search(query_embedding, filters, limit)

    async def read_fallback(self, material_id: str, limit: int) -> list[RetrievalResult]:
        """Unranked read of up to *limit* fallback rows, ordered by chunk index."""
        return await self._fallback.read_chunks(material_id, limit)

    async def delete_material_chunks(self, material_id: str) -> int:
        """Delete a material's chunks from both stores.  Returns rows removed."""
        primary_deleted = 0
        try:
            primary_deleted = await self._primary.delete_material(material_id)
        except VectorStoreError as exc:
            logger.warning(
                "primary_delete_failed",
                material_id=material_id,
                error=str(exc),
            )
        fallback_deleted = await self._fallback.delete_material(material_id)
        return primary_deleted + fallback_deleted

    async def get_chunk_count(self, material_id: str, unit: int | None = None) -> int:
        primary_count = 0
        try:
            primary_count = await self._primary.count(
                SearchFilters(material_id=material_id, unit=unit)
            )
        except VectorStoreError as exc:
            logger.warning("primary_count_failed", material_id=material_id, error=str(exc))
        fallback_count = await self._fallback.count(material_id, unit)
        return primary_count + fallback_count

    async def is_primary_available(self) -> bool:
        return await self._primary.heartbeat()
