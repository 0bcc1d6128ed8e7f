"""Semantic retrieval over a single material's chunks.

Search is progressively widened until something comes back::

    1. primary store, filtered by {material_id, unit}
    2. primary store, filtered by {material_id}
    3. positional fallback: up to ``limit * fallback_multiplier`` rows in
       chunk order

Step 3 also covers an unreachable primary store and a failed query
embedding.  Nothing here raises on backend unavailability; an empty list
means the material has no stored content yet.
"""

from __future__ import annotations

import structlog

from src.models.rag import RetrievalResult, SearchFilters
from src.services.ingestion.embedding_gateway import EmbeddingGateway
from src.services.vector_store import VectorStoreService
from src.utils.errors import ExternalServiceError, ValidationError, VectorStoreError

logger = structlog.get_logger(logger_name=__name__)

CONTENT_NOT_READY = (
    "The course material for this unit is not available yet. "
    "It may still be processing."
)


class RetrievalService:
    """Embeds a query once and returns matching chunks for one material."""

    def __init__(
        self,
        gateway: EmbeddingGateway,
        vector_store: VectorStoreService,
        default_limit: int = 5,
        fallback_multiplier: int = 2,
    ) -> None:
        self._gateway = gateway
        self._vector_store = vector_store
        self._default_limit = default_limit
        self._fallback_multiplier = max(1, fallback_multiplier)

    async def retrieve(
        self,
        material_id: str,
        unit: int | None,
        text: str,
        limit: int | None = None,
    ) -> list[RetrievalResult]:
        """Return up to ``limit`` ranked chunks, or positional fallback rows.

        Raises
        ------
        ValidationError
            If *text* is blank or *limit* is not positive.
        """
        if not text or not text.strip():
            raise ValidationError("Query text must not be empty")
        if limit is None:
            limit = self._default_limit
        if limit < 1:
            raise ValidationError("limit must be >= 1")

        try:
            query = await self._gateway.generate_embedding(text)
        except ExternalServiceError as exc:
            logger.warning("query_embedding_failed", material_id=material_id, error=str(exc))
            return await self._read_fallback(material_id, limit, reason="embedding_failed")

        try:
            results = await self._vector_store.search_chunks(
                query.embedding,
                SearchFilters(material_id=material_id, unit=unit),
                limit,
            )
            if not results and unit is not None:
                logger.debug("retrieval_widened", material_id=material_id, unit=unit)
                results = await self._vector_store.search_chunks(
                    query.embedding,
                    SearchFilters(material_id=material_id),
                    limit,
                )
        except VectorStoreError as exc:
            logger.warning("primary_search_failed", material_id=material_id, error=str(exc))
            return await self._read_fallback(material_id, limit, reason="primary_unavailable")

        if not results:
            return await self._read_fallback(material_id, limit, reason="no_primary_results")

        logger.info(
            "retrieval_completed",
            material_id=material_id,
            unit=unit,
            results=len(results),
            source="primary",
        )
        return results

    async def query(
        self,
        material_id: str,
        unit: int | None,
        text: str,
        limit: int | None = None,
    ) -> list[str]:
        """Like :meth:`retrieve`, but return only the chunk contents."""
        results = await self.retrieve(material_id, unit, text, limit)
        return [r.content for r in results]

    async def build_context(
        self,
        material_id: str,
        unit: int | None,
        text: str,
        limit: int | None = None,
        separator: str = "\n\n---\n\n",
    ) -> str:
        """Join retrieved contents into one block for prompt conditioning.

        Returns :data:`CONTENT_NOT_READY` when nothing is stored for the
        material.
        """
        contents = await self.query(material_id, unit, text, limit)
        if not contents:
            return CONTENT_NOT_READY
        return separator.join(contents)

    async def _read_fallback(
        self, material_id: str, limit: int, reason: str
    ) -> list[RetrievalResult]:
        fallback_limit = limit * self._fallback_multiplier
        try:
            rows = await self._vector_store.read_fallback(material_id, fallback_limit)
        except Exception as exc:
            logger.error("fallback_read_failed", material_id=material_id, error=str(exc))
            return []
        logger.info(
            "retrieval_completed",
            material_id=material_id,
            results=len(rows),
            source="fallback",
            reason=reason,
        )
        return rows
