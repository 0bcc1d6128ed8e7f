"""Abstract base class for similarity-searchable vector stores.

This is the *primary* store.  The dual-backend policy (fallback to the
relational chunk table) lives above it in
:class:`~src.services.vector_store.VectorStoreService`; providers simply
raise :class:`~src.utils.errors.VectorStoreError` when they cannot serve a
request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import ChunkRecord, RetrievalResult, SearchFilters


# Concrete implementation: ChromaDBProvider (src/providers/vector_store/)
class IVectorStoreProvider(ABC):
    """Contract for the primary similarity store.

    All filter scalars are string-coerced by the implementation; callers
    pass natural types through :class:`~src.models.rag.SearchFilters`.
    """

    @abstractmethod
    async def heartbeat(self) -> bool:
        """Connectivity probe.  Returns ``True`` when the store answers."""

    @abstractmethod
    async def upsert_chunks(self, records: list[ChunkRecord]) -> int:
        """Insert or replace chunks keyed by ``{material_id}_{chunk_index}``.

        Returns
        -------
        int
            The number of records written.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If the write fails or the vector dimension is inconsistent with
            the batch or the existing collection.
        """

    @abstractmethod
    async def search(
        self,
        query_embedding: list[float],
        filters: SearchFilters,
        limit: int = 5,
    ) -> list[RetrievalResult]:
        """Return up to ``limit`` nearest chunks, closest first."""

    @abstractmethod
    async def delete_material(self, material_id: str) -> int:
        """Delete every chunk of a material.  Returns the number removed."""

    @abstractmethod
    async def count(self, filters: SearchFilters) -> int:
        """Return how many stored chunks match ``filters``."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
