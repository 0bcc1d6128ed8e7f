"""Abstract base classes for the relational side of storage.

Two contracts live here:

* :class:`IMaterialStore` -- the Material rows and their status fields.
* :class:`IChunkStore` -- the positional fallback chunk table used when the
  primary similarity store is unavailable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.material import Material, ProcessingStatus
from src.models.rag import ChunkRecord, RetrievalResult


# Concrete implementation: SQLiteMaterialStore (src/providers/storage/)
class IMaterialStore(ABC):
    """Persistence contract for materials."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they do not exist."""

    @abstractmethod
    async def create(self, material: Material) -> Material:
        """Insert a new material row and return it."""

    @abstractmethod
    async def get(self, material_id: str) -> Material | None:
        """Return the material, or ``None`` if it does not exist."""

    @abstractmethod
    async def update(self, material_id: str, **fields: Any) -> Material:
        """Update the given columns and return the fresh material.

        Raises
        ------
        src.utils.errors.ResourceNotFoundError
            If the material does not exist.
        """

    @abstractmethod
    async def delete(self, material_id: str) -> bool:
        """Delete the material row.  Returns ``True`` if a row was removed."""

    @abstractmethod
    async def list_by_status(
        self,
        parsing: list[ProcessingStatus] | None = None,
        embedding: list[ProcessingStatus] | None = None,
    ) -> list[Material]:
        """Return materials whose parsing OR embedding status is in the given sets."""


# Concrete implementation: SQLiteChunkStore (src/providers/storage/)
class IChunkStore(ABC):
    """Persistence contract for the positional fallback chunk table."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they do not exist."""

    @abstractmethod
    async def insert_chunks(self, records: list[ChunkRecord]) -> int:
        """Insert rows, skipping any ``(material_id, chunk_index)`` already present.

        Returns
        -------
        int
            The number of rows actually inserted.
        """

    @abstractmethod
    async def read_chunks(self, material_id: str, limit: int) -> list[RetrievalResult]:
        """Return up to ``limit`` rows ordered by ``chunk_index``."""

    @abstractmethod
    async def delete_material(self, material_id: str) -> int:
        """Delete every row of a material.  Returns the number removed."""

    @abstractmethod
    async def count(self, material_id: str, unit: int | None = None) -> int:
        """Return how many rows a material has, optionally scoped to a unit."""
