"""Relational storage adapters: materials and the fallback chunk table."""

from src.providers.storage.sqlite_chunk_store import SQLiteChunkStore
from src.providers.storage.sqlite_material_store import SQLiteMaterialStore

__all__ = ["SQLiteChunkStore", "SQLiteMaterialStore"]
