"""Vector store provider implementations.

ChromaDB is the primary store.  It holds every material's chunk embeddings
in one collection (``material_chunks`` by default) and supports cosine
similarity search with metadata filtering.  When it is unreachable the
vector store service writes to the SQLite fallback table instead.
"""

from src.providers.vector_store.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
