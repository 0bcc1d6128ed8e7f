"""Public interface definitions for all external collaborators.

Every external service CourseRAG touches is accessed through the abstract
base classes in this package.  Concrete adapters live in ``src/providers/``
and are wired together in ``src/main.py``; unit tests inject
``MagicMock(spec=...)`` fakes instead.

CONCRETE PROVIDER MAP:
    Interface               ->  Concrete implementation (in src/providers/)
    --------------------------------------------------------------------
    IEmbeddingProvider      ->  OllamaEmbeddingProvider
    ILLMProvider            ->  OllamaLLMProvider
    IVectorStoreProvider    ->  ChromaDBProvider
    IDocumentParser         ->  PyMuPDFDocumentParser
    IMaterialStore          ->  SQLiteMaterialStore
    IChunkStore             ->  SQLiteChunkStore
"""

from src.interfaces.document_parser import IDocumentParser
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.material_store import IChunkStore, IMaterialStore
from src.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IChunkStore",
    "IDocumentParser",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IMaterialStore",
    "IVectorStoreProvider",
]
