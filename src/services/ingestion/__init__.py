"""Document ingestion for the course knowledge base.

Pipeline stages: **upload -> parse -> chunk -> embed -> store**.

1. **Chunk** (chunker.py / ContentChunker) -- Splits parsed markdown into
   heading-aware, token-bounded chunks, each prefixed with its heading
   chain.

2. **Embed** (embedding_gateway.py / EmbeddingGateway) -- Truncates and
   embeds every chunk in small sequential batches; a chunk whose call
   fails comes back with an empty vector.

3. **Orchestrate** (ingestion_pipeline.py / IngestionPipeline) -- Owns the
   per-material parsing/embedding state machine and runs each stage as a
   job on the ingestion task queue.
"""

from src.services.ingestion.chunker import ContentChunker
from src.services.ingestion.embedding_gateway import EmbeddingGateway
from src.services.ingestion.ingestion_pipeline import IngestionPipeline

__all__ = [
    "ContentChunker",
    "EmbeddingGateway",
    "IngestionPipeline",
]
