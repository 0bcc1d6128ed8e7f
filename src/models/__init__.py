"""CourseRAG domain models -- re-exports all public model classes.

The models are organized by concern:
    - material.py   -- Material and its two-stage ProcessingStatus
    - rag.py        -- chunking options, chunks, embeddings, retrieval results
    - pipeline.py   -- ingestion jobs and progress snapshots
    - questions.py  -- question-count allocation across chunks
"""

from __future__ import annotations

from src.models.material import Material, ProcessingStatus
from src.models.pipeline import IngestionJob, IngestionProgress, IngestionStage
from src.models.questions import (
    BloomCounts,
    ChunkQuestionAllocation,
    DifficultyCounts,
    QuestionRequirements,
)
from src.models.rag import (
    ChunkingMethod,
    ChunkingOptions,
    ChunkMetadata,
    ChunkRecord,
    ContentChunk,
    EmbeddedChunk,
    EmbeddingResult,
    MetadataScalar,
    ParsedDocument,
    RetrievalResult,
    RoutingDecision,
    SearchFilters,
    StoreReport,
)

__all__ = [
    "BloomCounts",
    "ChunkMetadata",
    "ChunkQuestionAllocation",
    "ChunkRecord",
    "ChunkingMethod",
    "ChunkingOptions",
    "ContentChunk",
    "DifficultyCounts",
    "EmbeddedChunk",
    "EmbeddingResult",
    "IngestionJob",
    "IngestionProgress",
    "IngestionStage",
    "Material",
    "MetadataScalar",
    "ParsedDocument",
    "ProcessingStatus",
    "QuestionRequirements",
    "RetrievalResult",
    "RoutingDecision",
    "SearchFilters",
    "StoreReport",
]
