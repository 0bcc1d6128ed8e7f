"""RAG data models: chunking options, chunks, embeddings, retrieval results.

Flow of types through the system:

    ContentChunker      -> ContentChunk
    EmbeddingGateway    -> EmbeddedChunk (ContentChunk + vector, may be empty)
    IngestionPipeline   -> ChunkRecord   (EmbeddedChunk scoped to a material)
    VectorStoreService  -> RetrievalResult

Metadata crossing the similarity-store boundary is restricted to
:data:`MetadataScalar` values; the ChromaDB adapter coerces to and from
strings at the edge so the core only ever sees :class:`ChunkMetadata`.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Scalar values the similarity store accepts in a metadata map.
MetadataScalar = Union[str, int, float, bool]


class ChunkingMethod(str, Enum):  # noqa: UP042
    BY_HEADING = "by-heading"
    BY_TOKENS = "by-tokens"


class ChunkingOptions(BaseModel):
    """Knobs for :class:`~src.services.ingestion.chunker.ContentChunker`."""

    model_config = ConfigDict(frozen=True)

    max_tokens_per_chunk: int = Field(default=3000, gt=0)
    min_tokens_per_chunk: int = Field(default=500, ge=0)
    overlap_tokens: int = Field(
        default=200, ge=0, description="Trailing context carried between by-tokens chunks."
    )
    method: ChunkingMethod = ChunkingMethod.BY_HEADING
    preserve_context: bool = Field(
        default=True,
        description="Prefix each chunk with its ancestor heading chain.",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> ChunkingOptions:
        if self.min_tokens_per_chunk > self.max_tokens_per_chunk:
            raise ValueError("min_tokens_per_chunk must not exceed max_tokens_per_chunk")
        return self


class ChunkMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    heading_level: int = Field(default=1, ge=1, le=6)
    has_subsections: bool = False
    topic_keywords: list[str] = Field(default_factory=list)


class ContentChunk(BaseModel):
    """A chunk as produced by the chunker, before embedding."""

    model_config = ConfigDict(frozen=True)

    title: str
    content: str
    tokens: int = Field(ge=0, description="Estimated token count (ceil(chars / 4)).")
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


class EmbeddingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    embedding: list[float]
    token_count: int = Field(ge=0)


class EmbeddedChunk(BaseModel):
    """A chunk paired with its vector.

    An empty ``embedding`` marks a chunk whose embedding call failed; callers
    filter these out before persisting.
    """

    model_config = ConfigDict(frozen=True)

    chunk_index: int = Field(ge=0)
    unit: int = Field(ge=0)
    title: str
    content: str
    token_count: int = Field(ge=0)
    embedding: list[float] = Field(default_factory=list)
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0


class ChunkRecord(BaseModel):
    """A persisted chunk, keyed by ``{material_id}_{chunk_index}``."""

    model_config = ConfigDict(frozen=True)

    material_id: str
    chunk_index: int = Field(ge=0)
    unit: int = Field(ge=0)
    title: str
    content: str
    token_count: int = Field(ge=0)
    embedding: list[float]
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    @property
    def record_id(self) -> str:
        return f"{self.material_id}_{self.chunk_index}"

    @classmethod
    def from_embedded(cls, material_id: str, chunk: EmbeddedChunk) -> ChunkRecord:
        return cls(
            material_id=material_id,
            chunk_index=chunk.chunk_index,
            unit=chunk.unit,
            title=chunk.title,
            content=chunk.content,
            token_count=chunk.token_count,
            embedding=chunk.embedding,
            metadata=chunk.metadata,
        )


class StoreReport(BaseModel):
    """Where a batch of chunks ended up."""

    model_config = ConfigDict(frozen=True)

    backend: Literal["primary", "fallback"]
    stored: int = Field(ge=0)
    reason: str = ""


class SearchFilters(BaseModel):
    """Optional scoping for similarity search.  Unset fields do not filter."""

    model_config = ConfigDict(frozen=True)

    material_id: str | None = None
    unit: int | None = None

    def as_conditions(self) -> list[dict[str, MetadataScalar]]:
        """Return one ``{field: value}`` condition per set filter, in a fixed order."""
        conditions: list[dict[str, MetadataScalar]] = []
        if self.material_id is not None:
            conditions.append({"materialId": self.material_id})
        if self.unit is not None:
            conditions.append({"unit": self.unit})
        return conditions


class RetrievalResult(BaseModel):
    """A chunk returned by search.

    ``distance`` is a relative ranking signal from the primary store (lower is
    closer).  Positional fallback reads carry ``distance=None``.
    """

    model_config = ConfigDict(frozen=True)

    record_id: str
    material_id: str
    chunk_index: int = Field(ge=0)
    unit: int | None = None
    title: str = ""
    content: str
    token_count: int = Field(default=0, ge=0)
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
    distance: float | None = None
    source: Literal["primary", "fallback"] = "primary"


class ParsedDocument(BaseModel):
    """Output of a document parser."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Normalized plain text.")
    markdown: str = Field(description="Markdown rendition with headings preserved.")
    page_count: int = Field(default=0, ge=0)
    warnings: list[str] = Field(default_factory=list)


class RoutingDecision(BaseModel):
    """Whether a chat message needs retrieval, and with which query."""

    model_config = ConfigDict(frozen=True)

    needs_retrieval: bool
    query: str | None = None
    reason: str = ""
    source: Literal["model", "heuristic"] = "heuristic"
