"""Pydantic request/response schemas for the CourseRAG API.

Request schemas end with "Request", response schemas with "Response".
Domain models are not returned directly; each response is built from
them so the wire contract can evolve independently.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.models.material import Material, ProcessingStatus
from src.models.pipeline import IngestionProgress
from src.models.questions import (
    BloomCounts,
    ChunkQuestionAllocation,
    DifficultyCounts,
    QuestionRequirements,
)
from src.models.rag import RetrievalResult


class ProgressResponse(BaseModel):
    stage: str
    current: int
    total: int
    percent: float
    message: str = ""

    @classmethod
    def from_progress(cls, progress: IngestionProgress) -> ProgressResponse:
        return cls(
            stage=progress.stage.value,
            current=progress.current,
            total=progress.total,
            percent=progress.percent,
            message=progress.message,
        )


class MaterialResponse(BaseModel):
    """A material and the state of both ingestion stages."""

    id: str
    title: str
    filename: str
    unit: int
    course_id: str | None = None
    parsing_status: ProcessingStatus
    parsing_error: str | None = None
    page_count: int | None = None
    embedding_status: ProcessingStatus | None = None
    embedding_error: str | None = None
    chunk_count: int | None = Field(
        default=None, description="Stored chunks across both backends."
    )
    progress: ProgressResponse | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_material(
        cls,
        material: Material,
        chunk_count: int | None = None,
        progress: IngestionProgress | None = None,
    ) -> MaterialResponse:
        return cls(
            id=material.id,
            title=material.title,
            filename=material.filename,
            unit=material.unit,
            course_id=material.course_id,
            parsing_status=material.parsing_status,
            parsing_error=material.parsing_error,
            page_count=material.page_count,
            embedding_status=material.embedding_status,
            embedding_error=material.embedding_error,
            chunk_count=chunk_count,
            progress=ProgressResponse.from_progress(progress) if progress else None,
            created_at=material.created_at,
            updated_at=material.updated_at,
        )


class ReembedResponse(BaseModel):
    material_id: str
    scheduled: bool
    message: str


class DeleteResponse(BaseModel):
    material_id: str
    deleted: bool = True


class QueryRequest(BaseModel):
    """Semantic query against one material."""

    text: str = Field(..., min_length=1, max_length=2000)
    unit: int | None = Field(default=None, ge=0)
    limit: int | None = Field(default=None, ge=1, le=50)


class RetrievedChunk(BaseModel):
    chunk_index: int
    title: str
    content: str
    unit: int | None = None
    distance: float | None = None
    source: str

    @classmethod
    def from_result(cls, result: RetrievalResult) -> RetrievedChunk:
        return cls(
            chunk_index=result.chunk_index,
            title=result.title,
            content=result.content,
            unit=result.unit,
            distance=result.distance,
            source=result.source,
        )


class QueryResponse(BaseModel):
    material_id: str
    results: list[RetrievedChunk]


class QuestionPlanRequest(BaseModel):
    """Question counts to spread over a material's chunks."""

    difficulty: DifficultyCounts = Field(default_factory=DifficultyCounts)
    bloom_levels: BloomCounts = Field(default_factory=BloomCounts)

    def to_requirements(self) -> QuestionRequirements:
        return QuestionRequirements(difficulty=self.difficulty, bloom_levels=self.bloom_levels)


class ChunkAllocationResponse(BaseModel):
    chunk_index: int
    title: str
    difficulty: dict[str, int]
    bloom_levels: dict[str, int]
    total: int

    @classmethod
    def from_allocation(cls, allocation: ChunkQuestionAllocation) -> ChunkAllocationResponse:
        return cls(
            chunk_index=allocation.chunk_index,
            title=allocation.title,
            difficulty=allocation.difficulty.model_dump(),
            bloom_levels=allocation.bloom_levels.model_dump(),
            total=allocation.difficulty.total + allocation.bloom_levels.total,
        )


class QuestionPlanResponse(BaseModel):
    material_id: str
    allocations: list[ChunkAllocationResponse]


class RouteRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


class RouteResponse(BaseModel):
    needs_retrieval: bool
    query: str | None = None
    reason: str = ""
    source: str


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
