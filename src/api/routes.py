"""FastAPI routes for CourseRAG.

Service dependencies are resolved from ``app.state`` (populated in
``main.py``) through ``Annotated[..., Depends(...)]`` aliases.

Endpoint                                Method  Description
─────────────────────────────────────────────────────────────────────
/api/v1/materials                       POST    Upload a file, schedule parsing
/api/v1/materials/{id}                  GET     Material status and chunk count
/api/v1/materials/{id}                  DELETE  Remove material, chunks, file
/api/v1/materials/{id}/reembed          POST    Retrigger embedding
/api/v1/materials/{id}/query            POST    Semantic retrieval
/api/v1/materials/{id}/question-plan    POST    Question counts per chunk
/api/v1/router/decide                   POST    Does a chat message need retrieval?
/api/v1/health                          GET     Backend availability
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from src.api.schemas import (
    ChunkAllocationResponse,
    DeleteResponse,
    ErrorResponse,
    HealthResponse,
    MaterialResponse,
    QueryRequest,
    QueryResponse,
    QuestionPlanRequest,
    QuestionPlanResponse,
    ReembedResponse,
    RetrievedChunk,
    RouteRequest,
    RouteResponse,
)
from src.interfaces.material_store import IMaterialStore
from src.pipeline.progress_tracker import ProgressTracker
from src.services.ingestion.embedding_gateway import EmbeddingGateway
from src.services.ingestion.ingestion_pipeline import IngestionPipeline
from src.services.query_router import QueryRouter
from src.services.retrieval_service import RetrievalService
from src.services.vector_store import VectorStoreService
from src.utils.errors import ResourceNotFoundError, ValidationError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"
_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


def _get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline


def _get_material_store(request: Request) -> IMaterialStore:
    return request.app.state.material_store


def _get_vector_store(request: Request) -> VectorStoreService:
    return request.app.state.vector_store


def _get_retrieval(request: Request) -> RetrievalService:
    return request.app.state.retrieval_service


def _get_router(request: Request) -> QueryRouter:
    return request.app.state.query_router


def _get_progress_tracker(request: Request) -> ProgressTracker:
    return request.app.state.progress_tracker


def _get_gateway(request: Request) -> EmbeddingGateway:
    return request.app.state.embedding_gateway


PipelineDep = Annotated[IngestionPipeline, Depends(_get_pipeline)]
MaterialStoreDep = Annotated[IMaterialStore, Depends(_get_material_store)]
VectorStoreDep = Annotated[VectorStoreService, Depends(_get_vector_store)]
RetrievalDep = Annotated[RetrievalService, Depends(_get_retrieval)]
RouterDep = Annotated[QueryRouter, Depends(_get_router)]
TrackerDep = Annotated[ProgressTracker, Depends(_get_progress_tracker)]
GatewayDep = Annotated[EmbeddingGateway, Depends(_get_gateway)]

_ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


@router.post(
    "/materials",
    response_model=MaterialResponse,
    status_code=202,
    responses=_ERROR_RESPONSES,
    summary="Upload a course material and schedule ingestion",
)
async def upload_material(
    pipeline: PipelineDep,
    file: Annotated[UploadFile, File(description="PDF, markdown or text file")],
    unit: Annotated[int, Form(ge=0)] = 1,
    title: Annotated[str | None, Form()] = None,
    course_id: Annotated[str | None, Form()] = None,
) -> MaterialResponse:
    """Store the upload, create a PENDING material and return immediately.

    Parsing and embedding continue on the ingestion queue; poll
    ``GET /materials/{id}`` for status.
    """
    data = await file.read()
    if len(data) > _MAX_UPLOAD_BYTES:
        raise ValidationError(f"Upload exceeds {_MAX_UPLOAD_BYTES // (1024 * 1024)} MB")

    material = await pipeline.register_upload(
        data,
        file.filename or "",
        unit=unit,
        title=title,
        course_id=course_id,
    )
    await pipeline.start(material.id, material.filename)
    return MaterialResponse.from_material(material)


@router.get(
    "/materials/{material_id}",
    response_model=MaterialResponse,
    responses=_ERROR_RESPONSES,
    summary="Material status",
)
async def get_material(
    material_id: str,
    materials: MaterialStoreDep,
    vector_store: VectorStoreDep,
    tracker: TrackerDep,
) -> MaterialResponse:
    material = await materials.get(material_id)
    if material is None:
        raise ResourceNotFoundError(f"Material {material_id} not found")
    chunk_count = await vector_store.get_chunk_count(material_id)
    return MaterialResponse.from_material(
        material,
        chunk_count=chunk_count,
        progress=tracker.get_status(material_id),
    )


@router.delete(
    "/materials/{material_id}",
    response_model=DeleteResponse,
    responses=_ERROR_RESPONSES,
    summary="Delete a material and everything derived from it",
)
async def delete_material(material_id: str, pipeline: PipelineDep) -> DeleteResponse:
    await pipeline.teardown(material_id)
    return DeleteResponse(material_id=material_id)


@router.post(
    "/materials/{material_id}/reembed",
    response_model=ReembedResponse,
    status_code=202,
    responses=_ERROR_RESPONSES,
    summary="Retrigger embedding for a material",
)
async def reembed_material(material_id: str, pipeline: PipelineDep) -> ReembedResponse:
    scheduled = await pipeline.reembed(material_id)
    message = "Embedding scheduled" if scheduled else "Embedding already completed or in progress"
    return ReembedResponse(material_id=material_id, scheduled=scheduled, message=message)


@router.post(
    "/materials/{material_id}/query",
    response_model=QueryResponse,
    responses=_ERROR_RESPONSES,
    summary="Retrieve the chunks of a material most relevant to a query",
)
async def query_material(
    material_id: str,
    body: QueryRequest,
    materials: MaterialStoreDep,
    retrieval: RetrievalDep,
) -> QueryResponse:
    material = await materials.get(material_id)
    if material is None:
        raise ResourceNotFoundError(f"Material {material_id} not found")
    unit = body.unit if body.unit is not None else material.unit
    results = await retrieval.retrieve(material_id, unit, body.text, body.limit)
    return QueryResponse(
        material_id=material_id,
        results=[RetrievedChunk.from_result(r) for r in results],
    )


@router.post(
    "/materials/{material_id}/question-plan",
    response_model=QuestionPlanResponse,
    responses=_ERROR_RESPONSES,
    summary="Spread requested question counts across a material's chunks",
)
async def plan_questions(
    material_id: str,
    body: QuestionPlanRequest,
    pipeline: PipelineDep,
) -> QuestionPlanResponse:
    allocations = await pipeline.plan_questions(material_id, body.to_requirements())
    return QuestionPlanResponse(
        material_id=material_id,
        allocations=[ChunkAllocationResponse.from_allocation(a) for a in allocations],
    )


@router.post(
    "/router/decide",
    response_model=RouteResponse,
    responses={422: {"model": ErrorResponse}},
    summary="Decide whether a chat message needs retrieval",
)
async def decide_route(body: RouteRequest, query_router: RouterDep) -> RouteResponse:
    decision = await query_router.decide(body.message)
    return RouteResponse(**decision.model_dump())


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(vector_store: VectorStoreDep, gateway: GatewayDep) -> HealthResponse:
    """Report whether the similarity store and embedding backend respond.

    The service stays usable with either down (fallback storage and
    positional retrieval), so the status is ``degraded`` rather than an
    error.
    """
    providers = {
        "chromadb": await vector_store.is_primary_available(),
        "ollama": await gateway.test_connection(),
    }
    status = "ok" if all(providers.values()) else "degraded"
    return HealthResponse(status=status, version=_VERSION, providers=providers)
