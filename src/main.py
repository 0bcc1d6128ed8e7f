"""CourseRAG FastAPI application entry point.

Wires providers, services and routes together via constructor injection.
Configuration comes from ``.env`` / environment variables (``Settings``)
merged over ``config/config.yaml``.

``build_components`` / ``start_components`` / ``stop_components`` are also
used by the CLI, which runs the same stack without the web server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.api.websocket import websocket_progress
from src.config.loader import load_config
from src.config.settings import Settings
from src.models.rag import ChunkingMethod, ChunkingOptions
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.task_queue import IngestionTaskQueue
from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.parser.pymupdf_parser import PyMuPDFDocumentParser
from src.providers.storage.sqlite_chunk_store import SQLiteChunkStore
from src.providers.storage.sqlite_material_store import SQLiteMaterialStore
from src.providers.vector_store.chromadb_provider import ChromaDBProvider
from src.services.ingestion.chunker import ContentChunker
from src.services.ingestion.embedding_gateway import EmbeddingGateway
from src.services.ingestion.ingestion_pipeline import IngestionPipeline
from src.services.query_router import QueryRouter
from src.services.retrieval_service import RetrievalService
from src.services.vector_store import VectorStoreService
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


def _chunking_options(app_settings: Settings, app_config: dict[str, Any]) -> ChunkingOptions:
    chunking = app_config.get("chunking", {}) or {}
    return ChunkingOptions(
        max_tokens_per_chunk=app_settings.chunk_max_tokens,
        min_tokens_per_chunk=app_settings.chunk_min_tokens,
        overlap_tokens=app_settings.chunk_overlap_tokens,
        method=ChunkingMethod(chunking.get("method", ChunkingMethod.BY_HEADING.value)),
        preserve_context=bool(chunking.get("preserve_context", True)),
    )


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(
    app_settings: Settings, app_config: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components; the web app stores them on
    ``app.state``.
    """
    app_config = app_config if app_config is not None else {}

    http_client = httpx.AsyncClient(timeout=app_settings.ollama_timeout_seconds)
    embedding_provider = OllamaEmbeddingProvider(settings=app_settings, http_client=http_client)
    llm_provider = OllamaLLMProvider(settings=app_settings, http_client=http_client)

    chroma = ChromaDBProvider(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
        chroma_url=app_settings.chroma_url,
    )
    material_store = SQLiteMaterialStore(db_path=app_settings.sqlite_db_path)
    chunk_store = SQLiteChunkStore(db_path=app_settings.sqlite_db_path)
    vector_store = VectorStoreService(primary=chroma, fallback=chunk_store)

    options = _chunking_options(app_settings, app_config)
    gateway = EmbeddingGateway(
        provider=embedding_provider,
        chunker=ContentChunker(options),
        char_limit=app_settings.embedding_char_limit,
        batch_size=app_settings.embedding_batch_size,
        batch_pause=app_settings.embedding_batch_pause,
    )

    progress_tracker = ProgressTracker()
    task_queue = IngestionTaskQueue(
        workers=app_settings.ingestion_workers,
        max_size=app_settings.ingestion_queue_size,
    )
    ingestion_pipeline = IngestionPipeline(
        material_store=material_store,
        parser=PyMuPDFDocumentParser(),
        gateway=gateway,
        vector_store=vector_store,
        queue=task_queue,
        upload_dir=app_settings.upload_dir,
        progress=progress_tracker,
        chunking_options=options,
    )

    retrieval = app_config.get("retrieval", {}) or {}
    retrieval_service = RetrievalService(
        gateway=gateway,
        vector_store=vector_store,
        default_limit=app_settings.retrieval_default_limit,
        fallback_multiplier=int(retrieval.get("fallback_multiplier", 2)),
    )

    router_config = app_config.get("router", {}) or {}
    query_router = QueryRouter(
        llm=llm_provider,
        no_retrieval_phrases=router_config.get("no_retrieval_phrases"),
        temperature=app_settings.router_temperature,
        top_p=app_settings.router_top_p,
        max_tokens=app_settings.router_max_tokens,
    )

    return {
        "http_client": http_client,
        "embedding_provider": embedding_provider,
        "llm_provider": llm_provider,
        "material_store": material_store,
        "chunk_store": chunk_store,
        "vector_store": vector_store,
        "embedding_gateway": gateway,
        "progress_tracker": progress_tracker,
        "task_queue": task_queue,
        "ingestion_pipeline": ingestion_pipeline,
        "retrieval_service": retrieval_service,
        "query_router": query_router,
    }


async def start_components(components: dict[str, Any], recover: bool = True) -> None:
    """Create tables, start the ingestion workers and re-enqueue stuck work."""
    await components["material_store"].initialize()
    await components["chunk_store"].initialize()

    pipeline: IngestionPipeline = components["ingestion_pipeline"]
    components["task_queue"].start(pipeline.handle)
    if recover:
        await pipeline.recover()


async def stop_components(components: dict[str, Any]) -> None:
    await components["task_queue"].shutdown()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = getattr(application.state, "components", None) or build_components(
        settings, config
    )

    for key, value in components.items():
        setattr(application.state, key, value)

    await start_components(components)

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        chroma=settings.chroma_url or settings.chromadb_persist_dir,
        workers=settings.ingestion_workers,
    )

    yield

    await stop_components(components)
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(components: dict[str, Any] | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    *components* replaces the default :func:`build_components` assembly,
    which lets tests inject fakes.
    """
    application = FastAPI(
        title="CourseRAG API",
        version=_VERSION,
        description=(
            "Ingest course documents, chunk and embed them, and serve "
            "semantic retrieval for a course assistant."
        ),
        lifespan=_lifespan,
    )
    if components is not None:
        application.state.components = components

    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)

    @application.websocket("/ws/materials/{material_id}/progress")
    async def ws_progress(websocket: WebSocket, material_id: str) -> None:
        await websocket_progress(websocket, material_id)

    return application


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
