"""ChromaDB vector store provider adapter.

Wraps a ChromaDB client to implement :class:`IVectorStoreProvider`.  Uses an
embedded ``PersistentClient`` by default, or ``HttpClient`` when a server URL
is configured.  Cosine distance; vectors are always pre-computed.

ChromaDB metadata values must be primitive scalars.  Every value is written
as a string and parsed back to its natural type on read, so filters compare
string to string regardless of which client wrote the record.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.  A version mismatch
# between ChromaDB's bundled PostHog client and the installed one raises
# "capture() takes 1 positional argument but 3 were given".
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import httpx
import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import (
    ChunkMetadata,
    ChunkRecord,
    MetadataScalar,
    RetrievalResult,
    SearchFilters,
)
from src.utils.errors import VectorStoreError

logger = structlog.get_logger(logger_name=__name__)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    Passing it stops ChromaDB from downloading its default ONNX model on
    collection creation; every vector arrives pre-computed.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "CourseRAG uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        return "noop_precomputed"


def to_metadata_str(value: MetadataScalar) -> str:
    """Coerce a metadata scalar to its stored string form."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_where(filters: SearchFilters) -> dict[str, Any] | None:
    """Translate :class:`SearchFilters` to a ChromaDB ``where`` clause.

    Zero conditions yield ``None`` (unrestricted), one condition is passed
    through as-is, and two or more are wrapped in ``$and``.  ChromaDB rejects
    a plain merged ``{"a": 1, "b": 2}`` object, so the wrapper is mandatory.
    """
    conditions = [
        {key: to_metadata_str(value) for key, value in cond.items()}
        for cond in filters.as_conditions()
    ]
    if not conditions:
        return None
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


class ChromaDBProvider(IVectorStoreProvider):
    """Primary chunk store backed by ChromaDB.

    The collection is created lazily on first use with get-or-create
    semantics, so constructing the provider never touches the server.

    Parameters
    ----------
    persist_directory:
        On-disk location for the embedded client (ignored when
        ``chroma_url`` is set).
    collection_name:
        Collection holding every material's chunks.
    chroma_url:
        Optional ``http(s)://host:port`` of a ChromaDB server.
    client:
        Pre-built ChromaDB client, mainly for tests.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "material_chunks",
        chroma_url: str = "",
        client: Any | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._chroma_url = chroma_url
        self._client = client
        self._collection: Any | None = None
        self._dimension: int | None = None

    # ------------------------------------------------------------------
    # Lazy client / collection
    # ------------------------------------------------------------------

    def _get_client(self) -> Any:
        if self._client is None:
            telemetry_off = chromadb.config.Settings(anonymized_telemetry=False)
            if self._chroma_url:
                url = httpx.URL(self._chroma_url)
                self._client = chromadb.HttpClient(
                    host=url.host,
                    port=url.port or (443 if url.scheme == "https" else 8000),
                    ssl=url.scheme == "https",
                    settings=telemetry_off,
                )
            else:
                self._client = chromadb.PersistentClient(
                    path=self._persist_directory,
                    settings=telemetry_off,
                )
        return self._client

    def _get_collection(self) -> Any:
        if self._collection is None:
            client = self._get_client()
            # Collections created by another client may carry a different
            # persisted embedding function; reopen without one in that case.
            try:
                self._collection = client.get_or_create_collection(
                    name=self._collection_name,
                    metadata={"hnsw:space": "cosine"},
                    embedding_function=_NoopEmbeddingFunction(),
                )
            except ValueError:
                self._collection = client.get_or_create_collection(
                    name=self._collection_name,
                    metadata={"hnsw:space": "cosine"},
                )
            logger.info("chromadb_collection_ready", collection=self._collection_name)
        return self._collection

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def heartbeat(self) -> bool:
        try:
            await asyncio.to_thread(self._heartbeat_sync)
            return True
        except Exception as exc:
            logger.warning("chromadb_heartbeat_failed", error=str(exc))
            return False

    async def upsert_chunks(self, records: list[ChunkRecord]) -> int:
        if not records:
            return 0

        try:
            await asyncio.to_thread(self._upsert_sync, records)
        except VectorStoreError:
            raise
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "chromadb_upsert_chunks",
            material_id=records[0].material_id,
            count=len(records),
        )
        return len(records)

    async def search(
        self,
        query_embedding: list[float],
        filters: SearchFilters,
        limit: int = 5,
    ) -> list[RetrievalResult]:
        where = build_where(filters)
        try:
            results = await asyncio.to_thread(self._query_sync, query_embedding, where, limit)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results or not results["ids"] or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        documents = results["documents"][0] if results.get("documents") else [""] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [None] * len(ids)

        hits = [
            self._metadata_to_result(record_id, doc or "", meta or {}, distance)
            for record_id, doc, meta, distance in zip(ids, documents, metadatas, distances)
        ]
        logger.debug("chromadb_search", where=where, results_count=len(hits))
        return hits

    async def delete_material(self, material_id: str) -> int:
        try:
            deleted = await asyncio.to_thread(self._delete_sync, material_id)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_delete_material", material_id=material_id, deleted_count=deleted)
        return deleted

    async def count(self, filters: SearchFilters) -> int:
        try:
            return await asyncio.to_thread(self._count_sync, build_where(filters))
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    # -- Sync helpers (executed via asyncio.to_thread) ---------------------

    def _heartbeat_sync(self) -> None:
        self._get_client().heartbeat()

    def _upsert_sync(self, records: list[ChunkRecord]) -> None:
        collection = self._get_collection()
        self._check_dimensions(collection, records)
        collection.upsert(
            ids=[r.record_id for r in records],
            embeddings=[r.embedding for r in records],
            documents=[r.content for r in records],
            metadatas=[self._record_to_metadata(r) for r in records],
        )

    def _query_sync(
        self, query_embedding: list[float], where: dict[str, Any] | None, limit: int
    ) -> dict[str, Any] | None:
        collection = self._get_collection()
        total = collection.count()
        if total == 0:
            return None

        kwargs: dict[str, Any] = {
            "query_embeddings": [query_embedding],
            "n_results": max(1, min(limit, total)),
            "include": ["documents", "metadatas", "distances"],
        }
        if where is not None:
            kwargs["where"] = where
        return collection.query(**kwargs)

    def _delete_sync(self, material_id: str) -> int:
        collection = self._get_collection()
        existing = collection.get(where={"materialId": material_id}, include=["metadatas"])
        ids = existing["ids"] or []
        if ids:
            collection.delete(ids=ids)
        return len(ids)

    def _count_sync(self, where: dict[str, Any] | None) -> int:
        collection = self._get_collection()
        if where is None:
            return collection.count()
        existing = collection.get(where=where, include=["metadatas"])
        return len(existing["ids"] or [])

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        return bool(self._chroma_url or self._persist_directory or self._client)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _check_dimensions(self, collection: Any, records: list[ChunkRecord]) -> None:
        """Reject batches whose vectors disagree with each other or the collection."""
        dims = {len(r.embedding) for r in records}
        if 0 in dims:
            raise VectorStoreError(
                message="Refusing to store a chunk with an empty embedding",
                provider_name=self.get_provider_name(),
            )
        if len(dims) > 1:
            raise VectorStoreError(
                message=f"Inconsistent embedding dimensions in batch: {sorted(dims)}",
                provider_name=self.get_provider_name(),
            )
        batch_dim = dims.pop()

        if self._dimension is None and collection.count() > 0:
            sample = collection.peek(limit=1)
            embeddings = sample.get("embeddings") if sample else None
            if embeddings is not None and len(embeddings) > 0:
                self._dimension = len(embeddings[0])

        if self._dimension is not None and self._dimension != batch_dim:
            logger.error(
                "embedding_dimension_mismatch",
                stored_dim=self._dimension,
                batch_dim=batch_dim,
            )
            raise VectorStoreError(
                message=(
                    f"Embedding dimension mismatch: collection has {self._dimension}-dim "
                    f"vectors but batch has {batch_dim}-dim vectors"
                ),
                provider_name=self.get_provider_name(),
            )
        self._dimension = batch_dim

    @staticmethod
    def _record_to_metadata(record: ChunkRecord) -> dict[str, str]:
        meta: dict[str, MetadataScalar] = {
            "materialId": record.material_id,
            "unit": record.unit,
            "chunkIndex": record.chunk_index,
            "title": record.title,
            "tokenCount": record.token_count,
            "headingLevel": record.metadata.heading_level,
            "hasSubsections": record.metadata.has_subsections,
            "topicKeywords": ",".join(record.metadata.topic_keywords),
        }
        return {key: to_metadata_str(value) for key, value in meta.items()}

    @staticmethod
    def _metadata_to_result(
        record_id: str,
        document: str,
        meta: dict[str, Any],
        distance: float | None,
    ) -> RetrievalResult:
        """Reverse :meth:`_record_to_metadata`, tolerating missing keys."""
        keywords = str(meta.get("topicKeywords", "") or "")
        unit_raw = meta.get("unit")
        return RetrievalResult(
            record_id=record_id,
            material_id=str(meta.get("materialId", "")),
            chunk_index=_parse_int(meta.get("chunkIndex"), 0),
            unit=_parse_int(unit_raw, 0) if unit_raw is not None else None,
            title=str(meta.get("title", "")),
            content=document,
            token_count=_parse_int(meta.get("tokenCount"), 0),
            metadata=ChunkMetadata(
                heading_level=min(6, max(1, _parse_int(meta.get("headingLevel"), 1))),
                has_subsections=str(meta.get("hasSubsections", "")).lower() == "true",
                topic_keywords=[k for k in keywords.split(",") if k],
            ),
            distance=float(distance) if distance is not None else None,
            source="primary",
        )


def _parse_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
