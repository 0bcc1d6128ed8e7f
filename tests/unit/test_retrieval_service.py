"""Unit tests for RetrievalService -- progressive widening and fallback."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.rag import EmbeddingResult, RetrievalResult, SearchFilters
from src.services.ingestion.embedding_gateway import EmbeddingGateway
from src.services.retrieval_service import CONTENT_NOT_READY, RetrievalService
from src.services.vector_store import VectorStoreService
from src.utils.errors import ExternalServiceError, ValidationError, VectorStoreError


def _hit(index: int, source: str = "primary") -> RetrievalResult:
    return RetrievalResult(
        record_id=f"m1_{index}",
        material_id="m1",
        chunk_index=index,
        unit=1,
        title=f"Part {index}",
        content=f"content {index}",
        distance=0.1 * index if source == "primary" else None,
        source=source,
    )


def _service(search=None, fallback=None, embed=None, **kwargs) -> tuple[RetrievalService, MagicMock]:
    gateway = MagicMock(spec=EmbeddingGateway)
    gateway.generate_embedding = embed or AsyncMock(
        return_value=EmbeddingResult(embedding=[0.1, 0.2], token_count=3)
    )
    store = MagicMock(spec=VectorStoreService)
    store.search_chunks = search or AsyncMock(return_value=[_hit(0), _hit(1)])
    store.read_fallback = fallback or AsyncMock(return_value=[])
    return RetrievalService(gateway, store, **kwargs), store


class TestRetrieve:
    @pytest.mark.asyncio
    async def test_unit_scoped_hit(self) -> None:
        service, store = _service()

        results = await service.retrieve("m1", 1, "what is raft", limit=2)

        assert [r.chunk_index for r in results] == [0, 1]
        store.search_chunks.assert_awaited_once_with(
            [0.1, 0.2], SearchFilters(material_id="m1", unit=1), 2
        )
        store.read_fallback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_widens_to_material_when_unit_empty(self) -> None:
        search = AsyncMock(side_effect=[[], [_hit(3)]])
        service, store = _service(search=search)

        results = await service.retrieve("m1", 7, "what is raft")

        assert [r.chunk_index for r in results] == [3]
        second_filters = search.await_args_list[1].args[1]
        assert second_filters == SearchFilters(material_id="m1")

    @pytest.mark.asyncio
    async def test_no_widening_without_unit(self) -> None:
        search = AsyncMock(return_value=[])
        service, store = _service(search=search, fallback=AsyncMock(return_value=[_hit(0, "fallback")]))

        results = await service.retrieve("m1", None, "what is raft", limit=3)

        assert search.await_count == 1
        assert results[0].source == "fallback"
        store.read_fallback.assert_awaited_once_with("m1", 6)

    @pytest.mark.asyncio
    async def test_primary_error_reads_fallback(self) -> None:
        fallback = AsyncMock(return_value=[_hit(0, "fallback"), _hit(1, "fallback")])
        service, store = _service(
            search=AsyncMock(side_effect=VectorStoreError("down")),
            fallback=fallback,
            fallback_multiplier=3,
        )

        results = await service.retrieve("m1", 1, "q", limit=2)

        assert len(results) == 2
        fallback.assert_awaited_once_with("m1", 6)

    @pytest.mark.asyncio
    async def test_embedding_failure_reads_fallback(self) -> None:
        fallback = AsyncMock(return_value=[_hit(0, "fallback")])
        service, store = _service(
            embed=AsyncMock(side_effect=ExternalServiceError("ollama down")), fallback=fallback
        )

        results = await service.retrieve("m1", 1, "q")

        store.search_chunks.assert_not_awaited()
        assert results[0].source == "fallback"

    @pytest.mark.asyncio
    async def test_fallback_failure_returns_empty(self) -> None:
        service, _ = _service(
            search=AsyncMock(side_effect=VectorStoreError("down")),
            fallback=AsyncMock(side_effect=RuntimeError("sqlite locked")),
        )
        assert await service.retrieve("m1", 1, "q") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("text", "limit"), [("", 5), ("   ", 5), ("q", 0), ("q", -1)])
    async def test_invalid_input(self, text: str, limit: int) -> None:
        service, _ = _service()
        with pytest.raises(ValidationError):
            await service.retrieve("m1", 1, text, limit=limit)

    @pytest.mark.asyncio
    async def test_default_limit_applied(self) -> None:
        service, store = _service(default_limit=4)
        await service.retrieve("m1", 1, "q")
        assert store.search_chunks.await_args.args[2] == 4


class TestQueryAndContext:
    @pytest.mark.asyncio
    async def test_query_returns_contents(self) -> None:
        service, _ = _service()
        assert await service.query("m1", 1, "q") == ["content 0", "content 1"]

    @pytest.mark.asyncio
    async def test_build_context_joins(self) -> None:
        service, _ = _service()
        context = await service.build_context("m1", 1, "q")
        assert context == "content 0\n\n---\n\ncontent 1"

    @pytest.mark.asyncio
    async def test_build_context_when_nothing_stored(self) -> None:
        service, _ = _service(search=AsyncMock(return_value=[]))
        assert await service.build_context("m1", 1, "q") == CONTENT_NOT_READY
