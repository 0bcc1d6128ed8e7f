"""Unit tests for the SQLite material store and fallback chunk table."""

from __future__ import annotations

import pytest

from src.models.material import Material, ProcessingStatus
from src.models.rag import ChunkMetadata, ChunkRecord
from src.utils.errors import ResourceNotFoundError


def _material(material_id: str = "mat-1", **overrides) -> Material:
    defaults = {
        "id": material_id,
        "title": "Distributed Systems",
        "filename": "ds.pdf",
        "file_path": f"/tmp/{material_id}.pdf",
        "unit": 2,
    }
    defaults.update(overrides)
    return Material(**defaults)


def _record(material_id: str, index: int, unit: int = 1) -> ChunkRecord:
    return ChunkRecord(
        material_id=material_id,
        chunk_index=index,
        unit=unit,
        title=f"Part {index}",
        content=f"body {index}",
        token_count=3,
        embedding=[0.1, 0.2],
        metadata=ChunkMetadata(heading_level=2, topic_keywords=["quorum"]),
    )


class TestSQLiteMaterialStore:
    @pytest.mark.asyncio
    async def test_create_and_get(self, material_store) -> None:
        await material_store.create(_material())

        loaded = await material_store.get("mat-1")

        assert loaded is not None
        assert loaded.title == "Distributed Systems"
        assert loaded.unit == 2
        assert loaded.parsing_status is ProcessingStatus.PENDING
        assert loaded.embedding_status is None

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, material_store) -> None:
        assert await material_store.get("nope") is None

    @pytest.mark.asyncio
    async def test_update_status_fields(self, material_store) -> None:
        await material_store.create(_material())

        updated = await material_store.update(
            "mat-1",
            parsing_status=ProcessingStatus.COMPLETED,
            parsed_content="# Notes",
            page_count=3,
            embedding_status=ProcessingStatus.PROCESSING,
        )

        assert updated.parsing_status is ProcessingStatus.COMPLETED
        assert updated.parsed_content == "# Notes"
        assert updated.page_count == 3
        assert updated.embedding_status is ProcessingStatus.PROCESSING
        assert updated.ready_for_embedding is True
        assert updated.updated_at >= updated.created_at

    @pytest.mark.asyncio
    async def test_update_unknown_column_rejected(self, material_store) -> None:
        await material_store.create(_material())
        with pytest.raises(ValueError):
            await material_store.update("mat-1", file_path="/etc/passwd")

    @pytest.mark.asyncio
    async def test_update_missing_material(self, material_store) -> None:
        with pytest.raises(ResourceNotFoundError):
            await material_store.update("ghost", parsing_status=ProcessingStatus.FAILED)

    @pytest.mark.asyncio
    async def test_delete(self, material_store) -> None:
        await material_store.create(_material())
        assert await material_store.delete("mat-1") is True
        assert await material_store.delete("mat-1") is False
        assert await material_store.get("mat-1") is None

    @pytest.mark.asyncio
    async def test_list_by_status(self, material_store) -> None:
        await material_store.create(_material("a"))
        await material_store.create(_material("b", parsing_status=ProcessingStatus.COMPLETED,
                                              embedding_status=ProcessingStatus.PROCESSING))
        await material_store.create(_material("c", parsing_status=ProcessingStatus.COMPLETED,
                                              embedding_status=ProcessingStatus.COMPLETED))

        pending = await material_store.list_by_status(
            parsing=[ProcessingStatus.PENDING, ProcessingStatus.PROCESSING],
            embedding=[ProcessingStatus.PROCESSING],
        )

        assert sorted(m.id for m in pending) == ["a", "b"]
        assert await material_store.list_by_status() == []


class TestSQLiteChunkStore:
    @pytest.mark.asyncio
    async def test_insert_and_read_in_chunk_order(self, chunk_store) -> None:
        await chunk_store.insert_chunks([_record("m1", 2), _record("m1", 0), _record("m1", 1)])

        rows = await chunk_store.read_chunks("m1", limit=10)

        assert [r.chunk_index for r in rows] == [0, 1, 2]
        assert rows[0].record_id == "m1_0"
        assert rows[0].source == "fallback"
        assert rows[0].distance is None
        assert rows[0].metadata.topic_keywords == ["quorum"]

    @pytest.mark.asyncio
    async def test_read_respects_limit(self, chunk_store) -> None:
        await chunk_store.insert_chunks([_record("m1", i) for i in range(5)])
        assert len(await chunk_store.read_chunks("m1", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_duplicate_keys_skipped(self, chunk_store) -> None:
        assert await chunk_store.insert_chunks([_record("m1", 0), _record("m1", 1)]) == 2
        assert await chunk_store.insert_chunks([_record("m1", 1), _record("m1", 2)]) == 1
        assert await chunk_store.count("m1") == 3

    @pytest.mark.asyncio
    async def test_count_by_unit_and_delete(self, chunk_store) -> None:
        await chunk_store.insert_chunks([_record("m1", 0, unit=1), _record("m1", 1, unit=2)])
        await chunk_store.insert_chunks([_record("m2", 0)])

        assert await chunk_store.count("m1", unit=2) == 1
        assert await chunk_store.delete_material("m1") == 2
        assert await chunk_store.count("m1") == 0
        assert await chunk_store.count("m2") == 1

    @pytest.mark.asyncio
    async def test_empty_insert(self, chunk_store) -> None:
        assert await chunk_store.insert_chunks([]) == 0
