"""Shared pytest fixtures for the CourseRAG test suite."""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.providers.storage.sqlite_chunk_store import SQLiteChunkStore
from src.providers.storage.sqlite_material_store import SQLiteMaterialStore

_EMBED_DIM = 256
_WORD_RE = re.compile(r"[a-z]+")


def hashed_embedding(text: str, dim: int = _EMBED_DIM) -> list[float]:
    """Deterministic bag-of-words vector: each word adds 1.0 to an md5 bucket."""
    vector = [0.0] * dim
    for word in _WORD_RE.findall(text.lower()):
        bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % dim
        vector[bucket] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        vector[0] = 1.0
        return vector
    return [v / norm for v in vector]


def paragraph(sentence: str, repeats: int = 8) -> str:
    return " ".join([sentence] * repeats)


def section(heading: str, sentence: str, paragraphs: int, level: int = 2) -> str:
    body = "\n\n".join(paragraph(sentence) for _ in range(paragraphs))
    return f"{'#' * level} {heading}\n\n{body}"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Settings pointed at ``tmp_path`` with env/.env ignored."""

    def _make(**overrides) -> Settings:
        defaults = {
            "ollama_base_url": "http://ollama.test:11434",
            "chromadb_persist_dir": str(tmp_path / "chroma"),
            "sqlite_db_path": str(tmp_path / "course_rag.db"),
            "upload_dir": str(tmp_path / "uploads"),
            "embedding_batch_pause": 0.0,
        }
        defaults.update(overrides)
        return Settings(_env_file=None, **defaults)

    return _make


# ---------------------------------------------------------------------------
# Provider fakes
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MagicMock:
    """Embedding provider returning deterministic bag-of-words vectors."""
    mock = MagicMock(spec=IEmbeddingProvider)

    async def _embed(text: str) -> list[float]:
        return hashed_embedding(text)

    mock.embed_single = AsyncMock(side_effect=_embed)
    mock.list_models = AsyncMock(return_value=["nomic-embed-text:v1.5"])
    mock.get_model_name.return_value = "nomic-embed-text:v1.5"
    mock.get_provider_name.return_value = "mock-embed"
    mock.is_available.return_value = True
    return mock


@pytest.fixture
def mock_llm() -> MagicMock:
    mock = MagicMock(spec=ILLMProvider)
    mock.complete = AsyncMock(return_value="{}")
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    return mock


# ---------------------------------------------------------------------------
# SQLite stores
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def material_store(tmp_path: Path) -> SQLiteMaterialStore:
    store = SQLiteMaterialStore(db_path=tmp_path / "course_rag.db")
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def chunk_store(tmp_path: Path) -> SQLiteChunkStore:
    store = SQLiteChunkStore(db_path=tmp_path / "course_rag.db")
    await store.initialize()
    return store


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

DATABASES_SENTENCE = (
    "Relational databases normalize tables reducing redundancy anomalies."
)
CONSENSUS_SENTENCE = (
    "Distributed consensus protocols replicate logs across servers reliably."
)


@pytest.fixture
def two_section_markdown() -> str:
    """Two H2 sections of roughly 1,700 and 4,100 estimated tokens."""
    return "\n\n".join(
        [
            section("Section One", DATABASES_SENTENCE, paragraphs=12),
            section("Section Two", CONSENSUS_SENTENCE, paragraphs=28),
        ]
    )
