"""Unit tests for the ContentChunker -- heading-aware, token-bounded chunking."""

from __future__ import annotations

import math

import pytest

from src.models.rag import ChunkingMethod, ChunkingOptions
from src.services.ingestion.chunker import ContentChunker
from src.utils.errors import ValidationError
from src.utils.text import estimate_tokens

_DB = "Relational databases normalize tables reducing redundancy anomalies."


def _paragraphs(count: int, sentence: str = _DB) -> str:
    return "\n\n".join(" ".join([sentence] * 8) for _ in range(count))


class TestSmallDocuments:
    def test_under_budget_is_single_chunk_titled_by_first_heading(self) -> None:
        chunks = ContentChunker().chunk("# Week 1\n\nIntro text.\n\n## Reading\n\nMore.")

        assert len(chunks) == 1
        assert chunks[0].title == "Week 1"
        assert chunks[0].metadata.has_subsections is True

    def test_no_heading_uses_full_content_title(self) -> None:
        chunks = ContentChunker().chunk("Just a paragraph of notes.")
        assert chunks[0].title == "Full Content"
        assert chunks[0].metadata.heading_level == 1

    @pytest.mark.parametrize("content", ["", "   \n\t  "])
    def test_empty_content_raises(self, content: str) -> None:
        with pytest.raises(ValidationError):
            ContentChunker().chunk(content)


class TestByHeading:
    def test_two_sections_yield_three_chunks(self, two_section_markdown: str) -> None:
        chunks = ContentChunker().chunk(two_section_markdown)

        assert [c.title for c in chunks] == ["Section One", "Section Two", "Section Two"]
        for chunk in chunks:
            assert 500 <= chunk.tokens <= 3000

    def test_continuation_parts_carry_heading_prefix(self, two_section_markdown: str) -> None:
        chunks = ContentChunker().chunk(two_section_markdown)

        assert chunks[1].content.startswith("## Section Two")
        assert chunks[2].content.startswith("[Section Two]\n\n")

    def test_prefix_omitted_without_preserve_context(self, two_section_markdown: str) -> None:
        options = ChunkingOptions(preserve_context=False)
        chunks = ContentChunker().chunk(two_section_markdown, options)
        assert not any(c.content.startswith("[") for c in chunks)

    def test_no_text_is_dropped(self, two_section_markdown: str) -> None:
        chunks = ContentChunker().chunk(two_section_markdown)
        joined = "\n".join(c.content for c in chunks)

        assert joined.count("Distributed consensus protocols") == 28 * 8
        assert joined.count("Relational databases") == 12 * 8

    def test_chunking_is_deterministic(self, two_section_markdown: str) -> None:
        chunker = ContentChunker()
        first = chunker.chunk(two_section_markdown)
        second = chunker.chunk(two_section_markdown)
        assert [c.model_dump() for c in first] == [c.model_dump() for c in second]

    def test_text_before_first_heading_is_introduction(self) -> None:
        content = f"{_paragraphs(12)}\n\n## Later\n\n{_paragraphs(12)}"
        chunks = ContentChunker().chunk(content)
        assert [c.title for c in chunks] == ["Introduction", "Later"]

    def test_small_section_merges_into_previous(self) -> None:
        content = (
            f"# Big\n\n{_paragraphs(12)}\n\n"
            "## Tiny\n\nA short aside.\n\n"
            f"## Big Two\n\n{_paragraphs(12)}"
        )
        chunks = ContentChunker().chunk(content)

        assert [c.title for c in chunks] == ["Big → Tiny", "Big Two"]
        assert chunks[0].metadata.has_subsections is True
        assert "A short aside." in chunks[0].content
        assert chunks[1].metadata.heading_level == 2

    @pytest.mark.parametrize("count", [30, 52, 74, 95, 119, 160])
    def test_oversized_section_splits_into_balanced_parts(self, count: int) -> None:
        paragraph = " ".join(["Replicated logs keep followers consistent with the leader."] * 8)
        content = "## A\n\n" + "\n\n".join([paragraph] * count)
        chunks = ContentChunker().chunk(content)
        tokens = [c.tokens for c in chunks]

        assert len(chunks) >= 2
        assert len(chunks) <= math.ceil(estimate_tokens(content) / 3000) + 1
        assert all(500 <= t <= 3000 for t in tokens)
        assert max(tokens) - min(tokens) <= 300
        assert sum(c.content.count("Replicated logs") for c in chunks) == count * 8

    def test_single_oversized_paragraph_is_split_on_sentences(self) -> None:
        content = "# Wall\n\n" + " ".join([_DB] * 300)
        chunks = ContentChunker().chunk(content)

        assert len(chunks) >= 2
        for chunk in chunks:
            assert chunk.tokens <= 3000
            assert chunk.content.rstrip().endswith(".")

    def test_keywords_extracted(self, two_section_markdown: str) -> None:
        chunks = ContentChunker().chunk(two_section_markdown)
        assert "relational" in chunks[0].metadata.topic_keywords


class TestByTokens:
    def test_windows_overlap_by_one_paragraph(self) -> None:
        paragraphs = [f"Paragraph {i}. " + " ".join([_DB] * 8) for i in range(40)]
        content = "# Notes\n\n" + "\n\n".join(paragraphs)
        options = ChunkingOptions(
            method=ChunkingMethod.BY_TOKENS,
            max_tokens_per_chunk=1000,
            min_tokens_per_chunk=100,
            overlap_tokens=200,
        )

        chunks = ContentChunker().chunk(content, options)

        assert len(chunks) > 1
        assert all(c.title == "Notes" for c in chunks)
        for previous, current in zip(chunks, chunks[1:]):
            last_paragraph = previous.content.split("\n\n")[-1]
            assert current.content.startswith(last_paragraph)

    def test_every_paragraph_appears(self) -> None:
        paragraphs = [f"Paragraph {i}. " + " ".join([_DB] * 8) for i in range(40)]
        options = ChunkingOptions(
            method=ChunkingMethod.BY_TOKENS, max_tokens_per_chunk=1000, min_tokens_per_chunk=0
        )

        chunks = ContentChunker().chunk("\n\n".join(paragraphs), options)
        joined = "\n\n".join(c.content for c in chunks)

        for i in range(40):
            assert f"Paragraph {i}. " in joined


class TestChunkingOptions:
    def test_min_above_max_rejected(self) -> None:
        with pytest.raises(ValueError):
            ChunkingOptions(max_tokens_per_chunk=100, min_tokens_per_chunk=200)

    def test_defaults(self) -> None:
        options = ChunkingOptions()
        assert options.max_tokens_per_chunk == 3000
        assert options.min_tokens_per_chunk == 500
        assert options.method is ChunkingMethod.BY_HEADING
        assert options.preserve_context is True
