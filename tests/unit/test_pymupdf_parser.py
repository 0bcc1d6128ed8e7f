"""Unit tests for the PyMuPDF document parser."""

from __future__ import annotations

import fitz
import pytest

from src.providers.parser.pymupdf_parser import (
    PyMuPDFDocumentParser,
    heading_level,
    text_to_markdown,
)
from src.utils.errors import DocumentParsingError

_BODY = "Replication keeps copies of data on several machines for durability. " * 3


def _pdf_bytes(pages: list[str]) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


class TestHeadingDetection:
    @pytest.mark.parametrize(
        ("line", "level"),
        [
            ("Chapter 3", 1),
            ("UNIT 2 Storage", 1),
            ("2.1 Scope", 3),
            ("1. Introduction", 2),
            ("REPLICATION BASICS", 2),
            ("Consistency models covered:", 2),
            ("just a sentence of body text.", None),
        ],
    )
    def test_heading_level(self, line: str, level: int | None) -> None:
        assert heading_level(line) == level

    def test_text_to_markdown(self) -> None:
        text = "CHAPTER 1 Overview\r\n\r\n\r\n\r\nSome text.\n• first point\n2.1 Details"
        assert text_to_markdown(text) == (
            "# CHAPTER 1 Overview\n\nSome text.\n- first point\n### 2.1 Details"
        )


class TestTextUploads:
    @pytest.mark.asyncio
    async def test_markdown_passes_through(self) -> None:
        source = f"# Week 1\n\n{_BODY}"
        document = await PyMuPDFDocumentParser().parse(source.encode(), "week1.md")

        assert document.markdown == source
        assert document.page_count == 1
        assert document.warnings == []

    @pytest.mark.asyncio
    async def test_plain_text_headings_promoted(self) -> None:
        source = f"1. Introduction\n{_BODY}"
        document = await PyMuPDFDocumentParser().parse(source.encode(), "notes.txt")
        assert document.markdown.startswith("## 1. Introduction")

    @pytest.mark.asyncio
    async def test_bom_stripped(self) -> None:
        data = "\ufeff# Title\n\n".encode() + _BODY.encode()
        document = await PyMuPDFDocumentParser().parse(data, "notes.md")
        assert document.markdown.startswith("# Title")

    @pytest.mark.asyncio
    async def test_quality_problems_become_warnings(self) -> None:
        document = await PyMuPDFDocumentParser().parse(b"short note", "tiny.md")
        assert any("too short" in w for w in document.warnings)
        assert any("No headings" in w for w in document.warnings)

    @pytest.mark.asyncio
    async def test_strict_mode_raises_on_errors(self) -> None:
        with pytest.raises(DocumentParsingError, match="too short"):
            await PyMuPDFDocumentParser(strict=True).parse(b"short note", "tiny.md")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("data", "filename"),
        [
            (b"anything", "slides.pptx"),
            (b"   \n  ", "empty.md"),
            (b"\xff\xfe\x00bad", "latin.txt"),
        ],
    )
    async def test_unusable_uploads_raise(self, data: bytes, filename: str) -> None:
        with pytest.raises(DocumentParsingError):
            await PyMuPDFDocumentParser().parse(data, filename)

    def test_supports(self) -> None:
        parser = PyMuPDFDocumentParser()
        assert parser.supports("Lecture.PDF")
        assert parser.supports("notes.markdown")
        assert not parser.supports("archive.zip")


class TestPdfUploads:
    @pytest.mark.asyncio
    async def test_pdf_pages_extracted(self) -> None:
        data = _pdf_bytes(["CHAPTER 1 Basics", "Second page text about quorum reads."])

        document = await PyMuPDFDocumentParser().parse(data, "lecture.pdf")

        assert document.page_count == 2
        assert "# CHAPTER 1 Basics" in document.markdown
        assert "quorum reads" in document.text

    @pytest.mark.asyncio
    async def test_corrupt_pdf_raises(self) -> None:
        with pytest.raises(DocumentParsingError):
            await PyMuPDFDocumentParser().parse(b"%PDF-1.4 garbage", "broken.pdf")
