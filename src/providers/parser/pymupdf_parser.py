"""Document parser backed by PyMuPDF (fitz).

PDFs are read page by page from memory; plain-text and markdown uploads are
decoded as UTF-8 and passed through.  Extracted PDF text is converted to
markdown by promoting heading-like lines (ALL CAPS titles, "Chapter 3",
"Unit 2", "1. Introduction", "2.1 Scope") to ``#`` headings so the chunker
can split on them.

Quality problems that do not make the document unusable (no headings, lots
of non-printable characters) are reported as ``warnings`` on the result.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.interfaces.document_parser import IDocumentParser
from src.models.rag import ParsedDocument
from src.utils.errors import DocumentParsingError
from src.utils.text import HEADING_RE

logger = structlog.get_logger(logger_name=__name__)

_PDF_EXTENSIONS = frozenset({".pdf"})
_TEXT_EXTENSIONS = frozenset({".md", ".markdown", ".txt"})

_MIN_TEXT_CHARS = 100
_NON_PRINTABLE_RATIO = 0.1

_CHAPTER_RE = re.compile(r"^(CHAPTER|UNIT)\s+\d+", re.IGNORECASE)
_CAPS_TITLE_RE = re.compile(r"^[A-Z][A-Z\s]{5,30}$")
_NUMBERED_SECTION_RE = re.compile(r"^\d+\.\s*[A-Z]")
_SUBSECTION_RE = re.compile(r"^\d+\.\d+")
_COLON_TITLE_RE = re.compile(r"^[A-Z][a-zA-Z\s]{10,50}:$")
_NON_PRINTABLE_RE = re.compile(r"[^\x20-\x7E\n\r\t]")
_BULLET_RE = re.compile(r"^[•\-*]\s+")


def heading_level(line: str) -> int | None:
    """Return the markdown heading level for a heading-like line, else ``None``."""
    if _CHAPTER_RE.match(line):
        return 1
    if _SUBSECTION_RE.match(line):
        return 3
    if _CAPS_TITLE_RE.match(line) or _NUMBERED_SECTION_RE.match(line):
        return 2
    if _COLON_TITLE_RE.match(line):
        return 2
    return None


def text_to_markdown(text: str) -> str:
    """Normalize line endings, collapse blank runs, and promote headings."""
    cleaned = re.sub(r"\n{3,}", "\n\n", text.replace("\r\n", "\n").replace("\r", "\n")).strip()

    lines: list[str] = []
    for raw in cleaned.split("\n"):
        line = raw.strip()
        if not line:
            lines.append("")
            continue
        level = heading_level(line)
        if level is not None:
            lines.append(f"{'#' * level} {line}")
        elif _BULLET_RE.match(line):
            lines.append("- " + _BULLET_RE.sub("", line, count=1))
        else:
            lines.append(line)
    return "\n".join(lines)


def validate_parsed(document: ParsedDocument) -> tuple[list[str], list[str]]:
    """Return ``(errors, warnings)`` describing the extraction quality."""
    errors: list[str] = []
    warnings: list[str] = []

    if len(document.text) < _MIN_TEXT_CHARS:
        errors.append(f"Extracted text is too short (less than {_MIN_TEXT_CHARS} characters)")
    if document.text:
        ratio = len(_NON_PRINTABLE_RE.findall(document.text)) / len(document.text)
        if ratio > _NON_PRINTABLE_RATIO:
            warnings.append("High ratio of non-printable characters detected")
    if not any(HEADING_RE.match(line) for line in document.markdown.split("\n")):
        warnings.append("No headings detected in the content")
    if document.page_count == 0:
        errors.append("No pages detected in document")
    return errors, warnings


class PyMuPDFDocumentParser(IDocumentParser):
    """Parses PDF, markdown and plain-text uploads.

    Parameters
    ----------
    strict:
        When ``True``, validation errors (text too short, no pages) raise
        :class:`DocumentParsingError`.  Otherwise they are downgraded to
        warnings and only completely empty output fails.
    """

    def __init__(self, strict: bool = False) -> None:
        self._strict = strict

    async def parse(self, data: bytes, filename: str) -> ParsedDocument:
        suffix = Path(filename).suffix.lower()
        if suffix in _PDF_EXTENSIONS:
            text, pages = await asyncio.to_thread(self._extract_pdf, data, filename)
            markdown = text_to_markdown(text)
        elif suffix in _TEXT_EXTENSIONS:
            text = self._decode_text(data, filename)
            pages = 1
            markdown = text if suffix != ".txt" else text_to_markdown(text)
        else:
            raise DocumentParsingError(
                message=f"Unsupported file type: {suffix or filename}",
                provider_name=self.get_provider_name(),
            )

        if not text.strip():
            raise DocumentParsingError(
                message=f"No text could be extracted from {filename}",
                provider_name=self.get_provider_name(),
            )

        document = ParsedDocument(text=text, markdown=markdown, page_count=pages)
        errors, warnings = validate_parsed(document)
        if errors and self._strict:
            raise DocumentParsingError(
                message="; ".join(errors),
                provider_name=self.get_provider_name(),
            )

        all_warnings = [*errors, *warnings]
        logger.info(
            "document_parsed",
            filename=filename,
            pages=pages,
            chars=len(text),
            warnings=all_warnings,
        )
        return document.model_copy(update={"warnings": all_warnings})

    def supports(self, filename: str) -> bool:
        return Path(filename).suffix.lower() in (_PDF_EXTENSIONS | _TEXT_EXTENSIONS)

    def get_provider_name(self) -> str:
        return "pymupdf"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _extract_pdf(self, data: bytes, filename: str) -> tuple[str, int]:
        """Extract text from every page (runs in a worker thread)."""
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise DocumentParsingError(
                message=f"Could not open PDF {filename}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        try:
            page_texts = [doc[i].get_text("text").strip() for i in range(len(doc))]
            page_count = len(doc)
        finally:
            doc.close()

        return "\n\n".join(t for t in page_texts if t), page_count

    def _decode_text(self, data: bytes, filename: str) -> str:
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise DocumentParsingError(
                message=f"{filename} is not valid UTF-8 text",
                provider_name=self.get_provider_name(),
            ) from exc
