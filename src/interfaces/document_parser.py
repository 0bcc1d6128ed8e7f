"""Abstract base class for document-to-text parsers.

Parsers are black boxes to the pipeline: raw bytes in, normalized text plus
markdown and a page count out.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import ParsedDocument


# Concrete implementation: PyMuPDFDocumentParser (src/providers/parser/)
class IDocumentParser(ABC):
    """Contract for document parsers used by the ingestion pipeline."""

    @abstractmethod
    async def parse(self, data: bytes, filename: str) -> ParsedDocument:
        """Convert raw file bytes to text.

        Parameters
        ----------
        data:
            The file contents.
        filename:
            Original filename; the extension selects the decoding strategy.

        Returns
        -------
        ParsedDocument
            Text, markdown, page count and any validation warnings.

        Raises
        ------
        src.utils.errors.DocumentParsingError
            If the document cannot be decoded or yields no text.
        """

    @abstractmethod
    def supports(self, filename: str) -> bool:
        """Return ``True`` if this parser handles ``filename``'s extension."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this parser."""
