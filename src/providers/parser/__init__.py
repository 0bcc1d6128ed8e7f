"""Document parser implementations."""

from src.providers.parser.pymupdf_parser import PyMuPDFDocumentParser

__all__ = ["PyMuPDFDocumentParser"]
