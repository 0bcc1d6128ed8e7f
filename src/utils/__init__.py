"""Utility modules for CourseRAG.

- **errors** -- Domain exception hierarchy rooted at CourseRAGError.
- **concurrency** -- sequential-batch gather that bounds concurrent load on
  the inference backend.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text** -- token estimation, heading detection, sentence splitting and
  keyword extraction shared by the chunker and the parser.
"""

from src.utils.concurrency import batched_gather
from src.utils.errors import (
    ConfigurationError,
    CourseRAGError,
    DocumentParsingError,
    ExternalServiceError,
    PipelineError,
    ResourceNotFoundError,
    ValidationError,
    VectorStoreError,
)
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "CourseRAGError",
    "DocumentParsingError",
    "ExternalServiceError",
    "PipelineError",
    "ResourceNotFoundError",
    "ValidationError",
    "VectorStoreError",
    "batched_gather",
    "configure_logging",
    "get_logger",
]
