"""Custom exception hierarchy for CourseRAG.

All application exceptions inherit from :class:`CourseRAGError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "ollama", "chromadb", "sqlite") caused the failure.

The hierarchy is organized by ingestion/retrieval concern:

    CourseRAGError  (base -- catch-all for any CourseRAG error)
    +-- ValidationError          (bad caller input -- surfaces immediately)
    +-- ResourceNotFoundError    (unknown material id)
    +-- ExternalServiceError     (embedding / generation backend failure)
    +-- VectorStoreError         (primary similarity store failure)
    +-- DocumentParsingError     (document text extraction failure)
    +-- PipelineError            (task queue / state machine misuse)
    +-- ConfigurationError       (startup / missing config)

Callers recover from ExternalServiceError and VectorStoreError wherever a
fallback exists (relational store, heuristic router); ValidationError and
ResourceNotFoundError always reach the caller.
"""


class CourseRAGError(Exception):
    """Base exception for all CourseRAG errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[ollama] HTTP 500``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Caller errors
# ---------------------------------------------------------------------------

class ValidationError(CourseRAGError):
    """Raised when caller input is invalid (empty content, zero questions, ...)."""

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ResourceNotFoundError(CourseRAGError):
    """Raised when a referenced material does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / backend errors
# ---------------------------------------------------------------------------

class ExternalServiceError(CourseRAGError):
    """Raised when the inference backend fails or returns a malformed payload.

    Recovered locally wherever a fallback exists; otherwise recorded on the
    material with a FAILED status.
    """

    def __init__(
        self,
        message: str = "External service call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorStoreError(CourseRAGError):
    """Raised when the primary similarity store rejects or fails an operation.

    The vector store service catches this to route writes to the relational
    fallback table.
    """

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentParsingError(CourseRAGError):
    """Raised when a document cannot be converted to text."""

    def __init__(
        self,
        message: str = "Document parsing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(CourseRAGError):
    """Raised when ingestion orchestration fails (queue not running, queue full)."""

    def __init__(
        self,
        message: str = "Ingestion pipeline failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(CourseRAGError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
