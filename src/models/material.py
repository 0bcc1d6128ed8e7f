"""Material lifecycle models.

A :class:`Material` is one uploaded course document.  It carries two
independent status fields that together form the ingestion state machine:

    parsing_status:   PENDING -> PROCESSING -> {COMPLETED, FAILED}
    embedding_status: (None)  -> PROCESSING -> {COMPLETED, FAILED}

Only the ingestion pipeline (src/services/ingestion/ingestion_pipeline.py)
mutates the status fields.  Models are frozen; updates go through the
material store, which returns fresh instances.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProcessingStatus(str, Enum):  # noqa: UP042
    """Status of one ingestion stage for a material."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class Material(BaseModel):
    """One uploaded document and its ingestion state."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique material identifier (UUID hex).")
    title: str = Field(description="Human-readable title, defaults to the file stem.")
    filename: str = Field(description="Original upload filename.")
    file_path: str = Field(description="Where the uploaded bytes are stored on disk.")
    unit: int = Field(default=1, ge=0, description="Course unit the material belongs to.")
    course_id: str | None = Field(default=None, description="Owning course, if known.")

    parsing_status: ProcessingStatus = ProcessingStatus.PENDING
    parsing_error: str | None = None
    parsed_content: str | None = Field(
        default=None, description="Markdown produced by the parser."
    )
    page_count: int | None = Field(default=None, ge=0)

    # None means the embedding stage has never been entered.
    embedding_status: ProcessingStatus | None = None
    embedding_error: str | None = None

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def has_content(self) -> bool:
        return bool(self.parsed_content and self.parsed_content.strip())

    @property
    def ready_for_embedding(self) -> bool:
        """True when parsing completed and produced non-empty content."""
        return self.parsing_status == ProcessingStatus.COMPLETED and self.has_content
