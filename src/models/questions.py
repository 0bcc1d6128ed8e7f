"""Question-count models used when spreading question generation across chunks."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class DifficultyCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    easy: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    hard: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.easy + self.medium + self.hard


class BloomCounts(BaseModel):
    """Requested questions per Bloom's-taxonomy level."""

    model_config = ConfigDict(frozen=True)

    remember: int = Field(default=0, ge=0)
    understand: int = Field(default=0, ge=0)
    apply: int = Field(default=0, ge=0)
    analyze: int = Field(default=0, ge=0)
    evaluate: int = Field(default=0, ge=0)
    create: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return sum(self.model_dump().values())


class QuestionRequirements(BaseModel):
    model_config = ConfigDict(frozen=True)

    difficulty: DifficultyCounts = Field(default_factory=DifficultyCounts)
    bloom_levels: BloomCounts = Field(default_factory=BloomCounts)


class ChunkQuestionAllocation(BaseModel):
    """The share of a question request assigned to one chunk."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int = Field(ge=0)
    title: str = ""
    difficulty: DifficultyCounts
    bloom_levels: BloomCounts
