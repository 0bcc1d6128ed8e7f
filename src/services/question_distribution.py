"""Spread a question-generation request across a material's chunks.

Each chunk receives a share of every difficulty and Bloom-level count
proportional to its token weight.  Shares are rounded half-up and capped
by what is still unassigned; the last chunk takes the remainder, so the
per-field totals always match the request exactly and no count is
negative.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from src.models.questions import (
    BloomCounts,
    ChunkQuestionAllocation,
    DifficultyCounts,
    QuestionRequirements,
)
from src.models.rag import ContentChunk
from src.utils.errors import ValidationError

_DIFFICULTY_FIELDS = ("easy", "medium", "hard")
_BLOOM_FIELDS = ("remember", "understand", "apply", "analyze", "evaluate", "create")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _weights(chunks: Sequence[ContentChunk]) -> list[float]:
    total_tokens = sum(c.tokens for c in chunks)
    if total_tokens <= 0:
        return [1.0 / len(chunks)] * len(chunks)
    return [c.tokens / total_tokens for c in chunks]


def _split(total: int, weights: list[float]) -> list[int]:
    shares: list[int] = []
    remaining = total
    for i, weight in enumerate(weights):
        if i == len(weights) - 1:
            share = remaining
        else:
            share = min(_round_half_up(total * weight), remaining)
        shares.append(share)
        remaining -= share
    return shares


def distribute_questions_across_chunks(
    chunks: Sequence[ContentChunk],
    requirements: QuestionRequirements,
) -> list[ChunkQuestionAllocation]:
    """Allocate *requirements* across *chunks* by token weight.

    Raises
    ------
    ValidationError
        If there are no chunks or the request asks for zero questions.
    """
    if not chunks:
        raise ValidationError("Cannot distribute questions across zero chunks")
    if requirements.difficulty.total + requirements.bloom_levels.total == 0:
        raise ValidationError("At least one question must be requested")

    weights = _weights(chunks)
    difficulty = {
        name: _split(getattr(requirements.difficulty, name), weights)
        for name in _DIFFICULTY_FIELDS
    }
    bloom = {
        name: _split(getattr(requirements.bloom_levels, name), weights)
        for name in _BLOOM_FIELDS
    }

    return [
        ChunkQuestionAllocation(
            chunk_index=i,
            title=chunk.title,
            difficulty=DifficultyCounts(**{k: v[i] for k, v in difficulty.items()}),
            bloom_levels=BloomCounts(**{k: v[i] for k, v in bloom.items()}),
        )
        for i, chunk in enumerate(chunks)
    ]
