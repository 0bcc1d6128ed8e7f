"""Heading-aware, token-bounded chunking of parsed course material.

Splits markdown into :class:`~src.models.rag.ContentChunk` objects sized for
the embedding model (default 500-3000 estimated tokens each).

``by-heading`` (default) works in three passes:

1. **Sections** -- split on markdown headings (``#`` to ``######``).  Text
   before the first heading becomes an "Introduction" section.  Each
   section remembers its ancestor heading chain.

2. **Subdivision** -- a section over ``max_tokens_per_chunk`` is cut into
   ``ceil(tokens / max)`` balanced parts at paragraph boundaries, falling
   back to sentence boundaries (abbreviation-aware) and finally to
   whitespace-aligned character cuts for pathological runs.  Cuts land on
   the boundary nearest each equal share; the part count only grows when
   such a cut would overflow the limit.

3. **Merging** -- a piece under ``min_tokens_per_chunk`` is merged with its
   neighbour when the result still fits in ``max_tokens_per_chunk``.
   Merged titles are joined with " → ".  Nothing is ever dropped.

``by-tokens`` ignores headings for splitting and packs paragraphs into
windows with ``overlap_tokens`` of trailing context carried forward.

The output depends only on the input text and options, so re-chunking the
same document always reproduces the same ``chunk_index -> title`` mapping.
"""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass, field

import structlog

from src.models.rag import ChunkingMethod, ChunkingOptions, ChunkMetadata, ContentChunk
from src.utils.errors import ValidationError
from src.utils.text import (
    HEADING_RE,
    estimate_tokens,
    extract_keywords,
    split_paragraphs,
    split_sentences,
)

logger = structlog.get_logger(logger_name=__name__)

_INTRODUCTION = "Introduction"
_FULL_CONTENT = "Full Content"
_TITLE_JOINER = " → "
_PARAGRAPH_SEP = "\n\n"
_SENTENCE_SEP = " "


@dataclass
class _Section:
    heading: str
    level: int
    path: tuple[str, ...]
    lines: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines).strip()


@dataclass
class _Piece:
    """A unit of output before it becomes a ContentChunk."""

    titles: list[str]
    body: str
    chain: tuple[str, ...]
    heading_level: int
    heading_count: int

    def render(self, preserve_context: bool) -> str:
        if preserve_context and self.chain:
            return f"[{' > '.join(self.chain)}]{_PARAGRAPH_SEP}{self.body}"
        return self.body

    def tokens(self, preserve_context: bool) -> int:
        return estimate_tokens(self.render(preserve_context))

    def merged_with(self, other: _Piece) -> _Piece:
        titles = list(self.titles)
        for title in other.titles:
            if not titles or titles[-1] != title:
                titles.append(title)
        return _Piece(
            titles=titles,
            body=f"{self.body}{_PARAGRAPH_SEP}{other.body}",
            chain=self.chain,
            heading_level=self.heading_level,
            heading_count=self.heading_count + other.heading_count,
        )


class ContentChunker:
    """Splits normalized markdown into ordered, bounded chunks.

    Parameters
    ----------
    options:
        Default options; :meth:`chunk` accepts a per-call override.
    """

    def __init__(self, options: ChunkingOptions | None = None) -> None:
        self._options = options or ChunkingOptions()

    @property
    def options(self) -> ChunkingOptions:
        return self._options

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, content: str, options: ChunkingOptions | None = None) -> list[ContentChunk]:
        """Split *content* into chunks.

        Raises
        ------
        ValidationError
            If *content* is empty or whitespace.
        """
        opts = options or self._options
        if not content or not content.strip():
            raise ValidationError("Content cannot be empty")

        content = content.strip()
        total_tokens = estimate_tokens(content)

        if total_tokens <= opts.max_tokens_per_chunk:
            chunks = [self._single_chunk(content)]
        elif opts.method == ChunkingMethod.BY_TOKENS:
            chunks = self._chunk_by_tokens(content, opts)
        else:
            chunks = self._chunk_by_heading(content, opts)

        logger.debug(
            "chunking_complete",
            method=opts.method.value,
            total_tokens=total_tokens,
            num_chunks=len(chunks),
            titles=[c.title for c in chunks],
        )
        return chunks

    # ------------------------------------------------------------------
    # Whole-document chunk
    # ------------------------------------------------------------------

    def _single_chunk(self, content: str) -> ContentChunk:
        headings = [m for m in (HEADING_RE.match(line) for line in content.split("\n")) if m]
        title = headings[0].group(2).strip() if headings else _FULL_CONTENT
        level = len(headings[0].group(1)) if headings else 1
        return ContentChunk(
            title=title,
            content=content,
            tokens=estimate_tokens(content),
            metadata=ChunkMetadata(
                heading_level=level,
                has_subsections=len(headings) > 1,
                topic_keywords=extract_keywords(content),
            ),
        )

    # ------------------------------------------------------------------
    # by-heading
    # ------------------------------------------------------------------

    def _chunk_by_heading(self, content: str, opts: ChunkingOptions) -> list[ContentChunk]:
        pieces: list[_Piece] = []
        for section in self._split_sections(content):
            pieces.extend(self._subdivide(section, opts))
        merged = self._merge_small(pieces, opts)
        return [self._to_chunk(piece, opts.preserve_context) for piece in merged]

    @staticmethod
    def _split_sections(content: str) -> list[_Section]:
        """Split on headings, tracking each section's ancestor chain."""
        sections: list[_Section] = []
        stack: list[tuple[int, str]] = []
        current: _Section | None = None

        for line in content.split("\n"):
            match = HEADING_RE.match(line)
            if match:
                if current is not None and current.text:
                    sections.append(current)
                level = len(match.group(1))
                heading = match.group(2).strip()
                while stack and stack[-1][0] >= level:
                    stack.pop()
                stack.append((level, heading))
                current = _Section(
                    heading=heading,
                    level=level,
                    path=tuple(h for _, h in stack),
                    lines=[line],
                )
            elif current is not None:
                current.lines.append(line)
            else:
                current = _Section(
                    heading=_INTRODUCTION,
                    level=1,
                    path=(),
                    lines=[line],
                )

        if current is not None and current.text:
            sections.append(current)
        return sections

    def _subdivide(self, section: _Section, opts: ChunkingOptions) -> list[_Piece]:
        """Cut an oversized section into balanced parts; pass small ones through."""
        ancestors = section.path[:-1] if section.path else ()
        first = _Piece(
            titles=[section.heading],
            body=section.text,
            chain=ancestors,
            heading_level=section.level,
            heading_count=1,
        )
        if first.tokens(opts.preserve_context) <= opts.max_tokens_per_chunk:
            return [first]

        # Continuation parts lose the heading line, so their chain includes it.
        full_chain = section.path or (section.heading,)
        prefix_tokens = 0
        if opts.preserve_context:
            prefix_tokens = estimate_tokens(f"[{' > '.join(full_chain)}]{_PARAGRAPH_SEP}")
        budget = max(1, opts.max_tokens_per_chunk - prefix_tokens)

        body_tokens = estimate_tokens(section.text)
        limit_chars = budget * 4
        parts = max(2, math.ceil(body_tokens / budget))
        while True:
            target_chars = math.ceil(len(section.text) / parts)
            bodies = self._partition(self._split_units(section.text, target_chars), parts)
            if all(len(body) <= limit_chars for body in bodies):
                break
            parts += 1

        pieces = [
            _Piece(
                titles=[section.heading],
                body=body,
                chain=ancestors if index == 0 else full_chain,
                heading_level=section.level,
                heading_count=1 if index == 0 else 0,
            )
            for index, body in enumerate(bodies)
        ]
        logger.debug(
            "section_subdivided",
            heading=section.heading,
            tokens=body_tokens,
            parts=len(pieces),
        )
        return pieces

    @staticmethod
    def _merge_small(pieces: list[_Piece], opts: ChunkingOptions) -> list[_Piece]:
        """Merge each under-``min`` piece into its predecessor while it fits in ``max``."""
        merged: list[_Piece] = []
        for piece in pieces:
            if merged:
                previous = merged[-1]
                undersized = (
                    previous.tokens(opts.preserve_context) < opts.min_tokens_per_chunk
                    or piece.tokens(opts.preserve_context) < opts.min_tokens_per_chunk
                )
                if undersized:
                    candidate = previous.merged_with(piece)
                    if candidate.tokens(opts.preserve_context) <= opts.max_tokens_per_chunk:
                        merged[-1] = candidate
                        continue
            merged.append(piece)
        return merged

    @staticmethod
    def _to_chunk(piece: _Piece, preserve_context: bool) -> ContentChunk:
        content = piece.render(preserve_context)
        return ContentChunk(
            title=_TITLE_JOINER.join(piece.titles),
            content=content,
            tokens=estimate_tokens(content),
            metadata=ChunkMetadata(
                heading_level=piece.heading_level,
                has_subsections=piece.heading_count > 1,
                topic_keywords=extract_keywords(piece.body),
            ),
        )

    # ------------------------------------------------------------------
    # by-tokens
    # ------------------------------------------------------------------

    def _chunk_by_tokens(self, content: str, opts: ChunkingOptions) -> list[ContentChunk]:
        """Greedy paragraph packing with overlapping windows.

        Packs paragraphs until the next would exceed the budget, flushes,
        then seeds the next window with tail paragraphs worth at most
        ``overlap_tokens``.  Each chunk's title is the heading in effect at
        its first new paragraph.
        """
        limit_chars = opts.max_tokens_per_chunk * 4
        overlap = min(opts.overlap_tokens, opts.max_tokens_per_chunk // 2)

        # (text, tokens, heading in effect)
        units: list[tuple[str, int, str]] = []
        heading = _INTRODUCTION
        for text, _sep in self._split_units(content, limit_chars):
            match = HEADING_RE.match(text)
            if match:
                heading = match.group(2).strip()
            units.append((text, estimate_tokens(text), heading))

        windows: list[tuple[list[tuple[str, int, str]], str]] = []
        current: list[tuple[str, int, str]] = []
        current_tokens = 0
        title = units[0][2] if units else _FULL_CONTENT
        for unit in units:
            if current and current_tokens + unit[1] > opts.max_tokens_per_chunk:
                windows.append((current, title))
                current = self._overlap_tail(current, overlap)
                current_tokens = sum(t for _, t, _ in current)
                title = unit[2]
            current.append(unit)
            current_tokens += unit[1]
        if current:
            windows.append((current, title))

        chunks: list[ContentChunk] = []
        for window, window_title in windows:
            body = _PARAGRAPH_SEP.join(text for text, _, _ in window)
            chunks.append(
                ContentChunk(
                    title=window_title,
                    content=body,
                    tokens=estimate_tokens(body),
                    metadata=ChunkMetadata(
                        heading_level=1,
                        has_subsections=len({h for _, _, h in window}) > 1,
                        topic_keywords=extract_keywords(body),
                    ),
                )
            )
        return chunks

    @staticmethod
    def _overlap_tail(
        window: list[tuple[str, int, str]], overlap_tokens: int
    ) -> list[tuple[str, int, str]]:
        """Return tail units of *window* whose combined tokens <= *overlap_tokens*."""
        tail: list[tuple[str, int, str]] = []
        total = 0
        for unit in reversed(window):
            if total + unit[1] > overlap_tokens:
                break
            tail.insert(0, unit)
            total += unit[1]
        return tail

    # ------------------------------------------------------------------
    # Paragraph / sentence / character splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_units(text: str, limit_chars: int) -> list[tuple[str, str]]:
        """Break *text* into ``(unit, separator)`` pairs no longer than *limit_chars*.

        Paragraphs are preferred; a paragraph over the limit is split into
        sentences, and a sentence over the limit into whitespace-aligned
        slices.  ``separator`` is the joiner that restores the original
        layout when the unit follows another one.
        """
        units: list[tuple[str, str]] = []
        for paragraph in split_paragraphs(text):
            if len(paragraph) <= limit_chars:
                units.append((paragraph, _PARAGRAPH_SEP))
                continue
            sep = _PARAGRAPH_SEP
            for sentence in split_sentences(paragraph):
                slices = (
                    [sentence]
                    if len(sentence) <= limit_chars
                    else ContentChunker._hard_split(sentence, limit_chars)
                )
                for piece in slices:
                    units.append((piece, sep))
                    sep = _SENTENCE_SEP
        return units

    @staticmethod
    def _hard_split(text: str, limit_chars: int) -> list[str]:
        """Cut *text* into slices of at most *limit_chars*, preferring whitespace."""
        slices: list[str] = []
        start = 0
        while start < len(text):
            end = min(start + limit_chars, len(text))
            if end < len(text):
                cut = text.rfind(" ", start + limit_chars // 2, end)
                if cut > start:
                    end = cut
            piece = text[start:end].strip()
            if piece:
                slices.append(piece)
            start = end
        return slices

    @staticmethod
    def _partition(units: list[tuple[str, str]], parts: int) -> list[str]:
        """Split *units* into at most *parts* bodies of near-equal length.

        Each cut is the unit boundary closest to the ideal offset
        ``k * total / parts``, so every body is within one unit of the mean
        and no short remainder is left over at the end.
        """
        if len(units) < 2:
            return [text for text, _ in units]

        # offsets[i] is where unit i starts in the joined text.
        offsets: list[int] = []
        total = 0
        for index, (text, sep) in enumerate(units):
            if index:
                total += len(sep)
            offsets.append(total)
            total += len(text)

        cuts: list[int] = []
        for k in range(1, parts):
            ideal = k * total / parts
            right = min(max(bisect.bisect_left(offsets, ideal, 1), 1), len(units) - 1)
            left = max(right - 1, 1)
            cut = left if abs(offsets[left] - ideal) <= abs(offsets[right] - ideal) else right
            if not cuts or cut > cuts[-1]:
                cuts.append(cut)

        bodies: list[str] = []
        for start, end in zip([0, *cuts], [*cuts, len(units)]):
            group = units[start:end]
            bodies.append(group[0][0] + "".join(f"{sep}{text}" for text, sep in group[1:]))
        return bodies
