"""Text helpers shared by the chunker and the document parser."""

from __future__ import annotations

import math
import re
from collections import Counter

# Markdown ATX heading: 1-6 hashes, whitespace, heading text.
HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")

# Common abbreviations that should NOT trigger a sentence split.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Vol",
        "No",
        "Fig",
        "Eq",
        "Ch",
        "vs",
        "etc",
        "approx",
        "dept",
        "est",
        "inc",
        "ltd",
        "e.g",
        "i.e",
    }
)

# Whole words only: "test." and "zinc." still end a sentence.
_ABBREVIATION_RE = re.compile(
    r"\b("
    + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True))
    + r")\."
)


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


def split_paragraphs(text: str) -> list[str]:
    """Split *text* on blank lines, discarding empty parts."""
    parts = re.split(r"\n\s*\n", text)
    return [p.strip() for p in parts if p.strip()]


def split_sentences(text: str) -> list[str]:
    """Split *text* at sentence boundaries while respecting abbreviations.

    Handles ``.``, ``!``, ``?`` followed by whitespace or end-of-string.
    Periods after known abbreviations are masked with ``\\x00`` (same length,
    so indices stay aligned with the original text) before matching.
    """
    masked = _ABBREVIATION_RE.sub(lambda m: f"{m.group(1)}\x00", text)

    sentences: list[str] = []
    last = 0
    for match in re.finditer(r"[.!?](?:\s|$)", masked):
        end = match.end()
        sentence = text[last:end].strip()
        if sentence:
            sentences.append(sentence)
        last = end

    remainder = text[last:].strip()
    if remainder:
        sentences.append(remainder)

    return sentences if sentences else [text]


def extract_keywords(text: str, limit: int = 5) -> list[str]:
    """Return the most frequent words longer than four characters.

    Ties keep first-occurrence order so the result is deterministic.
    """
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    counts = Counter(w for w in words if len(w) > 4)
    return [word for word, _ in counts.most_common(limit)]
