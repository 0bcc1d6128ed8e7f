"""Decide whether a chat message needs course-material retrieval.

The generation backend is asked for a strict JSON verdict::

    {"needs_retrieval": true, "query": "...", "reason": "..."}

The first ``{...}`` object in the reply is decoded.  When the backend
errors or the reply cannot be parsed, a keyword heuristic decides
instead: greetings, identity questions and thanks skip retrieval, anything
else retrieves with the raw message as the query.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable

import structlog

from src.interfaces.llm_provider import ILLMProvider
from src.models.rag import RoutingDecision
from src.utils.errors import ExternalServiceError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_NO_RETRIEVAL_PHRASES: tuple[str, ...] = (
    "hi",
    "hello",
    "hey",
    "good morning",
    "good afternoon",
    "good evening",
    "who are you",
    "what are you",
    "what is your name",
    "what's your name",
    "are you a bot",
    "thanks",
    "thank you",
    "thx",
    "cheers",
    "bye",
    "goodbye",
    "see you",
)

# Longest message (in words) a phrase prefix can still classify.
_MAX_PREFIX_WORDS = 4

_SYSTEM_PROMPT = """\
You are a routing classifier for a course assistant. Decide whether the
student's message needs content from the course materials to be answered.

Greetings, small talk, thanks and questions about the assistant itself do
NOT need retrieval. Questions about course topics, definitions, examples or
exercises DO need retrieval.

Respond with ONLY a JSON object, no prose and no code fences:
{"needs_retrieval": <true|false>, "query": "<search query or null>", "reason": "<short reason>"}

When needs_retrieval is true, "query" is a concise search query for the
course materials."""

_PUNCTUATION_RE = re.compile(r"[^\w\s']+")
_WHITESPACE_RE = re.compile(r"\s+")


def _normalize(message: str) -> str:
    text = _PUNCTUATION_RE.sub(" ", message.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_json_object(raw: str) -> dict | None:
    """Decode the first JSON object embedded in *raw*, or return ``None``."""
    start = raw.find("{")
    while start != -1:
        try:
            value, _ = json.JSONDecoder().raw_decode(raw, start)
        except json.JSONDecodeError:
            start = raw.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = raw.find("{", start + 1)
    return None


class QueryRouter:
    """Classifies messages with the generation backend, heuristics as fallback.

    Parameters
    ----------
    llm:
        Generation backend.  ``None`` routes every message heuristically.
    no_retrieval_phrases:
        Phrases the heuristic treats as small talk.
    temperature, top_p, max_tokens:
        Sampling options for the classification call.
    """

    def __init__(
        self,
        llm: ILLMProvider | None,
        no_retrieval_phrases: Iterable[str] | None = None,
        temperature: float = 0.1,
        top_p: float = 0.9,
        max_tokens: int = 200,
    ) -> None:
        self._llm = llm
        phrases = no_retrieval_phrases or DEFAULT_NO_RETRIEVAL_PHRASES
        self._phrases = frozenset(_normalize(p) for p in phrases if p.strip())
        self._temperature = temperature
        self._top_p = top_p
        self._max_tokens = max_tokens

    async def decide(self, message: str) -> RoutingDecision:
        """Return whether *message* needs retrieval and the query to use.

        Raises
        ------
        ValidationError
            If *message* is blank.
        """
        if not message or not message.strip():
            raise ValidationError("Message must not be empty")

        if self._llm is not None:
            try:
                raw = await self._llm.complete(
                    system_prompt=_SYSTEM_PROMPT,
                    user_prompt=f"Student message:\n{message.strip()}",
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                    top_p=self._top_p,
                )
            except ExternalServiceError as exc:
                logger.warning("router_model_failed", error=str(exc))
            else:
                decision = self._parse_decision(raw, message)
                if decision is not None:
                    logger.debug(
                        "route_decided",
                        needs_retrieval=decision.needs_retrieval,
                        source=decision.source,
                    )
                    return decision
                logger.warning("router_response_unparseable", response=raw[:200])

        return self.heuristic(message)

    def heuristic(self, message: str) -> RoutingDecision:
        """Keyword fallback: small talk skips retrieval, everything else retrieves."""
        normalized = _normalize(message)
        words = normalized.split()
        if normalized in self._phrases:
            return RoutingDecision(
                needs_retrieval=False,
                reason="Matched a small-talk phrase",
                source="heuristic",
            )
        if len(words) <= _MAX_PREFIX_WORDS and any(
            normalized.startswith(phrase + " ") for phrase in self._phrases
        ):
            return RoutingDecision(
                needs_retrieval=False,
                reason="Short message starting with a small-talk phrase",
                source="heuristic",
            )
        return RoutingDecision(
            needs_retrieval=True,
            query=message.strip(),
            reason="Defaulted to retrieval",
            source="heuristic",
        )

    @staticmethod
    def _parse_decision(raw: str, message: str) -> RoutingDecision | None:
        data = extract_json_object(raw)
        if data is None:
            return None
        needs_retrieval = data.get("needs_retrieval")
        if not isinstance(needs_retrieval, bool):
            return None

        query = data.get("query")
        if not isinstance(query, str) or not query.strip():
            query = None
        if needs_retrieval and query is None:
            query = message.strip()
        if not needs_retrieval:
            query = None

        reason = data.get("reason")
        return RoutingDecision(
            needs_retrieval=needs_retrieval,
            query=query.strip() if query else None,
            reason=reason if isinstance(reason, str) else "",
            source="model",
        )
