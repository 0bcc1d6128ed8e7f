"""Chunk-and-embed gateway in front of the embedding backend.

Owns the two guards the backend needs:

* **Truncation** -- every input is cut to ``char_limit`` characters
  (8000 by default) before it is sent.
* **Bounded concurrency** -- chunks are embedded in batches of
  ``batch_size`` (3); calls inside a batch run concurrently, batches run
  strictly one after another with a short pause in between.

A chunk whose call fails is still returned, with an empty ``embedding``.
Callers must drop those before persisting.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Union

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import ChunkingOptions, ContentChunk, EmbeddedChunk, EmbeddingResult
from src.services.ingestion.chunker import ContentChunker
from src.utils.concurrency import batched_gather
from src.utils.errors import ExternalServiceError
from src.utils.text import estimate_tokens

logger = structlog.get_logger(logger_name=__name__)

# (current, total) -> None, sync or async.
ProgressCallback = Callable[[int, int], Union[Awaitable[None], None]]

_DEFAULT_CHAR_LIMIT = 8000
_DEFAULT_BATCH_SIZE = 3
_DEFAULT_BATCH_PAUSE = 0.1


class EmbeddingGateway:
    """Generates embeddings for single texts and for whole documents.

    Parameters
    ----------
    provider:
        Backend adapter that embeds one text.
    chunker:
        Splits documents before embedding.
    char_limit:
        Maximum characters sent per call.
    batch_size:
        Concurrent calls per batch.
    batch_pause:
        Seconds to sleep between batches.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        chunker: ContentChunker | None = None,
        char_limit: int = _DEFAULT_CHAR_LIMIT,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        batch_pause: float = _DEFAULT_BATCH_PAUSE,
    ) -> None:
        self._provider = provider
        self._chunker = chunker or ContentChunker()
        self._char_limit = char_limit
        self._batch_size = batch_size
        self._batch_pause = batch_pause

    @property
    def chunker(self) -> ContentChunker:
        return self._chunker

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Embed one text after truncating it to the character budget.

        Raises
        ------
        ExternalServiceError
            If the backend fails or returns no numeric vector.
        """
        truncated = text[: self._char_limit]
        vector = await self._provider.embed_single(truncated)
        if not vector:
            raise ExternalServiceError(
                message="Embedding backend returned an empty vector",
                provider_name=self._provider.get_provider_name(),
            )
        return EmbeddingResult(embedding=vector, token_count=estimate_tokens(truncated))

    async def chunk_and_embed(
        self,
        content: str,
        unit: int,
        options: ChunkingOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[EmbeddedChunk]:
        """Chunk *content* and embed every chunk.

        Parameters
        ----------
        content:
            Parsed markdown of one material.
        unit:
            Course unit stamped on every chunk.
        options:
            Chunking options; the chunker's defaults when omitted.
        on_progress:
            Called once per completed chunk (success or failure) with
            ``(completed, total)``.  Callback errors are logged, not raised.

        Returns
        -------
        list[EmbeddedChunk]
            One entry per chunk, in ``chunk_index`` order.  Failed chunks
            carry an empty ``embedding``.
        """
        chunks = self._chunker.chunk(content, options)
        total = len(chunks)
        completed = 0
        logger.info("chunk_and_embed_started", unit=unit, chunks=total, batch_size=self._batch_size)

        async def _embed(chunk: ContentChunk) -> EmbeddingResult:
            return await self.generate_embedding(chunk.content)

        async def _done(index: int, outcome: EmbeddingResult | BaseException) -> None:
            nonlocal completed
            completed += 1
            if isinstance(outcome, BaseException):
                logger.warning(
                    "chunk_embedding_failed",
                    chunk_index=index,
                    title=chunks[index].title,
                    error=str(outcome),
                )
            if on_progress is not None:
                await self._notify(on_progress, completed, total)

        outcomes = await batched_gather(
            chunks,
            _embed,
            batch_size=self._batch_size,
            pause_seconds=self._batch_pause,
            on_item_done=_done,
        )

        embedded: list[EmbeddedChunk] = []
        for index, (chunk, outcome) in enumerate(zip(chunks, outcomes)):
            ok = isinstance(outcome, EmbeddingResult)
            embedded.append(
                EmbeddedChunk(
                    chunk_index=index,
                    unit=unit,
                    title=chunk.title,
                    content=chunk.content,
                    token_count=outcome.token_count if ok else chunk.tokens,
                    embedding=outcome.embedding if ok else [],
                    metadata=chunk.metadata,
                )
            )

        failed = sum(1 for e in embedded if not e.has_embedding)
        logger.info("chunk_and_embed_finished", unit=unit, chunks=total, failed=failed)
        return embedded

    async def test_connection(self) -> bool:
        """Return ``True`` when the backend answers and serves the configured model."""
        try:
            models = await self._provider.list_models()
        except ExternalServiceError as exc:
            logger.warning("embedding_backend_unreachable", error=str(exc))
            return False
        wanted = self._provider.get_model_name()
        # Ollama reports "name:tag"; an untagged model name means ":latest".
        available = wanted in models or any(m.split(":")[0] == wanted for m in models)
        if not available:
            logger.warning("embedding_model_missing", model=wanted, available=models)
        return available

    @staticmethod
    async def _notify(callback: ProgressCallback, current: int, total: int) -> None:
        try:
            result = callback(current, total)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            logger.warning("progress_callback_error", error=str(exc))
