"""Ollama embedding provider adapter.

Talks to Ollama's native embeddings endpoint:

    POST {base}/api/embeddings  {"model": ..., "prompt": ...}
      -> {"embedding": [float, ...]}

The default model is ``nomic-embed-text:v1.5`` (768 dimensions).  Input
truncation is the gateway's job; this adapter sends what it is given.
"""

from __future__ import annotations

import math
from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import ExternalServiceError

logger = structlog.get_logger(logger_name=__name__)


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a local or remote Ollama server.

    Parameters
    ----------
    settings:
        Supplies ``ollama_base_url``, ``ollama_embedding_model`` and the
        request timeout.
    http_client:
        Optional shared ``httpx.AsyncClient``.  When omitted the provider
        owns a client of its own; call :meth:`aclose` on shutdown.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._model = settings.ollama_embedding_model
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.ollama_timeout_seconds)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed_single(self, text: str) -> list[float]:
        try:
            response = await self._http.post(
                f"{self._base_url}/api/embeddings",
                json={"model": self._model, "prompt": text},
            )
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                message=f"Embedding request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code != 200:
            raise ExternalServiceError(
                message=f"Embedding API returned HTTP {response.status_code}: {response.text[:200]}",
                provider_name=self.get_provider_name(),
            )

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise ExternalServiceError(
                message="Embedding API returned a non-JSON body",
                provider_name=self.get_provider_name(),
            ) from exc

        return self._extract_vector(payload)

    async def list_models(self) -> list[str]:
        try:
            response = await self._http.get(f"{self._base_url}/api/tags", timeout=5.0)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                message=f"Ollama unreachable: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        if response.status_code != 200:
            raise ExternalServiceError(
                message=f"Model listing returned HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ExternalServiceError(
                message="Model listing returned a non-JSON body",
                provider_name=self.get_provider_name(),
            ) from exc
        models = data.get("models", []) if isinstance(data, dict) else []
        return [m.get("name", "") for m in models if isinstance(m, dict)]

    def get_model_name(self) -> str:
        return self._model

    def get_provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        return bool(self._base_url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _extract_vector(self, payload: Any) -> list[float]:
        """Validate that ``payload["embedding"]`` is a non-empty numeric list."""
        vector = payload.get("embedding") if isinstance(payload, dict) else None
        if not isinstance(vector, list) or not vector:
            raise ExternalServiceError(
                message="Embedding API response has no 'embedding' vector",
                provider_name=self.get_provider_name(),
            )
        # bool is an int subclass; a list of booleans is not a vector.
        if not all(
            isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
            for v in vector
        ):
            raise ExternalServiceError(
                message="Embedding API response contains non-numeric values",
                provider_name=self.get_provider_name(),
            )
        logger.debug("ollama_embedding", model=self._model, dimension=len(vector))
        return [float(v) for v in vector]
