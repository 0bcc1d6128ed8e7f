"""Ollama LLM provider adapter.

Uses Ollama's native, non-streaming generate endpoint:

    POST {base}/api/generate
      {"model", "prompt", "system", "stream": false,
       "options": {"temperature", "top_p", "num_predict"}}
      -> {"response": "..."}

Setup: install Ollama (https://ollama.ai), ``ollama pull llama3.1``, and set
``OLLAMA_BASE_URL``.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import ExternalServiceError

logger = structlog.get_logger(logger_name=__name__)


class OllamaLLMProvider(ILLMProvider):
    """LLM provider backed by an Ollama server's ``/api/generate`` endpoint."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._model = settings.ollama_generation_model
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.ollama_timeout_seconds)

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 200,
        top_p: float = 0.9,
    ) -> str:
        body: dict[str, Any] = {
            "model": self._model,
            "prompt": user_prompt,
            "stream": False,
            "options": {
                "temperature": temperature,
                "top_p": top_p,
                "num_predict": max_tokens,
            },
        }
        if system_prompt:
            body["system"] = system_prompt

        try:
            response = await self._http.post(f"{self._base_url}/api/generate", json=body)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                message=f"Ollama generate request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code != 200:
            raise ExternalServiceError(
                message=f"Ollama generate returned HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ExternalServiceError(
                message="Ollama generate returned a non-JSON body",
                provider_name=self.get_provider_name(),
            ) from exc

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise ExternalServiceError(
                message="Ollama generate response has no 'response' text",
                provider_name=self.get_provider_name(),
            )

        logger.info("ollama_completion", model=self._model, chars=len(text))
        return text

    def get_provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        return bool(self._base_url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
