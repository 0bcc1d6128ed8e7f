"""Unit tests for the Ollama embedding and generation adapters.

HTTP is faked with ``httpx.MockTransport`` so no server is needed.
"""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from src.config.settings import Settings
from src.utils.errors import ExternalServiceError


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ======================================================================
# Embedding provider
# ======================================================================


class TestOllamaEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_embed_single_posts_model_and_prompt(self, make_settings) -> None:
        from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"embedding": [0.1, 0.2, 3]})

        async with _client(handler) as http:
            provider = OllamaEmbeddingProvider(make_settings(), http_client=http)
            vector = await provider.embed_single("what is a quorum")

        assert vector == [0.1, 0.2, 3.0]
        assert captured[0].url.path == "/api/embeddings"
        body = json.loads(captured[0].content)
        assert body == {"model": "nomic-embed-text:v1.5", "prompt": "what is a quorum"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="model not loaded"),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"embedding": []}),
            httpx.Response(200, json={"embedding": ["a", "b"]}),
            httpx.Response(200, json={"embedding": [True, False]}),
            httpx.Response(200, json={"data": [0.1]}),
        ],
    )
    async def test_bad_responses_raise(self, make_settings, response: httpx.Response) -> None:
        from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        async with _client(lambda request: response) as http:
            provider = OllamaEmbeddingProvider(make_settings(), http_client=http)
            with pytest.raises(ExternalServiceError) as exc_info:
                await provider.embed_single("text")

        assert exc_info.value.provider_name == "ollama"

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self, make_settings) -> None:
        from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as http:
            provider = OllamaEmbeddingProvider(make_settings(), http_client=http)
            with pytest.raises(ExternalServiceError, match="connection refused"):
                await provider.embed_single("text")

    @pytest.mark.asyncio
    async def test_list_models(self, make_settings) -> None:
        from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tags"
            return httpx.Response(
                200, json={"models": [{"name": "nomic-embed-text:v1.5"}, {"name": "llama3.1:latest"}]}
            )

        async with _client(handler) as http:
            provider = OllamaEmbeddingProvider(make_settings(), http_client=http)
            models = await provider.list_models()

        assert models == ["nomic-embed-text:v1.5", "llama3.1:latest"]

    def test_names(self, make_settings) -> None:
        from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        provider = OllamaEmbeddingProvider(
            make_settings(ollama_embedding_model="mxbai-embed-large"),
            http_client=httpx.AsyncClient(),
        )
        assert provider.get_model_name() == "mxbai-embed-large"
        assert provider.get_provider_name() == "ollama"
        assert provider.is_available() is True


# ======================================================================
# Generation provider
# ======================================================================


class TestOllamaLLMProvider:
    @pytest.mark.asyncio
    async def test_complete_sends_sampling_options(self, make_settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        captured: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(json.loads(request.content))
            return httpx.Response(200, json={"response": '{"needs_retrieval": false}'})

        async with _client(handler) as http:
            provider = OllamaLLMProvider(make_settings(), http_client=http)
            text = await provider.complete(
                system_prompt="Decide.", user_prompt="hi", temperature=0.1, max_tokens=200
            )

        assert text == '{"needs_retrieval": false}'
        body = captured[0]
        assert body["model"] == "llama3.1"
        assert body["system"] == "Decide."
        assert body["stream"] is False
        assert body["options"] == {"temperature": 0.1, "top_p": 0.9, "num_predict": 200}

    @pytest.mark.asyncio
    async def test_missing_response_field_raises(self, make_settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        async with _client(lambda request: httpx.Response(200, json={"done": True})) as http:
            provider = OllamaLLMProvider(make_settings(), http_client=http)
            with pytest.raises(ExternalServiceError):
                await provider.complete(system_prompt="", user_prompt="hi")

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self, make_settings) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        async with _client(lambda request: httpx.Response(503)) as http:
            provider = OllamaLLMProvider(make_settings(), http_client=http)
            with pytest.raises(ExternalServiceError, match="503"):
                await provider.complete(system_prompt="", user_prompt="hi")

    @pytest.mark.asyncio
    async def test_owned_client_closed(self) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        provider = OllamaLLMProvider(Settings(_env_file=None))
        await provider.aclose()
        assert provider._http.is_closed
