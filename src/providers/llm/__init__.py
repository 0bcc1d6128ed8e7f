"""LLM provider adapters.

OllamaLLMProvider calls Ollama's native ``/api/generate`` endpoint.  The
query router is its only consumer.
"""

from src.providers.llm.ollama_provider import OllamaLLMProvider

__all__ = ["OllamaLLMProvider"]
