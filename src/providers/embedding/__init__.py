"""Embedding provider implementations.

OllamaEmbeddingProvider calls Ollama's native ``/api/embeddings`` endpoint
with ``nomic-embed-text:v1.5`` by default (768 dimensions).
"""

from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

__all__ = ["OllamaEmbeddingProvider"]
