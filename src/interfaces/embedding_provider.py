"""Abstract base class for text-embedding service providers.

Defines the contract for turning one text into one embedding vector.  The
gateway (src/services/ingestion/embedding_gateway.py) owns truncation and
batching; providers only talk to the backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OllamaEmbeddingProvider (src/providers/embedding/)
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the RAG pipeline."""

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Parameters
        ----------
        text:
            The text to embed.  Callers are responsible for truncating it to
            the backend's input budget.

        Returns
        -------
        list[float]
            The embedding vector.

        Raises
        ------
        src.utils.errors.ExternalServiceError
            If the backend returns a non-success status or a payload without
            a numeric vector.
        """

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Return the model names the backend currently serves.

        Used as a connectivity probe.

        Raises
        ------
        src.utils.errors.ExternalServiceError
            If the backend is unreachable.
        """

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the embedding model identifier, e.g. ``"nomic-embed-text:v1.5"``."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
