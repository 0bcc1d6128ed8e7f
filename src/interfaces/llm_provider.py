"""Abstract base class for text-generation service providers.

The query router is the only consumer: it sends a short constrained prompt
and parses the model's JSON answer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OllamaLLMProvider (src/providers/llm/)
class ILLMProvider(ABC):
    """Contract for LLM completion services."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 200,
        top_p: float = 0.9,
    ) -> str:
        """Generate a non-streaming text completion.

        Parameters
        ----------
        system_prompt:
            Instruction message that sets the model's behaviour.
        user_prompt:
            The prompt containing the actual request.
        temperature:
            Sampling temperature.
        max_tokens:
            Upper bound on generated tokens.
        top_p:
            Nucleus sampling cutoff.

        Returns
        -------
        str
            The model's raw text response.

        Raises
        ------
        src.utils.errors.ExternalServiceError
            If the call fails or the payload has no response text.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this LLM provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
