"""CompletionModel: abstract interface for querying an LLM for completions."""

from __future__ import annotations

from abc import ABC, abstractmethod


class CompletionModel(ABC):
    """Produces candidate completions for a prompt.

    Implementations never raise on transport problems: a failed query yields
    an empty set so that generation can carry on with the next prompt.
    """

    @abstractmethod
    async def completions(self, prompt: str, temperature: float) -> set[str]:
        """Return the distinct raw completions for *prompt* at *temperature*."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier used for queries."""


class LLMError(Exception):
    """Base exception for LLM-related errors."""


class LLMAuthError(LLMError):
    """Raised when authentication fails (invalid or missing API key)."""


class LLMRateLimitError(LLMError):
    """Raised when the provider rate limit is hit."""


class LLMConnectionError(LLMError):
    """Raised when the provider cannot be reached."""
