"""Abstract LLM provider interface for Parallax.

The pipeline treats the language model as an opaque text-completion
service: a prompt goes in, text and token usage come out.  Any backend
(Anthropic, vLLM, LM Studio, ...) implements :class:`LLMProvider`.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by the backend for one call.

    ``input_tokens`` includes ``cached_input_tokens``.
    """
    input_tokens: int
    output_tokens: int
    cached_input_tokens: int = 0


@dataclass(frozen=True)
class Completion:
    """Result returned by :meth:`LLMProvider.complete`."""
    text: str
    usage: TokenUsage | None = None
    model: str | None = None


class LLMProvider(abc.ABC):
    """Abstract interface for any text-completion backend."""

    #: Model used when the caller does not name one
    default_model: str | None = None

    @abc.abstractmethod
    async def complete(
        self,
        prompt: str,
        max_output_tokens: int = 1024,
        temperature: float = 0.7,
        model: str | None = None,
    ) -> Completion:
        """Send *prompt* as a single user turn and return the full response.

        Raises :class:`~parallax.errors.ProviderError` when the backend is
        unreachable or answers with an error.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def health(self) -> bool:
        """Check if the backend is reachable. Returns True when healthy."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
