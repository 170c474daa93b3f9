"""Shared abstractions for language model clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable


class BaseLLMClient(ABC):
    """Abstract base class for LLM providers.

    Implementations raise ``LLMTimeoutError`` when the provider's own deadline
    expires and ``LLMFailedError`` for any other failure, so callers can tell the
    two apart without knowing the transport.
    """

    @abstractmethod
    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.7,
        timeout: float | None = None,
    ) -> str:
        """Return a chat-style completion."""
