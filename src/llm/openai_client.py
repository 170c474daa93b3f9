"""OpenAI-compatible chat client (OpenAI, Groq, Azure OpenAI)."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import openai
from openai import AsyncOpenAI

from agents.errors import LLMFailedError, LLMTimeoutError
from config.settings import get_settings
from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """Wrapper for OpenAI-compatible Chat Completion APIs."""

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.llm_api_key:
            raise ValueError("LLM API key must be configured for OpenAI client.")

        # Retries are decided by the response orchestrator, not the SDK.
        self._client = AsyncOpenAI(
            api_key=settings.llm_api_key,
            base_url=settings.llm_endpoint or None,
            max_retries=0,
        )
        self._model = settings.llm_model
        self._max_tokens = settings.llm_max_tokens

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.7,
        timeout: float | None = None,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=list(messages),
                temperature=temperature,
                max_tokens=self._max_tokens,
                timeout=timeout,
            )
        except openai.APITimeoutError as exc:
            raise LLMTimeoutError() from exc
        except openai.APIError as exc:
            raise LLMFailedError(str(exc)) from exc

        if not response.choices:
            raise LLMFailedError("LLM response contains no choices.")
        content = response.choices[0].message.content
        if not content:
            raise LLMFailedError("LLM response is empty.")
        return content
