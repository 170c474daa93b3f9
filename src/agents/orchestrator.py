"""Synchronous answer path with bounded retry and escalation to the follow-up queue."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from agents.errors import LLMFailedError, LLMTimeoutError
from agents.formatting import preview, sanitize_for_speech
from calls.messages import FALLBACK_LANGUAGE, t
from calls.session import CallSession
from config.voice_config import ResponseConfig
from escalation.queue import EscalationEntry, EscalationQueue
from llm.base import BaseLLMClient
from prompts.loader import load_prompt

LOGGER = logging.getLogger(__name__)


class _AttemptTimedOut(Exception):
    pass


def build_system_prompt(template: str, session: CallSession, language: str) -> str:
    return template.format(
        name=session.caller_name,
        language_name=t(language, "language_name"),
        now=datetime.now().strftime("%A %d %B %Y, %H:%M"),
    )


class ResponseOrchestrator:
    """Turns a caller utterance into a spoken reply.

    The model gets ``first_timeout_seconds``; on timeout exactly one retry with
    ``retry_timeout_seconds`` follows. When both time out the utterance is queued
    for the worker and the caller hears a follow-up promise. Any other failure
    yields a short apology without retry or escalation.
    """

    def __init__(
        self,
        llm: BaseLLMClient | None,
        queue: EscalationQueue,
        config: ResponseConfig,
        *,
        default_language: str = FALLBACK_LANGUAGE,
    ) -> None:
        self._llm = llm
        self._queue = queue
        self._config = config
        self._default_language = default_language
        self._prompt_template = load_prompt("voice_system.txt")

    async def respond(self, utterance: str, session: CallSession) -> str:
        language = session.language or self._default_language
        LOGGER.info("Call %s asked: %s", session.id, preview(utterance))

        if self._llm is None:
            LOGGER.error("No language model configured; cannot answer call %s", session.id)
            return t(language, "llm_failed")

        messages = [
            {"role": "system", "content": build_system_prompt(self._prompt_template, session, language)},
            *session.history,
            {"role": "user", "content": utterance},
        ]

        try:
            reply = await self._attempt(messages, self._config.first_timeout_seconds, 1)
            delayed = False
        except _AttemptTimedOut:
            try:
                reply = await self._attempt(messages, self._config.retry_timeout_seconds, 2)
                delayed = True
            except _AttemptTimedOut:
                return self._escalate(utterance, session, language)
            except Exception:
                LOGGER.exception("Retry failed for call %s", session.id)
                return t(language, "llm_failed")
        except Exception:
            LOGGER.exception("Language model request failed for call %s", session.id)
            return t(language, "llm_failed")

        spoken = sanitize_for_speech(reply, self._config.max_chars)
        if not spoken:
            LOGGER.warning("Empty model reply for call %s", session.id)
            return t(language, "llm_failed")

        session.remember("user", utterance, limit=self._config.history_turns)
        session.remember("assistant", spoken, limit=self._config.history_turns)
        LOGGER.info("Call %s reply: %s", session.id, preview(spoken))

        if delayed:
            return f"{t(language, 'delay_apology')} {spoken}"
        return spoken

    async def _attempt(self, messages: list[dict[str, str]], timeout: float, number: int) -> str:
        LOGGER.info("LLM attempt %d (timeout %.1fs)", number, timeout)
        try:
            reply = await asyncio.wait_for(self._llm.chat(messages, timeout=timeout), timeout)
        except (asyncio.TimeoutError, LLMTimeoutError) as exc:
            LOGGER.warning("LLM attempt %d timed out after %.1fs", number, timeout)
            raise _AttemptTimedOut() from exc
        except LLMFailedError as exc:
            LOGGER.error("LLM attempt %d failed: %s", number, exc.detail)
            raise
        LOGGER.info("LLM attempt %d succeeded", number)
        return reply

    def _escalate(self, utterance: str, session: CallSession, language: str) -> str:
        entry = EscalationEntry(
            kind="escalation",
            message=utterance,
            language=language,
            caller_number=session.caller_number,
            caller_name=session.caller_name,
            destination_hint=session.destination_hint,
        )
        try:
            self._queue.append(entry)
        except OSError:
            LOGGER.exception("Could not queue escalation for call %s", session.id)
            return t(language, "llm_failed")
        LOGGER.info("Escalated call %s query %s: %s", session.id, entry.id, preview(utterance))
        return t(language, "follow_up")

    def queue_task(self, utterance: str, session: CallSession) -> bool:
        """Queue explicit deferred work without answering inline."""

        entry = EscalationEntry(
            kind="task",
            message=utterance,
            language=session.language or self._default_language,
            caller_number=session.caller_number,
            caller_name=session.caller_name,
            destination_hint=session.destination_hint,
        )
        try:
            self._queue.append(entry)
        except OSError:
            LOGGER.exception("Could not queue task for call %s", session.id)
            return False
        return True
