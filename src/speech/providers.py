"""Uniform interface over streaming and batch speech-to-text backends.

A provider is exactly one of two variants:

- ``StreamingProvider``: opens a session per call, accepts raw mu-law chunks and
  reports partial/final transcripts through callbacks while audio is arriving.
- ``BatchProvider``: transcribes one complete WAV buffer and returns a single
  transcript plus the detected language.

Callers dispatch with ``isinstance``. The carrier's built-in speech gather is
modeled as "no provider" (``None``).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Union

LOGGER = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

LANGUAGE_CODES: dict[str, dict[str, str]] = {
    "deepgram": {"es": "es", "en": "en-US"},
    "groq": {"es": "es", "en": "en"},
    "twilio": {"es": "es-US", "en": "en-US"},
    "whisper_local": {"es": "es", "en": "en"},
}


@dataclass(frozen=True)
class TranscriptEvent:
    text: str
    is_final: bool
    confidence: float
    speech_final: bool = False


@dataclass(frozen=True)
class BatchTranscript:
    text: str
    language: str | None
    confidence: float = 1.0


TranscriptCallback = Callable[[TranscriptEvent], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]


class StreamingSession(ABC):
    """A live provider session bound to one call's audio stream."""

    @abstractmethod
    async def send(self, chunk: bytes) -> None:
        """Forward one chunk of 8 kHz mu-law audio."""

    @abstractmethod
    async def close(self) -> None:
        """Flush and close the provider session. Safe to call twice."""


class StreamingProvider(ABC):
    name: str

    @abstractmethod
    async def open_session(
        self,
        *,
        language: str,
        on_event: TranscriptCallback,
        on_error: ErrorCallback,
    ) -> StreamingSession:
        """Start a provider session for ``language`` (a provider-specific code)."""


class BatchProvider(ABC):
    name: str

    @abstractmethod
    async def transcribe(self, wav_bytes: bytes, *, language: str | None = None) -> BatchTranscript:
        """Transcribe a complete WAV buffer."""


SpeechProvider = Union[StreamingProvider, BatchProvider]


def language_code(
    provider: str,
    language: str | None,
    overrides: Mapping[str, Mapping[str, str]] | None = None,
    *,
    default: str = DEFAULT_LANGUAGE,
) -> str:
    """Map an internal language (``en``, ``es``) to the code ``provider`` expects.

    Unknown languages resolve to the code for ``default``.
    """

    table = dict(LANGUAGE_CODES.get(provider, {}))
    if overrides and provider in overrides:
        table.update(overrides[provider])

    lang = language or default
    code = table.get(lang)
    if code is not None:
        return code

    LOGGER.warning("No %s language code for %r; using %r", provider, lang, default)
    return table.get(default) or table.get(DEFAULT_LANGUAGE, "en-US")
