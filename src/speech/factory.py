"""Factory returning the configured speech-to-text provider."""

from __future__ import annotations

import logging

import httpx

from agents.errors import SpeechProviderUnavailableError
from config.settings import Settings, get_settings
from speech.deepgram import DeepgramStreamingProvider
from speech.groq_whisper import GroqWhisperProvider
from speech.providers import BatchProvider, SpeechProvider

LOGGER = logging.getLogger(__name__)

GROQ_API_HOST = "api.groq.com"


def _local_whisper() -> BatchProvider:
    # faster-whisper pulls in ctranslate2; only import it when selected.
    from speech.transcriber import LocalWhisperProvider

    return LocalWhisperProvider()


def groq_api_key(settings: Settings) -> str | None:
    """Groq key for transcription; the LLM key is reused only when it is a Groq key."""

    if settings.groq_api_key:
        return settings.groq_api_key
    if settings.llm_endpoint and httpx.URL(settings.llm_endpoint).host == GROQ_API_HOST:
        return settings.llm_api_key
    return None


def build_speech_provider(name: str, settings: Settings | None = None) -> SpeechProvider | None:
    """Instantiate the live-turn provider; ``None`` means the carrier's own speech gather."""

    settings = settings or get_settings()
    try:
        if name == "twilio":
            return None
        if name == "deepgram":
            return DeepgramStreamingProvider(settings.deepgram_api_key or "", model=settings.deepgram_model)
        if name == "groq":
            return GroqWhisperProvider(
                groq_api_key(settings) or "",
                model=settings.groq_transcription_model,
            )
        if name == "whisper_local":
            return _local_whisper()
    except (SpeechProviderUnavailableError, ImportError) as exc:
        LOGGER.warning("STT provider %r unavailable (%s); using carrier speech gather.", name, exc)
        return None
    raise ValueError(f"Unsupported stt_provider: {name}")


def build_batch_provider(
    live: SpeechProvider | None, settings: Settings | None = None
) -> BatchProvider | None:
    """Provider used to transcribe recorded voice notes.

    Reuses the live provider when it is a batch one; otherwise falls back to
    Groq when a Groq key is available.
    """

    if isinstance(live, BatchProvider):
        return live

    settings = settings or get_settings()
    key = groq_api_key(settings)
    if not key:
        return None
    return GroqWhisperProvider(key, model=settings.groq_transcription_model)
