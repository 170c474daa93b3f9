from __future__ import annotations

import logging

import httpx

from agents.errors import SpeechProviderUnavailableError, TranscriptionFailedError
from speech.providers import BatchProvider, BatchTranscript

LOGGER = logging.getLogger(__name__)

GROQ_TRANSCRIPTIONS_URL = "https://api.groq.com/openai/v1/audio/transcriptions"

# verbose_json reports the detected language by name.
_LANGUAGE_NAMES = {"english": "en", "spanish": "es"}


def normalize_language(value: str | None) -> str | None:
    if not value:
        return None
    lowered = value.strip().lower()
    return _LANGUAGE_NAMES.get(lowered, lowered)


class GroqWhisperProvider(BatchProvider):
    """Batch transcription through Groq's hosted Whisper endpoint."""

    name = "groq"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "whisper-large-v3-turbo",
        url: str = GROQ_TRANSCRIPTIONS_URL,
        timeout: float = 30.0,
    ) -> None:
        if not api_key:
            raise SpeechProviderUnavailableError("GROQ_API_KEY not configured")
        self._api_key = api_key
        self._model = model
        self._url = url
        self._timeout = timeout

    async def transcribe(self, wav_bytes: bytes, *, language: str | None = None) -> BatchTranscript:
        data = {"model": self._model, "response_format": "verbose_json"}
        if language:
            data["language"] = language
        files = {"file": ("audio.wav", wav_bytes, "audio/wav")}
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, data=data, files=files, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            LOGGER.error("Groq transcription rejected: %s", exc.response.text[:200])
            raise TranscriptionFailedError(f"Groq API error: {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise TranscriptionFailedError(f"Groq request failed: {exc}") from exc

        if not isinstance(payload, dict):
            raise TranscriptionFailedError("Malformed Groq transcription response")

        return BatchTranscript(
            text=str(payload.get("text") or "").strip(),
            language=normalize_language(payload.get("language")) or language,
        )
