"""Local batch speech-to-text based on faster-whisper."""

from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np
import soundfile as sf
from faster_whisper import WhisperModel
from langdetect import DetectorFactory, detect

from agents.errors import TranscriptionFailedError
from config.settings import get_settings
from speech.providers import BatchProvider, BatchTranscript
from telephony.g711 import pcm16_resample

DetectorFactory.seed = 7  # deterministic language detection

LOGGER = logging.getLogger(__name__)

WHISPER_SAMPLE_RATE = 16000


@dataclass
class TranscriptionSegment:
    """Structured representation of a Whisper transcription segment."""

    start: float
    end: float
    text: str
    language: str
    logprob: float


class WhisperTranscriber:
    """Blocking transcription using faster-whisper."""

    def __init__(self) -> None:
        settings = get_settings()
        self._model = WhisperModel(
            model_size_or_path=settings.whisper_model_size,
            device=settings.whisper_device,
            compute_type=settings.whisper_compute_type,
        )

    def transcribe(
        self, audio_bytes: bytes, language_hint: str | None = None
    ) -> list[TranscriptionSegment]:
        """Transcribe a WAV buffer into text segments."""

        audio_array = load_audio(audio_bytes)
        segments, info = self._model.transcribe(
            audio_array,
            beam_size=5,
            task="transcribe",
            language=language_hint,
            condition_on_previous_text=True,
            temperature=0.0,
        )

        detected_language = info.language
        results: list[TranscriptionSegment] = []
        for segment in segments:
            text = segment.text.strip()
            if not text:
                continue

            language = detected_language or self._safe_detect(text) or "unknown"
            results.append(
                TranscriptionSegment(
                    start=segment.start,
                    end=segment.end,
                    text=text,
                    language=language,
                    logprob=segment.avg_logprob,
                )
            )

        return results

    @staticmethod
    def _safe_detect(text: str) -> str | None:
        try:
            return detect(text)
        except Exception:  # langdetect throws generic exceptions
            LOGGER.debug("Language detection failed for text: %s", text)
        return None


def load_audio(audio_bytes: bytes) -> np.ndarray:
    """Read WAV bytes as mono float32 at the model's sample rate."""

    with sf.SoundFile(io.BytesIO(audio_bytes), mode="r") as audio_file:
        sample_rate = audio_file.samplerate
        audio_array = audio_file.read(dtype="int16")

    if audio_array.ndim > 1:
        audio_array = np.mean(audio_array, axis=1).astype(np.int16)  # convert to mono

    pcm = pcm16_resample(audio_array, sample_rate, WHISPER_SAMPLE_RATE)
    return pcm.astype(np.float32) / 32768.0


def merge_segments(segments: Iterable[TranscriptionSegment]) -> str:
    """Merge segments into a single string."""

    return " ".join(segment.text for segment in segments).strip()


class LocalWhisperProvider(BatchProvider):
    name = "whisper_local"

    def __init__(self, transcriber: WhisperTranscriber | None = None) -> None:
        self._transcriber = transcriber or WhisperTranscriber()

    async def transcribe(self, wav_bytes: bytes, *, language: str | None = None) -> BatchTranscript:
        try:
            segments = await asyncio.to_thread(self._transcriber.transcribe, wav_bytes, language)
        except (RuntimeError, ValueError) as exc:
            raise TranscriptionFailedError(f"Local transcription failed: {exc}") from exc

        detected = segments[0].language if segments else None
        return BatchTranscript(text=merge_segments(segments), language=detected or language)
