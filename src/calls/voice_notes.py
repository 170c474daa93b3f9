"""Voice-note pipeline: download the recording, store it, transcribe, log metadata."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

from agents.errors import AssistantError
from speech.providers import DEFAULT_LANGUAGE, BatchProvider, language_code
from storage.voice_notes import VoiceNoteRecord, VoiceNoteStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordingInfo:
    url: str
    recording_id: str
    duration_seconds: int = 0


class VoiceNoteService:
    def __init__(
        self,
        store: VoiceNoteStore,
        *,
        download: Callable[[str], Awaitable[bytes]],
        provider: BatchProvider | None,
        transcription_timeout: float,
        language_overrides: Mapping[str, Mapping[str, str]] | None = None,
        default_language: str = DEFAULT_LANGUAGE,
    ) -> None:
        self._store = store
        self._default_language = default_language
        self._download = download
        self._provider = provider
        self._timeout = transcription_timeout
        self._overrides = language_overrides

    async def process(self, session, recording: RecordingInfo, *, language: str) -> VoiceNoteRecord:
        """Persist one recording.

        Download and storage failures propagate; a failed transcription only
        leaves the note in ``pending`` status.
        """

        audio = await self._download(recording.url)
        path = self._store.save_audio(recording.recording_id, audio)
        LOGGER.info(
            "Stored recording %s (%ds) for %s at %s",
            recording.recording_id,
            recording.duration_seconds,
            session.caller_number,
            path,
        )

        transcript = await self._transcribe(audio, language)
        record = VoiceNoteRecord(
            call_id=session.id,
            caller_number=session.caller_number,
            caller_name=session.caller_name,
            recording_id=recording.recording_id,
            audio_path=str(path),
            duration_seconds=recording.duration_seconds,
            language=language,
            transcript=transcript,
            status="transcribed" if transcript else "pending",
        )
        self._store.append(record)
        return record

    async def _transcribe(self, audio: bytes, language: str) -> str | None:
        if self._provider is None:
            LOGGER.info("No batch transcription provider configured; note left pending.")
            return None

        code = language_code(
            self._provider.name, language, self._overrides, default=self._default_language
        )
        try:
            result = await asyncio.wait_for(
                self._provider.transcribe(audio, language=code), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            LOGGER.warning("Voice note transcription timed out after %.1fs", self._timeout)
            return None
        except AssistantError as exc:
            LOGGER.warning("Voice note transcription failed: %s", exc)
            return None
        return result.text.strip() or None
