"""Voice-note audio files plus a JSONL metadata log."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from storage.jsonl import append_record, read_records

LOGGER = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class VoiceNoteRecord(BaseModel):
    """One recorded voice note."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    call_id: str
    caller_number: str
    caller_name: str
    recording_id: str
    audio_path: str
    duration_seconds: int = Field(ge=0)
    language: str
    transcript: str | None = None
    status: Literal["pending", "transcribed"] = "pending"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class VoiceNoteStore:
    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def metadata_path(self) -> Path:
        return self._directory / "notes.jsonl"

    def save_audio(self, recording_id: str, audio: bytes, *, suffix: str = ".wav") -> Path:
        safe_id = _UNSAFE_CHARS.sub("_", recording_id) or uuid.uuid4().hex
        path = self._directory / f"{safe_id}{suffix}"
        path.write_bytes(audio)
        return path

    def append(self, record: VoiceNoteRecord) -> None:
        append_record(self.metadata_path, record.model_dump(mode="json"))
        LOGGER.info(
            "Voice note %s saved for %s (status=%s)", record.id, record.caller_number, record.status
        )

    def list_notes(self) -> list[VoiceNoteRecord]:
        notes: list[VoiceNoteRecord] = []
        for raw in read_records(self.metadata_path):
            try:
                notes.append(VoiceNoteRecord.model_validate(raw))
            except ValidationError as exc:
                LOGGER.warning("Skipping invalid voice note record: %s", exc)
        return notes
