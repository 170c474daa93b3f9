from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from speech.providers import (
    DEFAULT_LANGUAGE,
    BatchProvider,
    SpeechProvider,
    StreamingProvider,
    StreamingSession,
    TranscriptEvent,
    language_code,
)
from telephony.g711 import ulaw_to_wav

LOGGER = logging.getLogger(__name__)


@dataclass
class CallAudio:
    call_id: str
    ulaw_chunks: list[bytes] = field(default_factory=list)
    finals: list[str] = field(default_factory=list)


class TranscriptBuffer:
    """In-memory per-call capture shared by the stream socket and the webhooks.

    Note: This is a single-process store. For multi-worker deployments, replace
    with Redis or another shared store.
    """

    def __init__(self) -> None:
        self._calls: dict[str, CallAudio] = {}

    def _get(self, call_id: str) -> CallAudio:
        return self._calls.setdefault(call_id, CallAudio(call_id=call_id))

    def append_audio(self, call_id: str, chunk: bytes) -> None:
        self._get(call_id).ulaw_chunks.append(chunk)

    def add_final(self, call_id: str, text: str) -> None:
        self._get(call_id).finals.append(text)

    def pop_transcript(self, call_id: str) -> str:
        audio = self._calls.get(call_id)
        if audio is None or not audio.finals:
            return ""
        text = " ".join(audio.finals).strip()
        audio.finals.clear()
        return text

    def pop_audio_wav(self, call_id: str) -> bytes | None:
        audio = self._calls.get(call_id)
        if audio is None or not audio.ulaw_chunks:
            return None
        raw = b"".join(audio.ulaw_chunks)
        audio.ulaw_chunks.clear()
        return ulaw_to_wav(raw)

    def discard(self, call_id: str) -> None:
        self._calls.pop(call_id, None)


@dataclass
class StreamConnection:
    """State of one carrier media-stream socket."""

    call_id: str | None = None
    stream_sid: str | None = None
    session: StreamingSession | None = None


class MediaStreamHandler:
    """Routes Twilio Media Stream events to the configured speech provider.

    Streaming providers get a session per socket and report final transcripts
    into the buffer; batch providers get raw audio buffered until the call's
    listen turn ends.
    """

    def __init__(
        self,
        provider: SpeechProvider | None,
        buffer: TranscriptBuffer,
        *,
        language_for: Callable[[str], str | None],
        language_overrides: Mapping[str, Mapping[str, str]] | None = None,
        default_language: str = DEFAULT_LANGUAGE,
    ) -> None:
        self._provider = provider
        self._buffer = buffer
        self._language_for = language_for
        self._overrides = language_overrides
        self._default_language = default_language

    async def handle_message(self, conn: StreamConnection, message: dict[str, Any]) -> None:
        event = str(message.get("event") or "")
        if event == "start":
            await self._on_start(conn, message.get("start") or {})
        elif event == "media":
            await self._on_media(conn, message.get("media") or {})
        elif event == "stop":
            LOGGER.info("Stream %s stopped (call %s)", conn.stream_sid, conn.call_id)
            await self.close(conn)
        elif event == "connected":
            LOGGER.debug("Media stream connected")
        else:
            LOGGER.debug("Ignoring media stream event %r", event)

    async def _on_start(self, conn: StreamConnection, start: dict[str, Any]) -> None:
        params = start.get("customParameters") or {}
        conn.stream_sid = start.get("streamSid")
        conn.call_id = start.get("callSid") or params.get("callSid")
        LOGGER.info("Stream %s started for call %s", conn.stream_sid, conn.call_id)

        if not isinstance(self._provider, StreamingProvider) or not conn.call_id:
            return

        # Close a session left over from a restarted stream on the same socket.
        await self.close(conn)
        code = language_code(
            self._provider.name,
            self._language_for(conn.call_id),
            self._overrides,
            default=self._default_language,
        )
        try:
            conn.session = await self._provider.open_session(
                language=code,
                on_event=partial(self._on_transcript, conn.call_id),
                on_error=partial(self._on_provider_error, conn.call_id),
            )
        except Exception:
            LOGGER.exception(
                "Could not open %s session for call %s", self._provider.name, conn.call_id
            )

    async def _on_media(self, conn: StreamConnection, media: dict[str, Any]) -> None:
        if media.get("track") and media.get("track") != "inbound":
            return
        payload = media.get("payload")
        if not isinstance(payload, str) or not payload:
            return

        chunk = base64.b64decode(payload)
        if conn.session is not None:
            await conn.session.send(chunk)
        elif isinstance(self._provider, BatchProvider) and conn.call_id:
            self._buffer.append_audio(conn.call_id, chunk)

    async def _on_transcript(self, call_id: str, event: TranscriptEvent) -> None:
        if not event.is_final or not event.text.strip():
            return
        LOGGER.info("Final transcript for %s (confidence %.2f)", call_id, event.confidence)
        self._buffer.add_final(call_id, event.text.strip())

    async def _on_provider_error(self, call_id: str, exc: Exception) -> None:
        LOGGER.error("Speech provider error on call %s: %s", call_id, exc)

    async def close(self, conn: StreamConnection) -> None:
        session, conn.session = conn.session, None
        if session is None:
            return
        try:
            await session.close()
        except Exception:
            LOGGER.exception("Failed to close speech session for call %s", conn.call_id)


def parse_twilio_ws_message(text: str) -> dict[str, Any]:
    return json.loads(text)
