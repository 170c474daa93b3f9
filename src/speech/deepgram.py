"""Deepgram live transcription over a raw WebSocket."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import urlencode

import websockets

from agents.errors import SpeechProviderUnavailableError
from speech.providers import (
    ErrorCallback,
    StreamingProvider,
    StreamingSession,
    TranscriptCallback,
    TranscriptEvent,
)

LOGGER = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "wss://api.deepgram.com/v1/listen"


def build_listen_url(model: str, language: str, base_url: str = DEEPGRAM_LISTEN_URL) -> str:
    params = {
        "encoding": "mulaw",
        "sample_rate": 8000,
        "channels": 1,
        "model": model,
        "language": language,
        "smart_format": "true",
        "interim_results": "true",
        "endpointing": 300,
        "vad_events": "true",
    }
    return f"{base_url}?{urlencode(params)}"


def parse_results(message: dict[str, Any]) -> TranscriptEvent | None:
    """Extract the top alternative from a ``Results`` message; ``None`` if empty."""

    if message.get("type") != "Results":
        return None
    alternatives = (message.get("channel") or {}).get("alternatives") or []
    if not alternatives:
        return None
    best = alternatives[0] or {}
    text = str(best.get("transcript") or "")
    if not text:
        return None
    return TranscriptEvent(
        text=text,
        is_final=bool(message.get("is_final")),
        confidence=float(best.get("confidence") or 0.0),
        speech_final=bool(message.get("speech_final")),
    )


class DeepgramSession(StreamingSession):
    def __init__(self, ws, on_event: TranscriptCallback, on_error: ErrorCallback) -> None:
        self._ws = ws
        self._on_event = on_event
        self._on_error = on_error
        self._closed = False
        self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                if isinstance(raw, bytes):
                    continue
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    LOGGER.debug("Ignoring non-JSON Deepgram frame")
                    continue
                event = parse_results(message)
                if event is not None:
                    await self._on_event(event)
        except websockets.ConnectionClosed as exc:
            if not self._closed:
                await self._on_error(exc)
        except Exception as exc:
            LOGGER.exception("Deepgram reader failed")
            await self._on_error(exc)

    async def send(self, chunk: bytes) -> None:
        if self._closed:
            return
        try:
            await self._ws.send(chunk)
        except websockets.ConnectionClosed as exc:
            self._closed = True
            await self._on_error(exc)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.send(json.dumps({"type": "CloseStream"}))
            # Final results arrive after CloseStream; let the reader drain them.
            await asyncio.wait_for(asyncio.shield(self._reader), timeout=2.0)
        except (asyncio.TimeoutError, websockets.ConnectionClosed):
            LOGGER.debug("Deepgram session did not drain cleanly")
        finally:
            self._reader.cancel()
            await self._ws.close()


class DeepgramStreamingProvider(StreamingProvider):
    name = "deepgram"

    def __init__(self, api_key: str, *, model: str = "nova-3", url: str = DEEPGRAM_LISTEN_URL) -> None:
        if not api_key:
            raise SpeechProviderUnavailableError("DEEPGRAM_API_KEY not configured")
        self._api_key = api_key
        self._model = model
        self._url = url

    async def open_session(
        self,
        *,
        language: str,
        on_event: TranscriptCallback,
        on_error: ErrorCallback,
    ) -> StreamingSession:
        url = build_listen_url(self._model, language, self._url)
        try:
            ws = await websockets.connect(
                url,
                additional_headers={"Authorization": f"Token {self._api_key}"},
                ping_interval=20,
                ping_timeout=20,
            )
        except (OSError, websockets.InvalidHandshake) as exc:
            raise SpeechProviderUnavailableError(f"Deepgram connection failed: {exc}") from exc

        LOGGER.info("Deepgram session opened (model=%s, language=%s)", self._model, language)
        return DeepgramSession(ws, on_event, on_error)
