"""Twilio Voice integration.

This module provides:
- Voice webhooks (TwiML) driving the PIN, menu and conversation flow.
- Recording and call-status callbacks.
- The Media Streams WebSocket used when a speech provider transcribes live audio.

Every webhook returns a TwiML document, including on internal failures.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request, Response, WebSocket, WebSocketDisconnect

from api.dependencies import get_call_service
from api.twiml import RenderContext, render
from calls.replies import Endpoint, Reply
from calls.service import CallService
from calls.voice_notes import RecordingInfo
from config.settings import get_settings
from telephony.media_stream import StreamConnection, parse_twilio_ws_message

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])

ENDPOINT_PATHS: dict[Endpoint, str] = {
    "verify_pin": "/api/twilio/verify-pin",
    "menu": "/api/twilio/menu",
    "speech": "/api/twilio/speech",
    "stream_result": "/api/twilio/speech-stream-result",
    "recording": "/api/twilio/recording",
    "no_input": "/api/twilio/no-input",
}
STREAM_PATH = "/api/twilio/stream"

ENDED_STATUSES = {"completed", "busy", "failed", "no-answer", "canceled"}


def _public_url(request: Request, path: str) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return f"{settings.public_base_url.rstrip('/')}{path}"
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return str(request.base_url).rstrip("/") + path


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _respond(request: Request, service: CallService, call_id: str, reply: Reply) -> Response:
    ctx = RenderContext(
        call_id=call_id,
        urls={name: _public_url(request, path) for name, path in ENDPOINT_PATHS.items()},
        stream_url=_to_ws_url(_public_url(request, STREAM_PATH)) if service.streams_audio else None,
        pause_seconds=get_settings().stream_pause_seconds,
    )
    return _twiml_response(render(reply, ctx))


async def _form(request: Request) -> tuple[str, dict[str, str]]:
    form = await request.form()
    fields = {key: str(value) for key, value in form.items()}
    call_id = fields.get("CallSid", "").strip() or "unknown"
    return call_id, fields


@router.post("/incoming")
async def twilio_incoming(request: Request, service: CallService = Depends(get_call_service)) -> Response:
    call_id, form = await _form(request)
    caller = form.get("From", "").strip()
    reply = await service.incoming(call_id, caller)
    return _respond(request, service, call_id, reply)


@router.post("/verify-pin")
async def twilio_verify_pin(request: Request, service: CallService = Depends(get_call_service)) -> Response:
    call_id, form = await _form(request)
    reply = await service.pin_entered(call_id, form.get("Digits", ""))
    return _respond(request, service, call_id, reply)


@router.post("/menu")
async def twilio_menu(request: Request, service: CallService = Depends(get_call_service)) -> Response:
    call_id, form = await _form(request)
    reply = await service.menu_selected(call_id, form.get("Digits", ""))
    return _respond(request, service, call_id, reply)


@router.post("/speech")
async def twilio_speech(request: Request, service: CallService = Depends(get_call_service)) -> Response:
    call_id, form = await _form(request)
    reply = await service.speech(call_id, form.get("SpeechResult", ""))
    return _respond(request, service, call_id, reply)


@router.post("/speech-stream-result")
async def twilio_speech_stream_result(
    request: Request, service: CallService = Depends(get_call_service)
) -> Response:
    call_id, _ = await _form(request)
    reply = await service.stream_result(call_id)
    return _respond(request, service, call_id, reply)


@router.post("/recording")
async def twilio_recording(request: Request, service: CallService = Depends(get_call_service)) -> Response:
    call_id, form = await _form(request)
    try:
        duration = int(form.get("RecordingDuration") or 0)
    except ValueError:
        duration = 0
    recording = RecordingInfo(
        url=form.get("RecordingUrl", "").strip(),
        recording_id=form.get("RecordingSid", "").strip() or call_id,
        duration_seconds=max(0, duration),
    )
    reply = await service.recording_completed(call_id, recording)
    return _respond(request, service, call_id, reply)


@router.post("/no-input")
async def twilio_no_input(request: Request, service: CallService = Depends(get_call_service)) -> Response:
    call_id, _ = await _form(request)
    reply = await service.no_input(call_id)
    return _respond(request, service, call_id, reply)


@router.post("/status", status_code=204)
async def twilio_status(request: Request, service: CallService = Depends(get_call_service)) -> Response:
    call_id, form = await _form(request)
    status = form.get("CallStatus", "").strip()
    LOGGER.info("Call %s status %s", call_id, status or "?")
    if status in ENDED_STATUSES:
        await service.call_ended(call_id)
    return Response(status_code=204)


@router.websocket("/stream")
async def twilio_media_stream(websocket: WebSocket, service: CallService = Depends(get_call_service)) -> None:
    await websocket.accept()
    conn = StreamConnection()
    handler = service.stream_handler
    try:
        while True:
            message = await websocket.receive_text()
            try:
                parsed = parse_twilio_ws_message(message)
            except json.JSONDecodeError:
                LOGGER.warning("Discarding malformed media stream frame")
                continue
            await handler.handle_message(conn, parsed)
    except WebSocketDisconnect:
        LOGGER.info("Media stream socket closed (call %s)", conn.call_id)
    finally:
        await handler.close(conn)
