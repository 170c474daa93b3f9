from __future__ import annotations

import logging

import httpx

from agents.errors import RecordingDownloadError
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


def build_twilio_client():
    from twilio.rest import Client

    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ValueError("Twilio credentials are not configured")
    return Client(settings.twilio_account_sid, settings.twilio_auth_token)


def recording_media_url(url: str) -> str:
    """Twilio serves the recording resource as WAV when ``.wav`` is appended."""

    if url.endswith((".wav", ".mp3")):
        return url
    return f"{url}.wav"


async def download_recording(url: str, *, timeout: float = 30.0) -> bytes:
    settings = get_settings()
    auth = None
    if settings.twilio_account_sid and settings.twilio_auth_token:
        auth = (settings.twilio_account_sid, settings.twilio_auth_token)

    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(recording_media_url(url), auth=auth)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        LOGGER.error("Recording download failed for %s: %s", url, exc)
        raise RecordingDownloadError(str(exc)) from exc

    if not response.content:
        raise RecordingDownloadError("Recording is empty.")
    return response.content
