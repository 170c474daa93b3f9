"""Domain-specific exceptions for call handling.

These exceptions are safe to import from API layers without triggering provider imports.
"""

from __future__ import annotations


class AssistantError(Exception):
    default_detail: str = "Assistant error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class LLMFailedError(AssistantError):
    default_detail = "Language model request failed."


class LLMTimeoutError(LLMFailedError):
    default_detail = "Language model request timed out."


class TranscriptionFailedError(AssistantError):
    default_detail = "Transcription failed."


class SpeechProviderUnavailableError(AssistantError):
    default_detail = "Speech provider is not configured."


class RecordingDownloadError(AssistantError):
    default_detail = "Recording download failed."


class NotificationError(AssistantError):
    default_detail = "Notification delivery failed."
