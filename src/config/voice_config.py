"""Call-flow configuration loaded from the voice configuration JSON file.

The file uses camelCase keys (``allowedNumbers``, ``rateLimit`` ...); snake_case
keys are accepted as well. Anything missing falls back to the defaults below, and
a missing or broken file only produces a startup warning.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

SttProvider = Literal["twilio", "deepgram", "groq", "whisper_local"]
NotificationMethod = Literal["gateway", "telegram", "sms", "webhook"]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AllowlistEntry(_ConfigModel):
    number: str
    pin: str
    name: str = "Guest"
    destination: str | None = Field(
        default=None,
        description="Per-caller routing for follow-ups (chat id, phone number ...).",
    )

    @field_validator("pin", mode="before")
    @classmethod
    def pin_as_string(cls, value: object) -> str:
        return str(value)


class RateLimitConfig(_ConfigModel):
    window_seconds: float = Field(default=3600.0, gt=0)
    max_calls: int = Field(default=5, ge=1)


class LanguageOption(_ConfigModel):
    key: str
    lang: str
    voice: str | None = None
    prompt: str


class VoiceNoteOption(_ConfigModel):
    key: str = "9"
    voice: str | None = None
    prompt: str = "To leave a voice note, press 9."


class MenuConfig(_ConfigModel):
    languages: list[LanguageOption] = Field(
        default_factory=lambda: [
            LanguageOption(key="1", lang="en", voice="Polly.Joanna", prompt="For English, press 1."),
            LanguageOption(key="2", lang="es", voice="Polly.Lupe", prompt="Para español, oprima 2."),
        ]
    )
    voice_note: VoiceNoteOption | None = Field(default_factory=VoiceNoteOption)
    timeout_seconds: int = Field(default=5, ge=1)


class IntentPhrases(_ConfigModel):
    goodbye: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "en": ["goodbye", "bye", "hang up", "that's all"],
            "es": ["adiós", "adios", "hasta luego", "chao", "cuelga"],
        }
    )
    task: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "en": ["remind me", "send me", "follow up", "look into", "research", "get back to me"],
            "es": ["recuérdame", "recuerdame", "envíame", "enviame", "investiga", "averigua"],
        }
    )
    voice_note: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "en": ["voice note", "leave a message", "record a message"],
            "es": ["nota de voz", "dejar un mensaje", "grabar un mensaje"],
        }
    )


class ResponseConfig(_ConfigModel):
    first_timeout_seconds: float = Field(default=5.0, gt=0)
    retry_timeout_seconds: float = Field(default=8.0, gt=0)
    max_chars: int = Field(default=600, ge=40)
    history_turns: int = Field(default=6, ge=0)


class GatewayRoute(_ConfigModel):
    url: str | None = None
    channel: str = "telegram"
    default_destination: str | None = None


class TelegramRoute(_ConfigModel):
    bot_token: str | None = None
    default_chat_id: str | None = None


class SmsRoute(_ConfigModel):
    from_number: str | None = None
    default_to: str | None = None


class WebhookRoute(_ConfigModel):
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)


class EscalationConfig(_ConfigModel):
    method: NotificationMethod = "telegram"
    gateway: GatewayRoute = Field(default_factory=GatewayRoute)
    telegram: TelegramRoute = Field(default_factory=TelegramRoute)
    sms: SmsRoute = Field(default_factory=SmsRoute)
    webhook: WebhookRoute = Field(default_factory=WebhookRoute)
    poll_interval_seconds: float = Field(default=30.0, gt=0)
    processing_timeout_seconds: float = Field(default=60.0, gt=0)


class VoiceNotesConfig(_ConfigModel):
    directory: Path = Path("./data/voice-notes")
    max_duration_seconds: int = Field(default=120, ge=1)


class VoiceConfig(_ConfigModel):
    """Validated representation of ``voice-config.json``."""

    allowed_numbers: list[AllowlistEntry] = Field(default_factory=list)
    max_attempts: int = Field(default=3, ge=1)
    pin_length: int = Field(default=6, ge=1)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    default_language: str = "en"
    menu: MenuConfig = Field(default_factory=MenuConfig)
    voices: dict[str, str] = Field(
        default_factory=lambda: {"en": "Polly.Joanna", "es": "Polly.Lupe"}
    )
    stt_provider: SttProvider = "twilio"
    language_codes: dict[str, dict[str, str]] = Field(default_factory=dict)
    intents: IntentPhrases = Field(default_factory=IntentPhrases)
    response: ResponseConfig = Field(default_factory=ResponseConfig)
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    voice_notes: VoiceNotesConfig = Field(default_factory=VoiceNotesConfig)
    max_silent_turns: int = Field(default=3, ge=1)

    def voice_for(self, language: str) -> str | None:
        return self.voices.get(language)

    def language_option(self, digit: str) -> LanguageOption | None:
        for option in self.menu.languages:
            if option.key == digit:
                return option
        return None


def load_voice_config(path: Path) -> VoiceConfig:
    """Parse the voice configuration, tolerating a missing or malformed file."""

    if not path.exists():
        LOGGER.warning("Voice config %s not found; using defaults (no callers allowed).", path)
        return VoiceConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        config = VoiceConfig.model_validate(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        LOGGER.warning("Could not load voice config %s: %s; using defaults.", path, exc)
        return VoiceConfig()

    _warn_on_duplicates(config)
    LOGGER.info(
        "Loaded voice config: %d allowed numbers, stt=%s, escalation=%s",
        len(config.allowed_numbers),
        config.stt_provider,
        config.escalation.method,
    )
    return config


def _warn_on_duplicates(config: VoiceConfig) -> None:
    seen: set[str] = set()
    for entry in config.allowed_numbers:
        if entry.number in seen:
            LOGGER.warning(
                "Duplicate allowlist entry for %s; the first entry wins.", entry.number
            )
        seen.add(entry.number)
        if not entry.number.startswith("+"):
            LOGGER.warning("Allowlist number %s is not in E.164 format.", entry.number)


@lru_cache(maxsize=1)
def get_voice_config() -> VoiceConfig:
    """Return the cached voice configuration."""

    return load_voice_config(get_settings().voice_config_path)
