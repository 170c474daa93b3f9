"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration.

    Credentials and process-level knobs live here. The call flow itself (allowlist,
    menu, escalation routing) is described by the voice configuration file, see
    ``config.voice_config``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    log_level: str = Field(default="INFO")

    voice_config_path: Path = Field(
        default=Path("./voice-config.json"),
        description="JSON file with allowlist, menu and escalation routing.",
    )
    data_dir: Path = Field(default=Path("./data"))

    # Escalation queue files shared with the queue worker process
    escalation_pending_path: Path | None = Field(
        default=None,
        description="Defaults to <data_dir>/pending-queries.jsonl.",
    )
    escalation_processed_path: Path | None = Field(
        default=None,
        description="Defaults to <data_dir>/processed-queries.jsonl.",
    )

    # Twilio (Voice / SMS)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None, description="E.164, e.g. +1555...")
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    stream_pause_seconds: int = Field(
        default=6,
        description="How long a streamed listen turn lasts before Twilio asks for the result.",
    )

    # LLM connectivity (Groq exposes an OpenAI-compatible API)
    llm_provider: Literal["openai", "self_hosted_vllm"] = Field(default="openai")
    llm_endpoint: str | None = Field(
        default="https://api.groq.com/openai/v1",
        description="Base URL of the OpenAI-compatible or self-hosted inference server.",
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(default="llama-3.3-70b-versatile")
    llm_max_tokens: int = Field(default=300)

    # Speech recognition
    groq_api_key: str | None = Field(default=None)
    groq_transcription_model: str = Field(default="whisper-large-v3-turbo")
    deepgram_api_key: str | None = Field(default=None)
    deepgram_model: str = Field(default="nova-3")
    whisper_model_size: str = Field(default="Systran/faster-whisper-large-v3")
    whisper_compute_type: str = Field(default="auto")  # e.g. float16, int8_float16
    whisper_device: str = Field(default="auto")
    transcription_timeout_seconds: float = Field(default=15.0, gt=0)

    # Notification transports
    telegram_bot_token: str | None = Field(default=None)
    gateway_url: str | None = Field(default=None)
    gateway_token: str | None = Field(default=None)

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value

    @property
    def pending_queue_path(self) -> Path:
        return self.escalation_pending_path or self.data_dir / "pending-queries.jsonl"

    @property
    def processed_queue_path(self) -> Path:
        return self.escalation_processed_path or self.data_dir / "processed-queries.jsonl"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
