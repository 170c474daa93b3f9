from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Must be set before importing modules that read settings.
RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="voice-concierge-tests-"))
os.environ.setdefault("DATA_DIR", str(RUNTIME_DIR))
os.environ.setdefault("VOICE_CONFIG_PATH", str(RUNTIME_DIR / "missing-voice-config.json"))
os.environ.setdefault("PUBLIC_BASE_URL", "https://voice.example.com")

from agents.errors import LLMTimeoutError  # noqa: E402
from agents.orchestrator import ResponseOrchestrator  # noqa: E402
from calls.service import CallService  # noqa: E402
from calls.session import SessionStore  # noqa: E402
from calls.voice_notes import VoiceNoteService  # noqa: E402
from config.voice_config import VoiceConfig  # noqa: E402
from escalation.queue import EscalationQueue  # noqa: E402
from llm.base import BaseLLMClient  # noqa: E402
from security.gate import RateLimiter, SecurityGate  # noqa: E402
from speech.providers import BatchProvider, BatchTranscript  # noqa: E402
from storage.voice_notes import VoiceNoteStore  # noqa: E402

ALLOWED_NUMBER = "+15550001111"
ALLOWED_PIN = "123456"
UNKNOWN_NUMBER = "+15551230000"


class FakeLLM(BaseLLMClient):
    """Replays scripted outcomes: strings are replies, exceptions are raised."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    async def chat(self, messages, *, temperature: float = 0.7, timeout: float | None = None) -> str:
        self.calls.append({"messages": list(messages), "timeout": timeout})
        outcome = self.outcomes.pop(0) if self.outcomes else "Sure thing."
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class TimingOutLLM(FakeLLM):
    async def chat(self, messages, *, temperature: float = 0.7, timeout: float | None = None) -> str:
        self.calls.append({"messages": list(messages), "timeout": timeout})
        raise LLMTimeoutError()


class FakeBatchProvider(BatchProvider):
    name = "groq"

    def __init__(self, text: str = "hello there", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[dict] = []

    async def transcribe(self, wav_bytes: bytes, *, language: str | None = None) -> BatchTranscript:
        self.calls.append({"size": len(wav_bytes), "language": language})
        if self.error is not None:
            raise self.error
        return BatchTranscript(text=self.text, language=language)


async def fake_download(url: str) -> bytes:
    return b"RIFF0000WAVEfake-audio"


def make_voice_config(tmp_path: Path, **overrides) -> VoiceConfig:
    data = {
        "allowedNumbers": [
            {"number": ALLOWED_NUMBER, "pin": ALLOWED_PIN, "name": "Ada", "destination": "chat-42"},
        ],
        "maxAttempts": 3,
        "voiceNotes": {"directory": str(tmp_path / "voice-notes"), "maxDurationSeconds": 90},
    }
    data.update(overrides)
    return VoiceConfig.model_validate(data)


def make_call_service(
    config: VoiceConfig,
    tmp_path: Path,
    *,
    llm: BaseLLMClient | None = None,
    provider=None,
    download=fake_download,
    sessions: SessionStore | None = None,
) -> CallService:
    gate = SecurityGate(
        config.allowed_numbers,
        rate_limiter=RateLimiter(
            window_seconds=config.rate_limit.window_seconds,
            max_calls=config.rate_limit.max_calls,
        ),
        max_attempts=config.max_attempts,
    )
    queue = EscalationQueue(tmp_path / "pending.jsonl", tmp_path / "processed.jsonl")
    orchestrator = ResponseOrchestrator(llm or FakeLLM(), queue, config.response)
    voice_notes = VoiceNoteService(
        VoiceNoteStore(config.voice_notes.directory),
        download=download,
        provider=provider if isinstance(provider, BatchProvider) else None,
        transcription_timeout=1.0,
    )
    return CallService(
        config,
        gate,
        orchestrator,
        voice_notes,
        speech_provider=provider,
        transcription_timeout=1.0,
        sessions=sessions,
    )


@pytest.fixture()
def voice_config(tmp_path: Path) -> VoiceConfig:
    return make_voice_config(tmp_path)


@pytest.fixture(scope="session")
def app():
    import main

    return main.app


@pytest.fixture()
def call_service(tmp_path: Path, voice_config: VoiceConfig) -> CallService:
    return make_call_service(voice_config, tmp_path)


@pytest.fixture()
def client(app, call_service):
    # Override the service dependency so tests never build provider clients.
    import api.dependencies as deps

    app.dependency_overrides[deps.get_call_service] = lambda: call_service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
