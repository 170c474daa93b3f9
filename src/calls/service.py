"""Call controller: feeds carrier callbacks through the state machine and runs its effects."""

from __future__ import annotations

import asyncio
import dataclasses
import logging

from agents.errors import AssistantError
from agents.orchestrator import ResponseOrchestrator
from calls.replies import Reply, terminal
from calls.session import CallSession, CallState, SessionStore
from calls.state_machine import (
    Authorize,
    AuthorizationResult,
    CallEnded,
    CallStateMachine,
    CollectTranscript,
    Effect,
    Event,
    IncomingCall,
    MenuSelected,
    NoInput,
    PinEntered,
    PinResult,
    QueueTask,
    RecordingCompleted,
    ReplyReady,
    Respond,
    SaveVoiceNote,
    SpeechHeard,
    StreamTurnEnded,
    TaskQueued,
    TranscriptionFailed,
    VerifyPin,
    VoiceNoteResult,
)
from calls.voice_notes import RecordingInfo, VoiceNoteService
from config.settings import Settings, get_settings
from config.voice_config import VoiceConfig, get_voice_config
from escalation.queue import EscalationQueue
from security.gate import RateLimiter, SecurityGate
from speech.providers import BatchProvider, SpeechProvider, language_code
from telephony.media_stream import MediaStreamHandler, TranscriptBuffer

LOGGER = logging.getLogger(__name__)

# A turn never needs more than a handful of effects; more means a transition loop.
MAX_EFFECTS_PER_TURN = 8


class CallService:
    """Owns the live sessions of this process.

    Each public method corresponds to one carrier callback and returns the
    ``Reply`` to render. Failures inside a turn end the call with an apology
    instead of surfacing as an HTTP error.
    """

    def __init__(
        self,
        config: VoiceConfig,
        gate: SecurityGate,
        orchestrator: ResponseOrchestrator,
        voice_notes: VoiceNoteService,
        *,
        speech_provider: SpeechProvider | None = None,
        transcription_timeout: float = 15.0,
        sessions: SessionStore | None = None,
    ) -> None:
        self._config = config
        self._machine = CallStateMachine(config)
        self._gate = gate
        self._orchestrator = orchestrator
        self._voice_notes = voice_notes
        self._provider = speech_provider
        self._transcription_timeout = transcription_timeout
        self._sessions = sessions if sessions is not None else SessionStore()
        self.transcripts = TranscriptBuffer()
        self.stream_handler = MediaStreamHandler(
            speech_provider,
            self.transcripts,
            language_for=self.language_for,
            language_overrides=config.language_codes,
            default_language=config.default_language,
        )

    @property
    def config(self) -> VoiceConfig:
        return self._config

    @property
    def streams_audio(self) -> bool:
        """Listen turns stream carrier audio to us instead of using the carrier gather."""

        return self._provider is not None

    @property
    def active_calls(self) -> int:
        return len(self._sessions)

    def language_for(self, call_id: str) -> str:
        return self._machine.language_of(self._sessions.get(call_id))

    # Carrier callbacks ----------------------------------------------------

    async def incoming(self, call_id: str, caller_number: str) -> Reply:
        if call_id in self._sessions:
            LOGGER.warning("Call %s restarted; discarding previous session", call_id)
            self._close(call_id)
        session = CallSession(id=call_id, caller_number=caller_number)
        self._sessions.put(session)
        LOGGER.info("Incoming call %s from %s", call_id, caller_number)
        return await self._run(session, IncomingCall())

    async def pin_entered(self, call_id: str, digits: str) -> Reply:
        return await self._dispatch(call_id, PinEntered(digits.strip()))

    async def menu_selected(self, call_id: str, digit: str) -> Reply:
        return await self._dispatch(call_id, MenuSelected(digit))

    async def speech(self, call_id: str, transcript: str) -> Reply:
        return await self._dispatch(call_id, SpeechHeard(transcript))

    async def stream_result(self, call_id: str) -> Reply:
        result = await self._dispatch(call_id, StreamTurnEnded())
        # The next listen turn opens a new stream; stop the one that just ended.
        return dataclasses.replace(result, stop_stream=True)

    async def recording_completed(self, call_id: str, recording: RecordingInfo) -> Reply:
        return await self._dispatch(call_id, RecordingCompleted(recording))

    async def no_input(self, call_id: str) -> Reply:
        return await self._dispatch(call_id, NoInput())

    async def call_ended(self, call_id: str) -> None:
        session = self._sessions.get(call_id)
        if session is None:
            self.transcripts.discard(call_id)
            return
        self._machine.step(session, CallEnded())
        self._close(call_id)

    # Turn execution -------------------------------------------------------

    async def _dispatch(self, call_id: str, event: Event) -> Reply:
        session = self._sessions.get(call_id)
        if session is None:
            LOGGER.warning("No session for call %s (%s)", call_id, type(event).__name__)
            return terminal(self._machine.say(None, "session_error"))
        return await self._run(session, event)

    async def _run(self, session: CallSession, event: Event) -> Reply:
        try:
            step = self._machine.step(session, event)
            effects = 0
            while step.reply is None:
                if step.effect is None or effects >= MAX_EFFECTS_PER_TURN:
                    raise RuntimeError(f"Turn for call {session.id} produced no reply")
                effects += 1
                outcome = await self._perform(session, step.effect)
                step = self._machine.step(session, outcome)
            result = step.reply
        except Exception:
            LOGGER.exception("Call %s failed in state %s", session.id, session.state.value)
            session.state = CallState.TERMINATED
            result = terminal(self._machine.say(session, "internal_error"))

        if session.state.is_terminal:
            self._close(session.id)
        return result

    async def _perform(self, session: CallSession, effect: Effect) -> Event:
        if isinstance(effect, Authorize):
            return AuthorizationResult(self._gate.authorize(effect.caller_number))
        if isinstance(effect, VerifyPin):
            return PinResult(self._gate.verify_pin(session, effect.digits))
        if isinstance(effect, Respond):
            return ReplyReady(await self._orchestrator.respond(effect.utterance, session))
        if isinstance(effect, QueueTask):
            return TaskQueued(self._orchestrator.queue_task(effect.utterance, session))
        if isinstance(effect, SaveVoiceNote):
            return await self._save_voice_note(session, effect.recording)
        if isinstance(effect, CollectTranscript):
            return await self._collect_transcript(session)
        raise TypeError(f"Unknown effect {effect!r}")

    async def _save_voice_note(self, session: CallSession, recording: RecordingInfo) -> Event:
        language = self._machine.language_of(session)
        try:
            note = await self._voice_notes.process(session, recording, language=language)
        except (AssistantError, OSError) as exc:
            LOGGER.error("Voice note for call %s not saved: %s", session.id, exc)
            return VoiceNoteResult(saved=False)
        LOGGER.info("Voice note %s saved (%s)", note.id, note.status)
        return VoiceNoteResult(saved=True)

    async def _collect_transcript(self, session: CallSession) -> Event:
        if not isinstance(self._provider, BatchProvider):
            return SpeechHeard(self.transcripts.pop_transcript(session.id))

        wav = self.transcripts.pop_audio_wav(session.id)
        if wav is None:
            return SpeechHeard("")

        code = language_code(
            self._provider.name,
            self._machine.language_of(session),
            self._config.language_codes,
            default=self._config.default_language,
        )
        try:
            result = await asyncio.wait_for(
                self._provider.transcribe(wav, language=code), timeout=self._transcription_timeout
            )
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Transcription for call %s timed out after %.1fs",
                session.id,
                self._transcription_timeout,
            )
            return TranscriptionFailed()
        except AssistantError as exc:
            LOGGER.warning("Transcription for call %s failed: %s", session.id, exc)
            return TranscriptionFailed()
        return SpeechHeard(result.text)

    def _close(self, call_id: str) -> None:
        self._sessions.remove(call_id)
        self.transcripts.discard(call_id)


def build_call_service(
    settings: Settings | None = None, config: VoiceConfig | None = None
) -> CallService:
    """Wire the call service from environment settings and the voice config file."""

    from integrations.twilio_client import download_recording
    from llm.factory import build_llm_client
    from speech.factory import build_batch_provider, build_speech_provider
    from storage.voice_notes import VoiceNoteStore

    settings = settings or get_settings()
    config = config or get_voice_config()

    gate = SecurityGate(
        config.allowed_numbers,
        rate_limiter=RateLimiter(
            window_seconds=config.rate_limit.window_seconds,
            max_calls=config.rate_limit.max_calls,
        ),
        max_attempts=config.max_attempts,
    )

    try:
        llm = build_llm_client()
    except (ImportError, ValueError) as exc:
        LOGGER.warning("Language model unavailable (%s); calls will get an apology.", exc)
        llm = None

    queue = EscalationQueue(settings.pending_queue_path, settings.processed_queue_path)
    provider = build_speech_provider(config.stt_provider, settings)
    voice_notes = VoiceNoteService(
        VoiceNoteStore(config.voice_notes.directory),
        download=download_recording,
        provider=build_batch_provider(provider, settings),
        transcription_timeout=settings.transcription_timeout_seconds,
        language_overrides=config.language_codes,
        default_language=config.default_language,
    )
    return CallService(
        config,
        gate,
        ResponseOrchestrator(
            llm, queue, config.response, default_language=config.default_language
        ),
        voice_notes,
        speech_provider=provider,
        transcription_timeout=settings.transcription_timeout_seconds,
    )
