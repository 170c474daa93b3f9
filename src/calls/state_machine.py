"""Call flow as a step function: ``step(session, event) -> Step``.

The machine never performs I/O. When it needs the outside world (the security
gate, the language model, the queue, the voice-note pipeline, transcription) it
returns an effect; the call controller runs it and feeds the outcome back as the
next event. A step that carries a reply ends the turn.

    START -> PIN_PENDING -> MENU_PENDING -> CONVERSATION | VOICE_NOTE_RECORDING
                                            | TASK_CONFIRM -> TERMINATED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from calls.intents import Intent, classify_intent
from calls.messages import t
from calls.replies import GatherDigits, Listen, Record, Reply, Say, reply, terminal
from calls.session import CallMode, CallSession, CallState
from calls.voice_notes import RecordingInfo
from config.voice_config import VoiceConfig
from security.gate import AuthDecision, PinCheck
from speech.providers import language_code

LOGGER = logging.getLogger(__name__)


# Events -------------------------------------------------------------------


@dataclass(frozen=True)
class IncomingCall:
    pass


@dataclass(frozen=True)
class AuthorizationResult:
    decision: AuthDecision


@dataclass(frozen=True)
class PinEntered:
    digits: str


@dataclass(frozen=True)
class PinResult:
    check: PinCheck


@dataclass(frozen=True)
class MenuSelected:
    digit: str


@dataclass(frozen=True)
class SpeechHeard:
    transcript: str


@dataclass(frozen=True)
class StreamTurnEnded:
    pass


@dataclass(frozen=True)
class TranscriptionFailed:
    pass


@dataclass(frozen=True)
class ReplyReady:
    text: str


@dataclass(frozen=True)
class TaskQueued:
    ok: bool


@dataclass(frozen=True)
class RecordingCompleted:
    recording: RecordingInfo


@dataclass(frozen=True)
class VoiceNoteResult:
    saved: bool


@dataclass(frozen=True)
class NoInput:
    pass


@dataclass(frozen=True)
class CallEnded:
    pass


Event = Union[
    IncomingCall,
    AuthorizationResult,
    PinEntered,
    PinResult,
    MenuSelected,
    SpeechHeard,
    StreamTurnEnded,
    TranscriptionFailed,
    ReplyReady,
    TaskQueued,
    RecordingCompleted,
    VoiceNoteResult,
    NoInput,
    CallEnded,
]


# Effects ------------------------------------------------------------------


@dataclass(frozen=True)
class Authorize:
    caller_number: str


@dataclass(frozen=True)
class VerifyPin:
    digits: str


@dataclass(frozen=True)
class Respond:
    utterance: str


@dataclass(frozen=True)
class QueueTask:
    utterance: str


@dataclass(frozen=True)
class SaveVoiceNote:
    recording: RecordingInfo


@dataclass(frozen=True)
class CollectTranscript:
    pass


Effect = Union[Authorize, VerifyPin, Respond, QueueTask, SaveVoiceNote, CollectTranscript]


@dataclass(frozen=True)
class Step:
    reply: Reply | None = None
    effect: Effect | None = None


class CallStateMachine:
    """Transition rules for one call. Mutates only the session it is given."""

    def __init__(self, config: VoiceConfig) -> None:
        self._config = config
        self._handlers = {
            CallState.START: self._on_start,
            CallState.PIN_PENDING: self._on_pin_pending,
            CallState.MENU_PENDING: self._on_menu_pending,
            CallState.CONVERSATION: self._on_conversation,
            CallState.TASK_CONFIRM: self._on_conversation,
            CallState.VOICE_NOTE_RECORDING: self._on_voice_note,
        }

    def step(self, session: CallSession, event: Event) -> Step:
        if isinstance(event, CallEnded):
            session.state = CallState.TERMINATED
            return Step(reply=reply())
        if isinstance(event, NoInput):
            return self._terminate(session, "no_input")

        handler = self._handlers.get(session.state)
        step = handler(session, event) if handler is not None else None
        if step is None:
            LOGGER.warning(
                "Call %s: unexpected %s in state %s",
                session.id,
                type(event).__name__,
                session.state.value,
            )
            return self._terminate(session, "session_error")
        return step

    # Phrases --------------------------------------------------------------

    def language_of(self, session: CallSession | None) -> str:
        if session is not None and session.language:
            return session.language
        return self._config.default_language

    def say(self, session: CallSession | None, key: str, **params: object) -> Say:
        lang = self.language_of(session)
        return self._say_text(lang, t(lang, key, **params))

    def _say_text(self, lang: str, text: str, voice: str | None = None) -> Say:
        return Say(
            text=text,
            voice=voice or self._config.voice_for(lang),
            language=self._carrier_language(lang),
        )

    def _listen(self, session: CallSession) -> Listen:
        lang = self.language_of(session)
        return Listen(language=self._carrier_language(lang))

    def _carrier_language(self, lang: str) -> str:
        return language_code(
            "twilio", lang, self._config.language_codes, default=self._config.default_language
        )

    def _terminate(self, session: CallSession, key: str, **params: object) -> Step:
        session.state = CallState.TERMINATED
        return Step(reply=terminal(self.say(session, key, **params)))

    # States ---------------------------------------------------------------

    def _on_start(self, session: CallSession, event: Event) -> Step | None:
        if isinstance(event, IncomingCall):
            return Step(effect=Authorize(session.caller_number))
        if isinstance(event, AuthorizationResult):
            decision = event.decision
            if not decision.allowed:
                return self._terminate(session, f"rejected_{decision.reason}")
            session.caller_name = decision.name or session.caller_name
            session.destination_hint = decision.destination
            session.state = CallState.PIN_PENDING
            prompt = self.say(session, "pin_prompt", digits=self._config.pin_length)
            return Step(reply=reply(self._pin_gather(prompt)))
        return None

    def _pin_gather(self, prompt: Say) -> GatherDigits:
        return GatherDigits(
            prompts=(prompt,),
            action="verify_pin",
            num_digits=self._config.pin_length,
            timeout=10,
        )

    def _on_pin_pending(self, session: CallSession, event: Event) -> Step | None:
        if isinstance(event, PinEntered):
            return Step(effect=VerifyPin(event.digits))
        if isinstance(event, PinResult):
            check = event.check
            if check.ok:
                session.state = CallState.MENU_PENDING
                return Step(reply=reply(self._menu_gather()))
            if check.exhausted:
                return self._terminate(session, "pin_exhausted")
            prompt = self.say(session, "pin_incorrect", remaining=check.attempts_remaining)
            return Step(reply=reply(self._pin_gather(prompt)))
        return None

    def _menu_gather(self) -> GatherDigits:
        menu = self._config.menu
        prompts = [
            self._say_text(option.lang, option.prompt, voice=option.voice)
            for option in menu.languages
        ]
        if menu.voice_note is not None:
            prompts.append(
                self._say_text(
                    self._config.default_language, menu.voice_note.prompt, voice=menu.voice_note.voice
                )
            )
        return GatherDigits(
            prompts=tuple(prompts),
            action="menu",
            num_digits=1,
            timeout=menu.timeout_seconds,
            fallback="menu",
        )

    def _on_menu_pending(self, session: CallSession, event: Event) -> Step | None:
        if not isinstance(event, MenuSelected):
            return None

        digit = event.digit.strip()
        voice_note = self._config.menu.voice_note
        if voice_note is not None and digit and digit == voice_note.key:
            return self._start_recording(session)

        option = self._config.language_option(digit) if digit else None
        session.language = option.lang if option else self._config.default_language
        session.state = CallState.CONVERSATION
        session.mode = CallMode.CONVERSATION
        LOGGER.info("Call %s: language=%s", session.id, session.language)
        return Step(
            reply=reply(self.say(session, "welcome", name=session.caller_name), self._listen(session))
        )

    def _start_recording(self, session: CallSession) -> Step:
        session.state = CallState.VOICE_NOTE_RECORDING
        session.mode = CallMode.VOICE_NOTE
        voice_note = self._config.menu.voice_note
        prompt = self.say(session, "voice_note_prompt")
        if voice_note is not None and voice_note.voice:
            prompt = Say(text=prompt.text, voice=voice_note.voice, language=prompt.language)
        return Step(
            reply=reply(Record(prompt=prompt, max_length=self._config.voice_notes.max_duration_seconds))
        )

    def _on_conversation(self, session: CallSession, event: Event) -> Step | None:
        if isinstance(event, StreamTurnEnded):
            return Step(effect=CollectTranscript())
        if isinstance(event, SpeechHeard):
            return self._on_speech(session, event.transcript)
        if isinstance(event, TranscriptionFailed):
            return Step(reply=reply(self.say(session, "transcription_failed"), self._listen(session)))
        if isinstance(event, ReplyReady):
            spoken = self._say_text(self.language_of(session), event.text)
            return Step(reply=reply(spoken, self._listen(session)))
        if isinstance(event, TaskQueued):
            if event.ok:
                session.state = CallState.TASK_CONFIRM
                key = "task_queued"
            else:
                session.state = CallState.CONVERSATION
                session.mode = CallMode.CONVERSATION
                key = "task_failed"
            return Step(reply=reply(self.say(session, key), self._listen(session)))
        return None

    def _on_speech(self, session: CallSession, transcript: str) -> Step:
        if session.state is CallState.TASK_CONFIRM:
            session.state = CallState.CONVERSATION
            session.mode = CallMode.CONVERSATION

        text = transcript.strip()
        if not text:
            session.silent_turns += 1
            if session.silent_turns >= self._config.max_silent_turns:
                return self._terminate(session, "no_input")
            return Step(reply=reply(self.say(session, "didnt_hear"), self._listen(session)))
        session.silent_turns = 0

        intent = classify_intent(text, self.language_of(session), self._config.intents)
        LOGGER.info("Call %s: intent=%s", session.id, intent.value)
        if intent is Intent.GOODBYE:
            return self._terminate(session, "farewell", name=session.caller_name)
        if intent is Intent.VOICE_NOTE and self._config.menu.voice_note is not None:
            return self._start_recording(session)
        if intent is Intent.TASK:
            session.mode = CallMode.TASK_PENDING
            return Step(effect=QueueTask(text))
        return Step(effect=Respond(text))

    def _on_voice_note(self, session: CallSession, event: Event) -> Step | None:
        if isinstance(event, RecordingCompleted):
            if not event.recording.url:
                return self._terminate(session, "voice_note_failed")
            return Step(effect=SaveVoiceNote(event.recording))
        if isinstance(event, VoiceNoteResult):
            return self._terminate(session, "voice_note_saved" if event.saved else "voice_note_failed")
        return None
