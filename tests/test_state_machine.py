from __future__ import annotations

from calls.replies import GatherDigits, Hangup, Listen, Record, Say
from calls.session import CallMode, CallSession, CallState
from calls.state_machine import (
    AuthorizationResult,
    Authorize,
    CallEnded,
    CallStateMachine,
    CollectTranscript,
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
    VerifyPin,
    VoiceNoteResult,
)
from calls.voice_notes import RecordingInfo
from security.gate import AuthDecision, PinCheck

from conftest import make_voice_config


def _says(step) -> list[str]:
    texts = []
    for verb in step.reply.verbs:
        if isinstance(verb, Say):
            texts.append(verb.text)
        elif isinstance(verb, GatherDigits):
            texts.extend(prompt.text for prompt in verb.prompts)
        elif isinstance(verb, Record):
            texts.append(verb.prompt.text)
    return texts


def _in_conversation(machine: CallStateMachine, language: str = "en") -> CallSession:
    session = CallSession(id="CA1", caller_number="+15550001111", caller_name="Ada")
    session.state = CallState.MENU_PENDING
    machine.step(session, MenuSelected("1" if language == "en" else "2"))
    return session


def test_incoming_call_requests_authorization(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15550001111")

    step = machine.step(session, IncomingCall())

    assert step.reply is None
    assert step.effect == Authorize("+15550001111")


def test_rejected_caller_hears_reason_and_hangs_up(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15551230000")

    step = machine.step(session, AuthorizationResult(AuthDecision(allowed=False, reason="unauthorized")))

    assert session.state is CallState.TERMINATED
    assert step.reply.hangs_up
    assert not step.reply.gathers_digits
    assert "not authorized" in _says(step)[0]


def test_authorized_caller_gets_pin_gather(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path, pinLength=4))
    session = CallSession(id="CA1", caller_number="+15550001111")
    decision = AuthDecision(allowed=True, reason="authorized", name="Ada", destination="chat-42")

    step = machine.step(session, AuthorizationResult(decision))

    gather = step.reply.verbs[0]
    assert isinstance(gather, GatherDigits)
    assert gather.num_digits == 4
    assert gather.action == "verify_pin"
    assert session.state is CallState.PIN_PENDING
    assert session.caller_name == "Ada"
    assert session.destination_hint == "chat-42"


def test_pin_flow(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15550001111", state=CallState.PIN_PENDING)

    assert machine.step(session, PinEntered("000000")).effect == VerifyPin("000000")

    retry = machine.step(session, PinResult(PinCheck(ok=False, attempts_remaining=2)))
    assert session.state is CallState.PIN_PENDING
    assert "Incorrect PIN. You have 2 attempts remaining." in _says(retry)[0]

    menu = machine.step(session, PinResult(PinCheck(ok=True, attempts_remaining=2)))
    assert session.state is CallState.MENU_PENDING
    prompts = _says(menu)
    assert "For English, press 1." in prompts
    assert "Para español, oprima 2." in prompts
    assert "To leave a voice note, press 9." in prompts


def test_exhausted_pin_terminates(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15550001111", state=CallState.PIN_PENDING)

    step = machine.step(session, PinResult(PinCheck(ok=False, attempts_remaining=0, exhausted=True)))

    assert session.state is CallState.TERMINATED
    assert step.reply.hangs_up


def test_menu_language_selection(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15550001111", caller_name="Ada")
    session.state = CallState.MENU_PENDING

    step = machine.step(session, MenuSelected("2"))

    assert session.language == "es"
    assert session.state is CallState.CONVERSATION
    welcome, listen = step.reply.verbs
    assert welcome.text.startswith("Bienvenido Ada")
    assert welcome.voice == "Polly.Lupe"
    assert isinstance(listen, Listen)
    assert listen.language == "es-US"


def test_unknown_menu_digit_uses_default_language(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15550001111")
    session.state = CallState.MENU_PENDING

    machine.step(session, MenuSelected(""))

    assert session.language == "en"
    assert session.state is CallState.CONVERSATION


def test_voice_note_key_starts_recording(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15550001111")
    session.state = CallState.MENU_PENDING

    step = machine.step(session, MenuSelected("9"))

    record = step.reply.verbs[0]
    assert isinstance(record, Record)
    assert record.max_length == 90
    assert session.state is CallState.VOICE_NOTE_RECORDING
    assert session.mode is CallMode.VOICE_NOTE


def test_chat_utterance_goes_to_orchestrator_then_listens_again(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = _in_conversation(machine)

    step = machine.step(session, SpeechHeard("What's the weather like?"))
    assert step.effect == Respond("What's the weather like?")

    answer = machine.step(session, ReplyReady("Sunny all day."))
    assert answer.reply.verbs[0].text == "Sunny all day."
    assert isinstance(answer.reply.verbs[-1], Listen)
    assert session.state is CallState.CONVERSATION


def test_goodbye_terminates_with_farewell(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = _in_conversation(machine)

    step = machine.step(session, SpeechHeard("Okay, goodbye!"))

    assert session.state is CallState.TERMINATED
    assert _says(step)[0].startswith("Goodbye Ada")
    assert isinstance(step.reply.verbs[-1], Hangup)


def test_task_is_queued_then_confirmed(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = _in_conversation(machine)

    step = machine.step(session, SpeechHeard("Remind me to call the bank tomorrow"))
    assert step.effect == QueueTask("Remind me to call the bank tomorrow")
    assert session.mode is CallMode.TASK_PENDING

    confirm = machine.step(session, TaskQueued(ok=True))
    assert session.state is CallState.TASK_CONFIRM
    assert isinstance(confirm.reply.verbs[-1], Listen)

    # The next utterance is an ordinary turn again.
    follow = machine.step(session, SpeechHeard("What time is it?"))
    assert follow.effect == Respond("What time is it?")
    assert session.state is CallState.CONVERSATION
    assert session.mode is CallMode.CONVERSATION


def test_failed_task_queue_returns_to_conversation(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = _in_conversation(machine)
    machine.step(session, SpeechHeard("send me the report"))

    step = machine.step(session, TaskQueued(ok=False))

    assert session.state is CallState.CONVERSATION
    assert "couldn't save" in _says(step)[0]


def test_silence_reprompts_then_ends_call(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path, maxSilentTurns=2))
    session = _in_conversation(machine)

    first = machine.step(session, SpeechHeard("   "))
    assert "didn't hear" in _says(first)[0]
    assert session.state is CallState.CONVERSATION

    second = machine.step(session, SpeechHeard(""))
    assert second.reply.hangs_up
    assert session.state is CallState.TERMINATED


def test_stream_turn_requests_transcript(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = _in_conversation(machine)

    assert machine.step(session, StreamTurnEnded()).effect == CollectTranscript()


def test_recording_completed_saves_and_terminates(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15550001111")
    session.state = CallState.VOICE_NOTE_RECORDING
    recording = RecordingInfo(url="https://api.twilio.com/rec/RE1", recording_id="RE1", duration_seconds=12)

    step = machine.step(session, RecordingCompleted(recording))
    assert step.effect == SaveVoiceNote(recording)

    done = machine.step(session, VoiceNoteResult(saved=True))
    assert "saved" in _says(done)[0]
    assert session.state is CallState.TERMINATED


def test_recording_without_url_fails(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15550001111")
    session.state = CallState.VOICE_NOTE_RECORDING

    step = machine.step(session, RecordingCompleted(RecordingInfo(url="", recording_id="RE1")))

    assert "couldn't save your voice note" in _says(step)[0]
    assert session.state is CallState.TERMINATED


def test_unexpected_event_is_a_session_error(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    session = CallSession(id="CA1", caller_number="+15550001111", state=CallState.PIN_PENDING)

    step = machine.step(session, SpeechHeard("hello"))

    assert _says(step) == ["Session error. Goodbye."]
    assert session.state is CallState.TERMINATED


def test_no_input_and_hangup_terminate_from_any_state(tmp_path):
    machine = CallStateMachine(make_voice_config(tmp_path))
    waiting = CallSession(id="CA1", caller_number="+15550001111", state=CallState.MENU_PENDING)
    talking = _in_conversation(machine)

    assert machine.step(waiting, NoInput()).reply.hangs_up
    assert waiting.state is CallState.TERMINATED

    ended = machine.step(talking, CallEnded())
    assert ended.reply.verbs == ()
    assert talking.state is CallState.TERMINATED
