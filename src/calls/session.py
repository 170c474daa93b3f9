"""Per-call state kept in process memory for the lifetime of a call."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

LOGGER = logging.getLogger(__name__)


class CallState(Enum):
    START = "start"
    PIN_PENDING = "pin_pending"
    MENU_PENDING = "menu_pending"
    CONVERSATION = "conversation"
    VOICE_NOTE_RECORDING = "voice_note_recording"
    TASK_CONFIRM = "task_confirm"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        return self is CallState.TERMINATED


class CallMode(Enum):
    CONVERSATION = "conversation"
    VOICE_NOTE = "voice-note"
    TASK_PENDING = "task-pending"


@dataclass
class CallSession:
    id: str
    caller_number: str
    caller_name: str = "Guest"
    pin_attempts: int = 0
    language: str | None = None
    mode: CallMode = CallMode.CONVERSATION
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: CallState = CallState.START
    destination_hint: str | None = None
    silent_turns: int = 0
    history: list[dict[str, str]] = field(default_factory=list)

    def remember(self, role: str, content: str, *, limit: int) -> None:
        """Append a turn to the model context, keeping the last ``limit`` turns."""

        if limit <= 0:
            return
        self.history.append({"role": role, "content": content})
        del self.history[:-limit]


class SessionStore:
    """In-memory map of call id -> session.

    Single-process and single event loop: sessions are only touched between
    suspension points, so no locking is needed.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, CallSession] = {}

    def get(self, call_id: str) -> CallSession | None:
        return self._sessions.get(call_id)

    def put(self, session: CallSession) -> None:
        self._sessions[session.id] = session

    def remove(self, call_id: str) -> CallSession | None:
        session = self._sessions.pop(call_id, None)
        if session is not None:
            LOGGER.info("Session %s closed (caller=%s)", call_id, session.caller_number)
        return session

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions
