"""Transport-neutral description of what the carrier should do next.

The state machine produces these; ``api.twiml`` renders them to TwiML.
Action targets are symbolic endpoint names resolved by the renderer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

Endpoint = Literal["verify_pin", "menu", "speech", "stream_result", "recording", "no_input"]


@dataclass(frozen=True)
class Say:
    text: str
    voice: str | None = None
    language: str | None = None


@dataclass(frozen=True)
class GatherDigits:
    prompts: tuple[Say, ...]
    action: Endpoint
    num_digits: int | None = None
    timeout: int = 10
    # Where Twilio goes when nothing was entered.
    fallback: Endpoint = "no_input"


@dataclass(frozen=True)
class Listen:
    """One speech turn: carrier gather, or a media stream window."""

    language: str
    prompt: Say | None = None


@dataclass(frozen=True)
class Record:
    prompt: Say
    max_length: int
    action: Endpoint = "recording"


@dataclass(frozen=True)
class Hangup:
    pass


Verb = Union[Say, GatherDigits, Listen, Record, Hangup]


@dataclass(frozen=True)
class Reply:
    verbs: tuple[Verb, ...] = field(default_factory=tuple)
    stop_stream: bool = False

    @property
    def hangs_up(self) -> bool:
        return any(isinstance(verb, Hangup) for verb in self.verbs)

    @property
    def gathers_digits(self) -> bool:
        return any(isinstance(verb, GatherDigits) for verb in self.verbs)


def reply(*verbs: Verb) -> Reply:
    return Reply(verbs=tuple(verbs))


def terminal(message: Say) -> Reply:
    return Reply(verbs=(message, Hangup()))
