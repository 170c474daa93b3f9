"""Keyword intent classification for caller utterances."""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum

from config.voice_config import IntentPhrases


class Intent(Enum):
    CHAT = "chat"
    TASK = "task"
    VOICE_NOTE = "voice_note"
    GOODBYE = "goodbye"


def match_any_keyword(text: str, keywords: Iterable[str]) -> bool:
    """Check if any keyword appears in text as a whole word (not substring)."""
    lower = text.lower()
    return any(re.search(rf"\b{re.escape(kw.lower())}\b", lower) for kw in keywords)


def classify_intent(text: str, language: str, phrases: IntentPhrases) -> Intent:
    """Classify an utterance in ``language``; anything unmatched is CHAT."""

    if not text.strip():
        return Intent.CHAT
    if match_any_keyword(text, phrases.goodbye.get(language, ())):
        return Intent.GOODBYE
    if match_any_keyword(text, phrases.voice_note.get(language, ())):
        return Intent.VOICE_NOTE
    if match_any_keyword(text, phrases.task.get(language, ())):
        return Intent.TASK
    return Intent.CHAT
