"""Turn model output into text that reads naturally through a TTS voice."""

from __future__ import annotations

import re

_CODE_FENCE = re.compile(r"```[^\n`]*\n?(.*?)```", re.DOTALL)
_HEADING = re.compile(r"^[ \t]{0,3}#{1,6}[ \t]*(.*)$", re.MULTILINE)
_BULLET = re.compile(r"^[ \t]*(?:[-*+]|\d+[.)])[ \t]+", re.MULTILINE)
_STRONG = re.compile(r"(\*\*|~~)(\S(?:.*?\S)?)\1")
_DOUBLE_UNDERSCORE = re.compile(r"(?<!\w)__(\S(?:.*?\S)?)__(?!\w)")
_STAR_EMPHASIS = re.compile(r"(?<![\w*])\*(?![\s*])(.+?)(?<![\s*])\*(?![\w*])")
_UNDERSCORE_EMPHASIS = re.compile(r"(?<!\w)_(\S(?:.*?\S)?)_(?!\w)")
_INLINE_CODE = re.compile(r"`([^`\n]*)`")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_WHITESPACE = re.compile(r"\s+")
_TERMINAL = (".", "!", "?", ":", ";", "…")


def sanitize_for_speech(text: str, max_chars: int) -> str:
    """Strip markdown and cap length on a word boundary.

    Blank-line runs, headings, list items and code blocks end a sentence;
    single line breaks inside a paragraph read as spaces.
    """

    cleaned = _CODE_FENCE.sub(r"\n\n\1\n\n", text)
    cleaned = _HEADING.sub(r"\n\n\1\n\n", cleaned)
    # Bullets before emphasis, otherwise "* item" loses its marker first.
    cleaned = _BULLET.sub("\n\n", cleaned)
    cleaned = _LINK.sub(r"\1", cleaned)
    cleaned = _INLINE_CODE.sub(r"\1", cleaned)
    cleaned = _STRONG.sub(r"\2", cleaned)
    cleaned = _DOUBLE_UNDERSCORE.sub(r"\1", cleaned)
    cleaned = _STAR_EMPHASIS.sub(r"\1", cleaned)
    cleaned = _UNDERSCORE_EMPHASIS.sub(r"\1", cleaned)

    sentences = []
    for paragraph in _PARAGRAPH_BREAK.split(cleaned):
        paragraph = _WHITESPACE.sub(" ", paragraph).strip()
        if not paragraph:
            continue
        if not paragraph.endswith(_TERMINAL):
            paragraph += "."
        sentences.append(paragraph)

    spoken = " ".join(sentences)
    return truncate(spoken, max_chars)


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    boundary = cut.rfind(" ")
    if boundary > max_chars // 2:
        cut = cut[:boundary]
    return cut.rstrip(" ,;:") + "..."


def preview(text: str | None, limit: int = 80) -> str:
    """Shortened copy of caller or model text for log lines."""

    if not text:
        return ""
    flat = _WHITESPACE.sub(" ", text).strip()
    if len(flat) <= limit:
        return flat
    return flat[:limit] + "..."
