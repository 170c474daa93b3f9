"""Render transport-neutral ``Reply`` objects as TwiML documents."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from xml.sax.saxutils import escape

from calls.replies import Endpoint, GatherDigits, Hangup, Listen, Record, Reply, Say, Verb

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>'


@dataclass(frozen=True)
class RenderContext:
    call_id: str
    urls: Mapping[Endpoint, str]
    # wss:// URL of the media stream socket; ``None`` uses the carrier speech gather.
    stream_url: str | None = None
    pause_seconds: int = 6


def _text(value: str) -> str:
    return escape(value)


def _attr(value: object) -> str:
    return escape(str(value), {'"': "&quot;"})


def _attrs(**values: object) -> str:
    parts = [f'{name}="{_attr(value)}"' for name, value in values.items() if value is not None]
    return (" " + " ".join(parts)) if parts else ""


def _say(say: Say) -> str:
    return f"<Say{_attrs(voice=say.voice, language=say.language)}>{_text(say.text)}</Say>"


def _redirect(url: str) -> str:
    return f'<Redirect method="POST">{_text(url)}</Redirect>'


def _gather_digits(verb: GatherDigits, ctx: RenderContext) -> str:
    attrs = _attrs(
        input="dtmf",
        numDigits=verb.num_digits,
        timeout=verb.timeout,
        action=ctx.urls[verb.action],
        method="POST",
    )
    prompts = "".join(_say(prompt) for prompt in verb.prompts)
    return f"<Gather{attrs}>{prompts}</Gather>{_redirect(ctx.urls[verb.fallback])}"


def _listen(verb: Listen, ctx: RenderContext) -> str:
    prompt = _say(verb.prompt) if verb.prompt else ""
    if ctx.stream_url is None:
        attrs = _attrs(
            input="speech",
            speechTimeout="auto",
            language=verb.language,
            action=ctx.urls["speech"],
            method="POST",
            actionOnEmptyResult="true",
        )
        return f"<Gather{attrs}>{prompt}</Gather>{_redirect(ctx.urls['no_input'])}"

    stream = (
        f"<Start><Stream{_attrs(name=ctx.call_id, url=ctx.stream_url, track='inbound_track')}>"
        f"<Parameter{_attrs(name='callSid', value=ctx.call_id)} />"
        "</Stream></Start>"
    )
    pause = f'<Pause length="{max(1, int(ctx.pause_seconds))}" />'
    return f"{stream}{prompt}{pause}{_redirect(ctx.urls['stream_result'])}"


def _record(verb: Record, ctx: RenderContext) -> str:
    attrs = _attrs(
        maxLength=verb.max_length,
        playBeep="true",
        finishOnKey="#",
        action=ctx.urls[verb.action],
        method="POST",
    )
    return f"{_say(verb.prompt)}<Record{attrs} />{_redirect(ctx.urls['no_input'])}"


def _verb(verb: Verb, ctx: RenderContext) -> str:
    if isinstance(verb, Say):
        return _say(verb)
    if isinstance(verb, GatherDigits):
        return _gather_digits(verb, ctx)
    if isinstance(verb, Listen):
        return _listen(verb, ctx)
    if isinstance(verb, Record):
        return _record(verb, ctx)
    if isinstance(verb, Hangup):
        return "<Hangup />"
    raise TypeError(f"Cannot render {verb!r}")


def render(reply: Reply, ctx: RenderContext) -> str:
    body = []
    if reply.stop_stream and ctx.stream_url is not None:
        body.append(f"<Stop><Stream{_attrs(name=ctx.call_id)} /></Stop>")
    body.extend(_verb(verb, ctx) for verb in reply.verbs)
    return f"{XML_HEADER}<Response>{''.join(body)}</Response>"
