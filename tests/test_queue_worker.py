from __future__ import annotations

import asyncio
import json

from agents.errors import LLMFailedError, NotificationError
from config.voice_config import EscalationConfig
from escalation.notifiers import BaseNotifier
from escalation.queue import EscalationEntry, EscalationQueue
from escalation.worker import QueueWorker

from conftest import FakeLLM


class RecordingNotifier(BaseNotifier):
    name = "telegram"

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_for = fail_for or set()

    async def send(self, entry: EscalationEntry, text: str) -> None:
        if entry.message in self.fail_for:
            raise NotificationError("chat not found")
        self.sent.append((entry.message, text))


def _setup(tmp_path, llm, notifier):
    queue = EscalationQueue(tmp_path / "pending.jsonl", tmp_path / "processed.jsonl")
    worker = QueueWorker(queue, llm, notifier, EscalationConfig(processing_timeout_seconds=30))
    return queue, worker


def _processed(queue: EscalationQueue) -> list[dict]:
    return [json.loads(line) for line in queue.processed_path.read_text().splitlines()]


def test_empty_queue_sends_nothing(tmp_path):
    llm = FakeLLM()
    notifier = RecordingNotifier()
    queue, worker = _setup(tmp_path, llm, notifier)

    assert asyncio.run(worker.run_once()) == 0
    assert llm.calls == []
    assert notifier.sent == []
    assert not queue.processed_path.exists()


def test_entries_are_answered_and_sent_with_header(tmp_path):
    llm = FakeLLM("Lisbon is lovely in May.")
    notifier = RecordingNotifier()
    queue, worker = _setup(tmp_path, llm, notifier)
    queue.append(EscalationEntry(message="Plan my trip", caller_number="+15550001111"))

    assert asyncio.run(worker.run_once()) == 1

    message, text = notifier.sent[0]
    assert message == "Plan my trip"
    assert text == 'Response to your voice query:\n"Plan my trip"\n\nLisbon is lovely in May.'
    assert llm.calls[0]["timeout"] == 30
    assert llm.calls[0]["messages"][-1] == {"role": "user", "content": "Plan my trip"}
    assert _processed(queue)[0]["delivered"] is True
    assert queue.pending_count() == 0


def test_spanish_entries_get_spanish_header(tmp_path):
    notifier = RecordingNotifier()
    queue, worker = _setup(tmp_path, FakeLLM("Claro."), notifier)
    queue.append(EscalationEntry(message="Hola", language="es", caller_number="+15550001111"))

    asyncio.run(worker.run_once())

    assert notifier.sent[0][1].startswith("Respuesta a tu pregunta de voz:")


def test_failures_are_recorded_and_not_requeued(tmp_path):
    llm = FakeLLM("fine", LLMFailedError("rate limited"), "also fine")
    notifier = RecordingNotifier(fail_for={"third"})
    queue, worker = _setup(tmp_path, llm, notifier)
    for message in ["first", "second", "third"]:
        queue.append(EscalationEntry(message=message, caller_number="+15550001111"))

    assert asyncio.run(worker.run_once()) == 3

    processed = _processed(queue)
    assert [entry["delivered"] for entry in processed] == [True, False, False]
    assert processed[1]["error"].startswith("llm:")
    assert processed[2]["error"] == "telegram: chat not found"
    assert queue.drain() is None


class FlakyNotifier(RecordingNotifier):
    async def send(self, entry: EscalationEntry, text: str) -> None:
        if entry.message == "second":
            raise ConnectionError("connection reset by peer")
        await super().send(entry, text)


def test_unexpected_send_error_does_not_resend_delivered_entries(tmp_path):
    notifier = FlakyNotifier()
    queue, worker = _setup(tmp_path, FakeLLM("one", "two"), notifier)
    for message in ["first", "second"]:
        queue.append(EscalationEntry(message=message, caller_number="+15550001111"))

    assert asyncio.run(worker.run_once()) == 2
    assert asyncio.run(worker.run_once()) == 0

    assert [message for message, _ in notifier.sent] == ["first"]
    processed = _processed(queue)
    assert [entry["delivered"] for entry in processed] == [True, False]
    assert processed[1]["error"] == "telegram: ConnectionError: connection reset by peer"
    assert list(tmp_path.glob("*.draining")) == []


def test_unexpected_llm_error_is_recorded(tmp_path):
    notifier = RecordingNotifier()
    queue, worker = _setup(tmp_path, FakeLLM(ValueError("unexpected payload")), notifier)
    queue.append(EscalationEntry(message="hello", caller_number="+15550001111"))

    asyncio.run(worker.run_once())

    assert notifier.sent == []
    assert _processed(queue)[0]["error"] == "llm: ValueError: unexpected payload"
