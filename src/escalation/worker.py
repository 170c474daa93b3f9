"""Queue worker: answers escalated queries with a relaxed time budget and sends them out.

Runs as its own process next to the webhook server:

    python -m escalation.worker            # poll forever
    python -m escalation.worker --once     # drain once and exit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime

from agents.errors import AssistantError, NotificationError
from calls.messages import t
from config.settings import get_settings
from config.voice_config import EscalationConfig, get_voice_config
from escalation.notifiers import BaseNotifier, build_notifier, format_followup
from escalation.queue import DeliveryOutcome, EscalationEntry, EscalationQueue
from llm.base import BaseLLMClient
from prompts.loader import load_prompt

LOGGER = logging.getLogger(__name__)


class QueueWorker:
    def __init__(
        self,
        queue: EscalationQueue,
        llm: BaseLLMClient,
        notifier: BaseNotifier,
        config: EscalationConfig,
    ) -> None:
        self._queue = queue
        self._llm = llm
        self._notifier = notifier
        self._config = config
        self._prompt_template = load_prompt("followup_system.txt")

    async def run_once(self) -> int:
        """Drain and process every pending entry. Returns how many were handled."""

        batch = self._queue.drain()
        if batch is None:
            return 0

        LOGGER.info("Processing %d pending queries", len(batch.entries))
        outcomes: list[DeliveryOutcome] = []
        try:
            for entry in batch.entries:
                outcomes.append(await self._process(entry))
        finally:
            # Entries without an outcome go back to the pending file.
            self._queue.mark_processed(batch, outcomes)

        delivered = sum(1 for outcome in outcomes if outcome.delivered)
        LOGGER.info("Queue processed: %d delivered, %d failed", delivered, len(outcomes) - delivered)
        return len(outcomes)

    async def _process(self, entry: EscalationEntry) -> DeliveryOutcome:
        LOGGER.info("Processing %s %s: %.50s", entry.kind, entry.id, entry.message)
        try:
            reply = await self._answer(entry)
        except asyncio.TimeoutError:
            LOGGER.error("Could not answer %s: timeout", entry.id)
            return DeliveryOutcome(delivered=False, error="llm: timeout")
        except AssistantError as exc:
            LOGGER.error("Could not answer %s: %s", entry.id, exc)
            return DeliveryOutcome(delivered=False, error=f"llm: {exc}")
        except Exception as exc:
            LOGGER.exception("Unexpected error answering %s", entry.id)
            return DeliveryOutcome(delivered=False, error=f"llm: {type(exc).__name__}: {exc}")

        try:
            await self._notifier.send(entry, format_followup(entry, reply))
        except NotificationError as exc:
            LOGGER.error("Delivery of %s via %s failed: %s", entry.id, self._notifier.name, exc.detail)
            return DeliveryOutcome(delivered=False, error=f"{self._notifier.name}: {exc.detail}")
        except Exception as exc:
            LOGGER.exception("Unexpected error delivering %s via %s", entry.id, self._notifier.name)
            return DeliveryOutcome(
                delivered=False, error=f"{self._notifier.name}: {type(exc).__name__}: {exc}"
            )

        LOGGER.info("Sent %s via %s", entry.id, self._notifier.name)
        return DeliveryOutcome(delivered=True)

    async def _answer(self, entry: EscalationEntry) -> str:
        system = self._prompt_template.format(
            name=entry.caller_name,
            language_name=t(entry.language, "language_name"),
            now=datetime.now().strftime("%A %d %B %Y, %H:%M"),
        )
        timeout = self._config.processing_timeout_seconds
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": entry.message},
        ]
        return await asyncio.wait_for(self._llm.chat(messages, timeout=timeout), timeout)

    async def run_forever(self, interval: float) -> None:
        LOGGER.info(
            "Queue worker polling %s every %.0fs via %s",
            self._queue.pending_path,
            interval,
            self._notifier.name,
        )
        while True:
            try:
                await self.run_once()
            except Exception:
                LOGGER.exception("Queue cycle failed; retrying next cycle")
            await asyncio.sleep(interval)


def build_worker() -> QueueWorker:
    from llm.factory import build_llm_client

    settings = get_settings()
    voice_config = get_voice_config()
    queue = EscalationQueue(settings.pending_queue_path, settings.processed_queue_path)
    return QueueWorker(
        queue,
        build_llm_client(),
        build_notifier(voice_config.escalation, settings),
        voice_config.escalation,
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Process escalated voice queries.")
    parser.add_argument("--once", action="store_true", help="drain the queue once and exit")
    parser.add_argument("--interval", type=float, default=None, help="poll interval in seconds")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        worker = build_worker()
    except (ImportError, ValueError) as exc:
        LOGGER.error("Queue worker cannot start: %s", exc)
        return 1

    if args.once:
        asyncio.run(worker.run_once())
        return 0

    interval = args.interval or get_voice_config().escalation.poll_interval_seconds
    try:
        asyncio.run(worker.run_forever(interval))
    except KeyboardInterrupt:
        LOGGER.info("Queue worker stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
