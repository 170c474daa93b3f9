"""File-backed hand-off between the call handler and the queue worker process.

Pending entries are appended as JSON lines. A drain atomically renames the
pending file aside before reading it, so lines appended while a drain runs land
in a fresh pending file and are picked up by the next cycle. Appends and the
rename share an exclusive file lock. A drain file left behind by a crashed
worker is re-read on the next drain.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from storage.jsonl import append_record, append_records, file_lock, read_records

LOGGER = logging.getLogger(__name__)

DRAINING_SUFFIX = ".draining"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EscalationEntry(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    kind: Literal["escalation", "task"] = "escalation"
    message: str
    language: str = "en"
    caller_number: str
    caller_name: str = "Guest"
    destination_hint: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class ProcessedEntry(EscalationEntry):
    processed_at: datetime = Field(default_factory=_utcnow)
    delivered: bool = False
    error: str | None = None


@dataclass(frozen=True)
class DeliveryOutcome:
    delivered: bool
    error: str | None = None


@dataclass
class DrainBatch:
    entries: list[EscalationEntry]
    sources: list[Path]


class EscalationQueue:
    def __init__(self, pending_path: Path, processed_path: Path) -> None:
        self.pending_path = Path(pending_path)
        self.processed_path = Path(processed_path)

    def append(self, entry: EscalationEntry) -> None:
        """Append one pending entry; ``OSError`` propagates to the caller."""

        append_record(self.pending_path, entry.model_dump(mode="json"))
        LOGGER.info(
            "Queued %s %s for %s (%s)", entry.kind, entry.id, entry.caller_number, entry.language
        )

    def _leftover_drains(self) -> list[Path]:
        parent = self.pending_path.parent
        if not parent.exists():
            return []
        pattern = f"{self.pending_path.name}.*{DRAINING_SUFFIX}"
        return sorted(parent.glob(pattern))

    def _has_pending(self) -> bool:
        return self.pending_path.exists() and self.pending_path.stat().st_size > 0

    def drain(self) -> DrainBatch | None:
        """Take every pending entry; ``None`` when there is nothing to process.

        Nothing on disk changes when the queue is empty or missing. The rename
        happens under the append lock, so no writer holds the old file open.
        """

        sources = self._leftover_drains()
        if self._has_pending():
            with file_lock(self.pending_path):
                if self._has_pending():
                    target = self.pending_path.with_name(
                        f"{self.pending_path.name}.{time.time_ns()}{DRAINING_SUFFIX}"
                    )
                    os.replace(self.pending_path, target)
                    sources.append(target)

        if not sources:
            return None

        entries: list[EscalationEntry] = []
        for source in sources:
            for record in read_records(source):
                try:
                    entries.append(EscalationEntry.model_validate(record))
                except ValidationError as exc:
                    LOGGER.warning("Dropping malformed queue entry in %s: %s", source, exc)
        return DrainBatch(entries=entries, sources=sources)

    def mark_processed(self, batch: DrainBatch, outcomes: list[DeliveryOutcome]) -> None:
        """Move the batch to the processed log and delete its drain files.

        Entries past the end of ``outcomes`` were never attempted; they are
        appended back to the pending file for the next cycle.
        """

        processed = [
            ProcessedEntry(
                **entry.model_dump(),
                delivered=outcome.delivered,
                error=outcome.error,
            ).model_dump(mode="json")
            for entry, outcome in zip(batch.entries, outcomes)
        ]
        if processed:
            append_records(self.processed_path, processed)
        unattempted = batch.entries[len(outcomes):]
        if unattempted:
            LOGGER.warning("Returning %d unattempted entries to the queue", len(unattempted))
            append_records(self.pending_path, [entry.model_dump(mode="json") for entry in unattempted])
        for source in batch.sources:
            source.unlink(missing_ok=True)

    def pending_count(self) -> int:
        count = 0
        for path in [*self._leftover_drains(), self.pending_path]:
            if path.exists():
                count += sum(1 for _ in read_records(path))
        return count
