"""Append-only line-delimited JSON files.

Writers and the queue drain coordinate through an exclusive ``flock`` on a
``<name>.lock`` file next to the data file, so a line is never written into a
file that has already been renamed away.
"""

from __future__ import annotations

import fcntl
import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"


def lock_path(path: Path) -> Path:
    return path.with_name(path.name + LOCK_SUFFIX)


@contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Hold the exclusive lock guarding ``path`` for the duration of the block."""

    lock = lock_path(path)
    lock.parent.mkdir(parents=True, exist_ok=True)
    with lock.open("a") as handle:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def append_records(path: Path, records: Iterable[dict[str, Any]]) -> int:
    """Append records as JSON lines with a single locked write. Returns the count written."""

    lines = [json.dumps(record, ensure_ascii=False) + "\n" for record in records]
    if not lines:
        return 0
    with file_lock(path):
        with path.open("a", encoding="utf-8") as handle:
            handle.write("".join(lines))
            handle.flush()
    return len(lines)


def append_record(path: Path, record: dict[str, Any]) -> None:
    append_records(path, [record])


def read_records(path: Path) -> Iterator[dict[str, Any]]:
    """Yield parsed lines in file order, skipping blank and malformed ones."""

    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                LOGGER.warning("Skipping malformed line %d in %s", lineno, path)
                continue
            if isinstance(record, dict):
                yield record
            else:
                LOGGER.warning("Skipping non-object line %d in %s", lineno, path)
