"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from calls.service import CallService


@lru_cache(maxsize=1)
def _call_service_factory() -> CallService:
    # Lazy import so provider SDKs load on the first call, not at import time.
    from calls.service import build_call_service

    return build_call_service()


def get_call_service() -> CallService:
    return _call_service_factory()
