"""Caller authorization: allowlist, per-number rate limit and PIN checks."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Literal

from config.voice_config import AllowlistEntry

LOGGER = logging.getLogger(__name__)

AuthReason = Literal["authorized", "unauthorized", "rate_limited"]


@dataclass(frozen=True)
class AuthDecision:
    allowed: bool
    reason: AuthReason
    name: str | None = None
    pin: str | None = None
    destination: str | None = None


@dataclass(frozen=True)
class PinCheck:
    ok: bool
    attempts_remaining: int
    exhausted: bool = False


@dataclass
class RateLimitCounter:
    count: int
    window_reset_at: float


class RateLimiter:
    """Fixed window counter per caller number.

    The first call opens a window of ``window_seconds``; further calls count up to
    ``max_calls`` until the window lapses.
    """

    def __init__(
        self,
        *,
        window_seconds: float,
        max_calls: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._max_calls = max_calls
        self._clock = clock
        self._counters: dict[str, RateLimitCounter] = {}

    def is_limited(self, number: str) -> bool:
        counter = self._counters.get(number)
        if counter is None or self._clock() > counter.window_reset_at:
            return False
        return counter.count >= self._max_calls

    def hit(self, number: str) -> None:
        now = self._clock()
        counter = self._counters.get(number)
        if counter is None or now > counter.window_reset_at:
            self._counters[number] = RateLimitCounter(count=1, window_reset_at=now + self._window)
            return
        counter.count += 1


class SecurityGate:
    """Allowlist + rate limit + PIN verification."""

    def __init__(
        self,
        allowlist: Iterable[AllowlistEntry],
        *,
        rate_limiter: RateLimiter,
        max_attempts: int,
    ) -> None:
        self._entries: dict[str, AllowlistEntry] = {}
        for entry in allowlist:
            # First match wins; duplicates are reported when the config loads.
            self._entries.setdefault(entry.number, entry)
        self._rate_limiter = rate_limiter
        self._max_attempts = max_attempts

    def authorize(self, caller_number: str) -> AuthDecision:
        entry = self._entries.get(caller_number)
        if entry is None:
            LOGGER.warning("unauthorized caller=%s", caller_number)
            return AuthDecision(allowed=False, reason="unauthorized")

        if self._rate_limiter.is_limited(caller_number):
            LOGGER.warning("rate_limited caller=%s", caller_number)
            return AuthDecision(allowed=False, reason="rate_limited")

        self._rate_limiter.hit(caller_number)
        LOGGER.info("authorized caller=%s name=%s", caller_number, entry.name)
        return AuthDecision(
            allowed=True,
            reason="authorized",
            name=entry.name,
            pin=entry.pin,
            destination=entry.destination,
        )

    def verify_pin(self, session, entered: str) -> PinCheck:
        """Compare ``entered`` with the caller's PIN, counting failures on the session."""

        entry = self._entries.get(session.caller_number)
        if entry is not None and entered == entry.pin:
            LOGGER.info("authenticated caller=%s name=%s", session.caller_number, entry.name)
            return PinCheck(ok=True, attempts_remaining=self._max_attempts - session.pin_attempts)

        session.pin_attempts += 1
        remaining = max(0, self._max_attempts - session.pin_attempts)
        if remaining == 0:
            LOGGER.warning(
                "max_attempts caller=%s attempts=%d", session.caller_number, session.pin_attempts
            )
            return PinCheck(ok=False, attempts_remaining=0, exhausted=True)

        LOGGER.warning(
            "wrong_pin caller=%s attempts=%d", session.caller_number, session.pin_attempts
        )
        return PinCheck(ok=False, attempts_remaining=remaining)
