"""Per-model request and token rate limiting.

Gemini enforces three ceilings per model: requests per minute (RPM),
tokens per minute (TPM) and requests per day (RPD).  The
:class:`RateLimiter` mirrors them locally so that we refuse a request
before it reaches the API instead of after.

Admission is two-phase.  :meth:`RateLimiter.admit` is called before a
request and checks all three ceilings, counting the request on success.
The cost of a request in tokens is only known after generation, so
:meth:`RateLimiter.track_tokens` is called afterwards and may report a
breach retroactively.  The next :meth:`admit` then refuses until the
minute window rolls over.

Windows roll lazily: nothing runs in the background, the counters are
reset on the first call that observes an expired window.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .errors import RateLimitError, RequestTimeoutError
from .ledger import UsageLedger, UsageRecord


logger = logging.getLogger(__name__)

MINUTE = 60.0
DAY = 24 * 60 * 60.0


@dataclass(frozen=True)
class RateLimits:
    """Ceilings for one model."""

    rpm: int
    tpm: int
    rpd: int

    def __post_init__(self):
        for name in ("rpm", "tpm", "rpd"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")


def estimate_tokens(text: str) -> int:
    """Estimate the token count of ``text``.

    Averages a word based estimate (1.3 tokens per word) with a
    character based one (4 characters per token).
    """
    words = len(text.split())
    word_estimate = words * 1.3
    char_estimate = len(text) / 4.0
    return int((word_estimate + char_estimate) / 2)


class RateLimiter:
    """Tracks RPM, TPM and RPD usage for a single model.

    All state changes happen under one lock, so admission checks stay
    consistent when several sessions share the limiter.  A limiter is
    never shared between models.

    :param limits: The ceilings to enforce.
    :param model_name: Used to label ledger records and messages.
    :param clock: Returns the current time in epoch seconds.  Tests
      pass a fake clock to simulate window rollover.
    :param sleep: Used by :meth:`wait_for_availability`.
    """

    def __init__(
        self,
        limits: RateLimits,
        model_name: str = "",
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        ledger: Optional[UsageLedger] = None,
    ) -> None:
        self.limits = limits
        self.model_name = model_name
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        now = clock()
        self.request_count = 0
        self.token_count = 0
        self.daily_count = 0
        self.last_reset = now
        self.daily_reset = now
        self.usage_history = ledger if ledger is not None else UsageLedger()

    def admit(self) -> None:
        """Count one request, or refuse it.

        :raises RateLimitError: when any ceiling has been reached.  The
          first exceeded ceiling, checked in the order RPM, TPM, RPD,
          determines ``retry_after``.
        """
        with self._lock:
            now = self._clock()
            self._roll_windows(now)
            exceeded = self._check_exceeded(now)
            if exceeded is not None:
                message, retry_after = exceeded
                self._record(now, "rejected", 0, success=False, error_detail=message)
                logger.warning("%s: %s", self.model_name, message)
                raise RateLimitError(message, retry_after)
            self.request_count += 1
            self.daily_count += 1
            self._record(now, "request", 0)

    def track_tokens(self, count: int) -> None:
        """Add ``count`` tokens to the current minute window.

        The request has already happened by the time this is called, so
        the tokens are always counted.

        :raises RateLimitError: when the TPM ceiling has been reached.
        """
        with self._lock:
            now = self._clock()
            self._roll_windows(now)
            self.token_count += count
            self._record(now, "token_update", count)
            if self.token_count >= self.limits.tpm:
                message = (
                    f"Token limit exceeded: {self.token_count}/{self.limits.tpm} "
                    "tokens per minute"
                )
                raise RateLimitError(message, self._minute_reset_in(now))

    def usage_snapshot(self) -> Dict[str, Dict[str, float]]:
        """Return current counters, limits, reset times and percentages."""
        with self._lock:
            now = self._clock()
            self._roll_windows(now)
            return {
                "current": {
                    "requests_per_minute": self.request_count,
                    "tokens_per_minute": self.token_count,
                    "requests_per_day": self.daily_count,
                },
                "limits": {
                    "rpm": self.limits.rpm,
                    "tpm": self.limits.tpm,
                    "rpd": self.limits.rpd,
                },
                "reset_in": {
                    "minute": self._minute_reset_in(now),
                    "day": self._daily_reset_in(now),
                },
                "percent_used": {
                    "rpm": self.request_count / self.limits.rpm * 100,
                    "tpm": self.token_count / self.limits.tpm * 100,
                    "rpd": self.daily_count / self.limits.rpd * 100,
                },
            }

    def remaining_quota(self) -> Dict[str, int]:
        with self._lock:
            self._roll_windows(self._clock())
            return {
                "rpm": self.limits.rpm - self.request_count,
                "tpm": max(0, self.limits.tpm - self.token_count),
                "rpd": self.limits.rpd - self.daily_count,
            }

    def reset(self) -> None:
        """Zero every counter and restart both windows now."""
        with self._lock:
            now = self._clock()
            self.request_count = 0
            self.token_count = 0
            self.daily_count = 0
            self.last_reset = now
            self.daily_reset = now
            self._record(now, "manual_reset", 0)

    def wait_for_availability(self, timeout: float, interval: float = 0.1) -> None:
        """Block until a request is admitted or ``timeout`` seconds pass.

        A successful wait counts the request, exactly like :meth:`admit`.

        :raises RequestTimeoutError: when no admission succeeded in time.
        """
        deadline = self._clock() + timeout
        while self._clock() < deadline:
            try:
                self.admit()
                return
            except RateLimitError:
                self._sleep(interval)
        raise RequestTimeoutError(
            f"timeout waiting for rate limit reset after {timeout:g}s"
        )

    # Internal helpers.  Callers must hold the lock.

    def _roll_windows(self, now: float) -> None:
        if now - self.last_reset >= MINUTE:
            self.request_count = 0
            self.token_count = 0
            self.last_reset = now - (now % MINUTE)
            self._record(now, "minute_reset", 0)
            logger.debug("%s: minute window reset", self.model_name)
        if now - self.daily_reset >= DAY:
            self.daily_count = 0
            self.daily_reset = now
            self._record(now, "daily_reset", 0)
            logger.debug("%s: daily window reset", self.model_name)

    def _check_exceeded(self, now: float) -> Optional[Tuple[str, float]]:
        limits = self.limits
        if self.request_count >= limits.rpm:
            wait = self._minute_reset_in(now)
            return (
                f"RPM limit reached ({self.request_count}/{limits.rpm}). "
                f"Try again in {wait:.0f} seconds",
                wait,
            )
        if self.token_count >= limits.tpm:
            wait = self._minute_reset_in(now)
            return (
                f"TPM limit reached ({self.token_count}/{limits.tpm}). "
                f"Try again in {wait:.0f} seconds",
                wait,
            )
        if self.daily_count >= limits.rpd:
            wait = self._daily_reset_in(now)
            return (
                f"Daily limit reached ({self.daily_count}/{limits.rpd}). "
                f"Try again in {wait / 3600:.0f} hours",
                wait,
            )
        return None

    def _minute_reset_in(self, now: float) -> float:
        return max(0.0, self.last_reset + MINUTE - now)

    def _daily_reset_in(self, now: float) -> float:
        return max(0.0, self.daily_reset + DAY - now)

    def _record(
        self,
        now: float,
        kind: str,
        token_delta: int,
        success: bool = True,
        error_detail: Optional[str] = None,
    ) -> None:
        self.usage_history.append(
            UsageRecord(
                timestamp=now,
                kind=kind,
                token_delta=token_delta,
                model_name=self.model_name,
                success=success,
                error_detail=error_detail,
            )
        )
