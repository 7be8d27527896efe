"""Spacing of outbound transcription requests and retry backoff."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

# Smallest interval applied after a quota rejection, so a zero base interval still grows.
QUOTA_FLOOR_S = 1.0


@dataclass
class RateLimiterState:
    """Process-wide limiter clock. Lives until restart or explicit reset."""

    min_interval_s: float = 1.0
    base_interval_s: float = 1.0
    last_call_at: float | None = None

    @classmethod
    def initial(cls, min_interval_s: float) -> "RateLimiterState":
        return cls(min_interval_s=min_interval_s, base_interval_s=min_interval_s)


class RateLimiter:
    """
    Enforces a minimum spacing between requests.

    There is no waiter queue: the session state machine guarantees at most one
    caller at a time.
    """

    def __init__(
        self,
        state: RateLimiterState,
        max_interval_s: float = 60.0,
        backoff_base_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._state = state
        self._max_interval_s = max_interval_s
        self._backoff_base_s = backoff_base_s
        self._clock = clock
        self._sleep = sleep

    @property
    def state(self) -> RateLimiterState:
        return self._state

    @property
    def current_min_interval(self) -> float:
        return self._state.min_interval_s

    def await_slot(self) -> float:
        """
        Block until the minimum interval since the last call has elapsed.

        Returns:
            Seconds spent waiting.
        """
        waited = 0.0
        if self._state.last_call_at is not None:
            elapsed = self._clock() - self._state.last_call_at
            remaining = self._state.min_interval_s - elapsed
            if remaining > 0:
                logger.info("Rate limit: waiting %.2fs before next request", remaining)
                self._sleep(remaining)
                waited = remaining
        self._state.last_call_at = self._clock()
        return waited

    def on_quota_exceeded(self) -> float:
        """Double the minimum interval, up to the ceiling. Returns the new interval."""
        current = self._state.min_interval_s
        widened = min(max(current * 2, QUOTA_FLOOR_S), self._max_interval_s)
        self._state.min_interval_s = max(current, widened)
        logger.warning(
            "Quota exceeded: request spacing %.1fs -> %.1fs",
            current,
            self._state.min_interval_s,
        )
        return self._state.min_interval_s

    def compute_backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt counts from 0)."""
        return self._backoff_base_s * (2 ** attempt)

    def reset(self) -> None:
        self._state.min_interval_s = self._state.base_interval_s
        self._state.last_call_at = None
