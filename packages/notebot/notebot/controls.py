from __future__ import annotations

import threading
import time
from typing import Callable

DEFAULT_MAX_REQUESTS = 3
DEFAULT_REFILL_INTERVAL = 10.0


class AcquireCancelled(RuntimeError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"rate limiter wait aborted: {reason}")


class RateLimiter:
    """Token bucket shared by every caller of one submitter.

    The bucket holds at most ``max_tokens`` permits and earns one permit per
    ``refill_interval`` seconds. Refill is computed lazily whenever the bucket
    is touched, so there is no background timer. A caller that finds the
    bucket empty waits outside the lock until the next interval boundary (or
    until its cancellation event fires) and is then granted exactly one token.
    Wakers are not queued, so simultaneous wakers may briefly exceed the
    nominal rate; the count never goes negative.
    """

    def __init__(
        self,
        max_tokens: int | None = DEFAULT_MAX_REQUESTS,
        refill_interval: float | None = DEFAULT_REFILL_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_tokens is not None and max_tokens < 0:
            raise ValueError("max_tokens must be >= 0")
        if refill_interval is not None and refill_interval < 0:
            raise ValueError("refill_interval must be >= 0")

        self.max_tokens = int(max_tokens or DEFAULT_MAX_REQUESTS)
        self.refill_interval = float(refill_interval or DEFAULT_REFILL_INTERVAL)
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = self.max_tokens
        self._last_refill = clock()

    @property
    def tokens(self) -> int:
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def _refill(self, now: float) -> float:
        # Must be called with the lock held. Returns the partial interval
        # elapsed since the last whole-interval boundary.
        elapsed = now - self._last_refill
        intervals = int(elapsed // self.refill_interval)
        if intervals > 0:
            self._tokens = min(self._tokens + intervals, self.max_tokens)
            self._last_refill += intervals * self.refill_interval
        return now - self._last_refill

    def acquire(self, cancel_event: threading.Event | None = None, timeout: float | None = None) -> None:
        """Take one token, blocking while the bucket is empty.

        Args:
            cancel_event: Aborts the wait as soon as it is set.
            timeout: Upper bound in seconds on how long to wait for a token.

        Raises:
            AcquireCancelled: The wait was aborted; no token was consumed.
        """
        with self._lock:
            partial = self._refill(self._clock())
            if self._tokens > 0:
                self._tokens -= 1
                return
            wait_seconds = self.refill_interval - (partial % self.refill_interval)

        deadline_first = timeout is not None and timeout < wait_seconds
        if deadline_first:
            wait_seconds = max(0.0, float(timeout))

        if self._wait(cancel_event, wait_seconds):
            raise AcquireCancelled("cancelled")
        if deadline_first:
            raise AcquireCancelled("deadline_exceeded")

        with self._lock:
            self._tokens = 1
            self._last_refill = self._clock()
            self._tokens -= 1

    @staticmethod
    def _wait(cancel_event: threading.Event | None, seconds: float) -> bool:
        if cancel_event is None:
            time.sleep(seconds)
            return False
        return cancel_event.wait(seconds)
