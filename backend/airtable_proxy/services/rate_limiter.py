"""
Airtable Edge Proxy — Fixed-Window Rate Limiter
================================================

What:  Per-client fixed window counter used to throttle abusive callers.
Why:   The proxy spends a shared Airtable token; one client must not be able
       to burn the upstream quota for everyone.
How:   One record per client key: (window_start_ms, count). Each admit() call
       either starts a new window, rejects, or increments.
Who:   Owned by the application (app.state.rate_limiter), called by
       RequestHandler after the configuration check.
When:  Once per non-preflight request.

Algorithm: Fixed Window Counter
    1. No record, or now - window_start > window: start a new window with
       count = 1 and allow
    2. count >= limit: reject without incrementing
    3. Otherwise: increment and allow

    A fixed window allows up to 2x the limit across a window boundary. That
    is acceptable here: the goal is abuse throttling, not fair scheduling.
    Space complexity: O(n) where n = distinct client keys seen.

State:
    In-memory and volatile. Counters vanish on restart and are not shared
    between worker processes. Records are never deleted, only replaced
    when their window has expired.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Number of lock stripes guarding the record table
_LOCK_STRIPES = 64


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RateRecord:
    window_start: int
    count: int


@dataclass(frozen=True)
class RateDecision:
    """Outcome of a single admit() call."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # epoch milliseconds

    def retry_after(self, now_ms: int) -> int:
        """Seconds until the window resets, rounded up, at least 1."""
        remaining_ms = self.reset_at - now_ms
        return max(1, math.ceil(remaining_ms / 1000))


class RateLimiter:
    """
    In-memory fixed-window rate limiter.

    Args:
        limit: Max requests per client per window
        window_ms: Window length in milliseconds
        clock: Returns the current time in epoch milliseconds (injectable for tests)

    Thread Safety:
        The read-modify-write on a record happens under a lock chosen by
        hashing the client key, so two requests from the same client can
        never both observe count = limit - 1 and both be admitted. Clients
        on different stripes never contend.
    """

    def __init__(
        self,
        limit: int,
        window_ms: int,
        clock: Optional[Callable[[], int]] = None,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_ms < 1:
            raise ValueError("window_ms must be at least 1")
        self.limit = limit
        self.window_ms = window_ms
        self._clock = clock or _now_ms
        self._records: Dict[str, RateRecord] = {}
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    def now(self) -> int:
        return self._clock()

    def _lock_for(self, client_id: str) -> threading.Lock:
        return self._locks[hash(client_id) % _LOCK_STRIPES]

    def admit(self, client_id: str) -> RateDecision:
        """
        Record one request for `client_id` and decide whether it may proceed.

        Never raises; always returns a decision.
        """
        with self._lock_for(client_id):
            now = self.now()
            record = self._records.get(client_id)

            # ── New or expired window: replace the record ─────────────────
            if record is None or now - record.window_start > self.window_ms:
                record = RateRecord(window_start=now, count=1)
                self._records[client_id] = record
                return RateDecision(
                    allowed=True,
                    limit=self.limit,
                    remaining=self.limit - 1,
                    reset_at=now + self.window_ms,
                )

            reset_at = record.window_start + self.window_ms

            # ── Budget exhausted: reject without counting ─────────────────
            if record.count >= self.limit:
                logger.warning(
                    "Rate limit exceeded for client %s: %d requests in %dms window",
                    client_id,
                    record.count,
                    self.window_ms,
                )
                return RateDecision(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    reset_at=reset_at,
                )

            record.count += 1
            return RateDecision(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - record.count,
                reset_at=reset_at,
            )

    def tracked_clients(self) -> int:
        return len(self._records)

    def reset(self) -> None:
        """Drop every record (all clients start a fresh window)."""
        for lock in self._locks:
            lock.acquire()
        try:
            self._records.clear()
        finally:
            for lock in self._locks:
                lock.release()
