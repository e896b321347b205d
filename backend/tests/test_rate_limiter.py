"""
Airtable Edge Proxy — Rate Limiter Unit Tests
==============================================

What we test:
    ✅ Requests up to the limit are admitted with a decreasing remaining count
    ✅ The (limit+1)-th request in a window is rejected without counting
    ✅ A window expires 1ms after its length, not at it
    ✅ Clients are counted independently
    ✅ Concurrent admits for one client never exceed the limit
"""

import threading

import pytest

from airtable_proxy.services.rate_limiter import RateDecision, RateLimiter
from conftest import FakeClock


class TestFixedWindow:
    """Tests for the fixed-window admit() algorithm."""

    def setup_method(self):
        self.clock = FakeClock(start_ms=1_000_000)
        self.limiter = RateLimiter(limit=3, window_ms=60_000, clock=self.clock)

    def test_first_request_starts_window(self):
        decision = self.limiter.admit("1.2.3.4")
        assert decision.allowed is True
        assert decision.remaining == 2
        assert decision.reset_at == 1_060_000

    def test_requests_within_limit_are_admitted(self):
        remaining = [self.limiter.admit("1.2.3.4").remaining for _ in range(3)]
        assert remaining == [2, 1, 0]

    def test_request_over_limit_is_rejected(self):
        for _ in range(3):
            assert self.limiter.admit("1.2.3.4").allowed

        decision = self.limiter.admit("1.2.3.4")
        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.reset_at > self.clock.now_ms

    def test_rejected_requests_do_not_extend_window(self):
        for _ in range(3):
            self.limiter.admit("1.2.3.4")
        first_reject = self.limiter.admit("1.2.3.4")
        self.clock.advance(30_000)
        second_reject = self.limiter.admit("1.2.3.4")
        assert first_reject.reset_at == second_reject.reset_at

    def test_window_not_expired_at_exact_length(self):
        for _ in range(3):
            self.limiter.admit("1.2.3.4")
        self.clock.advance(60_000)
        assert self.limiter.admit("1.2.3.4").allowed is False

    def test_window_expires_one_ms_after_length(self):
        for _ in range(4):
            self.limiter.admit("1.2.3.4")
        self.clock.advance(60_001)

        decision = self.limiter.admit("1.2.3.4")
        assert decision.allowed is True
        assert decision.remaining == 2
        assert decision.reset_at == self.clock.now_ms + 60_000

    def test_clients_are_independent(self):
        for _ in range(3):
            self.limiter.admit("1.2.3.4")
        assert self.limiter.admit("1.2.3.4").allowed is False
        assert self.limiter.admit("5.6.7.8").allowed is True
        assert self.limiter.tracked_clients() == 2

    def test_reset_clears_all_clients(self):
        for _ in range(4):
            self.limiter.admit("1.2.3.4")
        self.limiter.reset()
        assert self.limiter.tracked_clients() == 0
        assert self.limiter.admit("1.2.3.4").allowed is True


class TestRetryAfter:
    def test_rounds_up_to_whole_seconds(self):
        decision = RateDecision(allowed=False, limit=1, remaining=0, reset_at=10_500)
        assert decision.retry_after(now_ms=9_000) == 2

    def test_is_at_least_one_second(self):
        decision = RateDecision(allowed=False, limit=1, remaining=0, reset_at=10_000)
        assert decision.retry_after(now_ms=10_000) == 1


class TestConstruction:
    def test_rejects_zero_limit(self):
        with pytest.raises(ValueError):
            RateLimiter(limit=0, window_ms=1000)

    def test_rejects_zero_window(self):
        with pytest.raises(ValueError):
            RateLimiter(limit=1, window_ms=0)

    def test_default_clock_is_integer_milliseconds(self):
        limiter = RateLimiter(limit=2, window_ms=1000)

        decision = limiter.admit("client-a")

        assert isinstance(limiter.now(), int)
        assert isinstance(decision.reset_at, int)
        assert decision.reset_at - limiter.now() <= 1000


class TestConcurrency:
    def test_same_client_never_exceeds_limit(self):
        """Threads hammering one key must admit exactly `limit` requests."""
        limiter = RateLimiter(limit=50, window_ms=60_000, clock=FakeClock())
        admitted = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                if limiter.admit("shared").allowed:
                    with lock:
                        admitted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(admitted) == 50
