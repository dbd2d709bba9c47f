"""Retry backoff and credential cache tests.

Sleeps and clocks are injected so nothing here waits on wall time.
"""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio

import pytest

from ideasignal.services.credential_cache import SAFETY_BUFFER_SECONDS, CredentialCache
from ideasignal.services.retry import retry_with_backoff


class FlakyError(Exception):
    pass


def _recording_sleep():
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    return sleeps, fake_sleep


# ---------------------------------------------------------------------------
# retry_with_backoff
# ---------------------------------------------------------------------------

class TestRetryWithBackoff:

    def test_returns_first_success_without_sleeping(self):
        sleeps, fake_sleep = _recording_sleep()

        async def ok():
            return "done"

        assert asyncio.run(retry_with_backoff(ok, sleep=fake_sleep)) == "done"
        assert sleeps == []

    def test_retries_until_success_with_doubling_delay(self):
        sleeps, fake_sleep = _recording_sleep()
        calls = {"n": 0}

        async def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise FlakyError("boom")
            return calls["n"]

        result = asyncio.run(
            retry_with_backoff(flaky, max_retries=3, base_delay=1.0, sleep=fake_sleep)
        )
        assert result == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausted_retries_raise_last_error(self):
        sleeps, fake_sleep = _recording_sleep()
        calls = {"n": 0}

        async def always_fails():
            calls["n"] += 1
            raise FlakyError(f"attempt {calls['n']}")

        with pytest.raises(FlakyError, match="attempt 3"):
            asyncio.run(
                retry_with_backoff(always_fails, max_retries=3, base_delay=0.5, sleep=fake_sleep)
            )
        assert calls["n"] == 3
        # No sleep after the final attempt
        assert sleeps == [0.5, 1.0]

    def test_errors_outside_retry_on_propagate_immediately(self):
        sleeps, fake_sleep = _recording_sleep()
        calls = {"n": 0}

        async def wrong_kind():
            calls["n"] += 1
            raise KeyError("not retryable")

        with pytest.raises(KeyError):
            asyncio.run(
                retry_with_backoff(wrong_kind, retry_on=(FlakyError,), sleep=fake_sleep)
            )
        assert calls["n"] == 1
        assert sleeps == []

    def test_rejects_zero_retries(self):
        async def ok():
            return 1

        with pytest.raises(ValueError):
            asyncio.run(retry_with_backoff(ok, max_retries=0))


# ---------------------------------------------------------------------------
# CredentialCache
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCredentialCache:

    def test_first_read_exchanges_then_caches(self):
        clock = FakeClock()
        cache = CredentialCache(clock=clock)
        exchanges = {"n": 0}

        async def exchange():
            exchanges["n"] += 1
            return f"token-{exchanges['n']}", 3600

        async def run():
            first = await cache.get_token(exchange)
            second = await cache.get_token(exchange)
            return first, second

        assert asyncio.run(run()) == ("token-1", "token-1")
        assert exchanges["n"] == 1
        assert cache.credential.expires_at == clock.now + 3600

    def test_token_inside_safety_buffer_is_refreshed(self):
        clock = FakeClock()
        cache = CredentialCache(clock=clock)
        cache.store("old", clock.now + 30)

        async def exchange():
            return "fresh", 3600

        assert asyncio.run(cache.get_token(exchange)) == "fresh"
        assert cache.credential.token == "fresh"

    def test_token_outside_safety_buffer_is_reused(self):
        clock = FakeClock()
        cache = CredentialCache(clock=clock)
        cache.store("still-good", clock.now + SAFETY_BUFFER_SECONDS + 60)

        async def exchange():
            raise AssertionError("should not refresh")

        assert asyncio.run(cache.get_token(exchange)) == "still-good"

    def test_expiry_over_time_triggers_refresh(self):
        clock = FakeClock()
        cache = CredentialCache(clock=clock)
        tokens = iter(["first", "second"])

        async def exchange():
            return next(tokens), 120

        assert asyncio.run(cache.get_token(exchange)) == "first"
        clock.now += 61  # 59s left, inside the 60s buffer
        assert asyncio.run(cache.get_token(exchange)) == "second"

    def test_concurrent_readers_share_one_exchange(self):
        cache = CredentialCache(clock=FakeClock())
        exchanges = {"n": 0}

        async def slow_exchange():
            exchanges["n"] += 1
            await asyncio.sleep(0.01)
            return "shared", 3600

        async def run():
            return await asyncio.gather(*(cache.get_token(slow_exchange) for _ in range(10)))

        assert asyncio.run(run()) == ["shared"] * 10
        assert exchanges["n"] == 1

    def test_exchange_failure_propagates_and_leaves_cache_empty(self):
        cache = CredentialCache(clock=FakeClock())

        async def broken():
            raise RuntimeError("auth server down")

        with pytest.raises(RuntimeError):
            asyncio.run(cache.get_token(broken))
        assert cache.credential is None

    def test_clear_forces_next_exchange(self):
        clock = FakeClock()
        cache = CredentialCache(clock=clock)
        cache.store("revoked", clock.now + 3600)
        cache.clear()

        async def exchange():
            return "replacement", 3600

        assert asyncio.run(cache.get_token(exchange)) == "replacement"
