"""Tests for the retry policy and adaptive timeout."""

import pytest

from recon_crawler.errors import FetchError, FetchErrorKind
from recon_crawler.runtime.retry import AdaptiveTimeout, RetryPolicy


class TestRetryPolicy:
    def test_delays_grow_exponentially(self):
        policy = RetryPolicy(jitter=0)

        assert [policy.delay_for(k) for k in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_is_capped(self):
        assert RetryPolicy(jitter=0).delay_for(10) == 60.0

    def test_jitter_stays_within_ten_percent(self):
        policy = RetryPolicy()
        for _ in range(100):
            assert 1.8 <= policy.delay_for(2) <= 2.2

    @pytest.mark.asyncio
    async def test_retries_transient_errors_then_succeeds(self):
        policy = RetryPolicy(jitter=0)
        calls = []
        sleeps = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise FetchError(FetchErrorKind.TIMEOUT, "read timeout")
            return "ok"

        async def fake_sleep(delay):
            sleeps.append(delay)

        assert await policy.run(operation, sleep=fake_sleep) == "ok"
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        policy = RetryPolicy(max_retries=3, jitter=0)
        calls = []

        async def operation():
            calls.append(1)
            raise FetchError(FetchErrorKind.CONNECTION_RESET, "connection reset by peer")

        async def fake_sleep(delay):
            return None

        with pytest.raises(FetchError):
            await policy.run(operation, sleep=fake_sleep)
        assert len(calls) == 4

    @pytest.mark.asyncio
    async def test_fatal_errors_are_not_retried(self):
        policy = RetryPolicy()
        calls = []

        async def operation():
            calls.append(1)
            raise FetchError(FetchErrorKind.BODY_TOO_LARGE, "body exceeds limit")

        with pytest.raises(FetchError):
            await policy.run(operation)
        assert len(calls) == 1

    def test_dns_retry_depends_on_message(self):
        policy = RetryPolicy()

        assert policy.should_retry(FetchError(FetchErrorKind.DNS, "Temporary failure in name resolution"), 1)
        assert not policy.should_retry(FetchError(FetchErrorKind.DNS, "Name or service not known"), 1)


class TestAdaptiveTimeout:
    def test_base_without_samples(self):
        assert AdaptiveTimeout(30, 120).current() == 30

    def test_formula_and_clamp(self):
        timeout = AdaptiveTimeout(5, 120)
        timeout.record(4.0)
        assert timeout.current() == 22.0

        timeout.record(100.0)
        assert timeout.current() == 120

    def test_floor_is_base(self):
        timeout = AdaptiveTimeout(30, 120)
        timeout.record(0.2)

        assert timeout.current() == 30

    def test_window_keeps_recent_samples(self):
        timeout = AdaptiveTimeout(1, 1000, window=2)
        for value in (100.0, 1.0, 1.0):
            timeout.record(value)

        assert timeout.average == 1.0
