"""
Test suite for reliability patterns and error handling.

Validates the retry policy, cancellation token, timeouts and the OAuth token cache.
"""

import asyncio

import pytest

from fire_enrich.core.exceptions import (
    EnrichmentCancelledError,
    EnrichmentTimeoutError,
    ExternalServiceError,
    ProviderResponseError,
    RateLimitError,
)
from fire_enrich.data.auth import AccessToken, TokenCache
from fire_enrich.utils.reliability import CancellationToken, RetryPolicy, with_timeout


class RecordingSleep:
    """Collects requested delays instead of sleeping."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FlakyCall:
    """Raises the queued errors in order, then succeeds."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestRetryPolicy:
    """Test retry behaviour for rate limits and other failures."""

    @pytest.mark.asyncio
    async def test_rate_limit_retries_with_linear_capped_backoff(self):
        """429s retry up to the rate-limit cap with 1.5s steps capped at 5s."""
        sleep = RecordingSleep()
        policy = RetryPolicy("test", sleep=sleep)
        call = FlakyCall(*[RateLimitError("p", "slow down") for _ in range(3)])

        assert await policy.call(call) == "ok"
        assert call.calls == 4
        assert sleep.delays == [1.5, 3.0, 4.5]

    @pytest.mark.asyncio
    async def test_rate_limit_gives_up_after_attempt_cap(self):
        """The last RateLimitError is re-raised once attempts run out."""
        sleep = RecordingSleep()
        policy = RetryPolicy("test", rate_limit_attempts=2, sleep=sleep)
        call = FlakyCall(*[RateLimitError("p", "slow down") for _ in range(5)])

        with pytest.raises(RateLimitError):
            await policy.call(call)
        assert call.calls == 2

    @pytest.mark.asyncio
    async def test_other_failures_retry_fewer_times(self):
        """Server errors retry up to max_attempts with the shorter backoff."""
        sleep = RecordingSleep()
        policy = RetryPolicy("test", max_attempts=3, sleep=sleep)
        call = FlakyCall(*[ExternalServiceError("p", "boom", status_code=503) for _ in range(5)])

        with pytest.raises(ExternalServiceError):
            await policy.call(call)
        assert call.calls == 3
        assert sleep.delays == [0.4, 0.8]

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        """4xx other than 429 fail on the first attempt; transport errors retry."""
        for status in (400, 401, 403, 404):
            sleep = RecordingSleep()
            call = FlakyCall(ExternalServiceError("p", "rejected", status_code=status))

            with pytest.raises(ExternalServiceError):
                await RetryPolicy("test", sleep=sleep).call(call)
            assert call.calls == 1
            assert sleep.delays == []

        call = FlakyCall(ExternalServiceError("p", "connection reset"))
        assert await RetryPolicy("test", sleep=RecordingSleep()).call(call) == "ok"
        assert call.calls == 2

    @pytest.mark.asyncio
    async def test_malformed_body_is_not_retried(self):
        sleep = RecordingSleep()
        policy = RetryPolicy("test", sleep=sleep)
        call = FlakyCall(ProviderResponseError("p", "not json"))

        with pytest.raises(ProviderResponseError):
            await policy.call(call)
        assert call.calls == 1
        assert sleep.delays == []

    def test_retry_after_is_honoured_up_to_cap(self):
        policy = RetryPolicy("test")
        assert policy.delay_for(RateLimitError("p", "x", retry_after=2.0), 1) == 2.0
        assert policy.delay_for(RateLimitError("p", "x", retry_after=60.0), 1) == 5.0
        assert policy.delay_for(ExternalServiceError("p", "x"), 10) == 2.0

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_before_first_attempt(self):
        token = CancellationToken()
        token.cancel()
        call = FlakyCall()

        with pytest.raises(EnrichmentCancelledError):
            await RetryPolicy("test", sleep=RecordingSleep()).call(call, cancel_token=token)
        assert call.calls == 0

    @pytest.mark.asyncio
    async def test_cancellation_stops_retrying(self):
        """A token cancelled between attempts ends the loop with the last error."""
        token = CancellationToken()

        async def cancel_then_fail():
            token.cancel()
            raise ExternalServiceError("p", "boom", status_code=500)

        with pytest.raises(ExternalServiceError):
            await RetryPolicy("test", sleep=RecordingSleep()).call(cancel_then_fail, cancel_token=token)


class TestCancellationToken:
    def test_cancel_is_idempotent_and_keeps_first_reason(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"
        with pytest.raises(EnrichmentCancelledError):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_wait_returns_once_cancelled(self):
        token = CancellationToken()
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)


class TestWithTimeout:
    @pytest.mark.asyncio
    async def test_timeout_raises_enrichment_timeout(self):
        with pytest.raises(EnrichmentTimeoutError) as excinfo:
            await with_timeout(asyncio.sleep(1), 0.01, operation="row 3")
        assert "row 3" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_no_timeout_awaits_directly(self):
        async def value():
            return 42

        assert await with_timeout(value(), None) == 42


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTokenCache:
    """Test OAuth token reuse, skew and single-flight refresh."""

    @pytest.mark.asyncio
    async def test_token_reused_until_skew_window(self):
        clock = FakeClock()
        issued = []

        async def fetch():
            issued.append(len(issued) + 1)
            return AccessToken(token=f"t{len(issued)}", expires_in=120)

        cache = TokenCache(fetch, skew_seconds=60, clock=clock)
        assert await cache.get() == "t1"
        clock.now += 59
        assert await cache.get() == "t1"
        clock.now += 2  # inside the 60s skew window now
        assert await cache.get() == "t2"
        assert cache.refresh_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        started = asyncio.Event()
        release = asyncio.Event()
        fetches = 0

        async def slow_fetch():
            nonlocal fetches
            fetches += 1
            started.set()
            await release.wait()
            return AccessToken(token="shared")

        cache = TokenCache(slow_fetch)
        tasks = [asyncio.ensure_future(cache.get()) for _ in range(5)]
        await started.wait()
        release.set()
        tokens = await asyncio.gather(*tasks)

        assert tokens == ["shared"] * 5
        assert fetches == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self):
        count = 0

        async def fetch():
            nonlocal count
            count += 1
            return AccessToken(token=f"t{count}")

        cache = TokenCache(fetch)
        await cache.get()
        cache.invalidate()
        assert await cache.get() == "t2"

    @pytest.mark.asyncio
    async def test_fetch_errors_propagate(self):
        async def failing():
            raise ExternalServiceError("snov", "auth down", status_code=500)

        with pytest.raises(ExternalServiceError):
            await TokenCache(failing).get()
