"""Tests for the retry engine and timeout wrapper."""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from lead_intel.core.errors import (
    OperationTimeoutError,
    PermanentUpstreamError,
    TransientUpstreamError,
)
from lead_intel.core.retry import (
    RetryConfig,
    apply_jitter,
    compute_backoff_delay,
    execute_with_retry,
    is_retryable,
    with_timeout,
)
from lead_intel.integrations.openai_extraction import (
    EXTRACTION_RETRY_CONFIG,
    is_retryable_extraction_failure,
)


NO_DELAY = RetryConfig(max_retries=3, base_delay=0.0, max_delay=0.0)


class TestBackoff:
    """Tests for delay computation."""

    def test_delays_double_until_capped(self):
        """Delays grow by the multiplier and then stay at max_delay."""
        config = RetryConfig(max_retries=4, base_delay=1.0, max_delay=4.0, backoff_multiplier=2.0)

        delays = [compute_backoff_delay(attempt, config) for attempt in range(1, 5)]

        assert delays == [1.0, 2.0, 4.0, 4.0]

    def test_delays_are_monotonic(self):
        """No delay is shorter than the one before it."""
        config = RetryConfig(max_retries=10, base_delay=2.0, max_delay=20.0)

        delays = [compute_backoff_delay(attempt, config) for attempt in range(1, 11)]

        assert delays == sorted(delays)
        assert max(delays) == 20.0

    def test_jitter_stays_within_ten_percent(self):
        """Jitter moves a delay by at most 10% in either direction."""
        with patch("lead_intel.core.retry.random.random", return_value=0.0):
            low = apply_jitter(10.0)
        with patch("lead_intel.core.retry.random.random", return_value=1.0):
            high = apply_jitter(10.0)

        assert low == pytest.approx(9.0)
        assert high == pytest.approx(11.0)

    def test_jitter_never_negative(self):
        """A zero delay stays zero."""
        assert apply_jitter(0.0) == 0.0


class TestRetryability:
    """Tests for the retry predicate."""

    def test_everything_retryable_without_filter(self):
        assert is_retryable(ValueError("anything"), None)

    def test_status_code_token(self):
        """Classified errors match on their status code."""
        error = TransientUpstreamError("OpenAI API call failed: status 429", status_code=429)

        assert is_retryable(error, {"429", "500"})
        assert not is_retryable(error, {"500", "503"})

    def test_message_substring_match(self):
        """Unclassified errors match on message text."""
        error = ConnectionError("ECONNRESET by peer")

        assert is_retryable(error, {"econnreset"})
        assert not is_retryable(error, {"429"})

    def test_predicate(self):
        config_filter = lambda error: isinstance(error, PermanentUpstreamError)

        assert is_retryable(PermanentUpstreamError("boom"), config_filter)
        assert not is_retryable(TransientUpstreamError("boom"), config_filter)

    def test_timeout_retried_only_with_timeout_token(self):
        """A timed-out operation is retried only when a timeout token is allowed."""
        error = OperationTimeoutError("OpenAI Responses API", 30)

        assert is_retryable(error, {"timeout"})
        assert is_retryable(RuntimeError("Request timed out"), {"ETIMEDOUT"})
        assert not is_retryable(error, {"429", "500", "503"})

    def test_request_timed_out(self):
        error = RuntimeError("Request timed out")

        assert not is_retryable(error, ["429", "500"])
        assert is_retryable(error, ["429", "500", "timeout"])

    def test_timeout_overrides_other_matches(self):
        """A timeout message is not retried just because it also mentions a status."""
        error = RuntimeError("status 500 upstream timed out")

        assert not is_retryable(error, {"500"})


class TestExtractionRetryPolicy:
    """Tests for the extraction client's retry predicate."""

    def test_retryable_statuses(self):
        for status in (429, 500, 503):
            error = TransientUpstreamError(f"OpenAI API call failed: status {status}", status_code=status)
            assert is_retryable(error, EXTRACTION_RETRY_CONFIG.retryable_errors)

    def test_timeout_is_retried(self):
        assert is_retryable_extraction_failure(OperationTimeoutError("OpenAI Responses API", 300))

    def test_status_digits_in_message_do_not_count(self):
        """Only the status code decides, not numbers inside the API message."""
        error = PermanentUpstreamError(
            "OpenAI API call failed: status 400 max_output_tokens must be <= 5000",
            status_code=400
        )

        assert not is_retryable(error, EXTRACTION_RETRY_CONFIG.retryable_errors)

    def test_other_transient_statuses_are_final(self):
        assert not is_retryable_extraction_failure(TransientUpstreamError("status 502", status_code=502))
        assert not is_retryable_extraction_failure(TransientUpstreamError("status 504", status_code=504))

    def test_unclassified_errors_are_final(self):
        assert not is_retryable_extraction_failure(RuntimeError("status 500 from proxy"))


class TestExecuteWithRetry:
    """Tests for execute_with_retry."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        operation = AsyncMock(return_value="ok")

        result = await execute_with_retry(operation, NO_DELAY)

        assert result.success
        assert result.value == "ok"
        assert result.attempts == 1
        assert result.error is None

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        operation = AsyncMock(side_effect=[
            TransientUpstreamError("status 503", status_code=503),
            TransientUpstreamError("status 503", status_code=503),
            "ok",
        ])

        result = await execute_with_retry(operation, NO_DELAY)

        assert result.success
        assert result.value == "ok"
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_exhaustion_makes_max_retries_plus_one_attempts(self):
        error = TransientUpstreamError("status 500", status_code=500)
        operation = AsyncMock(side_effect=error)

        result = await execute_with_retry(operation, NO_DELAY)

        assert not result.success
        assert result.error is error
        assert result.attempts == 4
        assert operation.await_count == 4

    @pytest.mark.asyncio
    async def test_non_retryable_stops_immediately(self):
        config = RetryConfig(max_retries=3, base_delay=0.0, max_delay=0.0, retryable_errors={"429"})
        operation = AsyncMock(side_effect=PermanentUpstreamError("status 400", status_code=400))

        result = await execute_with_retry(operation, config)

        assert not result.success
        assert result.attempts == 1
        assert isinstance(result.error, PermanentUpstreamError)

    @pytest.mark.asyncio
    async def test_sleeps_follow_backoff_schedule(self):
        """Waits between attempts follow the un-jittered schedule."""
        config = RetryConfig(max_retries=4, base_delay=1.0, max_delay=4.0)
        operation = AsyncMock(side_effect=TransientUpstreamError("status 503", status_code=503))
        sleep = AsyncMock()

        with patch("lead_intel.core.retry.apply_jitter", side_effect=lambda delay: delay), \
                patch("lead_intel.core.retry.asyncio.sleep", sleep):
            result = await execute_with_retry(operation, config)

        assert result.attempts == 5
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0, 4.0, 4.0]

    @pytest.mark.asyncio
    async def test_no_sleep_after_last_attempt(self):
        config = RetryConfig(max_retries=1, base_delay=1.0, max_delay=1.0)
        operation = AsyncMock(side_effect=TransientUpstreamError("status 503", status_code=503))
        sleep = AsyncMock()

        with patch("lead_intel.core.retry.asyncio.sleep", sleep):
            await execute_with_retry(operation, config)

        assert sleep.await_count == 1


class TestWithTimeout:
    """Tests for with_timeout."""

    @pytest.mark.asyncio
    async def test_returns_value_within_budget(self):
        async def quick():
            return 42

        assert await with_timeout(quick, 1.0, "quick op") == 42

    @pytest.mark.asyncio
    async def test_raises_timeout_error(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(OperationTimeoutError) as exc_info:
            await with_timeout(slow, 0.01, "slow op")

        assert "timed out" in str(exc_info.value)
        assert exc_info.value.label == "slow op"

    @pytest.mark.asyncio
    async def test_timeout_is_retryable_with_timeout_token(self):
        """Timeouts feed the retry predicate like any other failure."""
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                await asyncio.sleep(1)
            return "done"

        config = RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0, retryable_errors={"timeout"})
        result = await execute_with_retry(lambda: with_timeout(flaky, 0.01, "flaky op"), config)

        assert result.success
        assert result.attempts == 2
