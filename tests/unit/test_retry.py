"""Unit tests for retry with backoff."""

import pytest

from judgelink.linking.errors import RetryExhaustedError
from judgelink.linking.retry import RetryConfig, backoff_delay, with_retry


class TestBackoffDelay:
    """Tests for backoff_delay()."""

    def test_doubles_each_attempt(self):
        """Test exponential growth from the base delay."""
        config = RetryConfig(base_delay=2.0, max_delay=60.0)

        assert [backoff_delay(config, n) for n in range(4)] == [2.0, 4.0, 8.0, 16.0]

    def test_capped_at_max_delay(self):
        """Test that delays never exceed max_delay."""
        config = RetryConfig(base_delay=2.0, max_delay=10.0)

        assert backoff_delay(config, 5) == 10.0


class TestWithRetry:
    """Tests for with_retry()."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self, no_sleep):
        """Test that a succeeding call is not retried."""
        calls = []

        async def func():
            calls.append(1)
            return "ok"

        assert await with_retry(func, RetryConfig(), sleep=no_sleep) == "ok"
        assert len(calls) == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self, no_sleep):
        """Test that transient failures are retried with backoff."""
        attempts = []

        async def func():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("transient")
            return 42

        result = await with_retry(func, RetryConfig(max_retries=3), sleep=no_sleep)

        assert result == 42
        assert len(attempts) == 3
        assert no_sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_exhaustion(self, no_sleep):
        """Test that max_retries + 1 attempts are made before giving up."""
        attempts = []

        async def func():
            attempts.append(1)
            raise ConnectionError("down")

        with pytest.raises(RetryExhaustedError) as exc_info:
            await with_retry(
                func, RetryConfig(max_retries=3, max_delay=5.0), sleep=no_sleep
            )

        assert len(attempts) == 4
        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.last_error, ConnectionError)
        assert no_sleep.delays == [2.0, 4.0, 5.0]

    @pytest.mark.asyncio
    async def test_zero_retries(self, no_sleep):
        """Test that max_retries=0 means a single attempt."""

        async def func():
            raise TimeoutError()

        with pytest.raises(RetryExhaustedError) as exc_info:
            await with_retry(func, RetryConfig(max_retries=0), sleep=no_sleep)

        assert exc_info.value.attempts == 1
        assert no_sleep.delays == []
