"""Tests for RetryConfig, calculate_backoff and retry_async."""

from uuid import uuid4

import pytest

from storefront.exceptions import OptimisticLockError
from storefront.retry import RetryConfig, RetryError, calculate_backoff, retry_async

FAST = RetryConfig(max_retries=2, initial_delay=0.001, max_delay=0.002, jitter=0.0)


class TestRetryConfig:
    """Tests for configuration validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"initial_delay": 0},
            {"initial_delay": 1.0, "max_delay": 0.5},
            {"exponential_base": 1.0},
            {"jitter": 1.5},
        ],
    )
    def test_invalid_values(self, kwargs: dict) -> None:
        """Test invalid settings raise ValueError."""
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)


class TestCalculateBackoff:
    """Tests for exponential backoff."""

    def test_exponential_growth(self) -> None:
        """Test delays double per attempt without jitter."""
        config = RetryConfig(initial_delay=1.0, max_delay=60.0, jitter=0.0)

        assert [calculate_backoff(n, config) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self) -> None:
        """Test the delay never exceeds max_delay."""
        config = RetryConfig(initial_delay=1.0, max_delay=3.0, jitter=0.0)

        assert calculate_backoff(10, config) == 3.0

    def test_jitter_stays_in_range(self) -> None:
        """Test jitter moves the delay by at most the configured fraction."""
        config = RetryConfig(initial_delay=1.0, max_delay=1.0, jitter=0.5)

        for _ in range(50):
            assert 0.5 <= calculate_backoff(0, config) <= 1.5


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self) -> None:
        """Test a retryable error is retried until the operation succeeds."""
        calls = 0

        async def operation() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("reset")
            return "done"

        assert await retry_async(operation, FAST) == "done"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries(self) -> None:
        """Test RetryError carries the attempt count and the last error."""
        calls = 0

        async def operation() -> None:
            nonlocal calls
            calls += 1
            raise ConnectionError(f"attempt {calls}")

        with pytest.raises(RetryError) as exc_info:
            await retry_async(operation, FAST)

        assert exc_info.value.attempts == 3
        assert str(exc_info.value.last_error) == "attempt 3"

    @pytest.mark.asyncio
    async def test_non_retryable_raised_immediately(self) -> None:
        """Test errors outside retryable_exceptions propagate on the first attempt."""
        calls = 0

        async def operation() -> None:
            nonlocal calls
            calls += 1
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await retry_async(operation, FAST)

        assert calls == 1

    @pytest.mark.asyncio
    async def test_custom_retryable_exceptions(self) -> None:
        """Test optimistic lock conflicts can be made retryable."""
        calls = 0

        async def operation() -> int:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OptimisticLockError(uuid4(), 1, 2)
            return calls

        result = await retry_async(operation, FAST, retryable_exceptions=(OptimisticLockError,))

        assert result == 2

    @pytest.mark.asyncio
    async def test_zero_retries(self) -> None:
        """Test max_retries=0 makes exactly one attempt."""
        config = RetryConfig(max_retries=0, initial_delay=0.001)

        async def operation() -> None:
            raise TimeoutError()

        with pytest.raises(RetryError) as exc_info:
            await retry_async(operation, config)

        assert exc_info.value.attempts == 1
