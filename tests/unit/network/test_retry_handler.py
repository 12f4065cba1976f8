"""
Tests unitaires pour Network - RetryHandler

Retry borné: tentatives max, intervalle fixe ou exponentiel, timeout par
tentative, timeout total.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.network import IRetryHandler, RetryConfig, RetryHandler, RetryResult


class TestRetryAttempts:
    """Nombre de tentatives et succès."""

    @pytest.mark.asyncio
    async def test_default_max_attempts_is_3(self) -> None:
        handler = RetryHandler()
        call_count = 0

        async def failing_func() -> None:
            nonlocal call_count
            call_count += 1
            raise ConnectionError("refused")

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await handler.execute_with_retry(failing_func)

        assert call_count == 3
        assert result.attempts == 3
        assert result.success is False
        assert isinstance(result.last_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self) -> None:
        handler = RetryHandler()

        async def success_func() -> str:
            return "ready"

        result = await handler.execute_with_retry(success_func)

        assert result.success is True
        assert result.result == "ready"
        assert result.attempts == 1
        assert result.total_delay == 0.0

    @pytest.mark.asyncio
    async def test_success_after_retry(self) -> None:
        handler = RetryHandler()
        call_count = 0

        async def eventual_success() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("not yet")
            return "ready"

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await handler.execute_with_retry(eventual_success)

        assert result.success is True
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_stops_immediately(self) -> None:
        handler = RetryHandler()
        func = AsyncMock(side_effect=ValueError("bad input"))

        result = await handler.execute_with_retry(func)

        assert result.success is False
        assert result.attempts == 1
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_args_and_kwargs_forwarded(self) -> None:
        handler = RetryHandler()

        def add(a: int, b: int = 0) -> int:
            return a + b

        result = await handler.execute_with_retry(add, 2, b=3)

        assert result.result == 5


class TestRetryDelays:
    """Intervalle fixe ou backoff exponentiel."""

    def test_exponential_delay(self) -> None:
        handler = RetryHandler()
        config = RetryConfig(initial_delay=1.0, exponential_base=2.0, max_delay=100.0)

        assert handler.calculate_delay(0, config) == 1.0
        assert handler.calculate_delay(1, config) == 2.0
        assert handler.calculate_delay(3, config) == 8.0

    def test_fixed_interval_with_base_one(self) -> None:
        handler = RetryHandler()
        config = RetryConfig(initial_delay=5.0, exponential_base=1.0, max_delay=30.0)

        assert [handler.calculate_delay(i, config) for i in range(4)] == [5.0, 5.0, 5.0, 5.0]

    def test_delay_capped(self) -> None:
        handler = RetryHandler()
        config = RetryConfig(initial_delay=1.0, exponential_base=10.0, max_delay=5.0)

        assert handler.calculate_delay(4, config) == 5.0

    @pytest.mark.asyncio
    async def test_sleep_called_between_attempts(self) -> None:
        handler = RetryHandler()
        config = RetryConfig(max_attempts=3, initial_delay=0.5, exponential_base=2.0)
        func = AsyncMock(side_effect=TimeoutError("slow"))

        with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await handler.execute_with_retry(func, config=config)

        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]
        assert result.total_delay == 1.5

    @pytest.mark.asyncio
    async def test_on_retry_callback(self) -> None:
        handler = RetryHandler()
        config = RetryConfig(max_attempts=2, initial_delay=0.25)
        callback = MagicMock()

        with patch("asyncio.sleep", new_callable=AsyncMock):
            await handler.execute_with_retry(
                AsyncMock(side_effect=ConnectionError("down")), config=config, on_retry=callback
            )

        assert callback.call_count == 2
        attempt, error, next_delay = callback.call_args_list[0].args
        assert attempt == 1
        assert isinstance(error, ConnectionError)
        assert next_delay == 0.25
        assert callback.call_args_list[1].args[2] == 0.0


class TestRetryTimeouts:
    """Timeout par tentative et budget total."""

    @pytest.mark.asyncio
    async def test_attempt_timeout_counts_as_failure(self) -> None:
        handler = RetryHandler()
        config = RetryConfig(max_attempts=2, initial_delay=0.0, attempt_timeout=0.01)

        async def hangs() -> None:
            await asyncio.sleep(10)

        result = await handler.execute_with_retry(hangs, config=config)

        assert result.success is False
        assert result.attempts == 2
        assert isinstance(result.last_error, TimeoutError)

    @pytest.mark.asyncio
    async def test_total_timeout_stops_before_max_attempts(self) -> None:
        handler = RetryHandler()
        config = RetryConfig(
            max_attempts=100,
            initial_delay=0.05,
            exponential_base=1.0,
            total_timeout=0.12,
            retryable_exceptions=(Exception,),
        )
        func = AsyncMock(side_effect=RuntimeError("not ready"))

        result = await handler.execute_with_retry(func, config=config)

        assert result.success is False
        assert result.timed_out is True
        assert result.attempts < 100
        assert result.elapsed < 1.0


class TestRetryConfigValidation:
    """Configuration invalide refusée."""

    def test_default_values(self) -> None:
        config = RetryConfig()

        assert config.max_attempts == 3
        assert config.total_timeout is None
        assert config.retryable_exceptions == (ConnectionError, TimeoutError)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"initial_delay": -1},
            {"total_timeout": 0},
            {"attempt_timeout": -2},
        ],
    )
    def test_invalid_values_rejected(self, kwargs) -> None:
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)


class TestRetryStats:
    """Statistiques de retry."""

    @pytest.mark.asyncio
    async def test_stats_after_failure_and_reset(self) -> None:
        handler = RetryHandler()

        with patch("asyncio.sleep", new_callable=AsyncMock):
            await handler.execute_with_retry(AsyncMock(side_effect=ConnectionError()))

        stats = handler.get_retry_stats()
        assert stats["total_retries"] == 3
        assert stats["failed_retries"] == 1

        handler.reset_stats()
        assert handler.get_retry_stats()["total_retries"] == 0

    def test_implements_interface(self) -> None:
        assert isinstance(RetryHandler(), IRetryHandler)

    def test_result_dataclass_defaults(self) -> None:
        result = RetryResult(success=True, result=1, attempts=1, total_delay=0.0, last_error=None)

        assert result.timed_out is False
        assert result.elapsed == 0.0
