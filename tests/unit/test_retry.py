# =============================================================================
# tests/unit/test_retry.py
# Unit Tests for RetryPolicy and retry_with_backoff
# =============================================================================

import pytest
from unittest.mock import AsyncMock


class TestRetryPolicy:
    """Test backoff computation"""

    def test_backoff_doubles_from_one_second(self):
        """1s, 2s, 4s ..."""
        from site_core.utils.retry import RetryPolicy

        policy = RetryPolicy()
        assert [policy.backoff(a) for a in range(3)] == [1000, 2000, 4000]

    def test_backoff_capped_at_thirty_seconds(self):
        """Large attempts hit the cap"""
        from site_core.utils.retry import RetryPolicy

        assert RetryPolicy().backoff(10) == 30000

    def test_zero_attempts_rejected(self):
        """max_attempts must be positive"""
        from site_core.utils.retry import RetryPolicy

        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_wait_seconds_follows_attempt_number(self):
        """The tenacity wait hook maps attempt 1 to the first backoff"""
        from types import SimpleNamespace
        from site_core.utils.retry import RetryPolicy

        policy = RetryPolicy(base_delay_ms=500)
        waits = [policy.wait_seconds(SimpleNamespace(attempt_number=n)) for n in (1, 2, 3)]

        assert waits == [0.5, 1.0, 2.0]


class TestRetryWithBackoff:
    """Test the retry combinator"""

    @pytest.mark.asyncio
    async def test_success_first_try_does_not_sleep(self, no_sleep):
        """No sleep when the first attempt succeeds"""
        from site_core.utils.retry import retry_with_backoff

        operation = AsyncMock(return_value="ok")
        result = await retry_with_backoff(operation, sleep=no_sleep)

        assert result == "ok"
        assert operation.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_then_success(self, no_sleep):
        """One failure, one backoff sleep, then the result"""
        from site_core.utils.retry import retry_with_backoff

        operation = AsyncMock(side_effect=[RuntimeError("down"), "ok"])
        result = await retry_with_backoff(operation, sleep=no_sleep)

        assert result == "ok"
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self, no_sleep):
        """Three failures re-raise the third error after two sleeps"""
        from site_core.utils.retry import retry_with_backoff

        errors = [RuntimeError("1"), RuntimeError("2"), RuntimeError("3")]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(RuntimeError, match="3"):
            await retry_with_backoff(operation, sleep=no_sleep)

        assert operation.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self, no_sleep):
        """Errors outside retry_on are not retried"""
        from site_core.utils.retry import retry_with_backoff

        operation = AsyncMock(side_effect=KeyError("bad"))

        with pytest.raises(KeyError):
            await retry_with_backoff(operation, retry_on=(RuntimeError,), sleep=no_sleep)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_calls_are_independent(self, no_sleep):
        """A new call starts again at attempt zero"""
        from site_core.utils.retry import retry_with_backoff

        first = AsyncMock(side_effect=[RuntimeError("x"), RuntimeError("y"), "ok"])
        await retry_with_backoff(first, sleep=no_sleep)
        no_sleep.reset_mock()

        second = AsyncMock(side_effect=[RuntimeError("x"), "ok"])
        await retry_with_backoff(second, sleep=no_sleep)

        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0]

    @pytest.mark.asyncio
    async def test_each_retry_is_logged(self, no_sleep, caplog):
        """A warning precedes every backoff sleep"""
        import logging
        from site_core.utils.retry import retry_with_backoff

        operation = AsyncMock(side_effect=[RuntimeError("x"), RuntimeError("y"), "ok"])

        with caplog.at_level(logging.WARNING, logger="site_core.utils.retry"):
            assert await retry_with_backoff(operation, sleep=no_sleep) == "ok"

        retries = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(retries) == 2
