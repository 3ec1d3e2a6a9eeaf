"""
test_retry.py - 지수 백오프 재시도 테스트

테스트 케이스:
- 총 시도 횟수 = max_retries + 1
- 지연 1s, 2s, 4s (상한 없음)
- is_retryable=False 예외는 즉시 전파
"""

from unittest.mock import AsyncMock, patch

import pytest

from paper_analysis.utils.retry import retry_with_exponential_backoff


class Flaky:
    """지정 횟수만큼 실패 후 성공하는 호출 대상."""

    def __init__(self, failures: int, error: Exception | None = None):
        self.failures = failures
        self.error = error or ConnectionError("reset")
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestRetryWithExponentialBackoff:
    """retry_with_exponential_backoff 동작."""

    @pytest.mark.asyncio
    async def test_success_without_retry(self):
        """첫 시도 성공 시 대기 없음."""
        func = Flaky(failures=0)
        with patch("paper_analysis.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await retry_with_exponential_backoff(func, max_retries=3)

        assert result == "ok"
        assert func.calls == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        """두 번 실패 후 세 번째 성공."""
        func = Flaky(failures=2)
        with patch("paper_analysis.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await retry_with_exponential_backoff(func, max_retries=3)

        assert result == "ok"
        assert func.calls == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_error(self):
        """max_retries=3 → 총 4회 시도, 지연 1/2/4."""
        func = Flaky(failures=10)
        with patch("paper_analysis.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ConnectionError):
                await retry_with_exponential_backoff(func, max_retries=3)

        assert func.calls == 4
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_raises_immediately(self):
        """is_retryable가 False면 재시도 없이 전파."""
        func = Flaky(failures=10, error=ValueError("bad request"))
        with patch("paper_analysis.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ValueError):
                await retry_with_exponential_backoff(
                    func,
                    max_retries=3,
                    is_retryable=lambda e: not isinstance(e, ValueError),
                )

        assert func.calls == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(self):
        func = Flaky(failures=1)
        with patch("paper_analysis.utils.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ConnectionError):
                await retry_with_exponential_backoff(func, max_retries=0)

        assert func.calls == 1

    @pytest.mark.asyncio
    async def test_max_delay_caps_backoff(self):
        """max_delay 지정 시 상한 적용."""
        func = Flaky(failures=10)
        with patch("paper_analysis.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ConnectionError):
                await retry_with_exponential_backoff(func, max_retries=3, max_delay=1.5)

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 1.5, 1.5]
