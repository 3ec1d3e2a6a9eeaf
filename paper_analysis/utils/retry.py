"""
재시도 로직 유틸리티.

Provider 호출 실패 시 지수 백오프 재시도.
지연: initial_delay * exponential_base ** attempt (1s, 2s, 4s, ...), jitter 없음.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_exponential_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float | None = None,
    exponential_base: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    is_retryable: Callable[[Exception], bool] | None = None,
) -> T:
    """
    지수 백오프를 사용한 재시도.

    Args:
        func: 재시도할 비동기 함수 (인자 없음)
        max_retries: 최대 재시도 횟수 (총 시도 = max_retries + 1)
        initial_delay: 초기 대기 시간(초)
        max_delay: 최대 대기 시간(초), None이면 상한 없음
        exponential_base: 지수 백오프 기수
        exceptions: 재시도 후보 예외 타입들
        is_retryable: 예외별 재시도 여부 판정 (None이면 exceptions 전부 재시도)

    Returns:
        func의 반환값

    Raises:
        재시도 불가 예외 또는 마지막 시도에서 발생한 예외
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            result = await func()
            if attempt > 0:
                logger.info(
                    f"Retry succeeded on attempt {attempt + 1}/{max_retries + 1}"
                )
            return result

        except exceptions as e:
            if is_retryable is not None and not is_retryable(e):
                raise

            if attempt == max_retries:
                logger.error(
                    f"All {max_retries + 1} attempts failed. Last error: {e}"
                )
                raise

            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )

            await asyncio.sleep(delay)

            # 지수 백오프
            delay = delay * exponential_base
            if max_delay is not None:
                delay = min(delay, max_delay)

    # Should never reach here
    msg = "Unexpected retry logic error"
    raise RuntimeError(msg)
