"""
Retry utilities for NeighborWatch.

Only idempotent reads go through these helpers. Mutating calls are
never retried automatically.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from neighborwatch.observability.logging_setup import get_logger

log = get_logger("neighborwatch.retry")

T = TypeVar('T')


def backoff_delay(attempt: int, base: float, max_delay: float, jitter: bool = False) -> float:
    """
    시도 횟수에 대한 지수 백오프 지연을 계산합니다.

    Args:
        attempt: 현재 시도 횟수 (1부터 시작)
        base: 기본 지연 시간 (초)
        max_delay: 최대 지연 시간 (초)
        jitter: 지터 적용 여부 (지연의 50%~100%)
    """
    delay = min(max_delay, base * (2 ** max(0, attempt - 1)))
    if jitter:
        delay = delay * (0.5 + random.random() * 0.5)
    return delay


async def retry_read(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: bool = True,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    label: str = "read",
) -> T:
    """
    읽기 요청을 지수 백오프로 재시도합니다.

    Args:
        func: 재시도할 비동기 함수 (부작용이 없어야 함)
        max_retries: 첫 시도 이후 최대 재시도 횟수
        retry_on: 재시도 대상 예외 타입
        should_retry: 예외별 재시도 여부 판단 (None이면 항상)

    Returns:
        함수 실행 결과

    Raises:
        마지막 시도에서 발생한 예외
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func()
        except retry_on as e:
            if should_retry is not None and not should_retry(e):
                raise
            if attempt > max_retries:
                log.warning(f"{label} 재시도 소진 attempts:{attempt} error:{e}")
                raise
            delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            log.debug(f"{label} 실패, {delay:.2f}초 후 재시도 attempt:{attempt} error:{e}")
            await asyncio.sleep(delay)
