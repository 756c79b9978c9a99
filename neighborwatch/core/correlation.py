"""
Panic/safety alert correlation for NeighborWatch.

A safety alert is linked to a panic event when both belong to the
same user and were created within the correlation window of each
other. The link is derived at update time, never stored.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from .models import PanicEvent, SafetyAlert

CORRELATION_WINDOW = timedelta(minutes=5)
PANIC_LOOKBACK = 10

# 엣지 함수가 연결된 안전 경보를 찾을 때 쓰는 허용 오차
CASCADE_TOLERANCE = timedelta(seconds=1)


def within_window(a: datetime, b: datetime, window: timedelta = CORRELATION_WINDOW) -> bool:
    """두 시각의 차이가 윈도우 이내인지 (경계 포함)"""
    return abs(a - b) <= window


def find_correlated_panic(alert: SafetyAlert,
                          candidates: Iterable[PanicEvent],
                          window: timedelta = CORRELATION_WINDOW) -> Optional[PanicEvent]:
    """
    안전 경보와 연결된 패닉 이벤트를 찾습니다.

    후보는 최신순으로 주어지며, 가장 가까운 것이 아니라
    윈도우 안에 들어오는 첫 번째 후보를 선택합니다.

    Args:
        alert: 대상 안전 경보
        candidates: 같은 사용자의 최근 패닉 이벤트 (최신순)
        window: 상관 윈도우

    Returns:
        연결된 패닉 이벤트 또는 None
    """
    for panic in candidates:
        if panic.user_id != alert.user_id:
            continue
        if within_window(panic.created_at, alert.created_at, window):
            return panic
    return None


def cascade_bounds(panic: PanicEvent) -> tuple:
    """패닉 이벤트와 함께 생성된 안전 경보 검색 범위"""
    return (panic.created_at - CASCADE_TOLERANCE, panic.created_at + CASCADE_TOLERANCE)
