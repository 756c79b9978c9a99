"""
Realtime change feed port interface.

This module defines the protocol for table change streams.
"""

from typing import AsyncIterator, Protocol

from neighborwatch.core.models import ChangeEvent


class ChangeFeedPort(Protocol):
    """테이블 변경 스트림 포트 인터페이스"""

    def listen(self, table: str) -> AsyncIterator[ChangeEvent]:
        """
        테이블의 변경 이벤트를 비동기적으로 수신합니다.

        스트림이 끊기면 DependencyError를 발생시킵니다.

        Yields:
            ChangeEvent
        """
        ...
