"""
In-process change feed for NeighborWatch.

The local store publishes every committed write here so that the
realtime sync client behaves the same against SQLite as it does
against the hosted realtime channel.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from neighborwatch.core.errors import DependencyError
from neighborwatch.core.models import ChangeEvent
from neighborwatch.observability.logging_setup import get_logger

log = get_logger("neighborwatch.feed")

# 스트림 중단 신호
_BROKEN = object()


class LocalChangeFeed:
    """프로세스 내 테이블 변경 브로드캐스터"""

    def __init__(self, queue_maxsize: int = 1000):
        self.queue_maxsize = queue_maxsize
        self._listeners: Dict[str, List[asyncio.Queue]] = {}

    def listener_count(self, table: str) -> int:
        return len(self._listeners.get(table, []))

    def publish(self, table: str, event_type: str, record: Dict[str, Any],
                old_record: Optional[Dict[str, Any]] = None) -> None:
        """
        변경 이벤트를 모든 리스너에 전달합니다.

        큐가 가득 찬 리스너는 이벤트를 놓칩니다 (폴링이 보정).
        """
        event = ChangeEvent(
            table=table,
            event_type=event_type,
            record=record,
            old_record=old_record,
            commit_timestamp=datetime.now(timezone.utc),
        )
        for q in self._listeners.get(table, []):
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                log.warning(f"변경 피드 큐 가득참, 이벤트 누락 table:{table}")

    def break_stream(self, table: str) -> None:
        """현재 리스너들의 스트림을 끊습니다 (장애 재현용)."""
        for q in self._listeners.get(table, []):
            q.put_nowait(_BROKEN)

    async def listen(self, table: str) -> AsyncIterator[ChangeEvent]:
        q: asyncio.Queue = asyncio.Queue(maxsize=self.queue_maxsize)
        self._listeners.setdefault(table, []).append(q)
        try:
            while True:
                item = await q.get()
                if item is _BROKEN:
                    raise DependencyError(f"change stream closed: {table}")
                yield item
        finally:
            self._listeners[table].remove(q)
