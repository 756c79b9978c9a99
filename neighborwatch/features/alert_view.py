"""
List view state for NeighborWatch.

Holds client-side lists of safety alerts, panic events and alert
responses and reconciles the initial fetch, realtime pushes,
optimistic local edits and manual refreshes into one de-duplicated,
recency-ordered list.
"""

from datetime import datetime, timezone
from typing import (
    TYPE_CHECKING, Any, Awaitable, Callable, Dict, Generic, List, Optional, Set, TypeVar,
)

from pydantic import BaseModel

from neighborwatch.core.errors import NeighborWatchError, ValidationFailedError
from neighborwatch.core.models import AlertFilters, SafetyAlert
from neighborwatch.core.reconcile import matches_filters, merge_partial, sort_recent, upsert
from neighborwatch.observability.logging_setup import get_logger

if TYPE_CHECKING:
    from neighborwatch.orchestrators.correlation import CorrelationResolver, ResolutionResult

log = get_logger("neighborwatch.view")

E = TypeVar("E", bound=BaseModel)

Fetch = Callable[[], Awaitable[List[Any]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityListView(Generic[E]):
    """id로 중복 제거되는 최신순 엔티티 목록"""

    def __init__(self, limit: Optional[int] = None, *,
                 fetch: Optional[Fetch] = None,
                 accept: Optional[Callable[[E], bool]] = None):
        """
        초기화합니다.

        Args:
            limit: 최대 항목 수 (None이면 제한 없음)
            fetch: 전체 목록 재조회 함수
            accept: 새 엔티티를 목록에 넣을지 판단하는 조건
        """
        self.limit = limit
        self.fetch = fetch
        self._accept_new = accept
        self._items: List[E] = []

    @property
    def items(self) -> List[E]:
        return list(self._items)

    def get(self, entity_id: str) -> Optional[E]:
        for item in self._items:
            if item.id == entity_id:
                return item
        return None

    def accepts(self, entity: E) -> bool:
        return self._accept_new is None or self._accept_new(entity)

    def load(self, entities: List[E]) -> None:
        """서버 결과로 목록 전체를 교체합니다."""
        items = sort_recent(entities)
        self._items = items if self.limit is None else items[:self.limit]

    def refresh(self, entities: List[E]) -> None:
        self.load(entities)
        log.debug(f"목록 새로고침 count:{len(self._items)}")

    async def reload(self) -> None:
        """fetch 함수로 서버 목록을 다시 읽어 교체합니다."""
        if self.fetch is None:
            return
        self.refresh(await self.fetch())

    def apply_insert(self, entity: E) -> None:
        # 새 엔티티만 조건 확인, 기존 항목은 updated_at으로 병합
        if self.get(entity.id) is None and not self.accepts(entity):
            return
        self._items = upsert(self._items, entity, limit=self.limit)

    def apply_update(self, partial: Dict[str, Any]) -> bool:
        """
        푸시된 부분 레코드를 캐시된 항목에 병합합니다.

        Returns:
            캐시에 해당 항목이 있었는지 여부
        """
        entity_id = partial.get("id")
        for i, item in enumerate(self._items):
            if item.id == entity_id:
                self._items[i] = merge_partial(item, partial)
                self._items = sort_recent(self._items)
                return True
        return False


class AlertListView(EntityListView[SafetyAlert]):
    """안전 경보 목록 뷰 상태"""

    def __init__(self, filters: Optional[AlertFilters] = None, limit: Optional[int] = None, *,
                 fetch: Optional[Fetch] = None,
                 clock: Callable[[], datetime] = _utcnow):
        """
        초기화합니다.

        Args:
            filters: 현재 목록 필터
            limit: 최대 항목 수 (None이면 제한 없음)
            fetch: 전체 목록 재조회 함수
            clock: 낙관적 변경 시각 제공 함수
        """
        super().__init__(limit, fetch=fetch)
        self.filters = filters or AlertFilters()
        self.clock = clock
        self._in_flight: Set[str] = set()

    def accepts(self, entity: SafetyAlert) -> bool:
        return matches_filters(entity, self.filters)

    def apply_optimistic(self, alert_id: str, changes: Dict[str, Any],
                         now: Optional[datetime] = None) -> Optional[SafetyAlert]:
        """
        로컬 변경을 즉시 반영합니다.

        Returns:
            변경 전 항목 (없으면 None)
        """
        previous = self.get(alert_id)
        if previous is None:
            return None
        updated = previous.model_copy(update={**changes, "updated_at": now or self.clock()})
        self._items = [updated if item.id == alert_id else item for item in self._items]
        return previous

    async def submit_status(self, alert_id: str, new_status: str, acting_user_id: str,
                            resolver: "CorrelationResolver", *, note: Optional[str] = None,
                            access_token: Optional[str] = None) -> "ResolutionResult":
        """
        상태 변경을 낙관적으로 반영한 뒤 리졸버에 제출합니다.

        리졸버가 돌려준 경보는 updated_at 기준으로 병합하므로 아직
        반영되지 않은 오래된 행이 낙관적 변경을 덮어쓰지 않습니다.
        실패하면 목록을 다시 읽어 낙관적 변경을 되돌리고 예외를 다시 발생시킵니다.

        Raises:
            ValidationFailedError: 같은 경보에 대한 제출이 이미 진행 중
        """
        if alert_id in self._in_flight:
            raise ValidationFailedError(
                "A status update for this alert is already in progress.", field="status"
            )
        self._in_flight.add(alert_id)
        try:
            previous = self.apply_optimistic(alert_id, {"status": new_status})
            try:
                result = await resolver.resolve_and_apply(alert_id, new_status, acting_user_id, note,
                                                          access_token=access_token)
            except NeighborWatchError:
                log.warning(f"상태 변경 실패, 낙관적 변경 되돌림 alert:{alert_id}")
                await self._revert(alert_id, previous)
                raise
            self.apply_insert(result.entity)
            return result
        finally:
            self._in_flight.discard(alert_id)

    async def _revert(self, alert_id: str, previous: Optional[SafetyAlert]) -> None:
        if self.fetch is not None:
            try:
                await self.reload()
                return
            except NeighborWatchError as e:
                log.error(f"목록 재조회 실패 error:{e}")
        if previous is not None:
            self._items = [previous if item.id == alert_id else item for item in self._items]
