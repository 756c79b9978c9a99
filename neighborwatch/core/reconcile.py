"""
View reconciliation rules for NeighborWatch.

Pure functions that merge an initial fetch, realtime pushes and
optimistic local updates into one de-duplicated, recency-ordered
list. Conflicts are decided by updated_at, never by arrival order.
"""

from typing import Any, Dict, List, Optional, Sequence, TypeVar

from pydantic import BaseModel

from .models import AlertFilters

E = TypeVar("E", bound=BaseModel)

_FILTER_FIELDS = {
    "severity": "severity",
    "alert_type": "alert_type",
    "status": "status",
}


def matches_filters(entity: BaseModel, filters: Optional[AlertFilters]) -> bool:
    """현재 필터 조건에 맞는지 확인합니다."""
    if filters is None:
        return True
    for filter_name, attr in _FILTER_FIELDS.items():
        wanted = getattr(filters, filter_name)
        if wanted == "all":
            continue
        if not hasattr(entity, attr) or getattr(entity, attr) != wanted:
            return False
    return True


def sort_recent(items: Sequence[E]) -> List[E]:
    return sorted(items, key=lambda e: e.created_at, reverse=True)


def version_of(entity: BaseModel):
    """충돌 판단 기준 시각 (updated_at이 없는 추가 전용 행은 created_at)"""
    return getattr(entity, "updated_at", None) or entity.created_at


def merge_entity(local: E, incoming: E) -> E:
    """
    같은 id의 두 버전을 병합합니다.

    updated_at이 같거나 더 새로운 쪽(incoming 우선)이 이깁니다.
    """
    if version_of(incoming) >= version_of(local):
        # 조인 필드가 빠진 푸시는 기존 조인 값을 유지
        if getattr(incoming, "author", None) is None and getattr(local, "author", None) is not None:
            return incoming.model_copy(update={"author": local.author})
        return incoming
    return local


def merge_partial(local: E, partial: Dict[str, Any]) -> E:
    """
    푸시된 부분 레코드를 얕게 병합합니다.

    부분 레코드의 updated_at이 캐시보다 오래되었으면 무시합니다.
    중첩 조인 필드는 깊게 병합하지 않습니다.
    """
    base = local.model_dump()
    base.update({k: v for k, v in partial.items() if k != "author"})
    merged = type(local).model_validate(base)
    if version_of(merged) < version_of(local):
        return local
    return merged


def upsert(items: Sequence[E], incoming: E, *,
           filters: Optional[AlertFilters] = None,
           limit: Optional[int] = None) -> List[E]:
    """
    목록에 엔티티를 삽입하거나 병합합니다.

    새 엔티티가 필터에 맞지 않으면 조용히 버립니다.
    """
    result = list(items)
    for i, existing in enumerate(result):
        if existing.id == incoming.id:
            result[i] = merge_entity(existing, incoming)
            return _bounded(sort_recent(result), limit)

    if not matches_filters(incoming, filters):
        return result

    result.insert(0, incoming)
    return _bounded(sort_recent(result), limit)


def _bounded(items: List[E], limit: Optional[int]) -> List[E]:
    if limit is None:
        return items
    return items[:limit]
