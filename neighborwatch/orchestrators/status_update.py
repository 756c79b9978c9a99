"""
Status update service for NeighborWatch.

This module applies a status change to a panic event or a safety
alert after checking the acting user's permission. Writes are skipped
entirely when the change would not alter the persisted state.
"""

from datetime import datetime, timezone
from typing import Callable, Union

from neighborwatch.core.errors import NotFoundError, PermissionDeniedError
from neighborwatch.core.models import EntityRef, PanicEvent, SafetyAlert
from neighborwatch.core.status import panic_changes, panic_status, safety_alert_changes, validate_transition
from neighborwatch.observability import metrics
from neighborwatch.observability.logging_setup import get_logger
from neighborwatch.ports.store import AlertStorePort

log = get_logger("neighborwatch.status")

Entity = Union[PanicEvent, SafetyAlert]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusUpdateService:
    """패닉 이벤트/안전 경보 상태 변경 서비스"""

    def __init__(self, store: AlertStorePort, *, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    async def update_status(self, entity_ref: EntityRef, new_status: str,
                            acting_user_id: str) -> Entity:
        """
        엔티티의 상태를 변경합니다.

        Args:
            entity_ref: 대상 엔티티 참조
            new_status: 새 상태
            acting_user_id: 변경하는 사용자

        Returns:
            변경 후 (또는 변경이 없으면 현재) 엔티티

        Raises:
            NotFoundError: 엔티티 없음
            PermissionDeniedError: 권한 없음
            ValidationFailedError: 알 수 없는 상태
        """
        if entity_ref.kind == "panic_event":
            panic = await self.store.get_panic_event(entity_ref.id)
            if panic is None:
                raise NotFoundError("panic_event", entity_ref.id)
            status = validate_transition(panic_status(panic), new_status)
            await self._check_permission(panic.user_id, acting_user_id, allow_contacts=True)
            return await self.apply_panic_status(panic, status, acting_user_id)

        alert = await self.store.get_safety_alert(entity_ref.id)
        if alert is None:
            raise NotFoundError("safety_alert", entity_ref.id)
        status = validate_transition(alert.status, new_status)
        await self._check_permission(alert.user_id, acting_user_id, allow_contacts=False)
        return await self.apply_safety_alert_status(alert, status, acting_user_id)

    async def can_modify_alert(self, alert: SafetyAlert, acting_user_id: str) -> bool:
        """안전 경보 변경 권한 (작성자 또는 모더레이터)"""
        if alert.user_id == acting_user_id:
            return True
        return await self.store.is_moderator(acting_user_id)

    async def apply_panic_status(self, panic: PanicEvent, status: str,
                                 acting_user_id: str) -> PanicEvent:
        changes = panic_changes(panic, status, acting_user_id, self.clock())
        if changes is None:
            log.debug(f"패닉 이벤트 상태 변경 없음 id:{panic.id} status:{status}")
            return panic
        updated = await self.store.update_panic_event(panic.id, changes)
        metrics.status_updates.labels(entity="panic_event", status=status).inc()
        log.info(f"패닉 이벤트 상태 변경 id:{panic.id} status:{status} by:{acting_user_id}")
        return updated

    async def apply_safety_alert_status(self, alert: SafetyAlert, status: str,
                                        acting_user_id: str) -> SafetyAlert:
        """권한 확인 없이 안전 경보 상태를 기록합니다 (호출자가 확인)."""
        changes = safety_alert_changes(alert, status, acting_user_id, self.clock())
        if changes is None:
            log.debug(f"안전 경보 상태 변경 없음 id:{alert.id} status:{status}")
            return alert
        updated = await self.store.update_safety_alert(alert.id, changes)
        metrics.status_updates.labels(entity="safety_alert", status=status).inc()
        log.info(f"안전 경보 상태 변경 id:{alert.id} {alert.status} -> {status} by:{acting_user_id}")
        return updated

    async def _check_permission(self, owner_id: str, acting_user_id: str, *,
                                allow_contacts: bool) -> None:
        if owner_id == acting_user_id:
            return
        if await self.store.is_moderator(acting_user_id):
            return
        if allow_contacts and await self._is_confirmed_contact(owner_id, acting_user_id):
            return
        log.warning(f"상태 변경 권한 없음 owner:{owner_id} actor:{acting_user_id}")
        raise PermissionDeniedError(f"user {acting_user_id} may not modify entity owned by {owner_id}")

    async def _is_confirmed_contact(self, owner_id: str, acting_user_id: str) -> bool:
        actor = await self.store.get_profile(acting_user_id)
        if actor is None or not actor.phone:
            return False
        phone = actor.phone
        contacts = await self.store.list_emergency_contacts(owner_id)
        return any(c.is_confirmed and c.phone_number == phone for c in contacts)
