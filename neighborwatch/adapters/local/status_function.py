"""
In-process panic status function for NeighborWatch.

Behaves like the hosted update-panic-alert-status function: updates
the panic event, mirrors the status onto the critical safety alert
created alongside it and records the optional note on that alert.
"""

from typing import Optional

from neighborwatch.core.correlation import cascade_bounds
from neighborwatch.core.errors import NeighborWatchError
from neighborwatch.core.models import EntityRef, PanicEvent
from neighborwatch.core.status import panic_status
from neighborwatch.observability.logging_setup import get_logger
from neighborwatch.orchestrators.status_update import StatusUpdateService
from neighborwatch.ports.store import AlertStorePort

log = get_logger("neighborwatch.status_fn")


class LocalStatusFunction:
    """상태 변경 엣지 함수의 로컬 구현"""

    def __init__(self, store: AlertStorePort, status_service: StatusUpdateService):
        self.store = store
        self.status_service = status_service

    async def update_panic_status(self, panic_id: str, new_status: str,
                                  acting_user_id: str,
                                  note: Optional[str] = None, *,
                                  access_token: Optional[str] = None) -> PanicEvent:
        """
        패닉 이벤트 상태를 변경하고 연결된 안전 경보에 반영합니다.

        세션 토큰은 사용하지 않습니다 (acting_user_id로 권한 확인).
        메모는 패닉 또는 연결된 안전 경보 상태가 실제로 바뀐 경우에만
        기록합니다. 연결된 안전 경보 반영과 메모 기록 실패는 로그만 남깁니다.

        Raises:
            NotFoundError: 패닉 이벤트 없음
            PermissionDeniedError: 작성자/확인된 비상 연락처/모더레이터가 아님
        """
        before = await self.store.get_panic_event(panic_id)
        panic = await self.status_service.update_status(
            EntityRef(kind="panic_event", id=panic_id), new_status, acting_user_id
        )
        changed = before is None or panic_status(before) != panic_status(panic)

        start, end = cascade_bounds(panic)
        try:
            linked = await self.store.find_linked_safety_alerts(panic.user_id, start, end)
        except NeighborWatchError as e:
            log.error(f"연결된 안전 경보 조회 실패 panic:{panic_id} error:{e}")
            return panic

        for alert in linked:
            if alert.status == new_status:
                continue
            changed = True
            try:
                await self.status_service.apply_safety_alert_status(alert, new_status, acting_user_id)
            except NeighborWatchError as e:
                log.error(f"연결된 안전 경보 반영 실패 alert:{alert.id} error:{e}")

        if note and linked and changed:
            await self._record_note(linked[0].id, new_status, acting_user_id, note)
        elif note and not changed:
            log.debug(f"변경 없음, 메모 생략 panic:{panic_id} status:{new_status}")

        log.info(f"패닉 상태 함수 완료 panic:{panic_id} status:{new_status} linked:{len(linked)}")
        return panic

    async def _record_note(self, alert_id: str, new_status: str,
                           acting_user_id: str, note: str) -> None:
        try:
            profile = await self.store.get_profile(acting_user_id)
            name = (profile.full_name if profile else None) or "User"
            await self.store.insert_alert_response({
                "alert_id": alert_id,
                "user_id": acting_user_id,
                "response_type": "status_update",
                "comment": f"Status updated to {new_status.replace('_', ' ')} by {name}: {note}",
            })
        except NeighborWatchError as e:
            log.error(f"상태 메모 기록 실패 alert:{alert_id} error:{e}")
