"""
Correlation resolver for NeighborWatch.

Routes a status change requested on a safety alert either through the
panic status function (when the alert was created by a panic event)
or directly onto the safety alert.
"""

from datetime import timedelta
from typing import Literal, Optional

from pydantic import BaseModel

from neighborwatch.core.correlation import CORRELATION_WINDOW, PANIC_LOOKBACK, find_correlated_panic
from neighborwatch.core.errors import NeighborWatchError, NotFoundError, PermissionDeniedError
from neighborwatch.core.models import SafetyAlert
from neighborwatch.core.status import validate_transition
from neighborwatch.observability import metrics
from neighborwatch.observability.logging_setup import get_logger
from neighborwatch.orchestrators.status_update import StatusUpdateService
from neighborwatch.ports.dispatch import StatusFunctionPort
from neighborwatch.ports.store import AlertStorePort

log = get_logger("neighborwatch.correlation")


class ResolutionResult(BaseModel):
    """상태 변경 라우팅 결과"""
    entity: SafetyAlert
    path: Literal["panic", "direct"]
    panic_event_id: Optional[str] = None


class CorrelationResolver:
    """안전 경보 상태 변경 라우터"""

    def __init__(self, store: AlertStorePort, status_service: StatusUpdateService,
                 status_function: StatusFunctionPort, *,
                 window: timedelta = CORRELATION_WINDOW,
                 lookback: int = PANIC_LOOKBACK):
        """
        초기화합니다.

        Args:
            store: 경보 저장소
            status_service: 직접 변경 경로에 쓰는 상태 서비스
            status_function: 패닉 상태 변경 함수
            window: 상관 윈도우
            lookback: 조회할 최근 패닉 이벤트 수
        """
        self.store = store
        self.status_service = status_service
        self.status_function = status_function
        self.window = window
        self.lookback = lookback

    async def resolve_and_apply(self, alert_id: str, new_status: str, acting_user_id: str,
                                note: Optional[str] = None, *,
                                access_token: Optional[str] = None) -> ResolutionResult:
        """
        안전 경보 상태 변경을 적절한 경로로 적용합니다.

        연결된 패닉 이벤트가 있으면 상태 함수를 호출하고, 없거나
        실패하면 안전 경보를 직접 변경합니다. 두 경로 사이에
        트랜잭션은 없습니다.

        Args:
            alert_id: 대상 안전 경보 ID
            new_status: 새 상태
            acting_user_id: 변경하는 사용자
            note: 선택 메모
            access_token: 호출 사용자 세션 토큰 (패닉 상태 함수에 전달)

        Returns:
            ResolutionResult

        Raises:
            NotFoundError: 안전 경보 없음
            PermissionDeniedError: 작성자/모더레이터가 아님
            ValidationFailedError: 알 수 없는 상태
        """
        with metrics.resolve_seconds.time():
            alert = await self.store.get_safety_alert(alert_id)
            if alert is None:
                raise NotFoundError("safety_alert", alert_id)
            status = validate_transition(alert.status, new_status)
            if not await self.status_service.can_modify_alert(alert, acting_user_id):
                log.warning(f"안전 경보 변경 권한 없음 alert:{alert_id} actor:{acting_user_id}")
                raise PermissionDeniedError(f"user {acting_user_id} may not modify alert {alert_id}")

            candidates = await self.store.recent_panic_events(alert.user_id, self.lookback)
            panic = find_correlated_panic(alert, candidates, self.window)

            if panic is not None:
                try:
                    await self.status_function.update_panic_status(
                        panic.id, status, acting_user_id, note, access_token=access_token
                    )
                    refreshed = await self.store.get_safety_alert(alert_id)
                    result = ResolutionResult(entity=refreshed or alert, path="panic",
                                              panic_event_id=panic.id)
                    self._record(result, status)
                    return result
                except NeighborWatchError as e:
                    log.warning(f"패닉 경로 실패, 직접 변경으로 폴백 alert:{alert_id} "
                                f"panic:{panic.id} error:{e}")
            else:
                log.debug(f"연결된 패닉 이벤트 없음 alert:{alert_id} candidates:{len(candidates)}")

            updated = await self.status_service.apply_safety_alert_status(alert, status, acting_user_id)
            if note and note.strip() and alert.status != status:
                await self._record_note(alert_id, status, acting_user_id, note.strip())

            result = ResolutionResult(entity=updated, path="direct",
                                      panic_event_id=panic.id if panic else None)
            self._record(result, status)
            return result

    async def _record_note(self, alert_id: str, status: str, acting_user_id: str, note: str) -> None:
        try:
            await self.store.insert_alert_response({
                "alert_id": alert_id,
                "user_id": acting_user_id,
                "response_type": "status_update",
                "comment": f"Status changed to {status}: {note}",
            })
        except NeighborWatchError as e:
            log.error(f"상태 메모 기록 실패 alert:{alert_id} error:{e}")

    def _record(self, result: ResolutionResult, status: str) -> None:
        metrics.correlation_outcomes.labels(path=result.path).inc()
        log.info(f"상태 변경 적용 alert:{result.entity.id} status:{status} path:{result.path}")
