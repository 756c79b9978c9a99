"""
Supabase edge function adapters for NeighborWatch.
"""

from typing import Any, Dict, Optional

from pydantic import ValidationError

from neighborwatch.adapters.supabase.client import SupabaseClient
from neighborwatch.core.errors import DependencyError
from neighborwatch.core.models import PanicEvent
from neighborwatch.observability.logging_setup import get_logger

log = get_logger("neighborwatch.supabase.functions")

DELIVERY_FUNCTION = "emergency-alert"
STATUS_FUNCTION = "update-panic-alert-status"


class SupabaseDelivery:
    """SMS/푸시 발송 엣지 함수"""

    def __init__(self, client: SupabaseClient, function: str = DELIVERY_FUNCTION):
        self.client = client
        self.function = function

    async def dispatch_panic(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.client.invoke(self.function, payload)
        if not isinstance(result, dict) or not result.get("success"):
            raise DependencyError(f"{self.function} reported failure: {result}")
        log.info(f"발송 함수 완료 panic:{payload.get('panic_alert_id')} "
                 f"contacts:{result.get('contacts_notified', 0)}")
        return result


class SupabaseStatusFunction:
    """패닉 상태 변경 엣지 함수"""

    def __init__(self, client: SupabaseClient, function: str = STATUS_FUNCTION):
        self.client = client
        self.function = function

    async def update_panic_status(self, panic_id: str, new_status: str,
                                  acting_user_id: str,
                                  note: Optional[str] = None, *,
                                  access_token: Optional[str] = None) -> PanicEvent:
        """
        패닉 상태 함수를 호출합니다. 함수는 세션 토큰으로 사용자를 식별하므로
        서버 키가 아닌 호출 사용자의 토큰을 전달해야 합니다.

        Raises:
            PermissionDeniedError: 토큰이 거부됨 (401/403)
            DependencyError: 함수 실패 또는 잘못된 응답
        """
        payload: Dict[str, Any] = {"panic_alert_id": panic_id, "new_status": new_status}
        if note:
            payload["update_note"] = note
        result = await self.client.invoke(self.function, payload, access_token=access_token)
        if not isinstance(result, dict) or not result.get("success"):
            raise DependencyError(f"{self.function} reported failure: {result}")
        try:
            panic = PanicEvent.model_validate(result.get("panic_alert") or {})
        except ValidationError as e:
            raise DependencyError(f"{self.function} returned an invalid panic alert: {e}",
                                  transient=False) from e
        log.info(f"패닉 상태 함수 완료 panic:{panic_id} status:{new_status} by:{acting_user_id}")
        return panic
