"""
Edge function port interfaces.

This module defines the protocols for the out-of-band delivery
function and the panic status-update function.
"""

from typing import Any, Dict, Optional, Protocol

from neighborwatch.core.models import AlertStatus, PanicEvent


class DeliveryPort(Protocol):
    """SMS/푸시/이메일 발송 함수 포트"""

    async def dispatch_panic(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        패닉 컨텍스트를 발송 함수에 전달합니다.

        Args:
            payload: panic_alert_id, situation_type, location, user_name
        """
        ...


class StatusFunctionPort(Protocol):
    """패닉 상태 변경 함수 포트"""

    async def update_panic_status(self, panic_id: str, new_status: AlertStatus,
                                  acting_user_id: str,
                                  note: Optional[str] = None, *,
                                  access_token: Optional[str] = None) -> PanicEvent:
        """
        패닉 이벤트 상태를 변경하고 연결된 안전 경보에 반영합니다.

        Args:
            access_token: 호출 사용자 세션 토큰 (원격 함수의 사용자 식별용)

        Raises:
            NeighborWatchError: 실패 시
        """
        ...
