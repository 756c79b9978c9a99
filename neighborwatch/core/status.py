"""
Alert status rules for NeighborWatch.

This module contains pure functions that validate status values,
describe the allowed transitions and compute the field changes a
status update writes for each entity kind.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, get_args

from .errors import ValidationFailedError
from .models import AlertStatus, PanicEvent, SafetyAlert

ALERT_STATUSES: List[str] = list(get_args(AlertStatus))

# 상태 전이는 제한하지 않음: 모든 상태에서 모든 상태로 이동 가능
ALLOWED_TRANSITIONS: Dict[str, List[str]] = {
    status: [s for s in ALERT_STATUSES if s != status] for status in ALERT_STATUSES
}


def validate_status(value: str) -> AlertStatus:
    """
    상태 값을 검증합니다.

    Raises:
        ValidationFailedError: 표현할 수 없는 상태 값
    """
    if value not in ALERT_STATUSES:
        raise ValidationFailedError(
            f"Unknown status '{value}'. Expected one of: {', '.join(ALERT_STATUSES)}",
            field="status",
        )
    return value  # type: ignore[return-value]


def is_valid_transition(from_status: str, to_status: str) -> bool:
    """상태 전이가 허용되는지 확인합니다. 같은 상태는 항상 허용(no-op)."""
    if from_status not in ALERT_STATUSES or to_status not in ALERT_STATUSES:
        return False
    if from_status == to_status:
        return True
    return to_status in ALLOWED_TRANSITIONS[from_status]


def validate_transition(from_status: str, to_status: str) -> AlertStatus:
    validate_status(to_status)
    if not is_valid_transition(from_status, to_status):
        raise ValidationFailedError(
            f"Invalid status transition: {from_status} -> {to_status}. "
            f"Allowed: {ALLOWED_TRANSITIONS.get(from_status, [])}",
            field="status",
        )
    return to_status  # type: ignore[return-value]


def panic_status(panic: PanicEvent) -> AlertStatus:
    """패닉 이벤트의 파생 상태 (해결 여부만 저장됨)"""
    return "resolved" if panic.is_resolved else "active"


def safety_alert_changes(alert: SafetyAlert, new_status: AlertStatus,
                         acting_user_id: str, now: datetime) -> Optional[Dict[str, Any]]:
    """
    안전 경보 상태 변경 시 기록할 필드를 계산합니다.

    Args:
        alert: 현재 안전 경보
        new_status: 새 상태
        acting_user_id: 변경하는 사용자
        now: 현재 시각

    Returns:
        변경 필드 딕셔너리, 변경이 없으면 None
    """
    if alert.status == new_status:
        return None

    changes: Dict[str, Any] = {"status": new_status, "updated_at": now}

    # resolved로 진입할 때만 검증 정보 기록 (이후 지우지 않음)
    if new_status == "resolved" and alert.status != "resolved":
        changes["verified_at"] = now
        changes["verified_by"] = acting_user_id
        changes["is_verified"] = True

    return changes


def panic_changes(panic: PanicEvent, new_status: AlertStatus,
                  acting_user_id: str, now: datetime) -> Optional[Dict[str, Any]]:
    """
    패닉 이벤트 상태 변경 시 기록할 필드를 계산합니다.

    Returns:
        변경 필드 딕셔너리, 저장 상태가 같으면 None
    """
    resolving = new_status == "resolved"
    if panic.is_resolved == resolving:
        return None

    if resolving:
        return {
            "is_resolved": True,
            "resolved_at": now,
            "resolved_by": acting_user_id,
            "updated_at": now,
        }
    return {
        "is_resolved": False,
        "resolved_at": None,
        "resolved_by": None,
        "updated_at": now,
    }
