"""
Manual incident reporting for NeighborWatch.
"""

from typing import List, get_args

from neighborwatch.core.errors import ValidationFailedError
from neighborwatch.core.models import AlertType, IncidentReport, SafetyAlert, Severity
from neighborwatch.observability.logging_setup import get_logger
from neighborwatch.ports.store import AlertStorePort

log = get_logger("neighborwatch.incident")

ALERT_TYPES: List[str] = list(get_args(AlertType))
SEVERITIES: List[str] = list(get_args(Severity))


def validate_report(report: IncidentReport) -> None:
    """
    신고 입력을 검증합니다. 저장 전에 호출됩니다.

    Raises:
        ValidationFailedError: 누락되거나 잘못된 필드
    """
    if not report.title.strip():
        raise ValidationFailedError("Please enter a title for the incident.", field="title")
    if not report.description.strip():
        raise ValidationFailedError("Please describe what happened.", field="description")
    if report.alert_type not in ALERT_TYPES:
        raise ValidationFailedError("Please choose an incident type.", field="alert_type")
    if report.severity not in SEVERITIES:
        raise ValidationFailedError("Please choose a severity level.", field="severity")


class IncidentReporter:
    """수동 사건 신고"""

    def __init__(self, store: AlertStorePort):
        self.store = store

    async def report_incident(self, user_id: str, report: IncidentReport) -> SafetyAlert:
        validate_report(report)
        alert = await self.store.insert_safety_alert({
            "user_id": user_id,
            "title": report.title.strip(),
            "description": report.description.strip(),
            "alert_type": report.alert_type,
            "severity": report.severity,
            "status": "active",
            "latitude": report.latitude,
            "longitude": report.longitude,
            "address": report.address,
            "is_verified": False,
        })
        log.info(f"사건 신고 생성 id:{alert.id} type:{alert.alert_type} severity:{alert.severity}")
        return alert
