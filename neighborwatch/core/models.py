"""
Core domain models for NeighborWatch.

This module defines the alert store entities using Pydantic v2.
Rows coming back from any persistence adapter are validated into
these models before they reach the orchestrators.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

SituationType = Literal[
    "medical_emergency", "fire", "break_in", "assault", "accident",
    "natural_disaster", "suspicious_activity", "domestic_violence",
    "kidnapping", "other",
]

AlertType = Literal[
    "break_in", "theft", "accident", "suspicious_activity", "harassment",
    "fire", "flood", "power_outage", "road_closure", "other",
]

# 심각도 (낮음 -> 높음)
Severity = Literal["low", "medium", "high", "critical"]

AlertStatus = Literal["active", "investigating", "resolved", "false_alarm"]

IN_APP = "in_app"

EntityKind = Literal["panic_event", "safety_alert"]


class _Row(BaseModel):
    """영속 계층 행 공통 설정"""
    model_config = ConfigDict(extra="ignore")


class AuthorProfile(_Row):
    """조인된 작성자 프로필"""
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class Profile(_Row):
    """사용자 프로필 모델"""
    user_id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class PanicEvent(_Row):
    """개인 긴급(패닉) 이벤트 모델"""
    id: str
    user_id: str
    situation_type: SituationType = "other"
    message: Optional[str] = None
    latitude: float
    longitude: float
    address: Optional[str] = None
    is_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_resolution(self) -> "PanicEvent":
        if self.is_resolved != (self.resolved_at is not None):
            raise ValueError("is_resolved must be true exactly when resolved_at is set")
        if self.resolved_by is not None and not self.is_resolved:
            raise ValueError("resolved_by requires is_resolved")
        return self


class SafetyAlert(_Row):
    """커뮤니티 공개 안전 경보 모델"""
    id: str
    user_id: str
    title: str
    description: str
    alert_type: AlertType = "other"
    severity: Severity
    status: AlertStatus = "active"
    latitude: float
    longitude: float
    address: Optional[str] = None
    is_verified: bool = False
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    author: Optional[AuthorProfile] = None


class AlertResponse(_Row):
    """경보 응답(상태 메모) 모델, 추가 전용"""
    id: str
    alert_id: str
    user_id: str
    response_type: str
    comment: str
    created_at: datetime


class Notification(_Row):
    """인앱 알림 모델"""
    id: str
    recipient_id: str
    panic_event_id: str
    notification_type: str = "panic_alert"
    is_read: bool = False
    created_at: datetime


class EmergencyContact(_Row):
    """비상 연락처 모델"""
    id: str
    owner_user_id: str
    contact_name: str
    phone_number: str
    preferred_methods: List[str] = Field(default_factory=lambda: ["in_app"])
    is_confirmed: bool = False


class EntityRef(BaseModel):
    """상태 변경 대상 참조"""
    kind: EntityKind
    id: str


class AlertFilters(BaseModel):
    """목록 조회 필터 ("all"은 필터 없음)"""
    severity: str = "all"
    alert_type: str = "all"
    status: str = "all"


class Position(BaseModel):
    """위치 좌표"""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class CurrentUser(BaseModel):
    """인증된 사용자"""
    id: str
    email: Optional[str] = None
    access_token: Optional[str] = None


class IncidentReport(BaseModel):
    """수동 사건 신고 입력"""
    title: str = ""
    description: str = ""
    alert_type: Optional[str] = None
    severity: Optional[str] = None
    latitude: float
    longitude: float
    address: Optional[str] = None


ChangeType = Literal["INSERT", "UPDATE", "DELETE"]


class ChangeEvent(BaseModel):
    """실시간 변경 이벤트"""
    table: str
    event_type: ChangeType
    record: Dict[str, Any] = Field(default_factory=dict)
    old_record: Optional[Dict[str, Any]] = None
    commit_timestamp: Optional[datetime] = None
