"""
Alert store port interface.

This module defines the protocol for the table-oriented persistence
collaborator. Implementations must return validated domain models,
never raw rows.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from neighborwatch.core.models import (
    AlertFilters, AlertResponse, EmergencyContact, Notification,
    PanicEvent, Profile, SafetyAlert,
)


class AlertStorePort(Protocol):
    """경보 저장소 포트 인터페이스"""

    async def get_panic_event(self, panic_id: str) -> Optional[PanicEvent]:
        ...

    async def recent_panic_events(self, user_id: str, limit: int) -> List[PanicEvent]:
        """
        사용자의 최근 패닉 이벤트를 최신순으로 조회합니다.

        Args:
            user_id: 소유 사용자
            limit: 최대 개수
        """
        ...

    async def insert_panic_event(self, data: Dict[str, Any]) -> PanicEvent:
        ...

    async def update_panic_event(self, panic_id: str, changes: Dict[str, Any]) -> PanicEvent:
        ...

    async def get_safety_alert(self, alert_id: str) -> Optional[SafetyAlert]:
        """작성자 프로필을 조인하여 안전 경보를 조회합니다."""
        ...

    async def list_safety_alerts(self, filters: AlertFilters, limit: int = 50) -> List[SafetyAlert]:
        """필터를 적용하여 최신순으로 안전 경보를 조회합니다."""
        ...

    async def insert_safety_alert(self, data: Dict[str, Any]) -> SafetyAlert:
        ...

    async def update_safety_alert(self, alert_id: str, changes: Dict[str, Any]) -> SafetyAlert:
        ...

    async def find_linked_safety_alerts(self, user_id: str, created_from: datetime,
                                        created_to: datetime) -> List[SafetyAlert]:
        """패닉 이벤트와 함께 생성된 critical 안전 경보를 조회합니다."""
        ...

    async def insert_alert_response(self, data: Dict[str, Any]) -> AlertResponse:
        ...

    async def list_alert_responses(self, alert_id: str) -> List[AlertResponse]:
        ...

    async def list_emergency_contacts(self, owner_user_id: str) -> List[EmergencyContact]:
        ...

    async def insert_notifications(self, rows: List[Dict[str, Any]]) -> List[Notification]:
        ...

    async def list_notifications(self, panic_event_id: str) -> List[Notification]:
        ...

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        ...

    async def find_profile_by_phone(self, phone: str) -> Optional[Profile]:
        ...

    async def list_located_profiles(self) -> List[Profile]:
        """위치 정보가 있는 프로필 목록"""
        ...

    async def is_moderator(self, user_id: str) -> bool:
        ...
