"""
Supabase-backed alert store for NeighborWatch.

Implements the alert store port over the PostgREST table API.
Every row is validated into a domain model before it is returned.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from neighborwatch.adapters.supabase.client import SupabaseClient
from neighborwatch.core.errors import DependencyError, NotFoundError
from neighborwatch.core.models import (
    AlertFilters, AlertResponse, EmergencyContact, Notification,
    PanicEvent, Profile, SafetyAlert,
)
from neighborwatch.observability.logging_setup import get_logger

log = get_logger("neighborwatch.supabase.store")

M = TypeVar("M", bound=BaseModel)

MODERATOR_ROLES = ("moderator", "super_admin", "admin", "manager")

# 작성자 프로필 조인
ALERT_SELECT = "*,author:profiles!safety_alerts_user_id_fkey(full_name,avatar_url,city,state)"


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _jsonable(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _iso(v) if isinstance(v, datetime) else v for k, v in data.items()}


def _parse(model: Type[M], row: Dict[str, Any]) -> M:
    try:
        return model.model_validate(row)
    except ValidationError as e:
        raise DependencyError(f"invalid {model.__name__} row: {e}", transient=False) from e


def _first(model: Type[M], rows: List[Dict[str, Any]]) -> Optional[M]:
    return _parse(model, rows[0]) if rows else None


class SupabaseAlertStore:
    """Supabase 테이블 기반 경보 저장소"""

    def __init__(self, client: SupabaseClient):
        self.client = client

    # ---- 패닉 이벤트 ----

    async def get_panic_event(self, panic_id: str) -> Optional[PanicEvent]:
        rows = await self.client.select("panic_alerts", {"id": f"eq.{panic_id}", "select": "*"})
        return _first(PanicEvent, rows)

    async def recent_panic_events(self, user_id: str, limit: int) -> List[PanicEvent]:
        rows = await self.client.select("panic_alerts", {
            "user_id": f"eq.{user_id}",
            "select": "*",
            "order": "created_at.desc",
            "limit": str(limit),
        })
        return [_parse(PanicEvent, r) for r in rows]

    async def insert_panic_event(self, data: Dict[str, Any]) -> PanicEvent:
        rows = await self.client.insert("panic_alerts", _jsonable(data))
        if not rows:
            raise DependencyError("panic_alerts insert returned no row", transient=False)
        return _parse(PanicEvent, rows[0])

    async def update_panic_event(self, panic_id: str, changes: Dict[str, Any]) -> PanicEvent:
        rows = await self.client.update("panic_alerts", {"id": f"eq.{panic_id}"}, _jsonable(changes))
        if not rows:
            raise NotFoundError("panic_event", panic_id)
        return _parse(PanicEvent, rows[0])

    # ---- 안전 경보 ----

    async def get_safety_alert(self, alert_id: str) -> Optional[SafetyAlert]:
        rows = await self.client.select("safety_alerts", {"id": f"eq.{alert_id}", "select": ALERT_SELECT})
        return _first(SafetyAlert, rows)

    async def list_safety_alerts(self, filters: AlertFilters, limit: int = 50) -> List[SafetyAlert]:
        params = {"select": ALERT_SELECT, "order": "created_at.desc", "limit": str(limit)}
        for name in ("severity", "alert_type", "status"):
            value = getattr(filters, name)
            if value != "all":
                params[name] = f"eq.{value}"
        rows = await self.client.select("safety_alerts", params)
        return [_parse(SafetyAlert, r) for r in rows]

    async def insert_safety_alert(self, data: Dict[str, Any]) -> SafetyAlert:
        rows = await self.client.insert("safety_alerts", _jsonable(data))
        if not rows:
            raise DependencyError("safety_alerts insert returned no row", transient=False)
        return _parse(SafetyAlert, rows[0])

    async def update_safety_alert(self, alert_id: str, changes: Dict[str, Any]) -> SafetyAlert:
        rows = await self.client.update("safety_alerts", {"id": f"eq.{alert_id}"}, _jsonable(changes))
        if not rows:
            raise NotFoundError("safety_alert", alert_id)
        return _parse(SafetyAlert, rows[0])

    async def find_linked_safety_alerts(self, user_id: str, created_from: datetime,
                                        created_to: datetime) -> List[SafetyAlert]:
        rows = await self.client.select("safety_alerts", [
            ("select", "*"),
            ("user_id", f"eq.{user_id}"),
            ("severity", "eq.critical"),
            ("created_at", f"gte.{_iso(created_from)}"),
            ("created_at", f"lte.{_iso(created_to)}"),
        ])
        return [_parse(SafetyAlert, r) for r in rows]

    # ---- 응답/알림 ----

    async def insert_alert_response(self, data: Dict[str, Any]) -> AlertResponse:
        rows = await self.client.insert("alert_responses", _jsonable(data))
        if not rows:
            raise DependencyError("alert_responses insert returned no row", transient=False)
        return _parse(AlertResponse, rows[0])

    async def list_alert_responses(self, alert_id: str) -> List[AlertResponse]:
        rows = await self.client.select("alert_responses", {
            "alert_id": f"eq.{alert_id}", "select": "*", "order": "created_at.asc",
        })
        return [_parse(AlertResponse, r) for r in rows]

    async def insert_notifications(self, rows: List[Dict[str, Any]]) -> List[Notification]:
        created = await self.client.insert("notifications", [_jsonable(r) for r in rows])
        return [_parse(Notification, r) for r in created]

    async def list_notifications(self, panic_event_id: str) -> List[Notification]:
        rows = await self.client.select("notifications", {
            "panic_event_id": f"eq.{panic_event_id}", "select": "*",
        })
        return [_parse(Notification, r) for r in rows]

    # ---- 연락처/프로필/권한 ----

    async def list_emergency_contacts(self, owner_user_id: str) -> List[EmergencyContact]:
        rows = await self.client.select("emergency_contacts", {
            "user_id": f"eq.{owner_user_id}", "select": "*",
        })
        for r in rows:
            r.setdefault("owner_user_id", r.get("user_id"))
        return [_parse(EmergencyContact, r) for r in rows]

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        rows = await self.client.select("profiles", {"user_id": f"eq.{user_id}", "select": "*"})
        return _first(Profile, rows)

    async def find_profile_by_phone(self, phone: str) -> Optional[Profile]:
        rows = await self.client.select("profiles", {
            "phone": f"eq.{phone}", "select": "*", "limit": "1",
        })
        return _first(Profile, rows)

    async def list_located_profiles(self) -> List[Profile]:
        rows = await self.client.select("profiles", {
            "select": "user_id,full_name,latitude,longitude",
            "latitude": "not.is.null",
            "longitude": "not.is.null",
        })
        return [_parse(Profile, r) for r in rows]

    async def is_moderator(self, user_id: str) -> bool:
        rows = await self.client.select("user_roles", {
            "user_id": f"eq.{user_id}",
            "role": f"in.({','.join(MODERATOR_ROLES)})",
            "select": "role",
            "limit": "1",
        })
        return bool(rows)
