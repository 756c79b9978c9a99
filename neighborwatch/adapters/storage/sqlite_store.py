"""
SQLite-based alert store for NeighborWatch.

This module implements the alert store port on top of aiosqlite.
It is used for local development, tests and single-node installs,
and publishes every committed write to an in-process change feed.
"""

import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import aiosqlite
from pydantic import BaseModel, ValidationError

from neighborwatch.adapters.storage.local_feed import LocalChangeFeed
from neighborwatch.core.errors import DependencyError, NotFoundError
from neighborwatch.core.models import (
    AlertFilters, AlertResponse, EmergencyContact, Notification,
    PanicEvent, Profile, SafetyAlert,
)
from neighborwatch.observability.logging_setup import get_logger

log = get_logger("neighborwatch.store")

M = TypeVar("M", bound=BaseModel)

MODERATOR_ROLES = ("moderator", "super_admin", "admin", "manager")

# SQLite 스키마 (시각은 UTC ISO 문자열, 마이크로초 고정)
SCHEMA = """
CREATE TABLE IF NOT EXISTS profiles (
    user_id TEXT PRIMARY KEY,
    full_name TEXT,
    phone TEXT,
    avatar_url TEXT,
    city TEXT,
    state TEXT,
    latitude REAL,
    longitude REAL
);
CREATE INDEX IF NOT EXISTS idx_profiles_phone ON profiles(phone);

CREATE TABLE IF NOT EXISTS user_roles (
    user_id TEXT NOT NULL,
    role TEXT NOT NULL,
    PRIMARY KEY (user_id, role)
);

CREATE TABLE IF NOT EXISTS panic_alerts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    situation_type TEXT NOT NULL,
    message TEXT,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    address TEXT,
    is_resolved INTEGER NOT NULL DEFAULT 0,
    resolved_at TEXT,
    resolved_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_panic_user_created ON panic_alerts(user_id, created_at);

CREATE TABLE IF NOT EXISTS safety_alerts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    alert_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    address TEXT,
    is_verified INTEGER NOT NULL DEFAULT 0,
    verified_at TEXT,
    verified_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_safety_user_created ON safety_alerts(user_id, created_at);

CREATE TABLE IF NOT EXISTS alert_responses (
    id TEXT PRIMARY KEY,
    alert_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    response_type TEXT NOT NULL,
    comment TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    recipient_id TEXT NOT NULL,
    panic_event_id TEXT NOT NULL,
    notification_type TEXT NOT NULL,
    is_read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS emergency_contacts (
    id TEXT PRIMARY KEY,
    owner_user_id TEXT NOT NULL,
    contact_name TEXT NOT NULL,
    phone_number TEXT NOT NULL,
    preferred_methods TEXT NOT NULL DEFAULT '["in_app"]',
    is_confirmed INTEGER NOT NULL DEFAULT 0
);
"""

_AUTHOR_COLUMNS = "p.full_name AS author_full_name, p.avatar_url AS author_avatar_url, " \
                  "p.city AS author_city, p.state AS author_state"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: Any) -> Any:
    """datetime을 정렬 가능한 UTC 문자열로 변환"""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    return value


def _encode(data: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for k, v in data.items():
        if isinstance(v, (list, dict)):
            out[k] = json.dumps(v)
        elif isinstance(v, bool):
            out[k] = int(v)
        else:
            out[k] = _ts(v)
    return out


def _parse(model: Type[M], row: Dict[str, Any]) -> M:
    """행을 모델로 검증합니다. 실패 시 DependencyError."""
    try:
        return model.model_validate(row)
    except ValidationError as e:
        raise DependencyError(f"invalid {model.__name__} row: {e}", transient=False) from e


def _alert_row(row: aiosqlite.Row) -> Dict[str, Any]:
    data = dict(row)
    author = {
        "full_name": data.pop("author_full_name", None),
        "avatar_url": data.pop("author_avatar_url", None),
        "city": data.pop("author_city", None),
        "state": data.pop("author_state", None),
    }
    if any(v is not None for v in author.values()):
        data["author"] = author
    return data


class SQLiteAlertStore:
    """SQLite 기반 경보 저장소"""

    def __init__(self, path: str, *, feed: Optional[LocalChangeFeed] = None,
                 clock: Callable[[], datetime] = _utcnow):
        """
        초기화합니다.

        Args:
            path: SQLite 데이터베이스 파일 경로
            feed: 커밋된 변경을 전달할 변경 피드
            clock: 생성/수정 시각 제공 함수
        """
        self.path = path
        self.feed = feed or LocalChangeFeed()
        self.clock = clock
        log.info(f"SQLiteAlertStore 초기화: {path}")

    async def init(self) -> None:
        """데이터베이스를 초기화합니다."""
        async with self._db() as db:
            await db.executescript(SCHEMA)
            await db.commit()
        log.info("SQLiteAlertStore 스키마 초기화 완료")

    @asynccontextmanager
    async def _db(self):
        try:
            async with aiosqlite.connect(self.path) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as e:
            log.error(f"SQLite 오류: {e}")
            raise DependencyError(f"sqlite error: {e}") from e

    async def _fetch_all(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        async with self._db() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]

    async def _insert(self, table: str, data: Dict[str, Any],
                      stamps: tuple = ("created_at", "updated_at")) -> Dict[str, Any]:
        row = dict(data)
        row.setdefault("id", str(uuid.uuid4()))
        now = row.get("created_at") or self.clock()
        for column in stamps:
            row.setdefault(column, now)
        encoded = _encode(row)
        cols = ", ".join(encoded)
        marks = ", ".join("?" for _ in encoded)
        async with self._db() as db:
            await db.execute(f"INSERT INTO {table} ({cols}) VALUES ({marks})", tuple(encoded.values()))
            await db.commit()
        return encoded

    async def _update(self, table: str, entity_id: str, changes: Dict[str, Any],
                      kind: str) -> Dict[str, Any]:
        encoded = _encode(changes)
        sets = ", ".join(f"{k} = ?" for k in encoded)
        async with self._db() as db:
            cursor = await db.execute(
                f"UPDATE {table} SET {sets} WHERE id = ?",
                (*encoded.values(), entity_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(kind, entity_id)
            await db.commit()
            cursor = await db.execute(f"SELECT * FROM {table} WHERE id = ?", (entity_id,))
            row = await cursor.fetchone()
        return dict(row)

    def _publish(self, table: str, event_type: str, row: Dict[str, Any],
                 old: Optional[Dict[str, Any]] = None) -> None:
        self.feed.publish(table, event_type, row, old)

    # ---- 패닉 이벤트 ----

    async def get_panic_event(self, panic_id: str) -> Optional[PanicEvent]:
        rows = await self._fetch_all("SELECT * FROM panic_alerts WHERE id = ?", (panic_id,))
        return _parse(PanicEvent, rows[0]) if rows else None

    async def recent_panic_events(self, user_id: str, limit: int) -> List[PanicEvent]:
        rows = await self._fetch_all(
            "SELECT * FROM panic_alerts WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
            (user_id, limit),
        )
        return [_parse(PanicEvent, r) for r in rows]

    async def insert_panic_event(self, data: Dict[str, Any]) -> PanicEvent:
        row = await self._insert("panic_alerts", data)
        panic = await self.get_panic_event(row["id"])
        self._publish("panic_alerts", "INSERT", panic.model_dump(mode="json"))
        log.info(f"패닉 이벤트 저장 id:{panic.id} user:{panic.user_id}")
        return panic

    async def update_panic_event(self, panic_id: str, changes: Dict[str, Any]) -> PanicEvent:
        row = await self._update("panic_alerts", panic_id, changes, "panic_event")
        panic = _parse(PanicEvent, row)
        self._publish("panic_alerts", "UPDATE", panic.model_dump(mode="json"))
        return panic

    # ---- 안전 경보 ----

    async def get_safety_alert(self, alert_id: str) -> Optional[SafetyAlert]:
        rows = await self._fetch_all(
            f"SELECT a.*, {_AUTHOR_COLUMNS} FROM safety_alerts a "
            "LEFT JOIN profiles p ON p.user_id = a.user_id WHERE a.id = ?",
            (alert_id,),
        )
        return _parse(SafetyAlert, _alert_row(rows[0])) if rows else None

    async def list_safety_alerts(self, filters: AlertFilters, limit: int = 50) -> List[SafetyAlert]:
        where, params = [], []
        for name in ("severity", "alert_type", "status"):
            value = getattr(filters, name)
            if value != "all":
                where.append(f"a.{name} = ?")
                params.append(value)
        clause = f"WHERE {' AND '.join(where)} " if where else ""
        rows = await self._fetch_all(
            f"SELECT a.*, {_AUTHOR_COLUMNS} FROM safety_alerts a "
            f"LEFT JOIN profiles p ON p.user_id = a.user_id {clause}"
            "ORDER BY a.created_at DESC LIMIT ?",
            (*params, limit),
        )
        return [_parse(SafetyAlert, _alert_row(r)) for r in rows]

    async def insert_safety_alert(self, data: Dict[str, Any]) -> SafetyAlert:
        row = await self._insert("safety_alerts", data)
        alert = await self.get_safety_alert(row["id"])
        self._publish("safety_alerts", "INSERT", alert.model_dump(mode="json", exclude={"author"}))
        log.info(f"안전 경보 저장 id:{alert.id} severity:{alert.severity}")
        return alert

    async def update_safety_alert(self, alert_id: str, changes: Dict[str, Any]) -> SafetyAlert:
        await self._update("safety_alerts", alert_id, changes, "safety_alert")
        alert = await self.get_safety_alert(alert_id)
        self._publish("safety_alerts", "UPDATE", alert.model_dump(mode="json", exclude={"author"}))
        return alert

    async def find_linked_safety_alerts(self, user_id: str, created_from: datetime,
                                        created_to: datetime) -> List[SafetyAlert]:
        rows = await self._fetch_all(
            "SELECT * FROM safety_alerts WHERE user_id = ? AND severity = 'critical' "
            "AND created_at >= ? AND created_at <= ? ORDER BY created_at DESC",
            (user_id, _ts(created_from), _ts(created_to)),
        )
        return [_parse(SafetyAlert, r) for r in rows]

    # ---- 응답/알림 ----

    async def insert_alert_response(self, data: Dict[str, Any]) -> AlertResponse:
        row = await self._insert("alert_responses", data, stamps=("created_at",))
        response = _parse(AlertResponse, row)
        self._publish("alert_responses", "INSERT", response.model_dump(mode="json"))
        return response

    async def list_alert_responses(self, alert_id: str) -> List[AlertResponse]:
        rows = await self._fetch_all(
            "SELECT * FROM alert_responses WHERE alert_id = ? ORDER BY created_at", (alert_id,)
        )
        return [_parse(AlertResponse, r) for r in rows]

    async def insert_notifications(self, rows: List[Dict[str, Any]]) -> List[Notification]:
        created = []
        for data in rows:
            row = await self._insert("notifications", {"is_read": False, **data}, stamps=("created_at",))
            created.append(_parse(Notification, row))
        return created

    async def list_notifications(self, panic_event_id: str) -> List[Notification]:
        rows = await self._fetch_all(
            "SELECT * FROM notifications WHERE panic_event_id = ? ORDER BY created_at",
            (panic_event_id,),
        )
        return [_parse(Notification, r) for r in rows]

    # ---- 연락처/프로필/권한 ----

    async def list_emergency_contacts(self, owner_user_id: str) -> List[EmergencyContact]:
        rows = await self._fetch_all(
            "SELECT * FROM emergency_contacts WHERE owner_user_id = ?", (owner_user_id,)
        )
        for r in rows:
            r["preferred_methods"] = json.loads(r["preferred_methods"] or "[]")
        return [_parse(EmergencyContact, r) for r in rows]

    async def add_emergency_contact(self, data: Dict[str, Any]) -> EmergencyContact:
        row = await self._insert("emergency_contacts", data, stamps=())
        row["preferred_methods"] = json.loads(row.get("preferred_methods", '["in_app"]'))
        return _parse(EmergencyContact, row)

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        rows = await self._fetch_all("SELECT * FROM profiles WHERE user_id = ?", (user_id,))
        return _parse(Profile, rows[0]) if rows else None

    async def find_profile_by_phone(self, phone: str) -> Optional[Profile]:
        rows = await self._fetch_all("SELECT * FROM profiles WHERE phone = ? LIMIT 1", (phone,))
        return _parse(Profile, rows[0]) if rows else None

    async def list_located_profiles(self) -> List[Profile]:
        rows = await self._fetch_all(
            "SELECT * FROM profiles WHERE latitude IS NOT NULL AND longitude IS NOT NULL"
        )
        return [_parse(Profile, r) for r in rows]

    async def upsert_profile(self, profile: Profile) -> Profile:
        data = _encode(profile.model_dump())
        cols = ", ".join(data)
        marks = ", ".join("?" for _ in data)
        updates = ", ".join(f"{k} = excluded.{k}" for k in data if k != "user_id")
        async with self._db() as db:
            await db.execute(
                f"INSERT INTO profiles ({cols}) VALUES ({marks}) "
                f"ON CONFLICT(user_id) DO UPDATE SET {updates}",
                tuple(data.values()),
            )
            await db.commit()
        return profile

    async def grant_role(self, user_id: str, role: str) -> None:
        async with self._db() as db:
            await db.execute(
                "INSERT OR IGNORE INTO user_roles (user_id, role) VALUES (?, ?)", (user_id, role)
            )
            await db.commit()

    async def is_moderator(self, user_id: str) -> bool:
        marks = ", ".join("?" for _ in MODERATOR_ROLES)
        rows = await self._fetch_all(
            f"SELECT 1 FROM user_roles WHERE user_id = ? AND role IN ({marks}) LIMIT 1",
            (user_id, *MODERATOR_ROLES),
        )
        return bool(rows)
