"""
Panic trigger and fan-out orchestration for NeighborWatch.

This module implements the pipeline that runs when a user presses the
panic button: locate -> reverse geocode -> store the panic event ->
notify emergency contacts (and optionally nearby members) -> hand the
event to the delivery function -> publish the community safety alert.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, get_args

from pydantic import BaseModel, Field

from neighborwatch.common.geo import format_coordinates, within_radius
from neighborwatch.common.tasks import BackgroundTasks
from neighborwatch.core.errors import (
    PARTIAL_DELIVERY_WARNING, DependencyError, GeolocationError,
    NeighborWatchError, ValidationFailedError,
)
from neighborwatch.core.models import (
    IN_APP, AlertType, Notification, PanicEvent, Position, SafetyAlert, SituationType,
)
from neighborwatch.observability import metrics
from neighborwatch.observability.logging_setup import get_logger
from neighborwatch.ports.dispatch import DeliveryPort
from neighborwatch.ports.location import GeocoderPort, GeolocationPort
from neighborwatch.ports.store import AlertStorePort

log = get_logger("neighborwatch.panic")

SITUATION_TYPES: List[str] = list(get_args(SituationType))
ALERT_TYPES: List[str] = list(get_args(AlertType))

# 안전 경보 공개 문구
PANIC_ALERT_TITLE = "Emergency Alert"
PANIC_ALERT_DESCRIPTION = "Someone in your area has requested emergency assistance"

DEFAULT_DISPLAY_NAME = "A neighbor"
GEOLOCATION_TIMEOUT_SEC = 10.0


def alert_type_for(situation_type: str) -> str:
    """상황 유형을 안전 경보 유형으로 매핑 (겹치지 않으면 other)"""
    return situation_type if situation_type in ALERT_TYPES else "other"


class NotificationDispatchResult(BaseModel):
    """팬아웃 결과"""
    safety_alert: SafetyAlert
    notifications: List[Notification] = Field(default_factory=list)
    skipped_contacts: int = 0
    warnings: List[str] = Field(default_factory=list)


class PanicTriggerResult(BaseModel):
    """패닉 트리거 결과"""
    panic_event: PanicEvent
    dispatch: NotificationDispatchResult

    @property
    def warnings(self) -> List[str]:
        return self.dispatch.warnings


class FanoutNotifier:
    """패닉 이벤트 알림 팬아웃"""

    def __init__(self, store: AlertStorePort, delivery: Optional[DeliveryPort],
                 tasks: BackgroundTasks, *,
                 community_radius_km: float = 0.0):
        """
        초기화합니다.

        Args:
            store: 경보 저장소
            delivery: SMS/푸시 발송 함수 (None이면 발송 생략)
            tasks: 백그라운드 태스크 레지스트리
            community_radius_km: 주변 회원 알림 반경 (0이면 끔)
        """
        self.store = store
        self.delivery = delivery
        self.tasks = tasks
        self.community_radius_km = community_radius_km

    async def on_panic_triggered(self, panic: PanicEvent, user_name: str) -> NotificationDispatchResult:
        """
        패닉 이벤트를 비상 연락처와 커뮤니티에 알립니다.

        연락처 조회 실패는 안전 경보 생성을 시도한 뒤에 DependencyError로
        전달됩니다. 알림 생성과 발송 실패는 경고로만 남습니다.

        Args:
            panic: 저장된 패닉 이벤트
            user_name: 트리거한 사용자 표시 이름

        Returns:
            NotificationDispatchResult

        Raises:
            DependencyError: 연락처 조회 실패
            NeighborWatchError: 안전 경보 생성 실패
        """
        warnings: List[str] = []
        notifications: List[Notification] = []
        skipped = 0
        contacts_error: Optional[NeighborWatchError] = None

        try:
            contacts = await self.store.list_emergency_contacts(panic.user_id)
        except NeighborWatchError as e:
            log.error(f"비상 연락처 조회 실패 user:{panic.user_id} error:{e}")
            contacts_error = e
            contacts = []

        recipients: List[str] = []
        for contact in contacts:
            if IN_APP not in contact.preferred_methods:
                continue
            try:
                profile = await self.store.find_profile_by_phone(contact.phone_number)
            except NeighborWatchError as e:
                log.warning(f"연락처 계정 조회 실패 contact:{contact.id} error:{e}")
                metrics.contacts_skipped.labels(reason="lookup_error").inc()
                skipped += 1
                continue
            if profile is None:
                log.info(f"가입하지 않은 연락처 건너뜀 contact:{contact.id}")
                metrics.contacts_skipped.labels(reason="unregistered").inc()
                skipped += 1
                continue
            if profile.user_id not in recipients:
                recipients.append(profile.user_id)

        if recipients:
            created = await self._notify(panic, recipients, "panic_alert")
            if created is None:
                warnings.append(PARTIAL_DELIVERY_WARNING)
            else:
                notifications.extend(created)

        if self.community_radius_km > 0:
            created = await self._notify_community(panic, exclude=set(recipients))
            if created is None:
                warnings.append(PARTIAL_DELIVERY_WARNING)
            else:
                notifications.extend(created)

        if self.delivery is not None:
            self.tasks.spawn(self._dispatch(self._payload(panic, user_name)),
                             name=f"dispatch-{panic.id}")

        # 안전 경보 생성 실패는 호출자에게 전달
        safety_alert = await self.store.insert_safety_alert({
            "user_id": panic.user_id,
            "title": PANIC_ALERT_TITLE,
            "description": PANIC_ALERT_DESCRIPTION,
            "alert_type": alert_type_for(panic.situation_type),
            "severity": "critical",
            "status": "active",
            "latitude": panic.latitude,
            "longitude": panic.longitude,
            "address": panic.address,
            "is_verified": False,
            "created_at": panic.created_at,
        })

        if contacts_error is not None:
            raise DependencyError(
                f"emergency contacts unavailable for panic {panic.id}: {contacts_error}",
                user_message="Your alert was created, but your emergency contacts could not "
                             "be loaded. Please retry or call them directly.",
            ) from contacts_error

        log.info(f"팬아웃 완료 panic:{panic.id} notified:{len(notifications)} skipped:{skipped}")
        return NotificationDispatchResult(
            safety_alert=safety_alert,
            notifications=notifications,
            skipped_contacts=skipped,
            warnings=list(dict.fromkeys(warnings)),
        )

    async def _notify(self, panic: PanicEvent, recipients: List[str],
                      notification_type: str) -> Optional[List[Notification]]:
        rows = [{
            "recipient_id": rid,
            "panic_event_id": panic.id,
            "notification_type": notification_type,
            "is_read": False,
        } for rid in recipients]
        try:
            created = await self.store.insert_notifications(rows)
        except NeighborWatchError as e:
            log.error(f"알림 생성 실패 panic:{panic.id} type:{notification_type} error:{e}")
            return None
        metrics.notifications_created.labels(notification_type=notification_type).inc(len(created))
        return created

    async def _notify_community(self, panic: PanicEvent, exclude: set) -> Optional[List[Notification]]:
        try:
            profiles = await self.store.list_located_profiles()
        except NeighborWatchError as e:
            log.error(f"주변 회원 조회 실패 panic:{panic.id} error:{e}")
            return None
        nearby = within_radius(
            (panic.latitude, panic.longitude),
            ((p.user_id, p.latitude, p.longitude) for p in profiles),
            self.community_radius_km,
        )
        recipients = [uid for uid, _ in nearby if uid != panic.user_id and uid not in exclude]
        if not recipients:
            return []
        log.info(f"주변 회원 알림 panic:{panic.id} count:{len(recipients)} radius:{self.community_radius_km}km")
        return await self._notify(panic, recipients, "community_alert")

    @staticmethod
    def _payload(panic: PanicEvent, user_name: str) -> Dict[str, Any]:
        return {
            "panic_alert_id": panic.id,
            "situation_type": panic.situation_type,
            "location": {
                "latitude": panic.latitude,
                "longitude": panic.longitude,
                "address": panic.address,
            },
            "user_name": user_name,
        }

    async def _dispatch(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await self.delivery.dispatch_panic(payload)
        except Exception:
            metrics.dispatch_failures.inc()
            raise


async def acquire_position(geolocation: GeolocationPort,
                           timeout: float = GEOLOCATION_TIMEOUT_SEC) -> Position:
    """
    제한 시간 안에 현재 위치를 가져옵니다.

    Raises:
        GeolocationError: 권한 거부, 타임아웃, 위치 불가
    """
    try:
        return await asyncio.wait_for(geolocation.get_current_position(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise GeolocationError("timeout") from e
    except GeolocationError:
        raise
    except NeighborWatchError as e:
        raise GeolocationError("unavailable", str(e)) from e


class PanicOrchestrator:
    """패닉 버튼 오케스트레이터"""

    def __init__(self, store: AlertStorePort, geolocation: GeolocationPort,
                 geocoder: Optional[GeocoderPort], notifier: FanoutNotifier, *,
                 geolocation_timeout: float = GEOLOCATION_TIMEOUT_SEC):
        self.store = store
        self.geolocation = geolocation
        self.geocoder = geocoder
        self.notifier = notifier
        self.geolocation_timeout = geolocation_timeout

    async def trigger(self, user_id: str, situation_type: str = "other",
                      message: Optional[str] = None, *,
                      geolocation: Optional[GeolocationPort] = None) -> PanicTriggerResult:
        """
        패닉 이벤트를 생성하고 팬아웃합니다.

        Args:
            user_id: 트리거한 사용자
            situation_type: 상황 유형
            message: 선택 메시지
            geolocation: 이번 요청에만 쓸 위치 제공자

        Returns:
            PanicTriggerResult

        Raises:
            ValidationFailedError: 알 수 없는 상황 유형
            GeolocationError: 위치 획득 실패
            NeighborWatchError: 패닉 이벤트/안전 경보 저장 실패
        """
        if situation_type not in SITUATION_TYPES:
            raise ValidationFailedError(
                f"Unknown situation type '{situation_type}'", field="situation_type"
            )

        start = time.time()
        position = await acquire_position(geolocation or self.geolocation, self.geolocation_timeout)
        address = await self._address_for(position)

        panic = await self.store.insert_panic_event({
            "user_id": user_id,
            "situation_type": situation_type,
            "message": message or None,
            "latitude": position.latitude,
            "longitude": position.longitude,
            "address": address,
            "is_resolved": False,
        })
        metrics.panic_triggered.labels(situation_type=situation_type).inc()
        log.info(f"패닉 이벤트 생성 id:{panic.id} user:{user_id} type:{situation_type}")

        user_name = await self._display_name(user_id)
        dispatch = await self.notifier.on_panic_triggered(panic, user_name)
        metrics.panic_trigger_seconds.observe(time.time() - start)
        return PanicTriggerResult(panic_event=panic, dispatch=dispatch)

    async def _address_for(self, position: Position) -> str:
        fallback = format_coordinates(position.latitude, position.longitude)
        if self.geocoder is None:
            return fallback
        try:
            address = await self.geocoder.reverse(position.latitude, position.longitude)
        except Exception as e:
            log.warning(f"역지오코딩 실패, 좌표 사용 error:{e}")
            return fallback
        return address or fallback

    async def _display_name(self, user_id: str) -> str:
        try:
            profile = await self.store.get_profile(user_id)
        except NeighborWatchError as e:
            log.warning(f"사용자 프로필 조회 실패 user:{user_id} error:{e}")
            return DEFAULT_DISPLAY_NAME
        if profile is None or not profile.full_name:
            return DEFAULT_DISPLAY_NAME
        return profile.full_name
