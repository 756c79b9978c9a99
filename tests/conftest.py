"""
테스트 설정 및 픽스처

이 모듈은 pytest 설정과 공통 픽스처를 제공합니다.
"""

import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from neighborwatch.adapters.storage.local_feed import LocalChangeFeed
from neighborwatch.adapters.storage.sqlite_store import SQLiteAlertStore
from neighborwatch.core.models import EmergencyContact, PanicEvent, Profile, SafetyAlert
from neighborwatch.settings import Settings

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """테스트용 조작 가능한 시계"""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_panic(**overrides) -> PanicEvent:
    data = dict(
        id="panic-1", user_id="user-a", situation_type="fire",
        latitude=6.5, longitude=3.4, address="Lagos",
        created_at=T0, updated_at=T0,
    )
    data.update(overrides)
    return PanicEvent(**data)


def make_alert(**overrides) -> SafetyAlert:
    data = dict(
        id="alert-1", user_id="user-a", title="Emergency Alert",
        description="Someone in your area has requested emergency assistance",
        alert_type="fire", severity="critical", status="active",
        latitude=6.5, longitude=3.4, created_at=T0, updated_at=T0,
    )
    data.update(overrides)
    return SafetyAlert(**data)


def phone_for(idx: int) -> str:
    return f"+234800000000{idx}"


def make_contact(idx: int, methods=("in_app",), confirmed: bool = True,
                 owner: str = "user-a") -> EmergencyContact:
    return EmergencyContact(
        id=f"contact-{idx}", owner_user_id=owner, contact_name=f"Contact {idx}",
        phone_number=phone_for(idx), preferred_methods=list(methods),
        is_confirmed=confirmed,
    )


@pytest.fixture
def temp_db_path():
    """임시 데이터베이스 파일 경로"""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        temp_path = f.name
    yield temp_path
    # 테스트 후 파일 정리
    if os.path.exists(temp_path):
        os.unlink(temp_path)


@pytest.fixture
def clock():
    """테스트용 시계"""
    return FakeClock()


@pytest.fixture
def feed():
    """프로세스 내 변경 피드"""
    return LocalChangeFeed()


@pytest.fixture
async def store(temp_db_path, feed, clock):
    """초기화된 SQLite 저장소"""
    s = SQLiteAlertStore(temp_db_path, feed=feed, clock=clock)
    await s.init()
    return s


@pytest.fixture
async def seeded_store(store):
    """사용자 A와 비상 연락처 2명이 등록된 저장소"""
    await store.upsert_profile(Profile(user_id="user-a", full_name="Ada", phone=phone_for(0)))
    await store.upsert_profile(Profile(user_id="user-b", full_name="Bola", phone=phone_for(1)))
    await store.upsert_profile(Profile(user_id="user-c", full_name="Chidi", phone=phone_for(2)))
    await store.upsert_profile(Profile(user_id="user-x", full_name="Xavier", phone="+2348000000999"))
    for idx in (1, 2):
        await store.add_emergency_contact(
            make_contact(idx).model_dump(exclude={"id"})
        )
    return store


@pytest.fixture
def sample_settings():
    """테스트용 설정"""
    settings = Settings()
    settings.observability.service_name = "test-service"
    settings.observability.build_version = "1.0.0"
    settings.observability.log_level = "INFO"
    settings.observability.http_port = 8080
    return settings


@pytest.fixture
def mock_store():
    """테스트용 저장소 목업"""
    return AsyncMock()


# pytest 설정
def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line(
        "markers", "slow: 느린 테스트 마커"
    )
    config.addinivalue_line(
        "markers", "integration: 통합 테스트 마커"
    )


def pytest_collection_modifyitems(config, items):
    """테스트 아이템 수정"""
    for item in items:
        # 비동기 테스트에 asyncio 마커 추가
        if asyncio.iscoroutinefunction(getattr(item, "function", None)):
            item.add_marker(pytest.mark.asyncio)

        # 통합 테스트 마커 추가
        if "integration" in item.name or "end_to_end" in item.name:
            item.add_marker(pytest.mark.integration)
