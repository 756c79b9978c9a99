"""
Observability 및 HTTP API 단위 테스트

헬스 체크, 메트릭, 로깅과 SQLite 저장소 위의 경보 API를 테스트합니다.
"""

import pytest
import httpx
from fastapi.testclient import TestClient
from loguru import logger
from unittest.mock import AsyncMock

from neighborwatch.adapters.local.auth import StaticTokenAuth
from neighborwatch.adapters.local.status_function import LocalStatusFunction
from neighborwatch.adapters.geolocation import FixedPositionProvider
from neighborwatch.common.tasks import BackgroundTasks
from neighborwatch.core.errors import (
    DependencyError, GeolocationError, NeighborWatchError, NotFoundError,
    PermissionDeniedError, ValidationFailedError,
)
from neighborwatch.main import Services
from neighborwatch.observability.health import create_app, status_code_for
from neighborwatch.observability.logging_setup import get_logger, setup_logging_dev, with_context
from neighborwatch.orchestrators.correlation import CorrelationResolver
from neighborwatch.orchestrators.incident import IncidentReporter
from neighborwatch.orchestrators.panic import FanoutNotifier, PanicOrchestrator
from neighborwatch.orchestrators.status_update import StatusUpdateService

from conftest import make_panic


def _services(store, clock):
    status_service = StatusUpdateService(store, clock=clock)
    status_function = LocalStatusFunction(store, status_service)
    tasks = BackgroundTasks()
    return Services(
        store=store,
        auth=StaticTokenAuth(),
        status_service=status_service,
        status_function=status_function,
        resolver=CorrelationResolver(store, status_service, status_function),
        panic=PanicOrchestrator(store, FixedPositionProvider(), None,
                                FanoutNotifier(store, None, tasks)),
        incidents=IncidentReporter(store),
        tasks=tasks,
    )


class TestHealthEndpoints:
    """헬스 체크 엔드포인트 테스트 (서비스 없음)"""

    @pytest.fixture
    def client(self, sample_settings):
        return TestClient(create_app(sample_settings))

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["service"] == "test-service"

    def test_ready_without_services(self, client):
        assert client.get("/ready").json()["status"] == "ready"

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "neighborwatch" in response.text or "# HELP" in response.text

    def test_metrics_disabled(self, sample_settings):
        sample_settings.observability.metrics_enabled = False
        client = TestClient(create_app(sample_settings))
        assert client.get("/metrics").status_code == 503

    def test_info_endpoint(self, client):
        data = client.get("/info").json()
        assert data["version"] == "1.0.0"
        assert data["storage_backend"] == "sqlite"
        assert data["correlation_window_sec"] == 300.0

    def test_operations_need_services(self, client):
        response = client.post("/panic", json={}, headers={"Authorization": "Bearer user-a"})
        assert response.status_code == 503


class TestErrorMapping:
    """도메인 오류 HTTP 매핑 테스트"""

    @pytest.mark.parametrize("error,code", [
        (NotFoundError("safety_alert", "x"), 404),
        (PermissionDeniedError("no"), 403),
        (ValidationFailedError("bad", field="title"), 422),
        (DependencyError("down"), 502),
        (GeolocationError("timeout"), 502),
        (NeighborWatchError("other"), 500),
    ])
    def test_status_codes(self, error, code):
        assert status_code_for(error) == code


class TestAlertApi:
    """경보 API 테스트"""

    @pytest.fixture
    async def api(self, sample_settings, seeded_store, clock):
        app = create_app(sample_settings, _services(seeded_store, clock))
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client

    async def test_panic_then_resolve(self, api):
        """패닉 트리거 후 안전 경보 해결"""
        response = await api.post("/panic", json={"situation_type": "fire", "latitude": 6.5,
                                                  "longitude": 3.4},
                                  headers={"Authorization": "Bearer user-a"})
        assert response.status_code == 201
        body = response.json()
        assert body["notifications"] == 2
        assert body["panic_event"]["address"] == "6.500000, 3.400000"

        alert_id = body["safety_alert"]["id"]
        response = await api.post(f"/alerts/{alert_id}/status", json={"status": "resolved"},
                                  headers={"Authorization": "Bearer user-a"})
        assert response.status_code == 200
        assert response.json()["path"] == "panic"
        assert response.json()["entity"]["status"] == "resolved"

    async def test_missing_token(self, api):
        response = await api.post("/panic", json={"situation_type": "fire"})
        assert response.status_code == 401

    async def test_panic_without_position(self, api):
        response = await api.post("/panic", json={"situation_type": "fire"},
                                  headers={"Authorization": "Bearer user-a"})
        assert response.status_code == 502
        assert response.json()["error"] == "GeolocationError"

    async def test_report_and_list(self, api):
        response = await api.post("/alerts", json={
            "title": "Power line down", "description": "Sparking cable on Allen Ave",
            "alert_type": "power_outage", "severity": "high", "latitude": 6.6, "longitude": 3.35,
        }, headers={"Authorization": "Bearer user-a"})
        assert response.status_code == 201

        listed = (await api.get("/alerts", params={"severity": "high"})).json()
        assert [a["title"] for a in listed] == ["Power line down"]
        assert listed[0]["author"]["full_name"] == "Ada"

    async def test_invalid_report_is_422(self, api):
        response = await api.post("/alerts", json={
            "title": "", "description": "x", "alert_type": "fire", "severity": "high",
            "latitude": 6.6, "longitude": 3.35,
        }, headers={"Authorization": "Bearer user-a"})
        assert response.status_code == 422
        assert response.json()["message"] == "Please enter a title for the incident."

    async def test_status_on_missing_alert(self, api):
        response = await api.post("/alerts/nope/status", json={"status": "resolved"},
                                  headers={"Authorization": "Bearer user-a"})
        assert response.status_code == 404

    async def test_stranger_cannot_resolve_panic(self, api):
        created = await api.post("/panic", json={"situation_type": "fire", "latitude": 6.5,
                                                 "longitude": 3.4},
                                 headers={"Authorization": "Bearer user-a"})
        panic_id = created.json()["panic_event"]["id"]
        response = await api.post(f"/panic/{panic_id}/status", json={"status": "resolved"},
                                  headers={"Authorization": "Bearer user-x"})
        assert response.status_code == 403

    async def test_panic_status_forwards_session_token(self, sample_settings, seeded_store, clock):
        services = _services(seeded_store, clock)
        services.status_function = AsyncMock()
        services.status_function.update_panic_status.return_value = make_panic()
        transport = httpx.ASGITransport(app=create_app(sample_settings, services))
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/panic/panic-1/status", json={"status": "investigating"},
                                         headers={"Authorization": "Bearer user-a"})
        assert response.status_code == 200
        call = services.status_function.update_panic_status.await_args
        assert call.kwargs["access_token"] == "user-a"

    async def test_ready_with_store(self, api):
        assert (await api.get("/ready")).json()["status"] == "ready"


class TestLogging:
    """loguru 로깅 설정 테스트"""

    def test_get_logger_binds_name(self):
        setup_logging_dev("DEBUG")
        records = []
        sink_id = logger.add(lambda m: records.append(m.record), level="DEBUG")
        try:
            get_logger("neighborwatch.test").info("hello")
            with_context(alert_id="a-1").info("bound")
        finally:
            logger.remove(sink_id)
        assert records[0]["extra"]["name"] == "neighborwatch.test"
        assert records[1]["extra"]["alert_id"] == "a-1"
