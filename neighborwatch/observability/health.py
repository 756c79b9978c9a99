"""
HTTP endpoints for NeighborWatch.

This module implements the health, readiness, metrics and info
endpoints plus the panic, incident and status update operations.
"""

import time
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from neighborwatch.adapters.geolocation import FixedPositionProvider
from neighborwatch.core.errors import (
    DependencyError, NeighborWatchError, NotFoundError,
    PermissionDeniedError, ValidationFailedError,
)
from neighborwatch.core.models import AlertFilters, CurrentUser, IncidentReport
from neighborwatch.observability import metrics
from neighborwatch.observability.logging_setup import get_logger
from neighborwatch.settings import Settings

log = get_logger("neighborwatch.http")


class PanicRequest(BaseModel):
    situation_type: str = "other"
    message: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class StatusRequest(BaseModel):
    status: str
    note: Optional[str] = None


def status_code_for(error: NeighborWatchError) -> int:
    """도메인 오류를 HTTP 상태 코드로 매핑"""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, PermissionDeniedError):
        return 403
    if isinstance(error, ValidationFailedError):
        return 422
    if isinstance(error, DependencyError):
        return 502
    return 500


def create_app(settings: Settings, services=None) -> FastAPI:
    """
    FastAPI 애플리케이션을 생성합니다.

    Args:
        settings: 서비스 설정
        services: main.build_services()가 만든 서비스 묶음 (없으면 관측 엔드포인트만)
    """
    app = FastAPI(
        title=settings.observability.service_name,
        version=settings.observability.build_version,
        description="NeighborWatch Emergency Alert Service"
    )

    start_time = time.time()

    @app.exception_handler(NeighborWatchError)
    async def domain_error(request, exc: NeighborWatchError):
        code = status_code_for(exc)
        log.warning(f"요청 실패 path:{request.url.path} status:{code} error:{exc}")
        return JSONResponse(
            status_code=code,
            content={"error": type(exc).__name__, "message": exc.user_message},
        )

    def require_services():
        if services is None:
            raise HTTPException(status_code=503, detail="Services not configured")
        return services

    async def current_user(authorization: Optional[str] = Header(default=None)) -> CurrentUser:
        svc = require_services()
        if not authorization or not authorization.lower().startswith("bearer "):
            raise HTTPException(status_code=401, detail="Missing bearer token")
        user = await svc.auth.current_user(authorization.split(" ", 1)[1].strip())
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid session")
        return user

    @app.get("/health")
    async def health():
        """헬스 체크 엔드포인트"""
        return JSONResponse({
            "status": "ok",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        })

    @app.get("/ready")
    async def ready():
        """레디니스 체크 엔드포인트 (저장소 조회 가능 여부)"""
        if services is not None:
            try:
                await services.store.list_safety_alerts(AlertFilters(), 1)
            except NeighborWatchError as e:
                log.warning(f"레디니스 실패 error:{e}")
                return JSONResponse(status_code=503, content={
                    "status": "unavailable",
                    "service": settings.observability.service_name,
                    "timestamp": time.time()
                })
        return JSONResponse({
            "status": "ready",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        })

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus 메트릭 엔드포인트"""
        if not settings.observability.metrics_enabled:
            raise HTTPException(status_code=503, detail="Metrics disabled")
        metrics.uptime_seconds.set(time.time() - start_time)
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/info")
    async def info():
        """서비스 정보 엔드포인트"""
        uptime = time.time() - start_time
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "build_date": settings.observability.build_date,
            "uptime_seconds": int(uptime),
            "metrics_enabled": settings.observability.metrics_enabled,
            "log_level": settings.observability.log_level,
            "storage_backend": settings.storage.backend,
            "correlation_window_sec": settings.correlation.window_sec,
        })

    @app.post("/panic", status_code=201)
    async def trigger_panic(body: PanicRequest, user: CurrentUser = Depends(current_user)):
        """패닉 이벤트 생성 및 팬아웃"""
        svc = require_services()
        provider = None
        if body.latitude is not None and body.longitude is not None:
            provider = FixedPositionProvider(body.latitude, body.longitude)
        result = await svc.panic.trigger(user.id, body.situation_type, body.message,
                                         geolocation=provider)
        return {
            "panic_event": result.panic_event.model_dump(mode="json"),
            "safety_alert": result.dispatch.safety_alert.model_dump(mode="json"),
            "notifications": len(result.dispatch.notifications),
            "skipped_contacts": result.dispatch.skipped_contacts,
            "warnings": result.warnings,
        }

    @app.get("/alerts")
    async def list_alerts(severity: str = Query("all"), alert_type: str = Query("all"),
                          status: str = Query("all"), limit: int = Query(50, ge=1, le=200)):
        """안전 경보 목록 (최신순)"""
        svc = require_services()
        filters = AlertFilters(severity=severity, alert_type=alert_type, status=status)
        alerts = await svc.store.list_safety_alerts(filters, limit)
        return [a.model_dump(mode="json") for a in alerts]

    @app.post("/alerts", status_code=201)
    async def report_incident(body: IncidentReport, user: CurrentUser = Depends(current_user)):
        """수동 사건 신고"""
        svc = require_services()
        alert = await svc.incidents.report_incident(user.id, body)
        return alert.model_dump(mode="json")

    @app.post("/alerts/{alert_id}/status")
    async def update_alert_status(alert_id: str, body: StatusRequest,
                                  user: CurrentUser = Depends(current_user)):
        """안전 경보 상태 변경 (상관 관계 라우팅)"""
        svc = require_services()
        result = await svc.resolver.resolve_and_apply(alert_id, body.status, user.id, body.note,
                                                     access_token=user.access_token)
        return result.model_dump(mode="json")

    @app.post("/panic/{panic_id}/status")
    async def update_panic_status(panic_id: str, body: StatusRequest,
                                  user: CurrentUser = Depends(current_user)):
        """패닉 이벤트 상태 변경"""
        svc = require_services()
        panic = await svc.status_function.update_panic_status(panic_id, body.status, user.id, body.note,
                                                             access_token=user.access_token)
        return panic.model_dump(mode="json")

    @app.get("/")
    async def root():
        """루트 엔드포인트"""
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "metrics": "/metrics",
                "info": "/info",
                "panic": "/panic",
                "alerts": "/alerts",
            }
        })

    return app
