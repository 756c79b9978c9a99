# neighborwatch/main.py
import os, asyncio, signal
from datetime import timedelta
from typing import Any, List, Optional
import uvicorn
from neighborwatch.settings import Settings
from neighborwatch.observability.health import create_app
from neighborwatch.observability.logging_setup import setup_logging, get_logger
from neighborwatch.common.tasks import BackgroundTasks
from neighborwatch.adapters.storage.sqlite_store import SQLiteAlertStore
from neighborwatch.adapters.local.auth import StaticTokenAuth
from neighborwatch.adapters.local.status_function import LocalStatusFunction
from neighborwatch.adapters.supabase.client import SupabaseClient
from neighborwatch.adapters.supabase.store import SupabaseAlertStore
from neighborwatch.adapters.supabase.auth import SupabaseAuth
from neighborwatch.adapters.supabase.functions import SupabaseDelivery, SupabaseStatusFunction
from neighborwatch.adapters.geocoding.bigdatacloud import BigDataCloudGeocoder
from neighborwatch.adapters.geolocation import FixedPositionProvider
from neighborwatch.orchestrators.status_update import StatusUpdateService
from neighborwatch.orchestrators.correlation import CorrelationResolver
from neighborwatch.orchestrators.panic import FanoutNotifier, PanicOrchestrator
from neighborwatch.orchestrators.incident import IncidentReporter

def _b(name, default=False): return os.getenv(name, str(default)).lower() in ("1","true","yes","on")

def build_settings() -> Settings:
    s = Settings()

    # SUPABASE
    s.supabase.url = os.getenv("SUPABASE_URL", s.supabase.url)
    s.supabase.anon_key = os.getenv("SUPABASE_ANON_KEY", s.supabase.anon_key)
    s.supabase.service_key = os.getenv("SUPABASE_SERVICE_KEY", s.supabase.service_key)
    s.supabase.timeout_sec = int(os.getenv("SUPABASE_TIMEOUT_SEC", s.supabase.timeout_sec))

    # 저장소
    s.storage.backend = os.getenv("STORAGE_BACKEND", s.storage.backend)
    s.storage.sqlite_path = os.getenv("SQLITE_PATH", s.storage.sqlite_path)

    # 상관 관계
    s.correlation.window_sec = float(os.getenv("CORRELATION_WINDOW_SEC", s.correlation.window_sec))
    s.correlation.panic_lookback = int(os.getenv("CORRELATION_LOOKBACK", s.correlation.panic_lookback))
    s.correlation.status_function = os.getenv("STATUS_FUNCTION", s.correlation.status_function)

    # 실시간
    s.realtime.poll_interval_sec = float(os.getenv("REALTIME_POLL_INTERVAL_SEC", s.realtime.poll_interval_sec))

    # 팬아웃
    s.fanout.community_radius_km = float(os.getenv("COMMUNITY_RADIUS_KM", s.fanout.community_radius_km))
    s.fanout.dispatch_enabled = _b("DISPATCH_ENABLED", s.fanout.dispatch_enabled)

    # 위치
    s.geo.geolocation_timeout_sec = float(os.getenv("GEOLOCATION_TIMEOUT_SEC", s.geo.geolocation_timeout_sec))
    s.geo.geocoder_url = os.getenv("GEOCODER_URL", s.geo.geocoder_url)
    if os.getenv("FIXED_LATITUDE") and os.getenv("FIXED_LONGITUDE"):
        s.geo.fixed_latitude = float(os.getenv("FIXED_LATITUDE"))
        s.geo.fixed_longitude = float(os.getenv("FIXED_LONGITUDE"))

    # 관측성
    s.observability.metrics_enabled = _b("METRICS_ENABLED", s.observability.metrics_enabled)
    s.observability.http_port = int(os.getenv("HTTP_PORT", s.observability.http_port))
    s.observability.log_level = os.getenv("LOG_LEVEL", s.observability.log_level)
    s.observability.json_logs = _b("LOG_JSON", s.observability.json_logs)

    return s

class Services:
    """애플리케이션 서비스 묶음"""

    def __init__(self, *, store, auth, status_service, status_function, resolver,
                 panic, incidents, tasks: BackgroundTasks, closers: Optional[List[Any]] = None):
        self.store = store
        self.auth = auth
        self.status_service = status_service
        self.status_function = status_function
        self.resolver = resolver
        self.panic = panic
        self.incidents = incidents
        self.tasks = tasks
        self.closers = closers or []

    async def aclose(self, drain_timeout: Optional[float] = None) -> None:
        await self.tasks.drain(drain_timeout)
        for closer in self.closers:
            await closer.close()

async def build_services(s: Settings) -> Services:
    log = get_logger("neighborwatch.main")
    closers: List[Any] = []
    delivery = None

    if s.storage.backend == "supabase":
        client = SupabaseClient(s.supabase.url, s.supabase.service_key or s.supabase.anon_key,
                                timeout=s.supabase.timeout_sec,
                                read_max_retries=s.supabase.read_max_retries)
        await client.open()
        closers.append(client)
        store = SupabaseAlertStore(client)
        auth = SupabaseAuth(client)
        if s.fanout.dispatch_enabled:
            delivery = SupabaseDelivery(client)
        log.info("Supabase 저장소 사용")
    else:
        store = SQLiteAlertStore(s.storage.sqlite_path)
        await store.init()
        auth = StaticTokenAuth()
        client = None
        log.info("SQLite 저장소 사용")

    status_service = StatusUpdateService(store)
    if s.correlation.status_function == "remote" and client is not None:
        status_function = SupabaseStatusFunction(client)
    else:
        status_function = LocalStatusFunction(store, status_service)

    resolver = CorrelationResolver(
        store, status_service, status_function,
        window=timedelta(seconds=s.correlation.window_sec),
        lookback=s.correlation.panic_lookback,
    )
    tasks = BackgroundTasks()
    notifier = FanoutNotifier(store, delivery, tasks, community_radius_km=s.fanout.community_radius_km)
    panic = PanicOrchestrator(
        store,
        FixedPositionProvider(s.geo.fixed_latitude, s.geo.fixed_longitude),
        BigDataCloudGeocoder(s.geo.geocoder_url, s.geo.geocoder_timeout_sec),
        notifier,
        geolocation_timeout=s.geo.geolocation_timeout_sec,
    )
    return Services(
        store=store, auth=auth, status_service=status_service,
        status_function=status_function, resolver=resolver, panic=panic,
        incidents=IncidentReporter(store), tasks=tasks, closers=closers,
    )

async def start_http(settings: Settings, services: Services) -> asyncio.Task:
    app = create_app(settings, services)
    return asyncio.create_task(uvicorn.Server(
        uvicorn.Config(app, host="0.0.0.0", port=settings.observability.http_port, log_level="info")
    ).serve())

async def main():
    # 로거 초기화 (환경변수 LOG_LEVEL 우선)
    setup_logging(os.getenv("LOG_LEVEL", "INFO"), json_logs=_b("LOG_JSON", False))
    log = get_logger("neighborwatch.main")

    s = build_settings()
    log.info("설정 로드 완료")

    services = await build_services(s)
    log.info("서비스 생성 완료")

    http_task = await start_http(s, services)
    log.info(f"HTTP 서버 시작됨 port:{s.observability.http_port}")

    stop = asyncio.Future()
    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try: loop.add_signal_handler(sig, lambda: (not stop.done()) and stop.set_result(True))
            except NotImplementedError: pass
    except RuntimeError: pass

    await stop
    log.info("종료 중, 백그라운드 작업 정리")
    http_task.cancel()
    await services.aclose(s.fanout.drain_timeout_sec)

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
