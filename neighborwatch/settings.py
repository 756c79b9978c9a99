# neighborwatch/settings.py
from __future__ import annotations
from pydantic import BaseModel, Field

class SupabaseConfig(BaseModel):
    url: str = "http://localhost:54321"
    anon_key: str = ""
    service_key: str = ""
    timeout_sec: int = 10
    read_max_retries: int = 3

class StorageConfig(BaseModel):
    backend: str = "sqlite"                  # sqlite | supabase
    sqlite_path: str = "/data/neighborwatch.db"

class CorrelationConfig(BaseModel):
    window_sec: float = 300.0                # 경계 포함
    panic_lookback: int = 10
    status_function: str = "local"           # local | remote

class RealtimeConfig(BaseModel):
    poll_interval_sec: float = 30.0
    heartbeat_sec: float = 30.0
    feed_limit: int = 10

class FanoutConfig(BaseModel):
    community_radius_km: float = 0.0         # 0 = 주변 회원 알림 끔
    dispatch_enabled: bool = True
    drain_timeout_sec: float = 10.0

class GeoConfig(BaseModel):
    geolocation_timeout_sec: float = 10.0
    geocoder_url: str = "https://api.bigdatacloud.net/data/reverse-geocode-client"
    geocoder_timeout_sec: float = 5.0
    fixed_latitude: float | None = None
    fixed_longitude: float | None = None

class Observability(BaseModel):
    http_port: int = 8099
    metrics_enabled: bool = True
    service_name: str = "NeighborWatch"
    build_version: str = "0.1.0"
    build_date: str = "2025-01-01"
    log_level: str = "INFO"
    json_logs: bool = False

class Settings(BaseModel):
    # 하위 섹션 (기본값/팩토리로 누락 방지)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    correlation: CorrelationConfig = Field(default_factory=CorrelationConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    fanout: FanoutConfig = Field(default_factory=FanoutConfig)
    geo: GeoConfig = Field(default_factory=GeoConfig)
    observability: Observability = Field(default_factory=Observability)
