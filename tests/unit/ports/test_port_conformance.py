"""
포트 인터페이스 준수 테스트

어댑터가 포트에 정의된 메서드를 모두 같은 형태(코루틴 여부)로
구현하는지 확인합니다.
"""

import inspect

import pytest

from neighborwatch.adapters.geocoding.bigdatacloud import BigDataCloudGeocoder
from neighborwatch.adapters.geolocation import FixedPositionProvider
from neighborwatch.adapters.local.auth import StaticTokenAuth
from neighborwatch.adapters.local.status_function import LocalStatusFunction
from neighborwatch.adapters.storage.local_feed import LocalChangeFeed
from neighborwatch.adapters.storage.sqlite_store import SQLiteAlertStore
from neighborwatch.adapters.supabase.auth import SupabaseAuth
from neighborwatch.adapters.supabase.functions import SupabaseDelivery, SupabaseStatusFunction
from neighborwatch.adapters.supabase.realtime import SupabaseRealtime
from neighborwatch.adapters.supabase.store import SupabaseAlertStore
from neighborwatch.ports import (
    AlertStorePort, AuthPort, ChangeFeedPort, DeliveryPort, GeocoderPort,
    GeolocationPort, StatusFunctionPort,
)


def _port_methods(port):
    return {
        name: member for name, member in vars(port).items()
        if not name.startswith("_") and callable(member)
    }


CASES = [
    (AlertStorePort, SQLiteAlertStore),
    (AlertStorePort, SupabaseAlertStore),
    (AuthPort, StaticTokenAuth),
    (AuthPort, SupabaseAuth),
    (StatusFunctionPort, LocalStatusFunction),
    (StatusFunctionPort, SupabaseStatusFunction),
    (DeliveryPort, SupabaseDelivery),
    (GeolocationPort, FixedPositionProvider),
    (GeocoderPort, BigDataCloudGeocoder),
    (ChangeFeedPort, LocalChangeFeed),
    (ChangeFeedPort, SupabaseRealtime),
]


class TestPortConformance:
    """포트 구현 확인"""

    @pytest.mark.parametrize("port,adapter", CASES, ids=lambda c: c.__name__)
    def test_adapter_implements_port(self, port, adapter):
        methods = _port_methods(port)
        assert methods, f"{port.__name__} defines no methods"
        for name, member in methods.items():
            impl = getattr(adapter, name, None)
            assert impl is not None, f"{adapter.__name__} missing {name}"
            assert (inspect.iscoroutinefunction(member) == inspect.iscoroutinefunction(impl)), \
                f"{adapter.__name__}.{name} coroutine mismatch"

    @pytest.mark.parametrize("adapter", [LocalChangeFeed, SupabaseRealtime])
    def test_change_feeds_are_async_generators(self, adapter):
        assert inspect.isasyncgenfunction(adapter.listen)
