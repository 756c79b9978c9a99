"""
Location port interfaces.

This module defines the protocols for geolocation and
reverse geocoding.
"""

from typing import Protocol

from neighborwatch.core.models import Position


class GeolocationPort(Protocol):
    """현재 위치 제공 포트"""

    async def get_current_position(self) -> Position:
        """
        Raises:
            GeolocationError: 권한 거부 또는 위치 불가
        """
        ...


class GeocoderPort(Protocol):
    """역지오코딩 포트"""

    async def reverse(self, latitude: float, longitude: float) -> str:
        ...
