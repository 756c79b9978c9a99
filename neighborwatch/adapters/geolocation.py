"""
Geolocation providers for NeighborWatch.

Server-side deployments have no device GPS, so the position either
comes with the request or from a configured fixed point.
"""

from typing import Optional

from neighborwatch.core.errors import GeolocationError
from neighborwatch.core.models import Position


class FixedPositionProvider:
    """고정 좌표 또는 요청에 포함된 좌표를 제공"""

    def __init__(self, latitude: Optional[float] = None, longitude: Optional[float] = None):
        if latitude is None or longitude is None:
            self.position: Optional[Position] = None
        else:
            self.position = Position(latitude=latitude, longitude=longitude)

    async def get_current_position(self) -> Position:
        if self.position is None:
            raise GeolocationError("unavailable", "no position configured")
        return self.position
