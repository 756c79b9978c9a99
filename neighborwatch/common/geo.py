"""
Geographic utilities for NeighborWatch.

This module provides the distance calculation used by the
nearby-member fan-out and the coordinate formatting used when
reverse geocoding is unavailable.
"""

import math
from typing import Iterable, List, Tuple, TypeVar

P = TypeVar("P")

# 지구 반지름 (킬로미터)
EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    두 지점 간의 Haversine 거리를 계산합니다 (킬로미터).

    Args:
        lat1: 첫 번째 지점의 위도
        lon1: 첫 번째 지점의 경도
        lat2: 두 번째 지점의 위도
        lon2: 두 번째 지점의 경도

    Returns:
        두 지점 간의 거리 (킬로미터)
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlmb = math.radians(lon2) - math.radians(lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def within_radius(origin: Tuple[float, float],
                  points: Iterable[Tuple[P, float, float]],
                  radius_km: float) -> List[Tuple[P, float]]:
    """
    반경 안에 있는 지점을 거리순으로 반환합니다.

    Args:
        origin: (위도, 경도)
        points: (항목, 위도, 경도) 목록
        radius_km: 반경 (킬로미터)

    Returns:
        (항목, 거리) 목록
    """
    lat0, lon0 = origin
    hits = []
    for item, lat, lon in points:
        d = haversine_distance(lat0, lon0, lat, lon)
        if d <= radius_km:
            hits.append((item, d))
    hits.sort(key=lambda x: x[1])
    return hits


def format_coordinates(latitude: float, longitude: float) -> str:
    """주소 대신 쓰는 좌표 문자열 (소수점 6자리)"""
    return f"{latitude:.6f}, {longitude:.6f}"
