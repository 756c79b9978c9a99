"""
Reverse geocoding client for NeighborWatch.

Uses the BigDataCloud client-side reverse geocoding endpoint, which
needs no API key. Failures raise DependencyError; the panic trigger
degrades to raw coordinates.
"""

import asyncio
from typing import Any, Dict, List

import aiohttp

from neighborwatch.core.errors import DependencyError
from neighborwatch.observability.logging_setup import get_logger

log = get_logger("neighborwatch.geocoder")

DEFAULT_URL = "https://api.bigdatacloud.net/data/reverse-geocode-client"


def compose_address(data: Dict[str, Any]) -> str:
    """응답에서 표시용 주소를 만듭니다 (없으면 빈 문자열)."""
    if data.get("display_name"):
        return str(data["display_name"])
    parts: List[str] = []
    for key in ("locality", "city", "principalSubdivision", "countryName"):
        value = data.get(key)
        if value and value not in parts:
            parts.append(str(value))
    return ", ".join(parts)


class BigDataCloudGeocoder:
    """BigDataCloud 역지오코딩 클라이언트"""

    def __init__(self, url: str = DEFAULT_URL, timeout: float = 5.0, language: str = "en"):
        self.url = url
        self.timeout = timeout
        self.language = language

    async def reverse(self, latitude: float, longitude: float) -> str:
        """
        좌표를 주소로 변환합니다.

        Raises:
            DependencyError: 요청 실패
        """
        params = {
            "latitude": str(latitude),
            "longitude": str(longitude),
            "localityLanguage": self.language,
        }
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.get(self.url, params=params) as response:
                    response.raise_for_status()
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log.warning(f"역지오코딩 요청 실패 error:{e}")
            raise DependencyError(f"reverse geocoding failed: {e}") from e

        address = compose_address(data or {})
        log.debug(f"역지오코딩 완료 address:{address}")
        return address
