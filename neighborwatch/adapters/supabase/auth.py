"""
Supabase auth adapter for NeighborWatch.
"""

from typing import Optional

from neighborwatch.adapters.supabase.client import SupabaseClient
from neighborwatch.core.models import CurrentUser


class SupabaseAuth:
    """세션 토큰으로 현재 사용자를 조회"""

    def __init__(self, client: SupabaseClient):
        self.client = client

    async def current_user(self, access_token: str) -> Optional[CurrentUser]:
        if not access_token:
            return None
        data = await self.client.get_user(access_token)
        if not data or not data.get("id"):
            return None
        return CurrentUser(id=data["id"], email=data.get("email"), access_token=access_token)
