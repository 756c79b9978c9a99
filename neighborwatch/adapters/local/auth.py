"""
Development auth adapter for NeighborWatch.

Used with the local SQLite backend, where there is no auth service:
a bearer token is accepted when it appears in the configured token
map, or taken as the user id itself when no map is configured.
"""

from typing import Dict, Optional

from neighborwatch.core.models import CurrentUser


class StaticTokenAuth:
    """정적 토큰 인증 (개발용)"""

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self.tokens = tokens

    async def current_user(self, access_token: str) -> Optional[CurrentUser]:
        if not access_token:
            return None
        if self.tokens is None:
            return CurrentUser(id=access_token, access_token=access_token)
        user_id = self.tokens.get(access_token)
        if user_id is None:
            return None
        return CurrentUser(id=user_id, access_token=access_token)
