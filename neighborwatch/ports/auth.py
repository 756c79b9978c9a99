"""
Auth/session port interface.
"""

from typing import Optional, Protocol

from neighborwatch.core.models import CurrentUser


class AuthPort(Protocol):
    """인증 세션 포트"""

    async def current_user(self, access_token: str) -> Optional[CurrentUser]:
        """토큰에 해당하는 사용자, 유효하지 않으면 None"""
        ...
