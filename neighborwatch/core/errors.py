"""
Error taxonomy for NeighborWatch.

Every caller-facing failure carries a user message that tells apart
"nothing happened" (validation/permission/not found) from
"please retry" (transient dependency failure).
"""

from typing import Literal, Optional


class NeighborWatchError(Exception):
    """도메인 오류 기본 클래스"""

    user_message = "Something went wrong. Nothing was changed."

    def __init__(self, message: str, *, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class NotFoundError(NeighborWatchError):
    """참조한 엔티티가 존재하지 않음"""

    user_message = "The alert could not be found. Nothing was changed."

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class PermissionDeniedError(NeighborWatchError):
    """변경 권한 없음"""

    user_message = (
        "Only the alert creator, a confirmed emergency contact or a moderator "
        "can change this alert. Nothing was changed."
    )


class ValidationFailedError(NeighborWatchError):
    """쓰기 전에 검출된 입력 오류"""

    user_message = "Some required information is missing or invalid. Nothing was saved."

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message, user_message=message)
        self.field = field


class DependencyError(NeighborWatchError):
    """네트워크/외부 함수/저장소 실패"""

    def __init__(self, message: str, *, transient: bool = True, user_message: Optional[str] = None):
        super().__init__(message, user_message=user_message)
        self.transient = transient
        if user_message is None:
            self.user_message = (
                "A network problem prevented this action. Please retry."
                if transient else
                "A required service is unavailable. Nothing was changed."
            )


GeolocationReason = Literal["permission", "timeout", "unavailable"]


class GeolocationError(DependencyError):
    """위치 획득 실패 (권한/타임아웃/불가)"""

    _MESSAGES = {
        "permission": "Location access denied. Please enable location services.",
        "timeout": "Getting your location took too long. Please retry.",
        "unavailable": "Your location is unavailable. Please retry.",
    }

    def __init__(self, reason: GeolocationReason, message: Optional[str] = None):
        super().__init__(
            message or f"geolocation failed: {reason}",
            transient=reason != "permission",
            user_message=self._MESSAGES[reason],
        )
        self.reason = reason


PARTIAL_DELIVERY_WARNING = (
    "Your alert was created, but some notifications may not have been delivered."
)
