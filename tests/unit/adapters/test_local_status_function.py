"""
로컬 패닉 상태 함수 테스트
"""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock

from neighborwatch.adapters.local.auth import StaticTokenAuth
from neighborwatch.adapters.local.status_function import LocalStatusFunction
from neighborwatch.core.errors import DependencyError, PermissionDeniedError
from neighborwatch.orchestrators.status_update import StatusUpdateService


async def _panic_with_mirror(store):
    panic = await store.insert_panic_event({
        "user_id": "user-a", "situation_type": "fire",
        "latitude": 6.5, "longitude": 3.4, "is_resolved": False,
    })
    alert = await store.insert_safety_alert({
        "user_id": "user-a", "title": "Emergency Alert", "description": "Help",
        "alert_type": "fire", "severity": "critical", "status": "active",
        "latitude": 6.5, "longitude": 3.4, "created_at": panic.created_at,
    })
    return panic, alert


class TestLocalStatusFunction:
    """LocalStatusFunction 테스트"""

    @pytest.fixture
    def fn(self, seeded_store, clock):
        return LocalStatusFunction(seeded_store, StatusUpdateService(seeded_store, clock=clock))

    async def test_mirrors_status_to_linked_alert(self, fn, seeded_store):
        panic, alert = await _panic_with_mirror(seeded_store)

        updated = await fn.update_panic_status(panic.id, "resolved", "user-b", "Fire is out")

        assert updated.is_resolved is True
        mirrored = await seeded_store.get_safety_alert(alert.id)
        assert mirrored.status == "resolved"
        assert mirrored.verified_by == "user-b"
        responses = await seeded_store.list_alert_responses(alert.id)
        assert responses[0].comment == "Status updated to resolved by Bola: Fire is out"

    async def test_unlinked_alert_untouched(self, fn, seeded_store, clock):
        panic, _ = await _panic_with_mirror(seeded_store)
        clock.advance(seconds=5)
        later = await seeded_store.insert_safety_alert({
            "user_id": "user-a", "title": "Other", "description": "x",
            "alert_type": "fire", "severity": "critical", "status": "active",
            "latitude": 6.5, "longitude": 3.4,
        })

        await fn.update_panic_status(panic.id, "resolved", "user-a")

        assert (await seeded_store.get_safety_alert(later.id)).status == "active"

    async def test_stranger_denied(self, fn, seeded_store):
        panic, alert = await _panic_with_mirror(seeded_store)
        with pytest.raises(PermissionDeniedError):
            await fn.update_panic_status(panic.id, "resolved", "user-x")
        assert (await seeded_store.get_safety_alert(alert.id)).status == "active"

    async def test_linked_lookup_failure_returns_panic(self, fn, seeded_store):
        panic, alert = await _panic_with_mirror(seeded_store)
        seeded_store.find_linked_safety_alerts = AsyncMock(side_effect=DependencyError("down"))

        updated = await fn.update_panic_status(panic.id, "resolved", "user-a")

        assert updated.is_resolved is True
        assert (await seeded_store.get_safety_alert(alert.id)).status == "active"

    async def test_note_without_linked_alert_is_dropped(self, fn, seeded_store):
        panic = await seeded_store.insert_panic_event({
            "user_id": "user-a", "latitude": 6.5, "longitude": 3.4,
        })
        seeded_store.insert_alert_response = AsyncMock()
        await fn.update_panic_status(panic.id, "investigating", "user-a", "checking")
        seeded_store.insert_alert_response.assert_not_awaited()

    async def test_repeated_status_records_one_note(self, fn, seeded_store):
        """같은 상태를 다시 적용하면 메모를 추가하지 않음"""
        panic, alert = await _panic_with_mirror(seeded_store)

        await fn.update_panic_status(panic.id, "resolved", "user-a", "done")
        await fn.update_panic_status(panic.id, "resolved", "user-a", "done")

        responses = await seeded_store.list_alert_responses(alert.id)
        assert [r.comment for r in responses] == ["Status updated to resolved by Ada: done"]

    async def test_session_token_accepted_and_ignored(self, fn, seeded_store):
        panic, _ = await _panic_with_mirror(seeded_store)
        updated = await fn.update_panic_status(panic.id, "resolved", "user-a", access_token="jwt")
        assert updated.resolved_by == "user-a"


class TestStaticTokenAuth:
    """StaticTokenAuth 테스트"""

    async def test_token_is_user_id_without_map(self):
        user = await StaticTokenAuth().current_user("user-a")
        assert user.id == "user-a"

    async def test_token_map(self):
        auth = StaticTokenAuth({"secret": "user-b"})
        assert (await auth.current_user("secret")).id == "user-b"
        assert await auth.current_user("other") is None
        assert await auth.current_user("") is None
