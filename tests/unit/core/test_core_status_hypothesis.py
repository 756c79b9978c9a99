"""
hypothesis를 활용한 상태 규칙 테스트

이 모듈은 상태 검증, 전이 테이블, 필드 변경 계산의
속성 기반 테스트를 수행합니다.
"""

import pytest
from datetime import timedelta
from hypothesis import given, strategies as st

from neighborwatch.core.errors import ValidationFailedError
from neighborwatch.core.models import PanicEvent
from neighborwatch.core.status import (
    ALERT_STATUSES, ALLOWED_TRANSITIONS, is_valid_transition, panic_changes,
    panic_status, safety_alert_changes, validate_status,
    validate_transition,
)

from conftest import T0, make_alert, make_panic

statuses = st.sampled_from(ALERT_STATUSES)


class TestStatusValidation:
    """상태 값 검증 테스트"""

    @given(status=statuses)
    def test_known_statuses_pass(self, status):
        """알려진 상태는 그대로 반환"""
        assert validate_status(status) == status

    @given(value=st.text(max_size=20).filter(lambda v: v not in ALERT_STATUSES))
    def test_unknown_status_rejected(self, value):
        """알 수 없는 상태는 ValidationFailedError"""
        with pytest.raises(ValidationFailedError) as exc:
            validate_status(value)
        assert exc.value.field == "status"

    @given(a=statuses, b=statuses)
    def test_transitions_unrestricted(self, a, b):
        """모든 상태 간 전이가 허용됨"""
        assert is_valid_transition(a, b)
        assert validate_transition(a, b) == b

    def test_transition_table_excludes_self(self):
        """전이 테이블은 자기 자신을 포함하지 않음"""
        for status, targets in ALLOWED_TRANSITIONS.items():
            assert status not in targets
            assert len(targets) == len(ALERT_STATUSES) - 1


class TestSafetyAlertChanges:
    """안전 경보 변경 필드 계산 테스트"""

    @given(current=statuses)
    def test_same_status_is_noop(self, current):
        """같은 상태로의 변경은 None"""
        alert = make_alert(status=current)
        assert safety_alert_changes(alert, current, "user-a", T0) is None

    @given(current=st.sampled_from(["active", "investigating", "false_alarm"]))
    def test_entering_resolved_stamps_verification(self, current):
        """resolved 진입 시 verified_at/verified_by 기록"""
        alert = make_alert(status=current)
        now = T0 + timedelta(minutes=1)
        changes = safety_alert_changes(alert, "resolved", "mod-1", now)

        assert changes["status"] == "resolved"
        assert changes["verified_at"] == now
        assert changes["verified_by"] == "mod-1"
        assert changes["is_verified"] is True
        assert changes["updated_at"] == now

    @given(
        current=st.sampled_from(["active", "investigating", "false_alarm"]),
        target=st.sampled_from(["active", "investigating", "false_alarm"]),
    )
    def test_non_resolved_moves_do_not_stamp(self, current, target):
        """resolved가 아닌 상태 간 이동은 검증 필드를 건드리지 않음"""
        alert = make_alert(status=current)
        changes = safety_alert_changes(alert, target, "user-a", T0)
        if current == target:
            assert changes is None
        else:
            assert "verified_at" not in changes
            assert "verified_by" not in changes

    def test_leaving_resolved_keeps_verification(self):
        """resolved를 떠나도 검증 필드를 지우지 않음"""
        alert = make_alert(status="resolved", is_verified=True, verified_at=T0, verified_by="mod-1")
        changes = safety_alert_changes(alert, "active", "user-a", T0 + timedelta(hours=1))
        assert changes == {"status": "active", "updated_at": T0 + timedelta(hours=1)}


class TestPanicChanges:
    """패닉 이벤트 변경 필드 계산 테스트"""

    @given(target=statuses, resolved=st.booleans())
    def test_resolution_fields_stay_consistent(self, target, resolved):
        """변경 후에도 is_resolved == (resolved_at is not None)"""
        if resolved:
            panic = make_panic(is_resolved=True, resolved_at=T0, resolved_by="user-a")
        else:
            panic = make_panic()
        now = T0 + timedelta(minutes=2)
        changes = panic_changes(panic, target, "user-b", now)

        merged = panic.model_dump()
        if changes:
            merged.update(changes)
        after = PanicEvent.model_validate(merged)

        assert after.is_resolved == (after.resolved_at is not None)
        if after.resolved_by is not None:
            assert after.is_resolved
        assert panic_status(after) == ("resolved" if target == "resolved" else "active")

    def test_resolve_sets_actor_and_time(self):
        """resolved는 해결 시각과 해결자를 기록"""
        changes = panic_changes(make_panic(), "resolved", "user-b", T0)
        assert changes == {
            "is_resolved": True, "resolved_at": T0, "resolved_by": "user-b", "updated_at": T0,
        }

    def test_reopen_clears_resolution(self):
        """resolved가 아닌 상태는 해결 필드를 모두 지움"""
        panic = make_panic(is_resolved=True, resolved_at=T0, resolved_by="user-a")
        changes = panic_changes(panic, "investigating", "user-a", T0)
        assert changes["is_resolved"] is False
        assert changes["resolved_at"] is None
        assert changes["resolved_by"] is None

    @given(target=st.sampled_from(["active", "investigating", "false_alarm"]))
    def test_unresolved_to_unresolved_is_noop(self, target):
        """저장 상태가 같으면 None (멱등)"""
        assert panic_changes(make_panic(), target, "user-a", T0) is None
