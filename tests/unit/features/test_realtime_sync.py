"""
실시간 동기화 테스트

로컬 변경 피드 위에서 채널 구독, 교체, 해제와
폴링 폴백을 확인합니다.
"""

import asyncio
from unittest.mock import AsyncMock

from neighborwatch.core.models import AlertFilters
from neighborwatch.features.realtime_sync import (
    AlertFeedSync, ChangeHandlers, PanicFeedSync, ResponseFeedSync, SubscriptionManager,
)


async def _settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0.02)


async def _wait_until(predicate, timeout: float = 2.0):
    """조건이 참이 될 때까지 대기"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def _alert_row(**kw):
    data = {
        "user_id": "user-a", "title": "Gas leak", "description": "Smell near block C",
        "alert_type": "other", "severity": "high", "status": "active",
        "latitude": 6.5, "longitude": 3.4, "is_verified": False,
    }
    data.update(kw)
    return data


class TestSubscriptionManager:
    """SubscriptionManager 테스트"""

    async def test_events_are_filtered_and_dispatched(self, feed):
        on_insert, on_update = AsyncMock(), AsyncMock()
        manager = SubscriptionManager(feed)
        await manager.subscribe("safety_alerts", ["INSERT"],
                                ChangeHandlers(on_insert=on_insert, on_update=on_update))

        feed.publish("safety_alerts", "INSERT", {"id": "a-1"})
        feed.publish("safety_alerts", "UPDATE", {"id": "a-1"})
        await _settle()

        on_insert.assert_awaited_once()
        on_update.assert_not_awaited()
        await manager.close()

    async def test_resubscribe_replaces_channel(self, feed):
        """같은 채널을 다시 구독하면 이전 채널 해제"""
        manager = SubscriptionManager(feed)
        first = await manager.subscribe("safety_alerts", ["INSERT"], ChangeHandlers())
        second = await manager.subscribe("safety_alerts", ["INSERT"], ChangeHandlers())

        assert first.mode == "closed"
        assert second.active
        assert list(manager.channels) == ["realtime:safety_alerts"]
        assert feed.listener_count("safety_alerts") == 1
        await manager.close()

    async def test_unsubscribe_releases_listener(self, feed):
        manager = SubscriptionManager(feed)
        sub = await manager.subscribe("safety_alerts", ["INSERT"], ChangeHandlers())
        await sub.unsubscribe()
        assert feed.listener_count("safety_alerts") == 0
        assert manager.channels == {}

    async def test_handler_error_keeps_channel_open(self, feed):
        on_insert = AsyncMock(side_effect=[RuntimeError("boom"), None])
        manager = SubscriptionManager(feed)
        sub = await manager.subscribe("safety_alerts", ["INSERT"], ChangeHandlers(on_insert=on_insert))

        feed.publish("safety_alerts", "INSERT", {"id": "a-1"})
        feed.publish("safety_alerts", "INSERT", {"id": "a-2"})
        await _settle()

        assert on_insert.await_count == 2
        assert sub.mode == "realtime"
        await manager.close()

    async def test_broken_stream_falls_back_to_polling(self, feed):
        """스트림이 끊기면 주기적 재조회로 전환"""
        on_poll = AsyncMock()
        manager = SubscriptionManager(feed, poll_interval_sec=0.01)
        sub = await manager.subscribe("safety_alerts", ["INSERT"], ChangeHandlers(on_poll=on_poll))

        feed.break_stream("safety_alerts")
        await _wait_until(lambda: on_poll.await_count >= 2)

        assert sub.mode == "polling"
        await sub.unsubscribe()
        assert sub.mode == "closed"


class TestAlertFeedSync:
    """AlertFeedSync 테스트"""

    async def test_initial_load_and_live_insert(self, store):
        await store.insert_safety_alert(_alert_row(title="Existing"))
        sync = AlertFeedSync(store, SubscriptionManager(store.feed), limit=10)
        view = await sync.start()
        assert [a.title for a in view.items] == ["Existing"]

        created = await store.insert_safety_alert(_alert_row(title="Pushed"))
        await _wait_until(lambda: view.get(created.id) is not None)

        assert len(view.items) == 2
        await sync.stop()

    async def test_live_update_merges(self, store, clock):
        created = await store.insert_safety_alert(_alert_row())
        sync = AlertFeedSync(store, SubscriptionManager(store.feed))
        view = await sync.start()

        clock.advance(seconds=30)
        await store.update_safety_alert(created.id, {"status": "investigating", "updated_at": clock()})
        await _wait_until(lambda: view.get(created.id).status == "investigating")
        await sync.stop()

    async def test_filtered_view_ignores_other_severities(self, store):
        sync = AlertFeedSync(store, SubscriptionManager(store.feed),
                             filters=AlertFilters(severity="critical"))
        view = await sync.start()
        await store.insert_safety_alert(_alert_row(severity="low"))
        await _settle()
        assert view.items == []
        await sync.stop()

    async def test_polling_fallback_reloads_view(self, store):
        manager = SubscriptionManager(store.feed, poll_interval_sec=0.01)
        sync = AlertFeedSync(store, manager)
        view = await sync.start()

        store.feed.break_stream("safety_alerts")
        await _settle()
        # 스트림이 끊긴 뒤 저장된 행도 폴링으로 반영
        created = await store.insert_safety_alert(_alert_row(title="Missed"))
        await _wait_until(lambda: view.get(created.id) is not None)

        assert sync.subscription.mode == "polling"
        await sync.stop()


def _panic_row(**kw):
    data = {"user_id": "user-a", "situation_type": "fire",
            "latitude": 6.5, "longitude": 3.4, "is_resolved": False}
    data.update(kw)
    return data


class TestPanicFeedSync:
    """PanicFeedSync 테스트"""

    async def test_own_panics_only(self, store):
        await store.insert_panic_event(_panic_row())
        sync = PanicFeedSync(store, SubscriptionManager(store.feed), "user-a")
        view = await sync.start()
        assert len(view.items) == 1

        other = await store.insert_panic_event(_panic_row(user_id="user-b"))
        mine = await store.insert_panic_event(_panic_row(situation_type="break_in"))
        await _wait_until(lambda: view.get(mine.id) is not None)

        assert view.get(other.id) is None
        assert list(sync.manager.channels) == ["realtime:panic_alerts"]
        await sync.stop()

    async def test_resolution_pushed_as_update(self, store, clock):
        panic = await store.insert_panic_event(_panic_row())
        sync = PanicFeedSync(store, SubscriptionManager(store.feed), "user-a")
        view = await sync.start()

        clock.advance(minutes=1)
        await store.update_panic_event(panic.id, {
            "is_resolved": True, "resolved_at": clock(), "resolved_by": "user-a",
            "updated_at": clock(),
        })
        await _wait_until(lambda: view.get(panic.id).is_resolved)

        assert view.get(panic.id).resolved_by == "user-a"
        await sync.stop()


class TestResponseFeedSync:
    """ResponseFeedSync 테스트"""

    async def test_responses_for_one_alert(self, store):
        alert = await store.insert_safety_alert(_alert_row())
        other = await store.insert_safety_alert(_alert_row(title="Other"))
        await store.insert_alert_response({"alert_id": alert.id, "user_id": "user-a",
                                           "response_type": "status_update", "comment": "first"})

        sync = ResponseFeedSync(store, SubscriptionManager(store.feed), alert.id)
        view = await sync.start()
        assert [r.comment for r in view.items] == ["first"]

        await store.insert_alert_response({"alert_id": other.id, "user_id": "user-a",
                                           "response_type": "status_update", "comment": "elsewhere"})
        pushed = await store.insert_alert_response({"alert_id": alert.id, "user_id": "user-b",
                                                    "response_type": "status_update",
                                                    "comment": "second"})
        await _wait_until(lambda: view.get(pushed.id) is not None)

        assert sorted(r.comment for r in view.items) == ["first", "second"]
        await sync.stop()

    async def test_all_three_tables_on_one_manager(self, store):
        """세션 하나에서 세 테이블 채널을 함께 유지"""
        alert = await store.insert_safety_alert(_alert_row())
        manager = SubscriptionManager(store.feed)
        syncs = [AlertFeedSync(store, manager), PanicFeedSync(store, manager, "user-a"),
                 ResponseFeedSync(store, manager, alert.id)]
        for sync in syncs:
            await sync.start()

        assert sorted(manager.channels) == [
            "realtime:alert_responses", "realtime:panic_alerts", "realtime:safety_alerts",
        ]
        await manager.close()
        assert manager.channels == {}
