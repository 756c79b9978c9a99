"""
Realtime sync client for NeighborWatch.

Owns the realtime channels of one client session. Each channel
listens to a table's change stream and, when the stream breaks,
falls back to re-running the full list query at a fixed interval.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from neighborwatch.core.models import AlertFilters, AlertResponse, ChangeEvent, PanicEvent, SafetyAlert
from neighborwatch.features.alert_view import AlertListView, EntityListView
from neighborwatch.observability import metrics
from neighborwatch.observability.logging_setup import get_logger
from neighborwatch.ports.realtime import ChangeFeedPort
from neighborwatch.ports.store import AlertStorePort

log = get_logger("neighborwatch.realtime")

EventHandler = Callable[[ChangeEvent], Awaitable[None]]
PollHandler = Callable[[], Awaitable[None]]

DEFAULT_POLL_INTERVAL_SEC = 30.0


class ChangeHandlers:
    """채널 이벤트 핸들러 묶음"""

    def __init__(self, *, on_insert: Optional[EventHandler] = None,
                 on_update: Optional[EventHandler] = None,
                 on_delete: Optional[EventHandler] = None,
                 on_poll: Optional[PollHandler] = None):
        self.on_insert = on_insert
        self.on_update = on_update
        self.on_delete = on_delete
        self.on_poll = on_poll

    def for_event(self, event_type: str) -> Optional[EventHandler]:
        return {
            "INSERT": self.on_insert,
            "UPDATE": self.on_update,
            "DELETE": self.on_delete,
        }.get(event_type)


class Subscription:
    """테이블 하나에 대한 실시간 채널"""

    def __init__(self, manager: "SubscriptionManager", table: str, events: Iterable[str],
                 handlers: ChangeHandlers, poll_interval_sec: float):
        self.manager = manager
        self.table = table
        self.channel = f"realtime:{table}"
        self.events = set(events)
        self.handlers = handlers
        self.poll_interval_sec = poll_interval_sec
        self.mode = "pending"
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=self.channel)
        self.mode = "realtime"

    async def unsubscribe(self) -> None:
        """채널과 폴링 루프를 정리합니다."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self.mode = "closed"
        self.manager._forget(self)
        log.info(f"실시간 채널 해제 channel:{self.channel}")

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        try:
            async for event in self.manager.feed.listen(self.table):
                if event.event_type not in self.events:
                    continue
                await self._dispatch(event)
            log.warning(f"실시간 스트림 종료 channel:{self.channel}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(f"실시간 스트림 오류, 폴링으로 전환 channel:{self.channel} error:{e}")
        metrics.realtime_fallbacks.labels(table=self.table).inc()
        self.mode = "polling"
        await self._poll_forever()

    async def _dispatch(self, event: ChangeEvent) -> None:
        handler = self.handlers.for_event(event.event_type)
        if handler is None:
            return
        metrics.realtime_events.labels(table=self.table, event=event.event_type).inc()
        try:
            await handler(event)
        except Exception as e:
            # 핸들러 오류로 채널을 닫지 않음
            log.error(f"실시간 핸들러 오류 channel:{self.channel} event:{event.event_type} error:{e}")

    async def _poll_forever(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_sec)
            if self.handlers.on_poll is None:
                continue
            try:
                await self.handlers.on_poll()
            except Exception as e:
                log.error(f"폴링 조회 실패 channel:{self.channel} error:{e}")


class SubscriptionManager:
    """세션별 실시간 채널 소유자"""

    def __init__(self, feed: ChangeFeedPort, *, poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC):
        self.feed = feed
        self.poll_interval_sec = poll_interval_sec
        self._subscriptions: Dict[str, Subscription] = {}

    @property
    def channels(self) -> Dict[str, Subscription]:
        return dict(self._subscriptions)

    async def subscribe(self, table: str, events: Iterable[str], handlers: ChangeHandlers,
                        poll_interval_sec: Optional[float] = None) -> Subscription:
        """
        테이블 채널을 엽니다. 같은 채널이 있으면 교체합니다.

        Args:
            table: 테이블 이름
            events: 받을 이벤트 유형 (INSERT/UPDATE/DELETE)
            handlers: 이벤트 핸들러
            poll_interval_sec: 폴링 폴백 주기

        Returns:
            Subscription
        """
        channel = f"realtime:{table}"
        existing = self._subscriptions.get(channel)
        if existing is not None:
            log.info(f"기존 채널 교체 channel:{channel}")
            await existing.unsubscribe()

        sub = Subscription(self, table, events, handlers,
                           poll_interval_sec or self.poll_interval_sec)
        self._subscriptions[channel] = sub
        sub.start()
        metrics.active_subscriptions.set(len(self._subscriptions))
        # 리스너가 등록될 때까지 한 번 양보
        await asyncio.sleep(0)
        log.info(f"실시간 채널 구독 channel:{channel} events:{sorted(sub.events)}")
        return sub

    def _forget(self, sub: Subscription) -> None:
        if self._subscriptions.get(sub.channel) is sub:
            del self._subscriptions[sub.channel]
        metrics.active_subscriptions.set(len(self._subscriptions))

    async def close(self) -> None:
        """모든 채널을 해제합니다."""
        for sub in list(self._subscriptions.values()):
            await sub.unsubscribe()


class TableFeedSync:
    """
    목록 뷰와 테이블 실시간 채널을 연결합니다.

    INSERT는 전체 행을 다시 읽어 삽입하고, UPDATE는 푸시된 부분
    레코드를 얕게 병합하며, 폴링 폴백은 전체 목록을 다시 읽습니다.
    """

    table: str = ""
    events: Tuple[str, ...] = ("INSERT", "UPDATE")

    def __init__(self, store: AlertStorePort, manager: SubscriptionManager,
                 view: EntityListView):
        self.store = store
        self.manager = manager
        self.view = view
        self.view.fetch = self._fetch
        self.subscription: Optional[Subscription] = None

    async def _fetch(self) -> List[Any]:
        raise NotImplementedError

    async def _fetch_one(self, record: Dict[str, Any]) -> Optional[Any]:
        raise NotImplementedError

    async def start(self) -> EntityListView:
        """초기 목록을 읽고 실시간 채널을 엽니다."""
        await self.view.reload()
        self.subscription = await self.manager.subscribe(
            self.table,
            self.events,
            ChangeHandlers(on_insert=self._on_insert, on_update=self._on_update,
                           on_poll=self.view.reload),
        )
        return self.view

    async def stop(self) -> None:
        if self.subscription is not None:
            await self.subscription.unsubscribe()
            self.subscription = None

    async def _on_insert(self, event: ChangeEvent) -> None:
        if not event.record.get("id"):
            return
        entity = await self._fetch_one(event.record)
        if entity is None:
            log.debug(f"삽입 이벤트 대상 없음 table:{self.table} id:{event.record.get('id')}")
            return
        self.view.apply_insert(entity)

    async def _on_update(self, event: ChangeEvent) -> None:
        self.view.apply_update(event.record)


class AlertFeedSync(TableFeedSync):
    """안전 경보 목록 뷰와 실시간 채널 연결"""

    table = "safety_alerts"

    def __init__(self, store: AlertStorePort, manager: SubscriptionManager, *,
                 filters: Optional[AlertFilters] = None, limit: Optional[int] = None,
                 page_size: int = 50):
        self.filters = filters or AlertFilters()
        self.page_size = limit or page_size
        super().__init__(store, manager, AlertListView(self.filters, limit))

    async def _fetch(self) -> List[SafetyAlert]:
        return await self.store.list_safety_alerts(self.filters, self.page_size)

    async def _fetch_one(self, record: Dict[str, Any]) -> Optional[SafetyAlert]:
        # 작성자 조인을 위해 전체 행을 다시 읽음
        return await self.store.get_safety_alert(record["id"])


class PanicFeedSync(TableFeedSync):
    """사용자 본인의 패닉 이벤트 목록과 실시간 채널 연결"""

    table = "panic_alerts"

    def __init__(self, store: AlertStorePort, manager: SubscriptionManager, user_id: str, *,
                 limit: int = 20):
        self.user_id = user_id
        self.page_size = limit
        view: EntityListView[PanicEvent] = EntityListView(
            limit, accept=lambda panic: panic.user_id == user_id
        )
        super().__init__(store, manager, view)

    async def _fetch(self) -> List[PanicEvent]:
        return await self.store.recent_panic_events(self.user_id, self.page_size)

    async def _fetch_one(self, record: Dict[str, Any]) -> Optional[PanicEvent]:
        if record.get("user_id") not in (None, self.user_id):
            return None
        return await self.store.get_panic_event(record["id"])


class ResponseFeedSync(TableFeedSync):
    """안전 경보 하나의 응답(상태 메모) 목록과 실시간 채널 연결"""

    table = "alert_responses"
    events = ("INSERT",)

    def __init__(self, store: AlertStorePort, manager: SubscriptionManager, alert_id: str):
        self.alert_id = alert_id
        view: EntityListView[AlertResponse] = EntityListView(
            accept=lambda response: response.alert_id == alert_id
        )
        super().__init__(store, manager, view)

    async def _fetch(self) -> List[AlertResponse]:
        return await self.store.list_alert_responses(self.alert_id)

    async def _fetch_one(self, record: Dict[str, Any]) -> Optional[AlertResponse]:
        if record.get("alert_id") not in (None, self.alert_id):
            return None
        for response in await self.store.list_alert_responses(self.alert_id):
            if response.id == record["id"]:
                return response
        return None
