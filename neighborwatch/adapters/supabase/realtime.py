"""
Supabase realtime adapter for NeighborWatch.

Speaks the Phoenix channel protocol over an aiohttp websocket and
turns postgres_changes messages into ChangeEvent objects. A closed or
rejected channel raises DependencyError; reconnecting is left to the
caller, which falls back to polling.
"""

import asyncio
import itertools
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
from pydantic import ValidationError

from neighborwatch.core.errors import DependencyError
from neighborwatch.core.models import ChangeEvent
from neighborwatch.observability.logging_setup import get_logger

log = get_logger("neighborwatch.supabase.realtime")

HEARTBEAT_TOPIC = "phoenix"


def topic_for(table: str, schema: str = "public") -> str:
    return f"realtime:{schema}:{table}"


def join_message(table: str, ref: str, access_token: Optional[str] = None,
                 schema: str = "public") -> Dict[str, Any]:
    """채널 가입 메시지"""
    payload: Dict[str, Any] = {
        "config": {
            "postgres_changes": [{"event": "*", "schema": schema, "table": table}],
        },
    }
    if access_token:
        payload["access_token"] = access_token
    return {"topic": topic_for(table, schema), "event": "phx_join", "payload": payload, "ref": ref}


def parse_message(message: Dict[str, Any], table: str) -> Optional[ChangeEvent]:
    """
    수신 메시지를 변경 이벤트로 변환합니다.

    Returns:
        ChangeEvent 또는 변경 이벤트가 아니면 None

    Raises:
        DependencyError: 채널 가입 거부, 채널 종료/오류
    """
    event = message.get("event")
    payload = message.get("payload") or {}

    if event == "phx_reply":
        if payload.get("status") not in (None, "ok"):
            raise DependencyError(f"realtime join rejected for {table}: {payload.get('response')}")
        return None
    if event in ("phx_close", "phx_error"):
        raise DependencyError(f"realtime channel {event} for {table}")
    if event == "system":
        if payload.get("status") == "error":
            raise DependencyError(f"realtime channel error for {table}: {payload.get('message')}")
        return None
    if event != "postgres_changes":
        return None

    data = payload.get("data") or {}
    try:
        return ChangeEvent(
            table=data.get("table", table),
            event_type=data.get("type") or data.get("eventType"),
            record=data.get("record") or {},
            old_record=data.get("old_record"),
            commit_timestamp=data.get("commit_timestamp"),
        )
    except ValidationError as e:
        log.warning(f"알 수 없는 실시간 메시지 무시 table:{table} error:{e}")
        return None


class SupabaseRealtime:
    """Phoenix 웹소켓 변경 피드"""

    def __init__(self, base_url: str, api_key: str, *,
                 access_token: Optional[str] = None,
                 heartbeat_sec: float = 30.0):
        """
        초기화합니다.

        Args:
            base_url: 프로젝트 URL
            api_key: anon 키
            access_token: 사용자 세션 토큰 (RLS 적용)
            heartbeat_sec: 하트비트 주기 (초)
        """
        ws_base = base_url.rstrip('/').replace("https://", "wss://").replace("http://", "ws://")
        self.url = f"{ws_base}/realtime/v1/websocket?apikey={api_key}&vsn=1.0.0"
        self.access_token = access_token
        self.heartbeat_sec = heartbeat_sec
        self._refs = itertools.count(1)

    async def _heartbeat(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_sec)
            await ws.send_json({
                "topic": HEARTBEAT_TOPIC, "event": "heartbeat",
                "payload": {}, "ref": str(next(self._refs)),
            })

    async def listen(self, table: str) -> AsyncIterator[ChangeEvent]:
        session = aiohttp.ClientSession()
        try:
            async with session.ws_connect(self.url) as ws:
                await ws.send_json(join_message(table, str(next(self._refs)), self.access_token))
                log.info(f"실시간 채널 가입 요청 table:{table}")
                heartbeat = asyncio.create_task(self._heartbeat(ws))
                try:
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            event = parse_message(msg.json(), table)
                            if event is not None:
                                yield event
                        elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                            break
                finally:
                    heartbeat.cancel()
            raise DependencyError(f"realtime socket closed for {table}")
        except aiohttp.ClientError as e:
            raise DependencyError(f"realtime connection failed for {table}: {e}") from e
        finally:
            await session.close()
