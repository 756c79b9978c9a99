"""
Supabase HTTP client for NeighborWatch.

This module provides a thin aiohttp client for the PostgREST table
API, the auth user endpoint and edge function invocation. Transport
failures are translated into the NeighborWatch error taxonomy here so
nothing above the adapter layer sees aiohttp exceptions.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import aiohttp

from neighborwatch.common.retry import retry_read
from neighborwatch.core.errors import (
    DependencyError, NeighborWatchError, NotFoundError,
    PermissionDeniedError, ValidationFailedError,
)
from neighborwatch.observability.logging_setup import get_logger

log = get_logger("neighborwatch.supabase")

Params = Union[Dict[str, str], Sequence[Tuple[str, str]]]


class SupabaseClient:
    """Supabase REST/Auth/Functions 클라이언트"""

    def __init__(self,
                 base_url: str,
                 api_key: str,
                 *,
                 access_token: Optional[str] = None,
                 timeout: int = 10,
                 read_max_retries: int = 3):
        """
        초기화합니다.

        Args:
            base_url: 프로젝트 URL
            api_key: anon 또는 service role 키
            access_token: 사용자 세션 토큰 (없으면 api_key 사용)
            timeout: 요청 타임아웃 (초)
            read_max_retries: 읽기 요청 재시도 횟수
        """
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self.read_max_retries = read_max_retries
        self.session: Optional[aiohttp.ClientSession] = None

        log.info("Supabase 클라이언트 초기화됨")

    async def __aenter__(self):
        """비동기 컨텍스트 매니저 진입"""
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """비동기 컨텍스트 매니저 종료"""
        await self.close()

    async def open(self) -> None:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.access_token or self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def _make_request(self, method: str, path: str, *,
                            params: Optional[Params] = None,
                            json: Any = None,
                            headers: Optional[Dict[str, str]] = None) -> Any:
        """
        API 요청을 한 번 수행합니다.

        Raises:
            NotFoundError / PermissionDeniedError / ValidationFailedError: 4xx 응답
            DependencyError: 네트워크 오류, 5xx 응답
        """
        if not self.session:
            raise RuntimeError("세션이 초기화되지 않았습니다. async with를 사용하세요.")

        url = f"{self.base_url}{path}"
        try:
            async with self.session.request(method, url, params=params, json=json,
                                            headers=headers) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise self._error_for(response.status, path, body)
                if response.status == 204:
                    return None
                return await response.json(content_type=None)
        except NeighborWatchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.error(f"Supabase 요청 실패 {method} {path} error:{e}")
            raise DependencyError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _error_for(status: int, path: str, body: str) -> NeighborWatchError:
        log.warning(f"Supabase 오류 응답 status:{status} path:{path} body:{body[:200]}")
        if status in (401, 403):
            return PermissionDeniedError(f"{path} rejected ({status}): {body}")
        if status == 404:
            return NotFoundError("resource", path)
        if status in (400, 409, 422):
            return ValidationFailedError(f"{path} rejected ({status}): {body}")
        return DependencyError(f"{path} failed ({status}): {body}", transient=status >= 500)

    # ---- PostgREST ----

    async def select(self, table: str, params: Params) -> List[Dict[str, Any]]:
        """테이블 조회 (일시적 오류는 재시도)"""
        async def _request():
            return await self._make_request("GET", f"/rest/v1/{table}", params=params)

        def _transient(e: BaseException) -> bool:
            return isinstance(e, DependencyError) and e.transient

        rows = await retry_read(
            _request,
            max_retries=self.read_max_retries,
            retry_on=(DependencyError,),
            should_retry=_transient,
            label=f"select {table}",
        )
        return rows or []

    async def insert(self, table: str, rows: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        """행 삽입 (재시도하지 않음)"""
        result = await self._make_request(
            "POST", f"/rest/v1/{table}", json=rows,
            headers={"Prefer": "return=representation"},
        )
        return result or []

    async def update(self, table: str, params: Params, changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        """조건에 맞는 행 수정 (재시도하지 않음)"""
        result = await self._make_request(
            "PATCH", f"/rest/v1/{table}", params=params, json=changes,
            headers={"Prefer": "return=representation"},
        )
        return result or []

    # ---- Auth / Functions ----

    async def get_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._make_request(
                "GET", "/auth/v1/user",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except PermissionDeniedError:
            return None

    async def invoke(self, function: str, payload: Dict[str, Any], *,
                     access_token: Optional[str] = None) -> Any:
        """
        엣지 함수 호출 (재시도하지 않음)

        Args:
            function: 함수 이름
            payload: 요청 본문
            access_token: 호출 사용자 세션 토큰 (있으면 Authorization 헤더를 대체)
        """
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        return await self._make_request("POST", f"/functions/v1/{function}", json=payload,
                                        headers=headers)
