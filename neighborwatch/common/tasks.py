"""
Background task registry for NeighborWatch.

Side effects that must outlive their caller (for example the
delivery function call after a panic) are spawned here. The registry
keeps a strong reference to every task, logs failures when the task
finishes and can be drained at shutdown.
"""

import asyncio
from typing import Awaitable, Optional, Set

from neighborwatch.observability import metrics
from neighborwatch.observability.logging_setup import get_logger

log = get_logger("neighborwatch.tasks")


class BackgroundTasks:
    """fire-and-forget 태스크 레지스트리"""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self.failures = 0

    def spawn(self, coro: Awaitable, *, name: Optional[str] = None) -> asyncio.Task:
        """
        코루틴을 태스크로 실행하고 완료 시 결과를 기록합니다.

        Args:
            coro: 실행할 코루틴
            name: 로그용 태스크 이름

        Returns:
            생성된 태스크
        """
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        metrics.background_tasks.set(len(self._tasks))
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        metrics.background_tasks.set(len(self._tasks))
        if task.cancelled():
            log.debug(f"백그라운드 태스크 취소됨 name:{task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            self.failures += 1
            log.error(f"백그라운드 태스크 실패 name:{task.get_name()} error:{exc!r}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        실행 중인 태스크가 끝날 때까지 기다립니다.

        시간 초과 시 남은 태스크를 취소합니다.
        """
        if not self._tasks:
            return
        tasks = list(self._tasks)
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            log.warning(f"종료 시 미완료 태스크 취소 count:{len(still_running)}")
            await asyncio.gather(*still_running, return_exceptions=True)
