"""Request Queue - 입장 거절된 업스트림 요청을 순차 처리

레이트 리밋에 걸린 요청을 즉시 거절하지 않고 대기열에 넣습니다.
- 워커 1개가 순차 처리 (업스트림은 동시 요청에도 불이익을 줌)
- 꺼낸 시점에 다시 입장 확인 → 거절이면 맨 뒤로 재삽입 후 대기
- 실행 후 짧은 휴식(courtesy delay)을 두고 다음 항목 처리
- 작업은 버려지지 않음: 대기열은 실행 성공/실패로만 줄어듦
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from src.core.exceptions import QueueFullException
from src.core.logging import logger, mask_identity

from .rate_limiter import RateLimiter


@dataclass
class QueuedTask:
    identity: str
    task: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    requeues: int = field(default=0)


def _consume_exception(future: asyncio.Future) -> None:
    # 호출자가 이미 떠난 경우 "exception was never retrieved" 경고 방지
    if not future.cancelled():
        future.exception()


class RequestQueue:
    """단일 워커 FIFO 대기열"""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        *,
        max_size: int = 50,
        courtesy_delay_s: float = 0.05,
        denied_wait_s: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.max_size = max_size
        self.courtesy_delay_s = courtesy_delay_s
        self.denied_wait_s = denied_wait_s
        self._sleep = sleep
        self._items: deque[QueuedTask] = deque()
        self._wakeup = asyncio.Event()
        self._worker: Optional[asyncio.Task] = None
        self.executed_count = 0

    def enqueue(self, identity: str, task: Callable[[], Awaitable[Any]]) -> asyncio.Future:
        """작업 등록 후 결과 Future 반환

        Raises:
            QueueFullException: 대기열이 가득 찬 경우
        """
        if len(self._items) >= self.max_size:
            logger.warning(f"[Queue] Full (depth={len(self._items)}), rejecting identity={mask_identity(identity)}")
            raise QueueFullException(self.max_size)

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        future.add_done_callback(_consume_exception)
        self._items.append(QueuedTask(identity=identity, task=task, future=future))
        self._wakeup.set()
        self.start()
        logger.info(f"[Queue] Enqueued identity={mask_identity(identity)} (depth={len(self._items)})")
        return future

    def start(self) -> None:
        """워커 시작 (이미 실행 중이면 무시)"""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run(), name="request-queue-worker")

    async def stop(self) -> None:
        """워커 중지 + 대기 중인 Future 취소"""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        while self._items:
            item = self._items.popleft()
            if not item.future.done():
                item.future.cancel()

    @property
    def depth(self) -> int:
        return len(self._items)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def _run(self) -> None:
        while True:
            if not self._items:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            item = self._items.popleft()

            # 대기 중에 입장 가능해졌는지 다시 확인
            if not self.rate_limiter.admit(item.identity):
                item.requeues += 1
                self._items.append(item)
                logger.debug(
                    f"[Queue] Still denied, requeued identity={mask_identity(item.identity)} "
                    f"(requeues={item.requeues}, depth={len(self._items)})"
                )
                await self._sleep(self.denied_wait_s)
                continue

            try:
                result = await item.task()
            except asyncio.CancelledError:
                # 워커 중지: 이미 대기열에서 빠진 항목이므로 여기서 호출자에게 알림
                if not item.future.done():
                    item.future.cancel()
                raise
            except Exception as e:
                logger.warning(f"[Queue] Task failed: identity={mask_identity(item.identity)}, error={type(e).__name__}: {e}")
                if not item.future.done():
                    item.future.set_exception(e)
            else:
                if not item.future.done():
                    item.future.set_result(result)
            finally:
                self.executed_count += 1

            if self.courtesy_delay_s > 0:
                await self._sleep(self.courtesy_delay_s)

    def __repr__(self) -> str:
        return f"RequestQueue(depth={len(self._items)}/{self.max_size}, running={self.is_running})"
