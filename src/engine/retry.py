"""Retry Policy - 점진적 타임아웃 재시도 + stale 폴백

시도마다 더 긴 타임아웃을 부여합니다 (예: 12s → 18s → 28s → 36s).
업스트림이 정상일 때는 빨리 끝내고, 가끔 느린 렌더링도 견딜 수 있도록 합니다.

- 일시 오류(타임아웃, 요소 없음): 백오프 후 재시도
- 리소스 사망(브라우저 연결 끊김): 재생성 후 재시도
- 브라우저 실행 실패: 다음 시도에서 다시 실행, 소진되면 다른 업스트림 장애와 동일하게 처리
- 재시도 소진: fallback 값(만료된 캐시 포함)이 있으면 stale로 반환, 없으면 최종 실패
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from src.core.exceptions import (
    BrowserLaunchException,
    ResourceDeadException,
    UpstreamException,
    UpstreamUnavailableException,
)
from src.core.logging import logger


T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    """재시도 실행 결과

    Attributes:
        value: 결과 값 (stale이면 폴백 값)
        attempts: 실제 시도 횟수
        timeouts: 각 시도에 부여한 타임아웃 (초)
        stale: 폴백 값 여부
        last_error: 마지막 실패 원인 (성공 시 None)
    """

    value: T
    attempts: int
    timeouts: list[float] = field(default_factory=list)
    stale: bool = False
    last_error: Optional[BaseException] = None


@dataclass(frozen=True)
class RetryPolicy:
    """재시도 정책 값 객체 (동작 차이는 설정으로 표현)

    Usage:
        policy = RetryPolicy(max_attempts=4, timeout_schedule_s=(12.0, 18.0, 28.0, 36.0))
        outcome = await policy.execute(
            lambda timeout_s: fetch(timeout_s),
            fallback=lambda: cache.get_stale(key),
            on_resource_dead=browser.recreate,
        )
    """

    max_attempts: int = 4
    timeout_schedule_s: tuple[float, ...] = (12.0, 18.0, 28.0, 36.0)
    backoff_s: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (UpstreamException, BrowserLaunchException, asyncio.TimeoutError)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False, compare=False)

    def __post_init__(self):
        """설정 검증"""
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if not self.timeout_schedule_s:
            raise ValueError("timeout_schedule_s must not be empty")
        if self.timeout_schedule_s[0] <= 0:
            raise ValueError("timeouts must be positive")
        schedule = self.timeout_schedule_s
        if any(b <= a for a, b in zip(schedule, schedule[1:])):
            raise ValueError(f"timeout_schedule_s must be strictly increasing: {schedule}")
        if self.backoff_s < 0:
            raise ValueError("backoff_s must be >= 0")

    def timeout_for(self, attempt: int) -> float:
        """attempt(1부터)번째 시도의 타임아웃 (초)

        스케줄보다 시도 횟수가 많으면 마지막 증가폭으로 계속 늘립니다.
        """
        if attempt < 1:
            raise ValueError("attempt starts at 1")
        schedule = self.timeout_schedule_s
        if attempt <= len(schedule):
            return schedule[attempt - 1]
        step = schedule[-1] - schedule[-2] if len(schedule) > 1 else schedule[-1]
        return schedule[-1] + step * (attempt - len(schedule))

    def backoff_for(self, attempt: int) -> float:
        """attempt번째 실패 후 대기 시간 (초): attempt * backoff_s"""
        return attempt * self.backoff_s

    async def execute(
        self,
        operation: Callable[[float], Awaitable[T]],
        *,
        fallback: Optional[Callable[[], Optional[T]]] = None,
        on_resource_dead: Optional[Callable[[], Awaitable[None]]] = None,
        label: str = "upstream",
    ) -> RetryOutcome[T]:
        """operation(timeout_s)을 재시도 정책에 따라 실행

        Args:
            operation: 타임아웃(초)을 받아 결과를 반환하는 코루틴 함수
            fallback: 재시도 소진 시 사용할 값 공급자 (None 반환 시 폴백 없음)
            on_resource_dead: ResourceDeadException 발생 시 다음 시도 전에 호출
            label: 로그용 이름

        Returns:
            RetryOutcome: 성공 결과 또는 stale 폴백

        Raises:
            UpstreamUnavailableException: 재시도 소진 + 폴백 없음
            Exception: 재시도 대상이 아닌 예외는 그대로 전파
        """
        timeouts: list[float] = []
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            timeout_s = self.timeout_for(attempt)
            timeouts.append(timeout_s)

            try:
                value = await asyncio.wait_for(operation(timeout_s), timeout=timeout_s)
                if attempt > 1:
                    logger.info(f"[Retry] {label} succeeded on attempt {attempt}/{self.max_attempts}")
                return RetryOutcome(value=value, attempts=attempt, timeouts=timeouts)
            except ResourceDeadException as e:
                last_error = e
                logger.warning(f"[Retry] {label} attempt {attempt}/{self.max_attempts}: resource dead ({e})")
                if on_resource_dead is not None and attempt < self.max_attempts:
                    try:
                        await on_resource_dead()
                    except Exception as recreate_err:
                        logger.error(
                            f"[Retry] Resource recreation failed: {type(recreate_err).__name__}: {recreate_err}"
                        )
            except self.retry_on as e:
                last_error = e
                logger.warning(
                    f"[Retry] {label} attempt {attempt}/{self.max_attempts} failed "
                    f"(timeout={timeout_s:.1f}s): {type(e).__name__}: {e}"
                )

            if attempt < self.max_attempts:
                wait_s = self.backoff_for(attempt)
                if wait_s > 0:
                    logger.info(f"[Retry] Retrying {label} in {wait_s:.1f}s...")
                    await self.sleep(wait_s)

        if fallback is not None:
            stale_value = fallback()
            if stale_value is not None:
                logger.warning(f"[Retry] {label} exhausted after {self.max_attempts} attempts, serving STALE value")
                return RetryOutcome(
                    value=stale_value,
                    attempts=self.max_attempts,
                    timeouts=timeouts,
                    stale=True,
                    last_error=last_error,
                )

        logger.error(f"[Retry] {label} exhausted after {self.max_attempts} attempts, no fallback available")
        raise UpstreamUnavailableException(
            attempts=self.max_attempts,
            last_error=last_error,
            retry_after_s=max(1.0, self.backoff_for(1)),
        )
