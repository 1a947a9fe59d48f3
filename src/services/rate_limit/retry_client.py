"""
Provider 调用的速率限制与重试

- RetryPolicy: 重试策略值对象（最大尝试次数 + 指数退避）
- with_retry: 通用重试组合子
- SlidingWindowRateLimiter: 60 秒滑动窗口限流器
- RateLimitedRetryClient: 限流 + 仅对限流错误重试

并发约束：
滑动窗口的"检查容量 + 记录时间戳"在 try_acquire 中同步完成，中间没有 await，
并发请求只能在挂起点交错，因此不会出现两个请求同时看到剩余容量而超出上限。
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, TypeVar

from src.config.settings import config
from src.core.error_utils import extract_error_message, is_rate_limit_error
from src.core.exceptions import RateLimitExceeded
from src.core.logger import logger

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """重试策略"""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """第 attempt 次失败后的退避时间：min(base × 2^attempt, max)"""
        return min(self.base_delay * (2**attempt), self.max_delay)

    @classmethod
    def from_config(cls) -> RetryPolicy:
        return cls(
            max_attempts=config.provider_max_attempts,
            base_delay=config.provider_backoff_base_seconds,
            max_delay=config.provider_backoff_max_seconds,
        )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = lambda _: True,
    sleep: SleepFunc = asyncio.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """
    按策略执行 operation

    失败且 should_retry 为真、还有剩余次数时退避后重试；
    否则原样抛出最后一次的异常。
    错误带有更大的 retry_after（如 429 的 Retry-After）时按它等待，仍受 max_delay 限制。
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            attempt += 1
            if attempt >= policy.max_attempts or not should_retry(e):
                raise

            delay = policy.delay_for(attempt)
            retry_after = getattr(e, "retry_after", None)
            if isinstance(retry_after, (int, float)) and retry_after > delay:
                delay = min(float(retry_after), policy.max_delay)

            if on_retry is not None:
                on_retry(attempt, e, delay)
            await sleep(delay)


class SlidingWindowRateLimiter:
    """滑动窗口限流器（窗口内最多 max_requests 个请求）"""

    def __init__(
        self,
        max_requests: int | None = None,
        window_seconds: float | None = None,
        buffer_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.max_requests = max(1, max_requests or config.provider_requests_per_minute)
        self.window_seconds = window_seconds or config.provider_rate_window_seconds
        self.buffer_seconds = (
            buffer_seconds if buffer_seconds is not None else config.provider_rate_buffer_seconds
        )
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def try_acquire(self) -> float | None:
        """
        同步尝试占用一个名额

        Returns:
            None 表示已占用（时间戳已记录）；否则返回需要等待的秒数
        """
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) < self.max_requests:
            self._timestamps.append(now)
            return None
        return max(0.0, self._timestamps[0] + self.window_seconds - now + self.buffer_seconds)

    async def acquire(self) -> None:
        """等待直到占用一个名额"""
        while True:
            wait = self.try_acquire()
            if wait is None:
                return
            logger.warning(
                "[RATE-LIMIT] 已达上限 {}/{}s，等待 {:.1f}s",
                self.max_requests,
                int(self.window_seconds),
                wait,
            )
            await self._sleep(wait)

    def current_usage(self) -> int:
        """当前窗口内的请求数"""
        self._prune(self._clock())
        return len(self._timestamps)

    def reset(self) -> None:
        self._timestamps.clear()


class RateLimitedRetryClient:
    """
    限流重试客户端

    每次尝试前先经过滑动窗口限流；仅对限流形态的错误（429 / 消息匹配）按指数退避重试，
    其他错误立即传播。限流重试耗尽后抛出 RateLimitExceeded。
    """

    def __init__(
        self,
        limiter: SlidingWindowRateLimiter | None = None,
        policy: RetryPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
        name: str = "provider",
    ) -> None:
        self.limiter = limiter or SlidingWindowRateLimiter(sleep=sleep)
        self.policy = policy or RetryPolicy.from_config()
        self.name = name
        self._sleep = sleep

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
    ) -> T:
        policy = self.policy
        if max_attempts is not None:
            policy = replace(policy, max_attempts=max(1, max_attempts))

        async def attempt() -> T:
            await self.limiter.acquire()
            return await operation()

        def log_retry(attempt_no: int, error: BaseException, delay: float) -> None:
            logger.warning(
                "[RATE-LIMIT] {} 被限流，第 {}/{} 次尝试失败，{:.1f}s 后重试",
                self.name,
                attempt_no,
                policy.max_attempts,
                delay,
            )

        try:
            return await with_retry(
                attempt,
                policy,
                should_retry=is_rate_limit_error,
                sleep=self._sleep,
                on_retry=log_retry,
            )
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            logger.error(
                "[RATE-LIMIT] {} 限流重试耗尽（{} 次）: {}",
                self.name,
                policy.max_attempts,
                extract_error_message(e),
            )
            raise RateLimitExceeded(
                f"{self.name} rate limit exceeded after {policy.max_attempts} attempts",
                retry_after=getattr(e, "retry_after", None),
                attempts=policy.max_attempts,
                upstream_response=extract_error_message(e),
            ) from e

    def current_usage(self) -> int:
        return self.limiter.current_usage()

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "current_usage": self.limiter.current_usage(),
            "max_requests": self.limiter.max_requests,
            "window_seconds": self.limiter.window_seconds,
            "max_attempts": self.policy.max_attempts,
        }

    def reset(self) -> None:
        self.limiter.reset()
