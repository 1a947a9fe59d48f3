"""
主备降级编排器

一次逻辑请求的状态流转：

    HealthGate
      ├─ 主服务已知不健康 ──────────────────────────────┐（预判降级）
      └─ AttemptingPrimary(1..N) ─ 成功 ─> Succeeded(primary)
              └─ 第 N 次失败 ─> AttemptingSecondary <─┘
                                  ├─ 成功 ─> Succeeded(secondary, enhanced)
                                  └─ 失败 ─> BothProvidersFailed

同一请求内的 Provider 尝试严格串行，不会并发竞速。
主服务的单次尝试经过 RateLimitedRetryClient（限流 + 429 重试），
两次尝试之间按 min(1s × 2^(n-1), 5s) 退避。
中间失败不会暴露给调用方，只有主备都失败时才抛出 BothProvidersFailed。
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

from src.config.constants import FallbackDefaults
from src.config.settings import config
from src.core.error_utils import extract_error_message
from src.core.exceptions import BothProvidersFailed
from src.core.logger import logger
from src.models.monitoring import FallbackStats, ProviderHealthView, ReliabilitySummary
from src.models.research import (
    ContentClass,
    FallbackResult,
    ProviderRole,
    RequesterContext,
)
from src.services.health.monitor import HealthMonitor
from src.services.health.provider_health import ProviderHealthRegistry
from src.services.orchestration.enhancer import (
    calculate_quality_score,
    enhance_result,
    operation_kind_for,
)
from src.services.rate_limit.retry_client import RateLimitedRetryClient, RetryPolicy

T = TypeVar("T")


@dataclass
class FallbackConfig:
    """降级配置"""

    enabled: bool = True
    fallback_after_attempts: int = 2
    preserve_quality: bool = True
    log_fallbacks: bool = True

    @classmethod
    def from_config(cls) -> FallbackConfig:
        return cls(
            enabled=config.fallback_enabled,
            fallback_after_attempts=config.fallback_after_attempts,
            preserve_quality=config.fallback_preserve_quality,
            log_fallbacks=FallbackDefaults.LOG_FALLBACKS,
        )


@dataclass
class _Counters:
    total_requests: int = 0
    primary_successes: int = 0
    fallbacks_used: int = 0
    preemptive_fallbacks: int = 0
    failures: int = 0


class FallbackOrchestrator:
    """主备降级编排器"""

    def __init__(
        self,
        retry_client: RateLimitedRetryClient | None = None,
        health: ProviderHealthRegistry | None = None,
        monitor: HealthMonitor | None = None,
        fallback_config: FallbackConfig | None = None,
        backoff: RetryPolicy | None = None,
        recovery_probe_seconds: float | None = None,
        attempt_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self.retry_client = retry_client or RateLimitedRetryClient(sleep=sleep, name="primary")
        self.health = health or ProviderHealthRegistry(clock=clock)
        self.monitor = monitor
        self.config = fallback_config or FallbackConfig.from_config()
        self.backoff = backoff or RetryPolicy(
            max_attempts=self.config.fallback_after_attempts,
            base_delay=FallbackDefaults.RETRY_BACKOFF_BASE_SECONDS,
            max_delay=config.fallback_retry_backoff_max_seconds,
        )
        self.recovery_probe_seconds = (
            recovery_probe_seconds
            if recovery_probe_seconds is not None
            else config.fallback_recovery_probe_seconds
        )
        self.attempt_timeout = attempt_timeout
        self._counters = _Counters()

    # ==================== 主流程 ====================

    async def execute_with_fallback(
        self,
        primary_op: Callable[[], Awaitable[T]],
        fallback_op: Callable[[], Awaitable[T]],
        context: RequesterContext,
        content_class: str = ContentClass.GENERAL,
        source_summary: ReliabilitySummary | None = None,
    ) -> FallbackResult[T]:
        """
        执行主服务调用，必要时降级到备用服务

        Args:
            primary_op: 主服务调用（检索增强型）
            fallback_op: 备用服务调用（生成型）
            context: 调用方画像（只读）
            content_class: 内容类别，决定增强方式
            source_summary: 调用方已掌握的来源可信度汇总，提供时用其平均分作为 reliability

        Raises:
            BothProvidersFailed: 主备服务均失败
        """
        self._counters.total_requests += 1
        operation_kind = operation_kind_for(content_class)

        gate_reason, recovering = self._health_gate()
        if gate_reason is not None:
            self._counters.preemptive_fallbacks += 1
            logger.warning("[FALLBACK] 预判降级，跳过主服务: {}", gate_reason)
            return await self._execute_secondary(
                fallback_op,
                context,
                operation_kind,
                reason=gate_reason,
                preemptive=True,
                source_summary=source_summary,
            )

        max_attempts = max(1, self.config.fallback_after_attempts)
        primary_reason = "unknown error"

        for attempt in range(1, max_attempts + 1):
            logger.debug(
                "[FALLBACK] 主服务尝试 {}/{} ({})", attempt, max_attempts, content_class
            )
            try:
                data = await self._attempt(
                    ProviderRole.PRIMARY, primary_op, self.retry_client.execute_with_retry
                )
            except Exception as e:
                primary_reason = extract_error_message(e)
                logger.warning(
                    "[FALLBACK] 主服务第 {}/{} 次尝试失败: {}", attempt, max_attempts, primary_reason
                )
                if attempt < max_attempts:
                    await self._sleep(self.backoff.delay_for(attempt - 1))
                continue

            if recovering:
                self.health.mark_recovered(ProviderRole.PRIMARY)
            self._counters.primary_successes += 1
            return FallbackResult(
                data=data,
                source=ProviderRole.PRIMARY,
                fallback_used=False,
                quality_score=calculate_quality_score(data, ProviderRole.PRIMARY),
                reliability=self._reliability(ProviderRole.PRIMARY, source_summary),
            )

        logger.info("[FALLBACK] 主服务 {} 次尝试均失败，切换到备用服务", max_attempts)
        return await self._execute_secondary(
            fallback_op,
            context,
            operation_kind,
            reason=primary_reason,
            preemptive=False,
            source_summary=source_summary,
        )

    async def _execute_secondary(
        self,
        fallback_op: Callable[[], Awaitable[T]],
        context: RequesterContext,
        operation_kind: str | None,
        reason: str,
        preemptive: bool,
        source_summary: ReliabilitySummary | None,
    ) -> FallbackResult[T]:
        if not self.config.enabled:
            self._counters.failures += 1
            logger.error("[FALLBACK] 主服务失败且降级已禁用: {}", reason)
            raise BothProvidersFailed(reason, "fallback disabled")

        self._counters.fallbacks_used += 1
        try:
            data = await self._attempt(ProviderRole.SECONDARY, fallback_op)
        except Exception as e:
            self._counters.failures += 1
            secondary_reason = extract_error_message(e)
            logger.error(
                "[FALLBACK] 主备服务均失败 - 主服务: {}, 备用服务: {}", reason, secondary_reason
            )
            raise BothProvidersFailed(reason, secondary_reason) from e

        if self.config.preserve_quality:
            data = enhance_result(
                data,
                context,
                operation_kind,
                now=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
            )

        if self.config.log_fallbacks:
            logger.info(
                "[FALLBACK] 已使用备用服务 (kind={}, domain={}, preemptive={}): {}",
                operation_kind or "other",
                context.primary_domain or "general",
                preemptive,
                reason,
            )

        return FallbackResult(
            data=data,
            source=ProviderRole.SECONDARY,
            fallback_used=True,
            quality_score=calculate_quality_score(data, ProviderRole.SECONDARY),
            reliability=self._reliability(ProviderRole.SECONDARY, source_summary),
            fallback_reason=reason,
            preemptive=preemptive,
        )

    async def _attempt(
        self,
        provider: ProviderRole,
        operation: Callable[[], Awaitable[Any]],
        runner: Callable[[Callable[[], Awaitable[Any]]], Awaitable[Any]] | None = None,
    ) -> Any:
        """
        执行一次尝试，并把延迟与成败记入 Provider 健康度和健康监控

        延迟只计 operation 本身的耗时（取最后一次调用），
        runner 内的限流等待和 429 退避不计入 Provider 延迟。
        attempt_timeout 同样只作用于单次 operation 调用。
        """
        latency_ms = 0.0

        async def timed() -> Any:
            nonlocal latency_ms
            started = self._clock()
            try:
                if self.attempt_timeout:
                    return await asyncio.wait_for(operation(), timeout=self.attempt_timeout)
                return await operation()
            finally:
                latency_ms = (self._clock() - started) * 1000

        try:
            result = await (runner(timed) if runner else timed())
        except Exception as e:
            self.health.record(provider, latency_ms, success=False)
            if self.monitor:
                self.monitor.record_failure(provider, e, latency_ms)
            raise

        self.health.record(provider, latency_ms, success=True)
        if self.monitor:
            self.monitor.record_success(provider, latency_ms)
        logger.debug("[FALLBACK] {} 成功，耗时 {:.0f}ms", provider.value, latency_ms)
        return result

    # ==================== HealthGate ====================

    def _health_gate(self) -> tuple[str | None, bool]:
        """
        判断本次请求是否跳过主服务

        只看 Provider 健康度（EWMA）。降级禁用时总是尝试主服务。
        主服务不健康但超过 recovery_probe_seconds 没有新样本时，放行本次请求做一次探测，
        探测成功后由调用方清零错误率。

        Returns:
            (跳过原因, 是否为恢复探测)；应尝试主服务时原因为 None
        """
        if not self.config.enabled:
            return None, False

        reason = self.health.unhealthy_reason(ProviderRole.PRIMARY)
        if reason is None:
            return None, False

        primary = self.health.get(ProviderRole.PRIMARY)
        if self._clock() - primary.last_updated >= self.recovery_probe_seconds:
            logger.info("[FALLBACK] 主服务冷却期已过，放行一次探测请求 ({})", reason)
            return None, True
        return reason, False

    @staticmethod
    def _reliability(provider: ProviderRole, summary: ReliabilitySummary | None) -> float:
        if summary is not None and summary.valid_sources > 0:
            return float(summary.average_score)
        if provider == ProviderRole.PRIMARY:
            return FallbackDefaults.PRIMARY_RELIABILITY
        return FallbackDefaults.SECONDARY_RELIABILITY

    # ==================== 统计 ====================

    def get_service_health(self) -> list[ProviderHealthView]:
        views = []
        for role, health in self.health.all().items():
            views.append(
                ProviderHealthView(
                    provider=role.value,
                    avg_latency_ms=round(health.avg_latency_ms, 2),
                    error_rate=round(health.error_rate, 4),
                    available=health.available,
                    last_updated=(
                        datetime.fromtimestamp(health.last_updated, tz=timezone.utc)
                        if health.samples
                        else None
                    ),
                )
            )
        return views

    def get_fallback_stats(self) -> FallbackStats:
        c = self._counters
        rate = c.fallbacks_used / c.total_requests * 100 if c.total_requests else 0.0
        return FallbackStats(
            total_requests=c.total_requests,
            primary_successes=c.primary_successes,
            fallbacks_used=c.fallbacks_used,
            preemptive_fallbacks=c.preemptive_fallbacks,
            failures=c.failures,
            fallback_rate=round(rate, 2),
        )

    def reset_stats(self) -> None:
        """重置统计计数与 Provider 健康度"""
        self._counters = _Counters()
        self.health.reset()
        logger.info("[FALLBACK] 统计与健康度已重置")
