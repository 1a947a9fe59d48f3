"""
Provider 滚动健康度（EWMA）

每次尝试后更新，每次尝试前由 HealthGate 读取，用于判断是否跳过主服务（预判降级）。
- 延迟：指数加权移动平均，首个样本直接作为初值
- 错误率：对 0/1 错误信号做指数加权移动平均，初值 0
- available：错误率 < 0.8
"""

from __future__ import annotations

import time
from typing import Callable

from src.config.constants import FallbackDefaults
from src.config.settings import config
from src.core.logger import logger
from src.models.research import ProviderHealth, ProviderRole


class ProviderHealthRegistry:
    """主 / 备 Provider 的健康度表"""

    def __init__(
        self,
        ewma_weight: float | None = None,
        error_rate_threshold: float | None = None,
        latency_ceiling_ms: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ewma_weight = ewma_weight if ewma_weight is not None else config.fallback_ewma_weight
        self.error_rate_threshold = (
            error_rate_threshold
            if error_rate_threshold is not None
            else config.fallback_error_rate_threshold
        )
        self.latency_ceiling_ms = (
            latency_ceiling_ms if latency_ceiling_ms is not None else config.fallback_latency_ceiling_ms
        )
        self._clock = clock
        self._health: dict[ProviderRole, ProviderHealth] = {
            role: ProviderHealth(provider=role) for role in ProviderRole
        }

    def record(self, provider: ProviderRole, latency_ms: float, success: bool) -> ProviderHealth:
        """记录一次尝试结果并返回更新后的快照"""
        health = self._health[provider]
        w = self.ewma_weight

        if health.samples == 0:
            health.avg_latency_ms = latency_ms
        else:
            health.avg_latency_ms = w * latency_ms + (1 - w) * health.avg_latency_ms

        error_signal = 0.0 if success else 1.0
        health.error_rate = w * error_signal + (1 - w) * health.error_rate

        was_available = health.available
        health.available = health.error_rate < FallbackDefaults.UNAVAILABLE_ERROR_RATE
        health.samples += 1
        health.last_updated = self._clock()

        if was_available != health.available:
            logger.info(
                "[HEALTH] {} 可用性变化: {} -> {} (error_rate={:.2f})",
                provider.value,
                was_available,
                health.available,
                health.error_rate,
            )
        return health.snapshot()

    def get(self, provider: ProviderRole) -> ProviderHealth:
        return self._health[provider].snapshot()

    def unhealthy_reason(self, provider: ProviderRole) -> str | None:
        """
        判断 Provider 是否处于已知不健康状态

        Returns:
            不健康原因；健康时返回 None
        """
        health = self._health[provider]
        if not health.available:
            return f"{provider.value} marked unavailable (error rate {health.error_rate:.2f})"
        if health.error_rate > self.error_rate_threshold:
            return f"{provider.value} error rate {health.error_rate:.2f} above {self.error_rate_threshold}"
        if health.avg_latency_ms > self.latency_ceiling_ms:
            return (
                f"{provider.value} average latency {health.avg_latency_ms:.0f}ms "
                f"above {self.latency_ceiling_ms:.0f}ms"
            )
        return None

    def all(self) -> dict[ProviderRole, ProviderHealth]:
        return {role: health.snapshot() for role, health in self._health.items()}

    def mark_recovered(self, provider: ProviderRole) -> ProviderHealth:
        """
        半开探测成功后关闭熔断：清零错误率并恢复可用

        延迟均值保持不变，慢响应仍由延迟上限判断。
        """
        health = self._health[provider]
        previous_rate = health.error_rate
        health.error_rate = 0.0
        health.available = True
        logger.info(
            "[HEALTH] {} 探测成功，已恢复 (error_rate {:.2f} -> 0)", provider.value, previous_rate
        )
        return health.snapshot()

    def reset(self) -> None:
        self._health = {role: ProviderHealth(provider=role) for role in ProviderRole}
