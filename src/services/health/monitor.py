"""
健康监控器 - 主 / 备 Provider 及缓存、来源校验的运行状态汇总

功能：
1. 按服务记录请求延迟和成败（最近 N 个样本）
2. 派生服务状态 up / slow / down，以及整体状态 healthy / degraded / critical
3. 阈值告警规则（响应时间、错误率、吞吐量、可用性），5 分钟内同一规则不重复告警，
   指标恢复后自动解除；告警数量有上限，后台任务定期清理超过保留期的告警
4. 运维视图：当前指标、趋势、告警、优化建议

本组件只做观测，不改变控制流；降级编排器的 HealthGate 只看 Provider 健康度（EWMA），不读取这里的状态。
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from src.config.constants import HealthDefaults
from src.config.settings import config
from src.core.error_utils import extract_error_message
from src.core.logger import logger
from src.models.monitoring import (
    AlertRule,
    DashboardSnapshot,
    OverallStatus,
    PerformanceAlert,
    PerformanceMetrics,
    ProviderHealthView,
    ServiceStatus,
    SystemHealth,
)
from src.models.research import ProviderRole

# 默认跟踪的服务
DEFAULT_SERVICES = ("primary", "secondary", "cache", "validation")


def _default_alert_rules() -> list[AlertRule]:
    return [
        AlertRule(
            id="response_time_high",
            name="High Response Time",
            metric="response_time_ms",
            comparison="gt",
            threshold=5000,
            severity="warning",
        ),
        AlertRule(
            id="error_rate_high",
            name="High Error Rate",
            metric="error_rate",
            comparison="gt",
            threshold=0.1,
            severity="error",
        ),
        AlertRule(
            id="throughput_low",
            name="Low Throughput",
            metric="throughput",
            comparison="lt",
            threshold=0.5,
            severity="warning",
        ),
        AlertRule(
            id="availability_low",
            name="Low Availability",
            metric="availability",
            comparison="lt",
            threshold=0.95,
            severity="critical",
        ),
    ]


@dataclass
class _Sample:
    timestamp: float
    latency_ms: float
    success: bool


def _service_name(provider: ProviderRole | str) -> str:
    if isinstance(provider, ProviderRole):
        return provider.value
    return str(provider)


def _to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class HealthMonitor:
    """健康监控器（按服务的滑动样本 + 阈值告警）"""

    def __init__(
        self,
        slow_response_ms: float | None = None,
        down_error_rate: float | None = None,
        alert_dedup_seconds: float | None = None,
        sample_limit: int | None = None,
        metrics_history: int | None = None,
        max_alerts: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.slow_response_ms = slow_response_ms or config.health_slow_response_ms
        self.down_error_rate = (
            down_error_rate if down_error_rate is not None else config.health_down_error_rate
        )
        self.alert_dedup_seconds = (
            alert_dedup_seconds
            if alert_dedup_seconds is not None
            else config.health_alert_dedup_seconds
        )
        self.sample_limit = sample_limit or config.health_sample_limit
        self.metrics_history = metrics_history or config.health_metrics_history
        self.max_alerts = max_alerts or config.health_max_alerts
        self._clock = clock

        self._samples: deque[_Sample] = deque(maxlen=self.sample_limit)
        self._service_samples: dict[str, deque[_Sample]] = {}
        self._services: dict[str, ServiceStatus] = {name: "up" for name in DEFAULT_SERVICES}
        self._metrics: deque[PerformanceMetrics] = deque(maxlen=self.metrics_history)
        self._alerts: list[PerformanceAlert] = []
        self._alert_rules: list[AlertRule] = _default_alert_rules()

        self._request_count = 0
        self._error_count = 0
        self._last_updated = self._clock()
        self._cleanup_task: asyncio.Task | None = None

    # ==================== 记录 ====================

    def start_request(self, provider: ProviderRole | str) -> Callable[..., None]:
        """
        开始计时一次请求

        Returns:
            完成回调：callback(success=True, error=None)
        """
        started = self._clock()
        finished = False

        def complete(success: bool = True, error: BaseException | None = None) -> None:
            nonlocal finished
            if finished:
                return
            finished = True
            latency_ms = (self._clock() - started) * 1000
            if success:
                self.record_success(provider, latency_ms)
            else:
                self.record_failure(provider, error, latency_ms)

        return complete

    def record_success(self, provider: ProviderRole | str, latency_ms: float = 0.0) -> None:
        self._record(_service_name(provider), latency_ms, True)

    def record_failure(
        self,
        provider: ProviderRole | str,
        error: BaseException | None = None,
        latency_ms: float = 0.0,
    ) -> None:
        service = _service_name(provider)
        if error is not None:
            logger.debug("[HEALTH] {} 请求失败: {}", service, extract_error_message(error))
        self._record(service, latency_ms, False)

    def _record(self, service: str, latency_ms: float, success: bool) -> None:
        now = self._clock()
        sample = _Sample(timestamp=now, latency_ms=latency_ms, success=success)

        self._samples.append(sample)
        if service not in self._service_samples:
            self._service_samples[service] = deque(maxlen=self.sample_limit)
        self._service_samples[service].append(sample)

        self._request_count += 1
        if not success:
            self._error_count += 1

        self._refresh_service_status(service)

        metrics = self.get_current_metrics()
        self._metrics.append(metrics)
        self._evaluate_alerts(metrics)

    # ==================== 状态 ====================

    def _refresh_service_status(self, service: str) -> None:
        samples = self._service_samples.get(service)
        if not samples:
            return

        errors = sum(1 for s in samples if not s.success)
        error_rate = errors / len(samples)
        avg_latency = sum(s.latency_ms for s in samples) / len(samples)

        status: ServiceStatus
        if error_rate > self.down_error_rate:
            status = "down"
        elif avg_latency > self.slow_response_ms:
            status = "slow"
        else:
            status = "up"

        self.update_service_status(service, status)

    def update_service_status(self, service: str, status: ServiceStatus) -> None:
        """更新服务状态（缓存、来源校验等外部服务由调用方上报）"""
        previous = self._services.get(service)
        self._services[service] = status
        self._last_updated = self._clock()
        if previous != status:
            logger.info("[HEALTH] 服务 {} 状态变化: {} -> {}", service, previous, status)

    def get_service_status(self, provider: ProviderRole | str) -> ServiceStatus:
        return self._services.get(_service_name(provider), "up")

    def get_system_health(self) -> SystemHealth:
        """任一服务 down 为 critical；超过一个服务 slow 为 degraded"""
        statuses = list(self._services.values())
        overall: OverallStatus
        if "down" in statuses:
            overall = "critical"
        elif statuses.count("slow") > 1:
            overall = "degraded"
        else:
            overall = "healthy"

        return SystemHealth(
            overall=overall,
            services=dict(self._services),
            last_updated=_to_datetime(self._last_updated),
        )

    def get_current_metrics(self) -> PerformanceMetrics:
        now = self._clock()
        samples = list(self._samples)

        response_time = sum(s.latency_ms for s in samples) / len(samples) if samples else 0.0
        error_rate = self._error_count / self._request_count if self._request_count else 0.0
        recent = sum(1 for s in samples if now - s.timestamp <= 60)

        return PerformanceMetrics(
            response_time_ms=response_time,
            throughput=recent / 60,
            error_rate=error_rate,
            availability=1 - error_rate,
            timestamp=_to_datetime(now),
        )

    # ==================== 告警 ====================

    def _evaluate_alerts(self, metrics: PerformanceMetrics) -> None:
        for rule in self._alert_rules:
            if not rule.enabled:
                continue
            if (
                rule.metric == "throughput"
                and self._request_count < HealthDefaults.MIN_REQUESTS_FOR_THROUGHPUT_ALERT
            ):
                continue

            value = float(getattr(metrics, rule.metric))
            if rule.comparison == "gt":
                triggered = value > rule.threshold
            else:
                triggered = value < rule.threshold

            if not triggered:
                self._resolve_rule_alerts(rule, value)
            elif not self._has_recent_alert(rule.id):
                self._create_alert(rule, value)

    def _has_recent_alert(self, rule_id: str) -> bool:
        now = self._clock()
        for alert in self._alerts:
            if alert.rule_id != rule_id or alert.resolved:
                continue
            if now - alert.timestamp.timestamp() < self.alert_dedup_seconds:
                return True
        return False

    def _create_alert(self, rule: AlertRule, value: float) -> PerformanceAlert:
        operator = ">" if rule.comparison == "gt" else "<"
        alert = PerformanceAlert(
            id=uuid.uuid4().hex,
            rule_id=rule.id,
            message=f"{rule.name}: {value:.2f} {operator} {rule.threshold}",
            severity=rule.severity,
            timestamp=_to_datetime(self._clock()),
            metadata={"metric": rule.metric, "value": value, "threshold": rule.threshold},
        )
        self._alerts.append(alert)
        if len(self._alerts) > self.max_alerts:
            # 优先丢弃已解除的告警，其次最早的告警
            overflow = len(self._alerts) - self.max_alerts
            resolved = [a for a in self._alerts if a.resolved][:overflow]
            dropped = {id(a) for a in resolved}
            self._alerts = [a for a in self._alerts if id(a) not in dropped]
            excess = len(self._alerts) - self.max_alerts
            if excess > 0:
                del self._alerts[:excess]
        logger.warning("[HEALTH] 告警 [{}] {}", alert.severity, alert.message)
        return alert

    def _resolve_rule_alerts(self, rule: AlertRule, value: float) -> None:
        """指标回到阈值内时，自动解除该规则的未解除告警"""
        for alert in self._alerts:
            if alert.rule_id == rule.id and not alert.resolved:
                alert.resolved = True
                logger.info(
                    "[HEALTH] 指标已恢复，自动解除告警: {} (当前 {:.2f})", alert.message, value
                )

    def get_active_alerts(self) -> list[PerformanceAlert]:
        return [a for a in self._alerts if not a.resolved]

    def resolve_alert(self, alert_id: str) -> bool:
        for alert in self._alerts:
            if alert.id == alert_id and not alert.resolved:
                alert.resolved = True
                logger.info("[HEALTH] 告警已解除: {}", alert.message)
                return True
        return False

    def add_alert_rule(self, rule: AlertRule) -> None:
        """添加（或按 id 替换）告警规则"""
        self._alert_rules = [r for r in self._alert_rules if r.id != rule.id]
        self._alert_rules.append(rule)

    def get_alert_rules(self) -> list[AlertRule]:
        return list(self._alert_rules)

    # ==================== 运维视图 ====================

    def generate_recommendations(self, metrics: PerformanceMetrics) -> list[str]:
        recommendations: list[str] = []

        if metrics.response_time_ms > 3000:
            recommendations.append("响应时间偏高，建议提高缓存命中率")
        if metrics.error_rate > 0.05:
            recommendations.append("错误率偏高，检查上游错误日志和重试策略")
        if metrics.throughput < 1:
            recommendations.append("吞吐量偏低，检查 Provider 调用和限流配置")
        if metrics.availability < 0.98:
            recommendations.append("可用性低于目标，检查健康检查和降级配置")
        if self._services.get("primary") == "slow":
            recommendations.append("主服务响应缓慢，可考虑预判降级到备用服务")
        if self._services.get("cache") == "down":
            recommendations.append("缓存服务不可用，性能会明显下降")

        return recommendations

    def get_dashboard_data(
        self, providers: list[ProviderHealthView] | None = None
    ) -> DashboardSnapshot:
        metrics = self.get_current_metrics()
        recent = list(self._metrics)[-10:]

        return DashboardSnapshot(
            metrics=metrics,
            health=self.get_system_health(),
            alerts=self.get_active_alerts(),
            trends={
                "response_time_ms": [m.response_time_ms for m in recent],
                "error_rate": [m.error_rate for m in recent],
                "throughput": [m.throughput for m in recent],
            },
            recommendations=self.generate_recommendations(metrics),
            providers=providers or [],
        )

    def get_service_statistics(self) -> dict[str, dict[str, Any]]:
        stats: dict[str, dict[str, Any]] = {}
        for service, samples in self._service_samples.items():
            total = len(samples)
            errors = sum(1 for s in samples if not s.success)
            stats[service] = {
                "requests": total,
                "errors": errors,
                "error_rate": errors / total if total else 0.0,
                "avg_latency_ms": sum(s.latency_ms for s in samples) / total if total else 0.0,
                "status": self._services.get(service, "up"),
            }
        return stats

    # ==================== 管理 ====================

    def reset_counters(self) -> None:
        self._request_count = 0
        self._error_count = 0
        self._samples.clear()
        self._service_samples.clear()
        logger.info("[HEALTH] 请求计数已重置")

    def cleanup(self) -> int:
        """清理超过保留期的告警（无论是否已解除），返回清理数量"""
        cutoff = self._clock() - HealthDefaults.ALERT_RETENTION_SECONDS
        before = len(self._alerts)
        self._alerts = [a for a in self._alerts if a.timestamp.timestamp() >= cutoff]
        removed = before - len(self._alerts)
        if removed:
            logger.debug("[HEALTH] 清理过期告警 {} 条", removed)
        return removed

    def start_background_cleanup(self, interval_seconds: float | None = None) -> None:
        """启动后台定期清理任务"""
        if self._cleanup_task is not None:
            return

        interval = interval_seconds or config.health_cleanup_interval_seconds

        async def cleanup_loop() -> None:
            while True:
                try:
                    await asyncio.sleep(interval)
                    self.cleanup()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.debug(f"[HEALTH] 后台清理任务异常: {e}")

        try:
            self._cleanup_task = asyncio.create_task(cleanup_loop())
            logger.debug("[OK] 健康监控后台清理任务已启动")
        except RuntimeError:
            # 没有事件循环时忽略
            pass

    async def close(self) -> None:
        """停止后台清理任务"""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
