"""
监控相关的响应模型（运维视图）
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ServiceStatus = Literal["up", "slow", "down"]
OverallStatus = Literal["healthy", "degraded", "critical"]
AlertSeverity = Literal["info", "warning", "error", "critical"]


class PerformanceMetrics(BaseModel):
    response_time_ms: float = 0.0
    throughput: float = 0.0  # 请求/秒
    error_rate: float = 0.0
    availability: float = 1.0
    timestamp: datetime


class SystemHealth(BaseModel):
    overall: OverallStatus = "healthy"
    services: dict[str, ServiceStatus] = Field(default_factory=dict)
    last_updated: datetime


class AlertRule(BaseModel):
    id: str
    name: str
    metric: Literal["response_time_ms", "error_rate", "throughput", "availability"]
    comparison: Literal["gt", "lt"]
    threshold: float
    severity: AlertSeverity
    enabled: bool = True


class PerformanceAlert(BaseModel):
    id: str
    rule_id: str
    message: str
    severity: AlertSeverity
    timestamp: datetime
    resolved: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderHealthView(BaseModel):
    provider: str
    avg_latency_ms: float
    error_rate: float
    available: bool
    last_updated: datetime | None = None


class DashboardSnapshot(BaseModel):
    metrics: PerformanceMetrics
    health: SystemHealth
    alerts: list[PerformanceAlert] = Field(default_factory=list)
    trends: dict[str, list[float]] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)
    providers: list[ProviderHealthView] = Field(default_factory=list)


class CacheStats(BaseModel):
    total_entries: int = 0
    hit_rate: float = 0.0  # 百分比
    miss_rate: float = 0.0  # 百分比
    average_age_minutes: int = 0
    top_content_classes: list[str] = Field(default_factory=list)
    storage_size_kb: int = 0


class FallbackStats(BaseModel):
    total_requests: int = 0
    primary_successes: int = 0
    fallbacks_used: int = 0
    preemptive_fallbacks: int = 0
    failures: int = 0
    fallback_rate: float = 0.0  # 百分比


class ReliabilitySummary(BaseModel):
    total_sources: int = 0
    valid_sources: int = 0
    high_quality_sources: int = 0
    average_score: int = 0
    top_domains: list[str] = Field(default_factory=list)
