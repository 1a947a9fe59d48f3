"""
研究核心配置

从环境变量读取可调参数，未设置时使用 src.config.constants 中的默认值。
配置只在构造时读取一次，组件运行期间不再访问环境变量。
"""

from __future__ import annotations

import os

from src.config.constants import (
    CacheDefaults,
    FallbackDefaults,
    HealthDefaults,
    RateLimitDefaults,
    ReliabilityDefaults,
)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """研究核心运行配置"""

    def __init__(self) -> None:
        # === 上下文缓存 ===
        self.cache_max_entries = _env_int("RESEARCH_CACHE_MAX_ENTRIES", CacheDefaults.MAX_ENTRIES)
        self.cache_min_ttl_seconds = _env_float(
            "RESEARCH_CACHE_MIN_TTL_SECONDS", CacheDefaults.MIN_TTL_SECONDS
        )
        self.cache_cleanup_interval_seconds = _env_float(
            "RESEARCH_CACHE_CLEANUP_INTERVAL_SECONDS", CacheDefaults.CLEANUP_INTERVAL_SECONDS
        )

        # === HTTP 客户端 ===
        self.http_max_connections = _env_int("HTTP_MAX_CONNECTIONS", 50)
        self.http_keepalive_connections = _env_int("HTTP_KEEPALIVE_CONNECTIONS", 10)
        self.http_keepalive_expiry = _env_float("HTTP_KEEPALIVE_EXPIRY", 30.0)

        # === 来源可信度评分 ===
        self.source_probe_timeout_seconds = _env_float(
            "SOURCE_PROBE_TIMEOUT_SECONDS", ReliabilityDefaults.PROBE_TIMEOUT_SECONDS
        )
        self.source_validation_cache_seconds = _env_float(
            "SOURCE_VALIDATION_CACHE_SECONDS", ReliabilityDefaults.VALIDATION_CACHE_SECONDS
        )
        self.source_validation_cache_max_entries = _env_int(
            "SOURCE_VALIDATION_CACHE_MAX_ENTRIES", ReliabilityDefaults.VALIDATION_CACHE_MAX_ENTRIES
        )
        self.source_batch_size = _env_int("SOURCE_BATCH_SIZE", ReliabilityDefaults.BATCH_SIZE)
        self.source_batch_pause_seconds = _env_float(
            "SOURCE_BATCH_PAUSE_SECONDS", ReliabilityDefaults.BATCH_PAUSE_SECONDS
        )
        self.source_min_valid_score = _env_int(
            "SOURCE_MIN_VALID_SCORE", ReliabilityDefaults.MIN_VALID_SCORE
        )

        # === 速率限制与重试 ===
        self.provider_requests_per_minute = _env_int(
            "PROVIDER_REQUESTS_PER_MINUTE", RateLimitDefaults.REQUESTS_PER_MINUTE
        )
        self.provider_rate_window_seconds = _env_float(
            "PROVIDER_RATE_WINDOW_SECONDS", RateLimitDefaults.WINDOW_SECONDS
        )
        self.provider_rate_buffer_seconds = _env_float(
            "PROVIDER_RATE_BUFFER_SECONDS", RateLimitDefaults.BUFFER_SECONDS
        )
        self.provider_max_attempts = _env_int(
            "PROVIDER_MAX_ATTEMPTS", RateLimitDefaults.MAX_ATTEMPTS
        )
        self.provider_backoff_base_seconds = _env_float(
            "PROVIDER_BACKOFF_BASE_SECONDS", RateLimitDefaults.BACKOFF_BASE_SECONDS
        )
        self.provider_backoff_max_seconds = _env_float(
            "PROVIDER_BACKOFF_MAX_SECONDS", RateLimitDefaults.BACKOFF_MAX_SECONDS
        )

        # === 主备降级 ===
        self.fallback_enabled = _env_bool("FALLBACK_ENABLED", FallbackDefaults.ENABLED)
        self.fallback_after_attempts = _env_int(
            "FALLBACK_AFTER_ATTEMPTS", FallbackDefaults.FALLBACK_AFTER_ATTEMPTS
        )
        self.fallback_preserve_quality = _env_bool(
            "FALLBACK_PRESERVE_QUALITY", FallbackDefaults.PRESERVE_QUALITY
        )
        self.fallback_error_rate_threshold = _env_float(
            "FALLBACK_ERROR_RATE_THRESHOLD", FallbackDefaults.ERROR_RATE_THRESHOLD
        )
        self.fallback_latency_ceiling_ms = _env_float(
            "FALLBACK_LATENCY_CEILING_MS", FallbackDefaults.LATENCY_CEILING_MS
        )
        self.fallback_ewma_weight = _env_float(
            "FALLBACK_EWMA_WEIGHT", FallbackDefaults.EWMA_WEIGHT
        )
        self.fallback_retry_backoff_max_seconds = _env_float(
            "FALLBACK_RETRY_BACKOFF_MAX_SECONDS", FallbackDefaults.RETRY_BACKOFF_MAX_SECONDS
        )
        self.fallback_recovery_probe_seconds = _env_float(
            "FALLBACK_RECOVERY_PROBE_SECONDS", FallbackDefaults.RECOVERY_PROBE_SECONDS
        )

        # === 健康监控 ===
        self.health_slow_response_ms = _env_float(
            "HEALTH_SLOW_RESPONSE_MS", HealthDefaults.SLOW_RESPONSE_MS
        )
        self.health_down_error_rate = _env_float(
            "HEALTH_DOWN_ERROR_RATE", HealthDefaults.DOWN_ERROR_RATE
        )
        self.health_alert_dedup_seconds = _env_float(
            "HEALTH_ALERT_DEDUP_SECONDS", HealthDefaults.ALERT_DEDUP_SECONDS
        )
        self.health_sample_limit = _env_int("HEALTH_SAMPLE_LIMIT", HealthDefaults.SAMPLE_LIMIT)
        self.health_metrics_history = _env_int(
            "HEALTH_METRICS_HISTORY", HealthDefaults.METRICS_HISTORY
        )
        self.health_max_alerts = _env_int("HEALTH_MAX_ALERTS", HealthDefaults.MAX_ALERTS)
        self.health_cleanup_interval_seconds = _env_float(
            "HEALTH_CLEANUP_INTERVAL_SECONDS", HealthDefaults.CLEANUP_INTERVAL_SECONDS
        )


config = Config()
