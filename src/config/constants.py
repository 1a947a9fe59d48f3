"""
研究核心默认常量

所有值均可通过 src.config.settings 中对应的环境变量覆盖。
"""


class CacheDefaults:
    """上下文缓存默认配置"""

    MAX_ENTRIES = 500
    MIN_TTL_SECONDS = 30 * 60
    CLEANUP_INTERVAL_SECONDS = 60 * 60

    # 各内容类别的基础 TTL（秒）
    BASE_TTL_SECONDS = {
        "trending": 2 * 60 * 60,
        "content-ideas": 6 * 60 * 60,
        "research": 24 * 60 * 60,
        "analysis": 12 * 60 * 60,
        "general": 8 * 60 * 60,
    }

    # 快速变化领域，TTL 减半
    FAST_MOVING_DOMAINS = frozenset(
        {
            "technology",
            "artificial intelligence",
            "cryptocurrency",
            "digital marketing",
            "breaking news",
            "emerging technology",
        }
    )

    FAST_MOVING_MULTIPLIER = 0.5
    TRENDING_MULTIPLIER = 0.8
    HIGH_RELIABILITY = 90
    MEDIUM_RELIABILITY = 70
    HIGH_RELIABILITY_MULTIPLIER = 1.5
    MEDIUM_RELIABILITY_MULTIPLIER = 1.0
    LOW_RELIABILITY_MULTIPLIER = 0.7

    # 智能失效
    TRENDING_FAST_MOVING_MAX_AGE_SECONDS = 3 * 60 * 60
    LOW_QUALITY_THRESHOLD = 60
    LOW_QUALITY_MAX_AGE_SECONDS = 2 * 60 * 60

    # 粗略存储估算（KB / 条）
    ESTIMATED_ENTRY_KB = 2


class ReliabilityDefaults:
    """来源可信度评分默认配置"""

    PROBE_TIMEOUT_SECONDS = 8.0
    VALIDATION_CACHE_SECONDS = 24 * 60 * 60
    VALIDATION_CACHE_MAX_ENTRIES = 200
    BATCH_SIZE = 3
    BATCH_PAUSE_SECONDS = 1.0
    MIN_VALID_SCORE = 60
    HIGH_QUALITY_SCORE = 70
    UNKNOWN_DOMAIN_SCORE = 60
    INACCESSIBLE_PENALTY = 30
    FAST_RESPONSE_MS = 2000
    SLOW_RESPONSE_MS = 5000
    USER_AGENT = "ResearchCore-SourceValidator/1.0"


class RateLimitDefaults:
    """Provider 速率限制与重试默认配置"""

    REQUESTS_PER_MINUTE = 20
    WINDOW_SECONDS = 60.0
    BUFFER_SECONDS = 1.0
    MAX_ATTEMPTS = 3
    BACKOFF_BASE_SECONDS = 1.0
    BACKOFF_MAX_SECONDS = 30.0


class FallbackDefaults:
    """主备降级默认配置"""

    ENABLED = True
    FALLBACK_AFTER_ATTEMPTS = 2
    PRESERVE_QUALITY = True
    LOG_FALLBACKS = True
    ERROR_RATE_THRESHOLD = 0.5
    LATENCY_CEILING_MS = 30000.0
    EWMA_WEIGHT = 0.3
    UNAVAILABLE_ERROR_RATE = 0.8
    RETRY_BACKOFF_BASE_SECONDS = 1.0
    RETRY_BACKOFF_MAX_SECONDS = 5.0
    # 主服务被判定不健康后，超过该时长没有新样本则放行一次探测
    RECOVERY_PROBE_SECONDS = 60.0

    PRIMARY_QUALITY_BASE = 90
    SECONDARY_QUALITY_BASE = 75
    PRIMARY_RELIABILITY = 95
    SECONDARY_RELIABILITY = 85


class HealthDefaults:
    """健康监控默认配置"""

    SLOW_RESPONSE_MS = 10000.0
    DOWN_ERROR_RATE = 0.5
    ALERT_DEDUP_SECONDS = 5 * 60
    SAMPLE_LIMIT = 100
    METRICS_HISTORY = 1000
    ALERT_RETENTION_SECONDS = 24 * 60 * 60
    MAX_ALERTS = 200
    CLEANUP_INTERVAL_SECONDS = 10 * 60
    MIN_REQUESTS_FOR_THROUGHPUT_ALERT = 10
