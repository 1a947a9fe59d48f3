"""
速率限制检测器 - 识别限流形态的错误，解析 429 响应头中的等待时间
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from src.core.logger import logger

# 错误消息中代表限流的关键字（小写匹配）
_RATE_LIMIT_MARKERS = ("rate limit", "ratelimit", "too many requests")


class RateLimitType:
    """速率限制类型"""

    RPM = "rpm"  # 每分钟请求数限制
    QUOTA = "quota"  # 配额耗尽（日/月）
    UNKNOWN = "unknown"  # 未知类型


class RateLimitInfo:
    """速率限制信息"""

    def __init__(
        self,
        limit_type: str,
        retry_after: float | None = None,
        limit_value: int | None = None,
        remaining: int | None = None,
        raw_headers: dict[str, str] | None = None,
    ):
        self.limit_type = limit_type
        self.retry_after = retry_after  # 需要等待的秒数
        self.limit_value = limit_value  # 限制值
        self.remaining = remaining  # 剩余配额
        self.raw_headers = raw_headers or {}

    def __repr__(self) -> str:
        return (
            f"RateLimitInfo(type={self.limit_type}, "
            f"retry_after={self.retry_after}, "
            f"limit={self.limit_value}, "
            f"remaining={self.remaining})"
        )


class RateLimitDetector:
    """
    速率限制检测器

    支持的响应头：
    - retry-after: 秒数或 HTTP 日期
    - x-ratelimit-limit / x-ratelimit-remaining（通用）
    - x-ratelimit-limit-requests / x-ratelimit-remaining-requests（OpenAI 兼容风格）
    """

    @staticmethod
    def is_rate_limit_error(error: BaseException) -> bool:
        """判断异常是否为限流形态：状态码 429 或消息包含限流关键字"""
        if RateLimitDetector.extract_status_code(error) == 429:
            return True
        message = (str(error) or "").lower()
        return any(marker in message for marker in _RATE_LIMIT_MARKERS)

    @staticmethod
    def extract_status_code(error: BaseException) -> int | None:
        """从异常中提取 HTTP 状态码（兼容 error.status_code / error.status / error.response.status_code）"""
        for attr in ("status_code", "status"):
            value = getattr(error, attr, None)
            if isinstance(value, int):
                return value
        response = getattr(error, "response", None)
        if response is not None:
            value = getattr(response, "status_code", None)
            if isinstance(value, int):
                return value
        return None

    @staticmethod
    def detect_from_headers(headers: Any) -> RateLimitInfo:
        """
        从 429 响应头中检测限流信息

        Args:
            headers: 响应头（dict 或 httpx.Headers）

        Returns:
            RateLimitInfo 对象
        """
        headers_lower = {str(k).lower(): str(v) for k, v in dict(headers or {}).items()}

        retry_after = RateLimitDetector._parse_retry_after(headers_lower)
        limit_value = RateLimitDetector._parse_int(
            headers_lower.get("x-ratelimit-limit-requests") or headers_lower.get("x-ratelimit-limit")
        )
        remaining = RateLimitDetector._parse_int(
            headers_lower.get("x-ratelimit-remaining-requests")
            or headers_lower.get("x-ratelimit-remaining")
        )

        # 1. 剩余为 0 且等待时间较长（超过 1 小时）视为配额耗尽
        if remaining == 0 and retry_after is not None and retry_after > 3600:
            return RateLimitInfo(
                limit_type=RateLimitType.QUOTA,
                retry_after=retry_after,
                limit_value=limit_value,
                remaining=remaining,
                raw_headers=headers_lower,
            )

        # 2. 有任何限流信息，保守视为 RPM 限制
        if retry_after is not None or limit_value is not None or remaining is not None:
            logger.debug(
                "[RATE-LIMIT] 429 响应头: limit={}, remaining={}, retry_after={}",
                limit_value,
                remaining,
                retry_after,
            )
            return RateLimitInfo(
                limit_type=RateLimitType.RPM,
                retry_after=retry_after,
                limit_value=limit_value,
                remaining=remaining,
                raw_headers=headers_lower,
            )

        # 3. 完全没有信息，标记为未知
        return RateLimitInfo(limit_type=RateLimitType.UNKNOWN, raw_headers=headers_lower)

    @staticmethod
    def _parse_retry_after(headers: dict[str, str]) -> float | None:
        """解析 Retry-After 头"""
        retry_after_str = headers.get("retry-after")
        if not retry_after_str:
            return None

        try:
            # 尝试解析为秒数
            return max(float(retry_after_str), 0.0)
        except ValueError:
            pass

        # 尝试解析为 HTTP 日期格式
        try:
            retry_date = parsedate_to_datetime(retry_after_str)
        except (TypeError, ValueError):
            return None
        if retry_date.tzinfo is None:
            retry_date = retry_date.replace(tzinfo=timezone.utc)
        delta = retry_date - datetime.now(timezone.utc)
        return max(delta.total_seconds(), 0.0)

    @staticmethod
    def _parse_int(value: str | None) -> int | None:
        """安全解析整数"""
        if not value:
            return None
        try:
            return int(value)
        except (ValueError, TypeError):
            return None


# 便捷函数
def detect_rate_limit_type(headers: Any) -> RateLimitInfo:
    """检测速率限制类型（便捷函数）"""
    return RateLimitDetector.detect_from_headers(headers)
