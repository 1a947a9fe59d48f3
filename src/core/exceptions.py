"""
研究核心异常定义

分类：
- RateLimitExceeded: 上游限流（429），内部重试，耗尽后视为普通主服务失败
- ProviderUnavailable: 超时、非 2xx、网络错误，处理方式同上
- ValidationFailure: 来源 URL 校验失败，仅在评分器内部使用，最终编码为 is_valid=False
- BothProvidersFailed: 主备服务均失败，唯一会传播给调用方的错误
"""

from __future__ import annotations


class ResearchCoreError(Exception):
    """研究核心异常基类"""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class RateLimitExceeded(ResearchCoreError):
    """上游返回 429 或限流提示"""

    status_code = 429

    def __init__(
        self,
        message: str = "rate limit exceeded",
        retry_after: float | None = None,
        attempts: int | None = None,
        upstream_response: str | None = None,
    ):
        super().__init__(message)
        self.retry_after = retry_after
        self.attempts = attempts
        self.upstream_response = upstream_response


class ProviderUnavailable(ResearchCoreError):
    """Provider 不可用（超时、非 2xx、网络错误）"""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        upstream_response: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.upstream_response = upstream_response


class ValidationFailure(ResearchCoreError):
    """来源校验失败（黑名单、协议非法、URL 格式错误、不可访问）"""

    def __init__(self, url: str, reason: str):
        super().__init__(reason)
        self.url = url
        self.reason = reason


class BothProvidersFailed(ResearchCoreError):
    """主备服务均不可用"""

    def __init__(self, primary_reason: str, secondary_reason: str):
        super().__init__(
            "Both primary and secondary providers unavailable. "
            f"Primary: {primary_reason}, Secondary: {secondary_reason}"
        )
        self.primary_reason = primary_reason
        self.secondary_reason = secondary_reason
