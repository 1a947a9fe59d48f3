"""
错误消息处理工具函数
"""

from __future__ import annotations

import httpx

from src.core.exceptions import ProviderUnavailable, RateLimitExceeded
from src.services.rate_limit.detector import RateLimitDetector, detect_rate_limit_type


def extract_error_message(error: BaseException, status_code: int | None = None) -> str:
    """
    从异常中提取错误消息，优先使用上游原始响应（用于日志与降级原因）

    Args:
        error: 异常对象
        status_code: 可选的 HTTP 状态码，用于构建更详细的错误消息

    Returns:
        错误消息字符串
    """
    # 优先使用 upstream_response 属性（包含上游 Provider 的原始错误）
    upstream_response = getattr(error, "upstream_response", None)
    if upstream_response and isinstance(upstream_response, str) and upstream_response.strip():
        return str(upstream_response)

    # 回退到异常的字符串表示（str 可能为空，如 httpx / asyncio 超时异常）
    error_str = str(error) or repr(error)
    if status_code is not None:
        return f"HTTP {status_code}: {error_str}"
    return error_str


def is_rate_limit_error(error: BaseException) -> bool:
    """是否为限流形态的错误（RateLimitExceeded、状态码 429 或消息匹配）"""
    if isinstance(error, RateLimitExceeded):
        return True
    return RateLimitDetector.is_rate_limit_error(error)


def raise_for_provider_response(response: httpx.Response, provider: str) -> None:
    """
    将 Provider 的非 2xx 响应转换为研究核心异常

    - 429 -> RateLimitExceeded（解析 Retry-After）
    - 其他非 2xx -> ProviderUnavailable

    Args:
        response: httpx 响应
        provider: Provider 名称（用于错误信息）
    """
    if response.is_success:
        return

    body = response.text[:500] if response.content else None
    status_code = response.status_code

    if status_code == 429:
        info = detect_rate_limit_type(response.headers)
        raise RateLimitExceeded(
            f"{provider} rate limit exceeded (HTTP 429)",
            retry_after=info.retry_after,
            upstream_response=body,
        )

    raise ProviderUnavailable(
        f"{provider} API error: {status_code} {response.reason_phrase}",
        provider=provider,
        status_code=status_code,
        upstream_response=body,
    )
