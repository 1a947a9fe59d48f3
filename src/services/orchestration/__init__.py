"""
Orchestration 模块

提供主备降级编排相关的组件：
- FallbackOrchestrator: 主备降级编排器（HealthGate -> 主服务重试 -> 备用服务）
- FallbackConfig: 降级配置
- enhance_result: 备用服务结果的质量保持增强（纯逻辑，无副作用）
"""

from .enhancer import calculate_quality_score, enhance_result, operation_kind_for
from .fallback import FallbackConfig, FallbackOrchestrator

__all__ = [
    "FallbackOrchestrator",
    "FallbackConfig",
    "enhance_result",
    "calculate_quality_score",
    "operation_kind_for",
]
