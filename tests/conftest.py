import os

# 测试时禁用文件日志，必须在导入 src 之前设置
os.environ.setdefault("LOG_DISABLE_FILE", "true")

import pytest


class FakeClock:
    """可控时钟：sleep 只推进时间，不真正等待"""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
