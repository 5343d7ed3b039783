"""
重试策略模块
统一的重试-退避实现：最大次数、基础延迟、抖动和可重试错误判定
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Optional, TypeVar

from exceptions import APIError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable_api_error(error: BaseException) -> bool:
    """默认判定：只重试标记为可重试的 APIError"""
    return isinstance(error, APIError) and error.is_retryable


def exponential_backoff(attempt: int, base_delay: float) -> float:
    """第 attempt 次失败后的等待时间（attempt 从1开始）"""
    return base_delay * (2 ** (attempt - 1))


def linear_backoff(attempt: int, base_delay: float) -> float:
    """逐次递增的等待时间：base, 2*base, 3*base..."""
    return base_delay * attempt


@dataclass
class RetryPolicy:
    """重试策略"""

    max_attempts: int = 3
    base_delay: float = 1.0
    jitter: float = 0.0
    is_retryable: Callable[[BaseException], bool] = is_retryable_api_error
    backoff: Callable[[int, float], float] = exponential_backoff
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts必须至少为1")

    def delay_for(self, attempt: int) -> float:
        delay = self.backoff(attempt, self.base_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "",
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> T:
        """
        执行操作，失败时按策略重试

        Args:
            operation: 无参协程工厂，每次重试都重新调用
            description: 日志中的操作描述
            should_stop: 返回 True 时不再重试（例如会话已终止）

        Returns:
            操作的返回值

        Raises:
            最后一次失败的异常；不可重试的异常立即抛出
        """
        label = f" [{description}]" if description else ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                retryable = self.is_retryable(e)
                if not retryable or attempt >= self.max_attempts:
                    if retryable:
                        logger.warning(f"重试次数已用尽{label}: {e}")
                    raise
                if should_stop is not None and should_stop():
                    raise

                wait_time = self.delay_for(attempt)
                logger.warning(
                    f"操作失败{label}，{wait_time:.1f}秒后重试 ({attempt}/{self.max_attempts}): {e}"
                )
                await self.sleep(wait_time)

        raise RuntimeError("unreachable")
