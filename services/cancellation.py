"""
取消令牌模块
会话级令牌派生出请求级令牌，取消父令牌会同时中止所有进行中的请求
"""

import asyncio
import logging
import uuid
from typing import Optional

from exceptions import RequestTerminatedError

logger = logging.getLogger(__name__)

REASON_USER_TERMINATED = "USER_TERMINATED"
REASON_TIMEOUT = "TIMEOUT"


class CancellationToken:
    """可等待的取消令牌"""

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None
        self._children: list[CancellationToken] = []
        if parent is not None:
            parent._children.append(self)
            if parent.is_cancelled():
                self.cancel(parent.reason)

    def cancel(self, reason: Optional[str] = REASON_USER_TERMINATED) -> bool:
        """设置取消标志并传播给子令牌

        Returns:
            bool: 本次调用是否真正触发了取消
        """
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(reason)
        return True

    def is_cancelled(self) -> bool:
        """检查是否被取消"""
        return self._event.is_set()

    @property
    def user_terminated(self) -> bool:
        return self.is_cancelled() and self.reason == REASON_USER_TERMINATED

    async def wait(self) -> Optional[str]:
        """等待取消，返回取消原因"""
        await self._event.wait()
        return self.reason

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled():
            raise RequestTerminatedError()

    def child(self) -> "CancellationToken":
        """派生子令牌"""
        return CancellationToken(parent=self)

    def detach(self, child: "CancellationToken") -> None:
        """请求结束后解除父子关系，避免长会话累积子令牌"""
        try:
            self._children.remove(child)
        except ValueError:
            pass


class RequestRegistry:
    """进行中请求的取消令牌表，按请求ID索引"""

    def __init__(self):
        self._tokens: dict[str, CancellationToken] = {}

    def register(
        self,
        request_id: Optional[str] = None,
        parent: Optional[CancellationToken] = None,
    ) -> tuple[str, CancellationToken]:
        request_id = request_id or uuid.uuid4().hex
        token = parent.child() if parent is not None else CancellationToken()
        self._tokens[request_id] = token
        return request_id, token

    def unregister(self, request_id: str, parent: Optional[CancellationToken] = None) -> None:
        token = self._tokens.pop(request_id, None)
        if token is not None and parent is not None:
            parent.detach(token)

    def cancel(self, request_id: str, reason: str = REASON_USER_TERMINATED) -> bool:
        token = self._tokens.get(request_id)
        return token.cancel(reason) if token is not None else False

    def cancel_all(self, reason: str = REASON_USER_TERMINATED) -> int:
        """取消全部进行中的请求，返回被取消的数量"""
        count = sum(1 for token in list(self._tokens.values()) if token.cancel(reason))
        if count:
            logger.info(f"已终止 {count} 个进行中的请求")
        return count

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._tokens
