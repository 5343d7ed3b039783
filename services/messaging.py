"""
内部消息模块
按 action 分发请求/响应消息，客户端对通道的瞬时故障做有限次重试
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from typing import Any, Dict, Optional

from exceptions import ChannelError, NovelEnhancerError, RequestTerminatedError
from services.gender_inferencer import GenderInferencer
from services.llm_service import ModelGateway
from services.retry_policy import RetryPolicy, linear_backoff
from services.style_analyzer import StyleAnalyzer

logger = logging.getLogger(__name__)

ACTION_MODEL_REQUEST = "modelRequest"
ACTION_CHECK_AVAILABILITY = "checkAvailability"
ACTION_TERMINATE_ALL = "terminateAll"
ACTION_ANALYZE_STYLE = "analyzeStyle"
ACTION_ANALYZE_GENDER = "analyzeGender"

Message = Dict[str, Any]
Transport = Callable[[Message], Awaitable[Optional[Message]]]


class MessageRouter:
    """把 action 消息分发给模型网关"""

    def __init__(
        self,
        gateway: ModelGateway,
        style_analyzer: Optional[StyleAnalyzer] = None,
        gender_inferencer: Optional[GenderInferencer] = None,
    ):
        self.gateway = gateway
        self.style_analyzer = style_analyzer or StyleAnalyzer()
        self.gender_inferencer = gender_inferencer or GenderInferencer()
        self._handlers: Dict[str, Callable[[Message], Awaitable[Message]]] = {
            ACTION_MODEL_REQUEST: self._model_request,
            ACTION_CHECK_AVAILABILITY: self._check_availability,
            ACTION_TERMINATE_ALL: self._terminate_all,
            ACTION_ANALYZE_STYLE: self._analyze_style,
            ACTION_ANALYZE_GENDER: self._analyze_gender,
        }

    @property
    def actions(self) -> list[str]:
        return list(self._handlers)

    async def handle(self, message: Message) -> Message:
        """处理一条消息，错误以 {error} 形式返回而不抛出"""
        action = (message or {}).get("action")
        handler = self._handlers.get(action)
        if handler is None:
            logger.warning(f"未知的消息类型: {action}")
            return {"error": f"Unknown action: {action}"}

        try:
            return await handler(message)
        except RequestTerminatedError as e:
            return {"error": e.message, "terminated": True}
        except NovelEnhancerError as e:
            logger.warning(f"处理消息 {action} 失败: {e.message}")
            return {"error": e.message}

    async def _model_request(self, message: Message) -> Message:
        prompt = message.get("data")
        if not isinstance(prompt, str) or not prompt.strip():
            return {"error": "Missing prompt data"}
        text = await self.gateway.request_enhancement(prompt, cache_key=message.get("cacheKey"))
        return {"enhancedText": text}

    async def _check_availability(self, message: Message) -> Message:
        status = await self.gateway.check_availability(force=bool(message.get("force")))
        return status.to_dict()

    async def _terminate_all(self, message: Message) -> Message:
        return self.gateway.terminate_all()

    async def _analyze_style(self, message: Message) -> Message:
        text = message.get("data") or ""
        if not text.strip():
            return {"error": "Missing text data"}
        try:
            style = await self.gateway.analyze_style(text)
        except RequestTerminatedError:
            raise
        except NovelEnhancerError as e:
            logger.info(f"模型风格分析失败，改用规则分析: {e.message}")
            style = self.style_analyzer.analyze(text)
        return {"style": style.to_dict()}

    async def _analyze_gender(self, message: Message) -> Message:
        name = message.get("name") or ""
        if not name.strip():
            return {"error": "Missing character name"}
        text = message.get("data") or ""
        try:
            result = await self.gateway.analyze_gender(name, text)
        except RequestTerminatedError:
            raise
        except NovelEnhancerError as e:
            logger.info(f"模型性别分析失败，改用规则推断: {e.message}")
            result = self.gender_inferencer.guess_gender(name, text)
        return {"gender": asdict(result)}



class MessageClient:
    """带重试的消息发送端"""

    def __init__(
        self,
        transport: Transport,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.transport = transport
        kwargs = {"sleep": sleep} if sleep is not None else {}
        self.retry_policy = RetryPolicy(
            max_attempts=max_attempts,
            base_delay=base_delay,
            is_retryable=lambda e: isinstance(e, ChannelError),
            backoff=linear_backoff,
            **kwargs,
        )

    async def send(self, message: Message) -> Message:
        """
        发送消息并等待响应

        Raises:
            ChannelError: 重试后通道仍然返回空响应或已关闭
        """
        action = message.get("action", "")

        async def attempt() -> Message:
            try:
                response = await self.transport(message)
            except (ConnectionError, EOFError) as e:
                raise ChannelError(f"Message channel closed: {e}") from e
            if not response:
                raise ChannelError(f"Empty response for action {action}")
            return response

        return await self.retry_policy.run(attempt, description=f"消息 {action}")
