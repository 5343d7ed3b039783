"""
LLM服务模块
封装本地 Ollama 服务：可用性检查、请求发送与取消、响应解析和结果缓存
"""
import asyncio
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Dict, List, Optional

import httpx

from config import OllamaConfig, get_ollama_config, get_processing_config
from exceptions import (
    APIError,
    InvalidContentError,
    RequestTerminatedError,
    RequestTimeoutError,
    ResponseParseError,
)
from models.character import GENDER_UNKNOWN, VALID_GENDERS, GenderResult
from models.session import AvailabilityStatus, NovelStyleInfo
from prompts import enhancement_prompt, gender_analysis_prompt, style_analysis_prompt
from services.cancellation import (
    REASON_TIMEOUT,
    REASON_USER_TERMINATED,
    CancellationToken,
    RequestRegistry,
)
from services.retry_policy import RetryPolicy
from splitter import clean_llm_response
from tokenizer import context_usage
from utils import create_hash, truncate_text

logger = logging.getLogger(__name__)

MAX_REQUEST_TIMEOUT = 300
DEFAULT_REQUEST_TIMEOUT = 60
RESULT_CACHE_SIZE = 256


def normalize_timeout(timeout: Optional[float]) -> float:
    """超出 (0, 300) 秒范围的超时一律按60秒处理"""
    if timeout is None or not 0 < timeout < MAX_REQUEST_TIMEOUT:
        return DEFAULT_REQUEST_TIMEOUT
    return float(timeout)


def _fragment(data: Any) -> Optional[str]:
    """取出单个响应对象中的文本片段"""
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("response"), str):
        return data["response"]
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        text = choices[0].get("text")
        if isinstance(text, str):
            return text
    return None


def parse_ollama_response(body: str) -> str:
    """
    解析 Ollama 响应体

    响应可能是单个JSON对象，也可能是按行分隔的多个JSON对象（即使请求了非流式）。
    逐行拼接 response 字段，无法解析的行直接跳过。

    Raises:
        ResponseParseError: 拼接结果为空
    """
    body = (body or "").strip()
    if not body:
        raise ResponseParseError()

    try:
        text = _fragment(json.loads(body))
    except ValueError:
        text = None

    if text is None:
        parts = []
        for line in body.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                fragment = _fragment(json.loads(line))
            except ValueError:
                continue
            if fragment:
                parts.append(fragment)
        text = "".join(parts)

    if not text or not text.strip():
        raise ResponseParseError()
    return text


def extract_json_object(raw: str) -> Dict[str, Any]:
    """从模型输出中宽松地提取第一个JSON对象"""
    cleaned = clean_llm_response(raw)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ResponseParseError("No JSON object found in model response")
    try:
        data = json.loads(cleaned[start:end + 1])
    except ValueError as e:
        raise ResponseParseError(f"Invalid JSON in model response: {e}") from e
    if not isinstance(data, dict):
        raise ResponseParseError("Model response JSON is not an object")
    return data


class AvailabilityChecker:
    """带TTL缓存的可用性检查，并发调用共享同一次进行中的检查"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: OllamaConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.config = config
        self.clock = clock
        self._status: Optional[AvailabilityStatus] = None
        self._in_flight: Optional[asyncio.Task] = None

    @property
    def cached_status(self) -> Optional[AvailabilityStatus]:
        return self._status

    def invalidate(self) -> None:
        self._status = None

    async def check(self, force: bool = False) -> AvailabilityStatus:
        """
        检查服务是否可用

        Args:
            force: 忽略缓存强制重新检查

        Returns:
            AvailabilityStatus: 检查结果；等待他人检查超时时返回不可用状态而不是抛出异常
        """
        now = self.clock()
        if not force and self._status is not None and self._status.is_fresh(
            now, self.config.availability_ttl
        ):
            return self._status

        if self._in_flight is not None and not self._in_flight.done():
            logger.debug("已有可用性检查在进行，等待其结果")
            try:
                return await asyncio.wait_for(
                    asyncio.shield(self._in_flight), timeout=self.config.availability_wait_timeout
                )
            except asyncio.TimeoutError:
                logger.warning("等待可用性检查超时")
                return AvailabilityStatus(available=False, checked_at=now, reason="Check timeout")

        task = asyncio.ensure_future(self._perform_check())
        self._in_flight = task
        try:
            return await task
        finally:
            if self._in_flight is task:
                self._in_flight = None

    async def _perform_check(self) -> AvailabilityStatus:
        endpoint = self.config.endpoint
        try:
            response = await self.client.get(
                f"{endpoint}/api/version", timeout=self.config.version_check_timeout
            )
        except httpx.TimeoutException:
            status = AvailabilityStatus(
                available=False, checked_at=self.clock(), reason="Connection timeout"
            )
        except httpx.HTTPError as e:
            status = AvailabilityStatus(
                available=False, checked_at=self.clock(), reason=f"Connection error: {e}"
            )
        else:
            if not response.is_success:
                status = AvailabilityStatus(
                    available=False,
                    checked_at=self.clock(),
                    reason=f"HTTP error: {response.status_code}",
                )
            else:
                try:
                    version = response.json().get("version")
                except ValueError:
                    version = None
                status = AvailabilityStatus(
                    available=True,
                    checked_at=self.clock(),
                    version=version or "unknown",
                    models=await self._list_models(),
                )

        if status.available:
            logger.info(f"Ollama 可用，版本 {status.version}")
        else:
            logger.warning(f"Ollama 不可用: {status.reason}")
        self._status = status
        return status

    async def _list_models(self) -> Optional[List[str]]:
        """尽力获取模型列表，失败不影响可用性结论"""
        try:
            response = await self.client.get(
                f"{self.config.endpoint}/api/tags", timeout=self.config.version_check_timeout
            )
            if not response.is_success:
                return None
            models = response.json().get("models") or []
            return [m["name"] for m in models if isinstance(m, dict) and m.get("name")]
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.debug(f"获取模型列表失败: {e}")
            return None


class ResultCache:
    """按 (块文本, 上下文) 哈希缓存增强结果，超出容量时淘汰最久未用的条目"""

    def __init__(self, max_entries: int = RESULT_CACHE_SIZE):
        self.max_entries = max_entries
        self._results: "OrderedDict[str, str]" = OrderedDict()

    @staticmethod
    def make_key(chunk: str, context: str = "") -> str:
        return create_hash(chunk, context)

    def get(self, key: str) -> Optional[str]:
        text = self._results.get(key)
        if text is not None:
            self._results.move_to_end(key)
        return text

    def put(self, key: str, text: str) -> None:
        self._results[key] = text
        self._results.move_to_end(key)
        while len(self._results) > self.max_entries:
            self._results.popitem(last=False)

    def clear(self) -> None:
        self._results.clear()

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, key: str) -> bool:
        return key in self._results


class ModelGateway:
    """Ollama 模型网关"""

    _http_client: Optional[httpx.AsyncClient] = None

    @classmethod
    def get_http_client(cls) -> httpx.AsyncClient:
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(
                limits=httpx.Limits(max_connections=10),
                timeout=DEFAULT_REQUEST_TIMEOUT,
            )
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """关闭共享的HTTP客户端连接池"""
        if cls._http_client is not None:
            try:
                await cls._http_client.aclose()
                logger.debug("已关闭HTTP客户端")
            except Exception as e:
                logger.warning(f"关闭HTTP客户端失败: {e}")
            cls._http_client = None

    def __init__(
        self,
        config: Optional[OllamaConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.config = config or get_ollama_config()
        self.client = client or self.get_http_client()
        self.availability = AvailabilityChecker(self.client, self.config, clock)
        self.registry = RequestRegistry()
        self.cache = ResultCache()
        self._sessions: set[CancellationToken] = set()

        if retry_policy is None:
            processing_config = get_processing_config()
            retry_policy = RetryPolicy(
                max_attempts=processing_config.max_retry,
                base_delay=processing_config.retry_base_delay,
                jitter=1.0,
            )
        self.retry_policy = retry_policy
        logger.debug(f"模型网关初始化 (端点: {self.config.endpoint}, 模型: {self.config.model})")

    async def check_availability(self, force: bool = False) -> AvailabilityStatus:
        return await self.availability.check(force=force)

    def register_session(self, token: CancellationToken) -> None:
        """登记会话令牌，terminate_all 会一并取消"""
        self._sessions.add(token)

    def unregister_session(self, token: CancellationToken) -> None:
        """注销会话令牌，最后一个会话结束时清空结果缓存"""
        self._sessions.discard(token)
        if not self._sessions and len(self.cache):
            logger.debug(f"所有会话已结束，清空 {len(self.cache)} 条缓存结果")
            self.cache.clear()

    async def generate(
        self,
        prompt: str,
        request_id: Optional[str] = None,
        parent_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        发送一次生成请求

        请求与取消令牌竞争：用户终止立即中止请求，超时则以 TIMEOUT 原因中止。

        Args:
            prompt: 完整提示词
            request_id: 请求ID，用于按ID终止
            parent_token: 会话令牌，取消时连带中止本请求
            timeout: 超时秒数，默认取配置

        Returns:
            str: 模型输出的原始文本

        Raises:
            RequestTerminatedError: 用户终止
            RequestTimeoutError: 超时
            APIError: 连接失败或HTTP错误
            ResponseParseError: 响应中没有文本
        """
        if not prompt:
            raise InvalidContentError("Prompt is empty")

        timeout = normalize_timeout(self.config.timeout if timeout is None else timeout)
        if len(prompt) > self.config.max_prompt_chars:
            logger.warning(f"提示词过长 ({len(prompt)} 字符)，截断到 {self.config.max_prompt_chars}")
            prompt = prompt[: self.config.max_prompt_chars]

        payload = {
            "model": self.config.model,
            "prompt": prompt,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "stream": False,
        }

        request_id, token = self.registry.register(request_id, parent_token)
        if token.is_cancelled():
            self.registry.unregister(request_id, parent_token)
            raise RequestTerminatedError()

        if logger.isEnabledFor(logging.DEBUG):
            usage = context_usage(prompt, self.config.context_size)
            logger.debug(f"发送请求 {request_id}，提示词约占上下文 {usage:.0%}")
        request_task = asyncio.ensure_future(
            self.client.post(f"{self.config.endpoint}/api/generate", json=payload, timeout=timeout)
        )
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if request_task not in done:
                if cancel_task in done and token.reason == REASON_USER_TERMINATED:
                    logger.info(f"请求 {request_id} 已被终止")
                    raise RequestTerminatedError()
                token.cancel(REASON_TIMEOUT)
                raise RequestTimeoutError(f"Request timed out after {timeout} seconds", timeout=timeout)

            try:
                response = request_task.result()
            except httpx.TimeoutException as e:
                raise RequestTimeoutError(
                    f"Request timed out after {timeout} seconds", timeout=timeout
                ) from e
            except httpx.HTTPError as e:
                raise APIError(
                    f"Ollama connection error: {e}", error_code="NETWORK", is_retryable=True
                ) from e
        finally:
            for task in (request_task, cancel_task):
                if not task.done():
                    task.cancel()
            self.registry.unregister(request_id, parent_token)

        if not response.is_success:
            raise APIError(
                f"Ollama HTTP error: {response.status_code}",
                error_code="HTTP_ERROR",
                is_retryable=response.status_code >= 500,
            )

        text = parse_ollama_response(response.text)
        logger.debug(f"请求 {request_id} 完成，返回 {len(text)} 字符")
        return text

    async def request_enhancement(
        self,
        prompt: str,
        cache_key: Optional[str] = None,
        parent_token: Optional[CancellationToken] = None,
        description: str = "",
    ) -> str:
        """带缓存和重试的生成请求，返回模型原始输出"""
        if cache_key:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"命中结果缓存{f' [{description}]' if description else ''}")
                return cached

        def stopped() -> bool:
            return parent_token is not None and parent_token.is_cancelled()

        async def attempt() -> str:
            return await self.generate(prompt, parent_token=parent_token)

        text = await self.retry_policy.run(attempt, description=description, should_stop=stopped)
        if cache_key:
            self.cache.put(cache_key, text)
        return text

    async def enhance_chunk(
        self,
        chunk: str,
        context: str = "",
        character_summary: str = "",
        style: Optional[NovelStyleInfo] = None,
        parent_token: Optional[CancellationToken] = None,
        description: str = "",
    ) -> str:
        """
        增强一个文本块

        Returns:
            str: 清理后的增强文本

        Raises:
            ResponseParseError: 清理后为空
        """
        if not chunk or not chunk.strip():
            raise InvalidContentError("Chunk text is empty")

        prompt = enhancement_prompt(chunk, character_summary, context, style)
        raw = await self.request_enhancement(
            prompt,
            cache_key=ResultCache.make_key(chunk, context),
            parent_token=parent_token,
            description=description,
        )
        enhanced = clean_llm_response(raw)
        if not enhanced:
            raise ResponseParseError("Enhanced text is empty after cleanup")
        return enhanced

    async def analyze_style(
        self, sample: str, parent_token: Optional[CancellationToken] = None
    ) -> NovelStyleInfo:
        """用模型分析小说风格"""
        raw = await self.generate(style_analysis_prompt(sample), parent_token=parent_token)
        data = extract_json_object(raw)
        try:
            confidence = float(data.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0
        return NovelStyleInfo(
            style=str(data.get("style") or "standard narrative"),
            tone=str(data.get("tone") or "neutral"),
            confidence=confidence,
            analyzed=True,
        )

    async def analyze_gender(
        self,
        character_name: str,
        context_text: str,
        parent_token: Optional[CancellationToken] = None,
    ) -> GenderResult:
        """用模型判断单个人物的性别"""
        raw = await self.generate(
            gender_analysis_prompt(character_name, context_text), parent_token=parent_token
        )
        data = extract_json_object(raw)
        gender = str(data.get("gender") or GENDER_UNKNOWN).lower()
        if gender not in VALID_GENDERS:
            gender = GENDER_UNKNOWN
        try:
            confidence = float(data.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0
        evidence = data.get("evidence") or []
        if not isinstance(evidence, list):
            evidence = [str(evidence)]
        return GenderResult(
            gender=gender,
            confidence=confidence if gender != GENDER_UNKNOWN else 0.0,
            evidence=[truncate_text(str(e), 200) for e in evidence[:3]],
        )

    def terminate_all(self) -> Dict[str, Any]:
        """终止所有会话和进行中的请求"""
        count = self.registry.cancel_all(REASON_USER_TERMINATED)
        for token in list(self._sessions):
            token.cancel(REASON_USER_TERMINATED)
        logger.info(f"终止全部请求，共中止 {count} 个")
        return {"status": "terminated", "count": count}
