"""
错误处理服务
对异常进行分类、控制提示频率，并按类别尝试恢复
"""

import asyncio
import inspect
import logging
import random
import string
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

from models.error_record import ErrorRecord

logger = logging.getLogger(__name__)

SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"
SEVERITY_CRITICAL = "critical"

# 提示显示时长（毫秒），0 表示一直显示直到用户关闭
DISPLAY_DURATIONS = {
    SEVERITY_CRITICAL: 0,
    SEVERITY_HIGH: 8000,
    SEVERITY_MEDIUM: 5000,
    SEVERITY_LOW: 3000,
}
DEFAULT_DISPLAY_DURATION = 4000

MAX_ERROR_HISTORY = 10
MAX_SHOWN_OCCURRENCES = 3
SUPPRESSION_WINDOW = 5 * 60
RECENT_ERRORS_IN_STATS = 5


@dataclass(frozen=True)
class ErrorCategory:
    severity: str
    user_message: str
    suggestions: tuple[str, ...]
    recoverable: bool


NETWORK = "NETWORK"
LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
TIMEOUT = "TIMEOUT"
PERMISSION_DENIED = "PERMISSION_DENIED"
INVALID_CONTENT = "INVALID_CONTENT"
PROCESSING_ERROR = "PROCESSING_ERROR"
UNKNOWN = "UNKNOWN"

ERROR_CATEGORIES: dict[str, ErrorCategory] = {
    NETWORK: ErrorCategory(
        SEVERITY_HIGH,
        "Network connection issue",
        ("Check your internet connection", "Try again in a moment"),
        True,
    ),
    LLM_UNAVAILABLE: ErrorCategory(
        SEVERITY_CRITICAL,
        "AI service unavailable",
        (
            "Make sure Ollama is running on your computer",
            'Run "ollama serve" in your terminal',
            "Check if your AI model is downloaded",
        ),
        False,
    ),
    PROCESSING_ERROR: ErrorCategory(
        SEVERITY_MEDIUM,
        "Text processing error",
        ("Try enhancing a smaller section", "Refresh the page and try again"),
        True,
    ),
    PERMISSION_DENIED: ErrorCategory(
        SEVERITY_HIGH,
        "Site not whitelisted",
        ("Add this site to your whitelist", "Click the extension icon to whitelist"),
        True,
    ),
    INVALID_CONTENT: ErrorCategory(
        SEVERITY_MEDIUM,
        "Content not suitable for enhancement",
        ("Try a different page with novel content", "Check if the page has readable text"),
        False,
    ),
    TIMEOUT: ErrorCategory(
        SEVERITY_MEDIUM,
        "Request timed out",
        ("Try again with a smaller text section", "Check your timeout settings"),
        True,
    ),
    UNKNOWN: ErrorCategory(
        SEVERITY_LOW,
        "Unexpected error occurred",
        ("Try refreshing the page", "Check the log for details"),
        True,
    ),
}

# 按顺序匹配，先命中者生效
CLASSIFICATION_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (NETWORK, ("network", "fetch", "connection")),
    (LLM_UNAVAILABLE, ("ollama", "not available", "llm", "model")),
    (TIMEOUT, ("timeout", "timed out")),
    (PERMISSION_DENIED, ("permission", "whitelist", "not allowed")),
    (INVALID_CONTENT, ("content", "element", "text")),
)
PROCESSING_CONTEXTS = ("enhancement", "processing")

# 带错误码的 API 异常先按错误码归类，消息里的 "Ollama" 等字样不参与判断
ERROR_CODE_CATEGORIES = {
    "LLM_UNAVAILABLE": LLM_UNAVAILABLE,
    "TIMEOUT": TIMEOUT,
    "NETWORK": NETWORK,
    "HTTP_ERROR": NETWORK,
    "CHANNEL": NETWORK,
    "EMPTY_RESPONSE": PROCESSING_ERROR,
}

TIMEOUT_ADVICE = "Timeout occurred. Try processing smaller sections or increasing timeout in settings."
PROCESSING_ADVICE = "Processing failed. Try enhancing a smaller section of text."

# 通知回调: (消息, 严重程度, 显示时长毫秒)
Notifier = Callable[[str, str, int], None]


def log_notifier(message: str, severity: str, duration_ms: int) -> None:
    """默认通知方式：写日志"""
    if severity in (SEVERITY_CRITICAL, SEVERITY_HIGH):
        logger.error(message)
    elif severity == SEVERITY_MEDIUM:
        logger.warning(message)
    else:
        logger.info(message)


def get_display_duration(severity: str) -> int:
    return DISPLAY_DURATIONS.get(severity, DEFAULT_DISPLAY_DURATION)


def generate_error_id(now: Optional[float] = None) -> str:
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"err_{millis}_{suffix}"


class ErrorClassifier:
    """错误分类与提示频率控制"""

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.notifier = notifier or log_notifier
        self.clock = clock
        self.history: list[ErrorRecord] = []
        self._counts: dict[str, int] = {}
        self._suppressed_until: dict[str, float] = {}

    @staticmethod
    def categorize(error: BaseException | str, context: str = "general") -> str:
        """根据错误码归类，没有错误码时按异常消息和类名匹配关键词"""
        if isinstance(error, BaseException):
            category = ERROR_CODE_CATEGORIES.get(getattr(error, "error_code", None))
            if category is not None:
                return category
            message = str(error).lower()
            name = type(error).__name__.lower()
        else:
            message = (error or "").lower()
            name = ""

        for category, keywords in CLASSIFICATION_KEYWORDS:
            if any(k in message or k in name for k in keywords):
                return category
        if context in PROCESSING_CONTEXTS:
            return PROCESSING_ERROR
        return UNKNOWN

    def classify(self, error: BaseException | str, context: str = "general") -> ErrorRecord:
        category_name = self.categorize(error, context)
        category = ERROR_CATEGORIES[category_name]
        now = self.clock()
        return ErrorRecord(
            id=generate_error_id(now),
            category=category_name,
            severity=category.severity,
            context=context,
            timestamp=now,
            message=str(error),
            user_message=category.user_message,
            suggestions=list(category.suggestions),
            recoverable=category.recoverable,
        )

    def should_show(self, key: str) -> bool:
        """
        同一 (类别, 来源) 前3次提示给用户，第4次起抑制5分钟，窗口结束后计数清零
        """
        now = self.clock()
        until = self._suppressed_until.get(key)
        if until is not None:
            if now < until:
                return False
            del self._suppressed_until[key]
            self._counts.pop(key, None)

        count = self._counts.get(key, 0)
        self._counts[key] = count + 1
        if count >= MAX_SHOWN_OCCURRENCES:
            self._suppressed_until[key] = now + SUPPRESSION_WINDOW
            return False
        return True

    def handle_error(
        self,
        error: BaseException | str,
        context: str = "general",
        duration_ms: Optional[int] = None,
    ) -> ErrorRecord:
        """分类、记录并在未被抑制时通知用户"""
        record = self.classify(error, context)
        record.shown = self.should_show(record.suppression_key)

        log = logger.error if record.shown else logger.warning
        log(f"[{record.id}] {record.category} ({record.context}): {record.message}")

        self.history.insert(0, record)
        del self.history[MAX_ERROR_HISTORY:]

        if record.shown:
            duration = duration_ms if duration_ms is not None else get_display_duration(record.severity)
            self._notify(record.user_message, record.severity, duration)
        return record

    def suggest(self, record: ErrorRecord, duration_ms: int = 8000) -> None:
        if record.suggestions:
            self._notify(f"Suggestions: {' • '.join(record.suggestions)}", SEVERITY_LOW, duration_ms)

    def _notify(self, message: str, severity: str, duration_ms: int) -> None:
        try:
            self.notifier(message, severity, duration_ms)
        except Exception:
            logger.debug("Error notifier failed", exc_info=True)

    @property
    def suppressed_keys(self) -> list[str]:
        now = self.clock()
        return [key for key, until in self._suppressed_until.items() if now < until]

    def get_error_stats(self) -> dict[str, Any]:
        category_counts: dict[str, int] = {}
        severity_counts: dict[str, int] = {}
        for record in self.history:
            category_counts[record.category] = category_counts.get(record.category, 0) + 1
            severity_counts[record.severity] = severity_counts.get(record.severity, 0) + 1

        return {
            "total_errors": len(self.history),
            "category_counts": category_counts,
            "severity_counts": severity_counts,
            "suppressed_error_types": self.suppressed_keys,
            "recent_errors": [
                {
                    "id": r.id,
                    "category": r.category,
                    "context": r.context,
                    "timestamp": r.timestamp,
                }
                for r in self.history[:RECENT_ERRORS_IN_STATS]
            ],
        }

    def clear_error_history(self) -> None:
        self.history.clear()
        self._counts.clear()
        self._suppressed_until.clear()


@dataclass
class RecoveryResult:
    """恢复尝试的结果"""

    action: str
    success: bool = False
    message: str = ""

    @property
    def should_halt(self) -> bool:
        return self.action == "halt"


class RecoveryManager:
    """按错误类别执行恢复策略"""

    def __init__(
        self,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.classifier = classifier or ErrorClassifier()
        self.sleep = sleep

    async def attempt_recovery(
        self,
        record: ErrorRecord,
        retry_fn: Optional[Callable[[], Awaitable[Any]]] = None,
        recovery_fn: Optional[Callable[[ErrorRecord], Any]] = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
    ) -> RecoveryResult:
        """
        尝试恢复

        Args:
            record: 已分类的错误
            retry_fn: 网络错误时延迟调用的重试函数
            recovery_fn: 其他可恢复类别使用的自定义恢复函数
            max_retries: 网络重试次数上限
            retry_delay: 每次网络重试前的等待秒数
        """
        if record.category == LLM_UNAVAILABLE:
            self.classifier.suggest(record)
            return RecoveryResult("halt", message=record.user_message)

        if not record.recoverable:
            return RecoveryResult("none", message=record.user_message)

        if record.category == NETWORK:
            return await self._recover_network(record, retry_fn, max_retries, retry_delay)

        if record.category == TIMEOUT:
            self.classifier._notify(TIMEOUT_ADVICE, SEVERITY_LOW, 6000)
            return RecoveryResult("suggested", message=TIMEOUT_ADVICE)

        if record.category == PROCESSING_ERROR:
            self.classifier._notify(PROCESSING_ADVICE, SEVERITY_LOW, 5000)
            return RecoveryResult("suggested", message=PROCESSING_ADVICE)

        if recovery_fn is None:
            return RecoveryResult("none")
        try:
            outcome = recovery_fn(record)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"恢复函数执行失败 [{record.id}]: {e}")
            return RecoveryResult("custom", success=False, message=str(e))
        return RecoveryResult("custom", success=True)

    async def _recover_network(
        self,
        record: ErrorRecord,
        retry_fn: Optional[Callable[[], Awaitable[Any]]],
        max_retries: int,
        retry_delay: float,
    ) -> RecoveryResult:
        if retry_fn is None:
            return RecoveryResult("none")

        logger.info(f"尝试网络恢复 [{record.id}]")
        last_error = ""
        for attempt in range(1, max_retries + 1):
            await self.sleep(retry_delay)
            try:
                await retry_fn()
            except Exception as e:
                last_error = str(e)
                logger.warning(f"网络恢复失败 ({attempt}/{max_retries}): {e}")
                continue
            self.classifier._notify("Connection restored!", SEVERITY_LOW, 3000)
            return RecoveryResult("retried", success=True)
        return RecoveryResult("retried", success=False, message=last_error)
