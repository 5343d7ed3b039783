"""
会话状态相关的数据模型
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SessionState(str, Enum):
    """增强会话状态"""

    IDLE = "idle"
    CHECKING_PREREQUISITES = "checking-prerequisites"
    ANALYZING_CHARACTERS = "analyzing-characters"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"
    TERMINATED = "terminated"


TERMINAL_STATES = frozenset({SessionState.COMPLETE, SessionState.FAILED, SessionState.TERMINATED})

# 合法的状态迁移；任何非终止状态都可以进入 failed / terminated
_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.CHECKING_PREREQUISITES}),
    SessionState.CHECKING_PREREQUISITES: frozenset({SessionState.ANALYZING_CHARACTERS}),
    SessionState.ANALYZING_CHARACTERS: frozenset({SessionState.PROCESSING}),
    SessionState.PROCESSING: frozenset({SessionState.COMPLETE}),
}


@dataclass
class NovelStyleInfo:
    """小说风格信息"""

    style: str = "standard narrative"
    tone: str = "neutral"
    confidence: float = 0.0
    analyzed: bool = False

    def __post_init__(self):
        self.confidence = min(1.0, max(0.0, float(self.confidence)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "style": self.style,
            "tone": self.tone,
            "confidence": self.confidence,
            "analyzed": self.analyzed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NovelStyleInfo":
        return cls(
            style=data.get("style") or "standard narrative",
            tone=data.get("tone") or "neutral",
            confidence=float(data.get("confidence") or 0.0),
            analyzed=bool(data.get("analyzed", False)),
        )


@dataclass
class AvailabilityStatus:
    """模型服务可用性（带检查时间，用于TTL缓存）"""

    available: bool
    checked_at: float
    version: str | None = None
    models: list[str] | None = None
    reason: str | None = None

    def is_fresh(self, now: float, ttl: float) -> bool:
        """判断缓存是否仍在有效期内"""
        return now - self.checked_at < ttl

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"available": self.available, "checkedAt": self.checked_at}
        if self.version is not None:
            data["version"] = self.version
        if self.models is not None:
            data["models"] = list(self.models)
        if self.reason is not None:
            data["reason"] = self.reason
        return data


@dataclass
class EnhancementSession:
    """一次增强运行的会话状态"""

    total_units: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    completed_units: int = 0
    failed_units: int = 0
    terminated: bool = False
    pending: bool = False
    state: SessionState = SessionState.IDLE
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def elapsed_time(self) -> float:
        """计算已用时间（秒）"""
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    @property
    def progress_percentage(self) -> float:
        """计算进度百分比"""
        if self.total_units == 0:
            return 0.0
        return (self.completed_units + self.failed_units) / self.total_units * 100

    def transition(self, new_state: SessionState) -> None:
        """状态迁移，非法迁移抛出 ValueError"""
        if self.is_terminal:
            raise ValueError(f"会话已结束 ({self.state.value})，无法迁移到 {new_state.value}")

        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed and new_state not in (
            SessionState.FAILED,
            SessionState.TERMINATED,
        ):
            raise ValueError(f"非法的状态迁移: {self.state.value} -> {new_state.value}")

        self.state = new_state
        if self.is_terminal:
            self.end_time = datetime.now()

    def record_success(self, count: int = 1) -> None:
        self.completed_units += count

    def record_failure(self, count: int = 1, error: str | None = None) -> None:
        self.failed_units += count
        if error:
            self.add_error(error)

    def add_error(self, error: str) -> None:
        """添加错误信息"""
        self.errors.append(f"[{datetime.now().strftime('%H:%M:%S')}] {error}")

    def complete(self) -> None:
        """标记处理完成"""
        self.transition(SessionState.COMPLETE)

    def fail(self, error: str) -> None:
        """标记处理失败"""
        self.add_error(error)
        self.transition(SessionState.FAILED)

    def terminate(self) -> None:
        """标记为用户终止"""
        self.terminated = True
        if not self.is_terminal:
            self.transition(SessionState.TERMINATED)

    def get_summary(self) -> dict[str, Any]:
        """获取处理摘要"""
        return {
            "id": self.id,
            "state": self.state.value,
            "total_units": self.total_units,
            "completed_units": self.completed_units,
            "failed_units": self.failed_units,
            "terminated": self.terminated,
            "pending": self.pending,
            "progress": f"{self.progress_percentage:.1f}%",
            "elapsed_time": f"{self.elapsed_time:.1f}秒",
            "error_count": len(self.errors),
        }
