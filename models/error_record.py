"""
错误记录数据模型
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ErrorRecord:
    """一条已分类的错误"""

    id: str
    category: str
    severity: str
    context: str
    timestamp: float
    message: str = ""
    user_message: str = ""
    suggestions: list[str] = field(default_factory=list)
    recoverable: bool = True
    shown: bool = True

    @property
    def suppression_key(self) -> str:
        return f"{self.category}_{self.context}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "severity": self.severity,
            "context": self.context,
            "timestamp": self.timestamp,
            "message": self.message,
            "user_message": self.user_message,
            "suggestions": list(self.suggestions),
            "recoverable": self.recoverable,
            "shown": self.shown,
        }
