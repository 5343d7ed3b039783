"""
数据模型模块
定义项目中使用的各种数据结构
"""

from .character import CharacterMap, CharacterRecord, GenderResult
from .chunk import Chunk
from .error_record import ErrorRecord
from .session import (
    AvailabilityStatus,
    EnhancementSession,
    NovelStyleInfo,
    SessionState,
)

__all__ = [
    "Chunk",
    "CharacterMap",
    "CharacterRecord",
    "GenderResult",
    "ErrorRecord",
    "AvailabilityStatus",
    "EnhancementSession",
    "NovelStyleInfo",
    "SessionState",
]
