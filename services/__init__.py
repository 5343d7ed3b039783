"""
服务层模块
包含人物识别、性别推断、模型网关和增强会话等业务逻辑服务
"""

from .cancellation import CancellationToken, RequestRegistry
from .character_extractor import CharacterExtractor
from .enhancement_service import EnhancementService, ListOutputSink
from .error_handler import ErrorClassifier, RecoveryManager
from .gender_inferencer import GenderInferencer
from .llm_service import ModelGateway
from .messaging import MessageClient, MessageRouter
from .novel_store import NovelStore
from .retry_policy import RetryPolicy
from .style_analyzer import StyleAnalyzer, StyleCache

__all__ = [
    "CancellationToken",
    "RequestRegistry",
    "CharacterExtractor",
    "GenderInferencer",
    "StyleAnalyzer",
    "StyleCache",
    "ModelGateway",
    "RetryPolicy",
    "ErrorClassifier",
    "RecoveryManager",
    "NovelStore",
    "MessageRouter",
    "MessageClient",
    "EnhancementService",
    "ListOutputSink",
]
