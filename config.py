"""
配置管理模块
使用环境变量管理配置，支持 .env 文件
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from exceptions import ConfigurationError

# 加载.env文件中的环境变量
load_dotenv()


@dataclass
class OllamaConfig:
    """Ollama 模型服务配置类"""

    endpoint: str = field(
        default_factory=lambda: os.getenv("OLLAMA_ENDPOINT", "http://localhost:11434")
    )
    model: str = field(default_factory=lambda: os.getenv("OLLAMA_MODEL", "qwen3:8b"))
    timeout: float = field(default_factory=lambda: float(os.getenv("OLLAMA_TIMEOUT", "180")))
    temperature: float = field(
        default_factory=lambda: float(os.getenv("OLLAMA_TEMPERATURE", "0.4"))
    )
    top_p: float = field(default_factory=lambda: float(os.getenv("OLLAMA_TOP_P", "0.9")))
    context_size: int = field(
        default_factory=lambda: int(os.getenv("OLLAMA_CONTEXT_SIZE", "8192"))
    )
    max_tokens: int = field(default_factory=lambda: int(os.getenv("OLLAMA_MAX_TOKENS", "4096")))
    max_prompt_chars: int = field(
        default_factory=lambda: int(os.getenv("OLLAMA_MAX_PROMPT_CHARS", "32000"))
    )

    # 可用性检查
    availability_ttl: float = field(
        default_factory=lambda: float(os.getenv("AVAILABILITY_TTL", "30"))
    )
    availability_wait_timeout: float = field(
        default_factory=lambda: float(os.getenv("AVAILABILITY_WAIT_TIMEOUT", "5"))
    )
    version_check_timeout: float = field(
        default_factory=lambda: float(os.getenv("VERSION_CHECK_TIMEOUT", "5"))
    )

    def __post_init__(self):
        """初始化后处理"""
        self.endpoint = self.endpoint.rstrip("/")

    def validate(self) -> None:
        """验证配置"""
        if not self.endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(f"OLLAMA_ENDPOINT必须是http(s)地址: {self.endpoint}")

        if not self.model:
            raise ConfigurationError("OLLAMA_MODEL不能为空")

        if not 0 <= self.temperature <= 2:
            raise ConfigurationError("OLLAMA_TEMPERATURE必须在0到2之间")

        if not 0 < self.top_p <= 1:
            raise ConfigurationError("OLLAMA_TOP_P必须在0到1之间")

        if self.max_prompt_chars <= 0:
            raise ConfigurationError("OLLAMA_MAX_PROMPT_CHARS必须大于0")

        if self.availability_ttl < 0:
            raise ConfigurationError("AVAILABILITY_TTL不能小于0")


@dataclass
class ProcessingConfig:
    """处理配置类"""

    max_chunk_size: int = field(default_factory=lambda: int(os.getenv("MAX_CHUNK_SIZE", "4000")))
    batch_delay_ms: int = field(default_factory=lambda: int(os.getenv("BATCH_DELAY_MS", "800")))
    inter_batch_delay_ms: int = field(
        default_factory=lambda: int(os.getenv("INTER_BATCH_DELAY_MS", "500"))
    )
    max_retry: int = field(default_factory=lambda: int(os.getenv("MAX_RETRY", "3")))
    retry_base_delay: float = field(
        default_factory=lambda: float(os.getenv("RETRY_BASE_DELAY", "1.0"))
    )
    failure_margin: int = field(default_factory=lambda: int(os.getenv("FAILURE_MARGIN", "3")))
    min_batch_size: int = field(default_factory=lambda: int(os.getenv("MIN_BATCH_SIZE", "5")))
    max_batch_size: int = field(default_factory=lambda: int(os.getenv("MAX_BATCH_SIZE", "15")))
    max_roster_size: int = field(default_factory=lambda: int(os.getenv("MAX_ROSTER_SIZE", "10")))
    store_file: str = field(
        default_factory=lambda: os.getenv("STORE_FILE", os.path.join("outputs", "novel_store.json"))
    )

    def validate(self) -> None:
        """验证配置"""
        if self.max_chunk_size <= 0:
            raise ConfigurationError("MAX_CHUNK_SIZE必须大于0")

        if self.batch_delay_ms < 0 or self.inter_batch_delay_ms < 0:
            raise ConfigurationError("批次间隔不能小于0")

        if self.max_retry < 1:
            raise ConfigurationError("MAX_RETRY必须至少为1")

        if self.failure_margin < 0:
            raise ConfigurationError("FAILURE_MARGIN不能小于0")

        if self.min_batch_size <= 0 or self.min_batch_size > self.max_batch_size:
            raise ConfigurationError("MIN_BATCH_SIZE必须大于0且不超过MAX_BATCH_SIZE")

        if self.max_roster_size <= 0:
            raise ConfigurationError("MAX_ROSTER_SIZE必须大于0")


# 创建全局配置实例
_ollama_config = None
_processing_config = None


def get_ollama_config() -> OllamaConfig:
    """获取Ollama配置单例"""
    global _ollama_config
    if _ollama_config is None:
        _ollama_config = OllamaConfig()
    return _ollama_config


def get_processing_config() -> ProcessingConfig:
    """获取处理配置单例"""
    global _processing_config
    if _processing_config is None:
        _processing_config = ProcessingConfig()
    return _processing_config


def reset_config() -> None:
    """清空配置单例（环境变量变化后重新读取）"""
    global _ollama_config, _processing_config
    _ollama_config = None
    _processing_config = None
