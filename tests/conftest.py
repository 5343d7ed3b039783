"""
Pytest 配置文件
为测试隔离环境变量和配置单例
"""
import pytest

import config

_ENV_KEYS = (
    "OLLAMA_ENDPOINT",
    "OLLAMA_MODEL",
    "OLLAMA_TIMEOUT",
    "OLLAMA_TEMPERATURE",
    "OLLAMA_TOP_P",
    "OLLAMA_CONTEXT_SIZE",
    "OLLAMA_MAX_TOKENS",
    "OLLAMA_MAX_PROMPT_CHARS",
    "AVAILABILITY_TTL",
    "AVAILABILITY_WAIT_TIMEOUT",
    "VERSION_CHECK_TIMEOUT",
    "MAX_CHUNK_SIZE",
    "BATCH_DELAY_MS",
    "INTER_BATCH_DELAY_MS",
    "MAX_RETRY",
    "RETRY_BASE_DELAY",
    "FAILURE_MARGIN",
    "MIN_BATCH_SIZE",
    "MAX_BATCH_SIZE",
    "MAX_ROSTER_SIZE",
    "STORE_FILE",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch, tmp_path):
    """清除会影响默认配置的环境变量（.env 中的值不应进入测试）"""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    # 测试期间不等待批次间隔
    monkeypatch.setenv("BATCH_DELAY_MS", "0")
    monkeypatch.setenv("INTER_BATCH_DELAY_MS", "0")
    monkeypatch.setenv("STORE_FILE", str(tmp_path / "novel_store.json"))
    config.reset_config()
    yield
    config.reset_config()
