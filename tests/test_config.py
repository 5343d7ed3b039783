"""
测试配置管理模块
"""

import os
from unittest.mock import patch

import pytest

from config import (
    OllamaConfig,
    ProcessingConfig,
    get_ollama_config,
    get_processing_config,
    reset_config,
)
from exceptions import ConfigurationError


class TestOllamaConfig:
    """测试OllamaConfig类"""

    def test_defaults(self):
        """测试默认值"""
        with patch.dict(os.environ, {}, clear=True):
            config = OllamaConfig()
            assert config.endpoint == "http://localhost:11434"
            assert config.model == "qwen3:8b"
            assert config.timeout == 180
            assert config.temperature == 0.4
            assert config.top_p == 0.9
            assert config.max_tokens == 4096
            assert config.max_prompt_chars == 32000
            assert config.availability_ttl == 30
            assert config.availability_wait_timeout == 5

    def test_from_env(self):
        """测试从环境变量读取"""
        with patch.dict(
            os.environ,
            {
                "OLLAMA_ENDPOINT": "http://gpu-box:11434/",
                "OLLAMA_MODEL": "llama3",
                "OLLAMA_TIMEOUT": "90",
                "OLLAMA_TEMPERATURE": "0.7",
            },
        ):
            config = OllamaConfig()
            assert config.endpoint == "http://gpu-box:11434"
            assert config.model == "llama3"
            assert config.timeout == 90
            assert config.temperature == 0.7

    def test_validate_ok(self):
        OllamaConfig().validate()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"endpoint": "localhost:11434"},
            {"model": ""},
            {"temperature": 3.0},
            {"top_p": 0},
            {"max_prompt_chars": 0},
            {"availability_ttl": -1},
        ],
    )
    def test_validate_rejects_invalid(self, overrides):
        config = OllamaConfig(**overrides)
        with pytest.raises(ConfigurationError):
            config.validate()


class TestProcessingConfig:
    """测试ProcessingConfig类"""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = ProcessingConfig()
            assert config.max_chunk_size == 4000
            assert config.batch_delay_ms == 800
            assert config.inter_batch_delay_ms == 500
            assert config.max_retry == 3
            assert config.failure_margin == 3
            assert config.min_batch_size == 5
            assert config.max_batch_size == 15
            assert config.max_roster_size == 10
            assert config.store_file.endswith("novel_store.json")

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MAX_CHUNK_SIZE", "2000")
        monkeypatch.setenv("FAILURE_MARGIN", "1")
        config = ProcessingConfig()
        assert config.max_chunk_size == 2000
        assert config.failure_margin == 1

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_chunk_size": 0},
            {"batch_delay_ms": -1},
            {"max_retry": 0},
            {"failure_margin": -1},
            {"min_batch_size": 20, "max_batch_size": 15},
            {"max_roster_size": 0},
        ],
    )
    def test_validate_rejects_invalid(self, overrides):
        with pytest.raises(ConfigurationError):
            ProcessingConfig(**overrides).validate()


class TestSingletons:
    """测试配置单例"""

    def test_same_instance(self):
        assert get_ollama_config() is get_ollama_config()
        assert get_processing_config() is get_processing_config()

    def test_reset_rereads_env(self, monkeypatch):
        first = get_processing_config()
        monkeypatch.setenv("MAX_CHUNK_SIZE", "1234")
        assert get_processing_config().max_chunk_size == first.max_chunk_size

        reset_config()
        assert get_processing_config().max_chunk_size == 1234
