"""
提示词token估算
用tiktoken统计提示词长度，判断它占用了模型上下文窗口的多少
"""
import logging
from typing import Optional

import tiktoken

from exceptions import ProcessingError

logger = logging.getLogger(__name__)

ENCODING_NAME = "cl100k_base"
# 编码器不可用时按每3个字符1个token估算（英文约4个，留出余量）
CHARS_PER_TOKEN = 3

_encoder: Optional[tiktoken.Encoding] = None


def get_encoder() -> tiktoken.Encoding:
    """懒加载编码器，首次使用时可能需要下载编码表"""
    global _encoder
    if _encoder is None:
        try:
            _encoder = tiktoken.get_encoding(ENCODING_NAME)
        except Exception as e:
            logger.error(f"初始化编码器失败: {e}")
            raise ProcessingError(f"无法初始化token编码器: {e}") from e
        logger.debug(f"已加载tiktoken编码器 {ENCODING_NAME}")
    return _encoder


def count_tokens(text: str) -> int:
    """
    统计文本的token数量

    Raises:
        ValueError: text 不是字符串
        ProcessingError: 编码器不可用或编码失败
    """
    if not isinstance(text, str):
        raise ValueError("输入必须是字符串")
    if not text:
        return 0

    try:
        return len(get_encoder().encode(text))
    except ProcessingError:
        raise
    except Exception as e:
        raise ProcessingError(f"无法计算token数量: {e}") from e


def estimate_tokens_from_chars(char_count: int) -> int:
    return max(1, char_count // CHARS_PER_TOKEN)


def estimate_prompt_tokens(prompt: str) -> int:
    """提示词的token数，编码失败时退回按字符估算"""
    try:
        return count_tokens(prompt)
    except ProcessingError as e:
        logger.debug(f"token统计失败，按字符估算: {e}")
        return estimate_tokens_from_chars(len(prompt))


def context_usage(prompt: str, context_size: int) -> float:
    """提示词占上下文窗口的比例，超过1表示模型会截掉开头"""
    if context_size <= 0:
        return 0.0
    return estimate_prompt_tokens(prompt) / context_size
