"""
文本分割器模块
将长文本分割成适合发送给模型的块，并生成块之间的衔接上下文
"""

import logging
import re
from collections.abc import Mapping, Sequence

from config import get_processing_config
from models.chunk import Chunk

logger = logging.getLogger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"

# 衔接片段的最小长度，过短的行不具备参考价值
CONTEXT_MIN_LENGTH = 20

PREVIOUS_CONTEXT_HEADER = "CONTEXT FROM PREVIOUS SECTION (enhanced, for continuity reference only):"
NEXT_CONTEXT_HEADER = "CONTEXT FROM NEXT SECTION (original, for continuity reference only):"

_PARAGRAPH_BREAK = re.compile(r"\r?\n\r?\n")
# 保留开头的标点和末尾没有标点的残句，保证拼接后不丢字
_SENTENCE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")

_CODE_FENCE = re.compile(r"```[\w-]*\n?")
_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_PREAMBLE = re.compile(
    r"^\s*(Here is the enhanced text:|The enhanced text:|Enhanced text:|Enhanced version:)",
    re.IGNORECASE,
)
_TRAILING_NOTE = re.compile(r"(Note:.*$)|(I hope this helps.*$)", re.IGNORECASE | re.MULTILINE)


class TextSplitter:
    """按段落/句子边界贪心分块"""

    def __init__(self, max_chunk_size: int | None = None):
        self.max_chunk_size = max_chunk_size or get_processing_config().max_chunk_size
        if self.max_chunk_size <= 0:
            raise ValueError("max_chunk_size必须大于0")

    def split_text(self, text: str) -> list[str]:
        """
        分割文本为不超过 max_chunk_size 的块

        只有单个句子本身超长时才会产生超长块，文本不会被截断。

        Args:
            text: 要分割的文本

        Returns:
            List[str]: 文本块列表，空文本返回空列表
        """
        if not text or not text.strip():
            return []

        if len(text) <= self.max_chunk_size:
            return [text]

        logger.debug(f"开始分割文本，总长度: {len(text)} 字符")

        chunks: list[str] = []
        current = ""
        for para in _PARAGRAPH_BREAK.split(text):
            para = para.strip()
            if not para:
                continue

            if len(para) > self.max_chunk_size:
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(self._split_by_sentences(para))
                continue

            if not current:
                current = para
            elif len(current) + len(para) + len(PARAGRAPH_SEPARATOR) <= self.max_chunk_size:
                current = current + PARAGRAPH_SEPARATOR + para
            else:
                chunks.append(current)
                current = para

        if current:
            chunks.append(current)

        logger.info(f"文本分割完成，共 {len(chunks)} 个块")
        return chunks

    def _split_by_sentences(self, paragraph: str) -> list[str]:
        """把超长段落按句末标点拆开后重新累积"""
        sentences = [s.strip() for s in _SENTENCE.findall(paragraph) if s.strip()]
        if not sentences:
            sentences = [paragraph]

        chunks: list[str] = []
        current = ""
        for sentence in sentences:
            if not current:
                current = sentence
            elif len(current) + len(sentence) + 1 <= self.max_chunk_size:
                current = current + " " + sentence
            else:
                chunks.append(current)
                current = sentence

        if current:
            chunks.append(current)

        logger.debug(f"超长段落按句子拆分为 {len(chunks)} 个块")
        return chunks

    def plan_chunks(self, text: str) -> list[Chunk]:
        """分割文本并返回带序号的 Chunk 列表"""
        pieces = self.split_text(text)
        last = len(pieces) - 1
        return [Chunk(index=i, text=piece, is_final=i == last) for i, piece in enumerate(pieces)]


def split_text(text: str, max_chunk_size: int | None = None) -> list[str]:
    """分割文本（便捷函数）"""
    return TextSplitter(max_chunk_size).split_text(text)


def plan_chunks(text: str, max_chunk_size: int | None = None) -> list[Chunk]:
    """分割文本为 Chunk 列表（便捷函数）"""
    return TextSplitter(max_chunk_size).plan_chunks(text)


def _chunk_text(chunk: Chunk | str) -> str:
    return chunk.text if isinstance(chunk, Chunk) else chunk


def build_context(
    chunks: Sequence[Chunk | str],
    index: int,
    enhanced: Mapping[int, str] | None = None,
) -> str:
    """
    生成第 index 块的衔接上下文

    前一块取最后一行（优先使用已增强的版本），后一块取第一行（原文），
    两者都只在长度超过20个字符时才加入。

    Args:
        chunks: 全部文本块
        index: 当前块序号
        enhanced: 已增强块的文本，按序号索引

    Returns:
        str: 嵌入提示词的参考文本，可能为空字符串
    """
    enhanced = enhanced or {}
    context = ""

    if index > 0:
        previous = enhanced.get(index - 1) or _chunk_text(chunks[index - 1])
        last_line = previous.rstrip().split("\n")[-1].strip() if previous else ""
        if len(last_line) > CONTEXT_MIN_LENGTH:
            context += f"{PREVIOUS_CONTEXT_HEADER}\n{last_line}\n\n"

    if index < len(chunks) - 1:
        following = _chunk_text(chunks[index + 1])
        first_line = following.lstrip().split("\n")[0].strip() if following else ""
        if len(first_line) > CONTEXT_MIN_LENGTH:
            context += f"{NEXT_CONTEXT_HEADER}\n{first_line}\n\n"

    return context


def clean_llm_response(response: str | None) -> str:
    """去掉模型输出中的代码块标记、思考块、开场白和结尾说明"""
    if not response:
        return ""

    cleaned = _THINK_BLOCK.sub("", response)
    cleaned = _CODE_FENCE.sub("", cleaned)
    cleaned = _PREAMBLE.sub("", cleaned, count=1)
    cleaned = _TRAILING_NOTE.sub("", cleaned)
    return cleaned.strip()
