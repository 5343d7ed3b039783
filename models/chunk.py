"""
文本块相关的数据模型
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Chunk:
    """文本块模型，按源文本顺序编号"""

    index: int
    text: str
    is_final: bool = False

    def __str__(self) -> str:
        return f"Chunk(index={self.index}, chars={len(self.text)}, final={self.is_final})"

    def __len__(self) -> int:
        return len(self.text)
