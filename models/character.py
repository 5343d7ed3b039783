"""
人物相关的数据模型
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

GENDER_MALE = "male"
GENDER_FEMALE = "female"
GENDER_UNKNOWN = "unknown"

VALID_GENDERS = (GENDER_MALE, GENDER_FEMALE, GENDER_UNKNOWN)

# 合并时保留的证据条数上限
MAX_STORED_EVIDENCE = 5


@dataclass
class GenderResult:
    """性别推断结果"""
    gender: str = GENDER_UNKNOWN
    confidence: float = 0.0
    evidence: List[str] = field(default_factory=list)
    cultural_origin: Optional[str] = None

    @property
    def is_known(self) -> bool:
        return self.gender != GENDER_UNKNOWN


@dataclass
class CharacterRecord:
    """人物模型（以名字为唯一键）"""
    name: str
    gender: str = GENDER_UNKNOWN
    confidence: float = 0.0
    evidence: List[str] = field(default_factory=list)
    appearances: int = 1
    cultural_origin: Optional[str] = None

    def __post_init__(self):
        """初始化后处理"""
        if self.gender not in VALID_GENDERS:
            raise ValueError(f"无效的性别取值: {self.gender}")
        if self.appearances < 1:
            raise ValueError("出现次数必须至少为1")
        self.confidence = min(1.0, max(0.0, float(self.confidence)))

    def __str__(self) -> str:
        return f"CharacterRecord({self.name}, {self.gender}, appearances={self.appearances})"

    def add_appearance(self, count: int = 1) -> None:
        """记录一次新的出现"""
        self.appearances += count

    def apply_gender(self, result: GenderResult) -> bool:
        """用新的推断结果更新性别

        只有置信度不低于已有值时才覆盖，已知性别不会被 unknown 覆盖。

        Returns:
            bool: 是否发生了更新
        """
        if not result.is_known:
            return False

        if self.gender != GENDER_UNKNOWN and result.confidence < self.confidence:
            return False

        self.gender = result.gender
        self.confidence = min(1.0, max(0.0, result.confidence))
        self.evidence = list(result.evidence)
        if result.cultural_origin:
            self.cultural_origin = result.cultural_origin
        return True

    def merge(self, other: "CharacterRecord") -> None:
        """与另一会话保存的记录合并

        置信度严格更高时替换性别；置信度相同时合并证据（最多保留5条）。
        """
        if other.gender != GENDER_UNKNOWN and other.confidence > self.confidence:
            self.gender = other.gender
            self.confidence = other.confidence
            self.evidence = list(other.evidence)[:MAX_STORED_EVIDENCE]
        elif other.gender == self.gender and other.confidence == self.confidence:
            for item in other.evidence:
                if item not in self.evidence:
                    self.evidence.append(item)
            self.evidence = self.evidence[:MAX_STORED_EVIDENCE]

        self.appearances = max(self.appearances, other.appearances)
        if not self.cultural_origin:
            self.cultural_origin = other.cultural_origin

    @property
    def pronouns(self) -> str:
        """返回对应的英文代词组合"""
        if self.gender == GENDER_MALE:
            return "he/him/his"
        if self.gender == GENDER_FEMALE:
            return "she/her/hers"
        return "they/them/their"

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式（用于JSON序列化）"""
        return {
            "name": self.name,
            "gender": self.gender,
            "confidence": self.confidence,
            "evidence": list(self.evidence),
            "appearances": self.appearances,
            "cultural_origin": self.cultural_origin,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CharacterRecord":
        """从字典创建实例（用于JSON反序列化）"""
        gender = data.get("gender", GENDER_UNKNOWN)
        return cls(
            name=data["name"],
            gender=gender if gender in VALID_GENDERS else GENDER_UNKNOWN,
            confidence=float(data.get("confidence") or 0.0),
            evidence=list(data.get("evidence") or []),
            appearances=max(1, int(data.get("appearances") or 1)),
            cultural_origin=data.get("cultural_origin"),
        )


CharacterMap = Dict[str, CharacterRecord]
