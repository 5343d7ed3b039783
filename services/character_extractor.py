"""
人物提取服务
基于规则从小说正文中识别人物名字并统计出现次数
"""

import logging
import re
from dataclasses import dataclass, field

from models.character import CharacterMap, CharacterRecord

logger = logging.getLogger(__name__)

# 限制最坏情况下的开销
MAX_TEXT_LENGTH = 100_000
MAX_MATCHES = 1000
MAX_PATTERN_MATCHES = 200
MAX_NAME_LENGTH = 30

_NAME = r"[A-Z][a-z]+(?:\s[A-Z][a-z]+){0,2}"
_TITLES = r"Master|Lady|Lord|Sir|Madam|Miss|Mr\.|Mrs\.|Ms\."
_SPEECH_VERBS = r"said|replied|asked|shouted|exclaimed|whispered|muttered"


@dataclass(frozen=True)
class NamePattern:
    """一类名字匹配规则，name_group 为名字所在的分组"""

    label: str
    regex: re.Pattern
    name_group: int = 1
    title_group: int | None = None


NAME_PATTERNS: tuple[NamePattern, ...] = (
    NamePattern(
        "speech-verb",
        re.compile(rf"({_NAME})\s+(?:{_SPEECH_VERBS}|spoke|declared|answered)"),
    ),
    NamePattern(
        "quoted-attribution",
        re.compile(rf'"([^"]+)"\s*,?\s*({_NAME})\s+(?:{_SPEECH_VERBS})'),
        name_group=2,
    ),
    NamePattern("colon-dialogue", re.compile(rf'({_NAME})\s*:\s*"([^"]+)"')),
    NamePattern(
        "possessive",
        re.compile(
            rf"({_NAME})'s\s+(?:face|eyes|voice|body|hand|arm|leg|hair|head|mouth|mind"
            r"|heart|soul|gaze|attention)"
        ),
    ),
    NamePattern("title", re.compile(rf"({_TITLES})\s+({_NAME})"), name_group=2, title_group=1),
    NamePattern("xiao-prefix", re.compile(r"(Xiao\s[A-Z][a-z]+)")),
)

PRONOUNS = frozenset(
    {"He", "She", "It", "They", "I", "You", "We", "His", "Her", "Their", "My", "Your", "Our"}
)

NON_NAME_WORDS = frozenset(
    {
        "The", "Then", "This", "That", "These", "Those", "There", "Their", "They",
        "However", "Suddenly", "Finally", "Eventually", "Certainly", "Perhaps", "Maybe",
        "While", "When", "After", "Before", "During", "Within", "Without", "Also",
        "Thus", "Therefore", "Hence", "Besides", "Moreover", "Although", "Despite",
        "Since", "Because", "Nonetheless", "Nevertheless", "Regardless", "Consequently",
        "Accordingly", "Meanwhile", "Afterwards", "Beforehand", "In", "As", "But", "Or",
        "And", "So", "Yet", "For", "Nor", "If", "From", "At", "Old", "Well", "Sister",
    }
)

# 清理阶段额外剔除的常见误识别
CLEANUP_NON_NAMES = frozenset({"The", "Then", "This", "Well", "From", "At", "Old", "Sister"})

_CLAUSE_WORDS = re.compile(
    r"\s(is|was|are|were|have|had|do|did|can|could|will|would|should|shall|may|might|must)\s"
)
_TERMINATORS = re.compile(r"[.!?]")
_TWO_OR_THREE_WORDS = re.compile(r"^[A-Z][a-z]+\s[A-Z][a-z]+(\s[A-Z][a-z]+)?$")
_SINGLE_WORD = re.compile(r"^[A-Z][a-z]+$")
_TITLE_FORM = re.compile(rf"^(?:{_TITLES})\s+[A-Z][a-z]+(?:\s[A-Z][a-z]+)?")
_XIAO_FORM = re.compile(r"^Xiao\s[A-Z][a-z]+$")
_FIVE_WORDS = re.compile(r"\w+\s+\w+\s+\w+\s+\w+\s+\w+")
_MARKUP = re.compile(r"<[^>]*>")

# 长片段中再次查找名字
_EMBEDDED_NAME_PATTERNS = (
    re.compile(rf"\b(?:{_TITLES})\s+[A-Z][a-z]+(?:\s[A-Z][a-z]+)?"),
    re.compile(r"\b([A-Z][a-z]+\s[A-Z][a-z]+(?:\s[A-Z][a-z]+)?)\b"),
    re.compile(rf"^({_NAME})\s+"),
)

_QUOTED_DIALOGUE = re.compile(r'"([^"]+)"\s*,?\s*([^.!?]+?)(?:\.|!|\?)')
_COLON_DIALOGUE = re.compile(r'([^:\n]+):\s*"([^"]+)"')
_ACTION_DIALOGUE = re.compile(rf'({_NAME})\s+([^.!?]*[.!?])\s+"([^"]+)"')
_ATTRIBUTION_VERBS = r"said|asked|replied|shouted|whispered|exclaimed|muttered|responded|commented"
_VERB_THEN_NAME = re.compile(rf"\b(?:{_ATTRIBUTION_VERBS})\s+({_NAME})", re.IGNORECASE)
_NAME_THEN_VERB = re.compile(rf"\b({_NAME})\s+(?:{_ATTRIBUTION_VERBS})", re.IGNORECASE)


@dataclass
class DialoguePatterns:
    """从正文中抽取的对话样本"""

    quoted: list[dict[str, str]] = field(default_factory=list)
    colon_separated: list[dict[str, str]] = field(default_factory=list)
    action: list[dict[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.quoted) + len(self.colon_separated) + len(self.action)


def sanitize_text(text: str) -> str:
    """去掉标记并压缩空白"""
    return re.sub(r"\s+", " ", _MARKUP.sub("", text)).strip()


class CharacterExtractor:
    """基于规则的人物名识别器"""

    def __init__(
        self,
        max_text_length: int = MAX_TEXT_LENGTH,
        max_matches: int = MAX_MATCHES,
        max_pattern_matches: int = MAX_PATTERN_MATCHES,
    ):
        self.max_text_length = max_text_length
        self.max_matches = max_matches
        self.max_pattern_matches = max_pattern_matches

    def extract_character_names(self, text: str) -> CharacterMap:
        """
        从文本中提取人物名

        Args:
            text: 小说正文

        Returns:
            CharacterMap: 名字到人物记录的映射（性别均为 unknown）
        """
        character_map: CharacterMap = {}
        if not text:
            return character_map

        processed = text[: self.max_text_length]
        total_matches = 0

        for pattern in NAME_PATTERNS:
            pattern_matches = 0
            for match in pattern.regex.finditer(processed):
                if total_matches >= self.max_matches or pattern_matches >= self.max_pattern_matches:
                    break
                pattern_matches += 1
                total_matches += 1

                raw_name = self._name_from_match(match, pattern)
                if not raw_name or len(raw_name) > MAX_NAME_LENGTH:
                    continue

                name = self.extract_character_name(sanitize_text(raw_name))
                if name:
                    self._add_name(character_map, name)

        cleaned = self._cleanup_character_map(character_map)
        logger.debug(f"提取到 {len(cleaned)} 个人物（共 {total_matches} 次匹配）")
        return cleaned

    @staticmethod
    def _name_from_match(match: re.Match, pattern: NamePattern) -> str | None:
        name = match.group(pattern.name_group)
        if pattern.title_group is not None and name:
            return f"{match.group(pattern.title_group)} {name}"
        return name

    @staticmethod
    def _add_name(character_map: CharacterMap, name: str) -> None:
        record = character_map.get(name)
        if record is None:
            character_map[name] = CharacterRecord(name=name)
        else:
            record.add_appearance()

    def extract_character_name(self, text: str | None) -> str | None:
        """校验候选片段，返回规范化后的名字；不是名字时返回 None"""
        if not text:
            return None
        candidate = text.strip()

        if len(candidate) > 50:
            return self._find_embedded_name(candidate)

        if candidate in PRONOUNS or candidate in NON_NAME_WORDS:
            return None

        # 句首连接词被一起匹配进来的情况（"Then Lin Feng"）
        first, _, rest = candidate.partition(" ")
        if rest and (first in NON_NAME_WORDS or first in PRONOUNS):
            return self.extract_character_name(rest)

        is_title_form = bool(_TITLE_FORM.match(candidate))
        if " " in candidate and not is_title_form:
            if _CLAUSE_WORDS.search(candidate) or _TERMINATORS.search(candidate):
                return None

        if not candidate[0].isupper() or not candidate[0].isascii():
            return None

        if candidate.endswith("."):
            candidate = candidate[:-1].strip()

        if (
            _TWO_OR_THREE_WORDS.match(candidate)
            or _SINGLE_WORD.match(candidate)
            or is_title_form
            or _XIAO_FORM.match(candidate)
        ):
            return candidate

        if len(candidate) < 20 and not any(ch in candidate for ch in ",!?"):
            return candidate

        return None

    @staticmethod
    def _find_embedded_name(text: str) -> str | None:
        for index, pattern in enumerate(_EMBEDDED_NAME_PATTERNS):
            match = pattern.search(text)
            if match:
                if index == 0 or not match.groups():
                    return match.group(0).strip()
                return match.group(1).strip()
        return None

    @staticmethod
    def _cleanup_character_map(character_map: CharacterMap) -> CharacterMap:
        cleaned: CharacterMap = {}
        for name, record in character_map.items():
            if len(name) > MAX_NAME_LENGTH:
                continue
            if any(sep in name for sep in (". ", "! ", "? ", ", ")) and not _TITLE_FORM.match(name):
                continue
            if _FIVE_WORDS.search(name) or name in CLEANUP_NON_NAMES:
                continue
            cleaned[name] = record
        return cleaned

    def extract_dialogue_patterns(self, text: str) -> DialoguePatterns:
        """抽取引号对话、冒号对话和动作对话"""
        patterns = DialoguePatterns()
        processed = (text or "")[: self.max_text_length]

        for match in _QUOTED_DIALOGUE.finditer(processed):
            patterns.quoted.append(
                {"full": match.group(0), "dialogue": match.group(1), "attribution": match.group(2).strip()}
            )

        for match in _COLON_DIALOGUE.finditer(processed):
            patterns.colon_separated.append(
                {"full": match.group(0), "character": match.group(1).strip(), "dialogue": match.group(2)}
            )

        for match in _ACTION_DIALOGUE.finditer(processed):
            patterns.action.append(
                {
                    "full": match.group(0),
                    "character": match.group(1),
                    "action": match.group(2),
                    "dialogue": match.group(3),
                }
            )

        return patterns

    def extract_characters_from_dialogue(self, patterns: DialoguePatterns) -> set[str]:
        """从对话样本的署名中提取人物名"""
        characters: set[str] = set()

        for item in patterns.quoted:
            attribution = item["attribution"].strip()
            if len(attribution) > 100:
                continue
            match = _VERB_THEN_NAME.search(attribution) or _NAME_THEN_VERB.search(attribution)
            if match:
                name = self.extract_character_name(match.group(1))
                if name:
                    characters.add(name)

        for item in patterns.colon_separated + patterns.action:
            name = self.extract_character_name(item["character"])
            if name:
                characters.add(name)

        return characters

    def extract(self, text: str) -> CharacterMap:
        """完整提取：规则匹配加上对话署名"""
        character_map = self.extract_character_names(text)
        speakers = self.extract_characters_from_dialogue(self.extract_dialogue_patterns(text))
        for name in sorted(speakers):
            if name not in character_map and name not in CLEANUP_NON_NAMES:
                character_map[name] = CharacterRecord(name=name)
        return character_map
