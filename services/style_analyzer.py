"""
小说风格分析服务
根据开头样本估计题材、叙事方式和语气，结果按小说缓存
"""

import logging
import re
from collections.abc import Callable

from models.session import NovelStyleInfo

logger = logging.getLogger(__name__)

SAMPLE_LENGTH = 5000

GENRE_PATTERNS: dict[str, dict] = {
    "eastern cultivation": {
        "keywords": (
            "cultivation", "qi", "dao", "spiritual energy", "sect", "immortal", "meridian",
            "pill", "disciple", "master", "senior", "junior", "cultivation base",
            "core formation", "nascent soul", "tribulation", "heavenly", "divine", "sacred",
            "foundation establishment", "realm", "martial", "profound", "inner", "outer",
        ),
        "regex": r"\b(cultivation|qi|dao|meridians?|spiritual\s+energy|inner\s+force|outer\s+force"
        r"|profound\s+strength)\b",
    },
    "western fantasy": {
        "keywords": (
            "spell", "magic", "wizard", "sorcerer", "witch", "mage", "enchant", "potion", "wand",
            "staff", "elf", "dwarf", "orc", "goblin", "dragon", "quest", "kingdom", "castle",
            "knight", "sword", "shield", "bow", "arrow",
        ),
        "regex": r"\b(wizard|witch|mage|spell|magic|wand|elf|dwarf|orc|goblin)\b",
    },
    "science fiction": {
        "keywords": (
            "ship", "space", "planet", "star", "galaxy", "universe", "tech", "robot", "android",
            "AI", "artificial", "laser", "beam", "energy", "system", "future", "captain",
            "officer", "commander", "fleet", "alien",
        ),
        "regex": r"\b(spacecraft|starship|planet|galaxy|universe|robot|android|technology|system"
        r"|alien)\b",
    },
    "historical fiction": {
        "keywords": (
            "lord", "lady", "majesty", "highness", "count", "countess", "duke", "duchess", "baron",
            "baroness", "sir", "madam", "century", "kingdom", "empire",
        ),
        "regex": r"\b(lord|lady|majesty|highness|count|countess|duke|duchess|century)\b",
    },
    "romance": {
        "keywords": (
            "love", "heart", "kiss", "embrace", "caress", "passion", "desire", "romantic",
            "beauty", "handsome", "relationship", "marriage", "wedding",
        ),
        "regex": r"\b(love|heart|kiss|embrace|passion|desire|romance|romantic)\b",
    },
    "mystery": {
        "keywords": (
            "detective", "investigate", "murder", "crime", "suspect", "evidence", "clue",
            "mystery", "suspicion", "case", "solve", "witness",
        ),
        "regex": r"\b(detective|investigate|murder|crime|suspect|evidence|clue|mystery)\b",
    },
    "horror": {
        "keywords": (
            "fear", "terror", "horror", "scream", "blood", "dark", "shadow", "evil", "monster",
            "ghost", "spirit", "haunt", "nightmare", "dread",
        ),
        "regex": r"\b(fear|terror|horror|scream|blood|dark|shadow|evil|monster|ghost)\b",
    },
    "thriller": {
        "keywords": (
            "chase", "escape", "run", "hide", "danger", "threat", "risk", "survival", "enemy",
            "target", "weapon", "attack", "defend", "agent", "mission",
        ),
        "regex": r"\b(chase|escape|danger|threat|risk|survival|enemy|weapon|attack)\b",
    },
}

TONE_PATTERNS: dict[str, tuple[str, ...]] = {
    "formal": (
        r"\b(therefore|thus|hence|accordingly|consequently|nevertheless|moreover|furthermore)\b",
        r"\b(request|require|inform|advise|state|declare|announce|proclaim)\b",
    ),
    "casual": (
        r"\b(yeah|nah|hey|cool|awesome|okay|ok|yep|nope|gonna|wanna|gotta)\b",
        r"\b(like|so|pretty much|kind of|sort of|you know|I mean)\b",
    ),
    "humorous": (
        r"\b(laugh|joke|funny|hilarious|amused|grin|chuckle|snort|giggle)\b",
        r"\b(ridiculous|absurd|silly|comical|witty|sarcastic|ironic)\b",
    ),
    "dark": (
        r"\b(dark|grim|bleak|dismal|gloomy|somber|dreary|dire|grave)\b",
        r"\b(death|dead|kill|murder|blood|pain|suffer|torture|agony)\b",
    ),
    "inspirational": (
        r"\b(hope|dream|inspire|believe|faith|courage|strength|persevere)\b",
        r"\b(overcome|achieve|success|triumph|victory|determination|spirit)\b",
    ),
    "melancholic": (
        r"\b(sad|sorrow|grief|loss|regret|despair|melancholy|longing)\b",
        r"\b(tearful|weep|cry|mourn|miss|lonely|alone|abandoned)\b",
    ),
    "adventurous": (
        r"\b(adventure|journey|quest|explore|discover|seek|find|brave)\b",
        r"\b(danger|risk|peril|challenge|obstacle|overcome|triumph)\b",
    ),
    "romantic": (
        r"\b(love|passion|desire|yearn|adore|cherish|embrace|caress)\b",
        r"\b(heart|soul|spirit|emotion|feeling|intimate|tender|gentle)\b",
    ),
    "technical": (
        r"\b(analyze|calculate|measure|determine|evaluate|assess|process)\b",
        r"\b(system|function|mechanism|procedure|operation|component|element)\b",
    ),
}

FIRST_PERSON_INDICATORS = ("I said", "I replied", "I asked", "I thought", "I felt", "I saw")
PRESENT_TENSE_INDICATORS = (
    r"\bI say\b", r"\bhe says\b", r"\bshe says\b", r"\bthey say\b",
    r"\bI am\b", r"\bhe is\b", r"\bshe is\b", r"\bthey are\b",
)
TENSE_TONES = ("dark", "adventurous", "technical")


def _count(pattern: str, text: str, flags: int = re.IGNORECASE) -> int:
    return len(re.findall(pattern, text, flags))


class StyleAnalyzer:
    """基于关键词和正则的风格分析器"""

    def analyze(self, text: str) -> NovelStyleInfo:
        """
        分析文本风格

        Args:
            text: 小说正文（只取前5000个字符）

        Returns:
            NovelStyleInfo: analyzed 为 True 的风格信息
        """
        sample = (text or "")[:SAMPLE_LENGTH]
        style, confidence = self._detect_genre(sample)
        style = self._narrative_modifiers(sample, style)
        tone = self._detect_tone(sample)
        tone = self._sentence_modifier(sample, tone)
        tone = self._emphasis_modifiers(sample, tone)
        logger.debug(f"风格分析结果: {style} / {tone} (置信度 {confidence:.2f})")
        return NovelStyleInfo(style=style, tone=tone, confidence=confidence, analyzed=True)

    @staticmethod
    def _detect_genre(sample: str) -> tuple[str, float]:
        style = "standard narrative"
        confidence = 0.0
        best = 0
        for genre, patterns in GENRE_PATTERNS.items():
            score = 3 if re.search(patterns["regex"], sample, re.IGNORECASE) else 0
            score += sum(_count(rf"\b{re.escape(k)}\b", sample) for k in patterns["keywords"])
            if score > best:
                best = score
                style = genre
                confidence = min(score / 10, 1.0)
        return style, confidence

    @staticmethod
    def _narrative_modifiers(sample: str, style: str) -> str:
        first_person = sum(_count(rf"\b{i}\b", sample) for i in FIRST_PERSON_INDICATORS)
        if first_person > 5:
            style += " (first-person)"

        present = sum(_count(p, sample, 0) for p in PRESENT_TENSE_INDICATORS)
        if present > 5:
            style += " (present tense)"

        dialogue_marks = _count(r"[\"']", sample, 0)
        sentence_marks = _count(r"[.!?]", sample, 0)
        if dialogue_marks > sentence_marks * 0.4:
            style += " (dialogue-heavy)"
        elif dialogue_marks < sentence_marks * 0.2:
            style += " (descriptive)"
        return style

    @staticmethod
    def _detect_tone(sample: str) -> str:
        tone = "neutral"
        best = 0
        for name, patterns in TONE_PATTERNS.items():
            score = sum(_count(p, sample) for p in patterns)
            if score > best:
                best = score
                tone = name
        return tone

    @staticmethod
    def _sentence_modifier(sample: str, tone: str) -> str:
        sentences = re.findall(r"[^.!?]+[.!?]+", sample)
        if not sentences:
            return tone
        average = len(sample) / len(sentences)
        if average < 50 and tone in TENSE_TONES:
            return f"tense {tone}"
        if average > 100:
            return f"elaborate {tone}"
        return tone

    @staticmethod
    def _emphasis_modifiers(sample: str, tone: str) -> str:
        if len(re.findall(r"\b[A-Z]{2,}\b", sample)) > 5:
            tone += " with emphasis"
        if sample.count("...") > 10:
            tone += " with pauses"
        if sample.count("!") > 10:
            tone += " with intensity"
        return tone


class StyleCache:
    """按小说标识缓存风格信息，只在显式刷新时重新分析"""

    def __init__(self, analyzer: StyleAnalyzer | None = None):
        self.analyzer = analyzer or StyleAnalyzer()
        self._styles: dict[str, NovelStyleInfo] = {}

    def get_style(
        self,
        novel_id: str,
        text: str,
        refresh: bool = False,
        analyze: Callable[[str], NovelStyleInfo] | None = None,
    ) -> NovelStyleInfo:
        """获取风格信息；分析失败时返回默认风格，不向上抛出"""
        if not refresh and novel_id in self._styles:
            return self._styles[novel_id]

        try:
            style = (analyze or self.analyzer.analyze)(text)
        except Exception as e:
            logger.warning(f"风格分析失败，使用默认风格: {e}")
            return NovelStyleInfo()

        self._styles[novel_id] = style
        return style

    def clear(self, novel_id: str | None = None) -> None:
        if novel_id is None:
            self._styles.clear()
        else:
            self._styles.pop(novel_id, None)
