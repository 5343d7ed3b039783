"""
性别推断服务
对人物名做多信号规则打分，输出性别、置信度和证据链

打分顺序固定：称谓（直接判定）→ 名字词尾 → 代词上下文 → 代词矛盾修正
→ 关系短语 → 描述词 → 外貌描写 → 文化特有称呼。
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from models.character import (
    GENDER_FEMALE,
    GENDER_MALE,
    GENDER_UNKNOWN,
    CharacterMap,
    GenderResult,
)
from services import gender_tables as tables

logger = logging.getLogger(__name__)

TITLE_CONFIDENCE = 0.95
PREVIOUS_CONFIDENCE = 0.8
DECISION_THRESHOLD = 3
MAX_CONFIDENCE = 0.9
BASE_CONFIDENCE = 0.5
CONFIDENCE_STEP = 0.05

NAME_PATTERN_POINTS = 2
MAX_PRONOUN_POINTS = 4
POSSESSIVE_BONUS = 2
INCONSISTENCY_POINTS = 4
RELATIONSHIP_POINTS = 3
TIGHT_DESCRIPTION_POINTS = 2
NEARBY_DESCRIPTION_POINTS = 1
APPEARANCE_POINTS = 2
EXACT_INDICATOR_POINTS = 3
NEARBY_INDICATOR_POINTS = 1

PRONOUN_WINDOW = 200
DESCRIPTION_WINDOW = 100
INDICATOR_WINDOW = 50

_MALE_PRONOUNS = re.compile(tables.MALE_PRONOUNS, re.IGNORECASE)
_FEMALE_PRONOUNS = re.compile(tables.FEMALE_PRONOUNS, re.IGNORECASE)
_MALE_THEN_FEMALE = re.compile(r"\b(he|his|him)\b.*\b(she|her|hers)\b", re.IGNORECASE)
_FEMALE_THEN_MALE = re.compile(r"\b(she|her|hers)\b.*\b(he|his|him)\b", re.IGNORECASE)

_SCRIPT_PATTERNS = {culture: re.compile(p) for culture, p in tables.SCRIPT_RANGES.items()}
_ORIGIN_PATTERNS = {
    culture: tuple(re.compile(p, re.IGNORECASE) for p in patterns)
    for culture, patterns in tables.NAME_ORIGIN_PATTERNS.items()
}
_CONTEXT_PATTERNS = {
    culture: tuple(re.compile(rf"\b(?:{p})\b", re.IGNORECASE) for p in patterns)
    for culture, patterns in tables.CONTEXT_CLUES.items()
}


@lru_cache(maxsize=2048)
def _title_regexes(title: str) -> tuple[re.Pattern, re.Pattern, re.Pattern]:
    escaped = re.escape(title)
    return (
        re.compile(rf"^{escaped}\s+", re.IGNORECASE),
        re.compile(rf"\s+{escaped}$", re.IGNORECASE),
        re.compile(rf"\s+{escaped}\s+", re.IGNORECASE),
    )


@lru_cache(maxsize=2048)
def _word_regex(word: str) -> re.Pattern:
    return re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)


@dataclass
class SignalScore:
    """单个信号的得分"""

    male: int = 0
    female: int = 0
    evidence: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.male == 0 and self.female == 0


@dataclass
class PronounAnalysis:
    """代词上下文分析结果"""

    male: int = 0
    female: int = 0
    inconsistencies: int = 0
    contexts: list[str] = field(default_factory=list)


@dataclass
class GenderStats:
    """推断统计"""

    male: int = 0
    female: int = 0
    unknown: int = 0
    cultural_origins: dict[str, int] = field(
        default_factory=lambda: {culture: 0 for culture in tables.CULTURES}
    )

    def reset(self) -> None:
        self.male = 0
        self.female = 0
        self.unknown = 0
        self.cultural_origins = {culture: 0 for culture in tables.CULTURES}

    def to_dict(self) -> dict:
        return {
            "male": self.male,
            "female": self.female,
            "unknown": self.unknown,
            "cultural_origins": dict(self.cultural_origins),
        }


class GenderInferencer:
    """基于规则的人物性别推断器"""

    def __init__(self):
        self.stats = GenderStats()

    def guess_gender(
        self,
        name: str,
        text: str,
        character_map: Optional[CharacterMap] = None,
    ) -> GenderResult:
        """
        推断人物性别

        Args:
            name: 人物名
            text: 包含人物的正文
            character_map: 已有的人物表，已确定性别的人物直接沿用

        Returns:
            GenderResult: 性别、置信度与证据
        """
        if not name or len(name) <= 1:
            return GenderResult()

        existing = (character_map or {}).get(name)
        if existing is not None and existing.gender != GENDER_UNKNOWN:
            return GenderResult(
                gender=existing.gender,
                confidence=existing.confidence or PREVIOUS_CONFIDENCE,
                evidence=list(existing.evidence) or ["previously determined"],
                cultural_origin=existing.cultural_origin,
            )

        text = text or ""
        origin = self.detect_cultural_origin(name, text)

        title = self.check_titles(name, origin)
        if title is not None:
            gender, title_evidence = title
            self._count(gender)
            return GenderResult(
                gender=gender,
                confidence=TITLE_CONFIDENCE,
                evidence=[f"title: {title_evidence} ({origin})"],
                cultural_origin=origin,
            )

        male_score = 0
        female_score = 0
        evidence: list[str] = []

        signals = (
            self.check_name_patterns(name, origin),
            self._pronoun_signal(name, text),
            self.detect_pronoun_inconsistencies(name, text),
            self.check_relationships(name, text),
            self.analyze_descriptions(name, text),
            self.analyze_appearance(name, text),
            self.check_cultural_indicators(name, text, origin),
        )
        for signal in signals:
            male_score += signal.male
            female_score += signal.female
            evidence.extend(signal.evidence)

        gender = GENDER_UNKNOWN
        confidence = 0.0
        if male_score > female_score and male_score >= DECISION_THRESHOLD:
            gender = GENDER_MALE
        elif female_score > male_score and female_score >= DECISION_THRESHOLD:
            gender = GENDER_FEMALE

        if gender != GENDER_UNKNOWN:
            difference = abs(male_score - female_score)
            confidence = min(MAX_CONFIDENCE, BASE_CONFIDENCE + difference * CONFIDENCE_STEP)

        self._count(gender)
        logger.debug(
            f"性别推断 {name}: {gender} (男 {male_score} / 女 {female_score}, 置信度 {confidence:.2f})"
        )
        return GenderResult(
            gender=gender, confidence=confidence, evidence=evidence, cultural_origin=origin
        )

    def _count(self, gender: str) -> None:
        if gender == GENDER_MALE:
            self.stats.male += 1
        elif gender == GENDER_FEMALE:
            self.stats.female += 1
        else:
            self.stats.unknown += 1

    def detect_cultural_origin(self, name: str, text: str) -> str:
        """估计名字的文化来源：文字区间 → 姓名表 → 上下文关键词密度"""
        origin = self._origin_from_name(name) or self._origin_from_context(text)
        self.stats.cultural_origins[origin] = self.stats.cultural_origins.get(origin, 0) + 1
        return origin

    @staticmethod
    def _origin_from_name(name: str) -> Optional[str]:
        for culture, pattern in _SCRIPT_PATTERNS.items():
            if pattern.search(name):
                return culture
        for culture, patterns in _ORIGIN_PATTERNS.items():
            if any(p.search(name) for p in patterns):
                return culture
        return None

    @staticmethod
    def _origin_from_context(text: str) -> str:
        scores = {
            culture: sum(len(p.findall(text)) for p in patterns)
            for culture, patterns in _CONTEXT_PATTERNS.items()
        }
        best = max(scores.values(), default=0)
        leaders = [culture for culture, score in scores.items() if score == best]
        if best == 0 or len(leaders) > 1:
            return tables.DEFAULT_CULTURE
        return leaders[0]

    @staticmethod
    def check_titles(name: str, origin: str = tables.DEFAULT_CULTURE) -> Optional[tuple[str, str]]:
        """称谓检查，命中返回 (性别, 证据)"""
        cultures = [origin] + [c for c in tables.CULTURES if c != origin]
        for culture in cultures:
            male_titles = tables.MALE_TITLES.get(culture, ())
            female_titles = tables.FEMALE_TITLES.get(culture, ())
            # 依次检查前缀、后缀、中间位置，每种位置先男后女
            for position in range(3):
                for gender, titles in ((GENDER_MALE, male_titles), (GENDER_FEMALE, female_titles)):
                    for title in titles:
                        regex = _title_regexes(title)[position]
                        if regex.search(name) or (position == 0 and name == title):
                            return gender, f"{title} ({culture})"
        return None

    @staticmethod
    def check_name_patterns(name: str, origin: str = tables.DEFAULT_CULTURE) -> SignalScore:
        """名字词尾检查，先查对应文化，未命中再按西方名字检查"""
        first_name = name.split(" ")[0].lower()
        cultures = [origin] if origin == tables.DEFAULT_CULTURE else [origin, tables.DEFAULT_CULTURE]

        for culture in cultures:
            for ending in tables.FEMALE_NAME_ENDINGS.get(culture, ()):
                if first_name.endswith(ending):
                    return SignalScore(
                        female=NAME_PATTERN_POINTS,
                        evidence=[f"{origin} name pattern: {culture} name ending with '{ending}'"],
                    )
            for ending in tables.MALE_NAME_ENDINGS.get(culture, ()):
                if first_name.endswith(ending):
                    return SignalScore(
                        male=NAME_PATTERN_POINTS,
                        evidence=[f"{origin} name pattern: {culture} name ending with '{ending}'"],
                    )
        return SignalScore()

    @staticmethod
    def analyze_pronoun_context(name: str, text: str) -> PronounAnalysis:
        """统计提到人物的句子后200个字符内的代词"""
        analysis = PronounAnalysis()
        escaped = re.escape(name)
        sentence_regex = re.compile(rf"[^.!?]*\b{escaped}\b[^.!?]*[.!?]", re.IGNORECASE)
        his_regex = re.compile(rf"\b{escaped}\b[^.!?]*\bhis\b", re.IGNORECASE)
        her_regex = re.compile(rf"\b{escaped}\b[^.!?]*\bher\b", re.IGNORECASE)

        for match in sentence_regex.finditer(text):
            window = text[match.start(): match.start() + len(match.group(0)) + PRONOUN_WINDOW]
            analysis.contexts.append(window)

            male = len(_MALE_PRONOUNS.findall(window))
            female = len(_FEMALE_PRONOUNS.findall(window))
            if male > female:
                analysis.male += min(MAX_PRONOUN_POINTS, male)
            elif female > male:
                analysis.female += min(MAX_PRONOUN_POINTS, female)

            if male > 0 and female > 0:
                analysis.inconsistencies += 1

            if his_regex.search(window):
                analysis.male += POSSESSIVE_BONUS
            if her_regex.search(window):
                analysis.female += POSSESSIVE_BONUS

        return analysis

    def _pronoun_signal(self, name: str, text: str) -> SignalScore:
        analysis = self.analyze_pronoun_context(name, text)
        signal = SignalScore(male=analysis.male, female=analysis.female)
        if analysis.male > 0:
            signal.evidence.append(f"pronouns: found {analysis.male} male pronouns")
        if analysis.female > 0:
            signal.evidence.append(f"pronouns: found {analysis.female} female pronouns")
        return signal

    def detect_pronoun_inconsistencies(self, name: str, text: str) -> SignalScore:
        """机翻常见的代词混用：按总量或切换方向的明显优势修正"""
        analysis = self.analyze_pronoun_context(name, text)
        if analysis.inconsistencies < 2:
            return SignalScore()

        male_to_female = sum(1 for c in analysis.contexts if _MALE_THEN_FEMALE.search(c))
        female_to_male = sum(1 for c in analysis.contexts if _FEMALE_THEN_MALE.search(c))
        total_male = analysis.male
        total_female = analysis.female

        if total_male > total_female * 2:
            note = (
                f"inconsistent pronouns detected ({total_male} male vs {total_female} female)"
                " - corrected to male"
            )
            return SignalScore(male=INCONSISTENCY_POINTS, evidence=[f"inconsistency correction: {note}"])
        if total_female > total_male * 2:
            note = (
                f"inconsistent pronouns detected ({total_female} female vs {total_male} male)"
                " - corrected to female"
            )
            return SignalScore(female=INCONSISTENCY_POINTS, evidence=[f"inconsistency correction: {note}"])
        if male_to_female > female_to_male * 2:
            note = "detected translation error pattern (male→female) - corrected to male"
            return SignalScore(male=INCONSISTENCY_POINTS, evidence=[f"inconsistency correction: {note}"])
        if female_to_male > male_to_female * 2:
            note = "detected translation error pattern (female→male) - corrected to female"
            return SignalScore(female=INCONSISTENCY_POINTS, evidence=[f"inconsistency correction: {note}"])
        return SignalScore()

    @staticmethod
    def check_relationships(name: str, text: str) -> SignalScore:
        """关系短语匹配，每方只计第一条"""
        lowered = text.lower()
        signal = SignalScore()
        for attr, templates in (
            ("male", tables.MALE_RELATIONSHIPS),
            ("female", tables.FEMALE_RELATIONSHIPS),
        ):
            for template in templates:
                phrase = template.format(name=name)
                if phrase.lower() in lowered:
                    setattr(signal, attr, RELATIONSHIP_POINTS)
                    signal.evidence.append(f"relationship: {phrase}")
                    break
        return signal

    @staticmethod
    def analyze_descriptions(name: str, text: str) -> SignalScore:
        """名字附近100个字符内的描述词；同句紧邻计2分，仅在附近计1分"""
        escaped = re.escape(name)
        bound_text = " ".join(
            m.group(0)
            for m in re.finditer(rf"\b{escaped}\b[^.!?]{{0,{DESCRIPTION_WINDOW}}}", text, re.IGNORECASE)
        )
        nearby_text = " ".join(
            m.group(0)
            for m in re.finditer(
                rf".{{0,{DESCRIPTION_WINDOW}}}\b{escaped}\b.{{0,{DESCRIPTION_WINDOW}}}",
                text,
                re.IGNORECASE | re.DOTALL,
            )
        )

        signal = SignalScore()
        for attr, words in (
            ("male", tables.MALE_DESCRIPTION_WORDS),
            ("female", tables.FEMALE_DESCRIPTION_WORDS),
        ):
            for word in words:
                word_escaped = re.escape(word)
                tight = re.compile(
                    rf"\b{escaped}[^.!?]*\b{word_escaped}\b|\b{word_escaped}\b[^.!?]*\b{escaped}\b",
                    re.IGNORECASE,
                )
                if tight.search(bound_text):
                    setattr(signal, attr, TIGHT_DESCRIPTION_POINTS)
                    signal.evidence.append(f"description: described as {word}")
                    break
                if _word_regex(word).search(nearby_text):
                    setattr(signal, attr, NEARBY_DESCRIPTION_POINTS)
                    signal.evidence.append(f"description: near description {word}")
                    break
        return signal

    @staticmethod
    def analyze_appearance(name: str, text: str) -> SignalScore:
        """外貌描写：含触发词的句子中，每个命中的词条计2分"""
        triggers = "|".join(rf"\b{t}\b" for t in tables.APPEARANCE_TRIGGERS)
        regex = re.compile(
            rf"\b{re.escape(name)}(?:'s)?\b[^.!?]*({triggers})[^.!?]*[.!?]",
            re.IGNORECASE,
        )
        appearance_text = " ".join(m.group(0) for m in regex.finditer(text)).lower()
        if not appearance_text:
            return SignalScore()

        signal = SignalScore()
        male_terms = [t for t in tables.MALE_APPEARANCE if t in appearance_text]
        female_terms = [t for t in tables.FEMALE_APPEARANCE if t in appearance_text]
        if male_terms:
            signal.male = APPEARANCE_POINTS * len(male_terms)
            signal.evidence.append(f"appearance: {', '.join(male_terms)}")
        if female_terms:
            signal.female = APPEARANCE_POINTS * len(female_terms)
            signal.evidence.append(f"appearance: {', '.join(female_terms)}")
        return signal

    @staticmethod
    def check_cultural_indicators(name: str, text: str, origin: str) -> SignalScore:
        """文化特有称呼：先找精确组合短语，找不到再看名字附近的称呼词"""
        exact = tables.EXACT_CULTURAL_INDICATORS.get(
            origin, tables.EXACT_CULTURAL_INDICATORS[tables.DEFAULT_CULTURE]
        )
        lowered = text.lower()
        signal = SignalScore()

        for attr in ("male", "female"):
            for template in exact[attr]:
                phrase = template.format(name=name)
                if phrase.lower() in lowered:
                    setattr(signal, attr, EXACT_INDICATOR_POINTS)
                    signal.evidence.append(f"{origin} cultural indicator: {phrase}")
                    break

        if not signal.is_empty:
            return signal

        proximity_text = " ".join(
            m.group(0)
            for m in re.finditer(
                rf"[^.!?]*\b{re.escape(name)}\b[^.!?]{{0,{INDICATOR_WINDOW}}}", text, re.IGNORECASE
            )
        )
        if not proximity_text:
            return signal

        nearby = tables.NEARBY_CULTURAL_INDICATORS.get(
            origin, tables.NEARBY_CULTURAL_INDICATORS[tables.DEFAULT_CULTURE]
        )
        for attr in ("male", "female"):
            for term in nearby[attr]:
                if _word_regex(term).search(proximity_text):
                    setattr(signal, attr, NEARBY_INDICATOR_POINTS)
                    signal.evidence.append(f"{origin} cultural indicator: near term '{term}'")
                    break
        return signal

    def infer_roster(self, character_map: CharacterMap, text: str) -> CharacterMap:
        """为人物表中每个人物推断性别并就地更新"""
        for name, record in character_map.items():
            if record.gender != GENDER_UNKNOWN:
                continue
            result = self.guess_gender(name, text, character_map)
            record.apply_gender(result)
            if result.cultural_origin and not record.cultural_origin:
                record.cultural_origin = result.cultural_origin
        logger.info(f"性别推断完成: {self.stats.male} 男 / {self.stats.female} 女 / {self.stats.unknown} 未知")
        return character_map
