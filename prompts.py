"""
LLM提示词模板模块
定义对话增强、风格分析和性别分析使用的提示词

提示词的字段顺序和规则列表固定不变：相同输入必须生成逐字节相同的提示词，
否则结果缓存的键会失效。
"""
from collections.abc import Iterable, Mapping
from typing import Optional

from models.character import GENDER_FEMALE, GENDER_MALE, CharacterRecord
from models.session import NovelStyleInfo

DEFAULT_STYLE = "standard narrative"
DEFAULT_TONE = "neutral"
DEFAULT_ROSTER_SIZE = 10

CHARACTER_SUMMARY_HEADER = (
    "CHARACTER INFORMATION (to help maintain proper pronouns and gender references):"
)
NO_CHARACTER_INFO = "No character information available"

ENHANCEMENT_INSTRUCTIONS = (
    "Improve dialogue naturalness while preserving the original meaning",
    "Make dialogue flow better in English",
    "Keep all character names in the same language and exactly as provided",
    "Fix pronoun inconsistencies based on the character information above",
    "Briefly translate any foreign titles/cities/terms to English",
    "IMPORTANT: Return ONLY the enhanced text with no explanations, analysis, or commentary",
    "IMPORTANT: Do not use markdown formatting or annotations",
    "Maintain paragraph breaks as in the original text as much as possible",
    "Focus especially on maintaining gender consistency based on the character information provided",
    "Don't change the story or add new plot elements",
    "Maintain the original tone and mood",
)

STYLE_SAMPLE_LENGTH = 2500
GENDER_CONTEXT_LENGTH = 2000

_PRONOUN_LABELS = {
    GENDER_MALE: "he/him/his",
    GENDER_FEMALE: "she/her/her",
}


def create_character_summary(
    characters: Mapping[str, CharacterRecord] | Iterable[CharacterRecord],
    max_characters: int = DEFAULT_ROSTER_SIZE,
) -> str:
    """
    生成人物花名册文本

    按出现次数排序，优先只列出现超过一次的人物，最多 max_characters 个。
    """
    records = list(characters.values()) if isinstance(characters, Mapping) else list(characters)
    if not records:
        return ""

    ordered = sorted(records, key=lambda r: (-r.appearances, r.name))
    significant = [r for r in ordered if r.appearances > 1]
    shown = (significant or ordered)[:max_characters]

    lines = [CHARACTER_SUMMARY_HEADER]
    for record in shown:
        pronouns = _PRONOUN_LABELS.get(record.gender, "unknown pronouns")
        lines.append(
            f"- {record.name}: {record.gender} ({pronouns}), appeared {record.appearances} times"
        )
    return "\n".join(lines) + "\n"


def enhancement_prompt(
    chunk: str,
    character_summary: str = "",
    context_info: str = "",
    style: Optional[NovelStyleInfo] = None,
) -> str:
    """
    生成对话增强提示词

    Args:
        chunk: 待增强的文本块
        character_summary: create_character_summary 的输出
        context_info: splitter.build_context 生成的衔接上下文
        style: 小说风格信息

    Returns:
        str: 完整提示词，chunk 为空时返回空字符串
    """
    if not chunk:
        return ""

    style_name = (style.style if style else None) or DEFAULT_STYLE
    tone = (style.tone if style else None) or DEFAULT_TONE
    instructions = "\n".join(f"{i}. {rule}" for i, rule in enumerate(ENHANCEMENT_INSTRUCTIONS, 1))

    return f"""You are a dialogue enhancer for translated web novels. Your task is to enhance the following web novel text to improve dialogue attribution and clarity.
The novel's style is {style_name} with a {tone} tone.

Characters information (name, gender, appearances):
{character_summary or NO_CHARACTER_INFO}

{context_info or ""}

INSTRUCTIONS:
{instructions}
/no_think

TEXT TO ENHANCE:

{chunk}"""


def style_analysis_prompt(sample: str) -> str:
    """生成风格分析提示词（要求模型返回JSON）"""
    if not sample:
        return ""

    return f"""Analyze the style and tone of the following novel text sample. Respond in JSON format only with the following structure:
{{
  "style": "genre or style name",
  "tone": "descriptive tone",
  "confidence": 0.0 to 1.0
}}

Style should be one of: standard narrative, eastern cultivation, western fantasy, science fiction, historical fiction, romance, mystery, horror, thriller.
You may add qualifiers if relevant (like "first-person" or "dialogue-heavy").

Tone should be one of: formal, casual, humorous, dark, inspirational, melancholic, adventurous, romantic, technical.
You may also add qualifiers if needed.

Confidence should reflect how certain you are about the classification.

SAMPLE TEXT:
{sample[:STYLE_SAMPLE_LENGTH]}
"""


def gender_analysis_prompt(character_name: str, context_text: str) -> str:
    """生成单个人物的性别分析提示词（要求模型返回JSON）"""
    if not character_name:
        return ""

    return f"""Determine the likely gender of the character "{character_name}" based on the following text.
Respond in JSON format only with this structure:
{{
  "gender": "male, female, or unknown",
  "confidence": 0.0 to 1.0,
  "evidence": ["reason 1", "reason 2"]
}}

Keep evidence brief and list up to 3 specific reasons for your determination.
If uncertain, return "unknown" for gender and explain why.

CONTEXT TEXT:
{(context_text or "")[:GENDER_CONTEXT_LENGTH]}
"""
