"""
测试人物名提取
"""

import pytest

from services.character_extractor import CharacterExtractor, sanitize_text


@pytest.fixture
def extractor():
    return CharacterExtractor()


SAMPLE = 'Lin Feng said nothing. "Let us go," Mei Ling replied. Master Chen smiled.'


class TestExtractCharacterNames:
    def test_basic_patterns(self, extractor):
        characters = extractor.extract(SAMPLE)
        assert set(characters) == {"Lin Feng", "Mei Ling", "Master Chen"}
        assert characters["Mei Ling"].appearances == 2
        assert all(record.gender == "unknown" for record in characters.values())

    def test_empty_text(self, extractor):
        assert extractor.extract_character_names("") == {}
        assert extractor.extract("") == {}

    def test_per_pattern_limit(self):
        extractor = CharacterExtractor(max_pattern_matches=1)
        characters = extractor.extract_character_names("Lin Feng said yes. Mei Ling said no.")
        assert list(characters) == ["Lin Feng"]

    def test_possessive(self, extractor):
        characters = extractor.extract_character_names("Chen Wei's eyes narrowed.")
        assert "Chen Wei" in characters


class TestExtractCharacterName:
    @pytest.mark.parametrize("candidate", ["He", "The", "", None])
    def test_rejects_non_names(self, extractor, candidate):
        assert extractor.extract_character_name(candidate) is None

    def test_strips_leading_connective(self, extractor):
        assert extractor.extract_character_name("Then Lin Feng") == "Lin Feng"

    def test_title_form(self, extractor):
        assert extractor.extract_character_name("Mr. Chen") == "Mr. Chen"

    def test_xiao_prefix(self, extractor):
        assert extractor.extract_character_name("Xiao Mei") == "Xiao Mei"

    def test_rejects_clauses(self, extractor):
        assert extractor.extract_character_name("Lin was tired") is None

    def test_long_text_finds_embedded_name(self, extractor):
        text = "after a long while of silence the old man known as Master Li spoke"
        assert extractor.extract_character_name(text) == "Master Li"


class TestDialoguePatterns:
    def test_colon_dialogue(self, extractor):
        patterns = extractor.extract_dialogue_patterns('Lin Feng: "Move!"')
        assert patterns.colon_separated == [
            {"full": 'Lin Feng: "Move!"', "character": "Lin Feng", "dialogue": "Move!"}
        ]
        assert patterns.quoted == []
        assert patterns.total == 1

    def test_action_dialogue(self, extractor):
        patterns = extractor.extract_dialogue_patterns('Chen Wei raised his hand. "Stop."')
        assert len(patterns.action) == 1
        assert patterns.action[0]["character"] == "Chen Wei"
        assert patterns.action[0]["dialogue"] == "Stop."
        assert extractor.extract_characters_from_dialogue(patterns) == {"Chen Wei"}

    def test_quoted_attribution_speaker(self, extractor):
        patterns = extractor.extract_dialogue_patterns('"Come here," said Lan Yue.')
        assert patterns.quoted[0]["attribution"] == "said Lan Yue"
        assert extractor.extract_characters_from_dialogue(patterns) == {"Lan Yue"}


def test_sanitize_text():
    assert sanitize_text("<b>Lin</b>\n  Feng") == "Lin Feng"
