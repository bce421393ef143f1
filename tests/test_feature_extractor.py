# tests/test_feature_extractor.py
import pytest

from core.exceptions import ExtractionFailure
from models import BehaviorCategory
from processing.feature_extractor import (
    analyze_speech_patterns,
    extract_behaviors,
    extract_dialogue_lines,
    is_character_present,
)


def _by_category(snippets):
    result = {}
    for snippet in snippets:
        result.setdefault(snippet.category, []).append(snippet.text)
    return result


def test_dialogue_attributed_when_name_follows_quote():
    text = "\"야, 빨리 따라와.\" 서연의 목소리가 복도에 울렸다"
    snippets = extract_behaviors(text, "서연")
    assert _by_category(snippets) == {BehaviorCategory.DIALOGUE: ["야, 빨리 따라와."]}


def test_dialogue_not_attributed_outside_window():
    text = "서연" + "가" * 50 + " \"안녕\""
    snippets = extract_behaviors(text, "서연", window=40)
    assert BehaviorCategory.DIALOGUE not in _by_category(snippets)


def test_action_emotion_and_description_sentences():
    text = "서연이 웃었다. 서연은 화가 났다. 서연은 차가운 사람이었다. 민준이 걸었다."
    grouped = _by_category(extract_behaviors(text, "서연"))
    assert grouped[BehaviorCategory.ACTION] == ["서연이 웃었다."]
    assert grouped[BehaviorCategory.EMOTION] == ["서연은 화가 났다."]
    assert grouped[BehaviorCategory.DESCRIPTION] == ["서연은 차가운 사람이었다."]


def test_english_keywords_use_word_boundaries():
    text = "Mira ran to the gate. Mira was tired."
    grouped = _by_category(extract_behaviors(text, "Mira"))
    assert grouped[BehaviorCategory.ACTION] == ["Mira ran to the gate."]
    assert grouped[BehaviorCategory.DESCRIPTION] == ["Mira was tired."]


def test_absent_character_yields_nothing():
    assert extract_behaviors("민준이 걸었다.", "서연") == []
    assert not is_character_present("민준이 걸었다.", "서연")


@pytest.mark.parametrize("bad_text", ["", "   \n", None])
def test_empty_or_invalid_text_raises(bad_text):
    with pytest.raises(ExtractionFailure):
        extract_behaviors(bad_text, "서연", chapter_index=3)


def test_extract_dialogue_lines_and_speech_patterns():
    text = "\"안녕하세요.\" \"야 빨리!\"\n\"글쎄...\""
    lines = extract_dialogue_lines(text)
    assert lines == ["안녕하세요.", "야 빨리!", "글쎄..."]
    assert analyze_speech_patterns(lines) == [
        "formal",
        "informal",
        "exclamatory",
        "hesitant",
    ]
