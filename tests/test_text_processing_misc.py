# tests/test_text_processing_misc.py
import pytest

from utils.text_processing import (
    find_time_references,
    get_text_segments,
    iter_quoted_spans,
    strip_quoted_spans,
    tokenize,
)


def test_get_text_segments_paragraphs():
    text = "첫 줄입니다.\n\n  두 번째 줄  \n"
    segments = get_text_segments(text, "paragraph")
    assert [s[0] for s in segments] == ["첫 줄입니다.", "두 번째 줄"]


def test_get_text_segments_sentences():
    segments = get_text_segments("He ran. She laughed! Why?", "sentence")
    assert [s[0] for s in segments] == ["He ran.", "She laughed!", "Why?"]


def test_get_text_segments_empty_and_invalid():
    assert get_text_segments("   ") == []
    with pytest.raises(ValueError):
        get_text_segments("text", "chapter")


def test_iter_quoted_spans_mixed_quotes():
    text = "\"안녕\" 그리고 “hello” 그리고 「잘 가」"
    assert [s[0] for s in iter_quoted_spans(text)] == ["안녕", "hello", "잘 가"]


def test_strip_quoted_spans_leaves_narration():
    stripped = strip_quoted_spans("\"가자.\" 서연이 말했다.")
    assert "가자" not in stripped
    assert "서연이 말했다." in stripped


def test_tokenize_splits_scripts_and_drops_punctuation():
    assert tokenize("Hello, 서연! OK?") == ["hello", "서연", "ok"]
    assert tokenize("") == []


def test_find_time_references():
    text = "Three days later, they met. 다음 날 아침, 2시간 후에 출발했다."
    refs = find_time_references(text)
    assert "Three days later" in refs
    assert "다음 날" in refs
    assert "2시간 후" in refs
