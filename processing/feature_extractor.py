# processing/feature_extractor.py
"""Pull typed behaviour snippets for a named character out of chapter text."""

from __future__ import annotations

import re
from collections.abc import Iterable

import structlog
from config import settings

from core.exceptions import ExtractionFailure
from models import BehaviorCategory, BehaviorSnippet
from utils.text_processing import (
    get_text_segments,
    iter_quoted_spans,
    strip_quoted_spans,
)

logger = structlog.get_logger(__name__)

KOREAN_ACTION_WORDS = (
    "말했다",
    "웃었다",
    "걸었다",
    "뛰었다",
    "달렸다",
    "생각했다",
    "결정했다",
    "소리쳤다",
    "속삭였다",
    "돌아섰다",
    "일어섰다",
    "앉았다",
    "도망쳤다",
    "공격했다",
    "막아섰다",
    "도와주었다",
    "끄덕였다",
    "움켜쥐었다",
)
ENGLISH_ACTION_WORDS = (
    "said",
    "walked",
    "ran",
    "smiled",
    "frowned",
    "laughed",
    "nodded",
    "shouted",
    "whispered",
    "grabbed",
    "attacked",
    "fled",
    "turned",
)
KOREAN_EMOTION_WORDS = (
    "기뻤다",
    "슬펐다",
    "화났다",
    "화가 났다",
    "놀랐다",
    "두려웠다",
    "안심했다",
    "울었다",
    "설렜다",
    "불안했다",
    "질투",
    "부끄러웠다",
    "미안했다",
    "고마웠다",
    "느꼈다",
)
ENGLISH_EMOTION_WORDS = (
    "happy",
    "sad",
    "angry",
    "afraid",
    "scared",
    "relieved",
    "surprised",
    "furious",
    "anxious",
    "jealous",
    "ashamed",
    "cried",
    "tears",
)
DESCRIPTION_MARKERS = ("였다", "이었다", "보였다", "처럼", "was", "looked", "seemed", "appeared", "wore")


def _keyword_pattern(korean: Iterable[str], english: Iterable[str]) -> re.Pattern[str]:
    korean_part = "|".join(re.escape(w) for w in korean)
    english_part = "|".join(re.escape(w) for w in english)
    return re.compile(rf"(?:{korean_part})|\b(?:{english_part})\b", re.IGNORECASE)


_ACTION_RE = _keyword_pattern(KOREAN_ACTION_WORDS, ENGLISH_ACTION_WORDS)
_EMOTION_RE = _keyword_pattern(KOREAN_EMOTION_WORDS, ENGLISH_EMOTION_WORDS)
_DESCRIPTION_RE = _keyword_pattern(
    [m for m in DESCRIPTION_MARKERS if not m.isascii()],
    [m for m in DESCRIPTION_MARKERS if m.isascii()],
)


def _validate_text(chapter_text: object, chapter_index: int | None) -> str:
    if not isinstance(chapter_text, str) or not chapter_text.strip():
        raise ExtractionFailure("Chapter text is empty or not a string", chapter_index)
    return chapter_text


def is_character_present(chapter_text: str, character_name: str) -> bool:
    return bool(character_name) and character_name in chapter_text


def extract_behaviors(
    chapter_text: str,
    character_name: str,
    chapter_index: int | None = None,
    window: int | None = None,
) -> list[BehaviorSnippet]:
    """Return dialogue, action, emotion and description snippets for a character.

    Dialogue is a quoted span with the name within ``window`` characters of it on
    the same line. Action, emotion and description are narration sentences that
    name the character and contain a keyword from the matching list; quoted
    dialogue is removed before those keyword checks.
    """
    text = _validate_text(chapter_text, chapter_index)
    if not is_character_present(text, character_name):
        return []

    window = window if window is not None else settings.DIALOGUE_ATTRIBUTION_WINDOW
    snippets: list[BehaviorSnippet] = []

    for line, _start, _end in get_text_segments(text, "paragraph"):
        if character_name not in line:
            continue

        for content, q_start, q_end in iter_quoted_spans(line):
            before = strip_quoted_spans(line[:q_start])[-window:]
            after = strip_quoted_spans(line[q_end:])[:window]
            if character_name in before or character_name in after:
                snippets.append(
                    BehaviorSnippet(text=content, category=BehaviorCategory.DIALOGUE)
                )

        narration = strip_quoted_spans(line)
        for sentence, _s, _e in get_text_segments(narration, "sentence"):
            if character_name not in sentence:
                continue
            matched = False
            if _ACTION_RE.search(sentence):
                snippets.append(
                    BehaviorSnippet(text=sentence, category=BehaviorCategory.ACTION)
                )
                matched = True
            if _EMOTION_RE.search(sentence):
                snippets.append(
                    BehaviorSnippet(text=sentence, category=BehaviorCategory.EMOTION)
                )
                matched = True
            if not matched and _DESCRIPTION_RE.search(sentence):
                snippets.append(
                    BehaviorSnippet(text=sentence, category=BehaviorCategory.DESCRIPTION)
                )

    logger.debug(
        "Extracted behaviour snippets",
        character=character_name,
        chapter_index=chapter_index,
        count=len(snippets),
    )
    return snippets


def extract_dialogue_lines(chapter_text: str) -> list[str]:
    """Every quoted span in the chapter, attributed or not."""
    if not isinstance(chapter_text, str):
        return []
    return [content for content, _s, _e in iter_quoted_spans(chapter_text)]


def analyze_speech_patterns(dialogue_lines: Iterable[str]) -> list[str]:
    """Register hints for a set of dialogue lines, in first-seen order."""
    patterns: list[str] = []

    def _add(tag: str) -> None:
        if tag not in patterns:
            patterns.append(tag)

    for line in dialogue_lines:
        if "요" in line or "습니다" in line:
            _add("formal")
        if "야" in line or "어" in line:
            _add("informal")
        if "!" in line:
            _add("exclamatory")
        if "..." in line or "…" in line:
            _add("hesitant")
    return patterns
