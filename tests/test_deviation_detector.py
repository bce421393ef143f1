# tests/test_deviation_detector.py
import math

import numpy as np
import pytest

from models import (
    BehaviorCategory,
    BehaviorSnippet,
    IssueCategory,
    IssueSource,
    SemanticEmbedding,
    Severity,
)
from processing.deviation_detector import (
    DeviationDetector,
    deviation_suggestion,
    deviation_to_issue,
    severity_for,
)
from processing.embedding_builder import EmbeddingBuilder
from processing.profile_store import ProfileStore

FORMAL = [1.0, 0.0, 0.0, 0.0]
INFORMAL = [0.25, math.sqrt(0.9375), 0.0, 0.0]


class FixedEmbedder(EmbeddingBuilder):
    """Maps every dialogue snippet to one vector; everything else carries no signal."""

    def __init__(self, dialogue_vector):
        super().__init__(vocabulary=[], dimensions=4)
        self.dialogue_vector = np.array(dialogue_vector, dtype=np.float64)

    def embed(self, text, category):
        if category == BehaviorCategory.DIALOGUE:
            return self.dialogue_vector.copy()
        return np.zeros(self.dimensions)


def _store_with_dialogue(samples: int) -> ProfileStore:
    store = ProfileStore(dimensions=4)
    store.get_or_create("char-seoyeon", "서연")
    store.add_embeddings(
        "char-seoyeon",
        [
            SemanticEmbedding(
                source_text="안녕하세요, 잘 부탁드립니다.",
                vector=FORMAL,
                category=BehaviorCategory.DIALOGUE,
                chapter_index=i + 1,
            )
            for i in range(samples)
        ],
    )
    return store


def test_informal_line_against_formal_profile_is_high():
    detector = DeviationDetector(_store_with_dialogue(5), FixedEmbedder(INFORMAL))
    deviations = detector.detect(
        "char-seoyeon", "\"야, 빨리 따라와.\" 서연의 목소리가 복도에 울렸다", 6
    )
    assert len(deviations) == 1
    deviation = deviations[0]
    assert deviation.category == BehaviorCategory.DIALOGUE
    assert deviation.similarity == pytest.approx(0.25)
    assert deviation.confidence == 1.0
    assert deviation.severity == Severity.HIGH
    assert "speech pattern shows significant deviation" in deviation.suggestion


def test_consistent_line_produces_no_deviation():
    detector = DeviationDetector(_store_with_dialogue(5), FixedEmbedder(FORMAL))
    result, deviation = detector.evaluate(
        "char-seoyeon",
        BehaviorSnippet(text="감사합니다.", category=BehaviorCategory.DIALOGUE),
    )
    assert result.similarity == pytest.approx(1.0)
    assert deviation is None


def test_cold_start_with_no_embeddings_is_never_flagged():
    store = ProfileStore(dimensions=4)
    store.get_or_create("char-new", "도윤")
    detector = DeviationDetector(store, FixedEmbedder(INFORMAL))
    result, deviation = detector.evaluate(
        "char-new", BehaviorSnippet(text="야!", category=BehaviorCategory.DIALOGUE)
    )
    assert result is None
    assert deviation is None


def test_low_confidence_high_deviation_is_capped_at_medium():
    detector = DeviationDetector(_store_with_dialogue(1), FixedEmbedder(INFORMAL))
    _result, deviation = detector.evaluate(
        "char-seoyeon",
        BehaviorSnippet(text="야, 빨리 따라와.", category=BehaviorCategory.DIALOGUE),
    )
    assert deviation.confidence == pytest.approx(0.2)
    assert deviation.severity == Severity.MEDIUM


def test_degenerate_snippet_is_skipped():
    detector = DeviationDetector(_store_with_dialogue(5), FixedEmbedder(INFORMAL))
    result, deviation = detector.evaluate(
        "char-seoyeon",
        BehaviorSnippet(text="서연이 걸었다.", category=BehaviorCategory.ACTION),
    )
    assert result is None
    assert deviation is None


def test_similarity_is_clipped_and_bounded():
    detector = DeviationDetector(_store_with_dialogue(5), FixedEmbedder([-1.0, 0, 0, 0]))
    result = detector.score(
        "char-seoyeon", BehaviorSnippet(text="x", category=BehaviorCategory.DIALOGUE)
    )
    assert result.similarity == pytest.approx(-1.0)


@pytest.mark.parametrize(
    "similarity, expected",
    [(0.29, Severity.HIGH), (0.3, Severity.MEDIUM), (0.49, Severity.MEDIUM), (0.5, Severity.LOW)],
)
def test_severity_cutoffs(similarity, expected):
    assert severity_for(similarity) == expected


def test_deviation_suggestions_by_category():
    assert "personality consistency" in deviation_suggestion(
        BehaviorCategory.PERSONALITY, "서연", 0.1
    )
    assert "emotional response shows moderate" in deviation_suggestion(
        BehaviorCategory.EMOTION, "서연", 0.4
    )


def test_deviation_to_issue_is_semantic_character_issue():
    detector = DeviationDetector(_store_with_dialogue(5), FixedEmbedder(INFORMAL))
    _result, deviation = detector.evaluate(
        "char-seoyeon",
        BehaviorSnippet(text="야, 빨리 따라와.", category=BehaviorCategory.DIALOGUE),
        chapter_index=6,
    )
    issue = deviation_to_issue(deviation)
    assert issue.category == IssueCategory.CHARACTER
    assert issue.source == IssueSource.SEMANTIC
    assert issue.entity_id == "char-seoyeon"
    assert issue.chapter_index == 6
