# processing/deviation_detector.py
"""Score new behaviour snippets against established character profiles."""

from __future__ import annotations

import numpy as np
import structlog
from config import settings

from core.exceptions import EmbeddingDegenerate
from models import (
    BehaviorCategory,
    BehaviorSnippet,
    CharacterProfile,
    ConsistencyIssue,
    Deviation,
    IssueCategory,
    IssueSource,
    SemanticSimilarity,
    Severity,
)
from processing.embedding_builder import EmbeddingBuilder
from processing.feature_extractor import extract_behaviors
from processing.profile_store import ProfileStore
from utils.similarity import is_zero_vector, numpy_cosine_similarity

logger = structlog.get_logger(__name__)


def severity_for(similarity: float) -> Severity:
    if similarity < settings.HIGH_SEVERITY_SIMILARITY:
        return Severity.HIGH
    if similarity < settings.MEDIUM_SEVERITY_SIMILARITY:
        return Severity.MEDIUM
    return Severity.LOW


def _severity_adjective(similarity: float) -> str:
    return {
        Severity.HIGH: "significant",
        Severity.MEDIUM: "moderate",
        Severity.LOW: "minor",
    }[severity_for(similarity)]


def deviation_suggestion(
    category: BehaviorCategory, character_name: str, similarity: float
) -> str:
    level = _severity_adjective(similarity)
    if category == BehaviorCategory.PERSONALITY:
        return (
            f"Consider reviewing {character_name}'s personality consistency. The {level} "
            "deviation suggests their core traits may be inconsistent with established patterns."
        )
    if category == BehaviorCategory.DIALOGUE:
        return (
            f"{character_name}'s speech pattern shows {level} deviation. Review their "
            "dialogue style, formality level, and vocabulary choices."
        )
    if category == BehaviorCategory.ACTION:
        return (
            f"{character_name}'s actions show {level} deviation from their typical behavior "
            "patterns. Ensure actions align with their established personality."
        )
    if category == BehaviorCategory.EMOTION:
        return (
            f"{character_name}'s emotional response shows {level} deviation. Consider whether "
            "the emotional reaction fits their established emotional baseline."
        )
    return (
        f"Review {character_name}'s {category.value} for consistency with their "
        "established character patterns."
    )


def _grade(similarity: float) -> str:
    if similarity >= 0.9:
        return "very high"
    if similarity >= 0.7:
        return "high"
    if similarity >= 0.5:
        return "moderate"
    if similarity >= 0.3:
        return "low"
    return "very low"


class DeviationDetector:
    """Blend baseline and same-category similarity to flag deviations."""

    def __init__(
        self,
        store: ProfileStore,
        embedder: EmbeddingBuilder | None = None,
        threshold: float | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder or EmbeddingBuilder(dimensions=store.dimensions)
        self.threshold = (
            threshold if threshold is not None else settings.CONSISTENCY_THRESHOLD
        )

    def score_vector(
        self, profile: CharacterProfile, vector: np.ndarray, category: BehaviorCategory
    ) -> SemanticSimilarity:
        baseline_similarity = numpy_cosine_similarity(vector, profile.baseline_vector)
        same_category = [
            emb.vector
            for emb in profile.embeddings_for(category)
            if not is_zero_vector(emb.vector)
        ]
        type_similarity = (
            sum(numpy_cosine_similarity(vector, v) for v in same_category)
            / len(same_category)
            if same_category
            else 0.0
        )
        similarity = (
            settings.BASELINE_BLEND_WEIGHT * baseline_similarity
            + settings.CATEGORY_BLEND_WEIGHT * type_similarity
        )
        similarity = float(np.clip(similarity, -1.0, 1.0))
        confidence = min(
            1.0, len(same_category) / max(1, settings.DEVIATION_FULL_CONFIDENCE_SAMPLES)
        )
        return SemanticSimilarity(
            similarity=similarity,
            confidence=confidence,
            explanation=self._explain(
                category, similarity, baseline_similarity, type_similarity, bool(same_category)
            ),
        )

    def _explain(
        self,
        category: BehaviorCategory,
        similarity: float,
        baseline_similarity: float,
        type_similarity: float,
        has_samples: bool,
    ) -> str:
        label = category.value
        pct = round(similarity * 100)
        if similarity >= self.threshold:
            return f"{label} behavior is consistent with established character patterns ({pct}% similarity, {_grade(similarity)})"
        if not has_samples:
            return f"{label} behavior has no earlier {label} samples to compare against ({round(baseline_similarity * 100)}% baseline similarity)"
        if baseline_similarity < 0.5:
            return f"{label} behavior significantly deviates from character baseline ({round(baseline_similarity * 100)}% similarity)"
        if type_similarity < 0.5:
            return f"{label} behavior is inconsistent with previous {label} patterns ({round(type_similarity * 100)}% similarity)"
        return f"{label} behavior shows moderate deviation from expected patterns ({pct}% similarity)"

    def score(
        self, character_id: str, snippet: BehaviorSnippet
    ) -> SemanticSimilarity | None:
        """Similarity of ``snippet`` to the character, or ``None`` when it carries no signal."""
        profile = self.store.require(character_id)
        try:
            vector = self.embedder.embed_with_signal(snippet.text, snippet.category)
        except EmbeddingDegenerate:
            logger.debug(
                "Snippet has no vocabulary overlap; skipping",
                character_id=character_id,
                category=snippet.category.value,
            )
            return None
        return self.score_vector(profile, vector, snippet.category)

    def evaluate(
        self,
        character_id: str,
        snippet: BehaviorSnippet,
        chapter_index: int | None = None,
    ) -> tuple[SemanticSimilarity | None, Deviation | None]:
        profile = self.store.require(character_id)
        if profile.embedding_count == 0:
            # Nothing established yet; the first mention seeds the profile.
            return None, None
        result = self.score(character_id, snippet)
        if result is None or result.similarity >= self.threshold:
            return result, None

        severity = severity_for(result.similarity)
        if (
            severity == Severity.HIGH
            and result.confidence < settings.DEVIATION_HIGH_MIN_CONFIDENCE
        ):
            severity = Severity.MEDIUM

        deviation = Deviation(
            character_id=profile.id,
            character_name=profile.name,
            category=snippet.category,
            snippet=snippet.text,
            similarity=result.similarity,
            confidence=result.confidence,
            severity=severity,
            description=f"{profile.name}: {result.explanation}",
            suggestion=deviation_suggestion(snippet.category, profile.name, result.similarity),
            explanation=result.explanation,
            chapter_index=chapter_index,
        )
        return result, deviation

    def detect(
        self,
        character_id: str,
        chapter_text: str,
        chapter_index: int | None = None,
    ) -> list[Deviation]:
        """All deviations for one character in ``chapter_text``."""
        profile = self.store.require(character_id)
        deviations = []
        for snippet in extract_behaviors(chapter_text, profile.name, chapter_index):
            _result, deviation = self.evaluate(character_id, snippet, chapter_index)
            if deviation is not None:
                deviations.append(deviation)
        return deviations


def deviation_to_issue(deviation: Deviation) -> ConsistencyIssue:
    return ConsistencyIssue(
        category=IssueCategory.CHARACTER,
        severity=deviation.severity,
        description=deviation.description,
        suggestion=deviation.suggestion,
        source=IssueSource.SEMANTIC,
        entity_id=deviation.character_id,
        chapter_index=deviation.chapter_index,
    )
