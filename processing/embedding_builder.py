# processing/embedding_builder.py
"""Deterministic term-frequency embeddings over a fixed vocabulary."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

import numpy as np
import structlog
from config import settings

from core.exceptions import EmbeddingDegenerate
from models import BehaviorCategory
from utils.text_processing import tokenize

logger = structlog.get_logger(__name__)

PERSONALITY_TERMS = (
    "차가운", "따뜻한", "냉정한", "감정적인", "강인한", "연약한", "자신감", "수줍은",
    "외향적", "내향적", "적극적", "소극적", "정직한", "교활한", "용감한", "겁많은",
    "친절한", "무뚝뚝한", "유머러스", "진지한", "충성스러운", "배신적인", "지적인", "순진한",
    "cold", "warm", "calm", "emotional", "strong", "fragile", "confident", "shy",
    "outgoing", "reserved", "honest", "cunning", "brave", "cowardly", "kind",
    "blunt", "serious", "loyal", "clever", "naive",
)
EMOTION_TERMS = (
    "화난", "기쁜", "슬픈", "놀란", "두려운", "불안한", "흥분한", "평온한",
    "실망한", "만족한", "질투하는", "부러워하는", "미안한", "고마운", "자랑스러운", "부끄러운",
    "기뻤다", "슬펐다", "화났다", "놀랐다", "두려웠다", "안심했다", "울었다", "설렜다",
    "불안했다", "느꼈다",
    "happy", "sad", "angry", "afraid", "scared", "relieved", "surprised", "furious",
    "anxious", "jealous", "ashamed", "cried", "tears",
)
ACTION_TERMS = (
    "말하다", "속삭이다", "소리치다", "웃다", "울다", "달리다", "걷다", "서다",
    "앉다", "누워있다", "생각하다", "결정하다", "도망가다", "공격하다", "방어하다", "도와주다",
    "말했다", "웃었다", "걸었다", "뛰었다", "달렸다", "생각했다", "결정했다", "소리쳤다",
    "속삭였다", "돌아섰다", "일어섰다", "앉았다", "도망쳤다", "공격했다", "막아섰다",
    "도와주었다", "끄덕였다",
    "said", "walked", "ran", "smiled", "frowned", "laughed", "nodded", "shouted",
    "whispered", "grabbed", "attacked", "fled", "turned",
)
# Common dialogue words that carry speech register.
DIALOGUE_TERMS = (
    "네", "예", "아니요", "감사합니다", "죄송합니다", "안녕하세요", "그렇습니다", "알겠습니다",
    "부탁드립니다", "괜찮습니다", "고맙습니다",
    "응", "야", "어", "아니", "고마워", "미안해", "안녕", "그래", "알았어", "괜찮아",
    "빨리", "제발", "진짜", "정말",
    "please", "thank", "thanks", "sorry", "sir", "madam", "yeah", "hey", "okay",
)

DEFAULT_VOCABULARY: tuple[str, ...] = (
    PERSONALITY_TERMS + EMOTION_TERMS + ACTION_TERMS + DIALOGUE_TERMS
)


def category_weight(category: BehaviorCategory) -> float:
    """Weight applied to token frequencies for a behaviour category."""
    weights = {
        BehaviorCategory.PERSONALITY: settings.PERSONALITY_WEIGHT,
        BehaviorCategory.EMOTION: settings.EMOTION_WEIGHT,
        BehaviorCategory.DIALOGUE: settings.DIALOGUE_WEIGHT,
        BehaviorCategory.ACTION: settings.ACTION_WEIGHT,
        BehaviorCategory.DESCRIPTION: settings.DESCRIPTION_WEIGHT,
    }
    return weights[BehaviorCategory(category)]


class EmbeddingBuilder:
    """Project text onto a fixed vocabulary index and L2-normalise.

    Tokens outside the vocabulary are ignored, so text with no overlap produces
    the zero vector. No model calls are involved.
    """

    def __init__(
        self,
        vocabulary: Iterable[str] | None = None,
        dimensions: int | None = None,
    ) -> None:
        self.dimensions = dimensions or settings.EMBEDDING_DIMENSIONS
        if self.dimensions <= 0:
            raise ValueError("Embedding dimensions must be positive")
        self.vocabulary_index: dict[str, int] = {}
        for term in vocabulary if vocabulary is not None else DEFAULT_VOCABULARY:
            key = term.lower()
            if key not in self.vocabulary_index:
                self.vocabulary_index[key] = len(self.vocabulary_index)

    @property
    def vocabulary_size(self) -> int:
        return len(self.vocabulary_index)

    def embed(self, text: str, category: BehaviorCategory) -> np.ndarray:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        weight = category_weight(category)
        for token, frequency in Counter(tokenize(text)).items():
            index = self.vocabulary_index.get(token)
            if index is None:
                continue
            vector[index % self.dimensions] += frequency * weight

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector

    def embed_with_signal(self, text: str, category: BehaviorCategory) -> np.ndarray:
        """Like :meth:`embed` but raise ``EmbeddingDegenerate`` for a zero vector."""
        vector = self.embed(text, category)
        if not np.any(vector):
            raise EmbeddingDegenerate(text)
        return vector
