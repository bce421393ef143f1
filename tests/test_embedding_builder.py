# tests/test_embedding_builder.py
import numpy as np
import pytest

from core.exceptions import EmbeddingDegenerate
from models import BehaviorCategory
from processing.embedding_builder import EmbeddingBuilder, category_weight


def test_embedding_is_unit_length_and_deterministic():
    builder = EmbeddingBuilder()
    first = builder.embed("차가운 냉정한 지적인", BehaviorCategory.PERSONALITY)
    second = builder.embed("차가운 냉정한 지적인", BehaviorCategory.PERSONALITY)
    assert np.linalg.norm(first) == pytest.approx(1.0)
    assert np.array_equal(first, second)


def test_embedding_uses_configured_dimensions():
    builder = EmbeddingBuilder(dimensions=16)
    assert builder.embed("cold warm", BehaviorCategory.PERSONALITY).shape == (16,)


def test_vocabulary_index_wraps_modulo_dimensions():
    builder = EmbeddingBuilder(vocabulary=["a", "b", "c"], dimensions=2)
    vector = builder.embed("c", BehaviorCategory.DIALOGUE)
    # "c" has index 2, which lands on slot 0.
    assert vector.tolist() == [1.0, 0.0]


def test_no_overlap_gives_zero_vector():
    builder = EmbeddingBuilder()
    vector = builder.embed("xyzzy plugh", BehaviorCategory.ACTION)
    assert not np.any(vector)
    with pytest.raises(EmbeddingDegenerate):
        builder.embed_with_signal("xyzzy plugh", BehaviorCategory.ACTION)


def test_duplicate_vocabulary_terms_collapse():
    builder = EmbeddingBuilder(vocabulary=["Cold", "cold", "warm"])
    assert builder.vocabulary_size == 2


def test_category_weights_follow_settings():
    assert category_weight(BehaviorCategory.PERSONALITY) == 1.5
    assert category_weight(BehaviorCategory.DESCRIPTION) == 1.0


def test_invalid_dimensions_rejected():
    with pytest.raises(ValueError):
        EmbeddingBuilder(dimensions=-1)
