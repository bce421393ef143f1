# tests/test_similarity_misc.py
import numpy as np
import pytest

from utils.similarity import is_zero_vector, numpy_cosine_similarity, weighted_centroid


def test_numpy_cosine_similarity_basic():
    v1 = np.array([1.0, 0.0])
    v2 = np.array([1.0, 0.0])
    assert numpy_cosine_similarity(v1, v2) == 1.0


def test_numpy_cosine_similarity_none():
    assert numpy_cosine_similarity(None, None) == 0.0


def test_numpy_cosine_similarity_shape_mismatch():
    assert numpy_cosine_similarity(np.array([1.0, 0.0]), np.array([1.0])) == 0.0


def test_numpy_cosine_similarity_zero_vector():
    assert numpy_cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0


def test_numpy_cosine_similarity_opposite_and_bounded():
    assert numpy_cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    rng = np.random.default_rng(7)
    for _ in range(20):
        a, b = rng.normal(size=8), rng.normal(size=8)
        assert -1.0 <= numpy_cosine_similarity(a, b) <= 1.0


def test_numpy_cosine_similarity_accepts_lists():
    assert numpy_cosine_similarity([0.25, 0.0], [1.0, 0.0]) == pytest.approx(1.0)


def test_is_zero_vector():
    assert is_zero_vector(None)
    assert is_zero_vector([])
    assert is_zero_vector([0.0, 0.0])
    assert not is_zero_vector([0.0, 0.1])


def test_weighted_centroid():
    centroid = weighted_centroid([[1.0, 0.0], [0.0, 1.0]], [3.0, 1.0], 2)
    assert centroid.tolist() == pytest.approx([0.75, 0.25])


def test_weighted_centroid_empty_is_zero():
    assert weighted_centroid([], [], 3).tolist() == [0.0, 0.0, 0.0]
    assert weighted_centroid([[1.0, 1.0]], [0.0], 2).tolist() == [0.0, 0.0]
