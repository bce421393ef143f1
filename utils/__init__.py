# utils/__init__.py
"""General utility functions for the continuity engine."""

from .logging import setup_logging
from .similarity import is_zero_vector, numpy_cosine_similarity, weighted_centroid
from .text_processing import (
    find_time_references,
    get_text_segments,
    iter_quoted_spans,
    strip_quoted_spans,
    tokenize,
)

__all__ = [
    "setup_logging",
    "numpy_cosine_similarity",
    "is_zero_vector",
    "weighted_centroid",
    "get_text_segments",
    "iter_quoted_spans",
    "strip_quoted_spans",
    "tokenize",
    "find_time_references",
]
