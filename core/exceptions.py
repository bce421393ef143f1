# core/exceptions.py
"""Error taxonomy for the continuity engine."""

from __future__ import annotations


class ContinuityError(Exception):
    """Base class for all continuity engine errors."""


class ExtractionFailure(ContinuityError):
    """Chapter text was empty or malformed and yielded no behaviour snippets."""

    def __init__(self, message: str, chapter_index: int | None = None) -> None:
        super().__init__(message)
        self.chapter_index = chapter_index


class EmbeddingDegenerate(ContinuityError):
    """An embedding had no vocabulary overlap and collapsed to the zero vector."""

    def __init__(self, text: str) -> None:
        super().__init__(f"No vocabulary overlap for snippet: {text[:60]!r}")
        self.text = text


class AnalyzerUnavailable(ContinuityError):
    """The qualitative analyzer timed out, failed or returned malformed data."""


class PersistenceFailure(ContinuityError):
    """The corpus reader or mutation sink failed."""

    def __init__(self, message: str, operation: str, entity_id: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.entity_id = entity_id
