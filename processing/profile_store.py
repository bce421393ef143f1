# processing/profile_store.py
"""Request-scoped store of character profiles and plot threads."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog
from config import settings

from models import (
    BehaviorCategory,
    CharacterProfile,
    ConsistencyRecord,
    DevelopmentEntry,
    PlotThread,
    SemanticEmbedding,
)
from processing.embedding_builder import category_weight
from utils.similarity import weighted_centroid

logger = structlog.get_logger(__name__)


@dataclass
class ProfileStats:
    total_profiles: int
    total_embeddings: int
    total_plot_threads: int


def compute_baseline_vector(profile: CharacterProfile, dimensions: int) -> list[float]:
    """Weighted average of every stored embedding on ``profile``."""
    embeddings = profile.all_embeddings()
    centroid = weighted_centroid(
        [emb.vector for emb in embeddings],
        [category_weight(emb.category) for emb in embeddings],
        dimensions,
    )
    return centroid.tolist()


class ProfileStore:
    """Profiles and plot threads for a single story.

    A new store is built for every request; nothing here is shared between
    stories or invocations.
    """

    def __init__(self, dimensions: int | None = None) -> None:
        self.dimensions = dimensions or settings.EMBEDDING_DIMENSIONS
        self._profiles: dict[str, CharacterProfile] = {}
        self._plot_threads: dict[str, PlotThread] = {}

    @classmethod
    def from_profiles(
        cls,
        profiles: Iterable[CharacterProfile],
        plot_threads: Iterable[PlotThread] = (),
        dimensions: int | None = None,
    ) -> ProfileStore:
        store = cls(dimensions)
        for profile in profiles:
            store._profiles[profile.id] = profile
        for thread in plot_threads:
            store._plot_threads[thread.id] = thread
        return store

    # Characters -----------------------------------------------------------

    def get_or_create(self, character_id: str, name: str, **fields: str) -> CharacterProfile:
        profile = self._profiles.get(character_id)
        if profile is None:
            profile = CharacterProfile(
                id=character_id,
                name=name,
                baseline_vector=[0.0] * self.dimensions,
                **fields,
            )
            self._profiles[character_id] = profile
        return profile

    def get(self, character_id: str) -> CharacterProfile | None:
        return self._profiles.get(character_id)

    def require(self, character_id: str) -> CharacterProfile:
        profile = self._profiles.get(character_id)
        if profile is None:
            raise KeyError(f"No profile for character '{character_id}'")
        return profile

    def profiles(self) -> list[CharacterProfile]:
        return list(self._profiles.values())

    def add_embeddings(
        self, character_id: str, embeddings: Iterable[SemanticEmbedding]
    ) -> CharacterProfile:
        """Append embeddings and recompute the baseline once."""
        profile = self.require(character_id)
        added = 0
        for embedding in embeddings:
            if len(embedding.vector) != self.dimensions:
                raise ValueError(
                    f"Embedding has {len(embedding.vector)} dimensions, expected {self.dimensions}"
                )
            profile.embeddings_for(embedding.category).append(embedding)
            added += 1
        if added:
            profile.baseline_vector = compute_baseline_vector(profile, self.dimensions)
        return profile

    def add_embedding(self, character_id: str, embedding: SemanticEmbedding) -> CharacterProfile:
        return self.add_embeddings(character_id, [embedding])

    def record_consistency(
        self,
        character_id: str,
        chapter_index: int,
        score: float,
        deviations: list[str],
    ) -> None:
        self.require(character_id).consistency_history.append(
            ConsistencyRecord(
                chapter_index=chapter_index, score=score, deviations=deviations
            )
        )

    def character_insights(self, character_id: str) -> list[str]:
        profile = self._profiles.get(character_id)
        if profile is None:
            return []
        insights = []
        counts = {
            BehaviorCategory.PERSONALITY: "personality embedding(s) for semantic analysis",
            BehaviorCategory.DIALOGUE: "dialogue pattern(s) analyzed",
            BehaviorCategory.ACTION: "action pattern(s) tracked",
        }
        for category, label in counts.items():
            n = len(profile.embeddings_for(category))
            if n:
                insights.append(f"{profile.name} has {n} {label}")
        average = profile.average_consistency()
        if average is not None:
            insights.append(
                f"{profile.name}'s average semantic consistency: {round(average * 100)}%"
            )
        return insights

    # Plot threads -----------------------------------------------------------

    def upsert_plot_thread(self, thread: PlotThread) -> PlotThread:
        existing = self._plot_threads.get(thread.id)
        if existing is not None:
            return existing
        self._plot_threads[thread.id] = thread
        return thread

    def get_plot_thread(self, plot_thread_id: str) -> PlotThread | None:
        return self._plot_threads.get(plot_thread_id)

    def plot_threads(self) -> list[PlotThread]:
        return list(self._plot_threads.values())

    def append_development(
        self, plot_thread_id: str, entry: DevelopmentEntry
    ) -> PlotThread | None:
        thread = self._plot_threads.get(plot_thread_id)
        if thread is None:
            logger.warning(
                "Development for unknown plot thread skipped",
                plot_thread_id=plot_thread_id,
                chapter_index=entry.chapter_index,
            )
            return None
        thread.development_history.append(entry)
        if thread.introduced_at is None:
            thread.introduced_at = entry.chapter_index
        if thread.last_developed_at is None or entry.chapter_index >= thread.last_developed_at:
            thread.last_developed_at = entry.chapter_index
        return thread

    def stats(self) -> ProfileStats:
        return ProfileStats(
            total_profiles=len(self._profiles),
            total_embeddings=sum(p.embedding_count for p in self._profiles.values()),
            total_plot_threads=len(self._plot_threads),
        )
