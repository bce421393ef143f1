# tests/test_profile_store.py
import pytest

from models import (
    BehaviorCategory,
    DevelopmentEntry,
    DevelopmentType,
    PlotThread,
    SemanticEmbedding,
)
from processing.profile_store import ProfileStore


def _emb(vector, category=BehaviorCategory.DIALOGUE, chapter=1):
    return SemanticEmbedding(
        source_text="x", vector=vector, category=category, chapter_index=chapter
    )


def test_get_or_create_starts_with_zero_baseline():
    store = ProfileStore(dimensions=4)
    profile = store.get_or_create("c1", "서연", personality="냉정한")
    assert profile.baseline_vector == [0.0, 0.0, 0.0, 0.0]
    assert store.get_or_create("c1", "다른 이름") is profile


def test_add_embeddings_recomputes_weighted_baseline():
    store = ProfileStore(dimensions=2)
    store.get_or_create("c1", "서연")
    store.add_embeddings(
        "c1",
        [
            _emb([1.0, 0.0], BehaviorCategory.PERSONALITY),
            _emb([0.0, 1.0], BehaviorCategory.DESCRIPTION),
        ],
    )
    profile = store.require("c1")
    assert profile.embedding_count == 2
    # Weights 1.5 and 1.0.
    assert profile.baseline_vector == pytest.approx([0.6, 0.4])


def test_add_embedding_rejects_wrong_dimensions():
    store = ProfileStore(dimensions=3)
    store.get_or_create("c1", "서연")
    with pytest.raises(ValueError):
        store.add_embedding("c1", _emb([1.0, 0.0]))


def test_require_unknown_character_raises():
    with pytest.raises(KeyError):
        ProfileStore(dimensions=2).require("missing")


def test_character_insights_report_counts_and_consistency():
    store = ProfileStore(dimensions=2)
    store.get_or_create("c1", "서연")
    store.add_embeddings("c1", [_emb([1.0, 0.0]), _emb([1.0, 0.0])])
    store.record_consistency("c1", 2, 0.8, [])
    insights = store.character_insights("c1")
    assert "서연 has 2 dialogue pattern(s) analyzed" in insights
    assert "서연's average semantic consistency: 80%" in insights


def test_append_development_tracks_chapters():
    store = ProfileStore(dimensions=2)
    store.upsert_plot_thread(PlotThread(id="p1", name="흑막 찾기"))
    store.append_development(
        "p1", DevelopmentEntry(chapter_index=3, development_type=DevelopmentType.INTRODUCTION)
    )
    store.append_development(
        "p1", DevelopmentEntry(chapter_index=7, development_type=DevelopmentType.ADVANCEMENT)
    )
    thread = store.get_plot_thread("p1")
    assert thread.introduced_at == 3
    assert thread.last_developed_at == 7
    assert store.append_development(
        "missing",
        DevelopmentEntry(chapter_index=1, development_type=DevelopmentType.INTRODUCTION),
    ) is None


def test_stores_are_independent():
    first = ProfileStore(dimensions=2)
    second = ProfileStore(dimensions=2)
    first.get_or_create("c1", "서연")
    assert second.get("c1") is None
    assert first.stats().total_profiles == 1
    assert second.stats().total_profiles == 0
