# data_access/protocols.py
"""Interfaces the engine expects from the persistence layer."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from models import (
    ChapterRecord,
    CharacterFieldChange,
    CharacterRecord,
    PlotStatus,
    PlotThreadRecord,
    WorldBuildingElements,
    WorldBuildingMergeResult,
    WorldBuildingRecord,
    WorldRule,
)

__all__ = ["CorpusReader", "MutationSink"]


@runtime_checkable
class CorpusReader(Protocol):
    """Read-only access to a story corpus, chapters ordered by index."""

    async def get_chapters(
        self, story_id: str, up_to_chapter: int | None = None
    ) -> list[ChapterRecord]: ...

    async def get_characters(self, story_id: str) -> list[CharacterRecord]: ...

    async def get_plot_threads(self, story_id: str) -> list[PlotThreadRecord]: ...

    async def get_world_rules(self, story_id: str) -> list[WorldRule]: ...

    async def get_world_building(self, story_id: str) -> WorldBuildingRecord | None: ...


@runtime_checkable
class MutationSink(Protocol):
    """Writes applied by the auto-evolution step."""

    async def update_character_fields(
        self, character_id: str, changes: list[CharacterFieldChange]
    ) -> None:
        """Apply all ``changes`` atomically and append them to the audit trail."""
        ...

    async def update_plot_thread_status(
        self, plot_thread_id: str, status: PlotStatus
    ) -> None: ...

    async def merge_world_building(
        self, story_id: str, elements: WorldBuildingElements
    ) -> WorldBuildingMergeResult: ...
