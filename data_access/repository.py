# data_access/repository.py
"""In-memory story repository implementing the reader and sink interfaces."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from core.exceptions import PersistenceFailure
from models import (
    AuditEntry,
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

logger = structlog.get_logger(__name__)

__all__ = [
    "StoryCorpus",
    "InMemoryStoryRepository",
    "load_story_corpus",
]


class StoryCorpus(BaseModel):
    """Everything stored for one story."""

    story_id: str
    chapters: list[ChapterRecord] = Field(default_factory=list)
    characters: list[CharacterRecord] = Field(default_factory=list)
    plot_threads: list[PlotThreadRecord] = Field(default_factory=list)
    world_rules: list[WorldRule] = Field(default_factory=list)
    world_building: WorldBuildingRecord | None = None


def load_story_corpus(path: str | Path) -> StoryCorpus:
    """Load a story corpus from a JSON file."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return StoryCorpus.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise PersistenceFailure(
            f"Could not load story corpus from {path}: {e}", operation="load_corpus"
        ) from e


class InMemoryStoryRepository:
    """Holds story corpora in memory; suitable for tests and file-backed runs."""

    def __init__(self, corpora: list[StoryCorpus] | None = None) -> None:
        self._stories: dict[str, StoryCorpus] = {}
        self._write_lock = asyncio.Lock()
        self.audit_log: list[AuditEntry] = []
        for corpus in corpora or []:
            self.add_story(corpus)

    @classmethod
    def from_json(cls, *paths: str | Path) -> InMemoryStoryRepository:
        return cls([load_story_corpus(p) for p in paths])

    def add_story(self, corpus: StoryCorpus) -> None:
        self._stories[corpus.story_id] = corpus

    def _story(self, story_id: str, operation: str) -> StoryCorpus:
        corpus = self._stories.get(story_id)
        if corpus is None:
            raise PersistenceFailure(
                f"Unknown story '{story_id}'", operation=operation, entity_id=story_id
            )
        return corpus

    def _find_character(self, character_id: str) -> CharacterRecord:
        for corpus in self._stories.values():
            for character in corpus.characters:
                if character.id == character_id:
                    return character
        raise PersistenceFailure(
            f"Unknown character '{character_id}'",
            operation="update_character_fields",
            entity_id=character_id,
        )

    def _find_plot_thread(self, plot_thread_id: str) -> PlotThreadRecord:
        for corpus in self._stories.values():
            for thread in corpus.plot_threads:
                if thread.id == plot_thread_id:
                    return thread
        raise PersistenceFailure(
            f"Unknown plot thread '{plot_thread_id}'",
            operation="update_plot_thread_status",
            entity_id=plot_thread_id,
        )

    # CorpusReader ----------------------------------------------------------

    async def get_chapters(
        self, story_id: str, up_to_chapter: int | None = None
    ) -> list[ChapterRecord]:
        chapters = self._story(story_id, "get_chapters").chapters
        if up_to_chapter is not None:
            chapters = [c for c in chapters if c.index <= up_to_chapter]
        return [c.model_copy(deep=True) for c in chapters]

    async def get_characters(self, story_id: str) -> list[CharacterRecord]:
        return [
            c.model_copy(deep=True)
            for c in self._story(story_id, "get_characters").characters
        ]

    async def get_plot_threads(self, story_id: str) -> list[PlotThreadRecord]:
        return [
            t.model_copy(deep=True)
            for t in self._story(story_id, "get_plot_threads").plot_threads
        ]

    async def get_world_rules(self, story_id: str) -> list[WorldRule]:
        return [
            r.model_copy(deep=True)
            for r in self._story(story_id, "get_world_rules").world_rules
        ]

    async def get_world_building(self, story_id: str) -> WorldBuildingRecord | None:
        record = self._story(story_id, "get_world_building").world_building
        return record.model_copy(deep=True) if record else None

    # MutationSink ----------------------------------------------------------

    async def update_character_fields(
        self, character_id: str, changes: list[CharacterFieldChange]
    ) -> None:
        async with self._write_lock:
            character = self._find_character(character_id)
            # Build the complete new state before touching the stored record.
            updates = {change.field.value: change.new_value for change in changes}
            entries = [
                AuditEntry(
                    entity_id=character_id,
                    field=change.field.value,
                    old_value=character.field_value(change.field),
                    new_value=change.new_value,
                    reason=change.reason,
                )
                for change in changes
            ]
            updated = character.model_copy(update=updates)
            for corpus in self._stories.values():
                for i, existing in enumerate(corpus.characters):
                    if existing.id == character_id:
                        corpus.characters[i] = updated
            self.audit_log.extend(entries)
            logger.info(
                "Applied character field updates",
                character_id=character_id,
                fields=list(updates),
            )

    async def update_plot_thread_status(
        self, plot_thread_id: str, status: PlotStatus
    ) -> None:
        async with self._write_lock:
            thread = self._find_plot_thread(plot_thread_id)
            if thread.status == status:
                return
            self.audit_log.append(
                AuditEntry(
                    entity_id=plot_thread_id,
                    field="status",
                    old_value=thread.status.value,
                    new_value=status.value,
                    reason="Recomputed from development history",
                )
            )
            thread.status = status

    async def merge_world_building(
        self, story_id: str, elements: WorldBuildingElements
    ) -> WorldBuildingMergeResult:
        async with self._write_lock:
            corpus = self._story(story_id, "merge_world_building")
            existing = corpus.world_building or WorldBuildingRecord(story_id=story_id)
            merged, added = existing.merged_with(elements)
            if added:
                corpus.world_building = merged
            return WorldBuildingMergeResult(
                updated=bool(added), elements_added=added, world_building=merged
            )
