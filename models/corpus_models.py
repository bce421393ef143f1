# models/corpus_models.py
"""Records exchanged with the corpus reader and mutation sink."""

from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator

from .continuity_models import (
    ContinuityBaseModel,
    PlotStatus,
    WorldBuildingElements,
    WorldBuildingRecord,
)


class CharacterField(str, Enum):
    """Character text fields the auto-evolution step may overwrite."""

    DESCRIPTION = "description"
    PERSONALITY = "personality"
    BACKGROUND = "background"


class CharacterMention(ContinuityBaseModel):
    character_id: str
    development_notes: str | None = None


class PlotDevelopmentRecord(ContinuityBaseModel):
    plot_thread_id: str
    development_type: str
    description: str = ""


class StoryEventRecord(ContinuityBaseModel):
    id: str
    description: str
    importance: int = Field(default=3, ge=1, le=5)
    event_type: str | None = None
    character_ids: list[str] = Field(default_factory=list)
    plot_thread_ids: list[str] = Field(default_factory=list)


class ChapterRecord(ContinuityBaseModel):
    """A stored chapter with the structured records attached to it."""

    index: int
    title: str = ""
    text: str = ""
    events: list[StoryEventRecord] = Field(default_factory=list)
    character_mentions: list[CharacterMention] = Field(default_factory=list)
    plotline_developments: list[PlotDevelopmentRecord] = Field(default_factory=list)
    world_building_elements: WorldBuildingElements | None = None


class CharacterRecord(ContinuityBaseModel):
    id: str
    name: str
    description: str = ""
    personality: str = ""
    background: str = ""
    role: str | None = None

    def field_value(self, field: CharacterField) -> str:
        return getattr(self, CharacterField(field).value)


class PlotThreadRecord(ContinuityBaseModel):
    id: str
    name: str
    description: str = ""
    priority: int = Field(default=3, ge=1, le=5)
    status: PlotStatus = PlotStatus.PLANNED

    @field_validator("status", mode="before")
    @classmethod
    def _normalise_status(cls, value):
        # Older corpora stored statuses in lower case.
        return value.strip().upper() if isinstance(value, str) else value


class CharacterFieldChange(ContinuityBaseModel):
    """One audited overwrite of a character text field."""

    field: CharacterField
    new_value: str
    reason: str = ""
    old_value: str | None = None


class AuditEntry(ContinuityBaseModel):
    entity_id: str
    field: str
    old_value: str | None
    new_value: str
    reason: str


class CharacterEvolutionResult(ContinuityBaseModel):
    character_id: str
    updated: bool
    changes: list[CharacterFieldChange] = Field(default_factory=list)
    reasoning: str = ""


class PlotAdvancementResult(ContinuityBaseModel):
    plot_thread_id: str
    updated: bool
    previous_status: PlotStatus
    new_status: PlotStatus


class WorldBuildingMergeResult(ContinuityBaseModel):
    updated: bool
    elements_added: list[str] = Field(default_factory=list)
    world_building: WorldBuildingRecord


class PostChapterEvolutionResult(ContinuityBaseModel):
    story_id: str
    chapter_index: int
    characters: list[CharacterEvolutionResult] = Field(default_factory=list)
    plot_threads: list[PlotAdvancementResult] = Field(default_factory=list)
    world_building: WorldBuildingMergeResult | None = None
    errors: list[str] = Field(default_factory=list)


__all__ = [
    "CharacterField",
    "CharacterMention",
    "PlotDevelopmentRecord",
    "StoryEventRecord",
    "ChapterRecord",
    "CharacterRecord",
    "PlotThreadRecord",
    "CharacterFieldChange",
    "AuditEntry",
    "CharacterEvolutionResult",
    "PlotAdvancementResult",
    "WorldBuildingMergeResult",
    "PostChapterEvolutionResult",
]
