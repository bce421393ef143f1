# models/continuity_models.py
"""Domain models tracked by the continuity engine."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BehaviorCategory(str, Enum):
    PERSONALITY = "personality"
    DIALOGUE = "dialogue"
    ACTION = "action"
    EMOTION = "emotion"
    DESCRIPTION = "description"


class PlotStatus(str, Enum):
    PLANNED = "PLANNED"
    INTRODUCED = "INTRODUCED"
    DEVELOPING = "DEVELOPING"
    COMPLICATED = "COMPLICATED"
    CLIMAXING = "CLIMAXING"
    RESOLVED = "RESOLVED"
    ABANDONED = "ABANDONED"

    @property
    def is_terminal(self) -> bool:
        return self in (PlotStatus.RESOLVED, PlotStatus.ABANDONED)


class DevelopmentType(str, Enum):
    INTRODUCTION = "introduction"
    ADVANCEMENT = "advancement"
    COMPLICATION = "complication"
    RESOLUTION = "resolution"


class PlotCategory(str, Enum):
    MAIN = "main"
    SUBPLOT = "subplot"
    ROMANCE = "romance"
    MYSTERY = "mystery"
    CONFLICT = "conflict"


class WorldRuleCategory(str, Enum):
    MAGIC = "magic"
    TECHNOLOGY = "technology"
    SOCIAL = "social"
    PHYSICAL = "physical"
    SUPERNATURAL = "supernatural"


class IssueCategory(str, Enum):
    CHARACTER = "character"
    PLOT = "plot"
    WORLDBUILDING = "worldbuilding"
    TIMELINE = "timeline"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


class IssueSource(str, Enum):
    SEMANTIC = "semantic"
    PLOT = "plot"
    STATISTICAL = "statistical"
    ANALYZER = "analyzer"


class ContinuityBaseModel(BaseModel):
    """Base model supporting mapping style access."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=False)

    def get(self, item: str, default: Any = None) -> Any:
        return getattr(self, item, default)


class BehaviorSnippet(ContinuityBaseModel):
    """A piece of chapter text attributed to one character."""

    model_config = ConfigDict(frozen=True)

    text: str
    category: BehaviorCategory


class SemanticEmbedding(ContinuityBaseModel):
    source_text: str
    vector: list[float]
    category: BehaviorCategory
    chapter_index: int | None = None


class ConsistencyRecord(ContinuityBaseModel):
    chapter_index: int
    score: float
    deviations: list[str] = Field(default_factory=list)


class SemanticSimilarity(ContinuityBaseModel):
    similarity: float = Field(ge=-1.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    explanation: str


class Deviation(ContinuityBaseModel):
    """A detected mismatch between a new snippet and a character profile."""

    character_id: str
    character_name: str
    category: BehaviorCategory
    snippet: str
    similarity: float
    confidence: float
    severity: Severity
    description: str
    suggestion: str
    explanation: str
    chapter_index: int | None = None


class CharacterProfile(ContinuityBaseModel):
    """Accumulated semantic profile of one character."""

    id: str
    name: str
    description: str = ""
    personality: str = ""
    background: str = ""
    personality_embeddings: list[SemanticEmbedding] = Field(default_factory=list)
    dialogue_embeddings: list[SemanticEmbedding] = Field(default_factory=list)
    action_embeddings: list[SemanticEmbedding] = Field(default_factory=list)
    emotion_embeddings: list[SemanticEmbedding] = Field(default_factory=list)
    description_embeddings: list[SemanticEmbedding] = Field(default_factory=list)
    baseline_vector: list[float] = Field(default_factory=list)
    consistency_history: list[ConsistencyRecord] = Field(default_factory=list)
    core_traits: list[str] = Field(default_factory=list)
    development_notes: list[tuple[int, str]] = Field(default_factory=list)
    chapters_present: list[int] = Field(default_factory=list)

    def embeddings_for(self, category: BehaviorCategory) -> list[SemanticEmbedding]:
        return getattr(self, f"{BehaviorCategory(category).value}_embeddings")

    def all_embeddings(self) -> list[SemanticEmbedding]:
        return [
            emb
            for category in BehaviorCategory
            for emb in self.embeddings_for(category)
        ]

    @property
    def embedding_count(self) -> int:
        return sum(len(self.embeddings_for(c)) for c in BehaviorCategory)

    def average_consistency(self) -> float | None:
        if not self.consistency_history:
            return None
        return sum(r.score for r in self.consistency_history) / len(
            self.consistency_history
        )


class DevelopmentEntry(ContinuityBaseModel):
    chapter_index: int
    development_type: DevelopmentType
    description: str = ""


class PlotThread(ContinuityBaseModel):
    """A tracked narrative arc with a lifecycle status."""

    id: str
    name: str
    description: str = ""
    category: PlotCategory = PlotCategory.SUBPLOT
    importance: int = Field(default=3, ge=1, le=5)
    status: PlotStatus = PlotStatus.PLANNED
    development_history: list[DevelopmentEntry] = Field(default_factory=list)
    introduced_at: int | None = None
    last_developed_at: int | None = None
    key_event_ids: list[str] = Field(default_factory=list)
    last_event_at: int | None = None

    def chapters_since_development(self, current_chapter: int) -> int:
        reference = self.last_developed_at
        if reference is None:
            reference = self.introduced_at if self.introduced_at is not None else 0
        return max(0, current_chapter - reference)


class WorldRule(ContinuityBaseModel):
    id: str
    category: WorldRuleCategory
    rule: str
    established_at: int | None = None
    applications: list[str] = Field(default_factory=list)
    limitations: list[str] = Field(default_factory=list)


class StoryEvent(ContinuityBaseModel):
    id: str
    chapter_index: int
    description: str
    importance: int = Field(default=3, ge=1, le=5)
    involved_character_ids: list[str] = Field(default_factory=list)
    related_plot_thread_ids: list[str] = Field(default_factory=list)


class TimelineEntry(ContinuityBaseModel):
    chapter_index: int
    title: str = ""
    time_references: list[str] = Field(default_factory=list)
    event_ids: list[str] = Field(default_factory=list)


class UnresolvedElements(ContinuityBaseModel):
    plot_threads: list[str] = Field(default_factory=list)
    mysteries: list[str] = Field(default_factory=list)
    promises: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.plot_threads or self.mysteries or self.promises or self.conflicts)


class ConsistencyIssue(ContinuityBaseModel):
    """A single problem found while checking a chapter."""

    model_config = ConfigDict(frozen=True)

    category: IssueCategory
    severity: Severity
    description: str
    suggestion: str | None = None
    source: IssueSource = IssueSource.ANALYZER
    entity_id: str | None = None
    chapter_index: int | None = None


class CategoryScores(ContinuityBaseModel):
    character: int = 100
    plot: int = 100
    worldbuilding: int = 100
    timeline: int = 100
    overall: int = 100


class ConsistencyReport(ContinuityBaseModel):
    """Report returned to callers of a chapter check."""

    has_issues: bool
    issues: list[ConsistencyIssue] = Field(default_factory=list)
    scores: CategoryScores | None = None
    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ChapterCheckSummary(ContinuityBaseModel):
    chapter_index: int
    issue_count: int
    high_severity_count: int
    scores: CategoryScores


class NovelConsistencyReport(ContinuityBaseModel):
    """Novel-wide report built by checking each chapter against its predecessors."""

    story_id: str
    chapters: list[ChapterCheckSummary] = Field(default_factory=list)
    issues: list[ConsistencyIssue] = Field(default_factory=list)
    scores: CategoryScores = Field(default_factory=CategoryScores)
    recommendations: list[str] = Field(default_factory=list)


def _append_text(existing: str, addition: str) -> str:
    addition = addition.strip()
    if not addition or addition in existing:
        return existing
    return f"{existing}\n\n{addition}" if existing else addition


class WorldBuildingElements(ContinuityBaseModel):
    """Free-form world-building fields introduced by a chapter."""

    locations: list[str] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    cultures: str = ""
    magic_system: str = ""

    def is_empty(self) -> bool:
        return not (
            self.locations or self.rules or self.cultures.strip() or self.magic_system.strip()
        )


class WorldBuildingRecord(WorldBuildingElements):
    """Accumulated world-building for a story."""

    story_id: str = ""

    def merged_with(
        self, elements: WorldBuildingElements
    ) -> tuple[WorldBuildingRecord, list[str]]:
        """Return the additive merge of ``elements`` and a list of what was added.

        Locations and rules are appended when not already present; cultures and
        magic-system text is appended with a blank-line separator unless the
        existing text already contains it.
        """
        added: list[str] = []
        locations = list(self.locations)
        for location in elements.locations:
            location = location.strip()
            if location and location not in locations:
                locations.append(location)
                added.append(f"location: {location}")
        rules = list(self.rules)
        for rule in elements.rules:
            rule = rule.strip()
            if rule and rule not in rules:
                rules.append(rule)
                added.append(f"rule: {rule}")
        cultures = _append_text(self.cultures, elements.cultures)
        if cultures != self.cultures:
            added.append("cultures")
        magic_system = _append_text(self.magic_system, elements.magic_system)
        if magic_system != self.magic_system:
            added.append("magic_system")
        merged = self.model_copy(
            update={
                "locations": locations,
                "rules": rules,
                "cultures": cultures,
                "magic_system": magic_system,
            }
        )
        return merged, added


class StoryMemory(ContinuityBaseModel):
    """Point-in-time view of all tracked narrative state."""

    story_id: str
    chapter_count: int = 0
    latest_chapter_index: int = 0
    characters: dict[str, CharacterProfile] = Field(default_factory=dict)
    plot_threads: dict[str, PlotThread] = Field(default_factory=dict)
    world_rules: list[WorldRule] = Field(default_factory=list)
    key_events: list[StoryEvent] = Field(default_factory=list)
    timeline: list[TimelineEntry] = Field(default_factory=list)
    unresolved: UnresolvedElements = Field(default_factory=UnresolvedElements)
    world_building: WorldBuildingRecord = Field(default_factory=WorldBuildingRecord)
    chapter_texts: dict[int, str] = Field(default_factory=dict)

    def next_chapter_index(self) -> int:
        return self.latest_chapter_index + 1 if self.chapter_count else 1
