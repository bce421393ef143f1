"""Central package for continuity engine data models."""

from .continuity_models import (
    BehaviorCategory,
    BehaviorSnippet,
    CategoryScores,
    ChapterCheckSummary,
    CharacterProfile,
    ConsistencyIssue,
    ConsistencyRecord,
    ConsistencyReport,
    DevelopmentEntry,
    DevelopmentType,
    Deviation,
    IssueCategory,
    IssueSource,
    NovelConsistencyReport,
    PlotCategory,
    PlotStatus,
    PlotThread,
    SemanticEmbedding,
    SemanticSimilarity,
    Severity,
    StoryEvent,
    StoryMemory,
    TimelineEntry,
    UnresolvedElements,
    WorldBuildingElements,
    WorldBuildingRecord,
    WorldRule,
    WorldRuleCategory,
)
from .corpus_models import (
    AuditEntry,
    ChapterRecord,
    CharacterEvolutionResult,
    CharacterField,
    CharacterFieldChange,
    CharacterMention,
    CharacterRecord,
    PlotAdvancementResult,
    PlotDevelopmentRecord,
    PlotThreadRecord,
    PostChapterEvolutionResult,
    StoryEventRecord,
    WorldBuildingMergeResult,
)

__all__ = [
    "BehaviorCategory",
    "BehaviorSnippet",
    "CategoryScores",
    "ChapterCheckSummary",
    "CharacterProfile",
    "ConsistencyIssue",
    "ConsistencyRecord",
    "ConsistencyReport",
    "DevelopmentEntry",
    "DevelopmentType",
    "Deviation",
    "IssueCategory",
    "IssueSource",
    "NovelConsistencyReport",
    "PlotCategory",
    "PlotStatus",
    "PlotThread",
    "SemanticEmbedding",
    "SemanticSimilarity",
    "Severity",
    "StoryEvent",
    "StoryMemory",
    "TimelineEntry",
    "UnresolvedElements",
    "WorldBuildingElements",
    "WorldBuildingRecord",
    "WorldRule",
    "WorldRuleCategory",
    "AuditEntry",
    "ChapterRecord",
    "CharacterEvolutionResult",
    "CharacterField",
    "CharacterFieldChange",
    "CharacterMention",
    "CharacterRecord",
    "PlotAdvancementResult",
    "PlotDevelopmentRecord",
    "PlotThreadRecord",
    "PostChapterEvolutionResult",
    "StoryEventRecord",
    "WorldBuildingMergeResult",
]
