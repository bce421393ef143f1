# orchestration/service_layer.py
"""Service layer that ties chapter checks and post-chapter evolution together."""

from __future__ import annotations

from dataclasses import dataclass

from agents.qualitative_analyzer_agent import (
    LLMQualitativeAnalyzer,
    QualitativeAnalyzer,
)
from core.exceptions import PersistenceFailure
from data_access.protocols import CorpusReader, MutationSink
from models import (
    ConsistencyReport,
    NovelConsistencyReport,
    PostChapterEvolutionResult,
    StoryMemory,
)
from orchestration.auto_evolution_service import AutoEvolutionService
from orchestration.consistency_orchestrator import ConsistencyOrchestrator
from processing.story_memory import StoryMemoryBuilder


@dataclass
class ChapterReview:
    """Check result for a stored chapter and the evolution applied afterwards."""

    report: ConsistencyReport
    evolution: PostChapterEvolutionResult | None = None


class ContinuityServiceLayer:
    """Coordinate story memory, consistency checks and auto-evolution."""

    def __init__(
        self,
        reader: CorpusReader,
        sink: MutationSink | None = None,
        analyzer: QualitativeAnalyzer | None = None,
        orchestrator: ConsistencyOrchestrator | None = None,
    ) -> None:
        self.reader = reader
        self.analyzer = analyzer or LLMQualitativeAnalyzer()
        self.orchestrator = orchestrator or ConsistencyOrchestrator(self.analyzer)
        self.memory_builder = StoryMemoryBuilder(reader, self.orchestrator.embedder)
        self.evolution_service = (
            AutoEvolutionService(reader, sink, self.analyzer) if sink is not None else None
        )

    async def build_story_memory(
        self, story_id: str, up_to_chapter: int | None = None
    ) -> StoryMemory:
        """Fold the persisted corpus into a fresh snapshot."""
        return await self.memory_builder.build_story_memory(story_id, up_to_chapter)

    async def check_chapter(
        self,
        story_id: str,
        chapter_text: str,
        chapter_index: int | None = None,
        use_analyzer: bool = True,
    ) -> ConsistencyReport:
        """Check a candidate chapter against everything stored before it."""
        up_to = chapter_index - 1 if chapter_index is not None else None
        memory = await self.build_story_memory(story_id, up_to)
        return await self.orchestrator.check_chapter_report(
            chapter_text, memory, chapter_index, use_analyzer
        )

    async def generate_novel_report(
        self, story_id: str, use_analyzer: bool = False
    ) -> NovelConsistencyReport:
        return await self.orchestrator.generate_novel_report(
            self.reader, story_id, use_analyzer
        )

    async def evolve_after_chapter(
        self, story_id: str, chapter_index: int
    ) -> PostChapterEvolutionResult:
        if self.evolution_service is None:
            raise PersistenceFailure(
                "No mutation sink configured",
                operation="perform_post_chapter_evolution",
                entity_id=story_id,
            )
        return await self.evolution_service.perform_post_chapter_evolution(
            story_id, chapter_index
        )

    async def review_chapter(
        self,
        story_id: str,
        chapter_index: int,
        evolve: bool = False,
        use_analyzer: bool = True,
    ) -> ChapterReview:
        """Check a stored chapter and optionally evolve the entities it touched.

        Evolution only runs after the read-only check has finished.
        """
        chapters = await self.reader.get_chapters(story_id, chapter_index)
        chapter = next((c for c in chapters if c.index == chapter_index), None)
        if chapter is None:
            raise PersistenceFailure(
                f"Chapter {chapter_index} not found in story '{story_id}'",
                operation="review_chapter",
                entity_id=story_id,
            )
        report = await self.check_chapter(
            story_id, chapter.text, chapter_index, use_analyzer
        )
        evolution = (
            await self.evolve_after_chapter(story_id, chapter_index) if evolve else None
        )
        return ChapterReview(report=report, evolution=evolution)
