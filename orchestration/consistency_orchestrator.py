# orchestration/consistency_orchestrator.py
"""Run every consistency analysis for one candidate chapter and merge the results."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog
from config import settings

from agents.qualitative_analyzer_agent import AnalysisContext, QualitativeAnalyzer
from core.exceptions import AnalyzerUnavailable, ExtractionFailure, PersistenceFailure
from data_access.protocols import CorpusReader
from models import (
    CategoryScores,
    ChapterCheckSummary,
    ConsistencyIssue,
    ConsistencyReport,
    Deviation,
    IssueCategory,
    IssueSource,
    NovelConsistencyReport,
    PlotStatus,
    PlotThread,
    Severity,
    StoryMemory,
)
from processing.anomaly_analyzer import StatisticalAnomalyAnalyzer
from processing.deviation_detector import DeviationDetector, deviation_to_issue
from processing.embedding_builder import EmbeddingBuilder
from processing.feature_extractor import is_character_present
from processing.plot_state_machine import suggest_plot_balance
from processing.profile_store import ProfileStore
from processing.story_memory import StoryMemoryBuilder

logger = structlog.get_logger(__name__)

REOPEN_MARKERS = (
    "new development",
    "reopened",
    "resurfaced",
    "새로운 전개",
    "다시 시작",
    "재개",
    "다시 떠오",
)

_CATEGORY_ORDER = {category: i for i, category in enumerate(IssueCategory)}
_SOURCE_ORDER = {source: i for i, source in enumerate(IssueSource)}


def _thread_mentioned(thread: PlotThread, lowered_text: str) -> bool:
    """Name or any recorded development description appears in the text."""
    phrases = [thread.name] + [e.description for e in thread.development_history]
    return any(p.strip() and p.strip().lower() in lowered_text for p in phrases)


def _issue_sort_key(issue: ConsistencyIssue) -> tuple:
    return (
        issue.severity.rank,
        _CATEGORY_ORDER[issue.category],
        _SOURCE_ORDER[issue.source],
        issue.entity_id or "",
        issue.description,
    )


def order_issues(issues: list[ConsistencyIssue]) -> list[ConsistencyIssue]:
    """Drop exact duplicates and sort by severity, category, source, entity."""
    return sorted(dict.fromkeys(issues), key=_issue_sort_key)


def _score(issue_count: int, checks: int) -> int:
    if checks <= 0:
        return 100
    return round(100 * max(0.0, (checks - issue_count) / checks))


def compute_scores(issues: list[ConsistencyIssue], chapters: int) -> CategoryScores:
    """Category and overall scores; ``chapters`` counts the candidate chapter too."""
    per_category = chapters * settings.CATEGORY_CHECKS_PER_CHAPTER
    counts = {category: 0 for category in IssueCategory}
    for issue in issues:
        counts[issue.category] += 1
    return CategoryScores(
        character=_score(counts[IssueCategory.CHARACTER], per_category),
        plot=_score(counts[IssueCategory.PLOT], per_category),
        worldbuilding=_score(counts[IssueCategory.WORLDBUILDING], per_category),
        timeline=_score(counts[IssueCategory.TIMELINE], per_category),
        overall=_score(len(issues), chapters * settings.CHECKS_PER_CHAPTER),
    )


def rank_recommendations(
    issues: list[ConsistencyIssue], limit: int | None = None
) -> list[str]:
    """Unique suggestions, high severity first, then by category."""
    limit = limit if limit is not None else settings.MAX_RECOMMENDATIONS
    ranked = sorted(
        (i for i in issues if i.suggestion),
        key=lambda i: (i.severity.rank, _CATEGORY_ORDER[i.category]),
    )
    recommendations: list[str] = []
    for issue in ranked:
        if issue.suggestion not in recommendations:
            recommendations.append(issue.suggestion)
        if len(recommendations) >= limit:
            break
    return recommendations


@dataclass
class ChapterCheckOutcome:
    """Raw output of one chapter check before it is turned into a report."""

    chapter_index: int
    issues: list[ConsistencyIssue]
    deviations: list[Deviation] = field(default_factory=list)
    analyzer_status: str = "skipped"
    insights: list[str] = field(default_factory=list)


class ConsistencyOrchestrator:
    """Coordinate deviation, plot, statistical and qualitative checks."""

    def __init__(
        self,
        analyzer: QualitativeAnalyzer | None = None,
        embedder: EmbeddingBuilder | None = None,
        anomaly_analyzer: StatisticalAnomalyAnalyzer | None = None,
        analyzer_timeout: float | None = None,
    ) -> None:
        self.analyzer = analyzer
        self.embedder = embedder or EmbeddingBuilder()
        self.anomaly_analyzer = anomaly_analyzer or StatisticalAnomalyAnalyzer()
        self.analyzer_timeout = (
            analyzer_timeout
            if analyzer_timeout is not None
            else settings.ANALYZER_TIMEOUT_SECONDS
        )

    # Individual checks --------------------------------------------------------

    async def _deviation_issues(
        self, chapter_text: str, memory: StoryMemory, chapter_index: int
    ) -> tuple[list[ConsistencyIssue], list[Deviation], list[str]]:
        store = ProfileStore.from_profiles(
            memory.characters.values(), dimensions=self.embedder.dimensions
        )
        detector = DeviationDetector(store, self.embedder)
        deviations: list[Deviation] = []
        insights: list[str] = []
        for profile in sorted(store.profiles(), key=lambda p: p.id):
            if not is_character_present(chapter_text, profile.name):
                continue
            try:
                found = detector.detect(profile.id, chapter_text, chapter_index)
            except ExtractionFailure as e:
                logger.warning(
                    "Deviation check skipped for unreadable chapter",
                    story_id=memory.story_id,
                    entity_id=profile.id,
                    chapter_index=chapter_index,
                    operation="check_chapter",
                    error=str(e),
                )
                continue
            deviations.extend(found)
            insights.extend(store.character_insights(profile.id))
        issues = [deviation_to_issue(d) for d in deviations]
        return issues, deviations, insights

    async def _plot_issues(
        self, chapter_text: str, memory: StoryMemory, chapter_index: int
    ) -> list[ConsistencyIssue]:
        issues: list[ConsistencyIssue] = []
        lowered = chapter_text.lower()
        reopened = any(marker in lowered for marker in REOPEN_MARKERS)
        for thread in sorted(memory.plot_threads.values(), key=lambda t: t.id):
            if thread.status == PlotStatus.RESOLVED:
                if reopened and _thread_mentioned(thread, lowered):
                    issues.append(
                        ConsistencyIssue(
                            category=IssueCategory.PLOT,
                            severity=Severity.HIGH,
                            description=(
                                f"Resolved plot thread '{thread.name}' shows new development"
                            ),
                            suggestion=(
                                f"Confirm that reopening '{thread.name}' is intentional, "
                                "or treat it as a new plot thread"
                            ),
                            source=IssueSource.PLOT,
                            entity_id=thread.id,
                            chapter_index=chapter_index,
                        )
                    )
                continue
            if thread.status.is_terminal:
                continue
            gap = thread.chapters_since_development(chapter_index)
            if (
                thread.importance >= settings.NEGLECT_MIN_IMPORTANCE
                and gap > settings.NEGLECT_CHAPTER_GAP
            ):
                issues.append(
                    ConsistencyIssue(
                        category=IssueCategory.PLOT,
                        severity=Severity.MEDIUM,
                        description=(
                            f"Important plot thread '{thread.name}' has not been "
                            f"developed for {gap} chapters"
                        ),
                        suggestion=f"Advance or address '{thread.name}' soon",
                        source=IssueSource.PLOT,
                        entity_id=thread.id,
                        chapter_index=chapter_index,
                    )
                )
        return issues

    async def _anomaly_issues(
        self, chapter_text: str, memory: StoryMemory, chapter_index: int
    ) -> list[ConsistencyIssue]:
        window = dict(memory.chapter_texts)
        if chapter_text.strip():
            window[chapter_index] = chapter_text
        chapters = sorted(window.items())[-settings.ANOMALY_WINDOW_CHAPTERS :]
        characters = [
            (p.id, p.name)
            for p in sorted(memory.characters.values(), key=lambda p: p.id)
        ]
        return self.anomaly_analyzer.analyze(chapters, characters)

    async def _analyzer_issues(
        self, chapter_text: str, memory: StoryMemory, chapter_index: int
    ) -> tuple[list[ConsistencyIssue], str]:
        if self.analyzer is None:
            return [], "skipped"
        context = AnalysisContext.from_story_memory(memory, chapter_text, chapter_index)
        try:
            issues = await asyncio.wait_for(
                self.analyzer.analyze(context), timeout=self.analyzer_timeout
            )
            if not isinstance(issues, list) or not all(
                isinstance(issue, ConsistencyIssue) for issue in issues
            ):
                raise AnalyzerUnavailable(
                    f"Malformed analyzer result of type {type(issues).__name__}"
                )
        except asyncio.TimeoutError:
            logger.warning(
                "Qualitative analyzer timed out",
                story_id=memory.story_id,
                chapter_index=chapter_index,
                operation="check_chapter",
                timeout=self.analyzer_timeout,
            )
            return [], "unavailable"
        except AnalyzerUnavailable as e:
            logger.warning(
                "Qualitative analyzer unavailable",
                story_id=memory.story_id,
                chapter_index=chapter_index,
                operation="check_chapter",
                error=str(e),
            )
            return [], "unavailable"
        except Exception:
            logger.error(
                "Qualitative analyzer failed",
                story_id=memory.story_id,
                chapter_index=chapter_index,
                operation="check_chapter",
                exc_info=True,
            )
            return [], "unavailable"
        return [
            issue.model_copy(update={"chapter_index": chapter_index})
            if issue.chapter_index is None
            else issue
            for issue in issues
        ], "available"

    # Public operations ----------------------------------------------------------

    async def run_checks(
        self,
        chapter_text: str,
        story_memory: StoryMemory,
        chapter_index: int | None = None,
        use_analyzer: bool = True,
    ) -> ChapterCheckOutcome:
        chapter_index = (
            chapter_index if chapter_index is not None else story_memory.next_chapter_index()
        )
        text = chapter_text if isinstance(chapter_text, str) else ""
        if not text.strip():
            logger.warning(
                "Checking empty chapter text",
                story_id=story_memory.story_id,
                chapter_index=chapter_index,
                operation="check_chapter",
            )

        analyzer_task = (
            self._analyzer_issues(text, story_memory, chapter_index)
            if use_analyzer
            else _skipped_analyzer()
        )
        (
            (deviation_issues, deviations, profile_insights),
            plot_issues,
            anomaly_issues,
            (analyzer_issues, analyzer_status),
        ) = await asyncio.gather(
            self._deviation_issues(text, story_memory, chapter_index),
            self._plot_issues(text, story_memory, chapter_index),
            self._anomaly_issues(text, story_memory, chapter_index),
            analyzer_task,
        )

        issues = order_issues(
            deviation_issues + plot_issues + anomaly_issues + analyzer_issues
        )
        insights = [d.explanation for d in deviations]
        insights.extend(dict.fromkeys(profile_insights))
        if analyzer_status == "available":
            insights.append("Qualitative analysis completed")
        elif analyzer_status == "unavailable":
            insights.append(
                "Qualitative analyzer unavailable; report contains rule-based issues only"
            )
        for attention in suggest_plot_balance(
            story_memory.plot_threads.values(), chapter_index
        ):
            if attention.needs_attention:
                insights.append(
                    f"Plot thread '{attention.name}' needs attention "
                    f"(urgency {attention.urgency:.0f})"
                )

        logger.info(
            "Chapter check complete",
            story_id=story_memory.story_id,
            chapter_index=chapter_index,
            issues=len(issues),
            analyzer=analyzer_status,
        )
        return ChapterCheckOutcome(
            chapter_index=chapter_index,
            issues=issues,
            deviations=deviations,
            analyzer_status=analyzer_status,
            insights=insights,
        )

    async def check_chapter(
        self,
        chapter_text: str,
        story_memory: StoryMemory,
        chapter_index: int | None = None,
        use_analyzer: bool = True,
    ) -> list[ConsistencyIssue]:
        outcome = await self.run_checks(
            chapter_text, story_memory, chapter_index, use_analyzer
        )
        return outcome.issues

    async def check_chapter_report(
        self,
        chapter_text: str,
        story_memory: StoryMemory,
        chapter_index: int | None = None,
        use_analyzer: bool = True,
    ) -> ConsistencyReport:
        outcome = await self.run_checks(
            chapter_text, story_memory, chapter_index, use_analyzer
        )
        return ConsistencyReport(
            has_issues=bool(outcome.issues),
            issues=outcome.issues,
            scores=compute_scores(outcome.issues, story_memory.chapter_count + 1),
            insights=outcome.insights,
            recommendations=rank_recommendations(outcome.issues),
        )

    async def generate_novel_report(
        self,
        reader: CorpusReader,
        story_id: str,
        use_analyzer: bool = False,
    ) -> NovelConsistencyReport:
        """Check every chapter against the memory built from the chapters before it."""
        try:
            chapters, characters, plot_threads, world_rules, world_building = (
                await asyncio.gather(
                    reader.get_chapters(story_id),
                    reader.get_characters(story_id),
                    reader.get_plot_threads(story_id),
                    reader.get_world_rules(story_id),
                    reader.get_world_building(story_id),
                )
            )
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(
                f"Failed to read corpus for story '{story_id}': {e}",
                operation="generate_novel_report",
                entity_id=story_id,
            ) from e

        builder = StoryMemoryBuilder(reader, self.embedder)
        summaries: list[ChapterCheckSummary] = []
        all_issues: list[ConsistencyIssue] = []
        for position, chapter in enumerate(chapters):
            memory = builder.build_from_records(
                story_id,
                chapters[:position],
                characters,
                plot_threads,
                world_rules,
                world_building,
                corpus_chapters=chapters,
            )
            outcome = await self.run_checks(
                chapter.text, memory, chapter.index, use_analyzer
            )
            summaries.append(
                ChapterCheckSummary(
                    chapter_index=chapter.index,
                    issue_count=len(outcome.issues),
                    high_severity_count=sum(
                        1 for i in outcome.issues if i.severity == Severity.HIGH
                    ),
                    scores=compute_scores(outcome.issues, memory.chapter_count + 1),
                )
            )
            all_issues.extend(outcome.issues)

        logger.info(
            "Novel consistency report complete",
            story_id=story_id,
            chapters=len(chapters),
            issues=len(all_issues),
        )
        return NovelConsistencyReport(
            story_id=story_id,
            chapters=summaries,
            issues=all_issues,
            scores=compute_scores(all_issues, max(len(chapters), 1)),
            recommendations=rank_recommendations(all_issues),
        )


async def _skipped_analyzer() -> tuple[list[ConsistencyIssue], str]:
    return [], "skipped"
