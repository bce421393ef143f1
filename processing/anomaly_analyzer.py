# processing/anomaly_analyzer.py
"""Distribution outliers across a window of chapters."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog
from config import settings

from core.exceptions import ExtractionFailure
from models import (
    BehaviorCategory,
    ConsistencyIssue,
    IssueCategory,
    IssueSource,
    Severity,
)
from processing.feature_extractor import extract_behaviors, extract_dialogue_lines

logger = structlog.get_logger(__name__)


@dataclass
class CharacterStatistics:
    character_id: str
    name: str
    total_mentions: int = 0
    dialogue_count: int = 0
    action_count: int = 0
    chapters: set[int] = field(default_factory=set)

    @property
    def distinct_chapters(self) -> int:
        return len(self.chapters)


class StatisticalAnomalyAnalyzer:
    """Flag uneven character spotlight and unusual dialogue lengths."""

    def __init__(
        self,
        min_distinct_chapters: int | None = None,
        max_concentrated_mentions: int | None = None,
        dialogue_ratio: float | None = None,
    ) -> None:
        self.min_distinct_chapters = (
            min_distinct_chapters or settings.SPOTLIGHT_MIN_DISTINCT_CHAPTERS
        )
        self.max_concentrated_mentions = (
            max_concentrated_mentions or settings.SPOTLIGHT_MAX_MENTIONS
        )
        self.dialogue_ratio = dialogue_ratio or settings.DIALOGUE_LENGTH_RATIO

    def character_statistics(
        self,
        chapters: Sequence[tuple[int, str]],
        characters: Iterable[tuple[str, str]],
    ) -> dict[str, CharacterStatistics]:
        stats: dict[str, CharacterStatistics] = {}
        for character_id, name in characters:
            entry = CharacterStatistics(character_id=character_id, name=name)
            for chapter_index, text in chapters:
                try:
                    snippets = extract_behaviors(text, name, chapter_index)
                except ExtractionFailure:
                    logger.warning(
                        "Skipping unreadable chapter in anomaly window",
                        chapter_index=chapter_index,
                        character_id=character_id,
                    )
                    continue
                if not snippets:
                    continue
                entry.total_mentions += len(snippets)
                entry.dialogue_count += sum(
                    1 for s in snippets if s.category == BehaviorCategory.DIALOGUE
                )
                entry.action_count += sum(
                    1 for s in snippets if s.category == BehaviorCategory.ACTION
                )
                entry.chapters.add(chapter_index)
            stats[character_id] = entry
        return stats

    def spotlight_anomalies(
        self, stats: dict[str, CharacterStatistics]
    ) -> list[ConsistencyIssue]:
        issues = []
        for entry in stats.values():
            if (
                entry.distinct_chapters < self.min_distinct_chapters
                and entry.total_mentions > self.max_concentrated_mentions
            ):
                issues.append(
                    ConsistencyIssue(
                        category=IssueCategory.CHARACTER,
                        severity=Severity.MEDIUM,
                        description=(
                            f"{entry.name} has {entry.total_mentions} behaviour mentions "
                            f"concentrated in only {entry.distinct_chapters} chapter(s)"
                        ),
                        suggestion=(
                            f"Spread {entry.name}'s appearances more evenly across chapters"
                        ),
                        source=IssueSource.STATISTICAL,
                        entity_id=entry.character_id,
                    )
                )
        return issues

    def dialogue_length_anomalies(
        self, chapters: Sequence[tuple[int, str]]
    ) -> list[ConsistencyIssue]:
        lines = [
            line
            for _index, text in chapters
            for line in extract_dialogue_lines(text)
        ]
        if not lines:
            return []
        mean = sum(len(line) for line in lines) / len(lines)
        too_long = [line for line in lines if len(line) > mean * self.dialogue_ratio]
        too_short = [line for line in lines if len(line) < mean / self.dialogue_ratio]
        issues = []
        if too_long:
            issues.append(
                ConsistencyIssue(
                    category=IssueCategory.CHARACTER,
                    severity=Severity.LOW,
                    description=(
                        f"{len(too_long)} dialogue line(s) run over {self.dialogue_ratio:g}x "
                        f"the average length of {mean:.0f} characters"
                    ),
                    suggestion="Consider breaking up long speeches or moving exposition into narration",
                    source=IssueSource.STATISTICAL,
                )
            )
        if too_short:
            issues.append(
                ConsistencyIssue(
                    category=IssueCategory.CHARACTER,
                    severity=Severity.LOW,
                    description=(
                        f"{len(too_short)} dialogue line(s) fall under 1/{self.dialogue_ratio:g} "
                        f"of the average length of {mean:.0f} characters"
                    ),
                    suggestion="Check that very short lines still carry the speaker's voice",
                    source=IssueSource.STATISTICAL,
                )
            )
        return issues

    def analyze(
        self,
        chapters: Sequence[tuple[int, str]],
        characters: Iterable[tuple[str, str]],
    ) -> list[ConsistencyIssue]:
        stats = self.character_statistics(chapters, characters)
        issues = self.spotlight_anomalies(stats) + self.dialogue_length_anomalies(chapters)
        logger.debug(
            "Statistical anomaly pass complete",
            chapters=len(chapters),
            issues=len(issues),
        )
        return issues
