# tests/test_service_layer.py
import pytest

from core.exceptions import PersistenceFailure
from models import CharacterField, CharacterFieldChange, ConsistencyIssue, IssueCategory, Severity
from orchestration.service_layer import ContinuityServiceLayer


class RecordingAnalyzer:
    def __init__(self):
        self.contexts = []

    async def analyze(self, context):
        self.contexts.append(context)
        return [
            ConsistencyIssue(
                category=IssueCategory.TIMELINE,
                severity=Severity.LOW,
                description="시험 날짜가 모호하다",
            )
        ]

    async def propose_character_evolution(self, character, notes):
        return [
            CharacterFieldChange(
                field=CharacterField.PERSONALITY,
                new_value=character.personality + ", 용감한",
                reason="시험",
            )
        ]


@pytest.mark.asyncio
async def test_check_chapter_uses_only_earlier_chapters(repository):
    analyzer = RecordingAnalyzer()
    service = ContinuityServiceLayer(repository, analyzer=analyzer)

    report = await service.check_chapter("story-1", "민준이 웃었다.", chapter_index=2)

    context = analyzer.contexts[0]
    assert context.chapter_index == 2
    statuses = {t.name: t.status for t in context.plot_threads}
    assert statuses["입학 시험"] == "INTRODUCED"
    assert any(i.category == IssueCategory.TIMELINE for i in report.issues)
    assert report.scores is not None


@pytest.mark.asyncio
async def test_check_chapter_without_index_appends_to_story(repository):
    service = ContinuityServiceLayer(repository, analyzer=RecordingAnalyzer())
    report = await service.check_chapter("story-1", "민준이 웃었다.", use_analyzer=False)
    assert all(i.chapter_index == 3 for i in report.issues)


@pytest.mark.asyncio
async def test_review_chapter_checks_then_evolves(repository):
    service = ContinuityServiceLayer(repository, repository, analyzer=RecordingAnalyzer())

    review = await service.review_chapter("story-1", 2, evolve=True)

    assert review.report.has_issues
    assert review.evolution.characters[0].updated
    assert review.evolution.world_building.elements_added == ["location: 아카데미"]
    characters = await repository.get_characters("story-1")
    seoyeon = next(c for c in characters if c.id == "char-seoyeon")
    assert seoyeon.personality.endswith("용감한")


@pytest.mark.asyncio
async def test_review_missing_chapter_raises(repository):
    service = ContinuityServiceLayer(repository, analyzer=RecordingAnalyzer())
    with pytest.raises(PersistenceFailure):
        await service.review_chapter("story-1", 7)


@pytest.mark.asyncio
async def test_evolution_requires_a_sink(repository):
    service = ContinuityServiceLayer(repository, analyzer=RecordingAnalyzer())
    with pytest.raises(PersistenceFailure) as exc_info:
        await service.evolve_after_chapter("story-1", 2)
    assert exc_info.value.operation == "perform_post_chapter_evolution"


@pytest.mark.asyncio
async def test_generate_novel_report(repository):
    service = ContinuityServiceLayer(repository, analyzer=RecordingAnalyzer())
    report = await service.generate_novel_report("story-1")
    assert [c.chapter_index for c in report.chapters] == [1, 2]
