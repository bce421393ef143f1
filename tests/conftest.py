# tests/conftest.py
import os
import sys

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Ensure placeholder secrets do not trigger validator warnings during tests
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("ENABLE_RICH_PROGRESS", "false")

import pytest  # noqa: E402

from data_access import InMemoryStoryRepository, StoryCorpus  # noqa: E402
from models import (  # noqa: E402
    ChapterRecord,
    CharacterMention,
    CharacterRecord,
    PlotDevelopmentRecord,
    PlotStatus,
    PlotThreadRecord,
    StoryEventRecord,
    WorldBuildingElements,
    WorldBuildingRecord,
)


@pytest.fixture
def academy_corpus() -> StoryCorpus:
    """A small Korean story with two characters and two plot threads."""
    return StoryCorpus(
        story_id="story-1",
        characters=[
            CharacterRecord(
                id="char-seoyeon",
                name="서연",
                description="아카데미의 수석 학생",
                personality="냉정한, 지적인, 정직한",
                background="몰락한 귀족 가문 출신",
            ),
            CharacterRecord(
                id="char-minjun",
                name="민준",
                description="서연의 동기",
                personality="따뜻한, 유머러스",
            ),
        ],
        plot_threads=[
            PlotThreadRecord(
                id="plot-mastermind",
                name="흑막 찾기",
                description="왕궁 사건의 흑막을 추적한다",
                priority=4,
                status=PlotStatus.PLANNED,
            ),
            PlotThreadRecord(
                id="plot-exam",
                name="입학 시험",
                description="아카데미 입학 시험",
                priority=2,
                status=PlotStatus.PLANNED,
            ),
        ],
        world_building=WorldBuildingRecord(story_id="story-1", locations=["왕궁"]),
        chapters=[
            ChapterRecord(
                index=1,
                title="시작",
                text=(
                    "\"안녕하세요, 잘 부탁드립니다.\" 서연이 말했다.\n"
                    "민준은 웃었다. \"응, 반가워.\"\n"
                ),
                character_mentions=[
                    CharacterMention(
                        character_id="char-seoyeon",
                        development_notes="냉정한 태도로 첫 인사를 건넸다",
                    )
                ],
                plotline_developments=[
                    PlotDevelopmentRecord(
                        plot_thread_id="plot-mastermind",
                        development_type="introduction",
                        description="왕궁에서 의문의 사건이 벌어진다",
                    ),
                    PlotDevelopmentRecord(
                        plot_thread_id="plot-exam",
                        development_type="introduction",
                    ),
                ],
                events=[
                    StoryEventRecord(
                        id="event-1",
                        description="왕궁의 비밀 문서가 사라졌다",
                        importance=4,
                        plot_thread_ids=["plot-mastermind"],
                    )
                ],
            ),
            ChapterRecord(
                index=2,
                title="시험",
                text="다음 날, 서연은 시험장으로 걸었다.\n민준이 뒤따라 달렸다.\n",
                character_mentions=[
                    CharacterMention(
                        character_id="char-seoyeon",
                        development_notes="시험에서 용감한 결단을 내렸다",
                    )
                ],
                plotline_developments=[
                    PlotDevelopmentRecord(
                        plot_thread_id="plot-exam",
                        development_type="resolution",
                        description="두 사람 모두 합격했다",
                    )
                ],
                world_building_elements=WorldBuildingElements(locations=["아카데미"]),
            ),
        ],
    )


@pytest.fixture
def repository(academy_corpus: StoryCorpus) -> InMemoryStoryRepository:
    return InMemoryStoryRepository([academy_corpus])
