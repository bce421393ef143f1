# processing/story_memory.py
"""Fold a story corpus into a point-in-time StoryMemory snapshot."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog
from config import settings

from core.exceptions import EmbeddingDegenerate, ExtractionFailure, PersistenceFailure
from data_access.protocols import CorpusReader
from models import (
    BehaviorCategory,
    ChapterRecord,
    CharacterRecord,
    DevelopmentEntry,
    DevelopmentType,
    PlotCategory,
    PlotStatus,
    PlotThread,
    PlotThreadRecord,
    SemanticEmbedding,
    StoryEvent,
    StoryMemory,
    TimelineEntry,
    UnresolvedElements,
    WorldBuildingRecord,
    WorldRule,
    WorldRuleCategory,
)
from processing.deviation_detector import DeviationDetector
from processing.embedding_builder import EmbeddingBuilder
from processing.feature_extractor import extract_behaviors
from processing.plot_state_machine import (
    PlotThreadStateMachine,
    classify_plot_category,
    parse_development_type,
)
from processing.profile_store import ProfileStore
from utils.text_processing import find_time_references

logger = structlog.get_logger(__name__)

TRAIT_HINTS = {
    "brave": "brave",
    "용감": "brave",
    "kind": "kind",
    "친절": "kind",
    "angry": "hot-tempered",
    "분노": "hot-tempered",
    "cold": "cold",
    "냉정": "cold",
    "loyal": "loyal",
    "충성": "loyal",
}
MYSTERY_KEYWORDS = ("mystery", "secret", "unknown", "hidden", "비밀", "정체", "수수께끼", "미스터리")
PROMISE_KEYWORDS = ("promise", "vow", "swore", "약속", "맹세", "다짐")
CONFLICT_KEYWORDS = ("conflict", "fight", "battle", "rival", "갈등", "대립", "전투", "싸움")


def extract_trait_hints(note: str) -> list[str]:
    lowered = note.lower()
    traits = []
    for keyword, trait in TRAIT_HINTS.items():
        if keyword in lowered and trait not in traits:
            traits.append(trait)
    return traits


def world_rules_from_building(
    world_building: WorldBuildingRecord | None,
) -> list[WorldRule]:
    """Turn free-form world-building text into rules."""
    if world_building is None:
        return []
    rules = []
    if world_building.magic_system.strip():
        rules.append(
            WorldRule(
                id="magic-system",
                category=WorldRuleCategory.MAGIC,
                rule=world_building.magic_system.strip(),
                established_at=1,
            )
        )
    for index, rule in enumerate(world_building.rules):
        if rule.strip():
            rules.append(
                WorldRule(
                    id=f"system-rule-{index}",
                    category=WorldRuleCategory.SOCIAL,
                    rule=rule.strip(),
                    established_at=1,
                )
            )
    return rules


def resolved_thread_ids(chapters: Sequence[ChapterRecord]) -> set[str]:
    return {
        development.plot_thread_id
        for chapter in chapters
        for development in chapter.plotline_developments
        if parse_development_type(development.development_type)
        == DevelopmentType.RESOLUTION
    }


def starting_status(record: PlotThreadRecord, resolved_in_corpus: set[str]) -> PlotStatus:
    """Status a thread holds before its development history is replayed.

    Only statuses the chapters cannot reproduce are kept: ABANDONED,
    CLIMAXING, and RESOLVED with no resolution entry anywhere in the story.
    """
    if record.status in (PlotStatus.ABANDONED, PlotStatus.CLIMAXING):
        return record.status
    if record.status == PlotStatus.RESOLVED and record.id not in resolved_in_corpus:
        return record.status
    return PlotStatus.PLANNED


class StoryMemoryBuilder:
    """Build a StoryMemory from the corpus reader.

    Every call builds its own ProfileStore, so results never leak between
    stories or requests.
    """

    def __init__(
        self,
        reader: CorpusReader,
        embedder: EmbeddingBuilder | None = None,
        state_machine: PlotThreadStateMachine | None = None,
    ) -> None:
        self.reader = reader
        self.embedder = embedder or EmbeddingBuilder()
        self.state_machine = state_machine or PlotThreadStateMachine()

    async def build_story_memory(
        self, story_id: str, up_to_chapter: int | None = None
    ) -> StoryMemory:
        try:
            (
                chapters,
                characters,
                plot_threads,
                world_rules,
                world_building,
            ) = await asyncio.gather(
                self.reader.get_chapters(story_id, up_to_chapter),
                self.reader.get_characters(story_id),
                self.reader.get_plot_threads(story_id),
                self.reader.get_world_rules(story_id),
                self.reader.get_world_building(story_id),
            )
            corpus_chapters = chapters
            if up_to_chapter is not None:
                corpus_chapters = await self.reader.get_chapters(story_id)
        except PersistenceFailure:
            raise
        except Exception as e:
            logger.error(
                "Corpus read failed",
                story_id=story_id,
                operation="build_story_memory",
                exc_info=True,
            )
            raise PersistenceFailure(
                f"Failed to read corpus for story '{story_id}': {e}",
                operation="build_story_memory",
                entity_id=story_id,
            ) from e

        memory = self.build_from_records(
            story_id,
            chapters,
            characters,
            plot_threads,
            world_rules,
            world_building,
            corpus_chapters=corpus_chapters,
        )
        logger.info(
            "Built story memory",
            story_id=story_id,
            chapters=memory.chapter_count,
            characters=len(memory.characters),
            plot_threads=len(memory.plot_threads),
        )
        return memory

    def build_from_records(
        self,
        story_id: str,
        chapters: Sequence[ChapterRecord],
        characters: Sequence[CharacterRecord],
        plot_threads: Sequence[PlotThreadRecord],
        world_rules: Sequence[WorldRule] = (),
        world_building: WorldBuildingRecord | None = None,
        corpus_chapters: Sequence[ChapterRecord] | None = None,
    ) -> StoryMemory:
        """Fold ``chapters`` into a snapshot.

        ``corpus_chapters`` is the whole story when ``chapters`` is a prefix of
        it. Stored statuses that later chapters explain are rebuilt from the
        prefix instead of being carried back in time.
        """
        resolved_in_corpus = resolved_thread_ids(
            chapters if corpus_chapters is None else corpus_chapters
        )
        store = ProfileStore(self.embedder.dimensions)
        for character in characters:
            self._seed_character(store, character)
        for record in plot_threads:
            store.upsert_plot_thread(
                PlotThread(
                    id=record.id,
                    name=record.name,
                    description=record.description,
                    category=classify_plot_category(record.name, record.description),
                    importance=record.priority,
                    status=starting_status(record, resolved_in_corpus),
                )
            )

        detector = DeviationDetector(store, self.embedder)
        building = world_building or WorldBuildingRecord(story_id=story_id)
        events: list[StoryEvent] = []
        timeline: list[TimelineEntry] = []

        for chapter in chapters:
            try:
                self._fold_chapter_text(store, detector, chapter)
            except ExtractionFailure as e:
                logger.warning(
                    "Skipping text contribution of unreadable chapter",
                    story_id=story_id,
                    chapter_index=chapter.index,
                    operation="build_story_memory",
                    error=str(e),
                )
            self._fold_mentions(store, chapter)
            self._fold_developments(store, chapter, story_id)
            chapter_events = self._fold_events(store, chapter)
            events.extend(chapter_events)
            timeline.append(
                TimelineEntry(
                    chapter_index=chapter.index,
                    title=chapter.title,
                    time_references=find_time_references(chapter.text or ""),
                    event_ids=[e.id for e in chapter_events],
                )
            )
            if chapter.world_building_elements is not None:
                building, _added = building.merged_with(chapter.world_building_elements)

        self.state_machine.update_all_statuses(store.plot_threads())

        latest = chapters[-1].index if chapters else 0
        rules = self._collect_world_rules(world_rules, building)
        window = chapters[-settings.ANOMALY_WINDOW_CHAPTERS :] if chapters else []
        return StoryMemory(
            story_id=story_id,
            chapter_count=len(chapters),
            latest_chapter_index=latest,
            characters={p.id: p for p in store.profiles()},
            plot_threads={t.id: t for t in store.plot_threads()},
            world_rules=rules,
            key_events=[
                e for e in events if e.importance >= settings.KEY_EVENT_MIN_IMPORTANCE
            ],
            timeline=timeline,
            unresolved=self._identify_unresolved(store.plot_threads(), events, latest),
            world_building=building,
            chapter_texts={c.index: c.text for c in window if c.text},
        )

    def _seed_character(self, store: ProfileStore, character: CharacterRecord) -> None:
        profile = store.get_or_create(
            character.id,
            character.name,
            description=character.description,
            personality=character.personality,
            background=character.background,
        )
        profile.core_traits = [
            t.strip() for t in character.personality.split(",") if t.strip()
        ]
        if not character.personality.strip():
            return
        try:
            vector = self.embedder.embed_with_signal(
                character.personality, BehaviorCategory.PERSONALITY
            )
        except EmbeddingDegenerate:
            logger.debug(
                "Personality text has no vocabulary overlap",
                character_id=character.id,
            )
            return
        store.add_embedding(
            character.id,
            SemanticEmbedding(
                source_text=character.personality,
                vector=vector.tolist(),
                category=BehaviorCategory.PERSONALITY,
            ),
        )

    def _fold_chapter_text(
        self, store: ProfileStore, detector: DeviationDetector, chapter: ChapterRecord
    ) -> None:
        for profile in store.profiles():
            snippets = extract_behaviors(chapter.text, profile.name, chapter.index)
            if not snippets:
                continue
            if chapter.index not in profile.chapters_present:
                profile.chapters_present.append(chapter.index)

            scores: list[float] = []
            deviations: list[str] = []
            new_embeddings: list[SemanticEmbedding] = []
            for snippet in snippets:
                try:
                    vector = self.embedder.embed_with_signal(snippet.text, snippet.category)
                except EmbeddingDegenerate:
                    continue
                if profile.embedding_count:
                    result = detector.score_vector(profile, vector, snippet.category)
                    scores.append(result.similarity)
                    if result.similarity < detector.threshold:
                        deviations.append(result.explanation)
                new_embeddings.append(
                    SemanticEmbedding(
                        source_text=snippet.text,
                        vector=vector.tolist(),
                        category=snippet.category,
                        chapter_index=chapter.index,
                    )
                )
            if scores:
                store.record_consistency(
                    profile.id, chapter.index, sum(scores) / len(scores), deviations
                )
            store.add_embeddings(profile.id, new_embeddings)

    def _fold_mentions(self, store: ProfileStore, chapter: ChapterRecord) -> None:
        for mention in chapter.character_mentions:
            profile = store.get(mention.character_id)
            if profile is None:
                logger.debug(
                    "Mention of unknown character skipped",
                    character_id=mention.character_id,
                    chapter_index=chapter.index,
                )
                continue
            if chapter.index not in profile.chapters_present:
                profile.chapters_present.append(chapter.index)
            note = (mention.development_notes or "").strip()
            if not note:
                continue
            profile.development_notes.append((chapter.index, note))
            for trait in extract_trait_hints(note):
                if trait not in profile.core_traits:
                    profile.core_traits.append(trait)

    def _fold_developments(
        self, store: ProfileStore, chapter: ChapterRecord, story_id: str
    ) -> None:
        for development in chapter.plotline_developments:
            dev_type = parse_development_type(development.development_type)
            if dev_type is None:
                logger.warning(
                    "Unknown development type skipped",
                    story_id=story_id,
                    plot_thread_id=development.plot_thread_id,
                    chapter_index=chapter.index,
                    development_type=development.development_type,
                )
                continue
            store.append_development(
                development.plot_thread_id,
                DevelopmentEntry(
                    chapter_index=chapter.index,
                    development_type=dev_type,
                    description=development.description,
                ),
            )

    def _fold_events(self, store: ProfileStore, chapter: ChapterRecord) -> list[StoryEvent]:
        events = []
        for record in chapter.events:
            event = StoryEvent(
                id=record.id,
                chapter_index=chapter.index,
                description=record.description,
                importance=record.importance,
                involved_character_ids=list(record.character_ids),
                related_plot_thread_ids=list(record.plot_thread_ids),
            )
            events.append(event)
            for plot_thread_id in event.related_plot_thread_ids:
                thread = store.get_plot_thread(plot_thread_id)
                if thread is None:
                    continue
                thread.last_event_at = chapter.index
                if event.importance >= settings.KEY_EVENT_MIN_IMPORTANCE:
                    thread.key_event_ids.append(event.id)
        return events

    @staticmethod
    def _collect_world_rules(
        explicit: Sequence[WorldRule], building: WorldBuildingRecord
    ) -> list[WorldRule]:
        rules: list[WorldRule] = []
        seen: set[str] = set()
        for rule in [*explicit, *world_rules_from_building(building)]:
            key = rule.rule.strip()
            if key in seen:
                continue
            seen.add(key)
            rules.append(rule)
        return rules

    @staticmethod
    def _identify_unresolved(
        threads: Sequence[PlotThread], events: Sequence[StoryEvent], latest: int
    ) -> UnresolvedElements:
        unresolved = UnresolvedElements()
        closed_ids = set()
        for thread in threads:
            if thread.status.is_terminal:
                closed_ids.add(thread.id)
                continue
            if (
                thread.importance >= settings.UNRESOLVED_MIN_IMPORTANCE
                and thread.chapters_since_development(latest)
                >= settings.UNRESOLVED_STALE_CHAPTERS
            ):
                unresolved.plot_threads.append(thread.name)
            if thread.category == PlotCategory.MYSTERY:
                unresolved.mysteries.append(thread.name)
            elif thread.category == PlotCategory.CONFLICT:
                unresolved.conflicts.append(thread.name)

        for event in events:
            related = set(event.related_plot_thread_ids)
            if related and related <= closed_ids:
                continue
            text = event.description.lower()
            if any(k in text for k in MYSTERY_KEYWORDS):
                unresolved.mysteries.append(event.description)
            if any(k in text for k in PROMISE_KEYWORDS):
                unresolved.promises.append(event.description)
            if any(k in text for k in CONFLICT_KEYWORDS):
                unresolved.conflicts.append(event.description)
        return unresolved
