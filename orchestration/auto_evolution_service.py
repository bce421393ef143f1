# orchestration/auto_evolution_service.py
"""Apply post-chapter updates to characters, plot threads and world-building."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog
from config import settings

from agents.qualitative_analyzer_agent import QualitativeAnalyzer
from core.exceptions import AnalyzerUnavailable, PersistenceFailure
from data_access.protocols import CorpusReader, MutationSink
from models import (
    ChapterRecord,
    CharacterEvolutionResult,
    CharacterField,
    CharacterFieldChange,
    CharacterRecord,
    PlotAdvancementResult,
    PostChapterEvolutionResult,
    WorldBuildingElements,
    WorldBuildingMergeResult,
)
from processing.plot_state_machine import PlotThreadStateMachine
from processing.story_memory import StoryMemoryBuilder

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class EntityLockRegistry:
    """One ``asyncio.Lock`` per entity id so writes to an entity never interleave."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, entity_id: str) -> asyncio.Lock:
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[entity_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


async def _shielded_write(write: Awaitable[T]) -> T:
    """Run a sink write to completion even if the caller is cancelled."""
    task = asyncio.ensure_future(write)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        # Finish the batch before the entity lock is released.
        await task
        raise


class AutoEvolutionService:
    """Evolve persisted entities once a chapter has been accepted."""

    def __init__(
        self,
        reader: CorpusReader,
        sink: MutationSink,
        analyzer: QualitativeAnalyzer,
        state_machine: PlotThreadStateMachine | None = None,
        locks: EntityLockRegistry | None = None,
    ) -> None:
        self.reader = reader
        self.sink = sink
        self.analyzer = analyzer
        self.state_machine = state_machine or PlotThreadStateMachine()
        self.locks = locks or EntityLockRegistry()

    async def _read(self, operation: str, story_id: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(
                f"Corpus read failed during {operation}: {e}",
                operation=operation,
                entity_id=story_id,
            ) from e

    async def _write(self, operation: str, entity_id: str, call: Awaitable[T]) -> T:
        try:
            return await _shielded_write(call)
        except PersistenceFailure:
            raise
        except Exception as e:
            logger.error(
                "Sink write failed",
                entity_id=entity_id,
                operation=operation,
                exc_info=True,
            )
            raise PersistenceFailure(
                f"Write failed during {operation}: {e}",
                operation=operation,
                entity_id=entity_id,
            ) from e

    async def _find_character(self, story_id: str, character_id: str) -> CharacterRecord:
        characters = await self._read(
            "evolve_character", story_id, self.reader.get_characters(story_id)
        )
        for character in characters:
            if character.id == character_id:
                return character
        raise PersistenceFailure(
            f"Unknown character '{character_id}' in story '{story_id}'",
            operation="evolve_character",
            entity_id=character_id,
        )

    @staticmethod
    def _development_notes(chapters: list[ChapterRecord], character_id: str) -> list[str]:
        notes = [
            f"Chapter {chapter.index}: {mention.development_notes.strip()}"
            for chapter in chapters
            for mention in chapter.character_mentions
            if mention.character_id == character_id
            and mention.development_notes
            and mention.development_notes.strip()
        ]
        return notes[-settings.EVOLUTION_NOTE_LIMIT :]

    async def evolve_character(
        self, story_id: str, character_id: str
    ) -> CharacterEvolutionResult:
        chapters = await self._read(
            "evolve_character", story_id, self.reader.get_chapters(story_id)
        )
        notes = self._development_notes(chapters, character_id)
        if not notes:
            return CharacterEvolutionResult(
                character_id=character_id,
                updated=False,
                reasoning="No development notes recorded",
            )

        character = await self._find_character(story_id, character_id)
        try:
            proposed = await asyncio.wait_for(
                self.analyzer.propose_character_evolution(character, notes),
                timeout=settings.ANALYZER_TIMEOUT_SECONDS,
            )
            if not isinstance(proposed, list) or not all(
                isinstance(change, CharacterFieldChange) for change in proposed
            ):
                raise AnalyzerUnavailable(
                    f"Malformed evolution proposal of type {type(proposed).__name__}"
                )
        except (AnalyzerUnavailable, asyncio.TimeoutError) as e:
            logger.warning(
                "Character evolution skipped: analyzer unavailable",
                story_id=story_id,
                entity_id=character_id,
                operation="evolve_character",
                error=str(e) or type(e).__name__,
            )
            return CharacterEvolutionResult(
                character_id=character_id,
                updated=False,
                reasoning="Analyzer unavailable",
            )
        except Exception:
            logger.error(
                "Character evolution proposal failed",
                story_id=story_id,
                entity_id=character_id,
                operation="evolve_character",
                exc_info=True,
            )
            return CharacterEvolutionResult(
                character_id=character_id,
                updated=False,
                reasoning="Analyzer unavailable",
            )

        async with self.locks.lock_for(character_id):
            # Old values are read under the lock so the audit trail stays exact.
            current = await self._find_character(story_id, character_id)
            latest: dict[CharacterField, CharacterFieldChange] = {}
            for change in proposed:
                latest[change.field] = change
            changes = [
                change.model_copy(update={"old_value": current.field_value(field)})
                for field, change in latest.items()
                if change.new_value != current.field_value(field)
            ]
            if not changes:
                return CharacterEvolutionResult(
                    character_id=character_id,
                    updated=False,
                    reasoning="Proposal did not change any field",
                )
            await self._write(
                "evolve_character",
                character_id,
                self.sink.update_character_fields(character_id, changes),
            )

        logger.info(
            "Character evolved",
            story_id=story_id,
            entity_id=character_id,
            fields=[c.field.value for c in changes],
        )
        return CharacterEvolutionResult(
            character_id=character_id,
            updated=True,
            changes=changes,
            reasoning="; ".join(c.reason for c in changes if c.reason),
        )

    async def advance_plot_thread(
        self, story_id: str, plot_thread_id: str
    ) -> PlotAdvancementResult:
        async with self.locks.lock_for(plot_thread_id):
            chapters, records = await self._read(
                "advance_plot_thread",
                story_id,
                asyncio.gather(
                    self.reader.get_chapters(story_id),
                    self.reader.get_plot_threads(story_id),
                ),
            )
            record = next((r for r in records if r.id == plot_thread_id), None)
            if record is None:
                raise PersistenceFailure(
                    f"Unknown plot thread '{plot_thread_id}' in story '{story_id}'",
                    operation="advance_plot_thread",
                    entity_id=plot_thread_id,
                )
            builder = StoryMemoryBuilder(self.reader, state_machine=self.state_machine)
            memory = builder.build_from_records(story_id, chapters, [], records)
            new_status = memory.plot_threads[plot_thread_id].status
            if new_status == record.status:
                return PlotAdvancementResult(
                    plot_thread_id=plot_thread_id,
                    updated=False,
                    previous_status=record.status,
                    new_status=new_status,
                )
            await self._write(
                "advance_plot_thread",
                plot_thread_id,
                self.sink.update_plot_thread_status(plot_thread_id, new_status),
            )
        return PlotAdvancementResult(
            plot_thread_id=plot_thread_id,
            updated=True,
            previous_status=record.status,
            new_status=new_status,
        )

    async def merge_world_building(
        self, story_id: str, elements: WorldBuildingElements
    ) -> WorldBuildingMergeResult:
        async with self.locks.lock_for(f"world-building:{story_id}"):
            result = await self._write(
                "merge_world_building",
                story_id,
                self.sink.merge_world_building(story_id, elements),
            )
        if result.updated:
            logger.info(
                "World-building merged",
                story_id=story_id,
                elements_added=result.elements_added,
            )
        return result

    async def perform_post_chapter_evolution(
        self, story_id: str, chapter_index: int
    ) -> PostChapterEvolutionResult:
        """Evolve every entity the chapter touched.

        A persistence failure on one entity is recorded and the remaining
        entities are still processed.
        """
        chapters = await self._read(
            "perform_post_chapter_evolution",
            story_id,
            self.reader.get_chapters(story_id, chapter_index),
        )
        chapter = next((c for c in chapters if c.index == chapter_index), None)
        if chapter is None:
            raise PersistenceFailure(
                f"Chapter {chapter_index} not found in story '{story_id}'",
                operation="perform_post_chapter_evolution",
                entity_id=story_id,
            )

        result = PostChapterEvolutionResult(story_id=story_id, chapter_index=chapter_index)

        character_ids = list(
            dict.fromkeys(
                m.character_id
                for m in chapter.character_mentions
                if m.development_notes and m.development_notes.strip()
            )
        )
        plot_thread_ids = list(
            dict.fromkeys(
                [d.plot_thread_id for d in chapter.plotline_developments]
                + [pid for e in chapter.events for pid in e.plot_thread_ids]
            )
        )

        outcomes = await asyncio.gather(
            *(self.evolve_character(story_id, cid) for cid in character_ids),
            *(self.advance_plot_thread(story_id, pid) for pid in plot_thread_ids),
            return_exceptions=True,
        )
        for entity_id, outcome in zip(character_ids + plot_thread_ids, outcomes):
            if isinstance(outcome, PersistenceFailure):
                logger.error(
                    "Evolution failed for entity",
                    story_id=story_id,
                    entity_id=entity_id,
                    chapter_index=chapter_index,
                    operation=outcome.operation,
                    error=str(outcome),
                )
                result.errors.append(f"{entity_id}: {outcome}")
            elif isinstance(outcome, BaseException):
                raise outcome
            elif isinstance(outcome, CharacterEvolutionResult):
                result.characters.append(outcome)
            else:
                result.plot_threads.append(outcome)

        elements = chapter.world_building_elements
        if elements is not None and not elements.is_empty():
            try:
                result.world_building = await self.merge_world_building(story_id, elements)
            except PersistenceFailure as e:
                logger.error(
                    "World-building merge failed",
                    story_id=story_id,
                    chapter_index=chapter_index,
                    operation=e.operation,
                    error=str(e),
                )
                result.errors.append(f"world-building: {e}")

        logger.info(
            "Post-chapter evolution complete",
            story_id=story_id,
            chapter_index=chapter_index,
            characters_updated=sum(1 for c in result.characters if c.updated),
            plot_threads_updated=sum(1 for p in result.plot_threads if p.updated),
            errors=len(result.errors),
        )
        return result
