# qualitative_analyzer_agent.py
from typing import Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, Field

from config import settings
from core.exceptions import AnalyzerUnavailable
from core.llm_interface import llm_service, truncate_text_by_tokens
from models import (
    CharacterFieldChange,
    CharacterRecord,
    ConsistencyIssue,
    StoryMemory,
)
from processing.problem_parser import parse_evolution_changes, parse_issue_list
from prompt_renderer import render_prompt

logger = structlog.get_logger(__name__)


class CharacterSummary(BaseModel):
    name: str
    personality: str = ""
    description: str = ""


class PlotThreadSummary(BaseModel):
    name: str
    status: str
    description: str = ""


class AnalysisContext(BaseModel):
    """Everything the qualitative analyzer sees for one chapter check."""

    story_id: str
    chapter_index: int
    chapter_text: str
    characters: list[CharacterSummary] = Field(default_factory=list)
    world_rules: list[str] = Field(default_factory=list)
    plot_threads: list[PlotThreadSummary] = Field(default_factory=list)
    recent_events: list[str] = Field(default_factory=list)

    @classmethod
    def from_story_memory(
        cls, memory: StoryMemory, chapter_text: str, chapter_index: int
    ) -> "AnalysisContext":
        recent = sorted(memory.key_events, key=lambda e: (e.chapter_index, e.id))
        recent = recent[-settings.ANALYZER_CONTEXT_EVENTS :]
        return cls(
            story_id=memory.story_id,
            chapter_index=chapter_index,
            chapter_text=chapter_text,
            characters=[
                CharacterSummary(
                    name=p.name, personality=p.personality, description=p.description
                )
                for p in sorted(memory.characters.values(), key=lambda p: p.id)
            ],
            world_rules=[r.rule for r in memory.world_rules],
            plot_threads=[
                PlotThreadSummary(
                    name=t.name, status=t.status.value, description=t.description
                )
                for t in sorted(memory.plot_threads.values(), key=lambda t: t.id)
            ],
            recent_events=[f"Ch {e.chapter_index}: {e.description}" for e in recent],
        )


@runtime_checkable
class QualitativeAnalyzer(Protocol):
    """Opaque judgement collaborator used for qualitative checks and evolution."""

    async def analyze(self, context: AnalysisContext) -> list[ConsistencyIssue]: ...

    async def propose_character_evolution(
        self, character: CharacterRecord, notes: list[str]
    ) -> list[CharacterFieldChange]: ...


class LLMQualitativeAnalyzer:
    """Qualitative analyzer backed by the chat completion service."""

    def __init__(
        self,
        model_name: str = settings.ANALYZER_MODEL,
        evolution_model: str | None = None,
    ):
        self.model_name = model_name
        self.evolution_model = evolution_model or settings.EVOLUTION_MODEL or model_name
        logger.info(f"LLMQualitativeAnalyzer initialized with model: {self.model_name}")

    async def analyze(self, context: AnalysisContext) -> list[ConsistencyIssue]:
        if not context.chapter_text.strip():
            logger.warning(
                "Qualitative check skipped: empty chapter text.",
                story_id=context.story_id,
                chapter_index=context.chapter_index,
            )
            return []

        chapter_text = truncate_text_by_tokens(
            context.chapter_text, self.model_name, settings.ANALYZER_MAX_CHAPTER_TOKENS
        )
        prompt = render_prompt(
            "qualitative_analyzer_agent/consistency_check.j2",
            {
                "no_think": settings.ENABLE_LLM_NO_THINK_DIRECTIVE,
                "story_id": context.story_id,
                "chapter_index": context.chapter_index,
                "characters": context.characters,
                "world_rules": context.world_rules,
                "plot_threads": context.plot_threads,
                "recent_events": context.recent_events,
                "chapter_text": chapter_text,
            },
        )
        logger.info(
            f"Calling LLM ({self.model_name}) for qualitative check of chapter {context.chapter_index}..."
        )
        response_text, _usage = await llm_service.async_call_llm(
            model_name=self.model_name,
            prompt=prompt,
            temperature=settings.TEMPERATURE_CONSISTENCY_CHECK,
            allow_fallback=True,
            auto_clean_response=True,
        )
        if not response_text:
            raise AnalyzerUnavailable(
                f"No response from {self.model_name} for chapter {context.chapter_index}"
            )
        issues = parse_issue_list(response_text, chapter_index=context.chapter_index)
        logger.info(
            f"Qualitative check for Ch {context.chapter_index} found {len(issues)} issues."
        )
        return issues

    async def propose_character_evolution(
        self, character: CharacterRecord, notes: list[str]
    ) -> list[CharacterFieldChange]:
        if not notes:
            return []
        prompt = render_prompt(
            "qualitative_analyzer_agent/character_evolution.j2",
            {
                "no_think": settings.ENABLE_LLM_NO_THINK_DIRECTIVE,
                "character": character,
                "notes": notes,
            },
        )
        response_text, _usage = await llm_service.async_call_llm(
            model_name=self.evolution_model,
            prompt=prompt,
            temperature=settings.TEMPERATURE_EVOLUTION,
            allow_fallback=True,
            auto_clean_response=True,
        )
        if not response_text:
            raise AnalyzerUnavailable(
                f"No evolution proposal from {self.evolution_model} for {character.id}"
            )
        changes, summary = parse_evolution_changes(response_text)
        logger.info(
            "Character evolution proposal received",
            entity_id=character.id,
            change_count=len(changes),
            summary=summary[:120],
        )
        return changes
