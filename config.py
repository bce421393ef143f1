# config.py
"""Configuration settings for the continuity engine.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import structlog
from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()


class ContinuitySettings(BaseSettings):
    """Full configuration for the continuity engine."""

    # API and Model Configuration
    OPENAI_API_BASE: str = "http://127.0.0.1:8080/v1"
    OPENAI_API_KEY: str = "nope"

    MEDIUM_MODEL: str = "Qwen3-8B"

    ANALYZER_MODEL: str = "Qwen3-14B"
    FALLBACK_ANALYZER_MODEL: str | None = None
    EVOLUTION_MODEL: str | None = None

    # Temperature Settings
    TEMPERATURE_CONSISTENCY_CHECK: float = 0.2
    TEMPERATURE_EVOLUTION: float = 0.3

    # LLM Call Settings & Fallbacks
    LLM_RETRY_ATTEMPTS: int = 3
    LLM_RETRY_DELAY_SECONDS: float = 3.0
    HTTPX_TIMEOUT: float = 600.0
    LLM_TOP_P: float = 0.8
    MAX_GENERATION_TOKENS: int = 4096
    ENABLE_LLM_NO_THINK_DIRECTIVE: bool = True
    TIKTOKEN_DEFAULT_ENCODING: str = "cl100k_base"
    FALLBACK_CHARS_PER_TOKEN: float = 4.0
    TOKENIZER_CACHE_SIZE: int = 10
    LLM_CALL_CACHE_SIZE: int = 64
    MAX_CONCURRENT_LLM_CALLS: int = 4

    # Qualitative analyzer
    ANALYZER_TIMEOUT_SECONDS: float = 45.0
    ANALYZER_MAX_CHAPTER_TOKENS: int = 6000
    ANALYZER_CONTEXT_EVENTS: int = 10

    # Embedding and similarity
    EMBEDDING_DIMENSIONS: int = 300
    PERSONALITY_WEIGHT: float = 1.5
    EMOTION_WEIGHT: float = 1.3
    DIALOGUE_WEIGHT: float = 1.2
    ACTION_WEIGHT: float = 1.1
    DESCRIPTION_WEIGHT: float = 1.0
    BASELINE_BLEND_WEIGHT: float = 0.4
    CATEGORY_BLEND_WEIGHT: float = 0.6
    CONSISTENCY_THRESHOLD: float = 0.7
    HIGH_SEVERITY_SIMILARITY: float = 0.3
    MEDIUM_SEVERITY_SIMILARITY: float = 0.5
    DEVIATION_FULL_CONFIDENCE_SAMPLES: int = 5
    DEVIATION_HIGH_MIN_CONFIDENCE: float = 0.4

    # Feature extraction
    DIALOGUE_ATTRIBUTION_WINDOW: int = 40

    # Plot threads
    NEGLECT_MIN_IMPORTANCE: int = 3
    NEGLECT_CHAPTER_GAP: int = 5
    UNRESOLVED_MIN_IMPORTANCE: int = 3
    UNRESOLVED_STALE_CHAPTERS: int = 5
    KEY_EVENT_MIN_IMPORTANCE: int = 3
    PLOT_ATTENTION_URGENCY: float = 35.0
    PLOT_URGENT_THRESHOLD: float = 50.0
    PLOT_MEDIUM_THRESHOLD: float = 25.0
    MAX_BALANCE_SUGGESTIONS: int = 3
    PLOT_DISTRIBUTION_WINDOW: int = 5

    # Statistical anomalies
    ANOMALY_WINDOW_CHAPTERS: int = 10
    SPOTLIGHT_MIN_DISTINCT_CHAPTERS: int = 3
    SPOTLIGHT_MAX_MENTIONS: int = 10
    DIALOGUE_LENGTH_RATIO: float = 3.0

    # Scoring and reporting
    CHECKS_PER_CHAPTER: int = 12
    CATEGORY_CHECKS_PER_CHAPTER: int = 3
    MAX_RECOMMENDATIONS: int = 15

    # Auto-evolution
    EVOLUTION_NOTE_LIMIT: int = 10

    # Output and Logging
    BASE_OUTPUT_DIR: str = "continuity_output"
    LOG_LEVEL_STR: str = Field("INFO", alias="CONTINUITY_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = "continuity_engine.log"
    ENABLE_RICH_PROGRESS: bool = True

    @field_validator("HIGH_SEVERITY_SIMILARITY", "MEDIUM_SEVERITY_SIMILARITY")
    @classmethod
    def _similarity_in_unit_range(cls, value: float) -> float:
        if not -1.0 <= value <= 1.0:
            raise ValueError("similarity cutoffs must lie within [-1, 1]")
        return value

    @model_validator(mode="after")
    def set_dynamic_model_defaults(self) -> ContinuitySettings:
        if self.FALLBACK_ANALYZER_MODEL is None:
            self.FALLBACK_ANALYZER_MODEL = self.MEDIUM_MODEL
        if self.EVOLUTION_MODEL is None:
            self.EVOLUTION_MODEL = self.ANALYZER_MODEL
        return self

    @model_validator(mode="after")
    def check_severity_ordering(self) -> ContinuitySettings:
        if not (
            self.HIGH_SEVERITY_SIMILARITY
            <= self.MEDIUM_SEVERITY_SIMILARITY
            <= self.CONSISTENCY_THRESHOLD
        ):
            raise ValueError(
                "Severity cutoffs must satisfy HIGH <= MEDIUM <= CONSISTENCY_THRESHOLD"
            )
        if self.OPENAI_API_KEY == "nope":
            logger.warning(
                "OPENAI_API_KEY is the placeholder value; the qualitative analyzer "
                "will likely be unavailable."
            )
        return self

    model_config = SettingsConfigDict(env_prefix="", env_file=".env")


settings = ContinuitySettings()
