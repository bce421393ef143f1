# core/llm_interface.py
"""
Handles direct interactions with the OpenAI-compatible chat endpoint used by
the qualitative analyzer: token counting, truncation, retrying calls with a
fallback model, and cleaning of model responses.
"""

# Standard library imports
import asyncio
import functools
import random
import re

# Type hints
from typing import Any

import httpx

# Third-party imports
import structlog
import tiktoken
from async_lru import alru_cache

# Local imports
from config import settings
from core.exceptions import AnalyzerUnavailable

logger = structlog.get_logger(__name__)


def _completion_token_param(api_base: str) -> str:
    """Return the token count parameter expected by the provider."""
    if "api.openai.com" in api_base or "api.anthropic.com" in api_base:
        return "max_completion_tokens"
    return "max_tokens"


@functools.lru_cache(maxsize=settings.TOKENIZER_CACHE_SIZE)
def _get_tokenizer(model_name: str) -> tiktoken.Encoding | None:
    """tiktoken encoder for ``model_name``, the default encoding, or ``None``."""
    try:
        return tiktoken.encoding_for_model(model_name)
    except KeyError:
        logger.debug(
            "No model-specific tiktoken encoding",
            model=model_name,
            default=settings.TIKTOKEN_DEFAULT_ENCODING,
        )
    try:
        return tiktoken.get_encoding(settings.TIKTOKEN_DEFAULT_ENCODING)
    except Exception as e:  # encoding files may be unreachable offline
        logger.error(
            "tiktoken encoding unavailable; using character heuristic",
            model=model_name,
            encoding=settings.TIKTOKEN_DEFAULT_ENCODING,
            error=str(e),
        )
        return None


def count_tokens(text: str, model_name: str) -> int:
    """Counts the number of tokens in a string for a given model."""
    if not text:
        return 0

    encoder = _get_tokenizer(model_name)
    if encoder:
        return len(encoder.encode(text, allowed_special="all"))
    return int(len(text) / settings.FALLBACK_CHARS_PER_TOKEN)


def truncate_text_by_tokens(
    text: str,
    model_name: str,
    max_tokens: int,
    truncation_marker: str = "\n... (truncated)",
) -> str:
    """
    Truncates text to a maximum number of tokens for a given model.
    Adds a truncation marker if truncation occurs.
    """
    if not text:
        return ""

    encoder = _get_tokenizer(model_name)
    if not encoder:
        max_chars = int(max_tokens * settings.FALLBACK_CHARS_PER_TOKEN)
        if len(text) > max_chars:
            return text[: max(0, max_chars - len(truncation_marker))] + truncation_marker
        return text

    tokens = encoder.encode(text, allowed_special="all")
    if len(tokens) <= max_tokens:
        return text

    marker_tokens_len = len(encoder.encode(truncation_marker, allowed_special="all"))
    content_tokens_to_keep = max_tokens - marker_tokens_len
    effective_marker = truncation_marker
    if content_tokens_to_keep <= 0:
        content_tokens_to_keep = max_tokens
        effective_marker = ""
    return encoder.decode(tokens[:content_tokens_to_keep]) + effective_marker


class LLMService:
    """Chat completion client shared by every analyzer call."""

    def __init__(self, timeout: float = settings.HTTPX_TIMEOUT):
        # One client per service so connections are pooled across checks
        self._client = httpx.AsyncClient(timeout=timeout)
        self._semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_LLM_CALLS)
        self.request_count = 0
        logger.debug(
            "LLMService initialized",
            max_concurrent_calls=settings.MAX_CONCURRENT_LLM_CALLS,
        )

    async def _backoff_delay(self, attempt: int) -> None:
        delay = settings.LLM_RETRY_DELAY_SECONDS * (2**attempt)
        await asyncio.sleep(delay + random.uniform(0, delay / 2))

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        }

    def _build_payload(
        self,
        model_name: str,
        prompt: str,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        return {
            "model": model_name,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": (
                temperature
                if temperature is not None
                else settings.TEMPERATURE_CONSISTENCY_CHECK
            ),
            "top_p": settings.LLM_TOP_P,
            "stream": False,
            _completion_token_param(settings.OPENAI_API_BASE): (
                max_tokens if max_tokens is not None else settings.MAX_GENERATION_TOKENS
            ),
        }

    @staticmethod
    def _extract_content(data: dict[str, Any]) -> str:
        """Return the first choice's message text, or raise ``ValueError``."""
        choices = data.get("choices") or []
        if not choices:
            raise ValueError("Completion response has no choices")
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    async def _post_completion(
        self, payload: dict[str, Any]
    ) -> tuple[str, dict[str, int] | None]:
        response = await self._client.post(
            f"{settings.OPENAI_API_BASE}/chat/completions",
            json=payload,
            headers=self._headers(),
        )
        response.raise_for_status()
        data = response.json()
        usage = data.get("usage")
        logger.info(
            "LLM usage",
            model=payload["model"],
            prompt_tokens=(usage or {}).get("prompt_tokens"),
            completion_tokens=(usage or {}).get("completion_tokens"),
        )
        return self._extract_content(data), usage

    async def _call_model_with_retries(
        self,
        payload: dict[str, Any],
        auto_clean_response: bool,
    ) -> tuple[str, dict[str, int] | None, Exception | None]:
        last_exc: Exception | None = None
        for attempt in range(settings.LLM_RETRY_ATTEMPTS):
            try:
                self.request_count += 1
                text, usage = await self._post_completion(payload)
                if auto_clean_response:
                    text = self.clean_model_response(text)
                return text, usage, None
            except (httpx.HTTPError, ValueError) as exc:
                last_exc = exc
                logger.warning(
                    "LLM call attempt failed",
                    model=payload["model"],
                    attempt=attempt + 1,
                    error=str(exc),
                )
            if attempt < settings.LLM_RETRY_ATTEMPTS - 1:
                await self._backoff_delay(attempt)
        return "", None, last_exc

    async def _async_call_llm(
        self,
        model_name: str,
        prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        allow_fallback: bool = False,
        auto_clean_response: bool = True,
    ) -> tuple[str, dict[str, int] | None]:
        """Call the primary model, then the fallback analyzer model if allowed.

        Raises ``AnalyzerUnavailable`` when every candidate failed, so the
        call cache never keeps a failure.
        """
        if not model_name or not isinstance(prompt, str) or not prompt.strip():
            logger.error("LLM call rejected: missing model or empty prompt", model=model_name)
            return "", None

        candidates = [model_name]
        fallback = settings.FALLBACK_ANALYZER_MODEL
        if allow_fallback and fallback and fallback != model_name:
            candidates.append(fallback)

        async with self._semaphore:
            last_exc: Exception | None = None
            for candidate in candidates:
                logger.debug(
                    "Calling LLM",
                    model=candidate,
                    prompt_tokens_est=count_tokens(prompt, candidate),
                )
                payload = self._build_payload(candidate, prompt, temperature, max_tokens)
                text, usage, last_exc = await self._call_model_with_retries(
                    payload, auto_clean_response
                )
                if last_exc is None:
                    return text, usage
            logger.error(
                "LLM call failed on every candidate model",
                models=candidates,
                error=str(last_exc),
            )
            raise AnalyzerUnavailable(
                f"LLM call failed on models {candidates}: {last_exc}"
            ) from last_exc

    @alru_cache(maxsize=settings.LLM_CALL_CACHE_SIZE)
    async def async_call_llm(
        self,
        model_name: str,
        prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        allow_fallback: bool = False,
        auto_clean_response: bool = True,
    ) -> tuple[str, dict[str, int] | None]:
        return await self._async_call_llm(
            model_name=model_name,
            prompt=prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            allow_fallback=allow_fallback,
            auto_clean_response=auto_clean_response,
        )

    def clean_model_response(self, text: str) -> str:
        """Strip think-style blocks and code fences from a model response."""
        if not isinstance(text, str):
            logger.warning(
                f"clean_model_response received non-string input: {type(text)}. Returning empty string."
            )
            return ""

        cleaned_text = text
        for tag_name in ("think", "thought", "thinking", "reasoning", "analysis", "no_think"):
            cleaned_text = re.sub(
                rf"<\s*{tag_name}\s*>.*?<\s*/\s*{tag_name}\s*>",
                "",
                cleaned_text,
                flags=re.DOTALL | re.IGNORECASE,
            )
            cleaned_text = re.sub(
                rf"<\s*/?\s*{tag_name}\s*/?\s*>", "", cleaned_text, flags=re.IGNORECASE
            )

        cleaned_text = re.sub(
            r"```(?:[a-zA-Z0-9_-]+)?\s*(.*?)\s*```",
            r"\1",
            cleaned_text,
            flags=re.DOTALL,
        )
        cleaned_text = re.sub(
            r"^\s*(?:Output|Result|Response|Answer)\s*:\s*",
            "",
            cleaned_text.strip(),
            flags=re.IGNORECASE,
        )
        return re.sub(r"\n{3,}", "\n\n", cleaned_text).strip()


# Instantiate the service for other modules to import and use
llm_service = LLMService()
