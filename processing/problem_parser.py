"""Shared utilities for parsing analyzer JSON output into domain models."""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from core.exceptions import AnalyzerUnavailable
from models import (
    CharacterField,
    CharacterFieldChange,
    ConsistencyIssue,
    IssueCategory,
    IssueSource,
    Severity,
)

logger = structlog.get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)

_CATEGORY_KEYWORDS: list[tuple[tuple[str, ...], IssueCategory]] = [
    (("character", "psychology"), IssueCategory.CHARACTER),
    (("plot", "narrative"), IssueCategory.PLOT),
    (("world", "building"), IssueCategory.WORLDBUILDING),
]

_SEVERITY_WORDS = {
    "critical": Severity.HIGH,
    "major": Severity.HIGH,
    "high": Severity.HIGH,
    "severe": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "minor": Severity.LOW,
    "low": Severity.LOW,
}


def normalize_issue_category(raw: Any) -> IssueCategory:
    """Map a free-form type label from the analyzer to an issue category."""
    text = str(raw or "").strip().lower()
    for keywords, category in _CATEGORY_KEYWORDS:
        if any(k in text for k in keywords):
            return category
    return IssueCategory.TIMELINE


def normalize_severity(raw: Any) -> Severity:
    text = str(raw or "").strip().lower()
    return _SEVERITY_WORDS.get(text, Severity.MEDIUM)


def _load_json(text: str) -> Any:
    if not text or not text.strip():
        raise AnalyzerUnavailable("Analyzer returned an empty response")
    match = _FENCE_RE.search(text)
    candidate = match.group(1) if match else text.strip()
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        # Some models wrap the payload in prose; fall back to the outermost brackets.
        for opener, closer in (("[", "]"), ("{", "}")):
            start, end = candidate.find(opener), candidate.rfind(closer)
            if start != -1 and end > start:
                try:
                    return json.loads(candidate[start : end + 1])
                except json.JSONDecodeError:
                    continue
    raise AnalyzerUnavailable(f"Analyzer returned malformed JSON: {text[:80]!r}")


def parse_issue_list(
    text: str, chapter_index: int | None = None
) -> list[ConsistencyIssue]:
    """Parse a JSON list of consistency issues.

    Args:
        text: Raw response from the analyzer, bare or inside a code fence.
        chapter_index: Chapter the issues are attached to.

    Returns:
        A list of ``ConsistencyIssue`` objects with ``source=analyzer``.

    Raises:
        AnalyzerUnavailable: The response is not a list of issues.
    """
    data = _load_json(text)
    if isinstance(data, dict):
        if "issues" in data and isinstance(data["issues"], list):
            data = data["issues"]
        elif "problems" in data and isinstance(data["problems"], list):
            data = data["problems"]
    if not isinstance(data, list):
        raise AnalyzerUnavailable("Analyzer output was not a list of issues")

    issues: list[ConsistencyIssue] = []
    for item in data:
        if not isinstance(item, dict):
            logger.warning("Issue item is not a dict", item=str(item)[:80])
            continue
        description = str(item.get("description") or "").strip()
        if not description:
            logger.warning("Issue item has no description; skipping")
            continue
        suggestion = item.get("suggestion")
        issues.append(
            ConsistencyIssue(
                category=normalize_issue_category(item.get("type") or item.get("category")),
                severity=normalize_severity(item.get("severity")),
                description=description,
                suggestion=str(suggestion).strip() if suggestion else None,
                source=IssueSource.ANALYZER,
                chapter_index=chapter_index,
            )
        )
    return issues


def parse_evolution_changes(text: str) -> tuple[list[CharacterFieldChange], str]:
    """Parse a character evolution proposal.

    The expected shape is ``{"shouldUpdate": bool, "changes": [{"field",
    "newValue", "reason"}], "evolutionSummary": str}``. Unknown fields are dropped.
    """
    data = _load_json(text)
    if not isinstance(data, dict):
        raise AnalyzerUnavailable("Evolution proposal was not a JSON object")
    reasoning = str(data.get("evolutionSummary") or data.get("reasoning") or "")
    should_update = data.get("shouldUpdate", data.get("should_update", False))
    if not should_update:
        return [], reasoning

    raw_changes = data.get("changes") or []
    if not isinstance(raw_changes, list):
        raise AnalyzerUnavailable("Evolution proposal 'changes' was not a list")

    changes: list[CharacterFieldChange] = []
    for item in raw_changes:
        if not isinstance(item, dict):
            continue
        try:
            field = CharacterField(str(item.get("field", "")).strip().lower())
        except ValueError:
            logger.warning("Ignoring change to unsupported field", field=item.get("field"))
            continue
        new_value = item.get("newValue", item.get("new_value"))
        if not isinstance(new_value, str) or not new_value.strip():
            continue
        changes.append(
            CharacterFieldChange(
                field=field,
                new_value=new_value.strip(),
                reason=str(item.get("reason") or ""),
            )
        )
    return changes, reasoning
