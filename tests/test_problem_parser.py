import json

import pytest

from core.exceptions import AnalyzerUnavailable
from models import CharacterField, IssueCategory, IssueSource, Severity
from processing.problem_parser import (
    normalize_issue_category,
    normalize_severity,
    parse_evolution_changes,
    parse_issue_list,
)


def test_parse_issue_list_valid():
    data = json.dumps(
        {
            "issues": [
                {
                    "type": "character psychology",
                    "severity": "major",
                    "description": "서연의 말투가 갑자기 반말로 바뀌었다",
                    "suggestion": "존댓말을 유지하세요",
                }
            ]
        },
        ensure_ascii=False,
    )
    result = parse_issue_list(data, chapter_index=6)
    assert len(result) == 1
    assert result[0].category == IssueCategory.CHARACTER
    assert result[0].severity == Severity.HIGH
    assert result[0].source == IssueSource.ANALYZER
    assert result[0].chapter_index == 6


def test_parse_issue_list_from_fenced_bare_list():
    text = '```json\n[{"category": "world building", "description": "magic rule broken"}]\n```'
    result = parse_issue_list(text)
    assert result[0].category == IssueCategory.WORLDBUILDING
    assert result[0].severity == Severity.MEDIUM
    assert result[0].suggestion is None


def test_parse_issue_list_skips_unusable_items():
    text = json.dumps({"problems": ["oops", {"type": "plot"}, {"type": "plot", "description": "x"}]})
    result = parse_issue_list(text)
    assert [i.description for i in result] == ["x"]


def test_parse_issue_list_prose_wrapped():
    text = 'Here you go: [{"type": "timeline", "description": "night became noon"}] done'
    assert parse_issue_list(text)[0].category == IssueCategory.TIMELINE


@pytest.mark.parametrize("text", ["", "   ", "notjson", '{"issues": "none"}'])
def test_parse_issue_list_malformed_raises(text):
    with pytest.raises(AnalyzerUnavailable):
        parse_issue_list(text)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Character", IssueCategory.CHARACTER),
        ("narrative flow", IssueCategory.PLOT),
        ("worldbuilding", IssueCategory.WORLDBUILDING),
        ("relationship", IssueCategory.TIMELINE),
        (None, IssueCategory.TIMELINE),
    ],
)
def test_normalize_issue_category(raw, expected):
    assert normalize_issue_category(raw) == expected


def test_normalize_severity():
    assert normalize_severity("Critical") == Severity.HIGH
    assert normalize_severity("moderate") == Severity.MEDIUM
    assert normalize_severity("minor") == Severity.LOW
    assert normalize_severity("unknown") == Severity.MEDIUM


def test_parse_evolution_changes():
    text = json.dumps(
        {
            "shouldUpdate": True,
            "changes": [
                {"field": "Personality", "newValue": "냉정하지만 용감한", "reason": "시험"},
                {"field": "age", "newValue": "20"},
                {"field": "background", "newValue": "   "},
            ],
            "evolutionSummary": "용기를 얻었다",
        },
        ensure_ascii=False,
    )
    changes, summary = parse_evolution_changes(text)
    assert summary == "용기를 얻었다"
    assert len(changes) == 1
    assert changes[0].field == CharacterField.PERSONALITY
    assert changes[0].new_value == "냉정하지만 용감한"
    assert changes[0].old_value is None


def test_parse_evolution_changes_no_update():
    changes, summary = parse_evolution_changes('{"shouldUpdate": false, "reasoning": "stable"}')
    assert changes == []
    assert summary == "stable"


def test_parse_evolution_changes_requires_object():
    with pytest.raises(AnalyzerUnavailable):
        parse_evolution_changes("[]")
