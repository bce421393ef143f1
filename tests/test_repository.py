# tests/test_repository.py
import json

import pytest

from core.exceptions import PersistenceFailure
from data_access import InMemoryStoryRepository, load_story_corpus
from models import CharacterField, CharacterFieldChange, PlotStatus, PlotThreadRecord


def test_load_story_corpus_round_trips_json(tmp_path, academy_corpus):
    path = tmp_path / "story.json"
    path.write_text(academy_corpus.model_dump_json(), encoding="utf-8")
    loaded = load_story_corpus(path)
    assert loaded == academy_corpus


@pytest.mark.parametrize("content", ["{not json", json.dumps({"chapters": []})])
def test_load_story_corpus_errors(tmp_path, content):
    path = tmp_path / "bad.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(PersistenceFailure) as exc_info:
        load_story_corpus(path)
    assert exc_info.value.operation == "load_corpus"


def test_load_story_corpus_missing_file(tmp_path):
    with pytest.raises(PersistenceFailure):
        load_story_corpus(tmp_path / "missing.json")


@pytest.mark.asyncio
async def test_reads_return_copies(repository):
    chapters = await repository.get_chapters("story-1")
    chapters[0].text = "changed"
    again = await repository.get_chapters("story-1")
    assert again[0].text != "changed"
    assert [c.index for c in await repository.get_chapters("story-1", 1)] == [1]


@pytest.mark.asyncio
async def test_unknown_story_raises_persistence_failure(repository):
    with pytest.raises(PersistenceFailure) as exc_info:
        await repository.get_characters("missing")
    assert exc_info.value.entity_id == "missing"


@pytest.mark.asyncio
async def test_update_character_fields_audits_each_field(repository):
    await repository.update_character_fields(
        "char-minjun",
        [
            CharacterFieldChange(field=CharacterField.BACKGROUND, new_value="평민 출신", reason="r"),
            CharacterFieldChange(field=CharacterField.PERSONALITY, new_value="따뜻한", reason="r"),
        ],
    )
    assert [(e.field, e.old_value) for e in repository.audit_log] == [
        ("background", ""),
        ("personality", "따뜻한, 유머러스"),
    ]


@pytest.mark.asyncio
async def test_update_plot_thread_status_skips_no_op(repository):
    await repository.update_plot_thread_status("plot-exam", PlotStatus.PLANNED)
    assert repository.audit_log == []
    await repository.update_plot_thread_status("plot-exam", PlotStatus.RESOLVED)
    assert repository.audit_log[0].new_value == "RESOLVED"
    with pytest.raises(PersistenceFailure):
        await repository.update_plot_thread_status("plot-x", PlotStatus.RESOLVED)


def test_plot_thread_record_accepts_lower_case_status():
    record = PlotThreadRecord.model_validate(
        {"id": "plot-exam", "name": "입학 시험", "status": "resolved"}
    )
    assert record.status == PlotStatus.RESOLVED
    assert record.model_dump(mode="json")["status"] == "RESOLVED"
