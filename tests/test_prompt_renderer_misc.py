import prompt_renderer
from jinja2 import DictLoader, Environment
from pydantic import BaseModel

from models import PlotStatus


def test_render_prompt_with_custom_env(monkeypatch):
    env = Environment(
        loader=DictLoader({"greet.j2": "Hello {{ name }}"}), autoescape=False
    )
    monkeypatch.setattr(prompt_renderer, "_env", env)
    result = prompt_renderer.render_prompt("greet.j2", {"name": "서연"})
    assert result == "Hello 서연"


class Person(BaseModel):
    name: str
    status: PlotStatus = PlotStatus.PLANNED


def test_tojson_keeps_korean_and_serialises_models(monkeypatch):
    env = Environment(
        loader=DictLoader({"obj.j2": "{{ person | tojson }}"}),
        autoescape=False,
    )
    env.filters["tojson"] = prompt_renderer._tojson
    monkeypatch.setattr(prompt_renderer, "_env", env)
    result = prompt_renderer.render_prompt("obj.j2", {"person": Person(name="민준")})
    assert result == '{"name": "민준", "status": "PLANNED"}'


def test_consistency_template_renders():
    result = prompt_renderer.render_prompt(
        "qualitative_analyzer_agent/consistency_check.j2",
        {
            "no_think": True,
            "story_id": "story-1",
            "chapter_index": 3,
            "characters": [{"name": "서연", "personality": "냉정한", "description": ""}],
            "world_rules": [],
            "plot_threads": [],
            "recent_events": [],
            "chapter_text": "서연이 웃었다.",
        },
    )
    assert result.startswith("/no_think")
    assert "- 서연: 냉정한" in result
    assert "서연이 웃었다." in result
