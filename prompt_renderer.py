# prompt_renderer.py
"""Render analyzer prompts from the Jinja2 templates under ``prompts/``."""

import json
from enum import Enum
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from pydantic import BaseModel

PROMPTS_PATH = Path(__file__).parent / "prompts"
_env = Environment(
    loader=FileSystemLoader(PROMPTS_PATH),
    autoescape=False,
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


def _default_json_serializer(value: Any) -> Any:
    """Serialize pydantic models and enums for JSON output."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(
        f"Object of type {value.__class__.__name__} is not JSON serializable"
    )


def _tojson(value: Any, indent: int | None = None) -> str:
    """JSON filter that keeps non-ASCII text readable in prompts."""
    return json.dumps(
        value, default=_default_json_serializer, ensure_ascii=False, indent=indent
    )


_env.filters["tojson"] = _tojson


def render_prompt(template_name: str, context: dict[str, Any]) -> str:
    """Render a Jinja2 template from the prompts directory."""
    template = _env.get_template(template_name)
    return template.render(**context)
