"""Jinja2-based prompt template loading and rendering."""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

_TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
)


def render(template_name: str, **context: object) -> str:
    """Render a prompt template with the given context variables."""
    template = _env.get_template(template_name)
    return template.render(**context).strip()


def json_messages(agent: str, prompt: str) -> list[dict]:
    """Messages for a call whose answer must be a bare JSON document."""
    return [
        {"role": "system", "content": f"You are a {agent}. Respond only with valid JSON."},
        {"role": "user", "content": prompt},
    ]
