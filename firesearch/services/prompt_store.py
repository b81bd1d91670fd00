"""Prompt catalog loaded from `prompts/prompts.json`.

Entries are nested by dotted key. A value is either a string or a list of
lines joined with newlines; `$name` placeholders are filled by
`render_prompt` using `string.Template`.
"""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from string import Template
from typing import Any


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"
_catalog_cache: dict[str, Any] | None = None


def _load_catalog() -> dict[str, Any]:
    global _catalog_cache
    if _catalog_cache is not None:
        return _catalog_cache

    payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Prompt catalog must be a JSON object.")
    _catalog_cache = payload
    return payload


def _resolve_prompt_entry(key: str) -> str:
    node: Any = _load_catalog()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]
    if isinstance(node, list) and all(isinstance(line, str) for line in node):
        return "\n".join(node)
    if not isinstance(node, str):
        raise TypeError(f"Prompt key must map to a string or list of lines: {key}")
    return node


def render_prompt(key: str, **values: Any) -> str:
    template = Template(_resolve_prompt_entry(key))
    try:
        return template.substitute(**values)
    except KeyError as exc:
        missing = str(exc.args[0])
        raise KeyError(f"Missing template value '{missing}' for prompt '{key}'") from exc


def date_context(now: datetime | None = None) -> str:
    """The current-date preamble most system prompts start with."""
    now = now or datetime.now()
    return render_prompt(
        "common.date_context",
        date_str=f"{now:%A}, {now:%B} {now.day}, {now.year}",
        year=now.year,
        month=now.month,
    )
