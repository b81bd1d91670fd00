from __future__ import annotations

import json
import re
from typing import Any, Iterable

from firesearch.config import ResearchConfig
from firesearch.llm_client import LLMClient, client as llm_client
from firesearch.models.research import PriorTurn


class BaseAgent:
    """Shared plumbing for the model-backed research helpers.

    Subclasses set `name`; calls go through `complete`, which tags the log
    line with the agent name and uses the fast model unless told otherwise.
    """

    name: str = "base"

    def __init__(self, config: ResearchConfig, llm: LLMClient | None = None):
        self.config = config
        self.client = llm

    @property
    def llm(self) -> LLMClient:
        return self.client or llm_client()

    async def complete(self, system: str, prompt: str, *, model: str | None = None) -> str:
        return await self.llm.complete(
            system,
            prompt,
            model=model or self.config.fast_model,
            temperature=self.config.temperature,
            caller=self.name,
        )

    @staticmethod
    def strip_code_fences(raw_text: str) -> str:
        text = raw_text.strip()
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
        return text.strip()

    @classmethod
    def extract_json_array(cls, raw_text: str) -> list[Any]:
        text = cls.strip_code_fences(raw_text)
        start = text.find("[")
        end = text.rfind("]")
        if start < 0 or end <= start:
            raise json.JSONDecodeError("array not found", text, 0)
        parsed = json.loads(text[start : end + 1])
        if not isinstance(parsed, list):
            raise json.JSONDecodeError("not an array", text, 0)
        return parsed

    @staticmethod
    def clean_lines(raw_text: str) -> list[str]:
        """Model output lines without numbering, bullets, quotes or code fences."""
        lines: list[str] = []
        for line in raw_text.split("\n"):
            value = line.strip()
            if not value or value.startswith("```"):
                continue
            value = re.sub(r"^\d+[.)]\s*", "", value)
            value = re.sub(r"^[-*#•]+\s*", "", value)
            value = value.strip().strip("\"'").strip()
            if value:
                lines.append(value)
        return lines

    def prior_turns_context(
        self, prior_turns: Iterable[PriorTurn], *, header: str, preview: int | None = None
    ) -> str:
        turns = list(prior_turns)
        if not turns:
            return ""
        limit = preview or self.config.context_preview_length
        parts = [f"\n\n{header}:\n"]
        for turn in turns:
            response = turn.response[:limit]
            if len(turn.response) > limit:
                response += "..."
            parts.append(f"User: {turn.query}\nAssistant: {response}\n\n")
        return "".join(parts).rstrip() + "\n"
