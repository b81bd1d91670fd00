from __future__ import annotations

import re

from loguru import logger

from firesearch.agents.base import BaseAgent
from firesearch.services.prompt_store import date_context, render_prompt

# Replies that mean "nothing found"; they must never be stored as a finding.
_NEGATIVE_PATTERNS = [
    r"no[_ ]relevant[_ ]information",
    r"\bno specific\b",
    r"\bdoes not (?:mention|contain|provide)\b",
    r"\bdoesn't (?:mention|contain|provide)\b",
    r"\bnot mentioned\b",
    r"\bno information\b",
    r"^n/?a\.?$",
    r"^none\.?$",
]
_NEGATIVE = re.compile("|".join(_NEGATIVE_PATTERNS), re.IGNORECASE)


def is_negative_summary(text: str) -> bool:
    return bool(_NEGATIVE.search(text.strip()))


class SourceSummarizer(BaseAgent):
    """Pulls one query-specific fact out of a document."""

    name = "summarizer"

    async def summarize(self, content: str, query: str) -> str:
        """One sentence of extracted fact, or "" when there is nothing to report."""
        if not content or len(content.strip()) < self.config.min_content_length_for_summary:
            return ""

        system = render_prompt(
            "summarizer.system",
            date_context=date_context(),
            char_limit=self.config.summary_char_limit,
        )
        prompt = render_prompt(
            "summarizer.user",
            query=query,
            content=content[: self.config.summary_input_chars],
        )
        try:
            raw = await self.complete(system, prompt)
        except Exception as e:
            logger.warning(f"Summarization failed for query '{query[:80]}': {e}")
            return ""

        return self.normalize(raw)

    def normalize(self, raw: str) -> str:
        summary = " ".join((raw or "").split()).strip().strip('"').strip()
        if not summary or is_negative_summary(summary):
            return ""
        limit = self.config.summary_char_limit
        if len(summary) > limit:
            summary = summary[: limit - 3].rstrip() + "..."
        return summary
