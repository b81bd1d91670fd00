from __future__ import annotations

import inspect
import re
from typing import Any, Callable, Iterable

from loguru import logger

from firesearch.agents.base import BaseAgent
from firesearch.models.research import Document, PriorTurn, ResearchMode
from firesearch.services.prompt_store import date_context, render_prompt
from firesearch.tools import web_utils

ChunkCallback = Callable[[str], Any]

_CITATION = re.compile(r"\[(\d{1,3}(?:\s*,\s*\d{1,3})*)\]")
_PARTIAL_CITATION = re.compile(r"\[[\d,\s]*$")
_MAX_HELD_TAIL = 24
_FOLLOW_UP_ANSWER_PREVIEW = 1000


class CitationFilter:
    """Drops `[n]` markers that point past the supplied document list.

    Works on a stream: a trailing `[12` is held back until the next chunk
    shows whether it closes into a citation.
    """

    def __init__(self, document_count: int):
        self.document_count = document_count
        self._pending = ""

    def _rewrite(self, text: str) -> str:
        def replace(match: re.Match[str]) -> str:
            numbers = [int(n) for n in re.split(r"\s*,\s*", match.group(1))]
            kept = [str(n) for n in numbers if 1 <= n <= self.document_count]
            if not kept:
                return ""
            return f"[{', '.join(kept)}]"

        return _CITATION.sub(replace, text)

    def feed(self, chunk: str) -> str:
        text = self._pending + chunk
        self._pending = ""
        tail = _PARTIAL_CITATION.search(text)
        if tail and len(text) - tail.start() <= _MAX_HELD_TAIL:
            self._pending = text[tail.start():]
            text = text[: tail.start()]
        return self._rewrite(text)

    def flush(self) -> str:
        text, self._pending = self._pending, ""
        return self._rewrite(text)

    def apply(self, text: str) -> str:
        return self._rewrite(text)


class Synthesizer(BaseAgent):
    """Writes the cited answer and the follow-up suggestions."""

    name = "synthesizer"

    def render_sources(self, documents: list[Document]) -> str:
        blocks: list[str] = []
        for i, doc in enumerate(documents, 1):
            lines = [f"[{i}] {doc.title or doc.url}", f"URL: {doc.url}"]
            if doc.has_fact:
                lines.append(f"Key finding: {doc.extracted_fact}")
            if doc.has_content:
                lines.append(web_utils.excerpt(doc.content or "", self.config.synthesis_excerpt_chars))
            elif not doc.has_fact:
                lines.append("[No content available]")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    async def synthesize(
        self,
        topic: str,
        documents: Iterable[Document],
        on_chunk: ChunkCallback,
        prior_turns: Iterable[PriorTurn] = (),
        mode: ResearchMode = ResearchMode.QUESTION,
    ) -> str:
        """Stream the answer through `on_chunk` and return the full text.

        A failed stream falls back to one blocking call whose text is sent
        as a single chunk. If that call fails too the error propagates.
        """
        docs = list(documents)
        key = "synthesizer.book_system" if mode == ResearchMode.BOOK else "synthesizer.system"
        system = render_prompt(key, date_context=date_context(), source_count=len(docs))
        prompt = render_prompt(
            "synthesizer.user",
            query=topic,
            context=self.prior_turns_context(prior_turns, header="Previous conversation for context"),
            sources=self.render_sources(docs),
        )

        citations = CitationFilter(len(docs))
        parts: list[str] = []
        try:
            async for text in self.llm.stream(
                system,
                prompt,
                model=self.config.quality_model,
                temperature=self.config.temperature,
                caller=self.name,
            ):
                safe = citations.feed(text)
                if safe:
                    parts.append(safe)
                    await _deliver(on_chunk, safe)
            tail = citations.flush()
            if tail:
                parts.append(tail)
                await _deliver(on_chunk, tail)
            return "".join(parts)
        except Exception as e:
            logger.warning(f"Answer stream failed, falling back to a single call: {e}")

        answer = await self.complete(system, prompt, model=self.config.quality_model)
        answer = citations.apply(answer)
        if answer:
            await _deliver(on_chunk, answer)
        return answer

    async def follow_ups(
        self,
        topic: str,
        answer: str,
        prior_turns: Iterable[PriorTurn] = (),
        mode: ResearchMode = ResearchMode.QUESTION,
    ) -> list[str]:
        max_length = self.config.follow_up_max_length
        if mode == ResearchMode.BOOK:
            count = max(self.config.follow_up_count, 5)
            system = render_prompt(
                "follow_ups.book_system",
                date_context=date_context(),
                count="3-5",
                max_length=max_length,
            )
        else:
            count = self.config.follow_up_count
            system = render_prompt(
                "follow_ups.system",
                date_context=date_context(),
                count=count,
                max_length=max_length,
            )

        preview = answer
        if len(preview) > _FOLLOW_UP_ANSWER_PREVIEW:
            preview = preview[:_FOLLOW_UP_ANSWER_PREVIEW] + "..."
        turns = list(prior_turns)
        context = ""
        if turns:
            context = "\n\nPrevious conversation topics:\n" + "".join(f"- {t.query}\n" for t in turns)

        try:
            raw = await self.complete(
                system,
                render_prompt("follow_ups.user", query=topic, answer=preview, context=context),
            )
        except Exception as e:
            logger.warning(f"Follow-up generation failed: {e}")
            return []

        questions = [q for q in self.clean_lines(raw) if len(q) < max_length]
        return questions[:count]


async def _deliver(on_chunk: ChunkCallback, text: str) -> None:
    result = on_chunk(text)
    if inspect.isawaitable(result):
        await result
