from __future__ import annotations

import json

from loguru import logger

from firesearch.agents.base import BaseAgent
from firesearch.models.research import PriorTurn, ResearchMode, ResearchRequest, SubQuestion
from firesearch.research_core.identifiers import has_version_pattern, strip_version_tokens
from firesearch.services.prompt_store import date_context, render_prompt


class QueryPlanner(BaseAgent):
    """Turns a request into sub-questions and, on retry rounds, new search queries."""

    name = "planner"

    async def decompose(
        self,
        request: ResearchRequest,
        prior_turns: tuple[PriorTurn, ...] | list[PriorTurn] = (),
    ) -> list[SubQuestion]:
        if request.mode == ResearchMode.BOOK:
            limit = self.config.max_book_queries
            system = render_prompt("planner.decompose_book_system", max_queries=limit)
        else:
            limit = self.config.max_sub_questions
            system = render_prompt("planner.decompose_system", max_questions=limit)

        prompt = render_prompt("planner.decompose_user", query=request.display_topic)
        prompt += self.prior_turns_context(prior_turns, header="Previous conversation")

        try:
            raw = await self.complete(system, prompt)
            items = self.extract_json_array(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Planner returned unparseable output, using the whole request: {e}")
            return [self._verbatim(request)]
        except Exception as e:
            logger.warning(f"Planner call failed, using the whole request: {e}")
            return [self._verbatim(request)]

        sub_questions: list[SubQuestion] = []
        seen: set[str] = set()
        for item in items:
            if not isinstance(item, dict):
                continue
            question = " ".join(str(item.get("question") or "").split())
            search_query = " ".join(
                str(item.get("searchQuery") or item.get("search_query") or "").split()
            )
            if not question:
                continue
            key = question.lower()
            if key in seen:
                continue
            seen.add(key)
            sub_questions.append(SubQuestion(question=question, search_query=search_query or question))
            if len(sub_questions) >= limit:
                break

        if not sub_questions:
            return [self._verbatim(request)]
        logger.info(f"Planner produced {len(sub_questions)} sub-questions")
        return sub_questions

    @staticmethod
    def _verbatim(request: ResearchRequest) -> SubQuestion:
        text = request.display_topic
        return SubQuestion(question=text, search_query=text)

    async def replan(
        self,
        sub_questions: list[SubQuestion],
        round_number: int,
        *,
        include_answered: bool = False,
    ) -> list[str]:
        """One new query per still-open sub-question, in order, capped at `max_queries`.

        From round 2 a question carrying a version or numeric identifier is
        searched as its base product instead of yet another phrasing.
        `include_answered` targets every sub-question, for book runs that
        are still short of sources.
        """
        open_questions = self.replan_targets(sub_questions, include_answered=include_answered)
        if not open_questions:
            return []

        queries: list[str | None] = [None] * len(open_questions)
        needs_alternative: list[int] = []
        for index, sq in enumerate(open_questions):
            if round_number >= 2 and has_version_pattern(sq.question):
                base = strip_version_tokens(sq.question)
                if base:
                    logger.info(f"Degrading versioned question to base search: '{base}'")
                    queries[index] = base
                    continue
            needs_alternative.append(index)

        if needs_alternative:
            alternatives = await self._alternatives(
                [open_questions[i] for i in needs_alternative], round_number
            )
            for index, alternative in zip(needs_alternative, alternatives):
                queries[index] = alternative

        return [q for q in queries if q][: self.config.max_queries]

    def replan_targets(
        self, sub_questions: list[SubQuestion], *, include_answered: bool = False
    ) -> list[SubQuestion]:
        """The sub-questions `replan` writes queries for, in query order."""
        return [
            sq
            for sq in sub_questions
            if include_answered or sq.is_open(self.config.min_answer_confidence)
        ]

    async def _alternatives(self, questions: list[SubQuestion], attempts: int) -> list[str]:
        fallback = [f"{sq.search_query} news reports" for sq in questions]
        previous = "\n".join(
            f"- Question: \"{sq.question}\"\n  Previous search: \"{sq.search_query}\"" for sq in questions
        )
        system = render_prompt(
            "planner.alternatives_system",
            date_context=date_context(),
            attempts=attempts,
            previous=previous,
        )
        prompt = render_prompt("planner.alternatives_user", count=len(questions))
        try:
            raw = await self.complete(system, prompt)
        except Exception as e:
            logger.warning(f"Alternative query generation failed: {e}")
            return fallback

        lines = [line for line in self.clean_lines(raw) if len(line) > 3]
        return [
            lines[i] if i < len(lines) else fallback[i]
            for i in range(len(questions))
        ]
