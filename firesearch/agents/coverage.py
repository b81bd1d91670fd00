from __future__ import annotations

import json
from dataclasses import replace
from typing import Any, Iterable

from loguru import logger

from firesearch.agents.base import BaseAgent
from firesearch.models.research import CoverageJudgment, Document, SubQuestion
from firesearch.research_core.identifiers import find_identifier_evidence, normalize
from firesearch.services.prompt_store import render_prompt


def merge_judgment(
    sub_question: SubQuestion, judgment: CoverageJudgment, min_confidence: float
) -> SubQuestion:
    """Apply a judgment only if it is strictly more confident than what is stored."""
    confidence = min(max(float(judgment.confidence), 0.0), 1.0)
    if confidence <= sub_question.confidence:
        return sub_question
    return replace(
        sub_question,
        confidence=confidence,
        answered=confidence >= min_confidence,
        answer_text=judgment.answer_text or sub_question.answer_text,
        supporting_urls=set(sub_question.supporting_urls) | set(judgment.supporting_urls),
    )


class CoverageChecker(BaseAgent):
    """Judges, across accumulated documents, which sub-questions are answered."""

    name = "coverage"

    async def check(
        self, sub_questions: list[SubQuestion], documents: Iterable[Document]
    ) -> list[SubQuestion]:
        docs = list(documents)
        if not docs:
            return list(sub_questions)

        min_conf = self.config.min_answer_confidence
        open_questions = [sq for sq in sub_questions if sq.is_open(min_conf)]
        if not open_questions:
            return list(sub_questions)

        model_judgments = await self._model_judgments(open_questions, docs)
        judgments: dict[str, CoverageJudgment] = {}
        for sq, judgment in zip(open_questions, model_judgments):
            # The identifier pass only stands in where the model gave no usable judgment.
            if judgment is None:
                judgment = self.identifier_judgment(sq, docs)
            if judgment is not None:
                judgments[sq.question] = judgment

        updated: list[SubQuestion] = []
        for sq in sub_questions:
            judgment = judgments.get(sq.question)
            updated.append(merge_judgment(sq, judgment, min_conf) if judgment else sq)
        return updated

    def identifier_judgment(
        self, sub_question: SubQuestion, documents: list[Document]
    ) -> CoverageJudgment | None:
        matches = find_identifier_evidence(sub_question.question, documents)
        if not matches:
            return None
        first = matches[0]
        return CoverageJudgment(
            question=sub_question.question,
            answered=True,
            confidence=self.config.identifier_match_confidence,
            answer_text=first.extracted_fact or None,
            supporting_urls=[d.url for d in matches],
        )

    def _select_documents(self, documents: list[Document]) -> list[Document]:
        ranked = sorted(
            documents,
            key=lambda d: (d.has_fact, d.relevance_score or 0.0),
            reverse=True,
        )
        return ranked[: self.config.max_documents_to_check]

    def _render_sources(self, documents: list[Document]) -> str:
        blocks: list[str] = []
        for doc in documents:
            info = f"URL: {doc.url}\nTitle: {doc.title}\n"
            if doc.extracted_fact:
                info += f"Summary: {doc.extracted_fact}\n"
            if doc.content:
                info += f"Content: {doc.content[: self.config.answer_check_preview]}\n"
            blocks.append(info)
        return "\n---\n".join(blocks)

    async def _model_judgments(
        self, open_questions: list[SubQuestion], documents: list[Document]
    ) -> list[CoverageJudgment | None]:
        empty: list[CoverageJudgment | None] = [None] * len(open_questions)
        prompt = render_prompt(
            "coverage.user",
            questions="\n".join(sq.question for sq in open_questions),
            sources=self._render_sources(self._select_documents(documents)),
        )
        try:
            raw = await self.complete(render_prompt("coverage.system"), prompt)
            results = self.extract_json_array(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Coverage check returned unparseable output, keeping state: {e}")
            return empty
        except Exception as e:
            logger.warning(f"Coverage check failed, keeping state: {e}")
            return empty

        return self._align(open_questions, results)

    def _align(
        self, open_questions: list[SubQuestion], results: list[Any]
    ) -> list[CoverageJudgment | None]:
        parsed = [self._parse_result(r) for r in results]
        by_key = {normalize(j.question): j for j in parsed if j is not None and j.question}
        positional = len(parsed) == len(open_questions)

        aligned: list[CoverageJudgment | None] = []
        for index, sq in enumerate(open_questions):
            judgment = by_key.get(normalize(sq.question))
            if judgment is None and positional:
                judgment = parsed[index]
            aligned.append(judgment)
        return aligned

    @staticmethod
    def _parse_result(raw: Any) -> CoverageJudgment | None:
        if not isinstance(raw, dict):
            return None
        try:
            confidence = float(raw.get("confidence", 0.0) or 0.0)
        except (TypeError, ValueError):
            return None
        urls = raw.get("sources") or []
        if not isinstance(urls, list):
            urls = []
        answer = raw.get("answer")
        return CoverageJudgment(
            question=str(raw.get("question") or ""),
            answered=bool(raw.get("answered")),
            confidence=confidence,
            answer_text=str(answer) if answer else None,
            supporting_urls=[u for u in urls if isinstance(u, str) and u],
        )
