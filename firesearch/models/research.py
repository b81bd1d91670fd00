from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from firesearch.models.events import ErrorKind, Phase

if TYPE_CHECKING:
    from firesearch.research_core.registry import SourceRegistry


class ResearchMode(str, Enum):
    QUESTION = "question"
    BOOK = "book"


@dataclass(slots=True)
class Document:
    """One search result, keyed by URL."""

    url: str
    title: str = ""
    content: str | None = None
    relevance_score: float | None = None
    extracted_fact: str | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())

    @property
    def has_fact(self) -> bool:
        return bool(self.extracted_fact and self.extracted_fact.strip())

    def to_dict(self, *, include_content: bool = False, preview_chars: int = 300) -> dict[str, Any]:
        data: dict[str, Any] = {
            "url": self.url,
            "title": self.title,
            "relevance_score": self.relevance_score,
            "extracted_fact": self.extracted_fact,
        }
        if include_content:
            data["content"] = self.content
        elif self.content:
            data["content_preview"] = self.content[:preview_chars]
        return data


@dataclass(slots=True)
class SubQuestion:
    question: str
    search_query: str
    answered: bool = False
    confidence: float = 0.0
    answer_text: str | None = None
    supporting_urls: set[str] = field(default_factory=set)

    def is_open(self, min_confidence: float) -> bool:
        return not self.answered or self.confidence < min_confidence

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "search_query": self.search_query,
            "answered": self.answered,
            "confidence": self.confidence,
            "answer_text": self.answer_text,
            "supporting_urls": sorted(self.supporting_urls),
        }


@dataclass(frozen=True, slots=True)
class PriorTurn:
    query: str
    response: str


@dataclass(frozen=True, slots=True)
class ResearchRequest:
    topic: str
    prior_turns: tuple[PriorTurn, ...] = ()
    mode: ResearchMode = ResearchMode.QUESTION
    author: str | None = None

    @property
    def display_topic(self) -> str:
        if self.mode == ResearchMode.BOOK and self.author:
            return f"{self.topic} by {self.author}"
        return self.topic


@dataclass(slots=True)
class CoverageJudgment:
    question: str
    answered: bool
    confidence: float
    answer_text: str | None = None
    supporting_urls: list[str] = field(default_factory=list)


@dataclass
class ResearchSession:
    """Mutable state threaded through one pipeline run. Never persisted."""

    request: ResearchRequest
    session_id: str
    registry: SourceRegistry
    phase: Phase = Phase.UNDERSTANDING
    understanding: str | None = None
    sub_questions: list[SubQuestion] | None = None
    search_queries: list[str] = field(default_factory=list)
    current_search_index: int = 0
    search_round: int = 0
    pending_fetch: list[tuple[Document, str]] = field(default_factory=list)
    retry_count: int = 0
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    final_answer: str | None = None
    final_documents: list[Document] = field(default_factory=list)
    follow_ups: list[str] = field(default_factory=list)

    def fail(self, kind: ErrorKind, message: str) -> None:
        self.error_kind = kind
        self.error_message = message

    def clear_error(self) -> None:
        self.error_kind = None
        self.error_message = None

    def restart_queries(self) -> None:
        """Rewind to the first query of the current round.

        Sub-questions, their confidences and the round counter are kept.
        """
        self.current_search_index = 0
