from __future__ import annotations

from typing import Any, Iterable

from firesearch.models.events import DocumentStage, ErrorKind, EventType, Phase, SSEEvent
from firesearch.models.research import Document


def phase_changed(phase: Phase, message: str) -> SSEEvent:
    return SSEEvent(
        event=EventType.PHASE_CHANGED,
        data={"phase": phase.value, "message": message},
    )


def note(message: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.NOTE, data={"message": message, **kwargs})


def search_started(query: str, index: int, total: int) -> SSEEvent:
    return SSEEvent(
        event=EventType.SEARCH_STARTED,
        data={"query": query, "index": index, "total": total},
    )


def documents_found(documents: Iterable[Document], query: str) -> SSEEvent:
    return SSEEvent(
        event=EventType.DOCUMENTS_FOUND,
        data={"query": query, "documents": [d.to_dict() for d in documents]},
    )


def document_stage(url: str, title: str, stage: DocumentStage) -> SSEEvent:
    return SSEEvent(
        event=EventType.DOCUMENT_STAGE,
        data={"url": url, "title": title, "stage": stage.value},
    )


def document_ready(url: str, fact: str) -> SSEEvent:
    return SSEEvent(event=EventType.DOCUMENT_READY, data={"url": url, "fact": fact})


def answer_chunk(text: str) -> SSEEvent:
    return SSEEvent(event=EventType.ANSWER_CHUNK, data={"text": text})


def final(
    answer: str,
    documents: Iterable[Document],
    follow_ups: list[str] | None = None,
    runtime_ms: int | None = None,
) -> SSEEvent:
    data: dict[str, Any] = {
        "answer": answer,
        "documents": [d.to_dict() for d in documents],
        "follow_ups": list(follow_ups or []),
    }
    if runtime_ms is not None:
        data["runtime_ms"] = runtime_ms
    return SSEEvent(event=EventType.FINAL, data=data)


def failed(message: str, kind: ErrorKind = ErrorKind.UNKNOWN, *, fatal: bool = True) -> SSEEvent:
    return SSEEvent(
        event=EventType.FAILED,
        data={"message": message, "kind": kind.value, "fatal": fatal},
    )
