from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    PHASE_CHANGED = "phase-changed"
    NOTE = "note"
    SEARCH_STARTED = "search-started"
    DOCUMENTS_FOUND = "documents-found"
    DOCUMENT_STAGE = "document-stage"
    DOCUMENT_READY = "document-ready"
    ANSWER_CHUNK = "answer-chunk"
    FINAL = "final"
    FAILED = "failed"


class Phase(str, Enum):
    UNDERSTANDING = "understanding"
    PLANNING = "planning"
    SEARCHING = "searching"
    SCRAPING = "scraping"
    ANALYZING = "analyzing"
    SYNTHESIZING = "synthesizing"
    COMPLETE = "complete"
    ERROR = "error"


class ErrorKind(str, Enum):
    SEARCH = "search"
    FETCH = "fetch"
    LLM = "llm"
    UNKNOWN = "unknown"


class DocumentStage(str, Enum):
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    SCORING = "scoring"


@dataclass(frozen=True)
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        if self.event == EventType.FINAL:
            return True
        return self.event == EventType.FAILED and bool(self.data.get("fatal"))

    def to_message(self) -> dict[str, str]:
        """The `event`/`data` pair an SSE response sends for this event."""
        return {"event": self.event.value, "data": json.dumps(self.data)}
