from __future__ import annotations

import json
from dataclasses import FrozenInstanceError

import pytest

from firesearch.models.events import DocumentStage, ErrorKind, EventType, Phase, SSEEvent
from firesearch.models.research import Document
from firesearch.services import streaming


def test_to_message_pairs_event_name_with_json_data():
    event = streaming.phase_changed(Phase.SEARCHING, "Running 3 searches...")

    message = event.to_message()

    assert message["event"] == "phase-changed"
    assert json.loads(message["data"]) == {"phase": "searching", "message": "Running 3 searches..."}


def test_only_final_and_fatal_failures_are_terminal():
    assert streaming.final("answer", []).is_terminal
    assert streaming.failed("boom", ErrorKind.LLM).is_terminal
    assert not streaming.failed("query failed", ErrorKind.SEARCH, fatal=False).is_terminal
    assert not streaming.note("thinking").is_terminal


def test_event_payloads():
    doc = Document(url="https://a.example/1", title="A", content="x" * 500, relevance_score=0.6)

    assert streaming.search_started("q", 1, 3).data == {"query": "q", "index": 1, "total": 3}
    assert streaming.document_stage(doc.url, doc.title, DocumentStage.SCORING).data["stage"] == "scoring"
    assert streaming.document_ready(doc.url, "Fact.").data == {"url": doc.url, "fact": "Fact."}
    assert streaming.answer_chunk("text").data == {"text": "text"}

    found = streaming.documents_found([doc], "q").data
    assert found["query"] == "q"
    assert found["documents"][0]["url"] == doc.url
    assert len(found["documents"][0]["content_preview"]) == 300

    final = streaming.final("answer", [doc], ["Next?"], runtime_ms=12).data
    assert final["follow_ups"] == ["Next?"]
    assert final["runtime_ms"] == 12


def test_events_are_immutable():
    event = SSEEvent(event=EventType.NOTE, data={"message": "hi"})

    with pytest.raises(FrozenInstanceError):
        event.event = EventType.FINAL
    assert event.data == {"message": "hi"}
