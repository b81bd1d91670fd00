"""Tests for API routes."""
import json

import pytest

from conftest import FakeLLM, FakeSearchProvider, hit, long_text


@pytest.fixture
def app():
    from firesearch.main import app

    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    from sse_starlette.sse import AppStatus

    # sse-starlette keeps a module-level exit event bound to the first loop it saw
    AppStatus.should_exit_event = None
    return TestClient(app)


def _parse_sse(body: str) -> list[tuple[str, dict]]:
    events = []
    for block in body.replace("\r\n", "\n").split("\n\n"):
        name, data = None, None
        for line in block.split("\n"):
            if line.startswith("event:"):
                name = line.split(":", 1)[1].strip()
            elif line.startswith("data:"):
                data = json.loads(line.split(":", 1)[1].strip())
        if name:
            events.append((name, data))
    return events


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "firesearch"


def test_research_streams_events_until_final(app, client, config):
    from firesearch.agents.orchestrator import ResearchPipeline
    from firesearch.api.deps import get_pipeline

    llm = FakeLLM(
        {
            "understand": "Looking into it.",
            "planner": '[{"question": "Who founded Anthropic?", "searchQuery": "Anthropic founders"}]',
            "summarizer": "Founded by the Amodeis.",
            "coverage": '[{"question": "Who founded Anthropic?", "answered": true, "confidence": 0.9}]',
            "synthesizer": "Next?",
        },
        stream_chunks=["Dario and Daniela Amodei [1]."],
    )
    provider = FakeSearchProvider(
        default=[hit("https://a.example/1", "Founders", long_text("Anthropic founders"))]
    )
    app.dependency_overrides[get_pipeline] = lambda: ResearchPipeline(config, llm, provider)

    response = client.post("/api/research", json={"topic": "Who founded Anthropic?"})

    assert response.status_code == 200
    events = _parse_sse(response.text)
    names = [name for name, _ in events]
    assert names[0] == "phase-changed"
    assert "answer-chunk" in names
    assert names[-1] == "final"
    assert events[-1][1]["answer"] == "Dario and Daniela Amodei [1]."


def test_research_rejects_an_empty_topic(client):
    response = client.post("/api/research", json={"topic": ""})
    assert response.status_code == 422


def test_request_body_converts_to_a_domain_request():
    from firesearch.models.research import ResearchMode
    from firesearch.models.schemas import ResearchRequestBody

    body = ResearchRequestBody(
        topic=" Deep Work ",
        mode="book",
        author="Cal Newport",
        prior_turns=[{"query": "q", "response": "r"}],
    )
    request = body.to_request()

    assert request.topic == "Deep Work"
    assert request.mode == ResearchMode.BOOK
    assert request.display_topic == "Deep Work by Cal Newport"
    assert request.prior_turns[0].query == "q"
