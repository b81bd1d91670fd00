from __future__ import annotations

import json

import pytest

from conftest import FakeLLM
from firesearch.agents.planner import QueryPlanner
from firesearch.models.research import PriorTurn, ResearchMode, ResearchRequest, SubQuestion


def _planner(config, response) -> tuple[QueryPlanner, FakeLLM]:
    llm = FakeLLM({"planner": response})
    return QueryPlanner(config, llm), llm


@pytest.mark.asyncio
async def test_comparison_request_becomes_one_sub_question(config):
    planner, _ = _planner(
        config,
        json.dumps(
            [
                {
                    "question": "How do Product A and Product B compare?",
                    "searchQuery": "Product A vs Product B comparison",
                }
            ]
        ),
    )

    sub_questions = await planner.decompose(ResearchRequest(topic="Compare Product A and Product B"))

    assert len(sub_questions) == 1
    assert "Product A" in sub_questions[0].search_query
    assert "Product B" in sub_questions[0].search_query
    assert sub_questions[0].answered is False
    assert sub_questions[0].confidence == 0.0


@pytest.mark.asyncio
async def test_decompose_accepts_fenced_json_and_drops_duplicates(config):
    raw = (
        "```json\n"
        '[{"question": "Who founded Anthropic?", "searchQuery": "Anthropic founders"},'
        ' {"question": "who founded anthropic?", "searchQuery": "again"},'
        ' {"question": "When was Anthropic founded?"}]\n'
        "```"
    )
    planner, _ = _planner(config, raw)

    sub_questions = await planner.decompose(ResearchRequest(topic="Who founded Anthropic and when"))

    assert [sq.question for sq in sub_questions] == ["Who founded Anthropic?", "When was Anthropic founded?"]
    assert sub_questions[1].search_query == "When was Anthropic founded?"


@pytest.mark.asyncio
async def test_decompose_caps_the_number_of_sub_questions(config):
    items = [{"question": f"Question {i}?", "searchQuery": f"query {i}"} for i in range(10)]
    planner, _ = _planner(config.with_overrides(max_sub_questions=3), json.dumps(items))

    sub_questions = await planner.decompose(ResearchRequest(topic="many things"))

    assert len(sub_questions) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("response", ["not json at all", "[]", RuntimeError("model down")])
async def test_unusable_output_falls_back_to_the_whole_request(config, response):
    planner, _ = _planner(config, response)

    sub_questions = await planner.decompose(ResearchRequest(topic="What is DeepSeek R1 0528?"))

    assert len(sub_questions) == 1
    assert sub_questions[0].question == "What is DeepSeek R1 0528?"
    assert sub_questions[0].search_query == "What is DeepSeek R1 0528?"


@pytest.mark.asyncio
async def test_book_mode_uses_the_book_prompt_and_author(config):
    planner, llm = _planner(config, '[{"question": "Core thesis", "searchQuery": "Atomic Habits summary"}]')
    request = ResearchRequest(topic="Atomic Habits", mode=ResearchMode.BOOK, author="James Clear")

    await planner.decompose(request)

    call = llm.calls_for("planner")[0]
    assert "book" in call.system.lower()
    assert "Atomic Habits by James Clear" in call.prompt


@pytest.mark.asyncio
async def test_prior_turns_are_included_as_context(config):
    planner, llm = _planner(config, "[]")
    turns = (PriorTurn(query="What is Anthropic?", response="An AI safety company."),)

    await planner.decompose(ResearchRequest(topic="Who founded it?"), turns)

    assert "What is Anthropic?" in llm.calls_for("planner")[0].prompt


@pytest.mark.asyncio
async def test_replan_targets_only_open_questions_in_order(config):
    planner, llm = _planner(config, "1. Anthropic company founders list\n2. Anthropic headquarters city")
    sub_questions = [
        SubQuestion(question="Who founded Anthropic?", search_query="Anthropic founders"),
        SubQuestion(question="When?", search_query="Anthropic founded", answered=True, confidence=0.9),
        SubQuestion(question="Where is it based?", search_query="Anthropic office"),
    ]

    queries = await planner.replan(sub_questions, 1)

    assert queries == ["Anthropic company founders list", "Anthropic headquarters city"]
    assert "Anthropic founded" not in llm.calls_for("planner")[0].system


@pytest.mark.asyncio
async def test_replan_degrades_versioned_questions_from_round_two(config):
    planner, llm = _planner(config, "unused")
    sub_questions = [SubQuestion(question="What is DeepSeek R1 0528?", search_query="DeepSeek R1 0528")]

    assert await planner.replan(sub_questions, 2) == ["DeepSeek R1"]
    assert llm.calls_for("planner") == []


@pytest.mark.asyncio
async def test_replan_round_one_still_rephrases_versioned_questions(config):
    planner, llm = _planner(config, "DeepSeek R1 latest version")
    sub_questions = [SubQuestion(question="What is DeepSeek R1 0528?", search_query="DeepSeek R1 0528")]

    assert await planner.replan(sub_questions, 1) == ["DeepSeek R1 latest version"]
    assert len(llm.calls_for("planner")) == 1


@pytest.mark.asyncio
async def test_replan_pads_missing_or_failed_alternatives(config):
    sub_questions = [
        SubQuestion(question="Q1?", search_query="alpha"),
        SubQuestion(question="Q2?", search_query="beta"),
    ]

    short, _ = _planner(config, "alpha broader terms")
    assert await short.replan(sub_questions, 1) == ["alpha broader terms", "beta news reports"]

    failing, _ = _planner(config, RuntimeError("timeout"))
    assert await failing.replan(sub_questions, 1) == ["alpha news reports", "beta news reports"]


@pytest.mark.asyncio
async def test_replan_is_capped_and_empty_when_everything_is_answered(config):
    open_questions = [SubQuestion(question=f"Q{i}?", search_query=f"q{i}") for i in range(4)]
    planner, _ = _planner(config.with_overrides(max_queries=2), "\n".join(f"alt {i}" for i in range(4)))

    assert await planner.replan(open_questions, 1) == ["alt 0", "alt 1"]

    answered = [SubQuestion(question="Q?", search_query="q", answered=True, confidence=0.95)]
    assert await planner.replan(answered, 1) == []
    assert await planner.replan(answered, 1, include_answered=True) == ["alt 0"]
