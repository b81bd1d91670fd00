from __future__ import annotations

import pytest

from conftest import FakeLLM, long_text
from firesearch.agents.summarizer import SourceSummarizer, is_negative_summary


@pytest.mark.parametrize(
    "text",
    [
        "NO_RELEVANT_INFORMATION",
        "No relevant information found.",
        "The page does not mention the founders.",
        "There is no specific date given.",
        "N/A",
        "None.",
    ],
)
def test_negative_replies_are_detected(text):
    assert is_negative_summary(text)


def test_real_findings_are_not_negative():
    assert not is_negative_summary("Anthropic was founded in 2021 by Dario and Daniela Amodei.")


@pytest.mark.asyncio
async def test_summarize_returns_one_cleaned_sentence(config):
    llm = FakeLLM({"summarizer": '  "Anthropic was founded in 2021."  '})
    summarizer = SourceSummarizer(config, llm)

    assert await summarizer.summarize(long_text("Anthropic history"), "Anthropic founding") == "Anthropic was founded in 2021."


@pytest.mark.asyncio
async def test_negative_reply_becomes_empty(config):
    summarizer = SourceSummarizer(config, FakeLLM({"summarizer": "NO_RELEVANT_INFORMATION"}))

    assert await summarizer.summarize(long_text("unrelated"), "query") == ""


@pytest.mark.asyncio
async def test_short_content_is_not_sent_to_the_model(config):
    llm = FakeLLM({"summarizer": "Should not be used."})
    summarizer = SourceSummarizer(config, llm)

    assert await summarizer.summarize("tiny", "query") == ""
    assert llm.calls == []


@pytest.mark.asyncio
async def test_long_replies_are_truncated_to_the_limit(config):
    summarizer = SourceSummarizer(config, FakeLLM({"summarizer": "word " * 100}))

    summary = await summarizer.summarize(long_text("x"), "query")

    assert len(summary) <= config.summary_char_limit
    assert summary.endswith("...")


@pytest.mark.asyncio
async def test_model_failure_becomes_empty(config):
    summarizer = SourceSummarizer(config, FakeLLM({"summarizer": RuntimeError("rate limited")}))

    assert await summarizer.summarize(long_text("x"), "query") == ""


@pytest.mark.asyncio
async def test_content_is_truncated_before_prompting(config):
    llm = FakeLLM({"summarizer": "Fact."})
    summarizer = SourceSummarizer(config.with_overrides(summary_input_chars=500), llm)

    await summarizer.summarize("A" * 400 + "B" * 2000, "query")

    prompt = llm.calls[0].prompt
    assert "A" * 400 in prompt
    assert "B" * 101 not in prompt
