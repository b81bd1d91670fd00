from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from firesearch.llm_client import LLMClient, get_client


def _openai(create: AsyncMock) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def _response(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3),
    )


class _FakeStream:
    def __init__(self, chunks):
        self._chunks = chunks
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk

    async def close(self):
        self.closed = True


def _delta(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))], usage=None)


@pytest.mark.asyncio
async def test_complete_sends_system_and_user_messages():
    create = AsyncMock(return_value=_response("  An answer.  "))
    llm = LLMClient(_openai(create), default_model="fast-model", temperature=0.2, timeout=30.0)

    text = await llm.complete("system text", "user text", caller="planner")

    assert text == "An answer."
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "fast-model"
    assert kwargs["temperature"] == 0.2
    assert kwargs["timeout"] == 30.0
    assert kwargs["messages"] == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "user text"},
    ]


@pytest.mark.asyncio
async def test_complete_forces_temperature_for_gpt5_models():
    create = AsyncMock(return_value=_response("ok"))
    llm = LLMClient(_openai(create), default_model="fast-model")

    await llm.complete("s", "p", model="openai/gpt-5-mini", temperature=0.0)

    assert create.await_args.kwargs["model"] == "openai/gpt-5-mini"
    assert create.await_args.kwargs["temperature"] == 1


@pytest.mark.asyncio
async def test_complete_propagates_provider_errors():
    create = AsyncMock(side_effect=RuntimeError("rate limited"))
    llm = LLMClient(_openai(create), default_model="fast-model")

    with pytest.raises(RuntimeError, match="rate limited"):
        await llm.complete("s", "p")


@pytest.mark.asyncio
async def test_stream_yields_text_deltas_and_closes():
    usage_chunk = SimpleNamespace(choices=[], usage=SimpleNamespace(prompt_tokens=5, completion_tokens=2))
    raw = _FakeStream([_delta("Hello"), _delta(None), _delta(" world"), usage_chunk])
    create = AsyncMock(return_value=raw)
    llm = LLMClient(_openai(create), default_model="fast-model")

    chunks = [text async for text in llm.stream("s", "p", model="quality-model")]

    assert chunks == ["Hello", " world"]
    assert raw.closed
    assert create.await_args.kwargs["stream"] is True
    assert create.await_args.kwargs["model"] == "quality-model"


def test_get_client_uses_configured_endpoint():
    fake_openai = MagicMock()
    with patch.dict("sys.modules", {"openai": fake_openai}), patch(
        "firesearch.llm_client.settings"
    ) as mock_settings:
        mock_settings.openrouter_base_url = "  "
        mock_settings.openrouter_api_key = "sk-test"
        mock_settings.fast_model = "fast-model"
        mock_settings.llm_temperature = 0.1
        mock_settings.llm_timeout_seconds = 20.0

        llm = get_client()

    fake_openai.AsyncOpenAI.assert_called_once_with(
        api_key="sk-test", base_url="https://openrouter.ai/api/v1"
    )
    assert llm.default_model == "fast-model"
    assert llm.timeout == 20.0
