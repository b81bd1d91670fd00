"""OpenAI-compatible language-model client (OpenRouter by default)."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, AsyncIterator

from firesearch.config import settings
from firesearch.services import logger as log_service


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


def _usage_from(raw: Any) -> Usage:
    if raw is None:
        return Usage()
    return Usage(
        input_tokens=getattr(raw, "prompt_tokens", 0) or 0,
        output_tokens=getattr(raw, "completion_tokens", 0) or 0,
    )


class ChatStream:
    """Async iterator over the text deltas of a streamed chat completion."""

    def __init__(self, stream: Any):
        self._stream = stream
        self.usage = Usage()

    async def __aiter__(self) -> AsyncIterator[str]:
        async for chunk in self._stream:
            usage = getattr(chunk, "usage", None)
            if usage:
                self.usage = _usage_from(usage)
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            if not delta:
                continue
            text = getattr(delta, "content", None)
            if text:
                yield text

    async def close(self) -> None:
        closer = getattr(self._stream, "close", None)
        if closer is not None:
            await closer()


class LLMClient:
    """Text-in/text-out access to the model provider.

    `complete` returns the whole response; `stream` yields text chunks as
    they arrive. Both take a model id and temperature, falling back to the
    client's defaults.
    """

    def __init__(
        self,
        openai_client: Any,
        *,
        default_model: str,
        temperature: float = 0.1,
        timeout: float | None = 60.0,
    ):
        self._client = openai_client
        self.default_model = default_model
        self.temperature = temperature
        self.timeout = timeout

    @staticmethod
    def _temperature_for_model(model: str, requested: float) -> float:
        # Some OpenAI GPT-5-compatible gateways reject any temperature but 1.
        if "gpt-5" in (model or "").lower():
            return 1
        return requested

    def _request_kwargs(
        self, system: str, prompt: str, model: str | None, temperature: float | None
    ) -> dict[str, Any]:
        used_model = model or self.default_model
        kwargs: dict[str, Any] = {
            "model": used_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature_for_model(
                used_model, self.temperature if temperature is None else temperature
            ),
        }
        if self.timeout:
            kwargs["timeout"] = self.timeout
        return kwargs

    async def complete(
        self,
        system: str,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        caller: str = "llm",
    ) -> str:
        kwargs = self._request_kwargs(system, prompt, model, temperature)
        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as e:
            log_service.log_llm_call(
                model=kwargs["model"],
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e),
            )
            raise
        usage = _usage_from(getattr(response, "usage", None))
        log_service.log_llm_call(
            model=kwargs["model"],
            caller=caller,
            duration_ms=int((time.monotonic() - t0) * 1000),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return (getattr(choices[0].message, "content", None) or "").strip()

    async def stream(
        self,
        system: str,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        caller: str = "llm",
    ) -> AsyncIterator[str]:
        kwargs = self._request_kwargs(system, prompt, model, temperature)
        t0 = time.monotonic()
        raw = await self._client.chat.completions.create(
            **kwargs,
            stream=True,
            stream_options={"include_usage": True},
        )
        chat_stream = ChatStream(raw)
        try:
            async for text in chat_stream:
                yield text
        finally:
            await chat_stream.close()
            log_service.log_llm_call(
                model=kwargs["model"],
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                input_tokens=chat_stream.usage.input_tokens,
                output_tokens=chat_stream.usage.output_tokens,
            )


def get_client(
    *,
    default_model: str | None = None,
    temperature: float | None = None,
    timeout: float | None = None,
) -> LLMClient:
    """Build the client against the configured OpenAI-compatible endpoint.

    Model, temperature and timeout fall back to the environment settings.
    """
    from openai import AsyncOpenAI

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
    )
    return LLMClient(
        openai_client,
        default_model=default_model or get_model(),
        temperature=settings.llm_temperature if temperature is None else temperature,
        timeout=settings.llm_timeout_seconds if timeout is None else timeout,
    )


def get_model() -> str:
    """The fast model id, used for every call that does not name one."""
    return settings.fast_model


_client: LLMClient | None = None


def client() -> LLMClient:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
