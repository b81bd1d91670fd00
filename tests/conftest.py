"""Shared fakes: a scripted language model and an in-memory search provider."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from firesearch.config import ResearchConfig
from firesearch.tools.tavily_search import FetchResult, SearchHit

HANG = "hang"


def long_text(*phrases: str, length: int = 400) -> str:
    """Page-like content that clears the minimum content length."""
    body = " ".join(phrases) + " "
    filler = "This paragraph adds background detail about the subject. "
    while len(body) < length:
        body += filler
    return body


class FakeLLM:
    """Stands in for LLMClient.

    `responses` maps a caller name to a string, an exception, a list of
    those (consumed in order, the last one repeats) or a callable taking
    `(system, prompt)`.
    """

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        *,
        stream_chunks: list[str] | None = None,
        stream_error: Exception | None = None,
    ):
        self.responses = dict(responses or {})
        self.stream_chunks = list(stream_chunks or [])
        self.stream_error = stream_error
        self.calls: list[SimpleNamespace] = []

    def calls_for(self, caller: str) -> list[SimpleNamespace]:
        return [c for c in self.calls if c.caller == caller]

    def _next(self, caller: str, system: str, prompt: str) -> str:
        handler = self.responses.get(caller, "")
        if isinstance(handler, list):
            handler = handler.pop(0) if len(handler) > 1 else handler[0]
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            return handler(system, prompt)
        return handler

    async def complete(
        self,
        system: str,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        caller: str = "llm",
    ) -> str:
        self.calls.append(SimpleNamespace(kind="complete", caller=caller, system=system, prompt=prompt, model=model))
        return self._next(caller, system, prompt)

    async def stream(
        self,
        system: str,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        caller: str = "llm",
    ):
        self.calls.append(SimpleNamespace(kind="stream", caller=caller, system=system, prompt=prompt, model=model))
        for chunk in self.stream_chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error


class FakeSearchProvider:
    """Search results by query; `HANG` blocks until cancelled."""

    def __init__(
        self,
        results: dict[str, Any] | None = None,
        *,
        default: Any = None,
        fetches: dict[str, Any] | None = None,
    ):
        self.results = dict(results or {})
        self.default = default if default is not None else []
        self.fetches = dict(fetches or {})
        self.queries: list[str] = []
        self.fetched: list[str] = []
        self.cancelled = False

    async def _hang(self) -> None:
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled = True
            raise

    async def search(self, query: str, *, max_results: int, formats: tuple[str, ...] = ("markdown",)):
        self.queries.append(query)
        outcome = self.results.get(query, self.default)
        if callable(outcome):
            outcome = outcome(query)
        if outcome == HANG:
            await self._hang()
        if isinstance(outcome, BaseException):
            raise outcome
        return list(outcome)[:max_results]

    async def fetch(self, url: str, *, timeout: float) -> FetchResult:
        self.fetched.append(url)
        outcome = self.fetches.get(url, FetchResult(ok=False, error_kind="empty"))
        if outcome == HANG:
            await self._hang()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def hit(url: str, title: str = "", content: str | None = None) -> SearchHit:
    return SearchHit(title=title or url.rsplit("/", 1)[-1], url=url, content=content)


@pytest.fixture
def config() -> ResearchConfig:
    return ResearchConfig(
        search_timeout=0.5,
        fetch_timeout=0.5,
        request_deadline=10.0,
    )
