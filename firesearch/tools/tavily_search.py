from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tavily import AsyncTavilyClient

from firesearch.config import settings


@dataclass
class SearchHit:
    title: str
    url: str
    content: str | None = None
    score: float = 0.0


@dataclass
class FetchResult:
    ok: bool
    content: str | None = None
    error_kind: str | None = None  # timeout | http | empty


async def search(
    query: str,
    *,
    max_results: int = 5,
    formats: tuple[str, ...] = ("markdown",),
    search_depth: str = "advanced",
    topic: str = "general",
) -> list[SearchHit]:
    """Execute a Tavily web search, asking for the extracted page text."""
    if not settings.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not configured")
    client = AsyncTavilyClient(api_key=settings.tavily_api_key)

    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "topic": topic,
        "include_raw_content": bool(formats),
    }
    response = await client.search(**kwargs)

    return [
        SearchHit(
            title=r.get("title", "") or "",
            url=r.get("url", "") or "",
            content=r.get("raw_content") or r.get("content") or None,
            score=float(r.get("score", 0.0) or 0.0),
        )
        for r in response.get("results", [])
    ]


async def extract(url: str) -> FetchResult:
    """Fetch and extract a single page through Tavily's extract endpoint."""
    if not settings.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not configured")
    client = AsyncTavilyClient(api_key=settings.tavily_api_key)
    response = await client.extract(urls=[url])

    for item in response.get("results", []):
        content = item.get("raw_content") or ""
        if content.strip():
            return FetchResult(ok=True, content=content)
    if response.get("failed_results"):
        return FetchResult(ok=False, error_kind="http")
    return FetchResult(ok=False, error_kind="empty")
