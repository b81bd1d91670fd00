from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from firesearch.config import settings
from firesearch.tools import firecrawl, tavily_search
from firesearch.tools.tavily_search import FetchResult, SearchHit


@dataclass
class SearchResponse:
    results: list[SearchHit]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None


class SearchProvider(Protocol):
    """Search-and-extract capability used by the search executor."""

    async def search(
        self, query: str, *, max_results: int, formats: tuple[str, ...] = ("markdown",)
    ) -> list[SearchHit]: ...

    async def fetch(self, url: str, *, timeout: float) -> FetchResult: ...


async def search(
    query: str,
    *,
    max_results: int = 5,
    formats: tuple[str, ...] = ("markdown",),
) -> SearchResponse:
    provider = settings.search_provider.lower().strip()
    use_fallback = settings.search_fallback_to_tavily and bool(settings.tavily_api_key)

    if provider == "tavily":
        results = await tavily_search.search(query, max_results=max_results, formats=formats)
        return SearchResponse(results=results, provider="tavily")

    if provider == "firecrawl":
        try:
            results = await firecrawl.search(query, max_results=max_results, formats=formats)
            if results or not use_fallback:
                return SearchResponse(results=results, provider="firecrawl")

            fallback_results = await tavily_search.search(query, max_results=max_results, formats=formats)
            return SearchResponse(
                results=fallback_results,
                provider="tavily",
                fallback_from="firecrawl",
                fallback_reason="firecrawl returned zero results",
            )
        except Exception as e:
            if not use_fallback:
                raise
            logger.warning(f"Firecrawl search failed for '{query[:80]}', falling back to Tavily: {e}")
            fallback_results = await tavily_search.search(query, max_results=max_results, formats=formats)
            return SearchResponse(
                results=fallback_results,
                provider="tavily",
                fallback_from="firecrawl",
                fallback_reason=str(e),
            )

    raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")


async def fetch(url: str, *, timeout: float = 15.0) -> FetchResult:
    provider = settings.search_provider.lower().strip()
    if provider == "tavily":
        return await tavily_search.extract(url)
    if provider == "firecrawl":
        return await firecrawl.scrape(url, timeout=timeout)
    raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")


class WebSearchProvider:
    """`SearchProvider` backed by the configured web search service."""

    async def search(
        self, query: str, *, max_results: int, formats: tuple[str, ...] = ("markdown",)
    ) -> list[SearchHit]:
        response = await search(query, max_results=max_results, formats=formats)
        if response.fallback_from:
            logger.info(
                f"Search for '{query[:80]}' served by {response.provider} "
                f"(fallback from {response.fallback_from}: {response.fallback_reason})"
            )
        return response.results

    async def fetch(self, url: str, *, timeout: float) -> FetchResult:
        return await fetch(url, timeout=timeout)
