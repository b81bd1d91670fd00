from __future__ import annotations

from typing import Any

import httpx

from firesearch.config import settings
from firesearch.tools.tavily_search import FetchResult, SearchHit


def _headers() -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if settings.firecrawl_api_key:
        headers["Authorization"] = f"Bearer {settings.firecrawl_api_key}"
    return headers


def _endpoint(path: str) -> str:
    base = settings.firecrawl_base_url.strip().rstrip("/") or "https://api.firecrawl.dev"
    return f"{base}{path}"


async def search(
    query: str,
    *,
    max_results: int = 5,
    formats: tuple[str, ...] = ("markdown",),
    timeout: float = 30.0,
) -> list[SearchHit]:
    """Search through Firecrawl and return hits with their extracted markdown."""
    payload: dict[str, Any] = {"query": query, "limit": max_results}
    if formats:
        payload["scrapeOptions"] = {"formats": list(formats)}

    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.post(_endpoint("/v1/search"), json=payload, headers=_headers())
        response.raise_for_status()
        body = response.json()

    if body.get("success") is False:
        raise RuntimeError(body.get("error") or "Firecrawl search failed")

    hits: list[SearchHit] = []
    total = max(len(body.get("data", []) or []), 1)
    for idx, item in enumerate(body.get("data", []) or []):
        metadata = item.get("metadata") or {}
        content = item.get("markdown") or item.get("content") or None
        hits.append(
            SearchHit(
                title=item.get("title") or metadata.get("title") or "",
                url=item.get("url") or metadata.get("sourceURL") or "",
                content=content,
                # Firecrawl returns results in rank order without a score.
                score=max(0.0, 1.0 - (idx / total)),
            )
        )
    return hits


async def scrape(url: str, *, timeout: float = 15.0) -> FetchResult:
    """Fetch one page and extract it to markdown."""
    payload = {
        "url": url,
        "formats": ["markdown"],
        "timeout": int(timeout * 1000),
    }
    try:
        async with httpx.AsyncClient(timeout=timeout + 5.0) as client:
            response = await client.post(_endpoint("/v1/scrape"), json=payload, headers=_headers())
            response.raise_for_status()
            body = response.json()
    except httpx.TimeoutException:
        return FetchResult(ok=False, error_kind="timeout")
    except httpx.HTTPError:
        return FetchResult(ok=False, error_kind="http")

    data = body.get("data") or {}
    markdown = data.get("markdown") or ""
    if not body.get("success", True) or not markdown.strip():
        return FetchResult(ok=False, error_kind="empty")
    return FetchResult(ok=True, content=markdown)
