from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Awaitable, Callable

from loguru import logger

from firesearch.agents.summarizer import SourceSummarizer
from firesearch.config import ResearchConfig
from firesearch.models.events import DocumentStage, ErrorKind, SSEEvent
from firesearch.models.research import Document
from firesearch.research_core.registry import SourceRegistry
from firesearch.research_core.scoring import query_terms, score
from firesearch.services import streaming
from firesearch.tools import web_utils
from firesearch.tools.search_provider import SearchProvider

Emit = Callable[[SSEEvent], Awaitable[Any]]


async def _discard(event: SSEEvent) -> None:
    return None


class SearchExecutor:
    """Runs one query at a time against the search provider.

    Each returned document is fetched if needed, scored, summarized and
    merged into the session registry. Per-document work for one query runs
    concurrently and is joined before `execute` returns.
    """

    def __init__(
        self,
        config: ResearchConfig,
        provider: SearchProvider,
        summarizer: SourceSummarizer,
        registry: SourceRegistry,
        emit: Emit | None = None,
    ):
        self.config = config
        self.provider = provider
        self.summarizer = summarizer
        self.registry = registry
        self.emit = emit or _discard
        self.pending: list[tuple[Document, str]] = []

    async def execute(
        self,
        query: str,
        max_results: int | None = None,
        timeout: float | None = None,
    ) -> list[Document]:
        max_results = max_results or self.config.max_results_per_query
        timeout = timeout or self.config.search_timeout
        try:
            hits = await asyncio.wait_for(
                self.provider.search(query, max_results=max_results, formats=("markdown",)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Search timed out after {timeout}s: '{query[:80]}'")
            await self.emit(
                streaming.failed(f"Search timed out for \"{query}\"", ErrorKind.SEARCH, fatal=False)
            )
            return []
        except Exception as e:
            logger.warning(f"Search failed for '{query[:80]}': {e}")
            await self.emit(
                streaming.failed(f"Search failed for \"{query}\": {e}", ErrorKind.SEARCH, fatal=False)
            )
            return []

        documents: list[Document] = []
        seen: set[str] = set()
        for hit in hits[:max_results]:
            url = web_utils.normalize_url(hit.url or "")
            if not web_utils.is_valid_url(url) or url in seen:
                continue
            seen.add(url)
            documents.append(
                Document(url=url, title=(hit.title or "").strip(), content=hit.content or None)
            )

        await self.emit(streaming.documents_found(documents, query))
        if not documents:
            return []

        if not self.config.inline_fetch:
            stubs = [d for d in documents if not d.has_content]
            self.pending.extend((d, query) for d in stubs)
            documents = [d for d in documents if d.has_content]

        return await self._process_batch([(d, query) for d in documents])

    async def complete_stubs(self, stubs: list[tuple[Document, str]]) -> list[Document]:
        """Fetch content for documents that arrived without any, then process them."""
        batch = stubs[: self.config.max_documents_to_fetch] if self.config.max_documents_to_fetch else []
        if len(stubs) > len(batch):
            logger.info(f"Skipping {len(stubs) - len(batch)} content-less documents over the fetch limit")
        return await self._process_batch(batch)

    async def _process_batch(self, batch: list[tuple[Document, str]]) -> list[Document]:
        results = await asyncio.gather(
            *(self._process(document, query) for document, query in batch),
            return_exceptions=True,
        )
        processed: list[Document] = []
        for (document, _), result in zip(batch, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(f"Processing failed for {document.url}: {result}")
                continue
            if result is not None:
                processed.append(result)
        return processed

    async def _process(self, document: Document, query: str) -> Document | None:
        if not document.has_content:
            await self.emit(streaming.document_stage(document.url, document.title, DocumentStage.FETCHING))
            fetched = await self.fetch_content(document)
            if fetched is None:
                return None
            document = fetched

        content = document.content or ""
        if len(content.strip()) < self.config.min_content_length:
            logger.debug(f"Discarding {document.url}: {len(content.strip())} chars of content")
            return None

        await self.emit(streaming.document_stage(document.url, document.title, DocumentStage.SCORING))
        relevance = score(content, query_terms(query), increment=self.config.score_increment)

        await self.emit(streaming.document_stage(document.url, document.title, DocumentStage.EXTRACTING))
        fact = await self.summarizer.summarize(content, query)

        merged = await self.registry.merge_locked(
            replace(document, relevance_score=relevance, extracted_fact=fact or None)
        )
        await self.emit(streaming.document_ready(document.url, fact))
        return merged

    async def fetch_content(self, document: Document) -> Document | None:
        """A copy of `document` with fetched content, or None if the fetch failed."""
        host = web_utils.hostname(document.url)
        timeout = self.config.fetch_timeout
        try:
            result = await asyncio.wait_for(
                self.provider.fetch(document.url, timeout=timeout), timeout=timeout
            )
        except asyncio.TimeoutError:
            result = None
        except Exception as e:
            logger.warning(f"Fetch failed for {document.url}: {e}")
            await self.emit(streaming.note(f"Could not read {host}, skipping it", url=document.url))
            return None

        if result is None or (not result.ok and result.error_kind == "timeout"):
            logger.info(f"Fetch timed out for {document.url}")
            await self.emit(
                streaming.note(f"{host} is taking too long to respond, moving on...", url=document.url)
            )
            return None
        if not result.ok or not (result.content or "").strip():
            logger.info(f"Fetch returned no content for {document.url} ({result.error_kind})")
            await self.emit(streaming.note(f"Could not read {host}, skipping it", url=document.url))
            return None
        return replace(document, content=result.content)
