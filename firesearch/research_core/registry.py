from __future__ import annotations

import asyncio
from typing import Iterable

from firesearch.models.research import Document


def merge_documents(current: Document, incoming: Document) -> Document:
    """Combine two versions of the same URL without losing information.

    Content-bearing beats content-less and longer content beats shorter; a
    non-empty fact beats an empty one; the higher relevance score is kept.
    The result is the same whichever argument order is used.
    """
    if current.url != incoming.url:
        raise ValueError(f"Cannot merge documents for different URLs: {current.url} != {incoming.url}")

    content = _richer_text(current.content, incoming.content)
    fact = _richer_text(current.extracted_fact, incoming.extracted_fact)
    title = _richer_text(current.title, incoming.title) or ""

    scores = [s for s in (current.relevance_score, incoming.relevance_score) if s is not None]
    relevance = max(scores) if scores else None

    return Document(
        url=current.url,
        title=title,
        content=content,
        relevance_score=relevance,
        extracted_fact=fact,
    )


def _richer_text(a: str | None, b: str | None) -> str | None:
    a_clean = a if a and a.strip() else None
    b_clean = b if b and b.strip() else None
    if a_clean is None:
        return b_clean
    if b_clean is None:
        return a_clean
    if len(b_clean) != len(a_clean):
        return b_clean if len(b_clean) > len(a_clean) else a_clean
    # Equal length: pick deterministically so merge stays commutative
    return min(a_clean, b_clean)


class SourceRegistry:
    """Deduplicated documents for one research session, indexed by URL.

    Merges are serialized with an asyncio lock so concurrent document tasks
    can write without losing the better version of a URL.
    """

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, url: object) -> bool:
        return url in self._documents

    def get(self, url: str) -> Document | None:
        return self._documents.get(url)

    def documents(self) -> list[Document]:
        return list(self._documents.values())

    def merge(self, document: Document) -> Document:
        existing = self._documents.get(document.url)
        merged = merge_documents(existing or document, document)
        self._documents[document.url] = merged
        return merged

    def merge_many(self, documents: Iterable[Document]) -> None:
        for document in documents:
            self.merge(document)

    async def merge_locked(self, document: Document) -> Document:
        async with self._lock:
            return self.merge(document)

    def for_synthesis(self, limit: int) -> list[Document]:
        """Documents worth citing: content or a fact, best first."""
        usable = [d for d in self._documents.values() if d.has_content or d.has_fact]
        usable.sort(key=lambda d: (d.has_fact, d.relevance_score or 0.0), reverse=True)
        return usable[: max(limit, 0)]
