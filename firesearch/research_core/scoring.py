from __future__ import annotations

import re

DEFAULT_INCREMENT = 0.2


def query_terms(text: str) -> list[str]:
    """Lower-cased, de-duplicated whitespace terms of a query."""
    terms: list[str] = []
    seen: set[str] = set()
    for raw in text.lower().split():
        term = raw.strip("\"'()[]{}?!.,;:")
        if not term or term in seen:
            continue
        seen.add(term)
        terms.append(term)
    return terms


def score(content: str, terms: list[str], *, increment: float = DEFAULT_INCREMENT) -> float:
    """Cheap relevance triage: a fixed increment per query term present, capped at 1.0."""
    if not content or not terms:
        return 0.0
    haystack = re.sub(r"\s+", " ", content.lower())
    hits = sum(1 for term in terms if term in haystack)
    return min(round(hits * increment, 6), 1.0)
