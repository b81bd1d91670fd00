"""Version and numeric identifier handling.

Questions such as "What is DeepSeek R1 0528?" name a product plus a build or
date token. Sources spell the same thing as "R1-0528", "R1 0528" or "updated
on May 28, 2025", so matching works on a normalized form where hyphens,
underscores and repeated spaces collapse to one space.
"""
from __future__ import annotations

import calendar
import re
from typing import Iterable

from firesearch.models.research import Document

VERSION_PATTERN = re.compile(
    r"\b\d{3,4}\b|\bv\d+(?:\.\d+)+\b|\bversion\s+\d+(?:\.\d+)*",
    re.IGNORECASE,
)

_LEADING_QUESTION = re.compile(
    r"^(?:what|who|when|where|which|how)(?:\s+(?:is|are|was|were|does|do|did))?\s+|^tell me about\s+",
    re.IGNORECASE,
)

_IDENTITY_QUESTION = re.compile(
    r"^(?:(?:what|who|which)\s+(?:is|are|was|were)|what's|tell me about|explain|describe)\s+(?:the\s+|an?\s+)?",
    re.IGNORECASE,
)

_YEAR = re.compile(r"^(?:19|20)\d\d$")

_STOPWORDS = {
    "a", "an", "and", "about", "at", "by", "for", "from", "in", "is", "it",
    "of", "on", "or", "since", "the", "to", "was", "what", "when", "with",
}


def normalize(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[-_/]+", " ", text)
    text = re.sub(r"[^\w\s.,]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def has_version_pattern(text: str) -> bool:
    return bool(VERSION_PATTERN.search(text))


def version_tokens(text: str) -> list[str]:
    return [m.group(0) for m in VERSION_PATTERN.finditer(text)]


def strip_version_tokens(text: str, *, max_length: int = 50) -> str:
    """Reduce a question about a versioned product to a base-product search."""
    stripped = VERSION_PATTERN.sub(" ", text)
    stripped = re.sub(r"\bspecific version\b", " ", stripped, flags=re.IGNORECASE)
    stripped = re.sub(r"[?!.]+$", "", stripped.strip())
    stripped = _LEADING_QUESTION.sub("", stripped.strip())
    stripped = re.sub(r"\s+", " ", stripped).strip(" -,")
    return stripped[:max_length].strip()


def date_forms(token: str) -> list[str]:
    """`0528` -> `["may 28"]`; tokens that are not a valid MMDD give nothing."""
    if not re.fullmatch(r"\d{4}", token):
        return []
    month, day = int(token[:2]), int(token[2:])
    if not 1 <= month <= 12:
        return []
    if not 1 <= day <= calendar.monthrange(2024, month)[1]:
        return []
    return [f"{calendar.month_name[month].lower()} {day}"]


def _product_before(normalized_question: str, token: str) -> str | None:
    words = normalized_question.split()
    norm_token = normalize(token)
    token_words = norm_token.split()
    for i in range(len(words) - len(token_words) + 1):
        if words[i : i + len(token_words)] == token_words:
            if i == 0:
                return None
            previous = words[i - 1].strip(".,")
            if not previous or previous in _STOPWORDS:
                return None
            return previous
    return None


def identifier_variants(product: str, token: str) -> set[str]:
    """Normalized spellings under which `product token` may appear in a source."""
    product_norm = normalize(product)
    token_norm = normalize(token)
    return {
        f"{product_norm} {token_norm}",
        f"{product_norm}{token_norm}".replace(" ", ""),
    }


def _contains(haystack: str, needle: str) -> bool:
    return bool(re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack))


def identity_subject(question: str) -> str | None:
    """The thing an identity question ("What is X?") asks about, else None.

    Questions that ask for an attribute of the subject ("What is the price
    of X?", "What was X revenue in Q3 2024?") give None.
    """
    text = question.strip()
    match = _IDENTITY_QUESTION.match(text)
    if not match:
        return None
    subject = re.sub(r"[?!.]+$", "", text[match.end():]).strip()
    words = normalize(subject).split()
    if not words or any(word in _STOPWORDS for word in words):
        return None
    return subject


def _is_bare_year(question: str, product: str, token: str) -> bool:
    if not _YEAR.match(token):
        return False
    joined = rf"(?<!\w){re.escape(product)}-{re.escape(token)}(?!\w)"
    return not re.search(joined, question.lower())


def find_identifier_evidence(question: str, documents: Iterable[Document]) -> list[Document]:
    """Documents that name the product an identity question asks about.

    Only identity questions qualify, and the version token must close the
    question's subject. A match is the product word followed by the token in
    hyphenated, spaced or joined form, or the product word together with the
    token's "Month Day" date form. Bare years (19xx, 20xx) are not
    identifiers unless the question hyphenates them onto the product.
    """
    subject = identity_subject(question)
    if subject is None:
        return []
    normalized_subject = normalize(subject)
    anchors: list[tuple[str, str]] = []
    for token in version_tokens(subject):
        if not normalized_subject.endswith(normalize(token)):
            continue
        product = _product_before(normalized_subject, token)
        if product and not _is_bare_year(question, product, token):
            anchors.append((product, token))
    if not anchors:
        return []

    matches: list[Document] = []
    for document in documents:
        text = normalize(" ".join(filter(None, [document.title, document.extracted_fact, document.content])))
        if not text:
            continue
        for product, token in anchors:
            if any(_contains(text, variant) for variant in identifier_variants(product, token)):
                matches.append(document)
                break
            if _contains(text, normalize(product)) and any(
                _contains(text, form) for form in date_forms(token)
            ):
                matches.append(document)
                break
    return matches
