from __future__ import annotations

from firesearch.research_core.scoring import query_terms, score


def test_query_terms_are_lowercased_deduplicated_and_stripped():
    assert query_terms('Who founded "Anthropic"? who FOUNDED it') == ["who", "founded", "anthropic", "it"]


def test_score_adds_a_fixed_increment_per_term_present():
    content = "Anthropic was founded in 2021 by former OpenAI staff."

    assert score(content, ["anthropic", "founded", "berlin"]) == 0.4


def test_score_is_capped_at_one():
    content = "one two three four five six seven"

    assert score(content, content.split()) == 1.0


def test_score_is_zero_without_content_or_terms():
    assert score("", ["a"]) == 0.0
    assert score("text", []) == 0.0


def test_score_honours_a_custom_increment():
    assert score("alpha beta", ["alpha", "beta"], increment=0.25) == 0.5


def test_score_is_deterministic():
    content = "Release notes for Product 1234"
    terms = query_terms("product 1234 release")

    assert score(content, terms) == score(content, terms)
