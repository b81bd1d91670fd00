from __future__ import annotations

from dataclasses import dataclass, replace

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # LLM endpoint (OpenAI-compatible, OpenRouter by default)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    fast_model: str = "openai/gpt-4o-mini"
    quality_model: str = "openai/gpt-4o"
    llm_temperature: float = 0.1
    llm_timeout_seconds: float = 60.0

    # Search-and-extract provider
    search_provider: str = "firecrawl"  # firecrawl | tavily
    search_fallback_to_tavily: bool = True
    firecrawl_api_key: str = ""
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    tavily_api_key: str = ""

    # Planning
    max_sub_questions: int = 5
    max_queries: int = 5
    max_book_queries: int = 8

    # Searching
    max_results_per_query: int = 5
    search_timeout_seconds: float = 30.0
    fetch_timeout_seconds: float = 15.0
    inline_fetch: bool = True
    max_documents_to_fetch: int = 5

    # Content processing
    min_content_length: int = 250
    min_content_length_for_summary: int = 100
    summary_char_limit: int = 150
    summary_input_chars: int = 2000
    score_increment: float = 0.2

    # Coverage
    min_answer_confidence: float = 0.7
    partial_confidence: float = 0.3
    partial_stop_round: int = 2
    identifier_match_confidence: float = 0.85
    max_documents_to_check: int = 10
    answer_check_preview: int = 2500

    # Control loop
    max_search_attempts: int = 3
    max_retries: int = 1
    request_deadline_seconds: float = 300.0

    # Synthesis
    max_documents_for_synthesis: int = 12
    max_documents_for_book_synthesis: int = 25
    min_sources_for_book: int = 10
    synthesis_excerpt_chars: int = 1500
    context_preview_length: int = 500
    follow_up_count: int = 3
    follow_up_max_length: int = 80

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


@dataclass(frozen=True, slots=True)
class ResearchConfig:
    """Tunables for one research pipeline.

    Passed whole into the pipeline constructor; components never read the
    environment themselves.
    """

    fast_model: str = "openai/gpt-4o-mini"
    quality_model: str = "openai/gpt-4o"
    temperature: float = 0.1

    max_sub_questions: int = 5
    max_queries: int = 5
    max_book_queries: int = 8

    max_results_per_query: int = 5
    search_timeout: float = 30.0
    fetch_timeout: float = 15.0
    llm_timeout: float = 60.0
    inline_fetch: bool = True
    max_documents_to_fetch: int = 5

    min_content_length: int = 250
    min_content_length_for_summary: int = 100
    summary_char_limit: int = 150
    summary_input_chars: int = 2000
    score_increment: float = 0.2

    min_answer_confidence: float = 0.7
    partial_confidence: float = 0.3
    partial_stop_round: int = 2
    identifier_match_confidence: float = 0.85
    max_documents_to_check: int = 10
    answer_check_preview: int = 2500

    max_search_attempts: int = 3
    max_retries: int = 1
    request_deadline: float | None = 300.0

    max_documents_for_synthesis: int = 12
    max_documents_for_book_synthesis: int = 25
    min_sources_for_book: int = 10
    synthesis_excerpt_chars: int = 1500
    context_preview_length: int = 500
    follow_up_count: int = 3
    follow_up_max_length: int = 80

    @classmethod
    def from_settings(cls, source: Settings) -> "ResearchConfig":
        deadline = float(source.request_deadline_seconds)
        return cls(
            fast_model=source.fast_model,
            quality_model=source.quality_model,
            temperature=float(source.llm_temperature),
            max_sub_questions=max(int(source.max_sub_questions), 1),
            max_queries=max(int(source.max_queries), 1),
            max_book_queries=max(int(source.max_book_queries), 1),
            max_results_per_query=max(int(source.max_results_per_query), 1),
            search_timeout=float(source.search_timeout_seconds),
            fetch_timeout=float(source.fetch_timeout_seconds),
            llm_timeout=float(source.llm_timeout_seconds),
            inline_fetch=bool(source.inline_fetch),
            max_documents_to_fetch=max(int(source.max_documents_to_fetch), 0),
            min_content_length=max(int(source.min_content_length), 0),
            min_content_length_for_summary=max(int(source.min_content_length_for_summary), 0),
            summary_char_limit=max(int(source.summary_char_limit), 20),
            summary_input_chars=max(int(source.summary_input_chars), 200),
            score_increment=float(source.score_increment),
            min_answer_confidence=float(source.min_answer_confidence),
            partial_confidence=float(source.partial_confidence),
            partial_stop_round=max(int(source.partial_stop_round), 1),
            identifier_match_confidence=float(source.identifier_match_confidence),
            max_documents_to_check=max(int(source.max_documents_to_check), 1),
            answer_check_preview=max(int(source.answer_check_preview), 200),
            max_search_attempts=max(int(source.max_search_attempts), 1),
            max_retries=max(int(source.max_retries), 0),
            request_deadline=deadline if deadline > 0 else None,
            max_documents_for_synthesis=max(int(source.max_documents_for_synthesis), 1),
            max_documents_for_book_synthesis=max(int(source.max_documents_for_book_synthesis), 1),
            min_sources_for_book=max(int(source.min_sources_for_book), 0),
            synthesis_excerpt_chars=max(int(source.synthesis_excerpt_chars), 200),
            context_preview_length=max(int(source.context_preview_length), 50),
            follow_up_count=max(int(source.follow_up_count), 1),
            follow_up_max_length=max(int(source.follow_up_max_length), 10),
        )

    def with_overrides(self, **changes) -> "ResearchConfig":
        return replace(self, **changes)


settings = Settings()
