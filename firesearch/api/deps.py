from __future__ import annotations

from firesearch.agents.orchestrator import ResearchPipeline
from firesearch.config import ResearchConfig, settings


def get_research_config() -> ResearchConfig:
    return ResearchConfig.from_settings(settings)


def get_pipeline() -> ResearchPipeline:
    """A fresh pipeline per request; tests override this dependency."""
    return ResearchPipeline(get_research_config())
