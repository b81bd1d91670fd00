from __future__ import annotations

from pydantic import BaseModel, Field

from firesearch.models.research import PriorTurn, ResearchMode, ResearchRequest


# --- Requests ---


class PriorTurnBody(BaseModel):
    query: str
    response: str


class ResearchRequestBody(BaseModel):
    topic: str = Field(min_length=1)
    prior_turns: list[PriorTurnBody] = Field(default_factory=list)
    mode: ResearchMode = ResearchMode.QUESTION
    author: str | None = None

    def to_request(self) -> ResearchRequest:
        return ResearchRequest(
            topic=self.topic.strip(),
            prior_turns=tuple(PriorTurn(query=t.query, response=t.response) for t in self.prior_turns),
            mode=self.mode,
            author=(self.author or "").strip() or None,
        )


# --- Responses ---


class HealthResponse(BaseModel):
    status: str
    service: str
