from __future__ import annotations

from firesearch.agents.base import BaseAgent
from firesearch.models.research import ResearchRequest
from firesearch.services.prompt_store import date_context, render_prompt


class RequestInterpreter(BaseAgent):
    """Restates the request in plain words before any searching starts."""

    name = "understand"

    async def interpret(self, request: ResearchRequest) -> str:
        system = render_prompt("understand.system", date_context=date_context())
        prompt = render_prompt(
            "understand.user",
            query=request.display_topic,
            context=self.prior_turns_context(request.prior_turns, header="Previous conversation"),
        )
        return await self.complete(system, prompt)
