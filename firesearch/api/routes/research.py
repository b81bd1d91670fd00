from __future__ import annotations

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from firesearch.agents.orchestrator import ResearchPipeline
from firesearch.api.deps import get_pipeline
from firesearch.models.events import ErrorKind
from firesearch.models.schemas import ResearchRequestBody
from firesearch.services import logger as log_service
from firesearch.services import streaming

router = APIRouter(prefix="/api/research", tags=["research"])


@router.post("")
async def stream_research(
    body: ResearchRequestBody,
    pipeline: ResearchPipeline = Depends(get_pipeline),
):
    """SSE endpoint that runs one research request and streams its events."""
    request = body.to_request()

    async def event_generator():
        log_service.log_event(
            event_type="research_started",
            message="Research started",
            mode=request.mode.value,
            query=request.display_topic[:100],
        )
        try:
            async for event in pipeline.run(request):
                yield event.to_message()
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in research stream",
                error=str(e),
            )
            yield streaming.failed("Research stream failed unexpectedly.", ErrorKind.UNKNOWN).to_message()

    return EventSourceResponse(event_generator())
