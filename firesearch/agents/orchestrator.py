from __future__ import annotations

import asyncio
import contextlib
import inspect
import time
import uuid
from dataclasses import dataclass, replace
from typing import Any, AsyncGenerator, Awaitable, Callable

from loguru import logger

from firesearch.agents.coverage import CoverageChecker
from firesearch.agents.planner import QueryPlanner
from firesearch.agents.summarizer import SourceSummarizer
from firesearch.agents.synthesizer import Synthesizer
from firesearch.agents.understand import RequestInterpreter
from firesearch.config import ResearchConfig, settings
from firesearch.llm_client import LLMClient, get_client
from firesearch.models.events import ErrorKind, Phase, SSEEvent
from firesearch.models.research import ResearchMode, ResearchRequest, ResearchSession, SubQuestion
from firesearch.research_core.registry import SourceRegistry
from firesearch.services import streaming
from firesearch.services.logger import log_research_step
from firesearch.services.search_executor import SearchExecutor
from firesearch.tools.search_provider import SearchProvider, WebSearchProvider

EVENT_QUEUE_SIZE = 256

Emit = Callable[[SSEEvent], Awaitable[Any]]


class PipelineError(Exception):
    """A failure that moves the pipeline into its error state."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass
class RunContext:
    session: ResearchSession
    emit: Emit
    executor: SearchExecutor
    started_at: float


class ResearchPipeline:
    """Runs one research request as an explicit state machine.

    Phases:
      understanding -> planning -> searching -> scraping -> analyzing
        -> planning again (bounded rounds) or synthesizing -> complete
      Any phase may raise PipelineError, which moves to `error`; that state
      retries a bounded number of times before failing for good.

    `run` is an async generator of SSE events. The last event is always
    either `final` or a `failed` event with `fatal` set. Closing the
    generator early cancels any work still in flight.
    """

    def __init__(
        self,
        config: ResearchConfig | None = None,
        llm: LLMClient | None = None,
        search_provider: SearchProvider | None = None,
    ):
        self.config = config or ResearchConfig.from_settings(settings)
        self.llm = llm or get_client(
            default_model=self.config.fast_model,
            temperature=self.config.temperature,
            timeout=self.config.llm_timeout,
        )
        self.search_provider = search_provider or WebSearchProvider()
        self.interpreter = RequestInterpreter(self.config, self.llm)
        self.planner = QueryPlanner(self.config, self.llm)
        self.summarizer = SourceSummarizer(self.config, self.llm)
        self.coverage = CoverageChecker(self.config, self.llm)
        self.synthesizer = Synthesizer(self.config, self.llm)
        self._handlers: dict[Phase, Callable[[RunContext], Awaitable[Phase | None]]] = {
            Phase.UNDERSTANDING: self._understand,
            Phase.PLANNING: self._plan,
            Phase.SEARCHING: self._search,
            Phase.SCRAPING: self._scrape,
            Phase.ANALYZING: self._analyze,
            Phase.SYNTHESIZING: self._synthesize,
            Phase.COMPLETE: self._complete,
            Phase.ERROR: self._error,
        }

    async def run(self, request: ResearchRequest) -> AsyncGenerator[SSEEvent, None]:
        queue: asyncio.Queue[SSEEvent | None] = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)

        async def emit(event: SSEEvent) -> None:
            await queue.put(event)

        async def drive() -> None:
            try:
                await self._run_with_deadline(request, emit)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Research failed with error: {e}")
                await emit(streaming.failed(f"Research failed: {e}", ErrorKind.UNKNOWN))
            await queue.put(None)

        task = asyncio.create_task(drive())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
                if event.is_terminal:
                    break
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _run_with_deadline(self, request: ResearchRequest, emit: Emit) -> None:
        deadline = self.config.request_deadline
        if not deadline:
            await self._execute(request, emit)
            return
        try:
            await asyncio.wait_for(self._execute(request, emit), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning(f"Research exceeded its {deadline:.0f}s deadline")
            await emit(
                streaming.failed(
                    f"Research took longer than {deadline:.0f} seconds and was stopped.",
                    ErrorKind.UNKNOWN,
                )
            )

    async def _execute(self, request: ResearchRequest, emit: Emit) -> None:
        if not request.topic.strip():
            await emit(streaming.failed("Please enter a question to research.", ErrorKind.UNKNOWN))
            return

        registry = SourceRegistry()
        session = ResearchSession(
            request=request,
            session_id=str(uuid.uuid4()),
            registry=registry,
        )
        ctx = RunContext(
            session=session,
            emit=emit,
            executor=SearchExecutor(self.config, self.search_provider, self.summarizer, registry, emit),
            started_at=time.monotonic(),
        )
        logger.info(f"Starting research {session.session_id} for '{request.display_topic[:120]}'")

        phase: Phase | None = Phase.UNDERSTANDING
        while phase is not None:
            session.phase = phase
            log_research_step(session.session_id, phase.value, "started")
            try:
                phase = await self._handlers[phase](ctx)
            except PipelineError as e:
                logger.warning(f"Phase {session.phase.value} failed ({e.kind.value}): {e.message}")
                log_research_step(
                    session.session_id, session.phase.value, "failed", {"kind": e.kind.value}
                )
                session.fail(e.kind, e.message)
                phase = Phase.ERROR

    async def _understand(self, ctx: RunContext) -> Phase:
        session = ctx.session
        await ctx.emit(streaming.phase_changed(Phase.UNDERSTANDING, "Analyzing your request..."))
        try:
            understanding = await self.interpreter.interpret(session.request)
        except Exception as e:
            raise PipelineError(ErrorKind.LLM, f"Failed to understand the request: {e}") from e

        session.understanding = understanding
        if understanding:
            await ctx.emit(streaming.note(understanding))
        return Phase.PLANNING

    async def _plan(self, ctx: RunContext) -> Phase:
        session = ctx.session
        request = session.request

        if session.sub_questions is None:
            await ctx.emit(streaming.phase_changed(Phase.PLANNING, "Planning the research..."))
            session.sub_questions = await self.planner.decompose(request, request.prior_turns)
            session.search_queries = [sq.search_query for sq in session.sub_questions]
            session.current_search_index = 0
            listing = "\n".join(f"- {sq.question}" for sq in session.sub_questions)
            await ctx.emit(
                streaming.note(
                    f"Breaking this down into {len(session.sub_questions)} questions:\n{listing}"
                )
            )
            return Phase.SEARCHING

        # Re-entry after a failed phase resumes the existing rounds.
        if not self.should_retry(session):
            return Phase.SYNTHESIZING

        open_questions = self._open_questions(session)
        await ctx.emit(
            streaming.phase_changed(Phase.PLANNING, "Trying alternative searches...")
        )
        include_answered = not open_questions
        queries = await self.planner.replan(
            session.sub_questions,
            session.search_round,
            include_answered=include_answered,
        )
        if not queries:
            return Phase.ANALYZING

        targets = self.planner.replan_targets(session.sub_questions, include_answered=include_answered)
        assigned = dict(zip((sq.question for sq in targets), queries))
        session.sub_questions = [
            replace(sq, search_query=assigned[sq.question]) if sq.question in assigned else sq
            for sq in session.sub_questions
        ]
        session.search_queries = queries
        session.current_search_index = 0
        await ctx.emit(streaming.note(f"Trying {len(queries)} alternative searches"))
        return Phase.SEARCHING

    async def _search(self, ctx: RunContext) -> Phase:
        session = ctx.session
        queries = session.search_queries
        index = session.current_search_index
        if index >= len(queries):
            return Phase.SCRAPING

        if index == 0:
            await ctx.emit(
                streaming.phase_changed(Phase.SEARCHING, f"Running {len(queries)} searches...")
            )
        query = queries[index]
        await ctx.emit(streaming.search_started(query, index + 1, len(queries)))
        documents = await ctx.executor.execute(query)
        if ctx.executor.pending:
            session.pending_fetch.extend(ctx.executor.pending)
            ctx.executor.pending.clear()
        logger.info(f"Query {index + 1}/{len(queries)} '{query[:80]}' kept {len(documents)} documents")
        session.current_search_index += 1
        return Phase.SEARCHING

    async def _scrape(self, ctx: RunContext) -> Phase:
        session = ctx.session
        pending = session.pending_fetch
        if not pending:
            await ctx.emit(streaming.phase_changed(Phase.SCRAPING, "All sources already have content"))
            return Phase.ANALYZING

        await ctx.emit(
            streaming.phase_changed(Phase.SCRAPING, f"Reading {len(pending)} more pages...")
        )
        session.pending_fetch = []
        documents = await ctx.executor.complete_stubs(pending)
        logger.info(f"Fetched content for {len(documents)} of {len(pending)} content-less documents")
        return Phase.ANALYZING

    async def _analyze(self, ctx: RunContext) -> Phase:
        session = ctx.session
        sub_questions = session.sub_questions or []
        await ctx.emit(
            streaming.phase_changed(
                Phase.ANALYZING, f"Checking {len(session.registry)} sources for answers..."
            )
        )
        session.sub_questions = await self.coverage.check(sub_questions, session.registry.documents())
        session.search_round += 1

        open_questions = self._open_questions(session)
        answered = len(session.sub_questions) - len(open_questions)
        await ctx.emit(
            streaming.note(
                f"Answered {answered} of {len(session.sub_questions)} questions",
                sub_questions=[sq.to_dict() for sq in session.sub_questions],
            )
        )
        log_research_step(
            session.session_id,
            Phase.ANALYZING.value,
            "completed",
            {"round": session.search_round, "answered": answered, "sources": len(session.registry)},
        )

        if self.should_retry(session):
            await ctx.emit(
                streaming.note(
                    f"Searching again for {len(open_questions)} unanswered questions"
                    if open_questions
                    else "Looking for more sources"
                )
            )
            return Phase.PLANNING

        if len(session.registry) == 0:
            raise PipelineError(
                ErrorKind.SEARCH, "No sources found. Try rephrasing your question."
            )
        if open_questions:
            await ctx.emit(streaming.note("Proceeding with the information found so far"))
        return Phase.SYNTHESIZING

    def should_retry(self, session: ResearchSession) -> bool:
        """Whether another planning round is allowed after a coverage check."""
        cfg = self.config
        sub_questions = session.sub_questions or []
        open_questions = self._open_questions(session)
        if not open_questions and not self._short_of_sources(session):
            return False
        if session.search_round >= cfg.max_search_attempts:
            return False

        answered = len(sub_questions) - len(open_questions)
        with_partial = sum(1 for sq in sub_questions if sq.confidence >= cfg.partial_confidence)
        has_partial = with_partial > answered
        if has_partial and session.search_round >= cfg.partial_stop_round:
            return False
        return True

    def _open_questions(self, session: ResearchSession) -> list[SubQuestion]:
        return [
            sq for sq in session.sub_questions or [] if sq.is_open(self.config.min_answer_confidence)
        ]

    def _short_of_sources(self, session: ResearchSession) -> bool:
        return (
            session.request.mode == ResearchMode.BOOK
            and len(session.registry) < self.config.min_sources_for_book
        )

    async def _synthesize(self, ctx: RunContext) -> Phase:
        session = ctx.session
        request = session.request
        limit = (
            self.config.max_documents_for_book_synthesis
            if request.mode == ResearchMode.BOOK
            else self.config.max_documents_for_synthesis
        )
        documents = session.registry.for_synthesis(limit)
        if not documents:
            raise PipelineError(ErrorKind.SEARCH, "No usable sources to write an answer from.")

        await ctx.emit(
            streaming.phase_changed(
                Phase.SYNTHESIZING, f"Writing the answer from {len(documents)} sources..."
            )
        )

        async def on_chunk(text: str) -> None:
            await ctx.emit(streaming.answer_chunk(text))

        try:
            answer = await self.synthesizer.synthesize(
                request.display_topic,
                documents,
                on_chunk,
                prior_turns=request.prior_turns,
                mode=request.mode,
            )
        except Exception as e:
            raise PipelineError(ErrorKind.LLM, f"Failed to write the answer: {e}") from e
        if not answer.strip():
            raise PipelineError(ErrorKind.LLM, "The model returned an empty answer.")

        session.final_answer = answer
        cited = {d.url for d in documents}
        session.final_documents = documents + [
            d for d in session.registry.documents() if d.url not in cited
        ]
        session.follow_ups = await self.synthesizer.follow_ups(
            request.display_topic, answer, request.prior_turns, mode=request.mode
        )
        return Phase.COMPLETE

    async def _complete(self, ctx: RunContext) -> None:
        session = ctx.session
        runtime_ms = int((time.monotonic() - ctx.started_at) * 1000)
        await ctx.emit(streaming.phase_changed(Phase.COMPLETE, "Research complete"))
        log_research_step(
            session.session_id,
            Phase.COMPLETE.value,
            "completed",
            {"runtime_ms": runtime_ms, "sources": len(session.final_documents)},
        )
        logger.info(
            f"Research complete! Runtime: {runtime_ms}ms, Sources: {len(session.final_documents)}, "
            f"Rounds: {session.search_round}, Retries: {session.retry_count}"
        )
        await ctx.emit(
            streaming.final(
                session.final_answer or "",
                session.final_documents,
                session.follow_ups,
                runtime_ms=runtime_ms,
            )
        )
        return None

    async def _error(self, ctx: RunContext) -> Phase | None:
        session = ctx.session
        kind = session.error_kind or ErrorKind.UNKNOWN
        message = session.error_message or "Research failed"

        if session.retry_count < self.config.max_retries:
            session.retry_count += 1
            await ctx.emit(streaming.failed(message, kind, fatal=False))
            await ctx.emit(
                streaming.note(f"Retrying ({session.retry_count}/{self.config.max_retries})...")
            )
            session.clear_error()
            session.restart_queries()
            if kind == ErrorKind.SEARCH:
                return Phase.SEARCHING
            return Phase.UNDERSTANDING

        await ctx.emit(streaming.phase_changed(Phase.ERROR, message))
        await ctx.emit(streaming.failed(message, kind, fatal=True))
        return None


async def run_research(
    request: ResearchRequest,
    on_event: Callable[[SSEEvent], Any],
    *,
    config: ResearchConfig | None = None,
    llm: LLMClient | None = None,
    search_provider: SearchProvider | None = None,
) -> None:
    """Run one request, handing every event to `on_event` (sync or async)."""
    pipeline = ResearchPipeline(config=config, llm=llm, search_provider=search_provider)
    async for event in pipeline.run(request):
        result = on_event(event)
        if inspect.isawaitable(result):
            await result
