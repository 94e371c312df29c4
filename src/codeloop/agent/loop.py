"""The core agent loop: a ReAct orchestrator streaming ``AgentEvent``s.

One ``Orchestrator`` owns one ``Session``. ``run`` starts a fresh run from a
prompt, ``resume`` continues a run paused on ``ask_user_question``. Both are
async generators: the caller pulls events, and the orchestrator only ever
waits on the model stream, the tool barrier of the current iteration, or
(between ``run`` and ``resume``) the caller itself.

Every run ends in exactly one terminal event followed by ``done``:

    completed        -> complete
    paused           -> ask_user_question
    budget_exceeded  -> budget_exceeded
    error            -> fatal_error
    cancelled        -> (nothing)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Any

from codeloop.agent.mode import BUILTIN_MODES, ModeProfile, discover_modes, read_only_modes
from codeloop.agent.policy import IterationCap, StuckLoopGuard
from codeloop.agent.prompts import build_system_prompt
from codeloop.config import CodeloopConfig, LoopConfig
from codeloop.errors import (
    IterationLimitExceeded,
    InvalidStateError,
    ModelProviderError,
    SessionBusyError,
    StuckLoopDetected,
    TransientNetworkError,
    UserCancelled,
)
from codeloop.llm.message import ImagePart, Message, ToolCall, ToolCallState
from codeloop.llm.provider import ChatProvider, create_provider, transient_retry
from codeloop.llm.streaming import (
    EndOfTurn,
    GatewayEvent,
    TextDelta,
    ThinkingDelta,
    ToolCallRequest,
    stream_chat,
)
from codeloop.session.state import Session, SessionStatus
from codeloop.session.store import SessionStore
from codeloop.session.wire import AgentEvent, EventType
from codeloop.tool import (
    INTERRUPTING_TOOL,
    TERMINAL_TOOL,
    ToolDispatcher,
    ToolRegistry,
    ToolResult,
    create_registry,
)
from codeloop.workspace import LocalSandbox, ProjectContext, Sandbox, TodoStore, walk_files

logger = logging.getLogger(__name__)

DEFERRED_RESULT = "Deferred: waiting for the user's answers before completing."


class Orchestrator:
    """Drives one session through model turns and tool calls.

    Args:
        session: The session to drive. Its ``mode`` must name a known mode.
        provider: Model backend.
        sandbox: Hands back a ready project root for the session's project.
        registry: Tools offered to the model (default: every built-in tool).
        todos: Per-project todo store shared with the host.
        store: Where the session is saved when a run pauses or ends.
        config: Loop limits and timeouts.
        modes: Mode profiles by name (default: the built-in modes).
        max_listed_files: Project files listed in the system prompt.
        prompt_caching: Ask the backend to cache the system prompt.
    """

    def __init__(
        self,
        session: Session,
        provider: ChatProvider,
        sandbox: Sandbox,
        registry: ToolRegistry | None = None,
        todos: TodoStore | None = None,
        store: SessionStore | None = None,
        config: LoopConfig | None = None,
        modes: dict[str, ModeProfile] | None = None,
        max_listed_files: int = 200,
        prompt_caching: bool = True,
    ) -> None:
        self._modes = modes or dict(BUILTIN_MODES)
        if session.mode not in self._modes:
            raise ValueError(
                f"Unknown mode {session.mode!r}. Available: {', '.join(self._modes)}"
            )
        self._session = session
        self._provider = provider
        self._sandbox = sandbox
        self._registry = registry or create_registry()
        self._todos = todos if todos is not None else TodoStore()
        self._store = store
        self._config = config or LoopConfig()
        self._max_listed_files = max_listed_files
        self._prompt_caching = prompt_caching

        self._dispatcher = ToolDispatcher(
            self._registry,
            default_timeout=self._config.tool_timeout,
            enforce_mode_gates=self._config.enforce_mode_gates,
            read_only_modes=read_only_modes(self._modes),
        )
        self._cap = IterationCap(self._config.max_iterations)
        self._guard = StuckLoopGuard(self._config.stuck_threshold)

        self._context: ProjectContext | None = None
        self._busy = False
        self._cancel_requested = asyncio.Event()
        self._inflight: set[asyncio.Task[ToolResult]] = set()

        if not session.model:
            session.model = provider.config.model

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: CodeloopConfig,
        project_id: str,
        mode: str = "fast",
        provider: ChatProvider | None = None,
        sandbox: Sandbox | None = None,
        store: SessionStore | None = None,
        todos: TodoStore | None = None,
        registry: ToolRegistry | None = None,
    ) -> Orchestrator:
        """Build an orchestrator for a new session from configuration."""
        if provider is None:
            provider = create_provider(
                config.llm.model,
                temperature=config.llm.temperature,
                max_tokens=config.llm.max_tokens,
                context_window=config.llm.context_window,
                reasoning_effort=config.llm.reasoning_effort,
            )
        modes = discover_modes([config.modes_dir]) if config.modes_dir else None
        return cls(
            session=Session(project_id=project_id, mode=mode, model=provider.config.model),
            provider=provider,
            sandbox=sandbox or LocalSandbox(config.workspace.projects_path()),
            registry=registry,
            todos=todos,
            store=store,
            config=config.loop,
            modes=modes,
            max_listed_files=config.workspace.max_listed_files,
            prompt_caching=config.llm.prompt_caching,
        )

    @classmethod
    async def restore(
        cls,
        project_id: str,
        store: SessionStore,
        provider: ChatProvider,
        sandbox: Sandbox,
        **kwargs: Any,
    ) -> Orchestrator:
        """Rebuild an orchestrator around a saved session.

        Raises:
            InvalidStateError: no session is saved for ``project_id``.
        """
        session = await store.load(project_id)
        if session is None:
            raise InvalidStateError(f"No saved session for project {project_id}")
        logger.info(
            "Restored session %s for %s (status=%s, iteration=%d)",
            session.id,
            project_id,
            session.status.value,
            session.iteration,
        )
        return cls(session, provider, sandbox, store=store, **kwargs)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def iteration(self) -> int:
        return self._session.iteration

    @property
    def mode(self) -> ModeProfile:
        return self._modes[self._session.mode]

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def todos(self) -> TodoStore:
        return self._todos

    @property
    def context(self) -> ProjectContext | None:
        return self._context

    @property
    def busy(self) -> bool:
        return self._busy

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(
        self, prompt: str, images: list[ImagePart] | None = None
    ) -> AsyncIterator[AgentEvent]:
        """Start a new run from ``prompt``.

        Raises:
            SessionBusyError: another run of this session is in flight.
            InvalidStateError: the session is paused; use ``resume``.
        """
        if self._session.status is SessionStatus.PAUSED:
            raise InvalidStateError("Session is paused on a question; call resume()")

        async def setup() -> dict[str, Any]:
            session = self._session
            session.iteration = 0
            session.files_created.clear()
            session.files_modified.clear()
            self._guard.reset()
            await self._prepare(rebuild_prompt=True)
            session.append(Message.user(prompt, images))
            return {"resumed": False}

        async with aclosing(self._drive(setup)) as events:
            async for event in events:
                yield event

    async def resume(self, answers: list[str] | str) -> AsyncIterator[AgentEvent]:
        """Answer the pending question and continue the paused run.

        Raises:
            InvalidStateError: the session is not paused.
            SessionBusyError: another run of this session is in flight.
        """
        if self._session.status is not SessionStatus.PAUSED:
            raise InvalidStateError(
                f"Cannot resume a session in status {self._session.status.value}"
            )

        async def setup() -> dict[str, Any]:
            session = self._session
            await self._prepare(rebuild_prompt=not session.system_prompt)
            content = format_answers(session.pending_questions, answers)
            session.append(
                Message.tool_result_message(session.pending_tool_call_id or "", content)
            )
            session.clear_pending()
            return {"resumed": True}

        async with aclosing(self._drive(setup)) as events:
            async for event in events:
                yield event

    def cancel(self) -> None:
        """Stop the in-flight run at its next suspension point."""
        if self._busy:
            logger.info("Cancellation requested for %s", self._session.project_id)
            self._cancel_requested.set()

    async def execute_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Dispatch one tool call outside a run, in this session's project."""
        context = self._context or await self._prepare(rebuild_prompt=False)
        return await self._dispatcher.execute(name, arguments, context)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def _drive(
        self, setup: Callable[[], Awaitable[dict[str, Any]]]
    ) -> AsyncIterator[AgentEvent]:
        if self._busy:
            raise SessionBusyError(
                f"Session for {self._session.project_id} already has a run in flight"
            )
        self._busy = True
        self._cancel_requested.clear()
        try:
            async with aclosing(self._events(setup)) as events:
                async for event in events:
                    yield event
        except (GeneratorExit, asyncio.CancelledError):
            await self._cancelled()
            raise
        finally:
            self._busy = False

    async def _events(
        self, setup: Callable[[], Awaitable[dict[str, Any]]]
    ) -> AsyncIterator[AgentEvent]:
        session = self._session
        try:
            start = await setup()
            session.status = SessionStatus.RUNNING
            yield self._event(
                EventType.START,
                {
                    "session_id": session.id,
                    "project_id": session.project_id,
                    "mode": session.mode,
                    "model": session.model,
                    "max_iterations": self._cap.max_iterations,
                    **start,
                },
            )

            # A run paused on its last allowed iteration cannot go further
            self._cap.check(session.iteration)

            while True:
                async with aclosing(self._iteration()) as events:
                    async for event in events:
                        yield event
                if session.status is not SessionStatus.RUNNING:
                    break

        except UserCancelled:
            await self._cancelled()
            return
        except StuckLoopDetected as e:
            session.status = SessionStatus.ERROR
            event = self._event(
                EventType.FATAL_ERROR,
                {
                    "classification": e.classification,
                    "message": str(e),
                    "tool": e.tool_name,
                    "count": e.count,
                },
            )
            await self._finish()
            yield event
        except IterationLimitExceeded as e:
            session.status = SessionStatus.BUDGET_EXCEEDED
            event = self._event(
                EventType.BUDGET_EXCEEDED,
                {
                    "message": str(e),
                    "max_iterations": self._cap.max_iterations,
                    "iterations": session.iteration,
                    "files_created": list(session.files_created),
                    "files_modified": list(session.files_modified),
                    "usage": session.usage.to_dict(),
                },
            )
            await self._finish()
            yield event
        except ModelProviderError as e:
            logger.error("Model provider failure for %s: %s", session.project_id, e)
            session.status = SessionStatus.ERROR
            event = self._event(
                EventType.FATAL_ERROR,
                {"classification": e.classification, "message": str(e)},
            )
            await self._finish()
            yield event
        except Exception as e:
            logger.error(
                "Unrecoverable error in %s at iteration %d: %s",
                session.project_id,
                session.iteration,
                e,
                exc_info=True,
            )
            session.status = SessionStatus.ERROR
            event = self._event(
                EventType.FATAL_ERROR,
                {"classification": "internal", "message": f"{type(e).__name__}: {e}"},
            )
            await self._finish()
            yield event

        yield self._event(EventType.DONE, {"status": session.status.value})

    async def _iteration(self) -> AsyncIterator[AgentEvent]:
        """One model turn plus the dispatch of its tool calls."""
        session = self._session
        session.iteration += 1
        n = session.iteration
        logger.info(
            "Project %s: iteration %d/%d", session.project_id, n, self._cap.max_iterations
        )
        yield self._event(EventType.ITERATION_START, {"max_iterations": self._cap.max_iterations})

        end: EndOfTurn | None = None
        calls: list[ToolCall] = []
        async with aclosing(self._model_turn()) as turn:
            async for item in turn:
                if isinstance(item, AgentEvent):
                    yield item
                else:
                    end, calls = item

        if end is None:
            raise ModelProviderError("Model turn produced no end-of-turn", model=session.model)
        session.usage.record(session.model, end.usage)
        session.append(end.message)
        yield self._event(
            EventType.USAGE, {"turn": end.usage.to_dict(), "total": session.usage.to_dict()}
        )

        if not calls:
            # A turn without tool calls is the model's final answer
            async with aclosing(self._complete(end.message.text, None)) as events:
                async for event in events:
                    yield event
            return

        interrupt = self._find_control_call(calls, INTERRUPTING_TOOL)
        terminal = self._find_control_call(calls, TERMINAL_TOOL)

        if interrupt is not None:
            others = [c for c in calls if c is not interrupt and c is not terminal]
            async with aclosing(self._dispatch(others)) as events:
                async for event in events:
                    yield event
            if terminal is not None:
                terminal.state = ToolCallState.COMPLETED
                session.append(Message.tool_result_message(terminal.id, DEFERRED_RESULT))

            questions = list((interrupt.input or {}).get("questions", []))
            interrupt.state = ToolCallState.PENDING
            session.set_pending(interrupt.id, questions)
            session.status = SessionStatus.PAUSED
            logger.info(
                "Project %s paused at iteration %d with %d question(s)",
                session.project_id,
                n,
                len(questions),
            )
            event = self._event(
                EventType.ASK_USER_QUESTION,
                {"questions": questions, "tool_call_id": interrupt.id},
                event_id=interrupt.id,
            )
            await self._finish()
            yield event
            return

        if terminal is not None:
            others = [c for c in calls if c is not terminal]
            async with aclosing(self._dispatch(others)) as events:
                async for event in events:
                    yield event
            results: dict[str, ToolResult] = {}
            async with aclosing(self._dispatch([terminal], results)) as events:
                async for event in events:
                    yield event
            outcome = results[terminal.id]
            if outcome.success:
                summary = outcome.data.get("result", outcome.output)
                async with aclosing(
                    self._complete(summary, outcome.data.get("plan"))
                ) as events:
                    async for event in events:
                        yield event
                return
        else:
            async with aclosing(self._dispatch(calls)) as events:
                async for event in events:
                    yield event

        # Stuck-loop guard first, so a stuck agent is reported as such
        self._guard.observe(n, [c.name for c in calls])
        self._cap.check(n)

    async def _model_turn(
        self,
    ) -> AsyncIterator[AgentEvent | tuple[EndOfTurn, list[ToolCall]]]:
        """Stream one gateway call, retrying transient failures.

        Yields forwarded events, then a final ``(EndOfTurn, calls)`` tuple.
        A transient failure after anything was forwarded is not retried.
        """
        session = self._session
        tool_specs = self._registry.get_specs() or None
        forwarded = False
        last_error: TransientNetworkError | None = None

        retrying = transient_retry(
            attempts=self._config.model_retry_attempts,
            min_wait=self._config.retry_min_wait,
            max_wait=self._config.retry_max_wait,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if last_error is not None:
                        yield self._event(
                            EventType.ERROR,
                            {
                                "message": str(last_error),
                                "recoverable": True,
                                "attempt": attempt.retry_state.attempt_number,
                            },
                        )
                    calls: list[ToolCall] = []
                    end: EndOfTurn | None = None
                    try:
                        stream = stream_chat(
                            self._provider,
                            session.system_prompt,
                            session.history,
                            tool_specs,
                            self._prompt_caching,
                        )
                        async with aclosing(stream):
                            while True:
                                item = await self._next_event(stream)
                                if item is None:
                                    break
                                if isinstance(item, ThinkingDelta):
                                    forwarded = True
                                    yield self._event(EventType.THINKING, {"text": item.text})
                                elif isinstance(item, TextDelta):
                                    forwarded = True
                                    yield self._event(EventType.TEXT_DELTA, {"text": item.text})
                                elif isinstance(item, ToolCallRequest):
                                    forwarded = True
                                    calls.append(item.call)
                                    yield self._event(
                                        EventType.TOOL_INPUT,
                                        {
                                            "name": item.call.name,
                                            "input": item.call.input,
                                            "arguments": item.arguments,
                                        },
                                        event_id=item.call.id,
                                    )
                                elif isinstance(item, EndOfTurn):
                                    end = item
                    except TransientNetworkError as e:
                        if forwarded:
                            raise ModelProviderError(
                                f"Stream interrupted after output was forwarded: {e}",
                                model=session.model,
                            ) from e
                        last_error = e
                        raise
                    if end is None:
                        raise ModelProviderError(
                            "Model stream ended without an end-of-turn", model=session.model
                        )
                    yield end, calls
        except TransientNetworkError as e:
            raise ModelProviderError(
                f"Model backend unavailable after {self._config.model_retry_attempts} "
                f"attempts: {e}",
                model=session.model,
            ) from e

    async def _dispatch(
        self, calls: list[ToolCall], results: dict[str, ToolResult] | None = None
    ) -> AsyncIterator[AgentEvent]:
        """Run ``calls`` concurrently and wait for all of them.

        Completion events come in completion order; results are appended to
        history in call order once every call has settled.
        """
        if not calls:
            return
        context = self._project_context()
        results = results if results is not None else {}

        for call in calls:
            yield self._event(
                EventType.TOOL_START, {"name": call.name, "input": call.input}, event_id=call.id
            )

        order = {call.id: i for i, call in enumerate(calls)}
        tasks: dict[asyncio.Task[ToolResult], ToolCall] = {}
        for call in calls:
            call.state = ToolCallState.EXECUTING
            task = asyncio.create_task(
                self._dispatcher.execute(
                    call.name, call.input, context, timeout=self._config.tool_timeout
                )
            )
            tasks[task] = call
            self._inflight.add(task)

        try:
            pending = set(tasks)
            while pending:
                done, pending = await self._wait_any(pending)
                for task in sorted(done, key=lambda t: order[tasks[t].id]):
                    call = tasks[task]
                    result = task.result()
                    results[call.id] = result
                    for event in self._settle(call, result):
                        yield event
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
                self._inflight.discard(task)

        for call in calls:
            result = results[call.id]
            self._session.append(
                Message.tool_result_message(
                    call.id, result.to_content(), is_error=not result.success
                )
            )

    async def _next_event(self, stream: AsyncIterator[GatewayEvent]) -> GatewayEvent | None:
        """Next gateway event, or ``None`` at the end of the stream.

        Raises:
            UserCancelled: ``cancel()`` was called while waiting.
        """

        async def step() -> GatewayEvent | None:
            try:
                return await stream.__anext__()
            except StopAsyncIteration:
                return None

        pending = asyncio.ensure_future(step())
        waiter = asyncio.ensure_future(self._cancel_requested.wait())
        try:
            await asyncio.wait({pending, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not pending.done():
                pending.cancel()
                # The stream must be idle again before it can be closed
                await asyncio.wait({pending})
        if not self._cancel_requested.is_set():
            return pending.result()
        if not pending.cancelled():
            # Discard the step's outcome
            pending.exception()
        raise UserCancelled("Run cancelled")

    async def _wait_any(
        self, pending: set[asyncio.Task[ToolResult]]
    ) -> tuple[set[asyncio.Task[ToolResult]], set[asyncio.Task[ToolResult]]]:
        waiter = asyncio.ensure_future(self._cancel_requested.wait())
        try:
            done, rest = await asyncio.wait(
                pending | {waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not waiter.done():
                waiter.cancel()
        if waiter in done:
            raise UserCancelled("Run cancelled")
        return done, rest - {waiter}

    def _settle(self, call: ToolCall, result: ToolResult) -> list[AgentEvent]:
        """Record one finished call and build its events."""
        self._session.record_files(result.files_created, result.files_modified)
        if not result.success:
            call.state = ToolCallState.ERROR
            logger.info("Tool %s (%s) failed: %s", call.name, call.id, result.error)
            return [
                self._event(
                    EventType.TOOL_ERROR,
                    {
                        "name": call.name,
                        "error": result.error,
                        "detail": result.detail,
                        "content": result.to_content(),
                    },
                    event_id=call.id,
                )
            ]

        call.state = ToolCallState.COMPLETED
        events = [
            self._event(
                EventType.TOOL_COMPLETE,
                {
                    "name": call.name,
                    "success": True,
                    "output": result.output,
                    "brief": result.brief,
                    "files_created": result.files_created,
                    "files_modified": result.files_modified,
                },
                event_id=call.id,
            )
        ]
        if "todos" in result.data:
            events.append(
                self._event(
                    EventType.TODO_UPDATE,
                    {"todos": result.data["todos"], "summary": result.data.get("summary", {})},
                )
            )
        return events

    async def _complete(self, summary: str, plan: str | None) -> AsyncIterator[AgentEvent]:
        session = self._session
        session.status = SessionStatus.COMPLETED
        logger.info(
            "Project %s completed after %d iteration(s)", session.project_id, session.iteration
        )
        event = self._event(
            EventType.COMPLETE,
            {
                "summary": summary,
                "plan": plan if self.mode.expects_plan else None,
                "files_created": list(session.files_created),
                "files_modified": list(session.files_modified),
                "usage": session.usage.to_dict(),
                "iterations": session.iteration,
            },
        )
        await self._finish()
        yield event

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _prepare(self, rebuild_prompt: bool) -> ProjectContext:
        """Make sure the sandbox is up; optionally rebuild the system prompt."""
        session = self._session
        info = await self._sandbox.ensure_ready(session.project_id)
        context = ProjectContext(
            project_id=session.project_id,
            root=info.root,
            mode=session.mode,
            todos=self._todos,
            sandbox=info,
        )
        self._context = context
        if rebuild_prompt:
            files = await asyncio.to_thread(walk_files, info.root)
            session.system_prompt = build_system_prompt(
                self.mode, files, info, self._max_listed_files
            )
        return context

    def _project_context(self) -> ProjectContext:
        if self._context is None:
            raise InvalidStateError(
                f"Sandbox for {self._session.project_id} has not been prepared"
            )
        return self._context

    def _find_control_call(self, calls: list[ToolCall], name: str) -> ToolCall | None:
        """First call to ``name`` that would pass dispatch checks."""
        context = self._project_context()
        for call in calls:
            if call.name == name and self._dispatcher.check(name, call.input, context) is None:
                return call
        return None

    async def _finish(self) -> None:
        """Bookkeeping when a run stops: todos, in-flight tools, persistence."""
        session = self._session
        if session.status is not SessionStatus.PAUSED:
            self._todos.clear(session.project_id)
        for task in list(self._inflight):
            task.cancel()
        self._inflight.clear()
        if self._store is not None:
            try:
                await self._store.save(session)
            except Exception as e:
                logger.error("Failed to save session %s: %s", session.id, e, exc_info=True)

    async def _cancelled(self) -> None:
        status = self._session.status
        if status.is_final or (
            status is SessionStatus.PAUSED and self._session.pending_tool_call_id
        ):
            # The run already reached its terminal state
            return
        logger.info("Run for %s cancelled", self._session.project_id)
        self._session.status = SessionStatus.CANCELLED
        self._session.clear_pending()
        await self._finish()

    def _event(
        self, event_type: EventType, data: dict[str, Any], event_id: str | None = None
    ) -> AgentEvent:
        event = AgentEvent(type=event_type, data=data, iteration=self._session.iteration)
        if event_id:
            event.id = event_id
        return event


def format_answers(questions: list[str], answers: list[str] | str) -> str:
    """Tool-result text carrying the user's answers to the pending questions."""
    if isinstance(answers, str):
        answers = [answers]
    if questions and len(questions) == len(answers):
        pairs = [f"Q: {q}\nA: {a}" for q, a in zip(questions, answers)]
        return "User answered:\n\n" + "\n\n".join(pairs)
    return "User answered:\n\n" + "\n".join(answers)
