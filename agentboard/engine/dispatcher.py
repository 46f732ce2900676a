"""
Dispatch Engine - routes one message through a resolved composition.

Per plan node:

    leaf          call the model, parse the response
    multi         run every child concurrently on the same context
    sequential    run children in order, folding each output into the
                  next child's message; the first failure ends the chain
    conditional   evaluate each child's condition, run the matching ones
                  concurrently; no match is a status, not an error

Node-local failures (model calls, parsing, fail-closed conditions) are
recorded on the NodeResult. Only resolution errors, and condition errors
under the "raise" policy, escape dispatch().
"""

import asyncio
import time
from typing import Any, Awaitable, Iterable

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from agentboard.adapters.model_call import ModelCaller, is_transient_error
from agentboard.adapters.registry import AgentRegistry, take_snapshot
from agentboard.adapters.sinks import DispatchEmitter, EventSink
from agentboard.config import ConditionPolicy, DispatchSettings, SequentialFold
from agentboard.engine.envelope import build_envelope, summarize
from agentboard.engine.evaluator import ExpressionEvaluator
from agentboard.engine.parser import OutputParser
from agentboard.engine.resolver import CompositionResolver
from agentboard.errors import ConditionError, EvaluationTimeoutError, ModelCallError
from agentboard.models.agent import Agent, AgentType
from agentboard.models.dispatch import (
    DispatchContext,
    ErrorKind,
    NodeError,
    NodeResult,
    NodeStatus,
    ResponseEnvelope,
)
from agentboard.models.plan import ExecutionPlan
from agentboard.utils.identifiers import generate_dispatch_id


class _ModelCallTimeout(ModelCallError):
    """the model call did not answer within model_call_timeout."""


async def _gather_all(aws: Iterable[Awaitable[NodeResult]]) -> list[NodeResult]:
    """gather(), but an exception in one child cancels its siblings."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


def _combined_status(results: list[NodeResult]) -> NodeStatus:
    """Status of a composite node from the children that ran."""
    failed = [r for r in results if r.status == NodeStatus.failed]
    if results and len(failed) == len(results):
        return NodeStatus.failed
    if failed or any(r.status == NodeStatus.partial for r in results):
        return NodeStatus.partial
    return NodeStatus.succeeded


class Dispatcher:
    """Dispatches messages to agent compositions.

    Args:
        registry: where agents are looked up; read once per dispatch.
        model_caller: invoked once per leaf agent.
        settings: budgets and policies, `DispatchSettings.from_env()` if omitted.
        evaluator: condition evaluator, built from settings if omitted.
        parser: output parser, built from settings if omitted.
        event_sink: optional sink for dispatch trace events.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        model_caller: ModelCaller,
        settings: DispatchSettings | None = None,
        evaluator: ExpressionEvaluator | None = None,
        parser: OutputParser | None = None,
        event_sink: EventSink | None = None,
    ) -> None:
        self.registry = registry
        self.model_caller = model_caller
        self.settings = settings or DispatchSettings.from_env()
        self.evaluator = evaluator or ExpressionEvaluator(timeout=self.settings.condition_timeout)
        self.parser = parser or OutputParser(timeout=self.settings.parser_timeout)
        self.event_sink = event_sink

    def resolve(self, root_id: str) -> ExecutionPlan:
        """Resolve the plan for `root_id` without running it."""
        return CompositionResolver(take_snapshot(self.registry)).resolve(root_id)

    async def dispatch(
        self,
        root_id: str,
        context: DispatchContext | str,
        dispatch_id: str | None = None,
    ) -> ResponseEnvelope:
        """Route `context` through the composition rooted at `root_id`.

        Raises:
            AgentNotFoundError: the root is missing or disabled.
            CompositionCycleError: the composition loops.
            ConditionError: only with the "raise" condition policy.
        """
        if isinstance(context, str):
            context = DispatchContext(message=context)
        dispatch_id = dispatch_id or generate_dispatch_id()
        log = logger.bind(dispatch_id=dispatch_id)

        plan = self.resolve(root_id)
        emitter = DispatchEmitter(dispatch_id, self.event_sink)
        emitter.emit_started(root_id, plan.size, context.message)
        log.info(f"dispatching to {root_id} ({plan.root.agent.agent_type}, {plan.size} node(s))")

        started = time.perf_counter()
        run = _DispatchRun(self, plan, emitter, log)
        result = await run.run_node(0, context)
        duration_ms = _elapsed_ms(started)

        emitter.emit_completed(root_id, result.status.value, duration_ms)
        log.info(f"dispatch to {root_id} finished: {result.status.value} in {duration_ms:.0f}ms")
        return build_envelope(plan, result, dispatch_id)


class _DispatchRun:
    """State of one dispatch: the plan, its emitter and its logger."""

    def __init__(self, dispatcher: Dispatcher, plan: ExecutionPlan, emitter: DispatchEmitter, log: Any) -> None:
        self.dispatcher = dispatcher
        self.settings = dispatcher.settings
        self.plan = plan
        self.emitter = emitter
        self.log = log

    async def run_node(self, index: int, context: DispatchContext) -> NodeResult:
        node = self.plan.node(index)
        agent = node.agent
        if node.is_leaf:
            return await self._run_leaf(agent, context)

        self.emitter.emit_input(agent.id, context.message)
        started = time.perf_counter()
        children = self.plan.children_of(index)

        if agent.agent_type == AgentType.sequential:
            results, status = await self._run_chain(children, context)
        elif agent.agent_type == AgentType.conditional:
            results, status = await self._run_conditional(children, context)
        else:
            results = await _gather_all(self.run_node(i, context) for i in children)
            status = _combined_status(results)

        raw = summarize(agent.agent_type, results)
        parsed = None
        if any(r.succeeded for r in results):
            parsed = self.dispatcher.parser.parse(raw, agent.output_parser, agent.custom_parser_code)

        self.emitter.emit_output(agent.id, status.value, raw=raw, parse_status=parsed.status if parsed else None)
        return NodeResult(
            agent_id=agent.id,
            agent_name=agent.name,
            agent_type=agent.agent_type,
            status=status,
            input_message=context.message,
            raw=raw,
            parsed=parsed,
            children=results,
            duration_ms=_elapsed_ms(started),
        )

    # -- leaves ------------------------------------------------------------

    async def _run_leaf(self, agent: Agent, context: DispatchContext) -> NodeResult:
        self.emitter.emit_input(agent.id, context.message)
        started = time.perf_counter()
        try:
            raw = await self._call_model(agent, context.message)
        except ModelCallError as e:
            kind = ErrorKind.timeout if isinstance(e, _ModelCallTimeout) else ErrorKind.model_call
            return self._failed(agent, context, NodeError(kind=kind, message=str(e), transient=e.transient), started)

        if not isinstance(raw, str):
            error = NodeError(kind=ErrorKind.internal, message=f"model returned {type(raw).__name__}, expected text")
            return self._failed(agent, context, error, started)

        parsed = self.dispatcher.parser.parse(raw, agent.output_parser, agent.custom_parser_code)
        if parsed.status == "error":
            self.log.warning(f"{agent.id}: {parsed.kind.value} parse failed: {parsed.error}")

        self.emitter.emit_output(agent.id, NodeStatus.succeeded.value, raw=raw, parse_status=parsed.status)
        self.log.debug(f"{agent.id} answered ({len(raw)} chars)")
        return NodeResult(
            agent_id=agent.id,
            agent_name=agent.name,
            agent_type=agent.agent_type,
            status=NodeStatus.succeeded,
            input_message=context.message,
            raw=raw,
            parsed=parsed,
            duration_ms=_elapsed_ms(started),
        )

    def _failed(self, agent: Agent, context: DispatchContext, error: NodeError, started: float) -> NodeResult:
        self.log.warning(f"{agent.id} failed ({error.kind.value}): {error.message}")
        self.emitter.emit_error(agent.id, error.kind.value, error.message, transient=error.transient)
        self.emitter.emit_output(agent.id, NodeStatus.failed.value)
        return NodeResult(
            agent_id=agent.id,
            agent_name=agent.name,
            agent_type=agent.agent_type,
            status=NodeStatus.failed,
            input_message=context.message,
            error=error,
            duration_ms=_elapsed_ms(started),
        )

    async def _call_model(self, agent: Agent, message: str) -> Any:
        settings = self.settings
        retrying = AsyncRetrying(
            stop=stop_after_attempt(settings.model_call_attempts),
            wait=wait_exponential(multiplier=0.5, max=settings.retry_wait_max),
            retry=retry_if_exception(is_transient_error),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._call_once(agent, message)

    async def _call_once(self, agent: Agent, message: str) -> Any:
        timeout = self.settings.model_call_timeout
        try:
            return await asyncio.wait_for(
                self.dispatcher.model_caller.invoke(agent.system_prompt, agent.model, agent.temperature, message),
                timeout=timeout if timeout and timeout > 0 else None,
            )
        except asyncio.TimeoutError:
            raise _ModelCallTimeout(agent.id, f"model call timed out after {timeout:g}s", transient=True) from None
        except ModelCallError as e:
            if e.agent_id is None:
                e.agent_id = agent.id
            raise
        except Exception as e:
            raise ModelCallError(agent.id, f"{type(e).__name__}: {e}", transient=is_transient_error(e)) from e

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self.log.warning(f"retrying model call (attempt {retry_state.attempt_number} failed): {error}")

    # -- sequential --------------------------------------------------------

    def _fold(self, context: DispatchContext, previous: NodeResult) -> DispatchContext:
        """Context for the next child of a chain."""
        if previous.status == NodeStatus.no_matching_branch:
            # nothing was produced, pass the message through
            return context
        output = previous.output_text()
        if self.settings.sequential_fold == SequentialFold.append:
            return context.with_message(f"{context.message}\n\n{output}")
        return context.with_message(output)

    async def _run_chain(
        self, children: list[int], context: DispatchContext
    ) -> tuple[list[NodeResult], NodeStatus]:
        results: list[NodeResult] = []
        current = context
        for child_index in children:
            if results:
                current = self._fold(current, results[-1])
            result = await self.run_node(child_index, current)
            results.append(result)
            if result.status == NodeStatus.failed:
                skipped = len(children) - len(results)
                if skipped:
                    self.log.info(f"{result.agent_id} failed, {skipped} later step(s) not run")
                status = NodeStatus.failed if len(results) == 1 else NodeStatus.partial
                return results, status
        return results, _combined_status(results)

    # -- conditional -------------------------------------------------------

    def _check_condition(self, agent: Agent, context: DispatchContext) -> tuple[bool, ConditionError | None]:
        condition = getattr(agent, "condition", None)
        if not condition or not condition.strip():
            self.emitter.emit_condition(agent.id, condition, False)
            return False, None

        try:
            matched = self.dispatcher.evaluator.evaluate(condition, context)
        except ConditionError as e:
            if self.settings.condition_policy == ConditionPolicy.raise_error:
                kind = ErrorKind.timeout if isinstance(e, EvaluationTimeoutError) else ErrorKind.condition
                self.emitter.emit_error(agent.id, kind.value, str(e))
                raise
            self.log.warning(f"condition of {agent.id} failed, treating as no match: {e.reason}")
            self.emitter.emit_condition(agent.id, condition, False, error=str(e))
            return False, e

        self.emitter.emit_condition(agent.id, condition, matched)
        return matched, None

    async def _run_conditional(
        self, children: list[int], context: DispatchContext
    ) -> tuple[list[NodeResult], NodeStatus]:
        matching: list[int] = []
        outcomes: dict[int, NodeResult] = {}
        for child_index in children:
            agent = self.plan.node(child_index).agent
            matched, error = self._check_condition(agent, context)
            if matched:
                matching.append(child_index)
                continue

            node_error = None
            if error is not None:
                kind = ErrorKind.timeout if isinstance(error, EvaluationTimeoutError) else ErrorKind.condition
                node_error = NodeError(kind=kind, message=str(error))
            outcomes[child_index] = NodeResult(
                agent_id=agent.id,
                agent_name=agent.name,
                agent_type=agent.agent_type,
                status=NodeStatus.skipped,
                condition=getattr(agent, "condition", None),
                condition_matched=False,
                error=node_error,
            )

        if not matching:
            self.log.info("no conditional branch matched")
            return [outcomes[i] for i in children], NodeStatus.no_matching_branch

        ran = await _gather_all(self.run_node(i, context) for i in matching)
        for child_index, result in zip(matching, ran):
            condition = getattr(self.plan.node(child_index).agent, "condition", None)
            outcomes[child_index] = result.model_copy(update={"condition": condition, "condition_matched": True})

        return [outcomes[i] for i in children], _combined_status(ran)
