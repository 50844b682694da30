"""
Graph Runner - drives a run from its entry steps to completion or suspension.

The runner:
1. Initializes run state from the caller's fields
2. Executes the frontier of ready steps as one superstep (concurrently)
3. Merges their partial updates in frontier order under a lock
4. Follows directives, or static edges subject to fan-in barriers
5. Persists a checkpoint and returns when a step suspends

A suspended run holds no tasks; it is just a checkpoint in the store until
``resume`` is called with the run's ID.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from stepgraph.config import EngineConfig
from stepgraph.errors import (
    CheckpointSerializationError,
    NoPendingSuspensionError,
    StepExecutionError,
    StepLimitExceededError,
)
from stepgraph.graph.directive import Route, Terminate
from stepgraph.graph.edge import StepGraph
from stepgraph.graph.executor import StepExecutor, StepOutcome
from stepgraph.graph.interrupt import NO_RESUME
from stepgraph.graph.state import RunState
from stepgraph.observability import reset_trace_context, set_trace_context
from stepgraph.schemas.checkpoint import SuspensionCheckpoint
from stepgraph.schemas.run import ResultStatus, RunResult, generate_run_id
from stepgraph.storage.checkpoint_store import CheckpointStore, InMemoryCheckpointStore


@dataclass
class _RunContext:
    """Mutable bookkeeping for one start/resume call."""

    run_id: str
    state: RunState
    path: list[str] = field(default_factory=list)
    steps_executed: int = 0
    arrivals: dict[str, set[str]] = field(default_factory=dict)
    # Checkpoint being resumed; cleared once the paused step's superstep commits
    resumed_from: SuspensionCheckpoint | None = None


class GraphRunner:
    """
    Executes a compiled step graph.

    Example:
        runner = graph.compile(store=InMemoryCheckpointStore())

        result = await runner.start({"email_content": "Server down!"})
        if result.is_suspended:
            result = await runner.resume(result.run_id, {"approved": True})
    """

    def __init__(
        self,
        graph: StepGraph,
        store: CheckpointStore | None = None,
        config: EngineConfig | None = None,
        executor: StepExecutor | None = None,
    ):
        """
        Initialize the runner.

        Args:
            graph: Validated step graph
            store: Checkpoint persistence (defaults to in-memory)
            config: Engine limits
            executor: Step executor (defaults to StepExecutor())
        """
        self.graph = graph
        self.store = store if store is not None else InMemoryCheckpointStore()
        self.config = config or EngineConfig()
        self.executor = executor or StepExecutor()
        self.logger = logging.getLogger(__name__)
        self._predecessors = graph.predecessors()
        self._resume_lock = asyncio.Lock()

    # === PUBLIC API ===

    async def start(
        self,
        initial_state: dict[str, Any] | None = None,
        run_id: str | None = None,
    ) -> RunResult:
        """
        Start a new run.

        Args:
            initial_state: Caller-supplied fields
            run_id: Optional explicit run ID (generated if omitted)

        Returns:
            RunResult, completed or suspended

        Raises:
            StepExecutionError: If a step fails without a fallback
            ValueError: If ``run_id`` already has an outstanding checkpoint
        """
        run_id = run_id or generate_run_id()
        if await self.store.get(run_id) is not None:
            raise ValueError(f"Run '{run_id}' is suspended; resume it instead of starting it")

        token = set_trace_context(run_id=run_id, graph_id=self.graph.id)
        try:
            self.logger.info(f"🚀 Starting run {run_id} on graph '{self.graph.id}'")
            ctx = _RunContext(run_id=run_id, state=RunState(initial_state))
            return await self._drive(ctx, self.graph.entry_steps())
        finally:
            reset_trace_context(token)

    async def resume(self, run_id: str, value: Any = None) -> RunResult:
        """
        Resume a suspended run.

        The paused step is re-invoked from its start with the state it saw
        when it suspended; its ``suspend()`` call returns ``value``. If that
        step fails, the checkpoint is restored so the run can be resumed again.

        Raises:
            NoPendingSuspensionError: If the run has no outstanding checkpoint
            StepExecutionError: If a step fails without a fallback
        """
        async with self._resume_lock:
            checkpoint = await self.store.get(run_id)
            if checkpoint is None:
                raise NoPendingSuspensionError(run_id)
            if self.graph.get_step(checkpoint.paused_step) is None:
                raise StepExecutionError(checkpoint.paused_step, "paused step is not registered")
            await self.store.delete(run_id)

        token = set_trace_context(run_id=run_id, graph_id=self.graph.id)
        ctx = _RunContext(
            run_id=run_id,
            state=RunState(checkpoint.state),
            path=list(checkpoint.path),
            steps_executed=checkpoint.steps_executed,
            arrivals={k: set(v) for k, v in checkpoint.arrivals.items()},
            resumed_from=checkpoint,
        )
        try:
            self.logger.info(f"▶ Resuming run {run_id} at step '{checkpoint.paused_step}'")
            return await self._drive(
                ctx,
                [checkpoint.paused_step],
                resume=(checkpoint.paused_step, value, checkpoint.step_state),
                carried=checkpoint.pending_steps,
            )
        except BaseException:
            if ctx.resumed_from is not None:
                await self.store.put(run_id, ctx.resumed_from)
                self.logger.warning(f"⚠ Resume of run {run_id} failed; checkpoint restored")
            raise
        finally:
            reset_trace_context(token)

    # === SCHEDULING ===

    async def _drive(
        self,
        ctx: _RunContext,
        frontier: list[str],
        resume: tuple[str, Any, dict[str, Any] | None] | None = None,
        carried: list[str] | None = None,
    ) -> RunResult:
        """Execute supersteps until the frontier is empty or a step suspends."""
        carried = list(carried or [])

        while frontier:
            if ctx.steps_executed + len(frontier) > self.config.max_steps:
                raise StepLimitExceededError(frontier[0], self.config.max_steps)

            if len(frontier) > 1:
                self.logger.info(f"   ⑂ Fan-out: executing {len(frontier)} steps: {frontier}")

            views = {name: ctx.state.view() for name in frontier}
            resume_value = NO_RESUME
            if resume is not None:
                resume_step, resume_value, step_state = resume
                if step_state is not None:
                    views[resume_step] = RunState(step_state).view()
            outcomes = await self._run_superstep(frontier, views, resume, resume_value)
            resume = None

            completed = [o for o in outcomes if not o.suspended]
            suspended = [o for o in outcomes if o.suspended]

            for outcome in completed:
                self._check_route(outcome)

            await ctx.state.merge_branches((o.step, o.update) for o in completed)
            ctx.steps_executed += len(completed)
            ctx.path.extend(o.step for o in completed)
            ctx.resumed_from = None

            next_frontier = carried
            carried = []
            for outcome in completed:
                next_frontier.extend(self._successors(ctx, outcome))
            next_frontier = list(dict.fromkeys(next_frontier))

            if suspended:
                return await self._suspend(ctx, suspended, next_frontier, views)

            frontier = next_frontier

        return self._complete(ctx)

    async def _run_superstep(
        self,
        frontier: list[str],
        views: dict[str, Any],
        resume: tuple[str, Any, Any] | None,
        resume_value: Any,
    ) -> list[StepOutcome]:
        """Run every frontier step concurrently; re-raise the first failure in frontier order."""
        calls = []
        for name in frontier:
            spec = self.graph.get_step(name)
            value = resume_value if resume is not None and resume[0] == name else NO_RESUME
            calls.append(self.executor.execute(spec, views[name], resume_value=value))

        results = await asyncio.gather(*calls, return_exceptions=True)

        for name, result in zip(frontier, results, strict=True):
            if isinstance(result, BaseException):
                self.logger.error(f"✗ Run aborted at step '{name}'")
                raise result

        return list(results)

    def _check_route(self, outcome: StepOutcome) -> None:
        """Reject directives that point at unregistered steps."""
        directive = outcome.directive
        if not isinstance(directive, Route):
            return

        destination = directive.destination
        if self.graph.get_step(destination) is None:
            raise StepExecutionError(outcome.step, f"routed to unknown step '{destination}'")

        spec = self.graph.get_step(outcome.step)
        if spec.allowed_destinations is not None and destination not in spec.allowed_destinations:
            self.logger.warning(
                f"⚠ Step '{outcome.step}' routed to '{destination}', "
                f"which is not in its declared destinations {spec.allowed_destinations}"
            )

    def _successors(self, ctx: _RunContext, outcome: StepOutcome) -> list[str]:
        """
        Next steps after ``outcome``.

        A directive wins over static edges. Static edge targets with more than
        one static predecessor wait until every predecessor has completed.
        """
        directive = outcome.directive

        if isinstance(directive, Terminate):
            return []

        if isinstance(directive, Route):
            return [directive.destination]

        ready = []
        for edge in self.graph.get_outgoing_edges(outcome.step):
            target = edge.target
            if self.graph.get_step(target) is None:
                continue

            predecessors = self._predecessors.get(target, frozenset())
            if len(predecessors) <= 1:
                ready.append(target)
                continue

            arrived = ctx.arrivals.setdefault(target, set())
            arrived.add(outcome.step)
            if arrived >= predecessors:
                del ctx.arrivals[target]
                self.logger.info(f"   ⑃ Fan-in: '{target}' has all predecessors {sorted(arrived)}")
                ready.append(target)
            else:
                waiting = sorted(predecessors - arrived)
                self.logger.debug(f"'{target}' waiting on {waiting}")

        return ready

    # === TERMINATION ===

    async def _suspend(
        self,
        ctx: _RunContext,
        suspended: list[StepOutcome],
        next_frontier: list[str],
        views: dict[str, Any],
    ) -> RunResult:
        """Persist the checkpoint for the first suspension and halt the run."""
        first = suspended[0]
        pending = next_frontier + [o.step for o in suspended[1:] if o.step not in next_frontier]

        checkpoint = SuspensionCheckpoint(
            run_id=ctx.run_id,
            graph_id=self.graph.id,
            paused_step=first.step,
            payload=first.payload,
            state=ctx.state.to_dict(),
            step_state=dict(views[first.step]),
            pending_steps=pending,
            arrivals={k: sorted(v) for k, v in ctx.arrivals.items()},
            path=list(ctx.path),
            steps_executed=ctx.steps_executed,
        )
        if self.store.serializes:
            self._check_round_trip(checkpoint)
        await self.store.put(ctx.run_id, checkpoint)

        if pending:
            self.logger.info(f"   Deferred until resume: {pending}")
        self.logger.info(f"⏸ Run {ctx.run_id} suspended at step '{first.step}'")

        return RunResult(
            status=ResultStatus.SUSPENDED,
            run_id=ctx.run_id,
            payload=first.payload,
            paused_step=first.step,
            path=list(ctx.path),
            steps_executed=ctx.steps_executed,
        )

    @staticmethod
    def _check_round_trip(checkpoint: SuspensionCheckpoint) -> None:
        """Raise unless state and step_state survive JSON serialization unchanged."""
        try:
            loaded = SuspensionCheckpoint.model_validate_json(checkpoint.model_dump_json())
        except ValueError as e:
            raise CheckpointSerializationError(checkpoint.run_id, str(e)) from e

        changed = set()
        for original, restored in (
            (checkpoint.state, loaded.state),
            (checkpoint.step_state or {}, loaded.step_state or {}),
        ):
            changed.update(k for k, v in original.items() if restored.get(k) != v)

        if changed:
            raise CheckpointSerializationError(
                checkpoint.run_id,
                f"fields {sorted(changed)} would not survive JSON serialization unchanged",
            )

    def _complete(self, ctx: _RunContext) -> RunResult:
        if ctx.arrivals:
            unreleased = {k: sorted(v) for k, v in ctx.arrivals.items()}
            self.logger.warning(f"⚠ Fan-in steps never released (partial arrivals): {unreleased}")

        self.logger.info(
            f"✓ Run {ctx.run_id} completed after {ctx.steps_executed} steps: {' → '.join(ctx.path)}"
        )
        return RunResult(
            status=ResultStatus.COMPLETED,
            run_id=ctx.run_id,
            final_state=ctx.state.to_dict(),
            path=list(ctx.path),
            steps_executed=ctx.steps_executed,
        )
