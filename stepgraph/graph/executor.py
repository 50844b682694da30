"""
Step Executor - runs a single named step.

The executor:
1. Hands the step a read-only snapshot of the run state
2. Binds the resume slot so ``suspend()`` works inside the step
3. Normalizes whatever the step returned into a Directive
4. Applies the step's fallback policy when the step raises

It does not touch the authoritative state. Merging and routing belong to
the GraphRunner.
"""

import inspect
import logging
import time
import traceback
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from stepgraph.errors import StepExecutionError
from stepgraph.graph.directive import Continue, Directive, normalize_result
from stepgraph.graph.interrupt import NO_RESUME, StepSuspended, enter_step, exit_step
from stepgraph.graph.registry import StepSpec
from stepgraph.observability import set_trace_context

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """Result of executing one step."""

    step: str
    directive: Directive | None = None
    suspended: bool = False
    payload: Any = None
    used_fallback: bool = False
    error: str | None = None
    latency_ms: int = 0

    @property
    def update(self) -> Mapping[str, Any]:
        if self.directive is None:
            return {}
        return self.directive.update


class StepExecutor:
    """
    Executes steps one at a time.

    Example:
        executor = StepExecutor()
        outcome = await executor.execute(spec, state.view())
        if outcome.suspended:
            ...
    """

    async def execute(
        self,
        spec: StepSpec,
        state: Mapping[str, Any],
        resume_value: Any = NO_RESUME,
    ) -> StepOutcome:
        """
        Execute a step against a state snapshot.

        Args:
            spec: Step to run
            state: Read-only snapshot of the run state
            resume_value: Value returned by ``suspend()`` when re-entering a paused step

        Returns:
            StepOutcome with the normalized directive, or a suspension

        Raises:
            StepExecutionError: If the step fails and has no fallback
        """
        set_trace_context(step=spec.name)
        token = enter_step(spec.name, resume_value)
        start = time.perf_counter()
        resuming = resume_value is not NO_RESUME

        logger.info(f"▶ Step {spec.name}" + (" (resuming)" if resuming else ""))

        try:
            result = spec.executable(state)
            if inspect.isawaitable(result):
                result = await result
        except StepSuspended as signal:
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.info(f"⏸ Step {spec.name} suspended")
            return StepOutcome(
                step=spec.name,
                suspended=True,
                payload=signal.payload,
                latency_ms=latency_ms,
            )
        except Exception as e:
            latency_ms = int((time.perf_counter() - start) * 1000)
            return self._handle_failure(spec, state, e, latency_ms)
        finally:
            exit_step(token)

        latency_ms = int((time.perf_counter() - start) * 1000)

        try:
            directive = normalize_result(result)
        except TypeError as e:
            logger.error(f"✗ Step {spec.name} returned an invalid result: {e}")
            raise StepExecutionError(spec.name, str(e)) from e

        logger.info(f"✓ Step {spec.name} ({latency_ms}ms): {self._describe(directive)}")
        return StepOutcome(step=spec.name, directive=directive, latency_ms=latency_ms)

    def _handle_failure(
        self,
        spec: StepSpec,
        state: Mapping[str, Any],
        error: Exception,
        latency_ms: int,
    ) -> StepOutcome:
        """Apply the step's fallback policy or abort."""
        if not spec.has_fallback:
            logger.error(f"✗ Step {spec.name} failed: {error}")
            logger.debug(traceback.format_exc())
            raise StepExecutionError(spec.name, str(error)) from error

        logger.warning(f"↻ Step {spec.name} failed, using fallback: {error}")

        fallback = spec.fallback
        try:
            if callable(fallback):
                fallback = fallback(error, state)
            directive = normalize_result(fallback)
        except Exception as e:
            logger.error(f"✗ Fallback for step {spec.name} failed: {e}")
            raise StepExecutionError(spec.name, f"fallback failed: {e}") from error

        return StepOutcome(
            step=spec.name,
            directive=directive,
            used_fallback=True,
            error=str(error),
            latency_ms=latency_ms,
        )

    @staticmethod
    def _describe(directive: Directive) -> str:
        keys = sorted(directive.update)
        if isinstance(directive, Continue):
            return f"updated {keys}"
        if hasattr(directive, "destination"):
            return f"updated {keys}, routing to '{directive.destination}'"
        return f"updated {keys}, terminating"
