"""
Node Registry - maps step names to their executables.

Steps are registered once by name. A step that can route dynamically
declares the set of destinations it may route to; that set is checked
when the graph is compiled so dangling routes are caught before a run
starts.
"""

import inspect
import logging
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel, Field

from stepgraph.errors import DuplicateStepError
from stepgraph.graph.directive import RESERVED_NAMES, Directive

logger = logging.getLogger(__name__)

# Fallback policy: a fixed update/directive, or a callable (exc, state) -> update/directive
FallbackPolicy = (
    Mapping[str, Any]
    | Directive
    | Callable[[Exception, Mapping[str, Any]], Mapping[str, Any] | Directive]
)


class StepSpec(BaseModel):
    """
    Definition of a single step.

    Examples:
        # Plain step, follows static edges
        StepSpec(name="read_email", executable=read_email)

        # Dynamic router with a declared set of destinations
        StepSpec(
            name="write_response",
            executable=write_response,
            allowed_destinations=["human_review", "send_reply"],
        )

        # Step whose failures are tolerated
        StepSpec(
            name="classify",
            executable=classify,
            fallback={"classification": DEFAULT_CLASSIFICATION},
        )
    """

    name: str
    executable: Callable[..., Any]
    allowed_destinations: list[str] | None = Field(
        default=None,
        description="Steps this step may route to; None means it never emits a directive",
    )
    fallback: Any = Field(
        default=None,
        description="Update, directive or (exc, state) callable used when the step raises",
    )
    description: str = ""

    model_config = {"arbitrary_types_allowed": True}

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.executable) or inspect.iscoroutinefunction(
            getattr(self.executable, "__call__", None)
        )

    @property
    def routes_dynamically(self) -> bool:
        return self.allowed_destinations is not None

    @property
    def has_fallback(self) -> bool:
        return self.fallback is not None


class NodeRegistry:
    """Registry of steps by name."""

    def __init__(self):
        self._steps: dict[str, StepSpec] = {}

    def register(
        self,
        name: str,
        executable: Callable[..., Any],
        allowed_destinations: list[str] | None = None,
        fallback: FallbackPolicy | None = None,
        description: str = "",
    ) -> StepSpec:
        """
        Register a step.

        Args:
            name: Unique step name
            executable: Callable taking the state view, sync or async
            allowed_destinations: Legal routing targets (advisory, checked at compile)
            fallback: Failure policy; without one a raising step aborts the run
            description: Human-readable description

        Returns:
            The registered StepSpec

        Raises:
            DuplicateStepError: If ``name`` is already registered
            ValueError: If ``name`` is reserved
        """
        if name in RESERVED_NAMES:
            raise ValueError(f"'{name}' is a reserved step name")
        if name in self._steps:
            raise DuplicateStepError(name)
        if not callable(executable):
            raise TypeError(f"Executable for step '{name}' is not callable")

        spec = StepSpec(
            name=name,
            executable=executable,
            allowed_destinations=(
                list(allowed_destinations) if allowed_destinations is not None else None
            ),
            fallback=fallback,
            description=description,
        )
        self._steps[name] = spec
        logger.debug(f"Registered step '{name}'")
        return spec

    def get(self, name: str) -> StepSpec | None:
        return self._steps.get(name)

    def names(self) -> list[str]:
        return list(self._steps)

    def __contains__(self, name: object) -> bool:
        return name in self._steps

    def __iter__(self) -> Iterator[StepSpec]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)
