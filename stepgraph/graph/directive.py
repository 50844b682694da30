"""
Routing directives - how a step tells the scheduler where to go next.

A step returns one of:

- a plain mapping (or None): the partial update only; static edges are followed
- Continue(update): same as a plain mapping
- Route(update, destination): merge the update, then go to ``destination``
- Terminate(update): merge the update, then stop this branch
- (update, destination): tuple shorthand for Route / Terminate

Route and Terminate are exclusive with static edges: once a step emits one,
its outgoing edges are never consulted.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

START = "__start__"
END = "__end__"

RESERVED_NAMES = frozenset({START, END})


@dataclass(frozen=True)
class Continue:
    """Merge ``update`` and follow the step's static edges."""

    update: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Route:
    """Merge ``update`` and go to ``destination`` (a step name or END)."""

    update: Mapping[str, Any]
    destination: str


@dataclass(frozen=True)
class Terminate:
    """Merge ``update`` and end this branch of the run."""

    update: Mapping[str, Any] = field(default_factory=dict)


Directive = Continue | Route | Terminate


def normalize_result(result: Any) -> Directive:
    """
    Coerce whatever a step returned into a Directive.

    Raises:
        TypeError: If the result has an unsupported shape
    """
    if result is None:
        return Continue({})

    if isinstance(result, Route) and result.destination == END:
        return Terminate(result.update)

    if isinstance(result, Continue | Route | Terminate):
        if not isinstance(result.update, Mapping):
            raise TypeError(
                f"Directive update must be a mapping, got {type(result.update).__name__}"
            )
        return result

    if isinstance(result, Mapping):
        return Continue(result)

    if isinstance(result, tuple) and len(result) == 2:
        update, destination = result
        if update is None:
            update = {}
        if not isinstance(update, Mapping):
            raise TypeError(f"Partial update must be a mapping, got {type(update).__name__}")
        if not isinstance(destination, str):
            raise TypeError(
                f"Routing destination must be a step name, got {type(destination).__name__}"
            )
        if destination == END:
            return Terminate(update)
        return Route(update, destination)

    raise TypeError(f"Unsupported step result type: {type(result).__name__}")
