"""
Edge Protocol - How steps connect in a graph.

Edges are static: once the source step completes without a routing
directive, every outgoing edge is followed. Several outgoing edges form a
fan-out; several incoming edges form a fan-in, and the target waits for
all of its static predecessors before it runs.

Dynamic routing is not expressed with edges. A step returns a Route or
Terminate directive instead (see ``stepgraph.graph.directive``).
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from stepgraph.errors import DanglingEdgeError
from stepgraph.graph.directive import END, START
from stepgraph.graph.registry import FallbackPolicy, NodeRegistry, StepSpec

if TYPE_CHECKING:
    from stepgraph.config import EngineConfig
    from stepgraph.graph.runner import GraphRunner
    from stepgraph.storage.checkpoint_store import CheckpointStore

logger = logging.getLogger(__name__)


class EdgeSpec(BaseModel):
    """
    Specification for a static edge between steps.

    Examples:
        EdgeSpec(id="read-to-classify", source="read_email", target="classify_intent")

        # Entry edge
        EdgeSpec(id="start-to-read", source=START, target="read_email")
    """

    id: str
    source: str = Field(description="Source step name, or START")
    target: str = Field(description="Target step name, or END")
    description: str = ""

    model_config = {"extra": "allow"}


class StepGraph:
    """
    Builder for a step graph.

    Example:
        graph = StepGraph("email-support")
        graph.add_step("read_email", read_email)
        graph.add_step("classify_intent", classify_intent)
        graph.add_edge(START, "read_email")
        graph.add_edge("read_email", "classify_intent")
        runner = graph.compile(store=InMemoryCheckpointStore())
    """

    def __init__(self, id: str = "graph", description: str = ""):
        self.id = id
        self.description = description
        self.registry = NodeRegistry()
        self.edges: list[EdgeSpec] = []

    # === BUILDING ===

    def add_step(
        self,
        name: str,
        executable: Callable[..., Any],
        allowed_destinations: list[str] | None = None,
        fallback: FallbackPolicy | None = None,
        description: str = "",
    ) -> "StepGraph":
        """Register a step. See ``NodeRegistry.register``."""
        self.registry.register(
            name,
            executable,
            allowed_destinations=allowed_destinations,
            fallback=fallback,
            description=description,
        )
        return self

    def add_edge(self, source: str, target: str, description: str = "") -> "StepGraph":
        """Add a static edge. Duplicate edges are ignored."""
        if source == END:
            raise ValueError("END cannot be the source of an edge")
        if target == START:
            raise ValueError("START cannot be the target of an edge")

        if any(e.source == source and e.target == target for e in self.edges):
            logger.debug(f"Ignoring duplicate edge {source} -> {target}")
            return self

        self.edges.append(
            EdgeSpec(
                id=f"{source}-to-{target}",
                source=source,
                target=target,
                description=description,
            )
        )
        return self

    def set_entry(self, step: str) -> "StepGraph":
        return self.add_edge(START, step)

    # === QUERIES ===

    def get_step(self, name: str) -> StepSpec | None:
        return self.registry.get(name)

    def get_outgoing_edges(self, step: str) -> list[EdgeSpec]:
        """Get all edges leaving a step, in declaration order."""
        return [e for e in self.edges if e.source == step]

    def entry_steps(self) -> list[str]:
        return [e.target for e in self.get_outgoing_edges(START) if e.target != END]

    def predecessors(self) -> dict[str, frozenset[str]]:
        """Static predecessors of every step (START excluded)."""
        preds: dict[str, set[str]] = {name: set() for name in self.registry.names()}
        for edge in self.edges:
            if edge.source == START or edge.target == END:
                continue
            preds.setdefault(edge.target, set()).add(edge.source)
        return {name: frozenset(sources) for name, sources in preds.items()}

    def detect_fan_out_steps(self) -> dict[str, list[str]]:
        """
        Detect steps that fan out to multiple targets.

        Returns:
            Dict mapping source step -> list of parallel target steps
        """
        fan_outs: dict[str, list[str]] = {}
        for name in [START, *self.registry.names()]:
            targets = [e.target for e in self.get_outgoing_edges(name) if e.target != END]
            if len(targets) > 1:
                fan_outs[name] = targets
        return fan_outs

    def detect_fan_in_steps(self) -> dict[str, list[str]]:
        """
        Detect steps that wait on multiple predecessors (fan-in / convergence).

        Returns:
            Dict mapping target step -> list of source steps
        """
        fan_ins = {}
        for name, sources in self.predecessors().items():
            if len(sources) > 1:
                fan_ins[name] = sorted(sources)
        return fan_ins

    # === VALIDATION ===

    def dangling_references(self) -> list[str]:
        """Edge endpoints and declared destinations that name no registered step."""
        problems = []

        if not self.entry_steps():
            problems.append("No entry edge from START")

        for edge in self.edges:
            if edge.source != START and edge.source not in self.registry:
                problems.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target != END and edge.target not in self.registry:
                problems.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

        for spec in self.registry:
            for destination in spec.allowed_destinations or []:
                if destination != END and destination not in self.registry:
                    problems.append(
                        f"Step '{spec.name}' declares missing destination '{destination}'"
                    )

        return problems

    def unreachable_steps(self) -> list[str]:
        """Steps that no static edge or declared destination leads to."""
        reachable: set[str] = set()
        to_visit = self.entry_steps()

        while to_visit:
            current = to_visit.pop()
            if current in reachable or current == END:
                continue
            reachable.add(current)
            for edge in self.get_outgoing_edges(current):
                to_visit.append(edge.target)
            spec = self.registry.get(current)
            if spec is not None:
                to_visit.extend(spec.allowed_destinations or [])

        return [name for name in self.registry.names() if name not in reachable]

    def validate(self) -> list[str]:
        """Validate the graph structure. Returns errors and warnings as strings."""
        errors = self.dangling_references()
        for name in self.unreachable_steps():
            errors.append(f"Step '{name}' is unreachable from entry")
        return errors

    def compile(
        self,
        store: "CheckpointStore | None" = None,
        config: "EngineConfig | None" = None,
    ) -> "GraphRunner":
        """
        Validate the graph and build a runner for it.

        Raises:
            DanglingEdgeError: If any edge or declared destination is dangling
        """
        from stepgraph.graph.runner import GraphRunner

        problems = self.dangling_references()
        if problems:
            raise DanglingEdgeError(problems)

        for name in self.unreachable_steps():
            logger.warning(f"⚠ Step '{name}' is unreachable from entry")

        return GraphRunner(graph=self, store=store, config=config)

    def describe(self) -> dict[str, Any]:
        """Summary used by CLIs and logs."""
        return {
            "id": self.id,
            "description": self.description,
            "steps": self.registry.names(),
            "edges": [e.id for e in self.edges],
            "entry_steps": self.entry_steps(),
            "routers": {
                spec.name: list(spec.allowed_destinations)
                for spec in self.registry
                if spec.allowed_destinations is not None
            },
            "fan_out": self.detect_fan_out_steps(),
            "fan_in": self.detect_fan_in_steps(),
        }
