"""Graph structures: steps, edges, directives, execution and suspension."""

from stepgraph.graph.directive import END, START, Continue, Directive, Route, Terminate
from stepgraph.graph.edge import EdgeSpec, StepGraph
from stepgraph.graph.executor import StepExecutor, StepOutcome
from stepgraph.graph.interrupt import StepSuspended, suspend
from stepgraph.graph.registry import NodeRegistry, StepSpec
from stepgraph.graph.runner import GraphRunner
from stepgraph.graph.state import RunState, merge_update

__all__ = [
    # Directives
    "START",
    "END",
    "Continue",
    "Route",
    "Terminate",
    "Directive",
    # Structure
    "StepSpec",
    "NodeRegistry",
    "EdgeSpec",
    "StepGraph",
    # Execution
    "StepExecutor",
    "StepOutcome",
    "GraphRunner",
    # State
    "RunState",
    "merge_update",
    # HITL
    "suspend",
    "StepSuspended",
]
