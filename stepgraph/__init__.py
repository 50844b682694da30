"""
stepgraph - durable, resumable step-graph orchestration.

Build a graph of steps over a shared state record, run it, and let any step
suspend the run until an external decision arrives::

    from stepgraph import START, StepGraph, suspend

    graph = StepGraph("review")
    graph.add_step("draft", draft)
    graph.add_step("approve", approve, allowed_destinations=["publish"])
    graph.add_edge(START, "draft")
    graph.add_edge("draft", "approve")

    runner = graph.compile()
    result = await runner.start({"topic": "release notes"})
    if result.is_suspended:
        result = await runner.resume(result.run_id, {"approved": True})
"""

from stepgraph.config import EngineConfig, RuntimeConfig
from stepgraph.errors import (
    CheckpointSerializationError,
    DanglingEdgeError,
    DuplicateStepError,
    MergeConflictWarning,
    NoPendingSuspensionError,
    StepExecutionError,
    StepGraphError,
    StepLimitExceededError,
)
from stepgraph.graph import (
    END,
    START,
    Continue,
    GraphRunner,
    Route,
    StepGraph,
    Terminate,
    suspend,
)
from stepgraph.schemas import RunResult, SuspensionCheckpoint
from stepgraph.storage import CheckpointStore, FileCheckpointStore, InMemoryCheckpointStore

__version__ = "0.1.0"

__all__ = [
    # Graph
    "StepGraph",
    "GraphRunner",
    "START",
    "END",
    "Continue",
    "Route",
    "Terminate",
    "suspend",
    # Results and checkpoints
    "RunResult",
    "SuspensionCheckpoint",
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "FileCheckpointStore",
    # Config
    "EngineConfig",
    "RuntimeConfig",
    # Errors
    "StepGraphError",
    "DuplicateStepError",
    "DanglingEdgeError",
    "StepExecutionError",
    "StepLimitExceededError",
    "NoPendingSuspensionError",
    "CheckpointSerializationError",
    "MergeConflictWarning",
]
