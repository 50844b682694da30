"""Persisted and returned data models."""

from stepgraph.schemas.checkpoint import SuspensionCheckpoint
from stepgraph.schemas.run import ResultStatus, RunResult, RunStatus, generate_run_id

__all__ = [
    "SuspensionCheckpoint",
    "RunResult",
    "RunStatus",
    "ResultStatus",
    "generate_run_id",
]
