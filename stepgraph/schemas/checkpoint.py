"""
Checkpoint Schema - the persisted pause point of a suspended run.

A checkpoint captures everything needed to re-enter a run at the step that
suspended it: the step name, the payload it asked about, and the run state
as it was when the step ran. The scheduler bookkeeping (pending steps and
partially satisfied fan-in barriers) lets a run that suspended in the middle
of a fan-out pick up its other branches too.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SuspensionCheckpoint(BaseModel):
    """
    Outstanding suspension of a single run.

    At most one exists per run. It is created when a step suspends and
    deleted when the run is resumed.
    """

    # Identity
    run_id: str
    graph_id: str = ""
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat())

    # Pause point
    paused_step: str
    payload: Any = None

    # State snapshot at the moment of suspension
    state: dict[str, Any] = Field(default_factory=dict)
    step_state: dict[str, Any] | None = Field(
        default=None,
        description="State the paused step saw; differs from state when fan-out siblings merged",
    )

    # Scheduler bookkeeping
    pending_steps: list[str] = Field(
        default_factory=list,
        description="Steps that became ready alongside the suspension but had not started",
    )
    arrivals: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Fan-in barriers partially satisfied: {target: [completed predecessors]}",
    )
    path: list[str] = Field(default_factory=list)
    steps_executed: int = 0

    model_config = {"extra": "allow"}

    def summary(self) -> dict[str, Any]:
        """Lightweight view for listings and CLIs."""
        return {
            "run_id": self.run_id,
            "graph_id": self.graph_id,
            "paused_step": self.paused_step,
            "created_at": self.created_at,
            "payload": self.payload,
        }
