"""
Run Schema - what callers get back from start() and resume().
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class RunStatus(StrEnum):
    """Lifecycle of a run: RUNNING -> SUSPENDED -> RUNNING -> ... -> TERMINATED."""

    RUNNING = "running"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class ResultStatus(StrEnum):
    """Observable outcome of a start/resume call."""

    COMPLETED = "completed"
    SUSPENDED = "suspended"


class RunResult(BaseModel):
    """
    Result of driving a run until it completes or suspends.

    Completed:
        RunResult(status="completed", run_id=..., final_state={...})

    Suspended ("awaiting input"):
        RunResult(status="suspended", run_id=..., paused_step=..., payload={...})
    """

    status: ResultStatus
    run_id: str
    final_state: dict[str, Any] = Field(default_factory=dict)
    payload: Any = None
    paused_step: str | None = None
    path: list[str] = Field(default_factory=list)
    steps_executed: int = 0

    model_config = {"extra": "allow"}

    @property
    def is_completed(self) -> bool:
        return self.status == ResultStatus.COMPLETED

    @property
    def is_suspended(self) -> bool:
        return self.status == ResultStatus.SUSPENDED

    @property
    def run_status(self) -> RunStatus:
        """Where the run now sits in its lifecycle."""
        return RunStatus.SUSPENDED if self.is_suspended else RunStatus.TERMINATED


def generate_run_id() -> str:
    """
    Generate a run ID in format: run_YYYYMMDD_HHMMSS_{uuid}.

    Returns:
        Run ID string (e.g., "run_20260206_143022_abc12345")
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid.uuid4().hex[:8]
    return f"run_{timestamp}_{short_uuid}"
