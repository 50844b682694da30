"""
Error taxonomy for step graphs.

Build-time errors (DuplicateStepError, DanglingEdgeError) are raised while a
graph is assembled and compiled. Run-time errors (StepExecutionError,
NoPendingSuspensionError, CheckpointSerializationError) are raised by the
GraphRunner and abort the call that triggered them. MergeConflictWarning is advisory only.
"""


class StepGraphError(Exception):
    """Base class for all step graph errors."""


class DuplicateStepError(StepGraphError):
    """A step with the same name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Step '{name}' is already registered")


class DanglingEdgeError(StepGraphError):
    """An edge or declared destination points at a step that does not exist."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("Graph has dangling references: " + "; ".join(self.problems))


class StepExecutionError(StepGraphError):
    """
    A step failed and has no fallback policy.

    The run is aborted and the failing step's update is not merged.
    The original exception (if any) is available as ``__cause__``.
    """

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"Step '{step}' failed: {message}")


class StepLimitExceededError(StepExecutionError):
    """The run executed more steps than ``max_steps`` allows."""

    def __init__(self, step: str, max_steps: int):
        self.max_steps = max_steps
        super().__init__(step, f"step limit of {max_steps} exceeded")


class NoPendingSuspensionError(StepGraphError):
    """Resume was requested for a run with no outstanding checkpoint."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"No pending suspension for run '{run_id}'")


class MergeConflictWarning(UserWarning):
    """Two branches of the same superstep wrote different values to one field."""


class CheckpointSerializationError(StepGraphError):
    """Run state would not survive the checkpoint store's serialization unchanged."""

    def __init__(self, run_id: str, message: str):
        self.run_id = run_id
        super().__init__(f"Cannot checkpoint run '{run_id}': {message}")
