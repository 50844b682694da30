"""
Interrupt/Resume Protocol - pausing a run from inside a step.

A step pauses the whole run by calling ``suspend(payload)``::

    def human_review(state):
        decision = suspend({"draft": state["draft_response"]})
        ...

The first time the step runs, ``suspend`` raises ``StepSuspended`` and the
runner persists a checkpoint. When the run is resumed the step function is
invoked again *from its start*, and this time ``suspend`` returns the resume
value instead of raising.

Because of that re-invocation, ``suspend`` must be the first operation in the
step body. Anything executed before it runs again on resume.
"""

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

_UNSET = object()


class StepSuspended(BaseException):
    """
    Raised by ``suspend`` to unwind a step that is waiting for input.

    Derives from BaseException so ``except Exception`` blocks inside step
    bodies do not swallow it.
    """

    def __init__(self, payload: Any):
        self.payload = payload
        super().__init__("step suspended")


@dataclass
class _ResumeSlot:
    step: str
    value: Any = _UNSET
    calls: int = 0


_current_slot: ContextVar[_ResumeSlot | None] = ContextVar("stepgraph_resume_slot", default=None)


def suspend(payload: Any = None) -> Any:
    """
    Pause the run until an external caller resumes it.

    Args:
        payload: JSON-serializable description of the input needed

    Returns:
        The value passed to ``GraphRunner.resume`` for this run

    Raises:
        RuntimeError: If called outside a running step, or twice in one invocation
    """
    slot = _current_slot.get()
    if slot is None:
        raise RuntimeError("suspend() can only be called from inside a running step")

    slot.calls += 1
    if slot.calls > 1:
        raise RuntimeError(
            f"suspend() called more than once in step '{slot.step}'; "
            "a step may only suspend once per invocation"
        )

    if slot.value is _UNSET:
        raise StepSuspended(payload)

    value = slot.value
    slot.value = _UNSET
    return value


def enter_step(step: str, resume_value: Any = _UNSET):
    """Bind a resume slot for the current step invocation. Returns a reset token."""
    return _current_slot.set(_ResumeSlot(step=step, value=resume_value))


def exit_step(token) -> None:
    _current_slot.reset(token)


NO_RESUME = _UNSET
