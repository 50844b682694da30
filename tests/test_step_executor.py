"""Tests for StepExecutor outcomes, fallbacks and suspension."""

import pytest

from stepgraph.errors import StepExecutionError
from stepgraph.graph.directive import Continue, Route, Terminate
from stepgraph.graph.executor import StepExecutor
from stepgraph.graph.interrupt import suspend
from stepgraph.graph.registry import NodeRegistry
from stepgraph.graph.state import snapshot
from stepgraph.observability import get_trace_context


def make_spec(name, fn, **kwargs):
    return NodeRegistry().register(name, fn, **kwargs)


@pytest.fixture
def executor():
    return StepExecutor()


@pytest.mark.asyncio
async def test_sync_step_mapping_becomes_continue(executor):
    spec = make_spec("double", lambda state: {"n": state["n"] * 2})

    outcome = await executor.execute(spec, snapshot({"n": 2}))

    assert outcome.directive == Continue({"n": 4})
    assert outcome.update == {"n": 4}
    assert not outcome.suspended
    assert not outcome.used_fallback


@pytest.mark.asyncio
async def test_async_step(executor):
    async def fetch(state):
        return Route({"fetched": True}, "next")

    outcome = await executor.execute(make_spec("fetch", fetch), snapshot({}))

    assert outcome.directive == Route({"fetched": True}, "next")


@pytest.mark.asyncio
async def test_step_sees_read_only_state(executor):
    def mutate(state):
        state["n"] = 1
        return {}

    with pytest.raises(StepExecutionError):
        await executor.execute(make_spec("mutate", mutate), snapshot({"n": 0}))


@pytest.mark.asyncio
async def test_failure_without_fallback_aborts(executor):
    def boom(state):
        raise ConnectionError("service down")

    with pytest.raises(StepExecutionError) as exc_info:
        await executor.execute(make_spec("boom", boom), snapshot({}))

    assert exc_info.value.step == "boom"
    assert isinstance(exc_info.value.__cause__, ConnectionError)


@pytest.mark.asyncio
async def test_invalid_result_shape_aborts(executor):
    with pytest.raises(StepExecutionError, match="Unsupported step result"):
        await executor.execute(make_spec("bad", lambda state: 42), snapshot({}))


@pytest.mark.asyncio
async def test_fallback_value_used_on_failure(executor):
    def boom(state):
        raise ValueError("bad json")

    spec = make_spec("classify", boom, fallback={"classification": "default"})
    outcome = await executor.execute(spec, snapshot({}))

    assert outcome.used_fallback
    assert outcome.error == "bad json"
    assert outcome.directive == Continue({"classification": "default"})


@pytest.mark.asyncio
async def test_fallback_callable_receives_error_and_state(executor):
    seen = {}

    def boom(state):
        raise TimeoutError("slow")

    def fallback(error, state):
        seen["error"] = error
        seen["state"] = dict(state)
        return Route({"draft": "error"}, "review")

    spec = make_spec("draft", boom, fallback=fallback)
    outcome = await executor.execute(spec, snapshot({"email": "hi"}))

    assert isinstance(seen["error"], TimeoutError)
    assert seen["state"] == {"email": "hi"}
    assert outcome.directive == Route({"draft": "error"}, "review")


@pytest.mark.asyncio
async def test_failing_fallback_aborts(executor):
    def boom(state):
        raise ValueError("first")

    def bad_fallback(error, state):
        raise RuntimeError("second")

    with pytest.raises(StepExecutionError, match="fallback failed"):
        await executor.execute(make_spec("x", boom, fallback=bad_fallback), snapshot({}))


@pytest.mark.asyncio
async def test_suspend_produces_suspended_outcome(executor):
    def review(state):
        decision = suspend({"question": "ok?"})
        return Terminate({"decision": decision})

    outcome = await executor.execute(make_spec("review", review), snapshot({}))

    assert outcome.suspended
    assert outcome.payload == {"question": "ok?"}
    assert outcome.directive is None
    assert outcome.update == {}


@pytest.mark.asyncio
async def test_resume_value_returned_from_suspend(executor):
    def review(state):
        decision = suspend({"question": "ok?"})
        return Terminate({"decision": decision})

    outcome = await executor.execute(make_spec("review", review), snapshot({}), resume_value="yes")

    assert not outcome.suspended
    assert outcome.directive == Terminate({"decision": "yes"})


@pytest.mark.asyncio
async def test_suspend_swallowing_except_exception_still_suspends(executor):
    def review(state):
        try:
            suspend("payload")
        except Exception:
            return {"swallowed": True}
        return {}

    outcome = await executor.execute(make_spec("review", review), snapshot({}))

    assert outcome.suspended


@pytest.mark.asyncio
async def test_trace_context_carries_step(executor):
    seen = {}

    def step(state):
        seen.update(get_trace_context())
        return {}

    await executor.execute(make_spec("traced", step), snapshot({}))

    assert seen["step"] == "traced"


def test_suspend_outside_step_raises():
    with pytest.raises(RuntimeError, match="inside a running step"):
        suspend("nope")
