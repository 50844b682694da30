"""
Tests for GraphRunner scheduling.

Covers linear runs, routing directives, fan-out/fan-in barriers, merge
determinism, failure handling and the step limit.
"""

import asyncio
import logging

import pytest

from stepgraph.config import EngineConfig
from stepgraph.errors import MergeConflictWarning, StepExecutionError, StepLimitExceededError
from stepgraph.graph.directive import END, START, Route, Terminate
from stepgraph.graph.edge import StepGraph
from stepgraph.observability import get_trace_context
from stepgraph.schemas.run import ResultStatus


def setter(key, value, delay=0.0):
    """Async step that sleeps, then writes one key."""

    async def step(state):
        if delay:
            await asyncio.sleep(delay)
        return {key: value}

    return step


def diamond(left_delay=0.0, right_delay=0.0, left_value="L", right_value="R", key=None):
    """start -> split -> {left, right} -> join."""
    calls = []

    async def join(state):
        calls.append(dict(state))
        return {"joined": True}

    graph = StepGraph("diamond")
    graph.add_step("split", setter("split", True))
    graph.add_step("left", setter(key or "left", left_value, left_delay))
    graph.add_step("right", setter(key or "right", right_value, right_delay))
    graph.add_step("join", join)
    graph.add_edge(START, "split")
    graph.add_edge("split", "left")
    graph.add_edge("split", "right")
    graph.add_edge("left", "join")
    graph.add_edge("right", "join")
    graph.add_edge("join", END)
    return graph, calls


class TestLinearRuns:
    @pytest.mark.asyncio
    async def test_linear_run_completes(self, linear_graph):
        graph = linear_graph(
            ("read", lambda state: {"read": True}),
            ("count", lambda state: {"count": len(state["text"])}),
        )

        result = await graph.compile().start({"text": "hello"})

        assert result.status == ResultStatus.COMPLETED
        assert result.is_completed
        assert result.final_state == {"text": "hello", "read": True, "count": 5}
        assert result.path == ["read", "count"]
        assert result.steps_executed == 2

    @pytest.mark.asyncio
    async def test_run_id_generated_and_explicit(self, linear_graph):
        runner = linear_graph(("a", lambda state: {})).compile()

        generated = await runner.start({})
        explicit = await runner.start({}, run_id="my-run")

        assert generated.run_id.startswith("run_")
        assert explicit.run_id == "my-run"

    @pytest.mark.asyncio
    async def test_initial_state_not_mutated(self, linear_graph):
        initial = {"items": [1]}
        runner = linear_graph(("a", lambda state: {"items": [*state["items"], 2]})).compile()

        result = await runner.start(initial)

        assert initial == {"items": [1]}
        assert result.final_state["items"] == [1, 2]

    @pytest.mark.asyncio
    async def test_trace_context_has_run_and_step(self, linear_graph):
        seen = {}

        def step(state):
            seen.update(get_trace_context())
            return {}

        graph = linear_graph(("traced", step), graph_id="traced-graph")
        result = await graph.compile().start({})

        assert seen["run_id"] == result.run_id
        assert seen["graph_id"] == "traced-graph"
        assert seen["step"] == "traced"


class TestRouting:
    @pytest.mark.asyncio
    async def test_route_overrides_static_edges(self):
        graph = StepGraph()
        graph.add_step("decide", lambda state: Route({"chose": "b"}, "b"), ["a", "b"])
        graph.add_step("a", lambda state: {"a": True})
        graph.add_step("b", lambda state: {"b": True})
        graph.add_edge(START, "decide")
        graph.add_edge("decide", "a")

        result = await graph.compile().start({})

        assert result.path == ["decide", "b"]
        assert "a" not in result.final_state
        assert result.final_state["b"] is True

    @pytest.mark.asyncio
    async def test_terminate_ignores_static_edges(self):
        graph = StepGraph()
        graph.add_step("stop", lambda state: Terminate({"stopped": True}))
        graph.add_step("after", lambda state: {"after": True})
        graph.add_edge(START, "stop")
        graph.add_edge("stop", "after")

        result = await graph.compile().start({})

        assert result.path == ["stop"]
        assert result.final_state == {"stopped": True}

    @pytest.mark.asyncio
    async def test_tuple_route_to_end_terminates(self):
        graph = StepGraph()
        graph.add_step("stop", lambda state: ({"done": True}, END), [END])
        graph.add_step("after", lambda state: {"after": True})
        graph.add_edge(START, "stop")
        graph.add_edge("stop", "after")

        result = await graph.compile().start({})

        assert result.path == ["stop"]

    @pytest.mark.asyncio
    async def test_route_to_unknown_step_aborts(self, store):
        graph = StepGraph()
        graph.add_step("decide", lambda state: Route({}, "ghost"))
        graph.add_edge(START, "decide")

        with pytest.raises(StepExecutionError, match="unknown step 'ghost'"):
            await graph.compile(store=store).start({})
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_route_outside_declared_destinations_warns(self, caplog):
        graph = StepGraph()
        graph.add_step("decide", lambda state: Route({}, "c"), allowed_destinations=["b"])
        graph.add_step("b", lambda state: {})
        graph.add_step("c", lambda state: {"c": True})
        graph.add_edge(START, "decide")

        with caplog.at_level(logging.WARNING):
            result = await graph.compile().start({})

        assert result.final_state == {"c": True}
        assert "not in its declared destinations" in caplog.text

    @pytest.mark.asyncio
    async def test_step_limit(self):
        graph = StepGraph()
        graph.add_step(
            "loop", lambda state: Route({"n": state.get("n", 0) + 1}, "loop"), ["loop"]
        )
        graph.add_edge(START, "loop")

        runner = graph.compile(config=EngineConfig(max_steps=5))
        with pytest.raises(StepLimitExceededError) as exc_info:
            await runner.start({})
        assert exc_info.value.max_steps == 5
        assert exc_info.value.step == "loop"

    @pytest.mark.asyncio
    async def test_bounded_loop_completes(self):
        def loop(state):
            n = state.get("n", 0) + 1
            return Route({"n": n}, "loop" if n < 3 else END)

        graph = StepGraph()
        graph.add_step("loop", loop, ["loop", END])
        graph.add_edge(START, "loop")

        result = await graph.compile().start({})

        assert result.final_state == {"n": 3}
        assert result.path == ["loop", "loop", "loop"]


class TestFanOutFanIn:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("left_delay,right_delay", [(0.02, 0.0), (0.0, 0.02)])
    async def test_join_runs_once_with_both_branches(self, left_delay, right_delay):
        graph, calls = diamond(left_delay, right_delay)

        result = await graph.compile().start({})

        assert len(calls) == 1
        assert calls[0]["left"] == "L"
        assert calls[0]["right"] == "R"
        assert result.path == ["split", "left", "right", "join"]
        assert result.final_state["joined"] is True

    @pytest.mark.asyncio
    async def test_branches_run_concurrently(self):
        running = []
        peak = []

        def tracked(name):
            async def step(state):
                running.append(name)
                peak.append(len(running))
                await asyncio.sleep(0.01)
                running.remove(name)
                return {name: True}

            return step

        graph = StepGraph()
        graph.add_step("split", lambda state: {})
        graph.add_step("a", tracked("a"))
        graph.add_step("b", tracked("b"))
        graph.add_edge(START, "split")
        graph.add_edge("split", "a")
        graph.add_edge("split", "b")

        await graph.compile().start({})

        assert max(peak) == 2

    @pytest.mark.asyncio
    async def test_barrier_waits_across_supersteps(self):
        calls = []

        def join(state):
            calls.append(dict(state))
            return {}

        graph = StepGraph()
        graph.add_step("split", lambda state: {})
        graph.add_step("short", lambda state: {"short": True})
        graph.add_step("long1", lambda state: {"long1": True})
        graph.add_step("long2", lambda state: {"long2": True})
        graph.add_step("join", join)
        graph.add_edge(START, "split")
        graph.add_edge("split", "short")
        graph.add_edge("split", "long1")
        graph.add_edge("long1", "long2")
        graph.add_edge("short", "join")
        graph.add_edge("long2", "join")

        result = await graph.compile().start({})

        assert len(calls) == 1
        assert calls[0]["short"] and calls[0]["long2"]
        assert result.path[-1] == "join"

    @pytest.mark.asyncio
    async def test_unreleased_barrier_is_logged(self, caplog):
        graph = StepGraph()
        graph.add_step("split", lambda state: {})
        graph.add_step("left", lambda state: {})
        graph.add_step("right", lambda state: Terminate({}))
        graph.add_step("join", lambda state: {"joined": True})
        graph.add_edge(START, "split")
        graph.add_edge("split", "left")
        graph.add_edge("split", "right")
        graph.add_edge("left", "join")
        graph.add_edge("right", "join")

        with caplog.at_level(logging.WARNING):
            result = await graph.compile().start({})

        assert "joined" not in result.final_state
        assert "never released" in caplog.text

    @pytest.mark.asyncio
    async def test_directive_destination_bypasses_barrier(self):
        graph = StepGraph()
        graph.add_step("split", lambda state: {})
        graph.add_step("left", lambda state: Route({}, "join"), ["join"])
        graph.add_step("right", lambda state: Terminate({}))
        graph.add_step("join", lambda state: {"joined": True})
        graph.add_edge(START, "split")
        graph.add_edge("split", "left")
        graph.add_edge("split", "right")
        graph.add_edge("left", "join")
        graph.add_edge("right", "join")

        result = await graph.compile().start({})

        assert result.final_state["joined"] is True


class TestMergeDeterminism:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("left_delay,right_delay", [(0.02, 0.0), (0.0, 0.02)])
    async def test_conflict_resolved_in_frontier_order(self, left_delay, right_delay):
        graph, _ = diamond(left_delay, right_delay, key="shared")

        with pytest.warns(MergeConflictWarning, match="'shared'"):
            result = await graph.compile().start({})

        # right is declared after left, so it wins whatever finished first
        assert result.final_state["shared"] == "R"

    @pytest.mark.asyncio
    async def test_same_input_same_output(self):
        graph, _ = diamond(0.01, 0.0)
        runner = graph.compile()

        first = await runner.start({"seed": 1})
        second = await runner.start({"seed": 1})

        assert first.final_state == second.final_state
        assert first.path == second.path


class TestFailures:
    @pytest.mark.asyncio
    async def test_failing_step_aborts_without_commit(self, store, linear_graph):
        seen = []

        def boom(state):
            raise RuntimeError("kaput")

        graph = linear_graph(
            ("ok", lambda state: {"ok": True}),
            ("boom", boom),
            ("never", lambda state: seen.append("never") or {}),
        )

        with pytest.raises(StepExecutionError) as exc_info:
            await graph.compile(store=store).start({})

        assert exc_info.value.step == "boom"
        assert seen == []
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_failing_branch_waits_for_siblings(self):
        finished = []

        async def slow(state):
            await asyncio.sleep(0.01)
            finished.append("slow")
            return {}

        def boom(state):
            raise RuntimeError("kaput")

        graph = StepGraph()
        graph.add_step("split", lambda state: {})
        graph.add_step("boom", boom)
        graph.add_step("slow", slow)
        graph.add_edge(START, "split")
        graph.add_edge("split", "boom")
        graph.add_edge("split", "slow")

        with pytest.raises(StepExecutionError):
            await graph.compile().start({})

        assert finished == ["slow"]

    @pytest.mark.asyncio
    async def test_fallback_keeps_run_going(self):
        def flaky(state):
            raise ConnectionError("down")

        graph = StepGraph()
        graph.add_step("flaky", flaky, fallback={"flaky": "fallback"})
        graph.add_step("after", lambda state: {"after": state["flaky"]})
        graph.add_edge(START, "flaky")
        graph.add_edge("flaky", "after")

        result = await graph.compile().start({})

        assert result.final_state == {"flaky": "fallback", "after": "fallback"}
