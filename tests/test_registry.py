"""Tests for step registration, edges and graph validation."""

import logging

import pytest

from stepgraph.errors import DanglingEdgeError, DuplicateStepError
from stepgraph.graph.directive import END, START
from stepgraph.graph.edge import StepGraph
from stepgraph.graph.registry import NodeRegistry
from stepgraph.graph.runner import GraphRunner


def noop(state):
    return {}


async def async_noop(state):
    return {}


class TestNodeRegistry:
    def test_register_and_get(self):
        registry = NodeRegistry()
        spec = registry.register("read", noop, description="reads")

        assert registry.get("read") is spec
        assert "read" in registry
        assert len(registry) == 1
        assert spec.description == "reads"
        assert not spec.routes_dynamically
        assert not spec.has_fallback

    def test_duplicate_name_rejected(self):
        registry = NodeRegistry()
        registry.register("read", noop)

        with pytest.raises(DuplicateStepError) as exc_info:
            registry.register("read", noop)
        assert exc_info.value.name == "read"

    @pytest.mark.parametrize("name", [START, END])
    def test_reserved_names_rejected(self, name):
        with pytest.raises(ValueError):
            NodeRegistry().register(name, noop)

    def test_non_callable_rejected(self):
        with pytest.raises(TypeError):
            NodeRegistry().register("read", "not callable")  # type: ignore[arg-type]

    def test_async_detection(self):
        registry = NodeRegistry()
        assert registry.register("a", async_noop).is_async
        assert not registry.register("b", noop).is_async

    def test_router_and_fallback_flags(self):
        spec = NodeRegistry().register(
            "route", noop, allowed_destinations=("x", "y"), fallback={"ok": False}
        )

        assert spec.routes_dynamically
        assert spec.allowed_destinations == ["x", "y"]
        assert spec.has_fallback


class TestStepGraphEdges:
    def test_end_cannot_be_source(self):
        with pytest.raises(ValueError):
            StepGraph().add_edge(END, "a")

    def test_start_cannot_be_target(self):
        with pytest.raises(ValueError):
            StepGraph().add_edge("a", START)

    def test_duplicate_edges_ignored(self):
        graph = StepGraph()
        graph.add_edge("a", "b").add_edge("a", "b")

        assert len(graph.edges) == 1
        assert graph.edges[0].id == "a-to-b"

    def test_predecessors_exclude_start(self):
        graph = StepGraph()
        for name in ("a", "b", "c", "d"):
            graph.add_step(name, noop)
        graph.add_edge(START, "a")
        graph.add_edge("a", "b").add_edge("a", "c")
        graph.add_edge("b", "d").add_edge("c", "d")
        graph.add_edge("d", END)

        preds = graph.predecessors()
        assert preds["a"] == frozenset()
        assert preds["d"] == frozenset({"b", "c"})
        assert graph.detect_fan_out_steps() == {"a": ["b", "c"]}
        assert graph.detect_fan_in_steps() == {"d": ["b", "c"]}

    def test_set_entry(self):
        graph = StepGraph()
        graph.add_step("a", noop)
        graph.set_entry("a")

        assert graph.entry_steps() == ["a"]


class TestValidation:
    def test_valid_graph_compiles(self):
        graph = StepGraph("ok")
        graph.add_step("a", noop)
        graph.add_edge(START, "a")

        runner = graph.compile()
        assert isinstance(runner, GraphRunner)
        assert graph.validate() == []

    def test_dangling_edge_target(self):
        graph = StepGraph()
        graph.add_step("a", noop)
        graph.add_edge(START, "a")
        graph.add_edge("a", "ghost")

        with pytest.raises(DanglingEdgeError) as exc_info:
            graph.compile()
        assert any("ghost" in p for p in exc_info.value.problems)

    def test_dangling_edge_source(self):
        graph = StepGraph()
        graph.add_step("a", noop)
        graph.add_edge(START, "a")
        graph.add_edge("ghost", "a")

        with pytest.raises(DanglingEdgeError):
            graph.compile()

    def test_missing_declared_destination(self):
        graph = StepGraph()
        graph.add_step("a", noop, allowed_destinations=["b", END])
        graph.add_edge(START, "a")

        with pytest.raises(DanglingEdgeError) as exc_info:
            graph.compile()
        assert exc_info.value.problems == ["Step 'a' declares missing destination 'b'"]

    def test_missing_entry(self):
        graph = StepGraph()
        graph.add_step("a", noop)

        with pytest.raises(DanglingEdgeError, match="No entry edge"):
            graph.compile()

    def test_unreachable_step_warns_but_compiles(self, caplog):
        graph = StepGraph()
        graph.add_step("a", noop)
        graph.add_step("island", noop)
        graph.add_edge(START, "a")

        with caplog.at_level(logging.WARNING):
            graph.compile()

        assert graph.unreachable_steps() == ["island"]
        assert "island" in caplog.text

    def test_declared_destinations_count_as_reachable(self):
        graph = StepGraph()
        graph.add_step("a", noop, allowed_destinations=["b"])
        graph.add_step("b", noop)
        graph.add_edge(START, "a")

        assert graph.unreachable_steps() == []

    def test_describe(self):
        graph = StepGraph("g", description="demo")
        graph.add_step("a", noop, allowed_destinations=["b"])
        graph.add_step("b", noop)
        graph.add_edge(START, "a")

        described = graph.describe()
        assert described["id"] == "g"
        assert described["steps"] == ["a", "b"]
        assert described["entry_steps"] == ["a"]
        assert described["routers"] == {"a": ["b"]}
