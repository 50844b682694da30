"""Shared fixtures for stepgraph tests."""

import logging

import pytest

from stepgraph.graph.directive import START
from stepgraph.graph.edge import StepGraph
from stepgraph.observability import clear_trace_context
from stepgraph.storage.checkpoint_store import InMemoryCheckpointStore


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Point config at an empty file and reset logging/trace context around each test."""
    monkeypatch.setenv("STEPGRAPH_CONFIG", str(tmp_path / "missing-configuration.json"))

    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    clear_trace_context()

    yield

    clear_trace_context()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def store():
    return InMemoryCheckpointStore()


@pytest.fixture
def linear_graph():
    """Builder for START -> steps[0] -> steps[1] -> ... from (name, fn) pairs."""

    def build(*steps, graph_id="test-graph"):
        graph = StepGraph(graph_id)
        previous = START
        for name, fn in steps:
            graph.add_step(name, fn)
            graph.add_edge(previous, name)
            previous = name
        return graph

    return build
