"""
Tests for topological scheduling and input resolution.
"""

import random

import pytest

from nodeflow.models.graph import WorkflowEdge, WorkflowNode
from nodeflow.services.workflow_graph import (
    build_execution_layers,
    build_execution_order,
    get_node_inputs,
    plan_execution,
)


def _node(node_id: str, node_type: str = "text", **data) -> WorkflowNode:
    return WorkflowNode(id=node_id, type=node_type, data=data)


def _edge(source: str, target: str, target_handle: str | None = None) -> WorkflowEdge:
    return WorkflowEdge(
        id=f"e-{source}-{target}-{target_handle}",
        source=source,
        target=target,
        sourceHandle="output",
        targetHandle=target_handle,
    )


def _ids(nodes: list[WorkflowNode]) -> list[str]:
    return [n.id for n in nodes]


def _random_graph(rng: random.Random) -> tuple[list[WorkflowNode], list[WorkflowEdge]]:
    size = rng.randint(1, 20)
    topo = [f"n{i}" for i in range(size)]
    rng.shuffle(topo)
    edges = [
        _edge(topo[i], topo[j])
        for i in range(size)
        for j in range(i + 1, size)
        if rng.random() < 0.25
    ]
    listed = list(topo)
    rng.shuffle(listed)
    return [_node(node_id) for node_id in listed], edges


class TestExecutionOrder:
    def test_chain(self):
        nodes = [_node("c"), _node("b"), _node("a")]
        edges = [_edge("a", "b"), _edge("b", "c")]
        assert _ids(build_execution_order(nodes, edges)) == ["a", "b", "c"]

    def test_ties_follow_node_list_order(self):
        nodes = [_node("z"), _node("y"), _node("x")]
        assert _ids(build_execution_order(nodes, [])) == ["z", "y", "x"]

    def test_edges_outside_subset_are_ignored(self):
        nodes = [_node("b"), _node("c")]
        edges = [_edge("a", "b"), _edge("b", "c")]
        assert _ids(build_execution_order(nodes, edges)) == ["b", "c"]

    def test_parallel_edges_between_same_nodes(self):
        nodes = [_node("img", "image"), _node("llm", "llm")]
        edges = [_edge("img", "llm", "image_1"), _edge("img", "llm", "image_2")]
        assert _ids(build_execution_order(nodes, edges)) == ["img", "llm"]

    def test_cycle_terminates_with_partial_order(self):
        nodes = [_node("a"), _node("b"), _node("c")]
        edges = [_edge("b", "c"), _edge("c", "b")]
        assert _ids(build_execution_order(nodes, edges)) == ["a"]

    def test_plan_reports_unscheduled_nodes(self):
        nodes = [_node("a"), _node("b"), _node("c")]
        edges = [_edge("a", "b"), _edge("b", "c"), _edge("c", "b")]
        plan = plan_execution(nodes, edges)
        assert _ids(plan.order) == ["a"]
        assert _ids(plan.unscheduled) == ["b", "c"]
        assert plan.complete is False

    @pytest.mark.parametrize("seed", range(30))
    def test_random_dag_order_respects_edges(self, seed):
        nodes, edges = _random_graph(random.Random(seed))
        order = _ids(build_execution_order(nodes, edges))
        assert sorted(order) == sorted(_ids(nodes))
        position = {node_id: i for i, node_id in enumerate(order)}
        for e in edges:
            assert position[e.source] < position[e.target]


class TestExecutionLayers:
    def test_two_sources_feeding_one_node(self):
        nodes = [_node("a"), _node("b"), _node("c", "llm")]
        edges = [_edge("a", "c", "prompt"), _edge("b", "c", "system_prompt")]
        layers = build_execution_layers(nodes, edges)
        assert len(layers) == 2
        assert set(_ids(layers[0])) == {"a", "b"}
        assert _ids(layers[1]) == ["c"]

    def test_empty_graph(self):
        assert build_execution_layers([], []) == []

    def test_cycle_stops_layer_production(self):
        nodes = [_node("a"), _node("b"), _node("c")]
        edges = [_edge("a", "b"), _edge("b", "c"), _edge("c", "b")]
        assert [_ids(layer) for layer in build_execution_layers(nodes, edges)] == [["a"]]

    @pytest.mark.parametrize("seed", range(30))
    def test_random_dag_layers(self, seed):
        nodes, edges = _random_graph(random.Random(100 + seed))
        layers = build_execution_layers(nodes, edges)

        flattened = [node_id for layer in layers for node_id in _ids(layer)]
        assert sorted(flattened) == sorted(_ids(nodes))

        layer_of = {node_id: i for i, layer in enumerate(layers) for node_id in _ids(layer)}
        for e in edges:
            assert layer_of[e.source] < layer_of[e.target]

        # Every node past layer 0 has a dependency in the layer right before it.
        for node_id, index in layer_of.items():
            if index > 0:
                assert any(
                    layer_of[e.source] == index - 1 for e in edges if e.target == node_id
                )


class TestGetNodeInputs:
    def test_keys_by_target_handle(self):
        nodes = [_node("t"), _node("img", "image"), _node("llm", "llm")]
        edges = [_edge("t", "llm", "prompt"), _edge("img", "llm", "image_1")]
        inputs = get_node_inputs("llm", nodes, edges, {"t": "hello", "img": "https://x/a.png"})
        assert inputs == {"prompt": "hello", "image_1": "https://x/a.png"}

    def test_missing_handle_uses_generic_input(self):
        nodes = [_node("t"), _node("u")]
        inputs = get_node_inputs("u", nodes, [_edge("t", "u")], {"t": "hi"})
        assert inputs == {"input": "hi"}

    def test_upstream_without_output_is_omitted(self):
        nodes = [_node("a"), _node("b"), _node("llm", "llm")]
        edges = [_edge("a", "llm", "prompt"), _edge("b", "llm", "system_prompt")]
        inputs = get_node_inputs("llm", nodes, edges, {"a": "p"})
        assert inputs == {"prompt": "p"}

    def test_none_output_is_still_bound(self):
        nodes = [_node("img", "image"), _node("crop", "crop")]
        inputs = get_node_inputs("crop", nodes, [_edge("img", "crop", "image_url")], {"img": None})
        assert inputs == {"image_url": None}

    def test_is_idempotent(self):
        nodes = [_node("a"), _node("b")]
        edges = [_edge("a", "b", "prompt")]
        outputs = {"a": "x"}
        first = get_node_inputs("b", nodes, edges, outputs)
        second = get_node_inputs("b", nodes, edges, outputs)
        assert first == second
        assert outputs == {"a": "x"}
