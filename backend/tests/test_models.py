import json

import pytest

from nodeflow.models.graph import (
    WORKFLOW_VERSION,
    WorkflowEdge,
    WorkflowNode,
    export_workflow,
    import_workflow,
    parse_edges,
    parse_nodes,
)
from nodeflow.models.node_registry import (
    NUMBERED_IMAGE_HANDLE,
    NUMBERED_SYSTEM_PROMPT_HANDLE,
    CropNodeData,
    get_node_spec,
    numbered_handles,
)
from nodeflow.services.dag_validation import WorkflowCycleError


def _editor_graph():
    nodes = parse_nodes(
        [
            {"id": "t1", "type": "text", "data": {"content": "Describe it."}, "position": {"x": 1, "y": 2}},
            {"id": "i1", "type": "image", "data": {"imageUrl": "https://cdn/a.png"}},
            {"id": "l1", "type": "llm", "data": {"model": "gemini-2.5-flash", "temperature": 0.7}},
        ]
    )
    edges = parse_edges(
        [
            {"id": "e1", "source": "t1", "target": "l1", "sourceHandle": "output", "targetHandle": "prompt"},
            {"id": "e2", "source": "i1", "target": "l1", "sourceHandle": "output", "targetHandle": "image_1"},
        ]
    )
    return nodes, edges


class TestExportImport:
    def test_round_trip_keeps_ids_and_handles(self):
        nodes, edges = _editor_graph()
        exported = export_workflow(nodes, edges).to_dict()

        restored = import_workflow(json.dumps(exported))

        assert restored.version == WORKFLOW_VERSION
        assert [n.id for n in restored.nodes] == ["t1", "i1", "l1"]
        assert [(e.id, e.source, e.target, e.source_handle, e.target_handle) for e in restored.edges] == [
            ("e1", "t1", "l1", "output", "prompt"),
            ("e2", "i1", "l1", "output", "image_1"),
        ]
        assert restored.nodes[2].data == {"model": "gemini-2.5-flash", "temperature": 0.7}

    def test_editor_fields_survive(self):
        nodes, edges = _editor_graph()
        exported = export_workflow(nodes, edges).to_dict()
        assert exported["nodes"][0]["position"] == {"x": 1, "y": 2}
        assert exported["edges"][0]["targetHandle"] == "prompt"
        assert "target_handle" not in exported["edges"][0]

    def test_export_copies_inputs(self):
        nodes, edges = _editor_graph()
        exported = export_workflow(nodes, edges)
        exported.nodes[0].data["content"] = "changed"
        assert nodes[0].data["content"] == "Describe it."

    def test_missing_version_defaults(self):
        restored = import_workflow({"nodes": [], "edges": []})
        assert restored.version == WORKFLOW_VERSION

    def test_cycle_rejected(self):
        payload = {
            "nodes": [{"id": "a", "type": "text"}, {"id": "b", "type": "text"}],
            "edges": [
                {"id": "e1", "source": "a", "target": "b"},
                {"id": "e2", "source": "b", "target": "a"},
            ],
        }
        with pytest.raises(WorkflowCycleError):
            import_workflow(payload)

    def test_edge_accepts_field_names(self):
        edge = WorkflowEdge(id="e", source="a", target="b", target_handle="prompt")
        assert edge.target_handle == "prompt"


class TestNodeRegistry:
    def test_llm_handles(self):
        spec = get_node_spec("llm")
        assert spec.input_kind("prompt") == "text"
        assert spec.input_kind("image_7") == "image"
        assert spec.input_kind("system_prompt_3") == "text"
        assert spec.input_kind("input") == "text"
        assert spec.input_kind("video_url") is None
        assert spec.output_kind == "text"

    def test_crop_and_extract(self):
        assert get_node_spec("crop").input_kind("width_percent") == "number"
        assert get_node_spec("crop").output_kind == "image"
        assert get_node_spec("extract").input_kind("video_url") == "video"
        assert get_node_spec("extract").output_kind == "image"

    def test_unknown_kind(self):
        assert get_node_spec("hologram") is None
        assert get_node_spec(None) is None

    def test_numbered_handles_sort_numerically(self):
        handles = ["image_10", "prompt", "image_2", "image_1"]
        assert numbered_handles(NUMBERED_IMAGE_HANDLE, handles) == ["image_1", "image_2", "image_10"]
        assert numbered_handles(NUMBERED_SYSTEM_PROMPT_HANDLE, ["system_prompt_2", "system_prompt"]) == [
            "system_prompt",
            "system_prompt_2",
        ]

    def test_crop_data_defaults_and_aliases(self):
        data = CropNodeData.model_validate({"xPercent": 10, "label": "Crop", "isRunning": True})
        assert (data.x_percent, data.y_percent, data.width_percent, data.height_percent) == (10, 0, 100, 100)

    def test_node_allows_editor_fields(self):
        node = WorkflowNode.model_validate({"id": "n", "type": "text", "selected": True})
        assert node.data == {}
