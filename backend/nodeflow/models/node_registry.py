"""
Node kind registry: source of truth for what each node kind accepts and produces.

Maps editor node `type` strings to their handle (port) specs and to the typed
payload model each executor reads out of `node.data`.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from nodeflow.models.graph import HandleIds

ValueKind = Literal["text", "image", "video", "number"]

GEMINI_MODELS: tuple[str, ...] = (
    "gemini-3-pro-preview",
    "gemini-3-flash-preview",
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-2.0-flash",
)

NUMBERED_IMAGE_HANDLE = re.compile(r"^image_(\d+)$")
NUMBERED_SYSTEM_PROMPT_HANDLE = re.compile(r"^system_prompt(?:_(\d+))?$")


# ---------------------------------------------------------------------------
# Typed node payloads
# ---------------------------------------------------------------------------
# The editor stores UI state (labels, spinners, last output) next to the
# fields the engine needs, so every payload ignores unknown keys.


class _NodeData(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    label: str | None = None


class TextNodeData(_NodeData):
    content: str = ""


class ImageNodeData(_NodeData):
    image_url: str | None = Field(default=None, alias="imageUrl")


class VideoNodeData(_NodeData):
    video_url: str | None = Field(default=None, alias="videoUrl")


class LLMNodeData(_NodeData):
    model: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=2)
    thinking: bool | None = None


class CropNodeData(_NodeData):
    x_percent: float = Field(default=0, alias="xPercent")
    y_percent: float = Field(default=0, alias="yPercent")
    width_percent: float = Field(default=100, alias="widthPercent")
    height_percent: float = Field(default=100, alias="heightPercent")


class ExtractNodeData(_NodeData):
    timestamp: str | float | int | None = None


# ---------------------------------------------------------------------------
# Handle specs
# ---------------------------------------------------------------------------


class HandleSpec(BaseModel):
    key: str
    value_kind: ValueKind


class NodeKindSpec(BaseModel):
    inputs: list[HandleSpec] = Field(default_factory=list)
    output_kind: ValueKind
    data_model: type[_NodeData]
    accepts_numbered_handles: bool = False

    def input_kind(self, handle: str) -> ValueKind | None:
        for spec in self.inputs:
            if spec.key == handle:
                return spec.value_kind
        if self.accepts_numbered_handles:
            if NUMBERED_IMAGE_HANDLE.match(handle):
                return "image"
            if NUMBERED_SYSTEM_PROMPT_HANDLE.match(handle):
                return "text"
        if handle == HandleIds.INPUT:
            return "text"
        return None


NODE_REGISTRY: dict[str, NodeKindSpec] = {
    "text": NodeKindSpec(output_kind="text", data_model=TextNodeData),
    "image": NodeKindSpec(output_kind="image", data_model=ImageNodeData),
    "video": NodeKindSpec(output_kind="video", data_model=VideoNodeData),
    "llm": NodeKindSpec(
        inputs=[
            HandleSpec(key=HandleIds.PROMPT, value_kind="text"),
            HandleSpec(key=HandleIds.SYSTEM_PROMPT, value_kind="text"),
            HandleSpec(key=HandleIds.USER_MESSAGE, value_kind="text"),
            HandleSpec(key=HandleIds.IMAGES, value_kind="image"),
        ],
        output_kind="text",
        data_model=LLMNodeData,
        accepts_numbered_handles=True,
    ),
    "crop": NodeKindSpec(
        inputs=[
            HandleSpec(key=HandleIds.IMAGE_URL, value_kind="image"),
            HandleSpec(key=HandleIds.IMAGE, value_kind="image"),
            HandleSpec(key=HandleIds.IMAGE_1, value_kind="image"),
            HandleSpec(key=HandleIds.X_PERCENT, value_kind="number"),
            HandleSpec(key=HandleIds.Y_PERCENT, value_kind="number"),
            HandleSpec(key=HandleIds.WIDTH_PERCENT, value_kind="number"),
            HandleSpec(key=HandleIds.HEIGHT_PERCENT, value_kind="number"),
        ],
        output_kind="image",
        data_model=CropNodeData,
    ),
    "extract": NodeKindSpec(
        inputs=[
            HandleSpec(key=HandleIds.VIDEO_URL, value_kind="video"),
            HandleSpec(key=HandleIds.TIMESTAMP, value_kind="number"),
        ],
        output_kind="image",
        data_model=ExtractNodeData,
    ),
}


def get_node_spec(node_type: str | None) -> NodeKindSpec | None:
    """Look up a node kind spec, returning None if unknown."""
    if not node_type:
        return None
    return NODE_REGISTRY.get(node_type)


def numbered_handles(pattern: re.Pattern[str], handles: list[str]) -> list[str]:
    """Handles matching `pattern`, sorted by their number (image_2 before image_10).

    A bare handle without a number (`system_prompt`) sorts first.
    """
    numbered = []
    for handle in handles:
        match = pattern.match(handle)
        if match:
            number = match.group(1)
            numbered.append((int(number) if number else 0, handle))
    return [handle for _, handle in sorted(numbered)]
