"""
Node executor: per-kind dispatch of a single node's unit of work.

Each executor receives the node's raw `data` bag and the inputs resolved from
upstream outputs (keyed by target handle) and returns the node's output.
Executors raise on failure; `execute_node` is the one place where exceptions
become a `NodeOutcome` with a bounded, user-facing error.

External capabilities (Gemini, media transforms) are imported inside the
executors so they can be swapped out in tests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from nodeflow import config
from nodeflow.models.execution import NodeOutcome
from nodeflow.models.graph import HandleIds, WorkflowNode
from nodeflow.models.node_registry import (
    NUMBERED_IMAGE_HANDLE,
    NUMBERED_SYSTEM_PROMPT_HANDLE,
    CropNodeData,
    ExtractNodeData,
    ImageNodeData,
    LLMNodeData,
    TextNodeData,
    VideoNodeData,
    get_node_spec,
    numbered_handles,
)
from nodeflow.services.node_errors import (
    LLM_TIMEOUT_MESSAGE,
    NODE_TIMEOUT_MESSAGE,
    RATE_LIMIT_MESSAGE,
    UNKNOWN_NODE_TYPE_MESSAGE,
    MissingInputError,
    NodeInputError,
    NodeTimeoutError,
    is_rate_limit_error,
    is_timeout_error,
    normalize_text,
    user_facing_message,
)
from nodeflow.services.retry import call_with_retry
from nodeflow.services.timestamps import ParseError, parse_percent, parse_timestamp

logger = logging.getLogger(__name__)

ExecutorFn = Callable[[dict, dict], Awaitable[Any]]

# ---------------------------------------------------------------------------
# Executor registry
# ---------------------------------------------------------------------------

# Maps node kinds to their async executor functions.
# Each executor receives (data, inputs) and returns the node's output value.
_registry: dict[str, ExecutorFn] = {}


def executor(node_kind: str):
    """
    Decorator that registers an async executor function for a node kind.

    Usage:
        @executor("my_kind")
        async def _exec_my_kind(data: dict, inputs: dict) -> Any:
            return result
    """
    def decorator(fn: ExecutorFn):
        _registry[node_kind] = fn
        return fn
    return decorator


def get_executor(node_kind: str | None) -> ExecutorFn | None:
    if not node_kind:
        return None
    return _registry.get(node_kind)


def _first_present(inputs: dict, *keys: str) -> Any:
    for key in keys:
        value = inputs.get(key)
        if value is not None and normalize_text(value) != "":
            return value
    return None


def _as_url(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else None
    return normalize_text(value).strip()


def _node_data(node_kind: str, data: dict) -> Any:
    """Validate a node's stored data against the payload model registered for its kind."""
    spec = get_node_spec(node_kind)
    try:
        return spec.data_model.model_validate(data or {})
    except ValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(part) for part in first["loc"]) or node_kind
        raise NodeInputError(f"Invalid {node_kind} node data: {field_name}: {first['msg']}") from e


# ---------------------------------------------------------------------------
# Source nodes
# ---------------------------------------------------------------------------


@executor("text")
async def _exec_text(data: dict, inputs: dict) -> Any:
    params: TextNodeData = _node_data("text", data)
    return params.content


@executor("image")
async def _exec_image(data: dict, inputs: dict) -> Any:
    params: ImageNodeData = _node_data("image", data)
    return params.image_url


@executor("video")
async def _exec_video(data: dict, inputs: dict) -> Any:
    params: VideoNodeData = _node_data("video", data)
    return params.video_url


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------


def _collect_system_prompt(inputs: dict) -> str | None:
    handles = numbered_handles(NUMBERED_SYSTEM_PROMPT_HANDLE, list(inputs))
    parts = [normalize_text(inputs[h]).strip() for h in handles]
    joined = "\n\n".join(p for p in parts if p)
    return joined or None


def _collect_images(inputs: dict) -> list[str]:
    images: list[str] = []
    listed = inputs.get(HandleIds.IMAGES)
    if listed is not None:
        for item in listed if isinstance(listed, list) else [listed]:
            url = normalize_text(item).strip()
            if url:
                images.append(url)
    for handle in numbered_handles(NUMBERED_IMAGE_HANDLE, list(inputs)):
        url = _as_url(inputs[handle])
        if url:
            images.append(url)
    return images


@executor("llm")
async def _exec_llm(data: dict, inputs: dict) -> Any:
    """
    Run a text generation.

    Inputs:
    - prompt: text (required)
    - system_prompt, system_prompt_<n>: text, joined in handle order
    - user_message: text appended after the prompt
    - images, image_<n>: image URLs, in handle order

    A rate limit that survives the retry budget is returned as a friendly
    message instead of an error.
    """
    from nodeflow.llm import gemini

    params: LLMNodeData = _node_data("llm", data)

    prompt = normalize_text(inputs.get(HandleIds.PROMPT)).strip()
    if not prompt:
        raise MissingInputError("Prompt is required. Connect a Text or LLM node to 'prompt'.")

    user_message = prompt
    extra = normalize_text(inputs.get(HandleIds.USER_MESSAGE)).strip()
    if extra:
        user_message = f"{prompt}\n\n{extra}"

    request = gemini.TextGenerationRequest(
        model=params.model or config.default_model(),
        system_prompt=_collect_system_prompt(inputs),
        user_message=user_message,
        images=_collect_images(inputs),
        temperature=params.temperature,
        thinking=params.thinking,
    )

    try:
        text = await asyncio.wait_for(
            call_with_retry(lambda: gemini.generate_text(request), label="LLM generation"),
            timeout=config.llm_timeout_seconds(),
        )
    except asyncio.TimeoutError as e:
        raise NodeTimeoutError(LLM_TIMEOUT_MESSAGE) from e
    except Exception as e:
        if is_rate_limit_error(e):
            logger.warning("LLM rate limited on %s: %s", request.model, e)
            return RATE_LIMIT_MESSAGE
        raise

    return normalize_text(text)


# ---------------------------------------------------------------------------
# Media transforms
# ---------------------------------------------------------------------------


def _percent(inputs: dict, handle: str, fallback: float) -> float:
    value = parse_percent(inputs.get(handle), fallback)
    if isinstance(value, ParseError):
        raise NodeInputError(f"{handle}: {value.message}")
    return value


@executor("crop")
async def _exec_crop(data: dict, inputs: dict) -> Any:
    from nodeflow.media import transforms

    params: CropNodeData = _node_data("crop", data)

    image_url = _as_url(
        _first_present(inputs, HandleIds.IMAGE_URL, HandleIds.IMAGE, HandleIds.IMAGE_1, HandleIds.INPUT)
    )
    if not image_url:
        raise MissingInputError("Image is required. Connect an Image node to 'image_url'.")

    x = _percent(inputs, HandleIds.X_PERCENT, params.x_percent)
    y = _percent(inputs, HandleIds.Y_PERCENT, params.y_percent)
    width = _percent(inputs, HandleIds.WIDTH_PERCENT, params.width_percent)
    height = _percent(inputs, HandleIds.HEIGHT_PERCENT, params.height_percent)

    return await call_with_retry(
        lambda: transforms.crop_image(image_url, x, y, width, height),
        label="Image crop",
    )


@executor("extract")
async def _exec_extract(data: dict, inputs: dict) -> Any:
    from nodeflow.media import transforms

    params: ExtractNodeData = _node_data("extract", data)

    video_url = _as_url(_first_present(inputs, HandleIds.VIDEO_URL, "video", HandleIds.INPUT))
    if not video_url:
        raise MissingInputError("Video is required. Connect a Video node to 'video_url'.")

    raw_timestamp = inputs.get(HandleIds.TIMESTAMP)
    if raw_timestamp is None:
        raw_timestamp = params.timestamp
    timestamp = parse_timestamp(raw_timestamp)
    if isinstance(timestamp, ParseError):
        raise NodeInputError(timestamp.message)

    return await call_with_retry(
        lambda: transforms.extract_frame(video_url, timestamp),
        label="Frame extraction",
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def execute_node(node: WorkflowNode, inputs: dict[str, Any]) -> NodeOutcome:
    """Run one node; never raises for node-level failures."""
    exec_fn = get_executor(node.type)
    if exec_fn is None:
        logger.warning("No executor for node %s of type %r", node.id, node.type)
        return NodeOutcome(error=UNKNOWN_NODE_TYPE_MESSAGE)

    try:
        output = await exec_fn(node.data, inputs)
    except asyncio.CancelledError:
        logger.warning("Node %s (%s) was aborted", node.id, node.type)
        return NodeOutcome(error=NODE_TIMEOUT_MESSAGE)
    except Exception as e:
        if is_timeout_error(e):
            logger.warning("Node %s (%s) timed out: %s", node.id, node.type, e)
        else:
            logger.exception("Node %s (%s) failed", node.id, node.type)
        return NodeOutcome(error=user_facing_message(e))

    if isinstance(output, str):
        output = normalize_text(output)
    return NodeOutcome(output=output)
