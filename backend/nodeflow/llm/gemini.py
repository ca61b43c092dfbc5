"""
Text-generation capability backed by the Gemini API.

Responses are plain text: the system instruction asks for it and the reply is
stripped of any Markdown markers the model adds anyway.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from google import genai
from google.genai import types
from pydantic import BaseModel, Field

from nodeflow import config
from nodeflow.media.transforms import fetch_media

logger = logging.getLogger(__name__)

PLAIN_TEXT_INSTRUCTION = (
    "You are a helpful assistant. "
    "Return plain text only. Do not use Markdown formatting. "
    "Do not use headings with #, do not use **bold**, *italics*, backticks, code fences, tables, or blockquotes. "
    'Use short paragraphs. If you need a list, use simple hyphen lists (e.g., "- item") without any bolding.'
)

# Models on which a zero thinking budget is accepted.
_THINKING_OPTIONAL_PREFIXES = ("gemini-2.5-flash", "gemini-2.0-flash")


class TextGenerationRequest(BaseModel):
    model: str = Field(default_factory=config.default_model)
    system_prompt: str | None = None
    user_message: str
    images: list[str] = Field(default_factory=list)
    temperature: float | None = Field(default=None, ge=0, le=2)
    thinking: bool | None = None


@lru_cache(maxsize=1)
def get_client() -> genai.Client:
    api_key = config.gemini_api_key()
    if not api_key:
        raise RuntimeError("GEMINI_API_KEY is not configured")
    return genai.Client(api_key=api_key)


def build_plain_text_system_instruction(user_provided: str | None = None) -> str:
    extra = (user_provided or "").strip()
    if not extra:
        return PLAIN_TEXT_INSTRUCTION
    return f"{PLAIN_TEXT_INSTRUCTION}\n\nAdditional instructions:\n{extra}"


def sanitize_plain_text(raw: str | None) -> str:
    """Strip Markdown markers from model output, keeping the text they wrap."""
    text = (raw or "").replace("\r\n", "\n")

    # Code fences go, their content stays.
    text = re.sub(r"```[a-zA-Z0-9_-]*\n?", "", text)
    text = text.replace("```", "")

    text = "\n".join(
        re.sub(r"^\s{0,3}#{1,6}\s+", "", line).rstrip() for line in text.split("\n")
    )

    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = text.replace("`", "")

    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = re.sub(r"__([^_]+)__", r"\1", text)

    # Single markers only when they wrap a word, so "* item" bullets survive.
    text = re.sub(r"\*(\S[^*]*\S)\*", r"\1", text)
    text = re.sub(r"_(\S[^_]*\S)_", r"\1", text)

    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


async def fetch_image_part(url: str) -> types.Part | None:
    """Inline an image for the request; unreachable images are dropped."""
    try:
        media = await fetch_media(url, default_mime_type="image/jpeg")
    except Exception as e:
        logger.warning("Skipping image %s: %s", url[:80], e)
        return None
    mime_type = media.mime_type if media.mime_type.startswith("image/") else "image/jpeg"
    return types.Part.from_bytes(data=media.content, mime_type=mime_type)


def _thinking_config(model: str, thinking: bool | None) -> types.ThinkingConfig | None:
    if thinking is False and model.startswith(_THINKING_OPTIONAL_PREFIXES):
        return types.ThinkingConfig(thinking_budget=0)
    return None


async def generate_text(request: TextGenerationRequest) -> str:
    parts: list[types.Part] = [types.Part.from_text(text=request.user_message)]
    for url in request.images:
        part = await fetch_image_part(url)
        if part is not None:
            parts.append(part)

    logger.info(
        "Calling %s with %d image(s), temperature=%s, thinking=%s",
        request.model,
        len(parts) - 1,
        request.temperature,
        request.thinking,
    )

    response = await get_client().aio.models.generate_content(
        model=request.model,
        contents=parts,
        config=types.GenerateContentConfig(
            system_instruction=build_plain_text_system_instruction(request.system_prompt),
            temperature=request.temperature,
            thinking_config=_thinking_config(request.model, request.thinking),
        ),
    )
    return sanitize_plain_text(response.text)
