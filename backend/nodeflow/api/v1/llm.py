"""
Direct LLM endpoint used by the editor outside of a workflow run.

Rate limits come back as 429 with `{"code": "RATE_LIMIT", "error": ...}` so the
client can tell them apart from real failures; a request that runs past the
deadline comes back as 504.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from nodeflow import config
from nodeflow.llm import gemini
from nodeflow.models.node_registry import GEMINI_MODELS
from nodeflow.services.node_errors import (
    LLM_TIMEOUT_MESSAGE,
    RATE_LIMIT_MESSAGE,
    is_rate_limit_error,
    truncate_error_message,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/llm", tags=["llm"])

MAX_LLM_ERROR_LENGTH = 500


class LLMRequest(BaseModel):
    model: str = Field(default_factory=config.default_model)
    system_prompt: Optional[str] = None
    user_message: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list)
    temperature: Optional[float] = Field(None, ge=0, le=2)
    thinking: Optional[bool] = None

    @field_validator("model")
    @classmethod
    def _known_model(cls, value: str) -> str:
        if value not in GEMINI_MODELS:
            raise ValueError(f"Unsupported model '{value}'. Choose one of: {', '.join(GEMINI_MODELS)}")
        return value


class LLMResponse(BaseModel):
    output: Optional[str] = None


def _rate_limited() -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"code": "RATE_LIMIT", "error": RATE_LIMIT_MESSAGE},
    )


@router.post("", response_model=LLMResponse)
async def run_llm(request: LLMRequest):
    generation = gemini.TextGenerationRequest(**request.model_dump())
    try:
        output = await asyncio.wait_for(
            gemini.generate_text(generation),
            timeout=config.llm_timeout_seconds(),
        )
    except asyncio.TimeoutError:
        logger.warning("LLM request to %s timed out", request.model)
        raise HTTPException(status_code=504, detail=LLM_TIMEOUT_MESSAGE)
    except Exception as e:
        if is_rate_limit_error(e):
            logger.warning("LLM request to %s rate limited: %s", request.model, e)
            return _rate_limited()
        logger.exception("LLM request to %s failed", request.model)
        message = truncate_error_message(str(e) or "LLM request failed", MAX_LLM_ERROR_LENGTH)
        raise HTTPException(status_code=500, detail=message)

    return LLMResponse(output=output)
