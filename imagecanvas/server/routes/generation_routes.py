"""
Generation proxy routes.

Thin front for the image provider: each endpoint runs the model in-process,
re-hosts the outputs on the CDN and answers with the CDN URLs. Failures are
answered with 500 ``{"error": ...}``. Mounted at the root by main.py, which is
where ProxyGenerationBackend expects them.
"""
from __future__ import annotations

from logging import getLogger
from typing import Any, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from imagecanvas.core.Errors import GenerationError
from imagecanvas.generation.backend import run_blocking
from imagecanvas.server.state import get_state

logger = getLogger(__name__)

router = APIRouter()


class PromptBody(BaseModel):
    prompt: str
    replicateToken: Optional[str] = None


class SourceBody(BaseModel):
    prompt: str
    url: str
    replicateToken: Optional[str] = None


class UpscaleBody(BaseModel):
    url: str
    replicateToken: Optional[str] = None


def _failed(exc: GenerationError) -> JSONResponse:
    logger.error(f"Generation failed: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


@router.post("/imagine-variations")
async def imagine_variations(body: PromptBody) -> Any:
    provider = get_state().provider
    try:
        urls = await run_blocking(provider.imagine_blocking, body.prompt, body.replicateToken)
    except GenerationError as exc:
        return _failed(exc)
    return {"variations": urls}


@router.post("/image-to-image-variations")
async def image_to_image_variations(body: SourceBody) -> Any:
    provider = get_state().provider
    try:
        urls = await run_blocking(
            provider.image_to_image_blocking, body.prompt, body.url, body.replicateToken
        )
    except GenerationError as exc:
        return _failed(exc)
    return {"variations": urls}


@router.post("/sketch-to-image-variations")
async def sketch_to_image_variations(body: SourceBody) -> Any:
    provider = get_state().provider
    try:
        urls = await run_blocking(
            provider.sketch_to_image_blocking, body.prompt, body.url, body.replicateToken
        )
    except GenerationError as exc:
        return _failed(exc)
    return {"variations": urls}


@router.post("/upscale")
async def upscale(body: UpscaleBody) -> Any:
    provider = get_state().provider
    try:
        url = await run_blocking(provider.upscale_blocking, body.url, body.replicateToken)
    except GenerationError as exc:
        return _failed(exc)
    return {"upscaled": url}
