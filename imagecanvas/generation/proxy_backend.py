"""
Backend that talks to a remote generation proxy over HTTP.

The contract is the one served by generation_routes: JSON bodies
with the prompt, the source image URL and an optional user-supplied
Replicate token; CDN URLs back.
"""
from __future__ import annotations

from logging import getLogger
from typing import Any, Dict, List, Optional, Union

import requests

from imagecanvas.core.Errors import GenerationError
from imagecanvas.providers.uploadcare_api import UploadcareClient

from .backend import GenerationBackend, run_blocking

logger = getLogger(__name__)


class ProxyGenerationBackend(GenerationBackend):

    def __init__(
        self,
        base_url: str,
        uploader: UploadcareClient,
        replicate_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.uploader = uploader
        self.replicate_token = replicate_token
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post(self, path: str, body: Dict[str, Any]) -> Any:
        body = dict(body, replicateToken=self.replicate_token)
        logger.info(f"POST {self.base_url}{path}")
        try:
            response = self.session.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise GenerationError(f"POST {path} failed: {exc}") from exc
        if response.status_code < 200 or response.status_code >= 300:
            raise GenerationError(
                f"Could not generate image via {path}",
                status=response.status_code,
                detail=response.reason or response.text,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise GenerationError(f"POST {path} returned invalid JSON") from exc

    async def imagine(self, prompt: str) -> List[str]:
        result = await run_blocking(self._post, "/imagine-variations", {"prompt": prompt})
        return _variations(result)

    async def image_to_image(self, prompt: str, source_url: str) -> List[str]:
        result = await run_blocking(
            self._post, "/image-to-image-variations", {"prompt": prompt, "url": source_url}
        )
        return _variations(result)

    async def sketch_to_image(self, prompt: str, source_url: str) -> List[str]:
        result = await run_blocking(
            self._post, "/sketch-to-image-variations", {"prompt": prompt, "url": source_url}
        )
        return _variations(result)

    async def upscale(self, source_url: str) -> str:
        result = await run_blocking(self._post, "/upscale", {"url": source_url})
        return _upscaled(result)

    async def upload(self, source: Union[bytes, str]) -> str:
        return await run_blocking(self.uploader.upload, source)


def _field(result: Any, key: str) -> Any:
    if not isinstance(result, dict):
        raise GenerationError(f"Expected a JSON object with '{key}'", detail=repr(result)[:200])
    value = result.get(key)
    if value is None:
        raise GenerationError(f"Response is missing '{key}'", detail=str(result.get("error", "")))
    return value


def _variations(result: Any) -> List[str]:
    value = _field(result, "variations")
    if not isinstance(value, list):
        raise GenerationError("'variations' is not a list", detail=repr(value)[:200])
    return [str(url) for url in value]


def _upscaled(result: Any) -> str:
    value = _field(result, "upscaled")
    if not isinstance(value, str):
        raise GenerationError("'upscaled' is not a URL", detail=repr(value)[:200])
    return value
