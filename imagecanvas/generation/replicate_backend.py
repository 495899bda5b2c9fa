from __future__ import annotations

from logging import getLogger
from typing import List, Optional, Union

from imagecanvas.providers.replicate_api import ReplicateClient
from imagecanvas.providers.uploadcare_api import UploadcareClient

from .backend import GenerationBackend, run_blocking

logger = getLogger(__name__)


class ReplicateGenerationBackend(GenerationBackend):
    """Calls the provider in-process and re-hosts every output on the CDN."""

    def __init__(self, replicate: ReplicateClient, uploader: UploadcareClient,
                 token: Optional[str] = None) -> None:
        self.replicate = replicate
        self.uploader = uploader
        self.token = token

    def _token(self, token: Optional[str]) -> Optional[str]:
        # The configured token wins over one supplied with the request
        return self.token or token

    def _rehost(self, urls: List[str]) -> List[str]:
        return self.uploader.upload_many(urls)

    def imagine_blocking(self, prompt: str, token: Optional[str] = None) -> List[str]:
        logger.info(f"start imagine {prompt!r}")
        urls = self._rehost(self.replicate.imagine(prompt, self._token(token)))
        logger.info(f"done imagining {urls}")
        return urls

    def image_to_image_blocking(self, prompt: str, url: str, token: Optional[str] = None) -> List[str]:
        logger.info(f"image to image {prompt!r} from {url}")
        return self._rehost(self.replicate.image_to_image(prompt, url, self._token(token)))

    def sketch_to_image_blocking(self, prompt: str, url: str, token: Optional[str] = None) -> List[str]:
        logger.info(f"sketch to image {prompt!r} from {url}")
        return self._rehost(self.replicate.sketch_to_image(prompt, url, self._token(token)))

    def upscale_blocking(self, url: str, token: Optional[str] = None) -> str:
        logger.info(f"upscale {url}")
        return self._rehost([self.replicate.upscale(url, self._token(token))])[0]

    async def imagine(self, prompt: str) -> List[str]:
        return await run_blocking(self.imagine_blocking, prompt)

    async def image_to_image(self, prompt: str, source_url: str) -> List[str]:
        return await run_blocking(self.image_to_image_blocking, prompt, source_url)

    async def sketch_to_image(self, prompt: str, source_url: str) -> List[str]:
        return await run_blocking(self.sketch_to_image_blocking, prompt, source_url)

    async def upscale(self, source_url: str) -> str:
        return await run_blocking(self.upscale_blocking, source_url)

    async def upload(self, source: Union[bytes, str]) -> str:
        return await run_blocking(self.uploader.upload, source)
