"""
Uploadcare upload client: re-hosts provider outputs and edited images on the CDN.
"""
from __future__ import annotations

import io
import time
from functools import lru_cache
from logging import getLogger
from typing import Any, List, Optional, Union

import httpx
from pyuploadcare import Uploadcare
from pyuploadcare.exceptions import UploadcareException

from imagecanvas.core.Errors import UploadError

logger = getLogger(__name__)

CDN_URL = "https://ucarecdn.com"
# Upper bound on waiting for a from-URL upload to finish
FROM_URL_TIMEOUT = 30

# Appending this operation lets the CDN pick the best format per browser
OPTIMIZED_SUFFIX = "-/format/auto/"


def cdn_url(file_uuid: str) -> str:
    return f"{CDN_URL}/{file_uuid}/"


@lru_cache(maxsize=1024)
def to_optimized_image(url: str) -> str:
    return f"{url}{OPTIMIZED_SUFFIX}"


class UploadcareClient:

    def __init__(self, public_key: Optional[str], secret_key: Optional[str] = None,
                 client: Optional[Any] = None, from_url_timeout: float = FROM_URL_TIMEOUT) -> None:
        self.public_key = public_key
        self.secret_key = secret_key
        self.from_url_timeout = from_url_timeout
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.public_key:
                raise UploadError("No Uploadcare public key configured")
            self._client = Uploadcare(public_key=self.public_key, secret_key=self.secret_key)
        return self._client

    def upload(self, source: Union[bytes, str], filename: str = "image.png") -> str:
        """Upload raw bytes or a remote URL and return its durable CDN URL."""
        if isinstance(source, (bytes, bytearray)):
            return self.upload_bytes(bytes(source), filename)
        return self.upload_from_url(source)

    def upload_bytes(self, data: bytes, filename: str = "image.png") -> str:
        handle = io.BytesIO(data)
        handle.name = filename
        client = self.client
        try:
            uploaded = client.upload(handle, store=True)
        except (UploadcareException, httpx.HTTPError) as exc:
            raise UploadError(f"Upload of {filename} failed: {exc}") from exc
        return _cdn_url_of(uploaded)

    def upload_from_url(self, url: str) -> str:
        client = self.client
        try:
            uploaded = client.upload_from_url_sync(url, timeout=self.from_url_timeout, store=True)
        except (UploadcareException, httpx.HTTPError) as exc:
            raise UploadError(f"Upload of {url} failed: {exc}") from exc
        return _cdn_url_of(uploaded)

    def upload_many(self, urls: List[str]) -> List[str]:
        started = time.perf_counter()
        results = [self.upload_from_url(url) for url in urls]
        logger.info(f"ms to upload images: {(time.perf_counter() - started) * 1000:.0f}")
        return results


def _cdn_url_of(uploaded: Any) -> str:
    file_uuid = getattr(uploaded, "uuid", None)
    if not file_uuid:
        raise UploadError(f"Upload returned no file id: {uploaded!r}")
    return cdn_url(str(file_uuid))
