from __future__ import annotations

import asyncio
import functools
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Union


class GenerationBackend(ABC):
    """
    Remote collaborators the workspace talks to.

    Every method may raise GenerationError (UploadError for uploads) on a
    transport failure or a non-success status. There is no progress feedback,
    retry or timeout contract.
    """

    @abstractmethod
    async def imagine(self, prompt: str) -> List[str]:
        pass

    @abstractmethod
    async def image_to_image(self, prompt: str, source_url: str) -> List[str]:
        pass

    @abstractmethod
    async def sketch_to_image(self, prompt: str, source_url: str) -> List[str]:
        pass

    @abstractmethod
    async def upscale(self, source_url: str) -> str:
        pass

    @abstractmethod
    async def upload(self, source: Union[bytes, str]) -> str:
        pass


async def run_blocking(func: Callable[..., Any], *args, **kwargs) -> Any:
    """Run a blocking HTTP call on the loop's default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
