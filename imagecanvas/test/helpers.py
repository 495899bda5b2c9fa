"""Shared fakes for the imagecanvas tests."""
import asyncio
import random
from typing import Callable, List, Optional, Tuple, Union

from imagecanvas.core.GraphPrimitives import ImageNode, Position
from imagecanvas.core.Types import ImageKind
from imagecanvas.core.Viewport import ViewportController
from imagecanvas.core.Workspace import Workspace
from imagecanvas.generation.backend import GenerationBackend


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _Handle:
    def __init__(self, scheduler, when, callback):
        self.scheduler = scheduler
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Stands in for loop.call_later; timers only fire on advance()."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.handles: List[_Handle] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> _Handle:
        handle = _Handle(self, self.clock.now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return len([h for h in self.handles if not h.cancelled])

    def advance(self, seconds: float) -> None:
        self.clock.advance(seconds)
        due = [h for h in self.handles if not h.cancelled and h.when <= self.clock.now]
        self.handles = [h for h in self.handles if h not in due and not h.cancelled]
        for handle in sorted(due, key=lambda h: h.when):
            handle.callback()


class FakeBackend(GenerationBackend):
    """
    Records every call and answers from canned results.

    Set ``fail`` to make every call raise that exception. Set ``gate`` to an
    asyncio.Event to hold responses until the test releases them.
    """

    def __init__(self):
        self.calls: List[Tuple] = []
        self.fail: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.variations = ["https://cdn.test/v0/", "https://cdn.test/v1/",
                           "https://cdn.test/v2/", "https://cdn.test/v3/"]
        self.upscaled = "https://cdn.test/up/"
        self.uploaded = "https://cdn.test/upload/"

    async def _answer(self, call: Tuple, result):
        self.calls.append(call)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        return result

    async def imagine(self, prompt: str) -> List[str]:
        return await self._answer(("imagine", prompt), list(self.variations))

    async def image_to_image(self, prompt: str, source_url: str) -> List[str]:
        return await self._answer(("image_to_image", prompt, source_url), list(self.variations))

    async def sketch_to_image(self, prompt: str, source_url: str) -> List[str]:
        return await self._answer(("sketch_to_image", prompt, source_url), list(self.variations))

    async def upscale(self, source_url: str) -> str:
        return await self._answer(("upscale", source_url), self.upscaled)

    async def upload(self, source: Union[bytes, str]) -> str:
        return await self._answer(("upload", source), self.uploaded)

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]


def make_workspace(backend: Optional[FakeBackend] = None, seed: int = 7):
    """Workspace with a fake backend, a manual scheduler and a seeded rng."""
    clock = FakeClock()
    scheduler = ManualScheduler(clock)
    workspace = Workspace(
        backend or FakeBackend(),
        viewport=ViewportController(clock=clock, scheduler=scheduler),
        rng=random.Random(seed),
    )
    return workspace, scheduler


def add_ready_variations(workspace, urls: Optional[List[str]] = None, x: float = 0, y: float = 0):
    node = ImageNode(
        kind=ImageKind.VARIATIONS,
        prompt="a red fox",
        urls=urls or ["https://cdn.test/a/", "https://cdn.test/b/",
                      "https://cdn.test/c/", "https://cdn.test/d/"],
        progress=100,
        position=Position(x, y),
    )
    workspace.graph.add(node)
    return node
