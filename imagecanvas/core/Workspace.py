"""
Workspace orchestrator.

Every operation that changes the image graph goes through here. Operations
that need the generation backend allocate their node synchronously (so the
canvas can show it pending at once), then hand the remote call to an asyncio
task wrapped in a GenerationRequest. When the response arrives it is applied
only if the node still exists; a failure is logged and the node stays pending.
"""
from __future__ import annotations

import asyncio
import math
import random
from logging import getLogger
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from imagecanvas.generation.backend import GenerationBackend

from .Errors import GenerationError
from .GraphPrimitives import IMAGE_SIZE, ImageChild, ImageNode, ParentRef, Position
from .History import FocusImage, HistoryEntry, NavigationHistory, TransformViewport
from .ImageGraph import ImageGraph
from .Placement import find_empty_area
from .Selection import SelectionState
from .Types import ChildKind, ImageKind, RequestState, WorkspaceTool
from .Viewport import Transform, ViewportController, WheelInput, normalize_wheel

logger = getLogger(__name__)

BLANK_CANVAS_URL = "https://ucarecdn.com/1b9e1cef-ed30-450d-a88f-ded57eb6ec35/"
BLANK_CANVAS_PROMPT = "white background"
EMPTY_PROMPT = "empty"

# Minimum zoom when snapping to a new node
NAVIGATE_MIN_SCALE = 1.1
CANVAS_MIN_SCALE = 1.2
# Below this working scale any wheel gesture leaves the editor focus
ZOOMED_OUT_SCALE = 0.9
# Movement (px per tick) that counts as navigating away from a focused image
MOVE_THRESHOLD = 2
# Upscaled images land to the right of their source: x offset 900 +/- 100, y +/- 250
UPSCALE_OFFSET_X = 900
UPSCALE_SPREAD_X = 200
UPSCALE_SPREAD_Y = 500

ChangeListener = Callable[[str], None]


async def _resolved(value):
    return value


class GenerationRequest:
    """Awaitable handle for one remote generation, keyed by the node it fills."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        self.state = RequestState.PENDING
        self.error: Optional[Exception] = None
        # False if the node was gone by the time the response arrived
        self.applied = False
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def completed(cls, node_id: str) -> "GenerationRequest":
        request = cls(node_id)
        request.state = RequestState.READY
        request.applied = True
        return request

    @property
    def done(self) -> bool:
        return self.state != RequestState.PENDING

    def __await__(self):
        if self._task is None:
            return _resolved(self.state).__await__()
        return self._task.__await__()

    def __repr__(self):
        return f"GenerationRequest({self.node_id}, {self.state.value})"


class Workspace:

    def __init__(
        self,
        backend: GenerationBackend,
        graph: Optional[ImageGraph] = None,
        viewport: Optional[ViewportController] = None,
        history: Optional[NavigationHistory] = None,
        selection: Optional[SelectionState] = None,
        rng: Optional[random.Random] = None,
        blank_canvas_url: str = BLANK_CANVAS_URL,
    ) -> None:
        self.backend = backend
        self.graph = graph or ImageGraph()
        self.viewport = viewport or ViewportController()
        self.history = history or NavigationHistory()
        self.selection = selection or SelectionState()
        self.rng = rng or random.Random()
        self.blank_canvas_url = blank_canvas_url
        self.requests: Dict[str, GenerationRequest] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[ChangeListener] = []

    # ── change notification (selection / history) ──────────────────────────

    def on_change(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, kind: str) -> None:
        for listener in self._listeners:
            try:
                listener(kind)
            except Exception:
                logger.exception(f"Workspace listener failed for {kind}")

    # ── helpers ─────────────────────────────────────────────────────────────

    def _placement_center(self, divide_by_scale: bool = True):
        t = self.viewport.persisted
        if divide_by_scale:
            return -t.x * (1 / t.scale), -t.y * (1 / t.scale)
        return -t.x, -t.y

    def _find_empty_area(self, divide_by_scale: bool = True) -> Position:
        cx, cy = self._placement_center(divide_by_scale)
        return find_empty_area(cx, cy, self.graph.nodes(), self.rng)

    def _snap_to(self, node: ImageNode, scale: float) -> Transform:
        return self.viewport.smooth_transform(
            x=(-node.position.x - IMAGE_SIZE / 2) * scale,
            y=(-node.position.y - IMAGE_SIZE / 2) * scale,
            scale=scale,
        )

    def _source(self, source_id: str, position: int) -> Optional[ImageNode]:
        source = self.graph.get(source_id)
        if source is None or source.urls is None:
            logger.error(f"Could not find image {source_id}")
            return None
        if source.url_at(position) is None:
            logger.error(f"Image {source_id} has no image at position {position}")
            return None
        return source

    def _dispatch(self, node_id: str, remote: Awaitable[List[str]]) -> GenerationRequest:
        request = GenerationRequest(node_id)
        task = request._task = asyncio.get_running_loop().create_task(self._reconcile(request, remote))
        self.requests[node_id] = request
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return request

    async def _reconcile(self, request: GenerationRequest, remote: Awaitable[List[str]]) -> RequestState:
        try:
            urls = await remote
            if not urls:
                raise GenerationError("Generation returned no images")
        except GenerationError as exc:
            # The node keeps its pending state; nothing retries it.
            logger.error(f"Could not generate image {request.node_id}: {exc}")
            return self._failed(request, exc)
        except Exception as exc:
            logger.exception(f"Generation for {request.node_id} raised unexpectedly")
            return self._failed(request, exc)

        with self.graph.batch():
            request.applied = self.graph.set_urls(request.node_id, urls)
            if request.applied:
                self.graph.set_progress(request.node_id, 100)
        request.state = RequestState.READY
        return request.state

    @staticmethod
    def _failed(request: GenerationRequest, exc: Exception) -> RequestState:
        request.state = RequestState.FAILED
        request.error = exc
        return request.state

    async def _single(self, remote: Awaitable[Union[str, List[str]]]) -> List[str]:
        result = await remote
        if isinstance(result, str):
            return [result]
        return list(result[:1])

    def pending_tasks(self) -> List[asyncio.Task]:
        return list(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight generation request."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ── generation operations ───────────────────────────────────────────────

    def generate_from_prompt(self, prompt: str, navigate: bool = False) -> GenerationRequest:
        if prompt == EMPTY_PROMPT:
            return GenerationRequest.completed(self.add_blank_canvas().id)

        node = ImageNode(
            kind=ImageKind.VARIATIONS,
            prompt=prompt,
            position=self._find_empty_area(divide_by_scale=False),
        )
        with self.graph.batch():
            self.graph.add(node)
        if navigate:
            self._snap_to(node, max(NAVIGATE_MIN_SCALE, self.viewport.persisted.scale))

        logger.info(f"start imagine {prompt!r} -> {node.id}")
        return self._dispatch(node.id, self.backend.imagine(prompt))

    def generate_from_image(self, source_id: str, position: int, prompt: str) -> Optional[GenerationRequest]:
        source = self._source(source_id, position)
        if source is None:
            return None

        node = ImageNode(
            kind=ImageKind.UPSCALED,
            prompt=prompt,
            parent=ParentRef(source.id, position),
            position=self._find_empty_area(),
        )
        with self.graph.batch():
            self.graph.add(node)
            self.graph.append_child(source.id, ImageChild(node.id, ChildKind.VARIATIONS))

        url = source.urls[position]
        if source.kind == ImageKind.UPSCALED and source.is_canvas:
            remote = self.backend.sketch_to_image(prompt, url)
        elif source.kind in (ImageKind.UPSCALED, ImageKind.VARIATIONS):
            remote = self.backend.image_to_image(prompt, url)
        else:
            raise ValueError(f"Unknown image kind {source.kind!r}")
        return self._dispatch(node.id, self._single(remote))

    def upscale(self, source_id: str, position: int) -> Optional[GenerationRequest]:
        source = self._source(source_id, position)
        if source is None:
            return None

        node = ImageNode(
            kind=ImageKind.UPSCALED,
            prompt=source.prompt,
            parent=ParentRef(source_id, position),
            position=Position(
                source.position.x
                + math.floor((self.rng.random() - 0.5) * UPSCALE_SPREAD_X + UPSCALE_OFFSET_X),
                source.position.y + math.floor((self.rng.random() - 0.5) * UPSCALE_SPREAD_Y),
            ),
        )
        with self.graph.batch():
            self.graph.add(node)
            self.graph.append_child(source_id, ImageChild(node.id, ChildKind.UPSCALED, position))

        return self._dispatch(node.id, self._single(self.backend.upscale(source.urls[position])))

    def add_blank_canvas(self) -> ImageNode:
        node = ImageNode(
            kind=ImageKind.UPSCALED,
            prompt=BLANK_CANVAS_PROMPT,
            urls=[self.blank_canvas_url],
            progress=100,
            is_canvas=True,
            position=self._find_empty_area(),
        )
        self.graph.add(node)
        self._snap_to(node, max(CANVAS_MIN_SCALE, self.viewport.persisted.scale))
        return node

    def promote_region(self, source_id: str, position: int) -> Optional[ImageNode]:
        """Put one image of a batch on the canvas as its own node, without a remote call."""
        source = self._source(source_id, position)
        if source is None:
            return None

        node = ImageNode(
            kind=ImageKind.UPSCALED,
            prompt=source.prompt,
            urls=[source.urls[position]],
            progress=100,
            parent=ParentRef(source_id, position),
            position=self._find_empty_area(),
        )
        with self.graph.batch():
            self.graph.add(node)
            self.graph.append_child(source_id, ImageChild(node.id, ChildKind.UPSCALED, position))
        return node

    async def replace_image(self, node_id: str, data: Union[bytes, str]) -> Optional[str]:
        """Upload an edited image and make it the node's only image."""
        url = await self.backend.upload(data)
        with self.graph.batch():
            if not self.graph.set_urls(node_id, [url]):
                return None
            self.graph.set_progress(node_id, 100)
        return url

    def delete(self, node_id: str) -> bool:
        if self.graph.remove(node_id) is None:
            return False
        self.requests.pop(node_id, None)
        self.selection.forget(node_id)
        self.history.remove_image(node_id)
        self._notify("selection")
        self._notify("history")
        return True

    # ── focus and navigation ────────────────────────────────────────────────

    def focus(self, image_id: Optional[str], keep_history: bool = False) -> bool:
        """Open an image in the editor view, or leave the editor with ``None``."""
        if image_id is None:
            self.selection.set_active(None)
            self.selection.set_editor(None)
            self._notify("selection")
            return True

        node = self.graph.get(image_id)
        if node is None:
            logger.warning(f"Cannot focus missing image {image_id}")
            return False

        self.selection.set_active(image_id)
        self.selection.set_editor(image_id)
        if not keep_history and self.history.push(FocusImage(image_id)):
            self._notify("history")
        self._notify("selection")
        self._snap_to(node, self.viewport.editor_scale())
        return True

    def navigate_history(self, offset: int) -> Optional[HistoryEntry]:
        entry = self.history.navigate(offset, self.selection.is_editing)
        if entry is None:
            return None
        self._notify("history")
        if isinstance(entry, FocusImage):
            self.focus(entry.image_id, keep_history=True)
        elif isinstance(entry, TransformViewport):
            t = entry.transform
            self.viewport.transform(t.x, t.y, t.scale, immediate=True)
        else:
            raise ValueError(f"Unknown history entry {entry!r}")
        return entry

    def bookmark_viewport(self) -> bool:
        pushed = self.history.push(TransformViewport(self.viewport.working))
        if pushed:
            self._notify("history")
        return pushed

    def go_to_center(self) -> Transform:
        return self.viewport.smooth_transform(x=0, y=0)

    # ── tools and gestures ──────────────────────────────────────────────────

    def set_tool(self, tool: WorkspaceTool) -> None:
        self.selection.set_tool(tool)
        self._notify("selection")

    def show_in_workspace(self, image_id: str) -> None:
        self.selection.show(image_id)
        self._notify("selection")

    def hide_in_workspace(self, image_id: str) -> None:
        self.selection.hide(image_id)
        self._notify("selection")

    def on_wheel(self, event: WheelInput) -> bool:
        delta = normalize_wheel(event)
        moving = delta.x != 0 and (abs(delta.x) > MOVE_THRESHOLD or abs(delta.y) > MOVE_THRESHOLD)
        if self.selection.is_editing and (moving or self.viewport.working.scale < ZOOMED_OUT_SCALE):
            self.focus(None)

        if delta.z == 0:
            self.viewport.pan(delta.x, delta.y)
            return True
        return self.viewport.zoom(
            delta.z, event.client_x, event.client_y, event.viewport_width, event.viewport_height
        )

    def on_canvas_pointer_down(self) -> None:
        self.focus(None)

    def on_canvas_drag(self, movement_x: float, movement_y: float) -> Transform:
        return self.viewport.pan(movement_x, movement_y)

    def _node_interactive(self, node_id: str) -> bool:
        return (
            self.selection.tool == WorkspaceTool.SELECT
            and self.selection.editor_id != node_id
            and node_id in self.graph
        )

    def on_node_pointer_down(self, node_id: str) -> bool:
        """Select a node; returns True if a drag-to-move may follow."""
        if not self._node_interactive(node_id):
            return False
        self.selection.set_active(node_id)
        self._notify("selection")
        return True

    def on_node_drag(self, node_id: str, movement_x: float, movement_y: float) -> bool:
        if not self._node_interactive(node_id):
            return False
        scale = self.viewport.persisted.scale
        return self.graph.move_node(node_id, movement_x / scale, movement_y / scale)

    def on_node_click(self, node_id: str, dragged: bool = False) -> bool:
        tool = self.selection.tool
        if tool == WorkspaceTool.DELETE:
            return self.delete(node_id)
        if tool == WorkspaceTool.GRAB:
            return False
        node = self.graph.get(node_id)
        if node is None:
            return False
        self.selection.set_active(node_id)
        if node.urls is None or self.selection.editor_id == node_id or dragged:
            self._notify("selection")
            return False
        return self.focus(node_id)

    def on_delete_key(self) -> bool:
        if self.selection.active_id is None:
            return False
        return self.delete(self.selection.active_id)

    # ── persistence shape ───────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, Any]:
        """Everything that survives a reload: no working transform, no tool."""
        data: Dict[str, Any] = {
            "images": {node.id: node.to_dict() for node in self.graph},
            "workspaceTransform": self.viewport.persisted.to_dict(),
        }
        data.update(self.selection.to_dict())
        data.update(self.history.to_dict())
        return data

    def load_snapshot(self, data: Dict[str, Any]) -> None:
        self.graph.reset()
        with self.graph.batch():
            for raw in data.get("images", {}).values():
                self.graph.add(ImageNode.from_dict(raw))
        t = data.get("workspaceTransform") or {}
        self.viewport.restore(Transform(t.get("x", 0.0), t.get("y", 0.0), t.get("scale", 1.0)))
        self.selection.load(data)
        self.history.load(data)
