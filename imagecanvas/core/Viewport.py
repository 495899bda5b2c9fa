"""
Viewport transform controller.

Two copies of the pan/zoom state exist. The *working* transform is updated
synchronously on every gesture tick and is what the canvas renders. The
*persisted* transform is what the durable store sees; gestures reach it
through a leading+trailing throttle, while snap-to moves (history replay,
focusing a node) commit it immediately.
"""
import math
import re
import time
from dataclasses import dataclass
from logging import getLogger
from typing import Any, Callable, List, NamedTuple, Optional, Tuple

from .Throttle import Scheduler, Throttle, loop_scheduler

logger = getLogger(__name__)

MIN_SCALE = 0.1
MAX_SCALE = 5.0
MAX_ZOOM_STEP = 10
ZOOM_GAIN = 1.3
# zoom sensitivity is interpolated linearly between these (scale, sensitivity) points
LOW_REFERENCE = (MIN_SCALE, 1.0)
HIGH_REFERENCE = (MAX_SCALE, 3.0)

COMMIT_WAIT = 0.05
SETTLE_DELAY = 0.42

# Focus zoom: a 1500x1000 viewport shows a focused image at scale 1.6
EDITOR_REFERENCE_WIDTH = 1500
EDITOR_REFERENCE_HEIGHT = 1000
EDITOR_REFERENCE_SCALE = 1.6

_DARWIN_PLATFORM = re.compile(r"Mac|iPod|iPhone|iPad")


class Transform(NamedTuple):
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0

    def to_dict(self):
        return {"x": self.x, "y": self.y, "scale": self.scale}


class WheelDelta(NamedTuple):
    x: float
    y: float
    z: float


@dataclass
class WheelInput:
    """A raw wheel event as reported by the browser."""
    delta_x: float = 0.0
    delta_y: float = 0.0
    ctrl_key: bool = False
    alt_key: bool = False
    meta_key: bool = False
    shift_key: bool = False
    client_x: float = 0.0
    client_y: float = 0.0
    viewport_width: float = EDITOR_REFERENCE_WIDTH
    viewport_height: float = EDITOR_REFERENCE_HEIGHT
    platform: str = ""


def clamp_scale(scale: float) -> float:
    return min(max(scale, MIN_SCALE), MAX_SCALE)


def is_darwin(platform: str) -> bool:
    return bool(_DARWIN_PLATFORM.search(platform or ""))


def normalize_wheel(event: WheelInput) -> WheelDelta:
    """
    Convert a wheel event into (pan x, pan y, zoom) deltas.

    Any of ctrl/alt/meta turns the vertical delta into a zoom step, limited to
    MAX_ZOOM_STEP per tick. Without a modifier, shift+wheel pans horizontally
    on platforms that do not already do that themselves.
    """
    delta_x, delta_y = event.delta_x, event.delta_y
    delta_z = 0.0
    if event.ctrl_key or event.alt_key or event.meta_key:
        dy = delta_y
        if abs(delta_y) > MAX_ZOOM_STEP:
            dy = math.copysign(MAX_ZOOM_STEP, delta_y)
        delta_z = dy / 100
    elif event.shift_key and not is_darwin(event.platform):
        delta_x, delta_y = delta_y, 0.0
    return WheelDelta(-delta_x, -delta_y, -delta_z)


def zoom_sensitivity(scale: float) -> float:
    (s0, k0), (s1, k1) = LOW_REFERENCE, HIGH_REFERENCE
    return ((scale - s0) * (k1 - k0)) / (s1 - s0) + k0


def pointer_anchor_offset(
    from_left: float,
    from_top: float,
    scale_by: float,
    width: float,
    height: float,
    current_scale: float,
) -> Tuple[float, float]:
    """Translation that keeps the point under the pointer still; zero at the viewport centre."""
    return (
        (-from_left * scale_by * width) / current_scale,
        (-from_top * scale_by * height) / current_scale,
    )


def zoom_transform(
    current: Transform,
    delta_z: float,
    pointer_x: float,
    pointer_y: float,
    width: float,
    height: float,
) -> Optional[Transform]:
    """Transform after a zoom step anchored at the pointer, or None if the scale would not change."""
    scale_by = delta_z * zoom_sensitivity(current.scale)
    new_scale = clamp_scale(current.scale + scale_by * ZOOM_GAIN)
    if new_scale == current.scale:
        return None
    from_left = pointer_x / width - 0.5
    from_top = pointer_y / height - 0.5
    anchor_x, anchor_y = pointer_anchor_offset(
        from_left, from_top, scale_by, width, height, current.scale
    )
    ratio = (new_scale - current.scale) / current.scale
    return Transform(
        current.x + current.x * ratio + anchor_x,
        current.y + current.y * ratio + anchor_y,
        new_scale,
    )


class ViewportController:

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Scheduler = loop_scheduler,
        commit_wait: float = COMMIT_WAIT,
        settle_delay: float = SETTLE_DELAY,
    ) -> None:
        self._working = Transform()
        self._persisted = Transform()
        self._scheduler = scheduler
        self._settle_delay = settle_delay
        self._settle_handle: Any = None
        self._listeners: List[Callable[[Transform], None]] = []
        self._throttled_commit = Throttle(self._commit, commit_wait, clock=clock, scheduler=scheduler)
        self.animating = False
        self.viewport_width: float = EDITOR_REFERENCE_WIDTH
        self.viewport_height: float = EDITOR_REFERENCE_HEIGHT

    @property
    def working(self) -> Transform:
        return self._working

    @property
    def persisted(self) -> Transform:
        return self._persisted

    def on_commit(self, listener: Callable[[Transform], None]) -> None:
        self._listeners.append(listener)

    def restore(self, transform: Transform) -> None:
        """Load a persisted transform at startup; both copies start from it."""
        self._throttled_commit.cancel()
        self._working = self._persisted = Transform(transform.x, transform.y, clamp_scale(transform.scale))

    def set_viewport_size(self, width: float, height: float) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid viewport size {width}x{height}")
        self.viewport_width = width
        self.viewport_height = height

    # ── write paths ─────────────────────────────────────────────────────────

    def transform(
        self,
        x: Optional[float] = None,
        y: Optional[float] = None,
        scale: Optional[float] = None,
        immediate: bool = False,
    ) -> Transform:
        w = self._working
        self._working = Transform(
            w.x if x is None else x,
            w.y if y is None else y,
            w.scale if scale is None else clamp_scale(scale),
        )
        if immediate:
            # a trailing gesture commit must not overwrite the snapped state
            self._throttled_commit.cancel()
            self._commit(self._working)
        else:
            self._throttled_commit(self._working)
        return self._working

    def smooth_transform(
        self,
        x: Optional[float] = None,
        y: Optional[float] = None,
        scale: Optional[float] = None,
    ) -> Transform:
        self.animating = True
        result = self.transform(x, y, scale, immediate=True)
        if self._settle_handle is not None:
            self._settle_handle.cancel()
        self._settle_handle = self._scheduler(self._settle_delay, self._settle)
        if self._settle_handle is None:
            # nothing can run the timer for us
            self._settle()
        return result

    def _settle(self) -> None:
        self._settle_handle = None
        self.animating = False

    def pan(self, dx: float, dy: float) -> Transform:
        return self.transform(x=self._working.x + dx, y=self._working.y + dy)

    def zoom(self, delta_z: float, pointer_x: float, pointer_y: float,
             width: Optional[float] = None, height: Optional[float] = None) -> bool:
        result = zoom_transform(
            self._working,
            delta_z,
            pointer_x,
            pointer_y,
            width or self.viewport_width,
            height or self.viewport_height,
        )
        if result is None:
            return False
        self.transform(result.x, result.y, result.scale)
        return True

    def flush(self) -> None:
        self._throttled_commit.flush()

    def _commit(self, transform: Transform) -> None:
        if transform == self._persisted:
            return
        self._persisted = transform
        logger.debug(f"Committed viewport transform {transform}")
        for listener in self._listeners:
            listener(transform)

    # ── derived values ──────────────────────────────────────────────────────

    def editor_scale(self) -> float:
        scale_height = (self.viewport_height / EDITOR_REFERENCE_HEIGHT) * EDITOR_REFERENCE_SCALE
        scale_width = (self.viewport_width / EDITOR_REFERENCE_WIDTH) * EDITOR_REFERENCE_SCALE
        return math.floor(min(scale_height, scale_width) * 10 + 0.5) / 10

    def distance_from_origin(self) -> float:
        return math.hypot(self._persisted.x, self._persisted.y)
