"""
Monte-Carlo placement of new images on a sparse canvas.

A point is sampled uniformly inside a square window centred on the desired
location; the window grows after every rejected sample, so the search always
terminates once it reaches empty canvas. Exact packing is unnecessary here.
"""
import math
import random
from typing import Iterable, Optional

from .GraphPrimitives import IMAGE_SIZE, ImageNode, Position

MIN_GAP = 20
INITIAL_BOUNDARY = 500   # half-width of the first 1000x1000 window
BOUNDARY_STEP = 30


def overlaps_existing(x: float, y: float, nodes: Iterable[ImageNode]) -> bool:
    """True if a new image at (x, y) would overlap or come within MIN_GAP of any node."""
    for node in nodes:
        nx, ny = node.position.x, node.position.y
        overlap_x = x < nx + IMAGE_SIZE + MIN_GAP and x + IMAGE_SIZE + MIN_GAP > nx
        overlap_y = y < ny + IMAGE_SIZE + MIN_GAP and y + IMAGE_SIZE + MIN_GAP > ny
        if overlap_x and overlap_y:
            return True
    return False


def find_empty_area(
    center_x: float,
    center_y: float,
    nodes: Iterable[ImageNode],
    rng: Optional[random.Random] = None,
) -> Position:
    rng = rng or random
    existing = list(nodes)
    boundary = INITIAL_BOUNDARY
    while True:
        x = math.floor(rng.random() * (2 * boundary) - boundary) + center_x
        y = math.floor(rng.random() * (2 * boundary) - boundary) + center_y
        if not overlaps_existing(x, y, existing):
            return Position(x, y)
        boundary += BOUNDARY_STEP
