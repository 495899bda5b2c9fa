from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional

import uuid

from .Types import ChildKind, ImageKind

# Every image occupies the same square footprint on the canvas.
IMAGE_SIZE = 400


# Parent and child references are plain value types; the store resolves them by id.
class ParentRef(NamedTuple):
    parent_id: str
    position: int

    def __repr__(self):
        return f"ParentRef({self.parent_id}[{self.position}])"


class ImageChild(NamedTuple):
    child_id: str
    kind: ChildKind
    # Only meaningful for upscaled children: which image slot of the parent
    position: Optional[int] = None

    def __repr__(self):
        if self.position is None:
            return f"ImageChild({self.kind.value}:{self.child_id})"
        return f"ImageChild({self.kind.value}:{self.child_id}@{self.position})"


class GraphChange(NamedTuple):
    op: str         # "add" | "remove" | "update" | "link" | "unlink" | "move"
    node_id: str
    detail: Optional[Dict[str, Any]] = None


@dataclass
class Position:
    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


def new_image_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ImageNode:
    """
    One generated image entity.

    Variations and upscaled nodes share every field; ``kind`` is the
    discriminator. ``is_canvas`` only applies to upscaled nodes and marks a
    manually inserted base canvas rather than a generation result.
    ``urls is None`` means the remote generation is still pending.
    """
    kind: ImageKind
    prompt: str
    position: Position
    urls: Optional[List[str]] = None
    progress: int = 0
    is_canvas: bool = False
    parent: Optional[ParentRef] = None
    children: List[ImageChild] = field(default_factory=list)
    id: str = field(default_factory=new_image_id)

    def __post_init__(self):
        if self.kind == ImageKind.VARIATIONS:
            if self.is_canvas:
                raise ValueError("A variations node can never be a canvas")
        elif self.kind == ImageKind.UPSCALED:
            if self.urls is not None and len(self.urls) != 1:
                raise ValueError(f"An upscaled node holds exactly one image, got {len(self.urls)}")
        else:
            raise ValueError(f"Unknown image kind {self.kind!r}")

    @property
    def is_ready(self) -> bool:
        return self.urls is not None

    def url_at(self, position: int) -> Optional[str]:
        if self.urls is None or position < 0 or position >= len(self.urls):
            return None
        return self.urls[position]

    # ── persistence shape ────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "url": list(self.urls) if self.urls is not None else None,
            "prompt": self.prompt,
            "percentageDone": self.progress,
            "parent": (
                {"id": self.parent.parent_id, "position": self.parent.position}
                if self.parent is not None
                else None
            ),
            "children": [_child_to_dict(c) for c in self.children],
            "transform": self.position.to_dict(),
        }
        if self.kind == ImageKind.UPSCALED:
            data["isCanvas"] = self.is_canvas
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageNode":
        parent = data.get("parent")
        return cls(
            id=data["id"],
            kind=ImageKind(data["type"]),
            urls=list(data["url"]) if data.get("url") is not None else None,
            prompt=data.get("prompt", ""),
            progress=int(data.get("percentageDone", 0)),
            is_canvas=bool(data.get("isCanvas", False)),
            parent=ParentRef(parent["id"], parent["position"]) if parent else None,
            children=[_child_from_dict(c) for c in data.get("children", [])],
            position=Position(data["transform"]["x"], data["transform"]["y"]),
        )


def _child_to_dict(child: ImageChild) -> Dict[str, Any]:
    data: Dict[str, Any] = {"type": child.kind.value, "id": child.child_id}
    if child.position is not None:
        data["position"] = child.position
    return data


def _child_from_dict(data: Dict[str, Any]) -> ImageChild:
    return ImageChild(data["id"], ChildKind(data["type"]), data.get("position"))
