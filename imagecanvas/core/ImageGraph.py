from contextlib import contextmanager
from logging import getLogger
from typing import Callable, Dict, Iterator, List, Optional

from .GraphPrimitives import GraphChange, ImageChild, ImageNode
from .Types import ChildKind

logger = getLogger(__name__)

GraphListener = Callable[[List[GraphChange]], None]


class ImageGraph:
    """
    Flat entity store of every image node, keyed by id (Arena pattern).

    Parent/child links are ids, never object references. Mutations that name a
    missing id are logged and skipped: generation responses may arrive after
    their target node was deleted.

    Listeners receive the list of changes once per outermost ``batch()``, so
    a node addition and the parent link that goes with it are always observed
    together.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, ImageNode] = {}
        self._listeners: List[GraphListener] = []
        self._batch_depth = 0
        self._pending: List[GraphChange] = []

    # ── queries ─────────────────────────────────────────────────────────────

    def get(self, node_id: Optional[str]) -> Optional[ImageNode]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def nodes(self) -> List[ImageNode]:
        return list(self._nodes.values())

    def __contains__(self, node_id) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ImageNode]:
        return iter(list(self._nodes.values()))

    def upscaled_children(self, node_id: str) -> Dict[int, ImageNode]:
        """Existing upscaled children of a node keyed by the image slot they came from."""
        node = self._nodes.get(node_id)
        result: Dict[int, ImageNode] = {}
        if node is None:
            return result
        for child in node.children:
            child_node = self._nodes.get(child.child_id)
            if child.kind != ChildKind.UPSCALED or child.position is None or child_node is None:
                continue
            result[child.position] = child_node
        return result

    # ── change notification ─────────────────────────────────────────────────

    def subscribe(self, listener: GraphListener) -> None:
        self._listeners.append(listener)

    @contextmanager
    def batch(self):
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self._flush()

    def _record(self, change: GraphChange) -> None:
        self._pending.append(change)
        if self._batch_depth == 0:
            self._flush()

    def _flush(self) -> None:
        if not self._pending:
            return
        changes, self._pending = self._pending, []
        for listener in self._listeners:
            try:
                listener(changes)
            except Exception:
                logger.exception("Graph listener failed")

    def _missing(self, op: str, node_id: str) -> None:
        logger.error(f"{op}: no image with id '{node_id}'")

    # ── mutations ───────────────────────────────────────────────────────────

    def add(self, node: ImageNode) -> ImageNode:
        if node.id in self._nodes:
            raise ValueError(f"Image with id '{node.id}' already exists")
        self._nodes[node.id] = node
        logger.debug(f"Added {node.kind.value} image {node.id}")
        self._record(GraphChange("add", node.id))
        return node

    def remove(self, node_id: str) -> Optional[ImageNode]:
        """
        Remove a node and strip it from its parent's children.

        Descendants are left in the store; their parent reference simply
        points at an id that no longer resolves.
        """
        node = self._nodes.get(node_id)
        if node is None:
            self._missing("remove", node_id)
            return None
        with self.batch():
            if node.parent is not None:
                parent = self._nodes.get(node.parent.parent_id)
                if parent is not None:
                    self._strip_child(parent, node_id)
            # links recorded on parents other than node.parent
            for other in self._nodes.values():
                if other is not node and any(c.child_id == node_id for c in other.children):
                    self._strip_child(other, node_id)
            del self._nodes[node_id]
            self._record(GraphChange("remove", node_id))
        return node

    def set_urls(self, node_id: str, urls: List[str]) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            self._missing("set_urls", node_id)
            return False
        node.urls = list(urls)
        self._record(GraphChange("update", node_id, {"urls": node.urls}))
        return True

    def set_progress(self, node_id: str, progress: int) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            self._missing("set_progress", node_id)
            return False
        node.progress = max(0, min(100, int(progress)))
        self._record(GraphChange("update", node_id, {"progress": node.progress}))
        return True

    def append_child(self, parent_id: str, child: ImageChild) -> bool:
        parent = self._nodes.get(parent_id)
        if parent is None:
            self._missing("append_child", parent_id)
            return False
        parent.children.append(child)
        self._record(GraphChange("link", parent_id, {"childId": child.child_id}))
        return True

    def remove_child(self, parent_id: str, child_id: str) -> bool:
        parent = self._nodes.get(parent_id)
        if parent is None:
            self._missing("remove_child", parent_id)
            return False
        return self._strip_child(parent, child_id)

    def _strip_child(self, parent: ImageNode, child_id: str) -> bool:
        before = len(parent.children)
        parent.children = [c for c in parent.children if c.child_id != child_id]
        if len(parent.children) == before:
            return False
        self._record(GraphChange("unlink", parent.id, {"childId": child_id}))
        return True

    def move_node(self, node_id: str, dx: float, dy: float) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            self._missing("move_node", node_id)
            return False
        node.position.x += dx
        node.position.y += dy
        self._record(GraphChange("move", node_id, node.position.to_dict()))
        return True

    def reset(self) -> None:
        self._nodes.clear()
        self._pending.clear()
