"""
WorkspaceEmitter: fan-out of workspace events to registered listeners
(sockets, loggers, tests).

``connect(workspace)`` turns the workspace's own notifications (graph change
batches, persisted transform commits, selection and history changes) into
the event dicts defined in event_types.py.
"""
from __future__ import annotations

import time
from logging import getLogger
from typing import Any, Callable, Dict, List

from imagecanvas.core.GraphPrimitives import GraphChange
from imagecanvas.core.Viewport import Transform

logger = getLogger(__name__)


class WorkspaceEmitter:
    def __init__(self) -> None:
        self._listeners: List[Callable[[Dict[str, Any]], None]] = []

    def on_event(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Register a callback that receives every emitted workspace event."""
        self._listeners.append(callback)

    def fire(self, payload: Dict[str, Any]) -> None:
        """Stamp the payload with a millisecond timestamp and broadcast it."""
        if "ts" not in payload:
            payload["ts"] = _now_ms()
        for cb in self._listeners:
            try:
                cb(payload)
            except Exception:
                logger.exception(f"Listener failed for {payload.get('type')}")

    def connect(self, workspace) -> None:
        def on_graph(changes: List[GraphChange]) -> None:
            self.fire({
                "type": "GRAPH_CHANGED",
                "changes": [
                    {"op": c.op, "id": c.node_id, "detail": c.detail} for c in changes
                ],
            })

        def on_commit(transform: Transform) -> None:
            self.fire({"type": "TRANSFORM_COMMITTED", "transform": transform.to_dict()})

        def on_change(kind: str) -> None:
            if kind == "selection":
                selection = workspace.selection
                self.fire({
                    "type": "SELECTION_CHANGED",
                    "activeImageId": selection.active_id,
                    "editorId": selection.editor_id,
                    "tool": selection.tool.value,
                })
            elif kind == "history":
                history = workspace.history
                self.fire({
                    "type": "HISTORY_CHANGED",
                    "historyIndex": history.cursor,
                    "length": len(history),
                    "canGoBack": history.can_go_back,
                    "canGoForward": history.can_go_forward,
                })

        workspace.graph.subscribe(on_graph)
        workspace.viewport.on_commit(on_commit)
        workspace.on_change(on_change)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

global_emitter = WorkspaceEmitter()


def _now_ms() -> int:
    return int(time.time() * 1000)
