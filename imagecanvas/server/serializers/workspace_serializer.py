"""
Workspace serializer.

Converts ImageNode / Workspace objects into JSON-safe dicts in the wire shape
the canvas UI expects (camelCase keys, the same field names as the persisted
state plus derived fields such as optimised URLs).
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from imagecanvas.core.GraphPrimitives import ImageNode
from imagecanvas.core.History import entry_to_dict
from imagecanvas.core.Workspace import GenerationRequest, Workspace
from imagecanvas.providers.uploadcare_api import to_optimized_image

# Distance from the origin beyond which the UI offers a "go to centre" arrow
CENTER_ARROW_DISTANCE = 1000


def serialize_request(request: Optional[GenerationRequest]) -> Optional[Dict[str, Any]]:
    if request is None:
        return None
    return {
        "state": request.state.value,
        "error": str(request.error) if request.error is not None else None,
    }


def serialize_node(node: ImageNode, request: Optional[GenerationRequest] = None) -> Dict[str, Any]:
    data = node.to_dict()
    data["optimizedUrl"] = (
        [to_optimized_image(url) for url in node.urls] if node.urls is not None else None
    )
    data["request"] = serialize_request(request)
    return data


def serialize_viewport(workspace: Workspace) -> Dict[str, Any]:
    viewport = workspace.viewport
    distance = viewport.distance_from_origin()
    return {
        "workspaceTransform": viewport.persisted.to_dict(),
        "workingTransform": viewport.working.to_dict(),
        "animating": viewport.animating,
        "distanceFromOrigin": distance,
        "showCenterArrow": distance > CENTER_ARROW_DISTANCE,
    }


def serialize_history(workspace: Workspace) -> Dict[str, Any]:
    history = workspace.history
    return {
        "history": [entry_to_dict(e) for e in history.entries],
        "historyIndex": history.cursor,
        "canGoBack": history.can_go_back,
        "canGoForward": history.can_go_forward,
    }


def serialize_selection(workspace: Workspace) -> Dict[str, Any]:
    data = workspace.selection.to_dict()
    data["workspaceTool"] = workspace.selection.tool.value
    return data


def serialize_workspace(workspace: Workspace) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "images": {
            node.id: serialize_node(node, workspace.requests.get(node.id))
            for node in workspace.graph
        },
    }
    data.update(serialize_selection(workspace))
    data.update(serialize_history(workspace))
    data.update(serialize_viewport(workspace))
    return data
