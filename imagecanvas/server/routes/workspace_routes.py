"""
Workspace REST routes.

All routes are mounted under /api by main.py. Every handler goes through the
Workspace orchestrator; generation routes return the new node id at once and
leave the remote call running unless ``wait`` is set.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, File, HTTPException, Response, UploadFile
from pydantic import BaseModel

from imagecanvas.core.Errors import GenerationError
from imagecanvas.core.Types import WorkspaceTool, parse_enum
from imagecanvas.core.Viewport import WheelInput
from imagecanvas.core.Workspace import GenerationRequest, Workspace
from imagecanvas.server.serializers.workspace_serializer import (
    serialize_history,
    serialize_node,
    serialize_request,
    serialize_selection,
    serialize_viewport,
    serialize_workspace,
)
from imagecanvas.server.state import get_state

router = APIRouter()


def _workspace() -> Workspace:
    return get_state().workspace


def _require_node(workspace: Workspace, image_id: str):
    node = workspace.graph.get(image_id)
    if node is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return node


async def _created(workspace: Workspace, request: Optional[GenerationRequest],
                   wait: bool) -> Dict[str, Any]:
    if request is None:
        raise HTTPException(status_code=400, detail="Source image has no image at that position")
    if wait:
        await request
    node = workspace.graph.get(request.node_id)
    return {
        "id": request.node_id,
        "request": serialize_request(request),
        "image": serialize_node(node, request) if node is not None else None,
    }


# ── GET /workspace ────────────────────────────────────────────────────────────

@router.get("/workspace")
async def get_workspace() -> Dict[str, Any]:
    return serialize_workspace(_workspace())


# ── GET /images/:id ───────────────────────────────────────────────────────────

@router.get("/images/{image_id}")
async def get_image(image_id: str) -> Dict[str, Any]:
    workspace = _workspace()
    node = _require_node(workspace, image_id)
    return serialize_node(node, workspace.requests.get(image_id))


@router.get("/images/{image_id}/upscaled-children")
async def get_upscaled_children(image_id: str) -> Dict[str, Any]:
    workspace = _workspace()
    _require_node(workspace, image_id)
    children = workspace.graph.upscaled_children(image_id)
    return {str(position): serialize_node(node) for position, node in children.items()}


# ── POST /images/imagine ──────────────────────────────────────────────────────

class ImagineBody(BaseModel):
    prompt: str
    navigate: bool = False
    wait: bool = False


@router.post("/images/imagine", status_code=201)
async def imagine(body: ImagineBody) -> Dict[str, Any]:
    if not body.prompt.strip():
        raise HTTPException(status_code=400, detail="`prompt` required")
    workspace = _workspace()
    return await _created(workspace, workspace.generate_from_prompt(body.prompt, body.navigate), body.wait)


# ── POST /images/:id/variations ───────────────────────────────────────────────

class FromImageBody(BaseModel):
    position: int
    prompt: str
    wait: bool = False


@router.post("/images/{image_id}/variations", status_code=201)
async def generate_from_image(image_id: str, body: FromImageBody) -> Dict[str, Any]:
    workspace = _workspace()
    _require_node(workspace, image_id)
    request = workspace.generate_from_image(image_id, body.position, body.prompt)
    return await _created(workspace, request, body.wait)


# ── POST /images/:id/upscale ──────────────────────────────────────────────────

class PositionBody(BaseModel):
    position: int
    wait: bool = False


@router.post("/images/{image_id}/upscale", status_code=201)
async def upscale(image_id: str, body: PositionBody) -> Dict[str, Any]:
    workspace = _workspace()
    _require_node(workspace, image_id)
    return await _created(workspace, workspace.upscale(image_id, body.position), body.wait)


# ── POST /images/:id/promote ──────────────────────────────────────────────────

@router.post("/images/{image_id}/promote", status_code=201)
async def promote_region(image_id: str, body: PositionBody) -> Dict[str, Any]:
    workspace = _workspace()
    _require_node(workspace, image_id)
    node = workspace.promote_region(image_id, body.position)
    if node is None:
        raise HTTPException(status_code=400, detail="Source image has no image at that position")
    return {"id": node.id, "image": serialize_node(node)}


# ── POST /images/canvas ───────────────────────────────────────────────────────

@router.post("/images/canvas", status_code=201)
async def add_blank_canvas() -> Dict[str, Any]:
    node = _workspace().add_blank_canvas()
    return {"id": node.id, "image": serialize_node(node)}


# ── DELETE /images/:id ────────────────────────────────────────────────────────

@router.delete("/images/{image_id}", status_code=204)
async def delete_image(image_id: str) -> Response:
    if not _workspace().delete(image_id):
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(status_code=204)


# ── PUT /images/:id/image ─────────────────────────────────────────────────────

@router.put("/images/{image_id}/image")
async def replace_image(image_id: str, file: UploadFile = File(...)) -> Dict[str, Any]:
    workspace = _workspace()
    _require_node(workspace, image_id)
    data = await file.read()
    try:
        url = await workspace.replace_image(image_id, data)
    except GenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    if url is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return {"id": image_id, "url": url}


# ── Node gestures ─────────────────────────────────────────────────────────────

class MovementBody(BaseModel):
    movementX: float
    movementY: float


class ClickBody(BaseModel):
    dragged: bool = False


@router.post("/images/{image_id}/pointer-down")
async def node_pointer_down(image_id: str) -> Dict[str, Any]:
    workspace = _workspace()
    _require_node(workspace, image_id)
    return {"draggable": workspace.on_node_pointer_down(image_id)}


@router.post("/images/{image_id}/drag")
async def node_drag(image_id: str, body: MovementBody) -> Dict[str, Any]:
    workspace = _workspace()
    node = _require_node(workspace, image_id)
    moved = workspace.on_node_drag(image_id, body.movementX, body.movementY)
    return {"moved": moved, "transform": node.position.to_dict()}


@router.post("/images/{image_id}/click")
async def node_click(image_id: str, body: ClickBody) -> Dict[str, Any]:
    workspace = _workspace()
    _require_node(workspace, image_id)
    handled = workspace.on_node_click(image_id, body.dragged)
    return {"handled": handled, **serialize_selection(workspace)}


# ── PUT /images/:id/visibility ────────────────────────────────────────────────

class VisibilityBody(BaseModel):
    visible: bool


@router.put("/images/{image_id}/visibility", status_code=204)
async def set_visibility(image_id: str, body: VisibilityBody) -> Response:
    workspace = _workspace()
    _require_node(workspace, image_id)
    if body.visible:
        workspace.show_in_workspace(image_id)
    else:
        workspace.hide_in_workspace(image_id)
    return Response(status_code=204)


# ── PUT /focus ────────────────────────────────────────────────────────────────

class FocusBody(BaseModel):
    imageId: Optional[str] = None


@router.put("/focus")
async def set_focus(body: FocusBody) -> Dict[str, Any]:
    workspace = _workspace()
    if not workspace.focus(body.imageId):
        raise HTTPException(status_code=404, detail="Image not found")
    return {**serialize_selection(workspace), **serialize_viewport(workspace)}


# ── PUT /tool ─────────────────────────────────────────────────────────────────

class ToolBody(BaseModel):
    tool: str


@router.put("/tool")
async def set_tool(body: ToolBody) -> Dict[str, Any]:
    workspace = _workspace()
    try:
        workspace.set_tool(parse_enum(WorkspaceTool, body.tool))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return serialize_selection(workspace)


# ── History ───────────────────────────────────────────────────────────────────

class NavigateBody(BaseModel):
    offset: int


@router.post("/history/navigate")
async def navigate_history(body: NavigateBody) -> Dict[str, Any]:
    workspace = _workspace()
    workspace.navigate_history(body.offset)
    return {
        **serialize_history(workspace),
        **serialize_selection(workspace),
        **serialize_viewport(workspace),
    }


@router.post("/history/bookmark", status_code=201)
async def bookmark_viewport() -> Dict[str, Any]:
    workspace = _workspace()
    workspace.bookmark_viewport()
    return serialize_history(workspace)


# ── Viewport ──────────────────────────────────────────────────────────────────

class TransformBody(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None
    scale: Optional[float] = None
    immediate: bool = False
    smooth: bool = False


@router.put("/viewport")
async def set_viewport(body: TransformBody) -> Dict[str, Any]:
    workspace = _workspace()
    if body.smooth:
        workspace.viewport.smooth_transform(body.x, body.y, body.scale)
    else:
        workspace.viewport.transform(body.x, body.y, body.scale, immediate=body.immediate)
    return serialize_viewport(workspace)


class WheelBody(BaseModel):
    deltaX: float = 0
    deltaY: float = 0
    ctrlKey: bool = False
    altKey: bool = False
    metaKey: bool = False
    shiftKey: bool = False
    clientX: float = 0
    clientY: float = 0
    width: Optional[float] = None
    height: Optional[float] = None
    platform: str = ""


@router.post("/viewport/wheel")
async def wheel(body: WheelBody) -> Dict[str, Any]:
    workspace = _workspace()
    viewport = workspace.viewport
    workspace.on_wheel(WheelInput(
        delta_x=body.deltaX,
        delta_y=body.deltaY,
        ctrl_key=body.ctrlKey,
        alt_key=body.altKey,
        meta_key=body.metaKey,
        shift_key=body.shiftKey,
        client_x=body.clientX,
        client_y=body.clientY,
        viewport_width=body.width or viewport.viewport_width,
        viewport_height=body.height or viewport.viewport_height,
        platform=body.platform,
    ))
    return {**serialize_viewport(workspace), **serialize_selection(workspace)}


@router.post("/viewport/drag")
async def canvas_drag(body: MovementBody) -> Dict[str, Any]:
    workspace = _workspace()
    workspace.on_canvas_drag(body.movementX, body.movementY)
    return serialize_viewport(workspace)


class SizeBody(BaseModel):
    width: float
    height: float


@router.put("/viewport/size", status_code=204)
async def set_viewport_size(body: SizeBody) -> Response:
    try:
        _workspace().viewport.set_viewport_size(body.width, body.height)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return Response(status_code=204)


@router.post("/viewport/center")
async def go_to_center() -> Dict[str, Any]:
    workspace = _workspace()
    workspace.go_to_center()
    return serialize_viewport(workspace)


@router.post("/canvas/pointer-down")
async def canvas_pointer_down() -> Dict[str, Any]:
    workspace = _workspace()
    workspace.on_canvas_pointer_down()
    return serialize_selection(workspace)


@router.post("/keys/delete")
async def delete_key() -> Dict[str, Any]:
    workspace = _workspace()
    return {"deleted": workspace.on_delete_key()}
