from typing import Any, Dict, Optional, Set

from .Types import WorkspaceTool


class SelectionState:
    """Active (selected) image, editor focus, current tool and pinned images."""

    def __init__(self) -> None:
        self.active_id: Optional[str] = None
        self.editor_id: Optional[str] = None
        self.prev_editor_id: Optional[str] = None
        self.tool: WorkspaceTool = WorkspaceTool.SELECT
        self.workspace_visibility: Set[str] = set()

    def set_tool(self, tool: WorkspaceTool) -> None:
        self.tool = tool

    def set_active(self, image_id: Optional[str]) -> None:
        self.active_id = image_id

    def set_editor(self, image_id: Optional[str]) -> None:
        self.prev_editor_id = self.editor_id
        self.editor_id = image_id

    @property
    def is_editing(self) -> bool:
        return self.editor_id is not None

    def show(self, image_id: str) -> None:
        self.workspace_visibility.add(image_id)

    def hide(self, image_id: str) -> None:
        self.workspace_visibility.discard(image_id)

    def forget(self, image_id: str) -> None:
        """Drop every reference to a deleted image."""
        if self.editor_id == image_id:
            self.editor_id = None
        if self.prev_editor_id == image_id:
            self.prev_editor_id = None
        if self.active_id == image_id:
            self.active_id = None
        self.workspace_visibility.discard(image_id)

    # The tool is not persisted; it resets to SELECT on reload.
    def to_dict(self) -> Dict[str, Any]:
        return {
            "activeImageId": self.active_id,
            "editorId": self.editor_id,
            "prevEditorId": self.prev_editor_id,
            "workspaceImages": sorted(self.workspace_visibility),
        }

    def load(self, data: Dict[str, Any]) -> None:
        self.active_id = data.get("activeImageId")
        self.editor_id = data.get("editorId")
        self.prev_editor_id = data.get("prevEditorId")
        self.workspace_visibility = set(data.get("workspaceImages", []))
