import pytest

from imagecanvas.core.Selection import SelectionState
from imagecanvas.core.Types import RequestState, WorkspaceTool, parse_enum
from imagecanvas.core.Viewport import Transform
from imagecanvas.server.events.workspace_emitter import WorkspaceEmitter

from helpers import add_ready_variations, make_workspace


class TestSelectionState:

    def setup_method(self):
        self.selection = SelectionState()

    def test_defaults(self):
        assert self.selection.tool == WorkspaceTool.SELECT
        assert self.selection.active_id is None
        assert not self.selection.is_editing

    def test_editor_tracks_previous(self):
        self.selection.set_editor("a")
        self.selection.set_editor("b")
        assert self.selection.prev_editor_id == "a"
        assert self.selection.is_editing

    def test_forget_clears_every_reference(self):
        self.selection.set_active("a")
        self.selection.set_editor("a")
        self.selection.set_editor("a")
        self.selection.show("a")
        self.selection.show("b")
        self.selection.forget("a")
        assert self.selection.active_id is None
        assert self.selection.editor_id is None
        assert self.selection.prev_editor_id is None
        assert self.selection.workspace_visibility == {"b"}

    def test_tool_is_not_persisted(self):
        self.selection.set_tool(WorkspaceTool.GRAB)
        self.selection.show("x")
        data = self.selection.to_dict()
        restored = SelectionState()
        restored.load(data)
        assert restored.tool == WorkspaceTool.SELECT
        assert restored.workspace_visibility == {"x"}


class TestParseEnum:

    def test_by_value_and_name(self):
        assert parse_enum(WorkspaceTool, "grab-tool") == WorkspaceTool.GRAB
        assert parse_enum(WorkspaceTool, "grab") == WorkspaceTool.GRAB
        assert parse_enum(RequestState, RequestState.FAILED) == RequestState.FAILED

    def test_unknown(self):
        with pytest.raises(ValueError, match="lasso"):
            parse_enum(WorkspaceTool, "lasso")


class TestWorkspaceEmitter:

    def setup_method(self):
        self.workspace, self.scheduler = make_workspace()
        self.emitter = WorkspaceEmitter()
        self.events = []
        self.emitter.on_event(self.events.append)
        self.emitter.connect(self.workspace)

    def _types(self):
        return [e["type"] for e in self.events]

    def test_fire_stamps_timestamp(self):
        self.emitter.fire({"type": "X"})
        assert isinstance(self.events[0]["ts"], int)

    def test_broken_listener_does_not_stop_others(self):
        def broken(event):
            raise RuntimeError("boom")

        emitter = WorkspaceEmitter()
        seen = []
        emitter.on_event(broken)
        emitter.on_event(seen.append)
        emitter.fire({"type": "X"})
        assert len(seen) == 1

    def test_workspace_changes_become_events(self):
        node = add_ready_variations(self.workspace)
        self.workspace.focus(node.id)

        assert self._types() == [
            "GRAPH_CHANGED",
            "HISTORY_CHANGED",
            "SELECTION_CHANGED",
            "TRANSFORM_COMMITTED",
        ]
        graph_event, history_event, selection_event, transform_event = self.events
        assert graph_event["changes"][0] == {"op": "add", "id": node.id, "detail": None}
        assert history_event["historyIndex"] == 0
        assert selection_event["editorId"] == node.id
        assert transform_event["transform"] == Transform(-320, -320, 1.6).to_dict()
