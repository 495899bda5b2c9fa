import asyncio

import pytest

from imagecanvas.core.Errors import GenerationError
from imagecanvas.core.GraphPrimitives import ImageNode, Position
from imagecanvas.core.History import FocusImage, TransformViewport
from imagecanvas.core.Types import ChildKind, ImageKind, RequestState, WorkspaceTool
from imagecanvas.core.Viewport import Transform, WheelInput
from imagecanvas.core.Workspace import BLANK_CANVAS_URL, GenerationRequest

from helpers import FakeBackend, add_ready_variations, make_workspace


class TestGeneration:

    def setup_method(self):
        self.backend = FakeBackend()
        self.workspace, self.scheduler = make_workspace(self.backend)
        self.graph = self.workspace.graph

    def test_generate_from_prompt(self):
        async def run():
            request = self.workspace.generate_from_prompt("a red fox")
            node = self.graph.get(request.node_id)
            assert node.kind == ImageKind.VARIATIONS
            assert node.urls is None
            assert node.progress == 0
            assert node.parent is None
            assert -500 <= node.position.x < 500
            assert -500 <= node.position.y < 500
            assert request.state == RequestState.PENDING

            assert await request == RequestState.READY
            return node

        node = asyncio.run(run())
        assert node.urls == self.backend.variations
        assert node.progress == 100
        assert self.backend.calls == [("imagine", "a red fox")]

    def test_prompt_placement_uses_unscaled_translation(self):
        self.workspace.viewport.transform(-2000, 1000, 2, immediate=True)

        async def run():
            request = self.workspace.generate_from_prompt("a red fox")
            await request
            return self.graph.get(request.node_id)

        node = asyncio.run(run())
        assert 1500 <= node.position.x < 2500
        assert -1500 <= node.position.y < -500

    def test_generate_with_navigate_snaps_viewport(self):
        async def run():
            request = self.workspace.generate_from_prompt("a red fox", navigate=True)
            await request
            return self.graph.get(request.node_id)

        node = asyncio.run(run())
        t = self.workspace.viewport.persisted
        assert t.scale == pytest.approx(1.1)
        assert t.x == pytest.approx((-node.position.x - 200) * 1.1)
        assert t.y == pytest.approx((-node.position.y - 200) * 1.1)

    def test_empty_prompt_adds_blank_canvas(self):
        async def run():
            request = self.workspace.generate_from_prompt("empty")
            assert await request == RequestState.READY
            return self.graph.get(request.node_id)

        node = asyncio.run(run())
        assert node.is_canvas
        assert node.urls == [BLANK_CANVAS_URL]
        assert self.backend.calls == []

    def test_upscale_existing(self):
        source = add_ready_variations(self.workspace, x=100, y=-40)

        async def run():
            request = self.workspace.upscale(source.id, 2)
            node = self.graph.get(request.node_id)
            assert node.kind == ImageKind.UPSCALED
            assert node.parent == (source.id, 2)
            assert node.prompt == source.prompt
            assert source.children[-1] == (node.id, ChildKind.UPSCALED, 2)
            await request
            return node

        node = asyncio.run(run())
        assert 100 + 800 <= node.position.x < 100 + 1000
        assert -40 - 250 <= node.position.y < -40 + 250
        assert self.backend.calls == [("upscale", source.urls[2])]
        assert node.urls == [self.backend.upscaled]
        assert node.progress == 100

    def test_generate_from_variations_uses_image_to_image(self):
        source = add_ready_variations(self.workspace, x=5000, y=5000)
        self.workspace.viewport.transform(-2000, 1000, 2, immediate=True)

        async def run():
            request = self.workspace.generate_from_image(source.id, 1, "in winter")
            await request
            return self.graph.get(request.node_id)

        node = asyncio.run(run())
        assert self.backend.calls == [("image_to_image", "in winter", source.urls[1])]
        assert node.urls == [self.backend.variations[0]]
        assert source.children == [(node.id, ChildKind.VARIATIONS, None)]
        assert 500 <= node.position.x < 1500
        assert -1000 <= node.position.y < 0

    def test_generate_from_canvas_uses_sketch_to_image(self):
        async def run():
            canvas = self.workspace.add_blank_canvas()
            request = self.workspace.generate_from_image(canvas.id, 0, "a castle")
            await request
            return canvas

        canvas = asyncio.run(run())
        assert self.backend.names() == ["sketch_to_image"]
        assert self.backend.calls[0][2] == canvas.urls[0]

    def test_invalid_source_changes_nothing(self):
        source = add_ready_variations(self.workspace)
        pending = ImageNode(kind=ImageKind.VARIATIONS, prompt="x", position=Position(900, 900))
        self.graph.add(pending)

        async def run():
            assert self.workspace.upscale("missing", 0) is None
            assert self.workspace.upscale(source.id, 9) is None
            assert self.workspace.generate_from_image(pending.id, 0, "y") is None
            assert self.workspace.promote_region(source.id, -1) is None

        asyncio.run(run())
        assert len(self.graph) == 2
        assert source.children == []
        assert self.backend.calls == []

    def test_promote_region_is_ready_at_once(self):
        source = add_ready_variations(self.workspace)
        node = self.workspace.promote_region(source.id, 3)
        assert node.urls == [source.urls[3]]
        assert node.progress == 100
        assert source.children == [(node.id, ChildKind.UPSCALED, 3)]
        assert self.graph.upscaled_children(source.id) == {3: node}

    def test_failure_leaves_node_pending(self):
        self.backend.fail = GenerationError("provider down", status=503, detail="busy")

        async def run():
            request = self.workspace.generate_from_prompt("a red fox")
            assert await request == RequestState.FAILED
            return request

        request = asyncio.run(run())
        node = self.graph.get(request.node_id)
        assert node.urls is None
        assert node.progress == 0
        assert request.error.status == 503

    def test_unexpected_backend_error_fails_request(self):
        self.backend.fail = ConnectionError("socket reset")

        async def run():
            request = self.workspace.generate_from_prompt("a red fox")
            await self.workspace.drain()
            return request

        request = asyncio.run(run())
        assert request.state == RequestState.FAILED
        assert isinstance(request.error, ConnectionError)
        assert self.graph.get(request.node_id).urls is None
        assert self.workspace.pending_tasks() == []

    def test_delete_drops_request(self):
        async def run():
            for prompt in ("one", "two", "three"):
                request = self.workspace.generate_from_prompt(prompt)
                await request
                assert request.node_id in self.workspace.requests
                assert self.workspace.delete(request.node_id)

        asyncio.run(run())
        assert len(self.graph) == 0
        assert self.workspace.requests == {}

    def test_late_response_for_deleted_node_is_dropped(self):
        async def run():
            self.backend.gate = asyncio.Event()
            request = self.workspace.generate_from_prompt("a red fox")
            await asyncio.sleep(0)
            assert self.workspace.delete(request.node_id)
            self.backend.gate.set()
            await request
            return request

        request = asyncio.run(run())
        assert request.state == RequestState.READY
        assert not request.applied
        assert len(self.graph) == 0

    def test_responses_update_their_own_nodes(self):
        async def run():
            first = self.workspace.generate_from_prompt("one")
            second = self.workspace.generate_from_prompt("two")
            await self.workspace.drain()
            return first, second

        first, second = asyncio.run(run())
        assert self.graph.get(first.node_id).prompt == "one"
        assert self.graph.get(second.node_id).is_ready
        assert self.workspace.pending_tasks() == []

    def test_replace_image_uploads_and_sets_single_url(self):
        source = add_ready_variations(self.workspace)
        node = self.workspace.promote_region(source.id, 0)

        url = asyncio.run(self.workspace.replace_image(node.id, b"png-bytes"))

        assert url == self.backend.uploaded
        assert node.urls == [self.backend.uploaded]
        assert self.backend.calls == [("upload", b"png-bytes")]

    def test_completed_request(self):
        request = GenerationRequest.completed("abc")
        assert request.done
        assert request.applied
        assert asyncio.run(self._await(request)) == RequestState.READY

    @staticmethod
    async def _await(request):
        return await request


class TestFocusAndHistory:

    def setup_method(self):
        self.workspace, self.scheduler = make_workspace()
        self.a = add_ready_variations(self.workspace, x=0, y=0)
        self.b = add_ready_variations(self.workspace, x=1000, y=0)

    def test_focus_centres_node_at_editor_scale(self):
        assert self.workspace.focus(self.a.id)
        assert self.workspace.selection.editor_id == self.a.id
        assert self.workspace.selection.active_id == self.a.id
        assert self.workspace.viewport.persisted == Transform(-320, -320, 1.6)
        assert self.workspace.history.entries == [FocusImage(self.a.id)]

    def test_focus_missing_image_is_noop(self):
        assert not self.workspace.focus("stale")
        assert self.workspace.selection.editor_id is None
        assert len(self.workspace.history) == 0

    def test_focus_none_leaves_editor(self):
        self.workspace.focus(self.a.id)
        self.workspace.focus(None)
        assert self.workspace.selection.editor_id is None
        assert self.workspace.selection.prev_editor_id == self.a.id

    def test_back_while_unfocused_replays_current(self):
        self.workspace.focus(self.a.id)
        self.workspace.focus(self.b.id)
        self.workspace.focus(None)

        entry = self.workspace.navigate_history(-1)

        assert entry == FocusImage(self.b.id)
        assert self.workspace.history.cursor == 1
        assert self.workspace.selection.editor_id == self.b.id
        assert len(self.workspace.history) == 2

    def test_back_while_focused_goes_to_previous(self):
        self.workspace.focus(self.a.id)
        self.workspace.focus(self.b.id)
        assert self.workspace.navigate_history(-1) == FocusImage(self.a.id)
        assert self.workspace.selection.editor_id == self.a.id
        assert self.workspace.navigate_history(1) == FocusImage(self.b.id)

    def test_bookmark_replays_transform(self):
        self.workspace.viewport.transform(50, 60, 0.5, immediate=True)
        assert self.workspace.bookmark_viewport()
        self.workspace.focus(self.a.id)

        assert self.workspace.navigate_history(-1) == TransformViewport(Transform(50, 60, 0.5))
        assert self.workspace.viewport.persisted == Transform(50, 60, 0.5)

    def test_stale_history_entry_is_benign(self):
        self.workspace.focus(self.a.id)
        self.workspace.history.push(FocusImage("gone"))
        assert self.workspace.navigate_history(1) == FocusImage("gone")
        assert self.workspace.selection.editor_id == self.a.id

    def test_delete_strips_selection_history_and_parent(self):
        child = self.workspace.promote_region(self.a.id, 1)
        grandchild = self.workspace.promote_region(child.id, 0)
        self.workspace.show_in_workspace(child.id)
        self.workspace.focus(self.a.id)
        self.workspace.focus(child.id)

        assert self.workspace.delete(child.id)

        assert child.id not in self.workspace.graph
        assert self.a.children == []
        assert grandchild.id in self.workspace.graph
        assert self.workspace.selection.editor_id is None
        assert self.workspace.selection.active_id is None
        assert child.id not in self.workspace.selection.workspace_visibility
        assert self.workspace.history.entries == [FocusImage(self.a.id)]

    def test_go_to_center(self):
        self.workspace.viewport.transform(1500, 800, 2, immediate=True)
        self.workspace.go_to_center()
        assert self.workspace.viewport.persisted == Transform(0, 0, 2)

    def test_change_listeners(self):
        kinds = []
        self.workspace.on_change(kinds.append)
        self.workspace.focus(self.a.id)
        assert kinds == ["history", "selection"]


class TestGestures:

    def setup_method(self):
        self.workspace, self.scheduler = make_workspace()
        self.node = add_ready_variations(self.workspace, x=0, y=0)
        self.selection = self.workspace.selection

    def test_moving_wheel_clears_focus(self):
        self.workspace.focus(self.node.id)
        self.workspace.on_wheel(WheelInput(delta_x=5, delta_y=0))
        assert self.selection.editor_id is None
        assert self.workspace.viewport.working.x == pytest.approx(-325)

    def test_small_wheel_keeps_focus(self):
        self.workspace.focus(self.node.id)
        self.workspace.on_wheel(WheelInput(delta_x=1, delta_y=1))
        assert self.selection.editor_id == self.node.id

    def test_wheel_when_zoomed_out_clears_focus(self):
        self.workspace.focus(self.node.id)
        self.workspace.viewport.transform(scale=0.5)
        self.workspace.on_wheel(WheelInput(delta_y=1))
        assert self.selection.editor_id is None

    def test_modifier_wheel_zooms(self):
        assert self.workspace.on_wheel(WheelInput(delta_y=-10, ctrl_key=True, client_x=750,
                                                  client_y=500))
        assert self.workspace.viewport.working.scale > 1

    def test_canvas_pointer_down_and_drag(self):
        self.workspace.focus(self.node.id)
        self.workspace.on_canvas_pointer_down()
        assert self.selection.editor_id is None
        assert self.selection.active_id is None
        before = self.workspace.viewport.working
        self.workspace.on_canvas_drag(10, -4)
        assert self.workspace.viewport.working == Transform(before.x + 10, before.y - 4, before.scale)

    def test_select_tool_drag_is_scaled(self):
        self.workspace.viewport.transform(scale=2, immediate=True)
        assert self.workspace.on_node_pointer_down(self.node.id)
        assert self.selection.active_id == self.node.id
        assert self.workspace.on_node_drag(self.node.id, 20, -10)
        assert self.node.position == Position(10, -5)

    def test_click_focuses_ready_node(self):
        assert self.workspace.on_node_click(self.node.id)
        assert self.selection.editor_id == self.node.id

    def test_click_after_drag_does_not_focus(self):
        assert not self.workspace.on_node_click(self.node.id, dragged=True)
        assert self.selection.editor_id is None
        assert self.selection.active_id == self.node.id

    def test_click_on_pending_node_only_selects(self):
        pending = self.workspace.graph.add(
            ImageNode(kind=ImageKind.VARIATIONS, prompt="x", position=Position(2000, 0))
        )
        assert not self.workspace.on_node_click(pending.id)
        assert self.selection.active_id == pending.id
        assert self.selection.editor_id is None

    def test_grab_tool_disables_node_interaction(self):
        self.workspace.set_tool(WorkspaceTool.GRAB)
        assert not self.workspace.on_node_pointer_down(self.node.id)
        assert not self.workspace.on_node_drag(self.node.id, 5, 5)
        assert not self.workspace.on_node_click(self.node.id)
        assert self.node.position == Position(0, 0)
        assert self.selection.active_id is None

    def test_delete_tool_click_removes(self):
        self.workspace.set_tool(WorkspaceTool.DELETE)
        assert self.workspace.on_node_click(self.node.id)
        assert self.node.id not in self.workspace.graph

    def test_tool_switch_keeps_selection(self):
        self.workspace.focus(self.node.id)
        self.workspace.set_tool(WorkspaceTool.DELETE)
        assert self.selection.editor_id == self.node.id
        assert self.selection.active_id == self.node.id

    def test_editor_node_is_not_draggable(self):
        self.workspace.focus(self.node.id)
        assert not self.workspace.on_node_drag(self.node.id, 5, 5)

    def test_delete_key_removes_active(self):
        assert not self.workspace.on_delete_key()
        self.workspace.on_node_pointer_down(self.node.id)
        assert self.workspace.on_delete_key()
        assert len(self.workspace.graph) == 0


class TestSnapshot:

    def test_snapshot_excludes_working_transform_and_tool(self):
        workspace, scheduler = make_workspace()
        node = add_ready_variations(workspace)
        workspace.focus(node.id)
        workspace.set_tool(WorkspaceTool.GRAB)
        workspace.viewport.pan(3, 3)
        workspace.viewport.pan(3, 3)

        data = workspace.snapshot()

        assert data["workspaceTransform"] == workspace.viewport.persisted.to_dict()
        assert "workspaceTool" not in data
        assert data["editorId"] == node.id
        assert data["historyIndex"] == 0

        restored, _ = make_workspace()
        restored.load_snapshot(data)
        assert restored.graph.get(node.id) == node
        assert restored.viewport.working == workspace.viewport.persisted
        assert restored.selection.tool == WorkspaceTool.SELECT
        assert restored.history.entries == [FocusImage(node.id)]
