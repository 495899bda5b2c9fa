import pytest

from imagecanvas.core.Viewport import (
    MAX_SCALE,
    MIN_SCALE,
    Transform,
    ViewportController,
    WheelInput,
    clamp_scale,
    normalize_wheel,
    pointer_anchor_offset,
    zoom_sensitivity,
    zoom_transform,
)

from helpers import FakeClock, ManualScheduler


class TestZoomMath:

    def test_sensitivity_reference_points(self):
        assert zoom_sensitivity(MIN_SCALE) == pytest.approx(1.0)
        assert zoom_sensitivity(MAX_SCALE) == pytest.approx(3.0)

    def test_clamp(self):
        assert clamp_scale(0.01) == MIN_SCALE
        assert clamp_scale(12) == MAX_SCALE
        assert clamp_scale(2.5) == 2.5

    def test_center_anchor_has_no_pointer_term(self):
        assert pointer_anchor_offset(0.0, 0.0, 0.4, 1500, 1000, 1.0) == (0, 0)

    def test_zoom_in_at_center(self):
        result = zoom_transform(Transform(100, -50, 1), 0.1, 750, 500, 1500, 1000)
        expected_scale = 1 + 0.1 * zoom_sensitivity(1) * 1.3
        assert result.scale == pytest.approx(expected_scale)
        ratio = expected_scale - 1
        assert result.x == pytest.approx(100 + 100 * ratio)
        assert result.y == pytest.approx(-50 - 50 * ratio)

    def test_zoom_off_center_shifts_towards_pointer(self):
        centered = zoom_transform(Transform(0, 0, 1), 0.1, 750, 500, 1500, 1000)
        left = zoom_transform(Transform(0, 0, 1), 0.1, 0, 500, 1500, 1000)
        assert centered.x == pytest.approx(0)
        assert left.x > 0
        assert left.y == pytest.approx(0)

    def test_zoom_at_limit_is_noop(self):
        assert zoom_transform(Transform(0, 0, MAX_SCALE), 0.1, 0, 0, 1500, 1000) is None
        assert zoom_transform(Transform(0, 0, MIN_SCALE), -0.1, 0, 0, 1500, 1000) is None


class TestNormalizeWheel:

    def test_plain_wheel_pans(self):
        delta = normalize_wheel(WheelInput(delta_x=4, delta_y=-7))
        assert (delta.x, delta.y, delta.z) == (-4, 7, 0)

    def test_modifier_wheel_zooms_with_step_limit(self):
        delta = normalize_wheel(WheelInput(delta_y=50, ctrl_key=True))
        assert delta.z == pytest.approx(-0.1)
        delta = normalize_wheel(WheelInput(delta_y=-3, meta_key=True))
        assert delta.z == pytest.approx(0.03)

    def test_shift_maps_vertical_to_horizontal_off_mac(self):
        delta = normalize_wheel(WheelInput(delta_y=12, shift_key=True, platform="Win32"))
        assert (delta.x, delta.y) == (-12, 0)
        delta = normalize_wheel(WheelInput(delta_y=12, shift_key=True, platform="MacIntel"))
        assert (delta.x, delta.y) == (0, -12)


class TestViewportController:

    def setup_method(self):
        self.clock = FakeClock()
        self.scheduler = ManualScheduler(self.clock)
        self.viewport = ViewportController(clock=self.clock, scheduler=self.scheduler)
        self.commits = []
        self.viewport.on_commit(self.commits.append)

    def test_gesture_commits_leading_and_trailing(self):
        self.viewport.pan(10, 0)
        assert self.viewport.persisted == Transform(10, 0, 1)

        self.clock.advance(0.01)
        self.viewport.pan(5, 5)
        self.viewport.pan(1, 1)
        assert self.viewport.working == Transform(16, 6, 1)
        assert self.viewport.persisted == Transform(10, 0, 1)

        self.scheduler.advance(0.05)
        assert self.viewport.persisted == Transform(16, 6, 1)
        assert self.commits == [Transform(10, 0, 1), Transform(16, 6, 1)]

    def test_immediate_commit_drops_pending_gesture(self):
        self.viewport.pan(10, 0)
        self.viewport.pan(10, 0)
        self.viewport.transform(0, 0, 2, immediate=True)
        self.scheduler.advance(1)
        assert self.viewport.working == Transform(0, 0, 2)
        assert self.viewport.persisted == Transform(0, 0, 2)

    def test_transform_clamps_scale(self):
        self.viewport.transform(scale=9, immediate=True)
        assert self.viewport.persisted.scale == MAX_SCALE

    def test_smooth_transform_settles(self):
        self.viewport.smooth_transform(x=-100, y=-100, scale=1.5)
        assert self.viewport.animating
        assert self.viewport.persisted == Transform(-100, -100, 1.5)
        self.scheduler.advance(0.2)
        assert self.viewport.animating
        self.scheduler.advance(0.25)
        assert not self.viewport.animating

    def test_smooth_transform_without_scheduler_settles_at_once(self):
        viewport = ViewportController(scheduler=lambda delay, cb: None)
        viewport.smooth_transform(x=1)
        assert not viewport.animating

    def test_zoom_returns_false_when_unchanged(self):
        self.viewport.transform(scale=MAX_SCALE, immediate=True)
        assert not self.viewport.zoom(0.1, 0, 0)
        assert self.viewport.zoom(-0.1, 0, 0)

    def test_restore_sets_both_copies(self):
        self.viewport.restore(Transform(3, 4, 20))
        assert self.viewport.working == self.viewport.persisted == Transform(3, 4, MAX_SCALE)
        assert self.viewport.distance_from_origin() == pytest.approx(5)

    def test_editor_scale_follows_viewport_size(self):
        assert self.viewport.editor_scale() == pytest.approx(1.6)
        self.viewport.set_viewport_size(750, 1000)
        assert self.viewport.editor_scale() == pytest.approx(0.8)
        self.viewport.set_viewport_size(1920, 1080)
        assert self.viewport.editor_scale() == pytest.approx(1.7)

    def test_invalid_viewport_size(self):
        with pytest.raises(ValueError):
            self.viewport.set_viewport_size(0, 100)
