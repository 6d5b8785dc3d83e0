"""Unit tests for the projection mapper.

Tests cover:
- Image plane half extent and the plane_distance convention
- uv remap, screen window mapping and radial distortion
- Screen to camera-space directions and the inverse mapping
"""

import math

import pytest
import taichi as ti

from src.python.camera.config import LensConfig, ProjectionConfig
from src.python.camera.projection import (
    camera_dir_to_screen,
    effective_focus_distance,
    half_extent,
    screen_to_pixel,
)


class TestHalfExtent:
    """Tests for the image plane size."""

    def test_without_plane_distance(self):
        """Test that h = tan(fov / 2) when plane_distance is off."""
        h = half_extent(ProjectionConfig(fov=90.0, plane_distance=False), LensConfig(focus_distance=3.0))
        assert h == pytest.approx(1.0)

    def test_with_plane_distance(self):
        """Test that plane_distance scales h by the focus distance."""
        h = half_extent(ProjectionConfig(fov=90.0, plane_distance=True), LensConfig(focus_distance=3.0))
        assert h == pytest.approx(3.0)

    def test_default_fov(self):
        """Test the default field of view."""
        h = half_extent(ProjectionConfig(), LensConfig())
        assert h == pytest.approx(math.tan(math.radians(54.43) / 2.0))

    def test_focus_clamped_to_near_clip(self):
        """Test that the focus distance never lies inside the near plane."""
        projection = ProjectionConfig(near_clip=0.5)
        assert effective_focus_distance(projection, LensConfig(focus_distance=0.1)) == 0.5
        assert effective_focus_distance(projection, LensConfig(focus_distance=2.0)) == 2.0


class TestInverseMapping:
    """Tests for the host-side inverse projection."""

    def test_forward_direction_is_center(self):
        """Test that the optical axis maps to the screen center."""
        assert camera_dir_to_screen((0.0, 0.0, -1.0), 1.0, 1.0) == (0.0, 0.0)

    def test_edge_of_fov(self):
        """Test that a 45 degree direction hits the edge of a 90 degree fov."""
        sx, sy = camera_dir_to_screen((1.0, 0.0, -1.0), 1.0, 1.0)
        assert sx == pytest.approx(1.0)
        assert sy == pytest.approx(0.0)

    def test_vertical_uses_aspect_ratio(self):
        """Test that the vertical extent is h / aspect_ratio."""
        sx, sy = camera_dir_to_screen((0.0, 0.5, -1.0), 1.0, 2.0)
        assert sy == pytest.approx(1.0)

    def test_behind_camera(self):
        """Test that directions not pointing forward have no projection."""
        assert camera_dir_to_screen((0.0, 0.0, 1.0), 1.0, 1.0) is None
        assert camera_dir_to_screen((1.0, 0.0, 0.0), 1.0, 1.0) is None

    def test_screen_to_pixel(self):
        """Test mapping screen coordinates into the window's unit square."""
        assert screen_to_pixel((-1.0, -1.0), (-1.0, -1.0), (1.0, 1.0)) == (0.0, 0.0)
        assert screen_to_pixel((0.0, 0.5), (-1.0, -1.0), (1.0, 1.0)) == (0.5, 0.75)
        assert screen_to_pixel((0.0, 0.0), (0.0, 0.0), (0.5, 0.5)) == (0.0, 0.0)


class TestRemapAndWindow:
    """Tests for uv remap and screen window mapping."""

    def test_zero_remap_is_identity(self):
        """Test that the zero remap vector leaves the sample unchanged."""
        from src.python.camera.projection import remap_pixel
        from src.python.core.ray import vec2, vec4

        result = ti.field(dtype=ti.math.vec2, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = remap_pixel(vec2(0.3, 0.7), vec4(0.0))

        test_kernel()
        assert abs(result[None][0] - 0.3) < 1e-6
        assert abs(result[None][1] - 0.7) < 1e-6

    def test_full_weight_remap(self):
        """Test that weight 1 replaces the sample with the target."""
        from src.python.camera.projection import remap_pixel
        from src.python.core.ray import vec2, vec4

        result = ti.field(dtype=ti.math.vec2, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = remap_pixel(vec2(0.3, 0.7), vec4(0.9, 0.1, 0.0, 1.0))

        test_kernel()
        assert abs(result[None][0] - 0.9) < 1e-6
        assert abs(result[None][1] - 0.1) < 1e-6

    def test_half_weight_remap(self):
        """Test that weight 0.5 lands halfway to the target."""
        from src.python.camera.projection import remap_pixel
        from src.python.core.ray import vec2, vec4

        result = ti.field(dtype=ti.math.vec2, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = remap_pixel(vec2(0.0, 1.0), vec4(1.0, 0.0, 0.5, 0.5))

        test_kernel()
        assert abs(result[None][0] - 0.5) < 1e-6
        assert abs(result[None][1] - 0.5) < 1e-6

    def test_pixel_to_screen(self):
        """Test that the unit square spans the screen window."""
        from src.python.camera.projection import pixel_to_screen
        from src.python.core.ray import vec2

        results = ti.field(dtype=ti.math.vec2, shape=3)

        @ti.kernel
        def test_kernel():
            lo = vec2(-1.0, -0.5)
            hi = vec2(1.0, 0.5)
            results[0] = pixel_to_screen(vec2(0.0, 0.0), lo, hi)
            results[1] = pixel_to_screen(vec2(0.5, 0.5), lo, hi)
            results[2] = pixel_to_screen(vec2(1.0, 1.0), lo, hi)

        test_kernel()
        assert abs(results[0][0] + 1.0) < 1e-6 and abs(results[0][1] + 0.5) < 1e-6
        assert abs(results[1][0]) < 1e-6 and abs(results[1][1]) < 1e-6
        assert abs(results[2][0] - 1.0) < 1e-6 and abs(results[2][1] - 0.5) < 1e-6


class TestRadialDistortion:
    """Tests for radial distortion."""

    def test_zero_distortion_is_identity(self):
        """Test that k = 0 leaves screen coordinates unchanged."""
        from src.python.camera.projection import distort_screen
        from src.python.core.ray import vec2

        result = ti.field(dtype=ti.math.vec2, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = distort_screen(vec2(0.8, -0.6), 0.0)

        test_kernel()
        assert result[None][0] == pytest.approx(0.8)
        assert result[None][1] == pytest.approx(-0.6)

    @pytest.mark.parametrize("k", [0.2, -0.2])
    def test_distortion_sign(self, k):
        """Test that positive k pushes points outward and negative k inward."""
        from src.python.camera.projection import distort_screen
        from src.python.core.ray import vec2

        result = ti.field(dtype=ti.math.vec2, shape=())

        @ti.kernel
        def test_kernel(k: ti.f32):
            result[None] = distort_screen(vec2(0.5, 0.0), k)

        test_kernel(k)
        assert abs(result[None][0] - 0.5 * (1.0 + k * 0.25)) < 1e-6
        assert abs(result[None][1]) < 1e-6

    def test_center_unaffected(self):
        """Test that the screen center never moves."""
        from src.python.camera.projection import distort_screen
        from src.python.core.ray import vec2

        result = ti.field(dtype=ti.math.vec2, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = distort_screen(vec2(0.0, 0.0), 5.0)

        test_kernel()
        assert result[None][0] == 0.0 and result[None][1] == 0.0


class TestScreenToCamera:
    """Tests for screen to camera-space directions."""

    def test_center_looks_down_negative_z(self):
        """Test that the screen center maps to -Z."""
        from src.python.camera.projection import screen_to_camera
        from src.python.core.ray import vec2

        result = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = screen_to_camera(vec2(0.0, 0.0), 1.0, 1.0)

        test_kernel()
        r = result[None]
        assert abs(r[0]) < 1e-6 and abs(r[1]) < 1e-6 and abs(r[2] + 1.0) < 1e-6

    def test_direction_is_unit(self):
        """Test that screen_to_camera returns unit vectors."""
        from src.python.camera.projection import screen_to_camera
        from src.python.core.ray import vec2

        result = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = screen_to_camera(vec2(0.7, -0.9), 1.3, 1.5).norm()

        test_kernel()
        assert abs(result[None] - 1.0) < 1e-6

    @pytest.mark.parametrize("s", [(0.5, 0.25), (-1.0, 1.0), (0.9, -0.3)])
    def test_inverse_round_trip(self, s):
        """Test that camera_dir_to_screen undoes screen_to_camera."""
        from src.python.camera.projection import screen_to_camera
        from src.python.core.ray import vec2

        h, aspect = 0.7, 1.5
        result = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel(sx: ti.f32, sy: ti.f32):
            result[None] = screen_to_camera(vec2(sx, sy), h, aspect)

        test_kernel(s[0], s[1])
        sx, sy = camera_dir_to_screen(result[None].to_numpy(), h, aspect)
        assert sx == pytest.approx(s[0], abs=1e-5)
        assert sy == pytest.approx(s[1], abs=1e-5)
