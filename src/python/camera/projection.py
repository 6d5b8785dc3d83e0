"""Projection mapping from image samples to camera-space directions.

A pixel sample (u, v) in [0, 1]^2 (u left to right, v bottom to top) goes
through these steps before it becomes a direction:

1. ``remap_pixel``: optional uv remap, ``uv + w * ((r, g) - uv)`` for a remap
   value (r, g, b, w). The zero vector leaves the sample untouched.
2. ``pixel_to_screen``: the unit square is stretched over the screen window.
   Screen coordinate +-1 is the edge of the field of view.
3. ``distort_screen``: quadratic radial distortion
   ``s * (1 + k * |s|^2)``; positive k gives pincushion, negative barrel.
4. ``screen_to_camera``: the screen point is placed on the image plane at
   unit distance in front of the camera (camera looks down -Z) and the
   direction through it is normalized.

The half extent of the image plane is ``tan(fov / 2)``. With
``plane_distance`` enabled it is additionally scaled by the focus distance.
"""

import math

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.python.camera.config import LensConfig, ProjectionConfig
from src.python.core.ray import vec2, vec3, vec4


def effective_focus_distance(projection: ProjectionConfig, lens: LensConfig) -> float:
    """Focus distance clamped so the focal surface is never inside the near plane."""
    return max(lens.focus_distance, projection.near_clip)


def half_extent(projection: ProjectionConfig, lens: LensConfig) -> float:
    """Horizontal half extent of the image plane at unit distance.

    Args:
        projection: Projection parameters (fov, plane_distance).
        lens: Lens parameters (focus_distance).

    Returns:
        tan(fov / 2), scaled by the focus distance when plane_distance is on.
    """
    h = math.tan(math.radians(projection.fov) / 2.0)
    if projection.plane_distance:
        h *= effective_focus_distance(projection, lens)
    return h


def camera_dir_to_screen(
    direction: npt.ArrayLike, h: float, aspect_ratio: float
) -> tuple[float, float] | None:
    """Inverse of the undistorted projection for a camera-space direction.

    Args:
        direction: Camera-space direction (camera looks down -Z).
        h: Half extent of the image plane.
        aspect_ratio: Image width divided by height.

    Returns:
        Screen coordinate, or None for directions that do not point forward.
    """
    x, y, z = np.asarray(direction, dtype=np.float64)
    if z >= 0.0:
        return None
    x, y = x / -z, y / -z
    return x / h, y * aspect_ratio / h


def screen_to_pixel(
    screen: tuple[float, float],
    window_min: tuple[float, float],
    window_max: tuple[float, float],
) -> tuple[float, float]:
    """Map a screen coordinate back into the unit pixel square of the window."""
    return (
        (screen[0] - window_min[0]) / (window_max[0] - window_min[0]),
        (screen[1] - window_min[1]) / (window_max[1] - window_min[1]),
    )


# =============================================================================
# Device-side functions (Taichi)
# =============================================================================


@ti.func
def remap_pixel(pixel: vec2, remap: vec4) -> vec2:
    """Blend the pixel sample toward the remap target by the remap weight."""
    return pixel + remap.w * (vec2(remap.x, remap.y) - pixel)


@ti.func
def pixel_to_screen(pixel: vec2, window_min: vec2, window_max: vec2) -> vec2:
    """Stretch a unit-square pixel sample over the screen window."""
    return window_min + pixel * (window_max - window_min)


@ti.func
def distort_screen(s: vec2, k: ti.f32) -> vec2:
    """Quadratic radial distortion of a screen coordinate."""
    return s * (1.0 + k * tm.dot(s, s))


@ti.func
def screen_to_camera(s: vec2, h: ti.f32, aspect_ratio: ti.f32) -> vec3:
    """Camera-space unit direction through a screen coordinate.

    Args:
        s: Screen coordinate (+-1 at the field of view edge).
        h: Horizontal half extent of the image plane.
        aspect_ratio: Image width divided by height.
    """
    return tm.normalize(vec3(s.x * h, s.y * h / aspect_ratio, -1.0))
