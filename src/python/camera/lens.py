"""Thin-lens sampling for depth of field.

The lens is modelled as an aperture of radius ``aperture_size`` centered on
the camera position and lying in the image plane (spanned by the camera's
right and up vectors). Every primary ray starts at a point on the aperture
and passes through the point where the corresponding pinhole ray meets the
focal surface, so geometry on that surface stays sharp and everything else
blurs in proportion to its distance from it.

Aperture shapes are built from composable pieces, each mapping a unit-square
sample or an aperture point to another aperture point:

    concentric_disk      -> uniform disk (aperture_blades == 0)
    sample_polygon       -> uniform regular polygon (aperture_blades >= 3)
    bow_blade_edges      -> push polygon edges toward the circumscribed circle,
                            area-preserving so samples stay uniform
    stretch_aperture     -> anisotropic (anamorphic) vertical scale

The focal surface is either a plane perpendicular to the optical axis
(``flat_field_focus``) or a sphere around the camera.
"""

import math

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.python.core.ray import normalize_or, vec2, vec3

# Cosines below this are treated as perpendicular to the optical axis
MIN_FOCUS_COSINE = 1e-6

# Enough halvings of a blade sector to reach f32 resolution
BOW_BISECTION_STEPS = 24


def aperture_vertices(blades: int, rotation_degrees: float) -> npt.NDArray[np.float64]:
    """Vertices of the unit-circumradius aperture polygon.

    Args:
        blades: Number of aperture blades (at least 3).
        rotation_degrees: Rotation of the first vertex from the +x axis.

    Returns:
        Array of shape (blades, 2).
    """
    angles = math.radians(rotation_degrees) + 2.0 * math.pi * np.arange(blades) / blades
    return np.stack([np.cos(angles), np.sin(angles)], axis=1)


def circle_of_confusion(aperture_size: float, focus_distance: float, depth: float) -> float:
    """Radius of the blur disk for a point at ``depth`` on the optical axis.

    Measured on the plane at ``depth`` for a flat-field thin lens.
    """
    return aperture_size * abs(depth - focus_distance) / focus_distance


# =============================================================================
# Device-side functions (Taichi)
# =============================================================================


@ti.func
def concentric_disk(u: vec2) -> vec2:
    """Map a unit-square sample to the unit disk (Shirley-Chiu concentric map)."""
    offset = 2.0 * u - 1.0
    result = vec2(0.0, 0.0)
    if offset.x != 0.0 or offset.y != 0.0:
        r = 0.0
        theta = 0.0
        if ti.abs(offset.x) > ti.abs(offset.y):
            r = offset.x
            theta = (tm.pi / 4.0) * (offset.y / offset.x)
        else:
            r = offset.y
            theta = tm.pi / 2.0 - (tm.pi / 4.0) * (offset.x / offset.y)
        result = r * vec2(ti.cos(theta), ti.sin(theta))
    return result


@ti.func
def sample_polygon(u: vec2, blades: ti.i32, rotation: ti.f32) -> vec2:
    """Uniformly sample a regular polygon with unit circumradius.

    The polygon is split into ``blades`` congruent triangles around the
    center; ``u.x`` picks the triangle and is reused for the radial
    coordinate inside it.

    Args:
        u: Unit-square sample.
        blades: Number of polygon sides (at least 3).
        rotation: Angle of the first vertex in radians.
    """
    n = ti.cast(blades, ti.f32)
    scaled = u.x * n
    tri = ti.min(ti.floor(scaled), n - 1.0)
    radial = ti.sqrt(ti.min(scaled - tri, 1.0))
    step = 2.0 * tm.pi / n
    a0 = rotation + tri * step
    a1 = a0 + step
    v0 = vec2(ti.cos(a0), ti.sin(a0))
    v1 = vec2(ti.cos(a1), ti.sin(a1))
    return radial * ((1.0 - u.y) * v0 + u.y * v1)


@ti.func
def blade_sector_area(psi: ti.f32, half: ti.f32, curvature: ti.f32) -> ti.f32:
    """Twice the area of a bowed blade sector between its bisector and ``psi``.

    The sector boundary is ``R = (1 - c) * e + c`` with the straight edge
    ``e = cos(half) / cos(psi)``; this integrates ``R**2`` from 0 to ``psi``.
    Odd and increasing in ``psi``.
    """
    a = 1.0 - curvature
    apothem = ti.cos(half)
    straight = apothem * apothem * ti.tan(psi)
    secant = apothem * ti.log((1.0 + ti.sin(psi)) / ti.cos(psi))
    return a * a * straight + 2.0 * a * curvature * secant + curvature * curvature * psi


@ti.func
def bow_blade_edges(p: vec2, blades: ti.i32, rotation: ti.f32, curvature: ti.f32) -> vec2:
    """Bow the edges of a polygon aperture point toward the circumscribed circle.

    Straight edges stay put at curvature 0 and become the unit circle at
    curvature 1. The point keeps its fraction of the way from the center to
    the boundary, and its angle inside the blade sector is warped so that
    equal areas of the polygon map to equal areas of the bowed shape. A
    uniform polygon sample therefore stays uniform.
    """
    result = p
    if blades >= 3 and curvature > 0.0:
        n = ti.cast(blades, ti.f32)
        half = tm.pi / n
        step = 2.0 * half
        phi = ti.atan2(p.y, p.x) - rotation
        sector = ti.floor(phi / step)
        local = phi - sector * step - half
        edge = ti.cos(half) / ti.cos(local)
        fraction = p.norm() / edge

        # Share of the polygon sector swept from its first vertex to the point
        tan_half = ti.tan(half)
        area = (ti.tan(local) + tan_half) / (2.0 * tan_half)

        # Invert the bowed sector's area fraction by bisection
        total = blade_sector_area(half, half, curvature)
        goal = (2.0 * area - 1.0) * total
        lo = -half
        hi = half
        for _ in range(BOW_BISECTION_STEPS):
            mid = 0.5 * (lo + hi)
            if blade_sector_area(mid, half, curvature) < goal:
                lo = mid
            else:
                hi = mid
        psi = 0.5 * (lo + hi)

        bowed = (1.0 - curvature) * ti.cos(half) / ti.cos(psi) + curvature
        angle = rotation + sector * step + half + psi
        result = fraction * bowed * vec2(ti.cos(angle), ti.sin(angle))
    return result


@ti.func
def stretch_aperture(p: vec2, aspect_ratio: ti.f32) -> vec2:
    """Scale the vertical axis of an aperture point."""
    return vec2(p.x, p.y * aspect_ratio)


@ti.func
def sample_aperture(
    u: vec2, blades: ti.i32, rotation: ti.f32, curvature: ti.f32, aspect_ratio: ti.f32
) -> vec2:
    """Sample the unit-size aperture shape.

    Args:
        u: Unit-square lens sample.
        blades: 0 for a circular aperture, otherwise the polygon side count.
        rotation: Polygon rotation in radians.
        curvature: Blade curvature in [0, 1].
        aspect_ratio: Vertical stretch.
    """
    p = vec2(0.0, 0.0)
    if blades >= 3:
        p = bow_blade_edges(sample_polygon(u, blades, rotation), blades, rotation, curvature)
    else:
        p = concentric_disk(u)
    return stretch_aperture(p, aspect_ratio)


@ti.func
def focus_point(origin: vec3, direction: vec3, forward: vec3, focus_distance: ti.f32, flat_field: ti.i32) -> vec3:
    """Point where a pinhole ray meets the focal surface.

    With a flat field the distance along the ray is divided by the cosine to
    the optical axis so the point lies on the focal plane; otherwise it lies
    on a sphere of radius ``focus_distance`` around the camera.
    """
    distance = focus_distance
    if flat_field != 0:
        cos_theta = tm.dot(direction, forward)
        if cos_theta > MIN_FOCUS_COSINE:
            distance = focus_distance / cos_theta
    return origin + direction * distance


@ti.func
def perturb(
    origin: vec3,
    direction: vec3,
    forward: vec3,
    right: vec3,
    up: vec3,
    focus_distance: ti.f32,
    flat_field: ti.i32,
    lens_point: vec2,
):
    """Move a pinhole ray onto the lens and aim it at its focus point.

    Args:
        origin: Pinhole ray origin (camera position).
        direction: Pinhole ray unit direction.
        forward: Optical axis.
        right: Camera right vector.
        up: Camera up vector.
        focus_distance: Distance to the focal surface.
        flat_field: Nonzero for a planar focal surface.
        lens_point: Aperture point already scaled by the aperture size.

    Returns:
        Tuple of (new_origin, new_direction).
    """
    target = focus_point(origin, direction, forward, focus_distance, flat_field)
    new_origin = origin + right * lens_point.x + up * lens_point.y
    new_direction = normalize_or(target - new_origin, forward)
    return new_origin, new_direction
