"""Ray data structure and vector utilities for camera ray generation.

This module provides the Ray dataclass emitted by the camera and the small
set of vector helpers the camera kernels share. All operations are designed
to work within Taichi kernels for parallel evaluation.

A camera ray carries, besides origin and direction, the absolute scene time
it was sampled at and the parametric interval [t_min, t_max] derived from
the near and far clipping planes.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> origin = ti.math.vec3(0.0, 0.0, 0.0)
    >>> direction = ti.math.vec3(0.0, 0.0, -1.0)
    >>> ray = make_ray(origin, direction, 0.5, 0.1, 100.0)
    >>> point = ray_at(ray, 5.0)  # Point 5 units along the ray
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec2 = tm.vec2
vec3 = tm.vec3
vec4 = tm.vec4

# Below this length a vector is treated as degenerate
DEGENERATE_EPSILON = 1e-12


@ti.dataclass
class Ray:
    """A camera ray.

    Attributes:
        origin: The starting point of the ray in world space (vec3).
        direction: The unit direction of the ray in world space (vec3).
        time: Absolute scene time the ray samples.
        t_min: Parametric distance of the near clipping plane along the ray.
        t_max: Parametric distance of the far clipping plane along the ray.
    """

    origin: vec3
    direction: vec3
    time: ti.f32
    t_min: ti.f32
    t_max: ti.f32


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point along the ray at parameter t.

    Args:
        ray: The ray to evaluate.
        t: The parameter value. Positive values are in front of the origin.

    Returns:
        The point ray.origin + t * ray.direction.
    """
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3, time: ti.f32, t_min: ti.f32, t_max: ti.f32) -> Ray:
    """Create a ray from its components.

    Args:
        origin: The starting point of the ray.
        direction: The direction vector (should be normalized).
        time: Scene time of the sample.
        t_min: Near clip distance along the ray.
        t_max: Far clip distance along the ray.

    Returns:
        A new Ray instance.
    """
    return Ray(origin=origin, direction=direction, time=time, t_min=t_min, t_max=t_max)


# =============================================================================
# Vector Utility Functions
# =============================================================================


@ti.func
def length_squared(v: vec3) -> ti.f32:
    """Compute the squared length of a vector."""
    return tm.dot(v, v)


@ti.func
def normalize_or(v: vec3, fallback: vec3) -> vec3:
    """Normalize a vector, returning ``fallback`` if it has zero length.

    Args:
        v: The input vector.
        fallback: Unit vector returned for degenerate input.

    Returns:
        A unit vector in the direction of v, or fallback.
    """
    result = fallback
    len_sq = length_squared(v)
    if len_sq > DEGENERATE_EPSILON:
        result = v / ti.sqrt(len_sq)
    return result


@ti.func
def quat_rotate(q: vec4, v: vec3) -> vec3:
    """Rotate a vector by a unit quaternion stored as (x, y, z, w).

    Args:
        q: Unit quaternion (x, y, z, w).
        v: Vector to rotate.

    Returns:
        The rotated vector.
    """
    u = vec3(q.x, q.y, q.z)
    t = 2.0 * tm.cross(u, v)
    return v + q.w * t + tm.cross(u, t)


@ti.func
def quat_slerp(a: vec4, b: vec4, t: ti.f32) -> vec4:
    """Spherical linear interpolation between unit quaternions.

    Takes the shortest arc and falls back to normalized linear interpolation
    when the quaternions are nearly parallel.
    """
    target = b
    cos_theta = tm.dot(a, b)
    if cos_theta < 0.0:
        target = -b
        cos_theta = -cos_theta
    result = vec4(0.0)
    if cos_theta > 0.9995:
        result = tm.normalize(a + (target - a) * t)
    else:
        theta = ti.acos(ti.min(cos_theta, 1.0))
        theta_t = theta * t
        perp = tm.normalize(target - a * cos_theta)
        result = a * ti.cos(theta_t) + perp * ti.sin(theta_t)
    return result
