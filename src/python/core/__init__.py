"""Core building blocks shared by the camera model.

Components:
    ray: Ray data structure and vector helpers usable inside Taichi kernels
    transform: Host-side (NumPy) rigid transform construction, matrix
        decomposition and quaternion interpolation

The ray helpers are Taichi functions and need ``ti.init()`` to have been
called before a kernel using them runs. The transform helpers are plain NumPy
and can be used anywhere.
"""

from .ray import (
    Ray,
    length_squared,
    make_ray,
    normalize_or,
    quat_rotate,
    quat_slerp,
    ray_at,
    vec2,
    vec3,
    vec4,
)

__all__ = [
    "Ray",
    "ray_at",
    "make_ray",
    "vec2",
    "vec3",
    "vec4",
    "length_squared",
    "normalize_or",
    "quat_rotate",
    "quat_slerp",
]
