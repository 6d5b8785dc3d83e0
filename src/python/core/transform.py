"""Host-side rigid transform utilities.

NumPy helpers used while preparing a camera snapshot: building orthonormal
frames, decomposing 4x4 matrices into translation/rotation/scale and
interpolating those components over time.

Matrices use the column-vector convention: a point p is transformed as
``M @ [p, 1]`` and the translation lives in ``M[:3, 3]``. Quaternions are
stored as (x, y, z, w) to match the device-side ``quat_rotate``.

Interpolating decomposed components instead of raw matrix entries keeps
in-between transforms free of shear:

    >>> a = decompose_matrix(np.eye(4))
    >>> quarter_turn = np.array([[0, 0, 1, 0], [0, 1, 0, 0], [-1, 0, 0, 0], [0, 0, 0, 1]])
    >>> b = decompose_matrix(quarter_turn)
    >>> m = compose_matrix(*interpolate_components(a, b, 0.5))
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

Vec3 = npt.NDArray[np.float64]
Quat = npt.NDArray[np.float64]
Mat3 = npt.NDArray[np.float64]
Mat4 = npt.NDArray[np.float64]

# Convergence threshold and iteration cap for the polar decomposition
POLAR_TOLERANCE = 1e-10
POLAR_MAX_ITERATIONS = 100

# Below this length a vector is treated as degenerate
DEGENERATE_EPSILON = 1e-12


@dataclass(frozen=True)
class TransformComponents:
    """A 4x4 transform split into translation, rotation and scale.

    Attributes:
        translation: Translation vector (3,).
        rotation: Unit quaternion (x, y, z, w).
        scale: Symmetric stretch matrix (3, 3) left after removing rotation.
    """

    translation: Vec3
    rotation: Quat
    scale: Mat3


def normalize(v: npt.ArrayLike) -> Vec3:
    """Normalize a vector, returning a zero vector for degenerate input."""
    v = np.asarray(v, dtype=np.float64)
    norm = float(np.linalg.norm(v))
    if norm < DEGENERATE_EPSILON:
        return np.zeros_like(v)
    return v / norm


def perpendicular_vector(v: npt.ArrayLike) -> Vec3:
    """Return an arbitrary unit vector perpendicular to ``v``.

    Uses the x axis as helper unless ``v`` is mostly aligned with it, in which
    case the y axis is used instead.
    """
    n = normalize(v)
    helper = np.array([1.0, 0.0, 0.0])
    if abs(n[0]) > 0.9:
        helper = np.array([0.0, 1.0, 0.0])
    return normalize(np.cross(helper, n))


# =============================================================================
# Quaternions
# =============================================================================


def quat_from_rotation(m: npt.ArrayLike) -> Quat:
    """Convert a proper 3x3 rotation matrix to a unit quaternion (x, y, z, w)."""
    m = np.asarray(m, dtype=np.float64)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = math.sqrt(trace + 1.0) * 2.0
        w = 0.25 * s
        x = (m[2, 1] - m[1, 2]) / s
        y = (m[0, 2] - m[2, 0]) / s
        z = (m[1, 0] - m[0, 1]) / s
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        w = (m[2, 1] - m[1, 2]) / s
        x = 0.25 * s
        y = (m[0, 1] + m[1, 0]) / s
        z = (m[0, 2] + m[2, 0]) / s
    elif m[1, 1] > m[2, 2]:
        s = math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        w = (m[0, 2] - m[2, 0]) / s
        x = (m[0, 1] + m[1, 0]) / s
        y = 0.25 * s
        z = (m[1, 2] + m[2, 1]) / s
    else:
        s = math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        w = (m[1, 0] - m[0, 1]) / s
        x = (m[0, 2] + m[2, 0]) / s
        y = (m[1, 2] + m[2, 1]) / s
        z = 0.25 * s
    q = np.array([x, y, z, w], dtype=np.float64)
    return q / np.linalg.norm(q)


def quat_to_rotation(q: npt.ArrayLike) -> Mat3:
    """Convert a unit quaternion (x, y, z, w) to a 3x3 rotation matrix."""
    x, y, z, w = (float(c) for c in q)
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ],
        dtype=np.float64,
    )


def quat_slerp(a: npt.ArrayLike, b: npt.ArrayLike, t: float) -> Quat:
    """Spherical linear interpolation along the shortest arc."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    cos_theta = float(np.dot(a, b))
    if cos_theta < 0.0:
        b = -b
        cos_theta = -cos_theta
    if cos_theta > 0.9995:
        return normalize(a + (b - a) * t)
    theta = math.acos(min(cos_theta, 1.0))
    perp = normalize(b - a * cos_theta)
    return a * math.cos(theta * t) + perp * math.sin(theta * t)


# =============================================================================
# Matrix decomposition
# =============================================================================


def is_identity(m: npt.ArrayLike, tolerance: float = 1e-12) -> bool:
    """Check whether a 4x4 matrix is the identity."""
    return bool(np.allclose(np.asarray(m, dtype=np.float64), np.eye(4), rtol=0.0, atol=tolerance))


def decompose_matrix(m: npt.ArrayLike) -> TransformComponents:
    """Split a 4x4 affine matrix into translation, rotation and scale.

    The upper 3x3 block is factored with an iterative polar decomposition
    ``M = R @ S``. Mirroring transforms are folded into ``S`` so that ``R``
    is always a proper rotation.

    Args:
        m: 4x4 affine matrix (column-vector convention).

    Returns:
        The decomposed components.

    Raises:
        np.linalg.LinAlgError: If the upper 3x3 block is singular.
    """
    m = np.asarray(m, dtype=np.float64)
    translation = m[:3, 3].copy()
    upper = m[:3, :3]

    r = upper.copy()
    for _ in range(POLAR_MAX_ITERATIONS):
        r_next = 0.5 * (r + np.linalg.inv(r.T))
        delta = float(np.max(np.sum(np.abs(r - r_next), axis=1)))
        r = r_next
        if delta < POLAR_TOLERANCE:
            break

    if np.linalg.det(r) < 0.0:
        r = -r
    scale = np.linalg.inv(r) @ upper
    return TransformComponents(translation, quat_from_rotation(r), scale)


def compose_matrix(translation: npt.ArrayLike, rotation: npt.ArrayLike, scale: npt.ArrayLike) -> Mat4:
    """Rebuild a 4x4 matrix from decomposed components."""
    m = np.eye(4, dtype=np.float64)
    m[:3, :3] = quat_to_rotation(rotation) @ np.asarray(scale, dtype=np.float64)
    m[:3, 3] = np.asarray(translation, dtype=np.float64)
    return m


def interpolate_components(
    a: TransformComponents, b: TransformComponents, t: float
) -> tuple[Vec3, Quat, Mat3]:
    """Interpolate two decomposed transforms.

    Translation and scale are interpolated linearly, rotation with slerp.

    Returns:
        Tuple of (translation, rotation, scale).
    """
    translation = (1.0 - t) * a.translation + t * b.translation
    rotation = quat_slerp(a.rotation, b.rotation, t)
    scale = (1.0 - t) * a.scale + t * b.scale
    return translation, rotation, scale
