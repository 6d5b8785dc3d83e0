"""Camera pose resolution: where the camera is and where it looks at time t.

The pose is built either from look-at vectors (position, look_at, up,
handedness) or from an explicit camera-to-world matrix. In camera space the
camera looks down -Z with +X to the right and +Y up.

Animated cameras carry several motion keys spread uniformly over the motion
window. Keys are decomposed into translation, rotation and scale and
interpolated component-wise (rotations with quaternion slerp), which avoids
the shear that blending raw matrices introduces.

Example:
    >>> from src.python.camera.config import PerspCameraConfig
    >>> config = PerspCameraConfig.from_params({"position": (0, 0, 5), "look_at": (0, 0, 0)})
    >>> resolver = TransformResolver.from_config(config)
    >>> resolver.pose_at(0.0).forward
    array([ 0.,  0., -1.])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from src.python.camera.config import PerspCameraConfig, TransformConfig
from src.python.camera.errors import DegenerateBasis
from src.python.camera.shutter import ShutterSampler
from src.python.core.transform import (
    DEGENERATE_EPSILON,
    TransformComponents,
    compose_matrix,
    decompose_matrix,
    interpolate_components,
    normalize,
    perpendicular_vector,
    quat_from_rotation,
    quat_to_rotation,
)

logger = logging.getLogger(__name__)

Vec3 = npt.NDArray[np.float64]

MIRROR_X = np.diag([-1.0, 1.0, 1.0, 1.0])


@dataclass(frozen=True, eq=False)
class CameraPose:
    """Camera position and orthonormal frame in world space.

    Attributes:
        position: Camera position.
        forward: Viewing direction.
        right: Image-plane right direction.
        up: Image-plane up direction.
    """

    position: Vec3
    forward: Vec3
    right: Vec3
    up: Vec3

    @property
    def matrix(self) -> npt.NDArray[np.float64]:
        """Rigid camera-to-world matrix (camera looks down -Z)."""
        m = np.eye(4, dtype=np.float64)
        m[:3, 0] = self.right
        m[:3, 1] = self.up
        m[:3, 2] = -self.forward
        m[:3, 3] = self.position
        return m

    def to_world(self, v: npt.ArrayLike) -> Vec3:
        """Transform a camera-space direction to world space."""
        x, y, z = np.asarray(v, dtype=np.float64)
        return self.right * x + self.up * y - self.forward * z

    def point_to_world(self, p: npt.ArrayLike) -> Vec3:
        """Transform a camera-space point to world space."""
        return self.position + self.to_world(p)


def look_at_frame(
    position: npt.ArrayLike,
    look_at: npt.ArrayLike,
    up: npt.ArrayLike,
    handedness: str = "right",
) -> tuple[Vec3, Vec3, Vec3]:
    """Build the (forward, right, up) frame of a look-at camera.

    Raises:
        DegenerateBasis: If look_at coincides with position or up is parallel
            to the viewing direction.
    """
    position = np.asarray(position, dtype=np.float64)
    look_at = np.asarray(look_at, dtype=np.float64)

    view = look_at - position
    if np.linalg.norm(view) < DEGENERATE_EPSILON:
        raise DegenerateBasis(f"look_at {look_at.tolist()} coincides with position")
    forward = view / np.linalg.norm(view)

    side = np.cross(forward, np.asarray(up, dtype=np.float64))
    if np.linalg.norm(side) < 1e-9:
        raise DegenerateBasis(f"up {list(up)} is parallel to the viewing direction")
    right = side / np.linalg.norm(side)
    true_up = np.cross(right, forward)
    if handedness == "left":
        right = -right
    return forward, right, true_up


def resolve_look_at_frame(
    position: npt.ArrayLike,
    look_at: npt.ArrayLike,
    up: npt.ArrayLike,
    handedness: str = "right",
) -> tuple[Vec3, Vec3, Vec3]:
    """Like ``look_at_frame`` but recovers from degenerate input.

    A camera whose look_at equals its position looks down -Z; an up vector
    parallel to the view is replaced by an arbitrary perpendicular one.
    """
    try:
        return look_at_frame(position, look_at, up, handedness)
    except DegenerateBasis as exc:
        logger.warning("Degenerate camera basis (%s); using a fallback frame", exc)

    forward = normalize(np.asarray(look_at, dtype=np.float64) - np.asarray(position, dtype=np.float64))
    if not np.any(forward):
        forward = np.array([0.0, 0.0, -1.0])
    up_hint = np.asarray(up, dtype=np.float64)
    if np.linalg.norm(np.cross(forward, up_hint)) < 1e-9:
        up_hint = perpendicular_vector(forward)
    return look_at_frame(np.zeros(3), forward, up_hint, handedness)


class TransformResolver:
    """Evaluate the camera pose at arbitrary times.

    Attributes:
        keys: Decomposed motion keys (at least one).
        mirror: -1.0 when the right axis is mirrored (left-handed frame).
        sampler: Shutter sampler providing the motion window clamp.
    """

    def __init__(
        self,
        keys: list[TransformComponents],
        mirror: float,
        sampler: ShutterSampler,
        static_pose: CameraPose | None = None,
    ) -> None:
        self.keys = keys
        self.mirror = mirror
        self.sampler = sampler
        self._static_pose = static_pose

    @classmethod
    def from_config(cls, config: PerspCameraConfig, sampler: ShutterSampler | None = None) -> TransformResolver:
        """Build a resolver from a validated snapshot."""
        if sampler is None:
            sampler = ShutterSampler(config.shutter, config.motion)
        transform = config.transform
        if transform.uses_matrix:
            return cls._from_matrices(transform, sampler)
        return cls._from_look_at(transform, sampler)

    @classmethod
    def _from_matrices(cls, transform: TransformConfig, sampler: ShutterSampler) -> TransformResolver:
        matrices = [np.asarray(m, dtype=np.float64) for m in transform.matrix]
        # A mirroring matrix keeps a proper rotation once its x axis is flipped
        mirror = -1.0 if np.linalg.det(matrices[0][:3, :3]) < 0.0 else 1.0
        if mirror < 0.0:
            matrices = [m @ MIRROR_X for m in matrices]
        keys = [decompose_matrix(m) for m in matrices]
        return cls(keys, mirror, sampler)

    @classmethod
    def _from_look_at(cls, transform: TransformConfig, sampler: ShutterSampler) -> TransformResolver:
        num_keys = max(len(transform.position), len(transform.look_at), len(transform.up))

        def key(values: tuple, i: int) -> Vec3:
            return np.asarray(values[i if len(values) > 1 else 0], dtype=np.float64)

        keys = []
        frames = []
        for i in range(num_keys):
            position = key(transform.position, i)
            forward, right, up = resolve_look_at_frame(
                position, key(transform.look_at, i), key(transform.up, i)
            )
            frames.append((position, forward, right, up))
            rotation = np.column_stack([right, up, -forward])
            keys.append(TransformComponents(position, quat_from_rotation(rotation), np.eye(3)))

        mirror = -1.0 if transform.handedness == "left" else 1.0
        static_pose = None
        if num_keys == 1:
            position, forward, right, up = frames[0]
            static_pose = CameraPose(position, forward, mirror * right, up)
        return cls(keys, mirror, sampler, static_pose)

    @property
    def num_keys(self) -> int:
        return len(self.keys)

    def _components_at(self, t: float) -> tuple[Vec3, npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        if self.num_keys == 1:
            k = self.keys[0]
            return k.translation, k.rotation, k.scale
        index, fraction = self.sampler.motion_key(t, self.num_keys)
        return interpolate_components(self.keys[index], self.keys[index + 1], fraction)

    def pose_at(self, t: float) -> CameraPose:
        """Camera pose at scene time ``t`` (clamped into the motion window)."""
        if self._static_pose is not None:
            return self._static_pose
        translation, rotation, _ = self._components_at(t)
        r = quat_to_rotation(rotation)
        return CameraPose(
            position=np.asarray(translation, dtype=np.float64),
            forward=-r[:, 2],
            right=self.mirror * r[:, 0],
            up=r[:, 1],
        )

    def matrix_at(self, t: float) -> npt.NDArray[np.float64]:
        """Full camera-to-world matrix at time ``t``, including scale."""
        m = compose_matrix(*self._components_at(t))
        if self.mirror < 0.0:
            m = m @ MIRROR_X
        return m
