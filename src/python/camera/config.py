"""Immutable parameter snapshots for the perspective camera.

A camera is configured from a flat mapping of node parameters (the names a
scene description uses, e.g. ``aperture_size`` or ``shutter_curve``). The
mapping is parsed once into a tree of frozen dataclasses and validated before
any ray is generated. Changing a parameter never mutates a snapshot; it
builds a new one:

    >>> config = PerspCameraConfig.from_params({"fov": 40.0, "aperture_size": 0.05})
    >>> wider = config.with_params(fov=60.0)
    >>> config.projection.fov, wider.projection.fov
    (40.0, 60.0)

Vector-valued transform parameters (``position``, ``look_at``, ``up`` and
``matrix``) accept either a single value or a sequence of motion keys spaced
uniformly over ``[motion_start, motion_end]``.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from src.python.camera.errors import (
    CameraConfigError,
    InvalidAperture,
    InvalidCurve,
    InvalidProjection,
    InvalidShutter,
)
from src.python.core.transform import is_identity

# Device-side storage limits (fields are preallocated to these sizes)
MAX_MOTION_KEYS = 16
MAX_CURVE_POINTS = 64

SHUTTER_TYPES = ("box", "triangle", "curve")
ROLLING_SHUTTER_MODES = ("off", "top", "bottom", "left", "right")
HANDEDNESS = ("right", "left")

IDENTITY_MATRIX = tuple(tuple(1.0 if i == j else 0.0 for j in range(4)) for i in range(4))

Vec2 = tuple[float, float]
Vec3 = tuple[float, float, float]
Vec4 = tuple[float, float, float, float]
Matrix4 = tuple[tuple[float, ...], ...]

# Renderer-supplied weighting callback, evaluated per pixel by the renderer
FilterMap = Callable[[tuple[float, float]], float]


# =============================================================================
# Parameter groups
# =============================================================================


@dataclass(frozen=True)
class TransformConfig:
    """Camera placement.

    Attributes:
        position: Motion keys of the camera position.
        look_at: Motion keys of the point the camera looks at.
        up: Motion keys of the up hint vector.
        handedness: "right" or "left"; left-handed cameras mirror the right axis.
        matrix: Motion keys of an explicit camera-to-world matrix. Takes
            precedence over the look-at vectors unless every key is identity.
    """

    position: tuple[Vec3, ...] = ((0.0, 0.0, 0.0),)
    look_at: tuple[Vec3, ...] = ((0.0, 0.0, -1.0),)
    up: tuple[Vec3, ...] = ((0.0, 1.0, 0.0),)
    handedness: str = "right"
    matrix: tuple[Matrix4, ...] = (IDENTITY_MATRIX,)

    @property
    def uses_matrix(self) -> bool:
        """Whether the explicit matrix overrides the look-at vectors."""
        return any(not is_identity(m) for m in self.matrix)

    def validate(self) -> None:
        if self.handedness not in HANDEDNESS:
            raise CameraConfigError(f"Unknown handedness: {self.handedness!r}")

        counts = {len(self.position), len(self.look_at), len(self.up)}
        counts.discard(1)
        if len(counts) > 1:
            raise CameraConfigError(
                "position, look_at and up must have the same number of motion keys "
                f"(got {len(self.position)}, {len(self.look_at)}, {len(self.up)})"
            )
        num_keys = max(len(self.position), len(self.look_at), len(self.up), len(self.matrix))
        if num_keys > MAX_MOTION_KEYS:
            raise CameraConfigError(f"Maximum number of motion keys ({MAX_MOTION_KEYS}) exceeded")

        for i, m in enumerate(self.matrix):
            if abs(np.linalg.det(np.asarray(m)[:3, :3])) < 1e-12:
                raise CameraConfigError(f"Camera matrix key {i} is singular")


@dataclass(frozen=True)
class MotionConfig:
    """Time window over which the camera transform keys are defined."""

    motion_start: float = 0.0
    motion_end: float = 0.0

    def validate(self) -> None:
        if not (math.isfinite(self.motion_start) and math.isfinite(self.motion_end)):
            raise InvalidShutter("motion_start and motion_end must be finite")
        if self.motion_start > self.motion_end:
            raise InvalidShutter(
                f"motion_start ({self.motion_start}) is after motion_end ({self.motion_end})"
            )


@dataclass(frozen=True)
class ShutterConfig:
    """Exposure interval and time-sampling density.

    Attributes:
        shutter_start: Absolute time the shutter opens.
        shutter_end: Absolute time the shutter closes.
        shutter_type: "box", "triangle" or "curve".
        shutter_curve: (time fraction, density) control points for "curve".
        rolling_shutter: Readout direction, or "off".
        rolling_shutter_duration: Fraction of the interval each scanline is
            exposed. Limited to [0, 1]: the readout blend
            ``f * (1 - d) + w * d`` leaves the shutter interval for d > 1.
    """

    shutter_start: float = 0.0
    shutter_end: float = 0.0
    shutter_type: str = "box"
    shutter_curve: tuple[Vec2, ...] = ()
    rolling_shutter: str = "off"
    rolling_shutter_duration: float = 0.0

    def validate(self) -> None:
        if not (math.isfinite(self.shutter_start) and math.isfinite(self.shutter_end)):
            raise InvalidShutter("shutter_start and shutter_end must be finite")
        if self.shutter_start > self.shutter_end:
            raise InvalidShutter(
                f"shutter_start ({self.shutter_start}) is after shutter_end ({self.shutter_end})"
            )
        if self.shutter_type not in SHUTTER_TYPES:
            raise InvalidShutter(f"Unknown shutter_type: {self.shutter_type!r}")
        if self.rolling_shutter not in ROLLING_SHUTTER_MODES:
            raise InvalidShutter(f"Unknown rolling_shutter mode: {self.rolling_shutter!r}")
        if not 0.0 <= self.rolling_shutter_duration <= 1.0:
            raise InvalidShutter(
                f"rolling_shutter_duration = {self.rolling_shutter_duration} is outside [0, 1]"
            )
        if self.shutter_type == "curve":
            validate_shutter_curve(self.shutter_curve)


@dataclass(frozen=True)
class ProjectionConfig:
    """Perspective projection.

    Attributes:
        fov: Horizontal field of view in degrees.
        aspect_ratio: Image width divided by height.
        screen_window_min: Lower-left corner of the visible screen window.
        screen_window_max: Upper-right corner of the visible screen window.
        near_clip: Distance of the near clipping plane.
        far_clip: Distance of the far clipping plane.
        plane_distance: Measure the field of view at the focus distance.
    """

    fov: float = 54.43
    aspect_ratio: float = 1.0
    screen_window_min: Vec2 = (-1.0, -1.0)
    screen_window_max: Vec2 = (1.0, 1.0)
    near_clip: float = 0.0001
    far_clip: float = 1.0e30
    plane_distance: bool = True

    def validate(self) -> None:
        if not 0.0 < self.fov < 180.0:
            raise InvalidProjection(f"fov = {self.fov} must be in (0, 180) degrees")
        if not self.aspect_ratio > 0.0:
            raise InvalidProjection(f"aspect_ratio = {self.aspect_ratio} must be positive")
        for axis in range(2):
            if not self.screen_window_min[axis] < self.screen_window_max[axis]:
                raise InvalidProjection(
                    f"screen_window_min {self.screen_window_min} must be below "
                    f"screen_window_max {self.screen_window_max}"
                )
        if self.near_clip < 0.0:
            raise InvalidProjection(f"near_clip = {self.near_clip} is negative")
        if not self.near_clip < self.far_clip:
            raise InvalidProjection(
                f"near_clip ({self.near_clip}) must be below far_clip ({self.far_clip})"
            )


@dataclass(frozen=True)
class LensConfig:
    """Thin-lens depth of field.

    Attributes:
        aperture_size: Lens radius; 0 disables depth of field.
        aperture_blades: 0 for a circular aperture, otherwise the polygon side count.
        aperture_rotation: Rotation of the aperture polygon in degrees.
        aperture_blade_curvature: 0 keeps straight blades, 1 gives a circle.
        aperture_aspect_ratio: Vertical stretch of the aperture.
        focus_distance: Distance to the in-focus surface.
        flat_field_focus: Focus on a plane instead of a sphere around the camera.
    """

    aperture_size: float = 0.0
    aperture_blades: int = 0
    aperture_rotation: float = 0.0
    aperture_blade_curvature: float = 0.0
    aperture_aspect_ratio: float = 1.0
    focus_distance: float = 1.0
    flat_field_focus: bool = True

    def validate(self) -> None:
        if self.aperture_size < 0.0:
            raise InvalidAperture(f"aperture_size = {self.aperture_size} is negative")
        if self.aperture_blades < 0 or self.aperture_blades in (1, 2):
            raise InvalidAperture(
                f"aperture_blades = {self.aperture_blades}; use 0 for a circle or at least 3"
            )
        if not 0.0 <= self.aperture_blade_curvature <= 1.0:
            raise InvalidAperture(
                f"aperture_blade_curvature = {self.aperture_blade_curvature} is outside [0, 1]"
            )
        if not self.aperture_aspect_ratio > 0.0:
            raise InvalidAperture(
                f"aperture_aspect_ratio = {self.aperture_aspect_ratio} must be positive"
            )
        if not self.focus_distance > 0.0:
            raise CameraConfigError(f"focus_distance = {self.focus_distance} must be positive")


@dataclass(frozen=True)
class DistortionConfig:
    """Screen-space distortion applied before projection.

    Attributes:
        radial_distortion: Quadratic radial coefficient (positive = pincushion).
        uv_remap: (u, v, unused, weight) remap target; zero is the identity.
    """

    radial_distortion: float = 0.0
    uv_remap: Vec4 = (0.0, 0.0, 0.0, 0.0)

    def validate(self) -> None:
        if not math.isfinite(self.radial_distortion):
            raise CameraConfigError("radial_distortion must be finite")


def validate_shutter_curve(curve: Sequence[Vec2]) -> None:
    """Check that a shutter curve describes a usable sampling density.

    Raises:
        InvalidCurve: If the curve is empty, has x values that are not strictly
            increasing or outside [0, 1], has negative densities or encloses
            no area.
    """
    if len(curve) < 2:
        raise InvalidCurve(f"shutter_curve needs at least 2 points, got {len(curve)}")
    if len(curve) > MAX_CURVE_POINTS:
        raise InvalidCurve(f"Maximum number of shutter curve points ({MAX_CURVE_POINTS}) exceeded")

    xs = [p[0] for p in curve]
    ys = [p[1] for p in curve]
    if any(x < 0.0 or x > 1.0 for x in xs):
        raise InvalidCurve(f"shutter_curve x values must lie in [0, 1]: {xs}")
    if any(b <= a for a, b in zip(xs, xs[1:])):
        raise InvalidCurve(f"shutter_curve x values are not strictly increasing: {xs}")
    if any(y < 0.0 for y in ys):
        raise InvalidCurve(f"shutter_curve densities must be non-negative: {ys}")

    area = sum(0.5 * (ys[i] + ys[i + 1]) * (xs[i + 1] - xs[i]) for i in range(len(xs) - 1))
    if area <= 0.0:
        raise InvalidCurve("shutter_curve encloses zero area")


# =============================================================================
# Full snapshot
# =============================================================================

# Which group each node parameter belongs to
PARAMETER_GROUPS: dict[str, str] = {
    **{f.name: "transform" for f in dataclasses.fields(TransformConfig)},
    **{f.name: "motion" for f in dataclasses.fields(MotionConfig)},
    **{f.name: "shutter" for f in dataclasses.fields(ShutterConfig)},
    **{f.name: "projection" for f in dataclasses.fields(ProjectionConfig)},
    **{f.name: "lens" for f in dataclasses.fields(LensConfig)},
    **{f.name: "distortion" for f in dataclasses.fields(DistortionConfig)},
}


@dataclass(frozen=True)
class PerspCameraConfig:
    """A validated, read-only snapshot of every perspective camera parameter."""

    transform: TransformConfig = field(default_factory=TransformConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    shutter: ShutterConfig = field(default_factory=ShutterConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    lens: LensConfig = field(default_factory=LensConfig)
    distortion: DistortionConfig = field(default_factory=DistortionConfig)
    filtermap: FilterMap | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Validate every parameter group.

        Raises:
            CameraConfigError: Or one of its subclasses for the offending group.
        """
        self.transform.validate()
        self.motion.validate()
        self.shutter.validate()
        self.projection.validate()
        self.lens.validate()
        self.distortion.validate()

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> PerspCameraConfig:
        """Assemble a snapshot from a flat mapping of node parameters.

        Parameters that are not present keep their defaults.

        Args:
            params: Parameter name to value. ``filtermap`` may hold a callable.

        Returns:
            The validated snapshot.

        Raises:
            CameraConfigError: If a parameter name is unknown or a value is invalid.
        """
        grouped: dict[str, dict[str, Any]] = {}
        filtermap = None
        for name, value in params.items():
            if name == "filtermap":
                filtermap = value
                continue
            group = PARAMETER_GROUPS.get(name)
            if group is None:
                raise CameraConfigError(f"Unknown camera parameter: {name!r}")
            grouped.setdefault(group, {})[name] = _coerce(name, value)

        return cls(
            transform=TransformConfig(**grouped.get("transform", {})),
            motion=MotionConfig(**grouped.get("motion", {})),
            shutter=ShutterConfig(**grouped.get("shutter", {})),
            projection=ProjectionConfig(**grouped.get("projection", {})),
            lens=LensConfig(**grouped.get("lens", {})),
            distortion=DistortionConfig(**grouped.get("distortion", {})),
            filtermap=filtermap,
        )

    def to_params(self) -> dict[str, Any]:
        """Flatten the snapshot back into node parameters."""
        params: dict[str, Any] = {}
        for group in ("transform", "motion", "shutter", "projection", "lens", "distortion"):
            params.update(dataclasses.asdict(getattr(self, group)))
        if self.filtermap is not None:
            params["filtermap"] = self.filtermap
        return params

    def with_params(self, **changes: Any) -> PerspCameraConfig:
        """Return a new snapshot with some parameters replaced."""
        params = self.to_params()
        params.update(changes)
        return PerspCameraConfig.from_params(params)


# =============================================================================
# Value coercion
# =============================================================================


def _vector(value: Any, size: int, name: str) -> tuple[float, ...]:
    arr = np.asarray(value, dtype=np.float64)
    if arr.shape != (size,):
        raise CameraConfigError(f"{name} must have {size} components, got shape {arr.shape}")
    return tuple(float(c) for c in arr)


def _keys(value: Any, size: int, name: str) -> tuple[tuple[float, ...], ...]:
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr[np.newaxis]
    if arr.ndim != 2 or arr.shape[1] != size or arr.shape[0] == 0:
        raise CameraConfigError(f"{name} must be a {size}-vector or a list of them")
    return tuple(tuple(float(c) for c in row) for row in arr)


def _matrix_keys(value: Any) -> tuple[Matrix4, ...]:
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 2:
        arr = arr[np.newaxis]
    if arr.ndim != 3 or arr.shape[1:] != (4, 4) or arr.shape[0] == 0:
        raise CameraConfigError("matrix must be a 4x4 matrix or a list of them")
    return tuple(tuple(tuple(float(c) for c in row) for row in m) for m in arr)


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw parameter value to the type its dataclass field expects."""
    if name in ("position", "look_at", "up"):
        return _keys(value, 3, name)
    if name == "matrix":
        return _matrix_keys(value)
    if name in ("screen_window_min", "screen_window_max"):
        return _vector(value, 2, name)
    if name == "uv_remap":
        return _vector(value, 4, name)
    if name == "shutter_curve":
        return tuple(_vector(p, 2, name) for p in value)
    if name in ("handedness", "shutter_type", "rolling_shutter"):
        return str(value).lower()
    if name in ("plane_distance", "flat_field_focus"):
        return bool(value)
    if name == "aperture_blades":
        return int(value)
    return float(value)
