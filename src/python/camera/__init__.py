"""Camera module for primary ray generation.

This module provides a perspective camera with depth of field, motion blur
and lens distortion:

Components:
    config: Immutable parameter snapshots and their validation
    errors: Configuration error taxonomy
    shutter: Time sampling (shutter density, rolling shutter, motion window)
    pose: Camera pose from look-at vectors or matrices, interpolated over time
    projection: Screen window, radial distortion and uv remap
    lens: Aperture sampling and thin-lens focusing
    persp: The assembled camera and its Taichi ray generation

Camera responsibilities:
    - Transform (u, v) image coordinates to world-space rays
    - Sample the shutter interval and the lens aperture
    - Resolve the camera pose at the sampled time

Ray generation uses normalized image coordinates:
    u in [0, 1]: left to right across image
    v in [0, 1]: bottom to top across image

``persp`` declares Taichi fields, so it is not imported here; import
``src.python.camera.persp`` after ``ti.init()``.
"""

from .config import (
    DistortionConfig,
    LensConfig,
    MotionConfig,
    PerspCameraConfig,
    ProjectionConfig,
    ShutterConfig,
    TransformConfig,
)
from .errors import (
    CameraConfigError,
    DegenerateBasis,
    InvalidAperture,
    InvalidCurve,
    InvalidProjection,
    InvalidShutter,
)
from .pose import CameraPose, TransformResolver
from .shutter import ShutterSampler

__all__ = [
    "PerspCameraConfig",
    "TransformConfig",
    "MotionConfig",
    "ShutterConfig",
    "ProjectionConfig",
    "LensConfig",
    "DistortionConfig",
    "CameraPose",
    "TransformResolver",
    "ShutterSampler",
    "CameraConfigError",
    "InvalidCurve",
    "InvalidAperture",
    "InvalidProjection",
    "InvalidShutter",
    "DegenerateBasis",
]
