"""Perspective camera with depth of field and motion blur.

This module ties the camera stages together and generates primary rays.
For every sample it:

1. warps the time sample through the shutter density and applies the
   rolling shutter offset (``shutter``),
2. interpolates the camera pose at that time (``pose``),
3. remaps, maps and distorts the pixel sample into a camera-space direction
   (``projection``),
4. moves the ray onto the lens and aims it at the focal surface (``lens``).

A validated ``PerspCameraConfig`` snapshot is uploaded once into Taichi
fields with ``load_camera``; ``get_ray`` can then be called from any
renderer kernel. Kernels only read these fields, so rays for all pixels are
generated in parallel without synchronization. Changing a parameter means
building a new snapshot and loading it between kernel launches.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.python.camera.persp import PerspCamera, get_ray
    >>>
    >>> camera = PerspCamera.from_params({
    ...     "position": (0.0, 1.0, 5.0),
    ...     "look_at": (0.0, 1.0, 0.0),
    ...     "fov": 45.0,
    ...     "aperture_size": 0.05,
    ...     "focus_distance": 5.0,
    ...     "shutter_end": 0.5,
    ... })
    >>> camera.load()
    >>>
    >>> @ti.kernel
    ... def render():
    ...     ray = get_ray(0.5, 0.5, ti.random(), ti.random(), ti.random())
    >>>
    >>> batch = camera.generate_rays(pixels, times, lenses)  # NumPy in, NumPy out
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.python.camera.config import MAX_CURVE_POINTS, MAX_MOTION_KEYS, PerspCameraConfig
from src.python.camera.lens import perturb, sample_aperture
from src.python.camera.pose import CameraPose, TransformResolver
from src.python.camera.projection import (
    camera_dir_to_screen,
    distort_screen,
    effective_focus_distance,
    half_extent,
    pixel_to_screen,
    remap_pixel,
    screen_to_camera,
    screen_to_pixel,
)
from src.python.camera.shutter import (
    ROLLING_SHUTTER_CODES,
    ShutterSampler,
    readout_fraction,
    readout_position,
    shutter_time,
    warp_time_sample,
)
from src.python.core.ray import (
    Ray,
    make_ray,
    normalize_or,
    quat_rotate,
    quat_slerp,
    vec2,
    vec3,
    vec4,
)

logger = logging.getLogger(__name__)

# Cosines below this are clamped when converting clip distances along a ray
MIN_CLIP_COSINE = 1e-6


# =============================================================================
# Taichi Fields for Camera State (GPU-accessible)
# =============================================================================

_camera_loaded = ti.field(dtype=ti.i32, shape=())

# Motion keys: translation and rotation quaternion (x, y, z, w)
_key_translation = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MOTION_KEYS)
_key_rotation = ti.Vector.field(4, dtype=ti.f32, shape=MAX_MOTION_KEYS)
_num_keys = ti.field(dtype=ti.i32, shape=())
_mirror = ti.field(dtype=ti.f32, shape=())  # -1 flips the right axis
_motion_window = ti.Vector.field(2, dtype=ti.f32, shape=())

# Shutter
_shutter_window = ti.Vector.field(2, dtype=ti.f32, shape=())
_shutter_curve = ti.Vector.field(3, dtype=ti.f32, shape=MAX_CURVE_POINTS)  # x, density, cdf
_curve_points = ti.field(dtype=ti.i32, shape=())
_curve_area = ti.field(dtype=ti.f32, shape=())
_rolling_mode = ti.field(dtype=ti.i32, shape=())
_rolling_duration = ti.field(dtype=ti.f32, shape=())

# Projection
_half_extent = ti.field(dtype=ti.f32, shape=())
_aspect_ratio = ti.field(dtype=ti.f32, shape=())
_window_min = ti.Vector.field(2, dtype=ti.f32, shape=())
_window_max = ti.Vector.field(2, dtype=ti.f32, shape=())
_near_clip = ti.field(dtype=ti.f32, shape=())
_far_clip = ti.field(dtype=ti.f32, shape=())

# Lens
_aperture_size = ti.field(dtype=ti.f32, shape=())
_aperture_blades = ti.field(dtype=ti.i32, shape=())
_aperture_rotation = ti.field(dtype=ti.f32, shape=())  # radians
_aperture_curvature = ti.field(dtype=ti.f32, shape=())
_aperture_aspect = ti.field(dtype=ti.f32, shape=())
_focus_distance = ti.field(dtype=ti.f32, shape=())
_flat_field_focus = ti.field(dtype=ti.i32, shape=())

# Distortion
_radial_distortion = ti.field(dtype=ti.f32, shape=())
_uv_remap = ti.Vector.field(4, dtype=ti.f32, shape=())

# Camera whose snapshot currently lives in the fields
_active_camera: "PerspCamera | None" = None


# =============================================================================
# Host-side camera
# =============================================================================


@dataclass(frozen=True)
class CameraRay:
    """A single camera ray returned to Python callers."""

    origin: tuple[float, float, float]
    direction: tuple[float, float, float]
    time: float
    t_min: float
    t_max: float

    def at(self, t: float) -> tuple[float, float, float]:
        """Point at parameter ``t`` along the ray."""
        return (
            self.origin[0] + t * self.direction[0],
            self.origin[1] + t * self.direction[1],
            self.origin[2] + t * self.direction[2],
        )


@dataclass(frozen=True)
class RayBatch:
    """Rays generated for a batch of samples, as NumPy arrays.

    Attributes:
        origins: (N, 3) ray origins.
        directions: (N, 3) unit ray directions.
        times: (N,) sample times.
        t_min: (N,) near clip distances along each ray.
        t_max: (N,) far clip distances along each ray.
    """

    origins: npt.NDArray[np.float32]
    directions: npt.NDArray[np.float32]
    times: npt.NDArray[np.float32]
    t_min: npt.NDArray[np.float32]
    t_max: npt.NDArray[np.float32]

    def __len__(self) -> int:
        return len(self.times)

    def ray(self, i: int) -> CameraRay:
        """Extract ray ``i`` as a ``CameraRay``."""
        return CameraRay(
            origin=tuple(float(c) for c in self.origins[i]),
            direction=tuple(float(c) for c in self.directions[i]),
            time=float(self.times[i]),
            t_min=float(self.t_min[i]),
            t_max=float(self.t_max[i]),
        )


class PerspCamera:
    """A perspective camera built from one immutable parameter snapshot.

    The host side answers pose and time queries in double precision; ray
    generation runs in Taichi kernels on the uploaded snapshot.

    Attributes:
        config: The validated parameter snapshot.
        shutter: Shutter sampler for time queries.
        transform: Transform resolver for pose queries.
    """

    def __init__(self, config: PerspCameraConfig) -> None:
        self.config = config
        self.shutter = ShutterSampler(config.shutter, config.motion)
        self.transform = TransformResolver.from_config(config, self.shutter)

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "PerspCamera":
        """Build a camera from a flat mapping of node parameters.

        Raises:
            CameraConfigError: If the parameters are invalid.
        """
        return cls(PerspCameraConfig.from_params(params))

    def with_params(self, **changes: Any) -> "PerspCamera":
        """Return a new camera with some parameters replaced."""
        return PerspCamera(self.config.with_params(**changes))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def half_extent(self) -> float:
        """Horizontal half extent of the image plane at unit distance."""
        return half_extent(self.config.projection, self.config.lens)

    @property
    def focus_distance(self) -> float:
        """Focus distance as used for ray generation (clamped to the near clip)."""
        return effective_focus_distance(self.config.projection, self.config.lens)

    def sample_time(self, u: float, readout: float | None = None) -> float:
        """Map a time sample in [0, 1] to scene time. See ``ShutterSampler``."""
        return self.shutter.sample_time(u, readout)

    def sample_time_for_pixel(self, u: float, pixel: tuple[float, float]) -> float:
        """Map a time sample to scene time for a sample at ``pixel``."""
        readout = readout_position(pixel[0], pixel[1], self.config.shutter.rolling_shutter)
        return self.shutter.sample_time(u, readout)

    def pose_at(self, t: float) -> CameraPose:
        """Camera pose at scene time ``t``."""
        return self.transform.pose_at(t)

    def matrix_at(self, t: float) -> npt.NDArray[np.float64]:
        """Camera-to-world matrix at scene time ``t``, including scale."""
        return self.transform.matrix_at(t)

    def project_point(self, point: npt.ArrayLike, t: float = 0.0) -> tuple[float, float, float] | None:
        """Project a world-space point to undistorted pixel coordinates.

        Useful for visibility and culling queries.

        Returns:
            Tuple of (u, v, depth along the optical axis), or None for points
            behind the camera.
        """
        pose = self.pose_at(t)
        offset = np.asarray(point, dtype=np.float64) - pose.position
        camera_dir = np.array(
            [np.dot(offset, pose.right), np.dot(offset, pose.up), -np.dot(offset, pose.forward)]
        )
        screen = camera_dir_to_screen(camera_dir, self.half_extent, self.config.projection.aspect_ratio)
        if screen is None:
            return None
        projection = self.config.projection
        u, v = screen_to_pixel(screen, projection.screen_window_min, projection.screen_window_max)
        return u, v, float(-camera_dir[2])

    def filter_weight(self, pixel: tuple[float, float]) -> float:
        """Evaluate the renderer-supplied filter map, or 1.0 when none is set."""
        if self.config.filtermap is None:
            return 1.0
        return float(self.config.filtermap(pixel))

    # -------------------------------------------------------------------------
    # Ray generation
    # -------------------------------------------------------------------------

    def load(self) -> None:
        """Upload this camera's snapshot into the device fields."""
        load_camera(self)

    def generate_rays(
        self,
        pixel_samples: npt.ArrayLike,
        time_samples: npt.ArrayLike,
        lens_samples: npt.ArrayLike,
        uv_remap: npt.ArrayLike | None = None,
    ) -> RayBatch:
        """Generate a batch of camera rays.

        The device holds one camera snapshot per process. When another
        camera was loaded last, this camera's snapshot replaces it, so
        kernels launched afterwards (including other threads') see this
        camera. Render with different cameras one after another, not
        concurrently.

        Args:
            pixel_samples: (N, 2) pixel samples in [0, 1]^2.
            time_samples: (N,) time samples in [0, 1].
            lens_samples: (N, 2) lens samples in [0, 1]^2.
            uv_remap: Optional (N, 4) per-sample remap values evaluated by the
                renderer. Defaults to the snapshot's constant ``uv_remap``.

        Returns:
            The generated rays.

        Raises:
            ValueError: If the sample arrays have inconsistent shapes.
        """
        pixels = np.ascontiguousarray(pixel_samples, dtype=np.float32).reshape(-1, 2)
        times = np.ascontiguousarray(time_samples, dtype=np.float32).reshape(-1)
        lenses = np.ascontiguousarray(lens_samples, dtype=np.float32).reshape(-1, 2)
        n = len(pixels)
        if len(times) != n or len(lenses) != n:
            raise ValueError(
                f"Sample counts differ: {n} pixel, {len(times)} time, {len(lenses)} lens samples"
            )
        if uv_remap is None:
            remaps = np.tile(np.asarray(self.config.distortion.uv_remap, dtype=np.float32), (n, 1))
        else:
            remaps = np.ascontiguousarray(uv_remap, dtype=np.float32).reshape(-1, 4)
            if len(remaps) != n:
                raise ValueError(f"Expected {n} uv_remap values, got {len(remaps)}")

        if _active_camera is not self:
            self.load()

        origins = np.zeros((n, 3), dtype=np.float32)
        directions = np.zeros((n, 3), dtype=np.float32)
        out_times = np.zeros(n, dtype=np.float32)
        t_min = np.zeros(n, dtype=np.float32)
        t_max = np.zeros(n, dtype=np.float32)
        if n > 0:
            _generate_ray_batch(pixels, times, lenses, remaps, origins, directions, out_times, t_min, t_max)
        return RayBatch(origins, directions, out_times, t_min, t_max)

    def generate_ray(
        self,
        pixel_sample: tuple[float, float],
        time_sample: float,
        lens_sample: tuple[float, float],
    ) -> CameraRay:
        """Generate a single camera ray."""
        batch = self.generate_rays([pixel_sample], [time_sample], [lens_sample])
        return batch.ray(0)


# =============================================================================
# Snapshot upload (Python-side, called once per camera configuration)
# =============================================================================


def load_camera(camera: PerspCamera) -> None:
    """Upload a camera snapshot into the Taichi fields read by ``get_ray``.

    Must be called from Python (not from within a Taichi kernel) and never
    while a kernel that reads the camera is running.

    Args:
        camera: The camera whose snapshot becomes active.
    """
    global _active_camera

    config = camera.config
    shutter = camera.shutter
    resolver = camera.transform

    for i, key in enumerate(resolver.keys):
        _key_translation[i] = [float(c) for c in key.translation]
        _key_rotation[i] = [float(c) for c in key.rotation]
    _num_keys[None] = resolver.num_keys
    _mirror[None] = resolver.mirror
    _motion_window[None] = [config.motion.motion_start, config.motion.motion_end]

    _shutter_window[None] = [config.shutter.shutter_start, config.shutter.shutter_end]
    if shutter.table is None:
        _curve_points[None] = 0
        _curve_area[None] = 1.0
    else:
        for i, row in enumerate(shutter.table):
            _shutter_curve[i] = [float(c) for c in row]
        _curve_points[None] = len(shutter.table)
        _curve_area[None] = shutter.total_area
    _rolling_mode[None] = ROLLING_SHUTTER_CODES[config.shutter.rolling_shutter]
    _rolling_duration[None] = config.shutter.rolling_shutter_duration

    projection = config.projection
    _half_extent[None] = camera.half_extent
    _aspect_ratio[None] = projection.aspect_ratio
    _window_min[None] = list(projection.screen_window_min)
    _window_max[None] = list(projection.screen_window_max)
    _near_clip[None] = projection.near_clip
    _far_clip[None] = projection.far_clip

    lens = config.lens
    _aperture_size[None] = lens.aperture_size
    _aperture_blades[None] = lens.aperture_blades
    _aperture_rotation[None] = math.radians(lens.aperture_rotation)
    _aperture_curvature[None] = lens.aperture_blade_curvature
    _aperture_aspect[None] = lens.aperture_aspect_ratio
    _focus_distance[None] = camera.focus_distance
    _flat_field_focus[None] = int(lens.flat_field_focus)

    _radial_distortion[None] = config.distortion.radial_distortion
    _uv_remap[None] = list(config.distortion.uv_remap)

    _camera_loaded[None] = 1
    _active_camera = camera
    logger.debug(
        "Loaded camera: %d motion key(s), shutter=%s, aperture=%g, blades=%d",
        resolver.num_keys,
        config.shutter.shutter_type,
        lens.aperture_size,
        lens.aperture_blades,
    )


def clear_camera() -> None:
    """Forget the active camera; ray generation needs a new ``load_camera``."""
    global _active_camera
    _camera_loaded[None] = 0
    _active_camera = None


def is_camera_loaded() -> bool:
    """Check whether a camera snapshot has been uploaded."""
    return bool(_camera_loaded[None])


def active_camera() -> PerspCamera:
    """Return the camera whose snapshot is loaded.

    Raises:
        RuntimeError: If no camera has been loaded.
    """
    if _camera_loaded[None] == 0 or _active_camera is None:
        raise RuntimeError("Camera not loaded. Call load_camera() first.")
    return _active_camera


# =============================================================================
# Ray Generation (Taichi-compatible, GPU-callable)
# =============================================================================


@ti.func
def pose_at(t: ti.f32):
    """Interpolated camera frame at scene time ``t``.

    Returns:
        Tuple (position, forward, right, up).
    """
    n = _num_keys[None]
    position = _key_translation[0]
    rotation = _key_rotation[0]
    if n > 1:
        window = _motion_window[None]
        tc = ti.min(ti.max(t, window.x), window.y)
        pos = 0.0
        if window.y > window.x:
            pos = (tc - window.x) / (window.y - window.x) * ti.cast(n - 1, ti.f32)
        index = ti.min(ti.cast(ti.floor(pos), ti.i32), n - 2)
        fraction = pos - ti.cast(index, ti.f32)
        position = _key_translation[index] + (_key_translation[index + 1] - _key_translation[index]) * fraction
        rotation = quat_slerp(_key_rotation[index], _key_rotation[index + 1], fraction)
    forward = -quat_rotate(rotation, vec3(0.0, 0.0, 1.0))
    right = _mirror[None] * quat_rotate(rotation, vec3(1.0, 0.0, 0.0))
    up = quat_rotate(rotation, vec3(0.0, 1.0, 0.0))
    return position, forward, right, up


@ti.func
def get_ray_remapped(
    u: ti.f32, v: ti.f32, time_u: ti.f32, lens_u: ti.f32, lens_v: ti.f32, remap: vec4
) -> Ray:
    """Generate a camera ray with an explicit uv remap value.

    Args:
        u: Horizontal pixel sample in [0, 1] (left to right).
        v: Vertical pixel sample in [0, 1] (bottom to top).
        time_u: Time sample in [0, 1].
        lens_u: First lens sample in [0, 1].
        lens_v: Second lens sample in [0, 1].
        remap: uv remap value (r, g, b, weight) for this sample.

    Returns:
        The camera ray in world space.
    """
    # Shutter
    window = _shutter_window[None]
    fraction = warp_time_sample(time_u, _shutter_curve, _curve_points[None], _curve_area[None])
    readout = readout_fraction(_rolling_mode[None], u, v)
    time = shutter_time(fraction, readout, _rolling_mode[None], _rolling_duration[None], window.x, window.y)

    # Pose
    position, forward, right, up = pose_at(time)

    # Projection
    pixel = remap_pixel(vec2(u, v), remap)
    screen = pixel_to_screen(pixel, _window_min[None], _window_max[None])
    screen = distort_screen(screen, _radial_distortion[None])
    local = screen_to_camera(screen, _half_extent[None], _aspect_ratio[None])
    direction = normalize_or(right * local.x + up * local.y - forward * local.z, forward)
    origin = position

    # Lens
    aperture = _aperture_size[None]
    if aperture > 0.0:
        lens_point = aperture * sample_aperture(
            vec2(lens_u, lens_v),
            _aperture_blades[None],
            _aperture_rotation[None],
            _aperture_curvature[None],
            _aperture_aspect[None],
        )
        origin, direction = perturb(
            position,
            direction,
            forward,
            right,
            up,
            _focus_distance[None],
            _flat_field_focus[None],
            lens_point,
        )

    # Clip planes are perpendicular to the optical axis
    cos_theta = ti.max(tm.dot(direction, forward), MIN_CLIP_COSINE)
    return make_ray(origin, direction, time, _near_clip[None] / cos_theta, _far_clip[None] / cos_theta)


@ti.func
def get_ray(u: ti.f32, v: ti.f32, time_u: ti.f32, lens_u: ti.f32, lens_v: ti.f32) -> Ray:
    """Generate a camera ray using the snapshot's constant uv remap.

    This function is designed to be called from within Taichi kernels.
    With ``aperture_size == 0`` the lens samples are ignored and the result
    is the exact pinhole ray.

    Args:
        u: Horizontal pixel sample in [0, 1] (left to right).
        v: Vertical pixel sample in [0, 1] (bottom to top).
        time_u: Time sample in [0, 1].
        lens_u: First lens sample in [0, 1].
        lens_v: Second lens sample in [0, 1].
    """
    return get_ray_remapped(u, v, time_u, lens_u, lens_v, _uv_remap[None])


@ti.func
def get_ray_jittered(pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32) -> Ray:
    """Generate a ray with random pixel jitter, time and lens samples.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).
        width: Image width in pixels.
        height: Image height in pixels.

    Example:
        @ti.kernel
        def render():
            for i, j in image:
                ray = get_ray_jittered(i, j, width, height)
                color = trace(ray)
    """
    u = (ti.cast(pixel_i, ti.f32) + ti.random(ti.f32)) / ti.cast(width, ti.f32)
    v = (ti.cast(pixel_j, ti.f32) + ti.random(ti.f32)) / ti.cast(height, ti.f32)
    return get_ray(u, v, ti.random(ti.f32), ti.random(ti.f32), ti.random(ti.f32))


@ti.dataclass
class RayDifferential:
    """A camera ray with auxiliary rays offset by one pixel in x and y.

    The auxiliary rays share the time and lens sample of the main ray.
    """

    ray: Ray
    rx_origin: vec3
    rx_direction: vec3
    ry_origin: vec3
    ry_direction: vec3


@ti.func
def get_ray_differential(
    u: ti.f32, v: ti.f32, time_u: ti.f32, lens_u: ti.f32, lens_v: ti.f32, du: ti.f32, dv: ti.f32
) -> RayDifferential:
    """Generate a camera ray together with its x and y differentials.

    Args:
        u: Horizontal pixel sample in [0, 1].
        v: Vertical pixel sample in [0, 1].
        time_u: Time sample in [0, 1].
        lens_u: First lens sample in [0, 1].
        lens_v: Second lens sample in [0, 1].
        du: Horizontal offset of one pixel (1 / width).
        dv: Vertical offset of one pixel (1 / height).
    """
    main = get_ray(u, v, time_u, lens_u, lens_v)
    rx = get_ray(u + du, v, time_u, lens_u, lens_v)
    ry = get_ray(u, v + dv, time_u, lens_u, lens_v)
    return RayDifferential(
        ray=main,
        rx_origin=rx.origin,
        rx_direction=rx.direction,
        ry_origin=ry.origin,
        ry_direction=ry.direction,
    )


@ti.kernel
def _generate_ray_batch(
    pixels: ti.types.ndarray(),
    times: ti.types.ndarray(),
    lenses: ti.types.ndarray(),
    remaps: ti.types.ndarray(),
    out_origins: ti.types.ndarray(),
    out_directions: ti.types.ndarray(),
    out_times: ti.types.ndarray(),
    out_t_min: ti.types.ndarray(),
    out_t_max: ti.types.ndarray(),
):
    for i in range(pixels.shape[0]):
        remap = vec4(remaps[i, 0], remaps[i, 1], remaps[i, 2], remaps[i, 3])
        ray = get_ray_remapped(pixels[i, 0], pixels[i, 1], times[i], lenses[i, 0], lenses[i, 1], remap)
        for k in ti.static(range(3)):
            out_origins[i, k] = ray.origin[k]
            out_directions[i, k] = ray.direction[k]
        out_times[i] = ray.time
        out_t_min[i] = ray.t_min
        out_t_max[i] = ray.t_max
