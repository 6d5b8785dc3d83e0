"""Shutter sampling: mapping time samples to absolute scene time.

A time sample ``u`` in [0, 1] becomes a scene time in three steps:

1. The sample is warped through the inverse cumulative distribution of the
   shutter density (identity for a box shutter, a tent for a triangle
   shutter, a user curve otherwise).
2. With a rolling shutter the warped sample is blended with the readout
   position of the sample's scanline.
3. The result is mapped linearly onto ``[shutter_start, shutter_end]``.

Camera transform keys live on a separate window, ``[motion_start,
motion_end]``; times outside it are clamped when the pose is looked up.

The host-side ``ShutterSampler`` and the device-side Taichi functions share
the same math so that Python queries agree with rays generated in kernels.
"""

import math
from collections.abc import Sequence

import numpy as np
import numpy.typing as npt
import taichi as ti

from src.python.camera.config import MotionConfig, ShutterConfig, Vec2

TRIANGLE_SHUTTER_CURVE: tuple[Vec2, ...] = ((0.0, 0.0), (0.5, 1.0), (1.0, 0.0))

# Device encoding of the rolling shutter readout direction
ROLLING_SHUTTER_CODES = {"off": 0, "top": 1, "bottom": 2, "left": 3, "right": 4}


def build_curve_table(curve: Sequence[Vec2]) -> tuple[npt.NDArray[np.float64], float]:
    """Tabulate a piecewise-linear density for inverse-CDF sampling.

    Args:
        curve: Validated (time fraction, density) control points.

    Returns:
        Tuple of (table, total_area) where table has shape (N, 3) holding
        x, density and the normalized cumulative area at each point.
    """
    xs = np.array([p[0] for p in curve], dtype=np.float64)
    ys = np.array([p[1] for p in curve], dtype=np.float64)
    areas = 0.5 * (ys[:-1] + ys[1:]) * np.diff(xs)
    cumulative = np.concatenate([[0.0], np.cumsum(areas)])
    total = float(cumulative[-1])
    table = np.stack([xs, ys, cumulative / total], axis=1)
    return table, total


def _solve_segment(x0: float, x1: float, y0: float, y1: float, area: float) -> float:
    """Find the offset into a linear density segment that encloses ``area``."""
    dx = x1 - x0
    slope = (y1 - y0) / dx
    disc = max(y0 * y0 + 2.0 * slope * area, 0.0)
    den = y0 + math.sqrt(disc)
    s = 2.0 * area / den if den > 0.0 else 0.0
    return x0 + min(max(s, 0.0), dx)


def readout_position(pixel_u: float, pixel_v: float, mode: str) -> float:
    """Normalized readout position of a pixel sample (0 = first scanline read).

    Pixel coordinates follow the image convention used throughout the
    camera: ``u`` runs left to right and ``v`` bottom to top.
    """
    if mode == "top":
        return 1.0 - pixel_v
    if mode == "bottom":
        return pixel_v
    if mode == "left":
        return pixel_u
    if mode == "right":
        return 1.0 - pixel_u
    return 0.0


class ShutterSampler:
    """Host-side shutter sampler built from a validated snapshot.

    Attributes:
        shutter: Shutter parameters.
        motion: Motion window parameters.
        table: (N, 3) inverse-CDF table, or None for a box shutter.
        total_area: Area under the density curve (1.0 for box).
    """

    def __init__(self, shutter: ShutterConfig, motion: MotionConfig) -> None:
        self.shutter = shutter
        self.motion = motion
        self.table: npt.NDArray[np.float64] | None = None
        self.total_area = 1.0

        curve = self.density_curve
        if curve:
            self.table, self.total_area = build_curve_table(curve)

    @property
    def density_curve(self) -> tuple[Vec2, ...]:
        """Control points of the active density, empty for a box shutter."""
        if self.shutter.shutter_type == "triangle":
            return TRIANGLE_SHUTTER_CURVE
        if self.shutter.shutter_type == "curve":
            return self.shutter.shutter_curve
        return ()

    @property
    def rolling(self) -> bool:
        return self.shutter.rolling_shutter != "off"

    def warp(self, u: float) -> float:
        """Warp a uniform sample through the inverse shutter CDF."""
        u = min(max(float(u), 0.0), 1.0)
        if self.table is None:
            return u

        table = self.table
        n = len(table)
        i = int(np.searchsorted(table[:, 2], u, side="left")) - 1
        i = min(max(i, 0), n - 2)
        # Skip segments that enclose no area
        while i < n - 2 and table[i + 1, 2] <= table[i, 2]:
            i += 1
        x0, y0, c0 = table[i]
        x1, y1, _ = table[i + 1]
        return _solve_segment(x0, x1, y0, y1, (u - c0) * self.total_area)

    def sample_time(self, u: float, readout: float | None = None) -> float:
        """Map a time sample in [0, 1] to an absolute scene time.

        Args:
            u: Uniform time sample.
            readout: Normalized readout position of the sample's scanline
                (0 = first scanline). Required when a rolling shutter is on.

        Returns:
            A time inside [shutter_start, shutter_end].

        Raises:
            ValueError: If a rolling shutter is enabled and readout is missing.
        """
        fraction = self.warp(u)
        if self.rolling:
            if readout is None:
                raise ValueError("A rolling shutter needs the readout position of the sample")
            f = min(max(float(readout), 0.0), 1.0)
            d = self.shutter.rolling_shutter_duration
            fraction = f * (1.0 - d) + fraction * d
        start, end = self.shutter.shutter_start, self.shutter.shutter_end
        return start + fraction * (end - start)

    def motion_time(self, t: float) -> float:
        """Clamp a shutter time into the motion window."""
        return min(max(float(t), self.motion.motion_start), self.motion.motion_end)

    def motion_key(self, t: float, num_keys: int) -> tuple[int, float]:
        """Locate time ``t`` between uniformly spaced motion keys.

        Returns:
            Tuple of (key index, fraction toward the next key).
        """
        return motion_key_position(
            self.motion_time(t), self.motion.motion_start, self.motion.motion_end, num_keys
        )


def motion_key_position(t: float, start: float, end: float, num_keys: int) -> tuple[int, float]:
    """Locate a clamped motion time between ``num_keys`` uniformly spaced keys."""
    if num_keys <= 1 or end <= start:
        return 0, 0.0
    pos = (t - start) / (end - start) * (num_keys - 1)
    index = min(int(math.floor(pos)), num_keys - 2)
    return index, pos - index


# =============================================================================
# Device-side functions (Taichi)
# =============================================================================


@ti.func
def warp_time_sample(u: ti.f32, curve: ti.template(), num_points: ti.i32, total_area: ti.f32) -> ti.f32:
    """Warp a time sample through the tabulated inverse CDF.

    Args:
        u: Uniform time sample in [0, 1].
        curve: Vector field of (x, density, cdf) rows.
        num_points: Active rows in ``curve``; below 2 means box shutter.
        total_area: Area under the density curve.
    """
    uc = ti.min(ti.max(u, 0.0), 1.0)
    result = uc
    if num_points >= 2:
        count = 0
        for k in range(num_points):
            if curve[k][2] < uc:
                count += 1
        i = ti.min(ti.max(count - 1, 0), num_points - 2)
        while i < num_points - 2 and curve[i + 1][2] <= curve[i][2]:
            i += 1
        x0 = curve[i][0]
        y0 = curve[i][1]
        c0 = curve[i][2]
        x1 = curve[i + 1][0]
        y1 = curve[i + 1][1]
        area = (uc - c0) * total_area
        dx = x1 - x0
        slope = (y1 - y0) / dx
        den = y0 + ti.sqrt(ti.max(y0 * y0 + 2.0 * slope * area, 0.0))
        s = 0.0
        if den > 0.0:
            s = 2.0 * area / den
        result = x0 + ti.min(ti.max(s, 0.0), dx)
    return result


@ti.func
def readout_fraction(mode: ti.i32, pixel_u: ti.f32, pixel_v: ti.f32) -> ti.f32:
    """Device counterpart of ``readout_position`` using ROLLING_SHUTTER_CODES."""
    f = 0.0
    if mode == 1:
        f = 1.0 - pixel_v
    elif mode == 2:
        f = pixel_v
    elif mode == 3:
        f = pixel_u
    elif mode == 4:
        f = 1.0 - pixel_u
    return ti.min(ti.max(f, 0.0), 1.0)


@ti.func
def shutter_time(
    fraction: ti.f32,
    readout: ti.f32,
    mode: ti.i32,
    duration: ti.f32,
    start: ti.f32,
    end: ti.f32,
) -> ti.f32:
    """Blend in the rolling shutter offset and map onto the shutter interval."""
    f = fraction
    if mode != 0:
        f = readout * (1.0 - duration) + fraction * duration
    return start + f * (end - start)
