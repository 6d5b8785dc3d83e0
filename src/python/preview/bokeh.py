"""Bokeh preview: visualize the circle of confusion of the camera.

All lens samples for one pixel are traced to a plane perpendicular to the
optical axis and their hit points are splatted into an image. For a point
off the focal plane this reproduces the out-of-focus highlight ("bokeh")
shape: a disk for a circular aperture, a polygon for bladed apertures,
stretched by the aperture aspect ratio.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.python.camera.persp import PerspCamera
    >>> from src.python.preview.bokeh import render_bokeh
    >>>
    >>> camera = PerspCamera.from_params(
    ...     {"aperture_size": 0.1, "aperture_blades": 6, "focus_distance": 2.0}
    ... )
    >>> image, extent = render_bokeh(camera, depth=4.0)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt

if TYPE_CHECKING:
    from src.python.camera.persp import PerspCamera, RayBatch


def stratified_lens_samples(samples_per_axis: int) -> npt.NDArray[np.float32]:
    """Cell-centered stratified samples over the unit square.

    Returns:
        Array of shape (samples_per_axis ** 2, 2).
    """
    cells = (np.arange(samples_per_axis, dtype=np.float32) + 0.5) / samples_per_axis
    u, v = np.meshgrid(cells, cells, indexing="xy")
    return np.stack([u.ravel(), v.ravel()], axis=1)


def intersect_focal_plane(
    camera: PerspCamera, batch: RayBatch, depth: float
) -> npt.NDArray[np.float64]:
    """Intersect rays with the plane at ``depth`` along the optical axis.

    Returns:
        (N, 2) hit points in the camera's right/up coordinates, relative to
        the plane's intersection with the optical axis.
    """
    pose = camera.pose_at(float(batch.times[0]))
    origins = batch.origins.astype(np.float64) - pose.position
    directions = batch.directions.astype(np.float64)

    along = directions @ pose.forward
    t = (depth - origins @ pose.forward) / along
    hits = origins + directions * t[:, np.newaxis]
    return np.stack([hits @ pose.right, hits @ pose.up], axis=1)


def render_bokeh(
    camera: PerspCamera,
    depth: float,
    *,
    resolution: int = 128,
    samples_per_axis: int = 64,
    pixel: tuple[float, float] = (0.5, 0.5),
    extent: float | None = None,
) -> tuple[npt.NDArray[np.float32], float]:
    """Splat the lens footprint of one pixel on the plane at ``depth``.

    Args:
        camera: Camera to sample.
        depth: Distance of the splat plane along the optical axis.
        resolution: Output image size in pixels (square).
        samples_per_axis: Lens samples per axis (total is the square).
        pixel: Pixel sample whose rays are traced.
        extent: Half width of the splatted region in world units. Defaults
            to slightly more than the farthest hit.

    Returns:
        Tuple of (image, extent): the (resolution, resolution) image
        normalized to a peak of 1, top row first, and the half width used.

    Raises:
        ValueError: If depth is not positive.
    """
    if depth <= 0.0:
        raise ValueError(f"Splat depth must be positive, got {depth}")

    lenses = stratified_lens_samples(samples_per_axis)
    n = len(lenses)
    pixels = np.tile(np.asarray(pixel, dtype=np.float32), (n, 1))
    times = np.full(n, 0.5, dtype=np.float32)
    batch = camera.generate_rays(pixels, times, lenses)

    hits = intersect_focal_plane(camera, batch, depth)
    hits -= hits.mean(axis=0)

    if extent is None:
        extent = max(float(np.abs(hits).max()) * 1.1, 1e-6)

    histogram, _, _ = np.histogram2d(
        hits[:, 1],
        hits[:, 0],
        bins=resolution,
        range=[[-extent, extent], [-extent, extent]],
    )
    # Rows run bottom to top in the histogram
    image = np.flipud(histogram).astype(np.float32)
    peak = float(image.max())
    if peak > 0.0:
        image /= peak
    return image, extent
