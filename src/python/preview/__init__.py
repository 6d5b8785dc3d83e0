"""Preview module for visual inspection of the camera.

Components:
    bokeh: Splat the lens footprint of a pixel to visualize the aperture
        shape and circle of confusion
    export: PNG export and direction-map encoding

Example:
    >>> from src.python.preview import render_bokeh, save_png_from_array
    >>>
    >>> image, extent = render_bokeh(camera, depth=4.0)
    >>> save_png_from_array(image, "bokeh.png", gamma=1.0)
"""

from src.python.preview.bokeh import intersect_focal_plane, render_bokeh, stratified_lens_samples
from src.python.preview.export import (
    apply_gamma,
    direction_map,
    image_to_uint8,
    save_png_from_array,
)

__all__ = [
    "render_bokeh",
    "intersect_focal_plane",
    "stratified_lens_samples",
    "apply_gamma",
    "image_to_uint8",
    "save_png_from_array",
    "direction_map",
]
