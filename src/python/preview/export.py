"""Image export utilities for camera previews.

This module provides functions for saving preview images (bokeh splats,
ray direction maps) to files with gamma correction.

Supported formats:
    - PNG (8-bit via Pillow)

Example:
    >>> from src.python.preview.bokeh import render_bokeh
    >>> from src.python.preview.export import save_png_from_array
    >>>
    >>> image, _ = render_bokeh(camera, depth=4.0)
    >>> save_png_from_array(image, "bokeh.png")
"""

from __future__ import annotations

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage


def apply_gamma(
    image: npt.NDArray[np.float32],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Apply gamma correction for display.

    Args:
        image: Linear image array in [0, 1] range.
        gamma: Gamma value (default 2.2 for sRGB).

    Returns:
        Gamma corrected image, clamped to [0, 1].
    """
    # Clamp to [0, 1] before gamma to avoid NaN from negative values
    image = np.clip(image, 0.0, 1.0)
    if gamma == 1.0:
        return image.astype(np.float32)
    return np.power(image, 1.0 / gamma).astype(np.float32)


def image_to_uint8(
    image: npt.NDArray[np.float32],
    *,
    gamma: float = 2.2,
) -> npt.NDArray[np.uint8]:
    """Convert a linear float image to uint8 for export.

    Args:
        image: Linear image of shape (H, W) or (H, W, 3).
        gamma: Gamma correction value (default 2.2 for sRGB).

    Returns:
        8-bit image array with the same shape.

    Raises:
        ValueError: If the image is not grayscale or RGB.
    """
    if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] != 3):
        raise ValueError(f"Expected an (H, W) or (H, W, 3) image, got shape {image.shape}")
    processed = apply_gamma(image, gamma)
    return np.round(processed * 255.0).astype(np.uint8)


def save_png_from_array(
    image: npt.NDArray[np.float32],
    filepath: str,
    *,
    gamma: float = 2.2,
) -> None:
    """Save a NumPy array as a PNG file.

    Grayscale arrays are written as 8-bit luminance images, (H, W, 3)
    arrays as RGB.

    Args:
        image: Linear image of shape (H, W) or (H, W, 3) in [0, 1].
        filepath: Output file path (should end in .png).
        gamma: Gamma correction value (default 2.2 for sRGB).
    """
    image_uint8 = image_to_uint8(image, gamma=gamma)

    # Pillow infers L for (H, W) and RGB for (H, W, 3) uint8 arrays
    pil_image = PILImage.fromarray(image_uint8)
    pil_image.save(filepath)


def direction_map(directions: npt.NDArray[np.float32], width: int, height: int) -> npt.NDArray[np.float32]:
    """Encode unit ray directions as colors (``0.5 * d + 0.5``).

    Args:
        directions: (width * height, 3) directions, row-major from the bottom row.
        width: Image width.
        height: Image height.

    Returns:
        (height, width, 3) image with the top row first.
    """
    colors = 0.5 * directions.reshape(height, width, 3) + 0.5
    return np.flipud(colors).astype(np.float32)
