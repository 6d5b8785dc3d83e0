#!/usr/bin/env python3
"""Render the bokeh shape of the perspective camera.

This script traces every lens sample of one pixel to a plane behind the
focal plane and splats the hits, showing the out-of-focus highlight shape
produced by the aperture settings. It also writes a direction map of the
full image (with radial distortion applied) for a quick check of the
projection.

Usage:
    python -m examples.render_bokeh [options]

Options:
    --blades N          Number of aperture blades, 0 for a circle (default: 6)
    --curvature C       Blade curvature in [0, 1] (default: 0.0)
    --rotation DEG      Aperture rotation in degrees (default: 0.0)
    --aspect A          Aperture aspect ratio (default: 1.0)
    --distortion K      Radial distortion coefficient (default: 0.0)
    --samples N         Lens samples per axis (default: 64)
    --resolution R      Output image size in pixels (default: 256)
    --output OUTPUT     Output file prefix (default: bokeh)
    --quiet             Suppress progress output

Example:
    python -m examples.render_bokeh --blades 5 --curvature 0.3 --aspect 1.5
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
import taichi as ti


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render the bokeh shape of the perspective camera.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--blades", type=int, default=6, help="Aperture blades (default: 6)")
    parser.add_argument("--curvature", type=float, default=0.0, help="Blade curvature (default: 0.0)")
    parser.add_argument("--rotation", type=float, default=0.0, help="Aperture rotation (default: 0.0)")
    parser.add_argument("--aspect", type=float, default=1.0, help="Aperture aspect ratio (default: 1.0)")
    parser.add_argument(
        "--distortion", type=float, default=0.0, help="Radial distortion coefficient (default: 0.0)"
    )
    parser.add_argument("--samples", type=int, default=64, help="Lens samples per axis (default: 64)")
    parser.add_argument("--resolution", type=int, default=256, help="Image size in pixels (default: 256)")
    parser.add_argument("--output", type=str, default="bokeh", help="Output file prefix (default: bokeh)")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args()


def render_bokeh_preview(
    blades: int = 6,
    curvature: float = 0.0,
    rotation: float = 0.0,
    aspect: float = 1.0,
    distortion: float = 0.0,
    samples_per_axis: int = 64,
    resolution: int = 256,
    output_prefix: str = "bokeh",
    quiet: bool = False,
) -> tuple[Path, Path]:
    """Render the bokeh splat and the direction map and save them.

    Returns:
        Paths of the bokeh image and the direction map.
    """
    # Lazy imports to allow Taichi initialization first
    from src.python.camera.persp import PerspCamera
    from src.python.preview.bokeh import render_bokeh
    from src.python.preview.export import direction_map, save_png_from_array

    camera = PerspCamera.from_params(
        {
            "position": (0.0, 0.0, 0.0),
            "look_at": (0.0, 0.0, -1.0),
            "fov": 50.0,
            "focus_distance": 2.0,
            "aperture_size": 0.1,
            "aperture_blades": blades,
            "aperture_blade_curvature": curvature,
            "aperture_rotation": rotation,
            "aperture_aspect_ratio": aspect,
            "radial_distortion": distortion,
        }
    )

    if not quiet:
        print(f"Splatting {samples_per_axis ** 2} lens samples...")
    image, extent = render_bokeh(
        camera, depth=6.0, resolution=resolution, samples_per_axis=samples_per_axis
    )
    bokeh_file = Path(f"{output_prefix}_shape.png")
    save_png_from_array(image, str(bokeh_file), gamma=1.0)

    if not quiet:
        print(f"Generating direction map ({resolution}x{resolution})...")
    cells = (np.arange(resolution, dtype=np.float32) + 0.5) / resolution
    u, v = np.meshgrid(cells, cells, indexing="xy")
    pixels = np.stack([u.ravel(), v.ravel()], axis=1)
    n = len(pixels)
    batch = camera.with_params(aperture_size=0.0).generate_rays(
        pixels, np.zeros(n, dtype=np.float32), np.full((n, 2), 0.5, dtype=np.float32)
    )
    directions_file = Path(f"{output_prefix}_directions.png")
    save_png_from_array(direction_map(batch.directions, resolution, resolution), str(directions_file), gamma=1.0)

    if not quiet:
        print(f"Circle of confusion half width: {extent:.4f}")
        print(f"Saved to: {bokeh_file.absolute()} and {directions_file.absolute()}")
    return bokeh_file, directions_file


def main() -> int:
    """Main entry point."""
    args = parse_args()
    logging.basicConfig(level=logging.WARNING if args.quiet else logging.INFO)

    # Use GPU if available, fall back to CPU
    try:
        ti.init(arch=ti.gpu)
    except Exception:
        ti.init(arch=ti.cpu)

    try:
        render_bokeh_preview(
            blades=args.blades,
            curvature=args.curvature,
            rotation=args.rotation,
            aspect=args.aspect,
            distortion=args.distortion,
            samples_per_axis=args.samples,
            resolution=args.resolution,
            output_prefix=args.output,
            quiet=args.quiet,
        )
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
