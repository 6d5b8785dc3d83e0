"""Perspective camera ray generation built on Taichi.

This package provides the primary-ray engine of a perspective camera for an
offline renderer, with support for:
- Look-at or matrix placement, interpolated across motion keys
- Depth of field with circular or bladed apertures and flat or spherical focus
- Motion blur with box, triangle or curve shutters and rolling shutter readout
- Screen windows, radial distortion and uv remapping

Subpackages:
    core: Ray structure, vector helpers and host-side transform utilities
    camera: Camera configuration, sampling stages and ray generation
    preview: Bokeh visualization and image export
"""

__version__ = "0.1.0"
