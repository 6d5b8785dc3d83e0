"""Exceptions raised while configuring a camera.

Configuration errors are raised when a parameter snapshot is assembled or
validated, never while rays are generated. ``DegenerateBasis`` is the one
exception raised during pose construction; it is always recovered by the
transform resolver.
"""


class CameraConfigError(ValueError):
    """A camera parameter snapshot is invalid."""


class InvalidCurve(CameraConfigError):
    """The shutter curve cannot be used as a sampling density."""


class InvalidAperture(CameraConfigError):
    """Aperture size, blade count, curvature or aspect ratio is out of range."""


class InvalidProjection(CameraConfigError):
    """Field of view, clip planes, screen window or aspect ratio is out of range."""


class InvalidShutter(CameraConfigError):
    """Shutter or motion interval is malformed."""


class DegenerateBasis(ArithmeticError):
    """The look-at vectors do not span an orthonormal frame."""
