"""Unit tests for camera parameter snapshots.

Tests cover:
- Assembling snapshots from node parameters
- Defaults and value coercion
- Validation errors for every parameter group
- Copy-on-update with with_params
"""

import dataclasses

import numpy as np
import pytest

from src.python.camera.config import (
    MAX_CURVE_POINTS,
    MAX_MOTION_KEYS,
    PerspCameraConfig,
    TransformConfig,
    validate_shutter_curve,
)
from src.python.camera.errors import (
    CameraConfigError,
    InvalidAperture,
    InvalidCurve,
    InvalidProjection,
    InvalidShutter,
)


class TestFromParams:
    """Tests for PerspCameraConfig.from_params."""

    def test_empty_mapping_uses_defaults(self):
        """Test that missing parameters keep their defaults."""
        config = PerspCameraConfig.from_params({})
        assert config.projection.fov == pytest.approx(54.43)
        assert config.projection.near_clip == pytest.approx(1e-4)
        assert config.projection.plane_distance is True
        assert config.lens.focus_distance == 1.0
        assert config.lens.flat_field_focus is True
        assert config.shutter.shutter_type == "box"
        assert config.transform.position == ((0.0, 0.0, 0.0),)

    def test_parameters_land_in_their_groups(self):
        """Test that flat parameters are routed to the right group."""
        config = PerspCameraConfig.from_params(
            {
                "fov": 40.0,
                "aperture_size": 0.05,
                "aperture_blades": 6,
                "shutter_end": 0.5,
                "radial_distortion": -0.1,
            }
        )
        assert config.projection.fov == 40.0
        assert config.lens.aperture_size == 0.05
        assert config.lens.aperture_blades == 6
        assert config.shutter.shutter_end == 0.5
        assert config.distortion.radial_distortion == -0.1

    def test_single_vector_becomes_one_motion_key(self):
        """Test that a single position is stored as one key."""
        config = PerspCameraConfig.from_params({"position": [1, 2, 3]})
        assert config.transform.position == ((1.0, 2.0, 3.0),)

    def test_motion_keys_are_kept(self):
        """Test that a list of positions is stored as motion keys."""
        config = PerspCameraConfig.from_params({"position": [(0, 0, 0), (1, 0, 0), (2, 0, 0)]})
        assert len(config.transform.position) == 3

    def test_enum_values_are_lowercased(self):
        """Test that enum parameters accept any case."""
        config = PerspCameraConfig.from_params({"shutter_type": "Triangle", "handedness": "LEFT"})
        assert config.shutter.shutter_type == "triangle"
        assert config.transform.handedness == "left"

    def test_unknown_parameter_rejected(self):
        """Test that unknown names raise CameraConfigError."""
        with pytest.raises(CameraConfigError, match="Unknown camera parameter"):
            PerspCameraConfig.from_params({"focal_length": 35.0})

    def test_filtermap_is_carried(self):
        """Test that a filtermap callable is stored on the snapshot."""

        def weight(pixel):
            return 0.5

        config = PerspCameraConfig.from_params({"filtermap": weight})
        assert config.filtermap is weight

    def test_wrong_vector_size_rejected(self):
        """Test that a malformed vector raises CameraConfigError."""
        with pytest.raises(CameraConfigError):
            PerspCameraConfig.from_params({"screen_window_min": (0.0, 0.0, 0.0)})
        with pytest.raises(CameraConfigError):
            PerspCameraConfig.from_params({"look_at": (0.0, 1.0)})

    def test_matrix_shape_checked(self):
        """Test that a non-4x4 matrix raises CameraConfigError."""
        with pytest.raises(CameraConfigError, match="4x4"):
            PerspCameraConfig.from_params({"matrix": [[1, 0, 0], [0, 1, 0], [0, 0, 1]]})


class TestWithParams:
    """Tests for copy-on-update."""

    def test_original_unchanged(self):
        """Test that with_params returns a new snapshot."""
        config = PerspCameraConfig.from_params({"fov": 40.0})
        wider = config.with_params(fov=60.0)
        assert config.projection.fov == 40.0
        assert wider.projection.fov == 60.0

    def test_other_parameters_preserved(self):
        """Test that unrelated parameters survive the update."""
        config = PerspCameraConfig.from_params({"aperture_size": 0.1, "position": (1, 2, 3)})
        updated = config.with_params(focus_distance=3.0)
        assert updated.lens.aperture_size == 0.1
        assert updated.transform.position == ((1.0, 2.0, 3.0),)
        assert updated.lens.focus_distance == 3.0

    def test_snapshot_is_frozen(self):
        """Test that snapshots cannot be mutated in place."""
        config = PerspCameraConfig.from_params({})
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.lens = None

    def test_invalid_update_rejected(self):
        """Test that with_params validates the new snapshot."""
        config = PerspCameraConfig.from_params({})
        with pytest.raises(InvalidAperture):
            config.with_params(aperture_size=-1.0)

    def test_round_trip_through_params(self):
        """Test that to_params rebuilds an equal snapshot."""
        config = PerspCameraConfig.from_params(
            {"fov": 30.0, "shutter_type": "curve", "shutter_curve": [(0, 1), (1, 0)]}
        )
        assert PerspCameraConfig.from_params(config.to_params()) == config


class TestProjectionValidation:
    """Tests for projection parameter checks."""

    @pytest.mark.parametrize("fov", [0.0, -10.0, 180.0, 200.0])
    def test_fov_out_of_range(self, fov):
        """Test that fov outside (0, 180) is rejected."""
        with pytest.raises(InvalidProjection):
            PerspCameraConfig.from_params({"fov": fov})

    def test_near_must_be_below_far(self):
        """Test that near_clip >= far_clip is rejected."""
        with pytest.raises(InvalidProjection):
            PerspCameraConfig.from_params({"near_clip": 10.0, "far_clip": 1.0})

    def test_negative_near_rejected(self):
        """Test that a negative near clip is rejected."""
        with pytest.raises(InvalidProjection):
            PerspCameraConfig.from_params({"near_clip": -1.0})

    def test_screen_window_order(self):
        """Test that an inverted screen window is rejected."""
        with pytest.raises(InvalidProjection):
            PerspCameraConfig.from_params(
                {"screen_window_min": (1.0, -1.0), "screen_window_max": (-1.0, 1.0)}
            )

    def test_aspect_ratio_positive(self):
        """Test that a zero image aspect ratio is rejected."""
        with pytest.raises(InvalidProjection):
            PerspCameraConfig.from_params({"aspect_ratio": 0.0})

    def test_projection_errors_are_config_errors(self):
        """Test that InvalidProjection is a CameraConfigError and ValueError."""
        with pytest.raises(ValueError):
            PerspCameraConfig.from_params({"fov": 0.0})


class TestLensValidation:
    """Tests for lens parameter checks."""

    def test_negative_aperture(self):
        """Test that a negative aperture size is rejected."""
        with pytest.raises(InvalidAperture):
            PerspCameraConfig.from_params({"aperture_size": -0.1})

    @pytest.mark.parametrize("blades", [-1, 1, 2])
    def test_invalid_blade_count(self, blades):
        """Test that blade counts other than 0 or >= 3 are rejected."""
        with pytest.raises(InvalidAperture):
            PerspCameraConfig.from_params({"aperture_blades": blades})

    @pytest.mark.parametrize("blades", [0, 3, 8])
    def test_valid_blade_count(self, blades):
        """Test that 0 and polygon blade counts are accepted."""
        config = PerspCameraConfig.from_params({"aperture_blades": blades})
        assert config.lens.aperture_blades == blades

    @pytest.mark.parametrize("curvature", [-0.1, 1.5])
    def test_curvature_range(self, curvature):
        """Test that curvature outside [0, 1] is rejected."""
        with pytest.raises(InvalidAperture):
            PerspCameraConfig.from_params({"aperture_blade_curvature": curvature})

    def test_aperture_aspect_positive(self):
        """Test that a non-positive aperture aspect ratio is rejected."""
        with pytest.raises(InvalidAperture):
            PerspCameraConfig.from_params({"aperture_aspect_ratio": 0.0})

    def test_focus_distance_positive(self):
        """Test that a zero focus distance is rejected."""
        with pytest.raises(CameraConfigError):
            PerspCameraConfig.from_params({"focus_distance": 0.0})


class TestShutterValidation:
    """Tests for shutter and motion parameter checks."""

    def test_shutter_order(self):
        """Test that shutter_start after shutter_end is rejected."""
        with pytest.raises(InvalidShutter):
            PerspCameraConfig.from_params({"shutter_start": 1.0, "shutter_end": 0.0})

    def test_zero_length_shutter_allowed(self):
        """Test that an instantaneous shutter is valid."""
        config = PerspCameraConfig.from_params({"shutter_start": 0.5, "shutter_end": 0.5})
        assert config.shutter.shutter_start == config.shutter.shutter_end

    def test_motion_order(self):
        """Test that motion_start after motion_end is rejected."""
        with pytest.raises(InvalidShutter):
            PerspCameraConfig.from_params({"motion_start": 1.0, "motion_end": 0.0})

    def test_unknown_shutter_type(self):
        """Test that an unknown shutter type is rejected."""
        with pytest.raises(InvalidShutter):
            PerspCameraConfig.from_params({"shutter_type": "gaussian"})

    def test_unknown_rolling_mode(self):
        """Test that an unknown readout direction is rejected."""
        with pytest.raises(InvalidShutter):
            PerspCameraConfig.from_params({"rolling_shutter": "diagonal"})

    @pytest.mark.parametrize("duration", [-0.1, 1.1])
    def test_rolling_duration_range(self, duration):
        """Test that rolling duration outside [0, 1] is rejected."""
        with pytest.raises(InvalidShutter):
            PerspCameraConfig.from_params({"rolling_shutter_duration": duration})

    @pytest.mark.parametrize("duration", [0.0, 1.0])
    def test_rolling_duration_bounds_accepted(self, duration):
        """Test that both ends of the rolling duration range are valid."""
        config = PerspCameraConfig.from_params({"rolling_shutter": "top", "rolling_shutter_duration": duration})
        assert config.shutter.rolling_shutter_duration == duration

    def test_curve_ignored_for_box(self):
        """Test that an unused curve is not validated."""
        config = PerspCameraConfig.from_params({"shutter_type": "box", "shutter_curve": []})
        assert config.shutter.shutter_curve == ()

    def test_curve_type_requires_curve(self):
        """Test that a curve shutter without points is rejected."""
        with pytest.raises(InvalidCurve):
            PerspCameraConfig.from_params({"shutter_type": "curve"})


class TestShutterCurveValidation:
    """Tests for validate_shutter_curve."""

    def test_valid_curve(self):
        """Test that a well-formed curve passes."""
        validate_shutter_curve([(0.0, 0.0), (0.3, 1.0), (1.0, 1.0)])

    def test_single_point(self):
        """Test that fewer than two points are rejected."""
        with pytest.raises(InvalidCurve):
            validate_shutter_curve([(0.5, 1.0)])

    def test_non_monotonic_x(self):
        """Test that decreasing x values are rejected."""
        with pytest.raises(InvalidCurve, match="strictly increasing"):
            validate_shutter_curve([(0.0, 1.0), (0.6, 1.0), (0.4, 1.0), (1.0, 1.0)])

    def test_repeated_x(self):
        """Test that repeated x values are rejected."""
        with pytest.raises(InvalidCurve):
            validate_shutter_curve([(0.0, 1.0), (0.5, 1.0), (0.5, 0.0), (1.0, 0.0)])

    def test_x_outside_unit_interval(self):
        """Test that x values outside [0, 1] are rejected."""
        with pytest.raises(InvalidCurve):
            validate_shutter_curve([(-0.1, 1.0), (1.0, 1.0)])

    def test_negative_density(self):
        """Test that negative densities are rejected."""
        with pytest.raises(InvalidCurve, match="non-negative"):
            validate_shutter_curve([(0.0, 1.0), (1.0, -0.5)])

    def test_zero_area(self):
        """Test that an all-zero curve is rejected."""
        with pytest.raises(InvalidCurve, match="zero area"):
            validate_shutter_curve([(0.0, 0.0), (1.0, 0.0)])

    def test_too_many_points(self):
        """Test the control point limit."""
        n = MAX_CURVE_POINTS + 1
        curve = [(i / (n - 1), 1.0) for i in range(n)]
        with pytest.raises(InvalidCurve):
            validate_shutter_curve(curve)


class TestTransformValidation:
    """Tests for transform parameter checks."""

    def test_unknown_handedness(self):
        """Test that handedness must be right or left."""
        with pytest.raises(CameraConfigError):
            PerspCameraConfig.from_params({"handedness": "up"})

    def test_mismatched_key_counts(self):
        """Test that position and look_at must have matching key counts."""
        with pytest.raises(CameraConfigError, match="motion keys"):
            PerspCameraConfig.from_params(
                {
                    "position": [(0, 0, 0), (1, 0, 0)],
                    "look_at": [(0, 0, -1), (1, 0, -1), (2, 0, -1)],
                }
            )

    def test_single_key_broadcasts(self):
        """Test that a single up vector combines with several positions."""
        config = PerspCameraConfig.from_params(
            {"position": [(0, 0, 0), (1, 0, 0)], "up": (0, 1, 0)}
        )
        assert len(config.transform.position) == 2

    def test_too_many_keys(self):
        """Test the motion key limit."""
        keys = [(float(i), 0.0, 0.0) for i in range(MAX_MOTION_KEYS + 1)]
        with pytest.raises(CameraConfigError, match="Maximum number of motion keys"):
            PerspCameraConfig.from_params({"position": keys})

    def test_singular_matrix(self):
        """Test that a matrix with a singular 3x3 block is rejected."""
        m = [[1, 0, 0, 0], [0, 0, 0, 0], [0, 0, 1, 0], [0, 0, 0, 1]]
        with pytest.raises(CameraConfigError, match="singular"):
            PerspCameraConfig.from_params({"matrix": m})

    def test_identity_matrix_does_not_override(self):
        """Test that the default identity matrix defers to the look-at vectors."""
        assert not TransformConfig().uses_matrix

    def test_non_identity_matrix_overrides(self):
        """Test that a translated matrix takes precedence."""
        m = [[1, 0, 0, 5], [0, 1, 0, 0], [0, 0, 1, 0], [0, 0, 0, 1]]
        config = PerspCameraConfig.from_params({"matrix": m})
        assert config.transform.uses_matrix

    def test_identity_within_tolerance(self):
        """Test that round-off around the identity still defers to look-at."""
        m = np.eye(4)
        m[0, 3] = 1e-14
        config = PerspCameraConfig.from_params({"matrix": m})
        assert not config.transform.uses_matrix

    def test_any_animated_key_overrides(self):
        """Test that one non-identity motion key is enough to use the matrix."""
        moved = np.eye(4)
        moved[0, 3] = 1.0
        config = PerspCameraConfig.from_params({"matrix": [np.eye(4), moved]})
        assert config.transform.uses_matrix
