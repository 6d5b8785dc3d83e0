"""Pytest configuration for camera tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield
    # Note: We don't call ti.reset() here as it can cause issues
    # with subsequent tests if any cleanup happens after


@pytest.fixture(autouse=True)
def clear_camera_state():
    """Forget the loaded camera before and after each test.

    This ensures tests are isolated from each other.
    """
    # Import here so the camera fields are created after ti.init()
    from src.python.camera.persp import clear_camera

    clear_camera()
    yield
    clear_camera()


@pytest.fixture
def default_params():
    """Node parameters of a camera at the origin looking down -z."""
    return {
        "position": (0.0, 0.0, 0.0),
        "look_at": (0.0, 0.0, -1.0),
        "up": (0.0, 1.0, 0.0),
        "fov": 90.0,
    }
