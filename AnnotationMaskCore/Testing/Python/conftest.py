"""Pytest configuration and fixtures for AnnotationMaskCore tests."""

import os
import sys

import numpy as np
import pytest

# Add module path so AnnotationMaskCoreLib imports without installation
_THIS_DIR = os.path.dirname(os.path.abspath(__file__))
_MODULE_DIR = os.path.dirname(os.path.dirname(_THIS_DIR))
if _MODULE_DIR not in sys.path:
    sys.path.insert(0, _MODULE_DIR)

from AnnotationMaskCoreLib.MaskPrimitive import Mask  # noqa: E402
from test_fixtures.synthetic_image import (  # noqa: E402
    create_checkerboard_mask,
    create_disk_mask,
    create_ring_mask,
    create_square_mask,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "sitk: mark test as exercising SimpleITK filters")


@pytest.fixture
def square_mask():
    """10x10 square at (8, 8) in a 32x32 mask."""
    return Mask(create_square_mask((32, 32), (8, 8), 10), 32, 32)


@pytest.fixture
def disk_mask():
    """Radius-10 disk centred in a 64x64 mask."""
    return Mask(create_disk_mask((64, 64), (32, 32), 10), 64, 64)


@pytest.fixture
def ring_mask():
    """12x12 square ring of thickness 2 at (6, 6) in a 32x32 mask."""
    return Mask(create_ring_mask((32, 32), (6, 6), 12, 2), 32, 32)


@pytest.fixture
def checkerboard_mask():
    """16x16 single-pixel checkerboard."""
    return Mask(create_checkerboard_mask((16, 16), 1), 16, 16)


@pytest.fixture
def empty_mask():
    return Mask(np.zeros((20, 20), dtype=np.uint8), 20, 20)


@pytest.fixture
def full_mask():
    return Mask(np.ones((20, 20), dtype=np.uint8), 20, 20)


@pytest.fixture
def constant_image():
    """32x32 image with intensity 100 everywhere."""
    return np.full((32, 32), 100.0, dtype=np.float32)
