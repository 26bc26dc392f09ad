"""Binary mask primitive shared by every annotation operation.

A mask is a row-major 2D grid of 0/1 bytes. Only a value of exactly 1
counts as set. Operations never mutate their inputs; they build new
arrays and wrap them in a ``MaskOperationResult`` carrying the set-pixel
count and the tight bounding box.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)


class MaskCoreError(Exception):
    """Base exception for annotation mask errors."""

    pass


class DimensionMismatchError(MaskCoreError, ValueError):
    """Raised when masks or volumes with different dimensions are combined."""

    pass


class InvalidArgumentError(MaskCoreError, ValueError):
    """Raised when an operation receives an argument outside its domain."""

    pass


@dataclass(frozen=True)
class Bounds:
    """Inclusive bounding box of the set pixels of a mask."""

    min_x: int = 0
    min_y: int = 0
    max_x: int = 0
    max_y: int = 0

    @classmethod
    def empty(cls) -> Bounds:
        return cls(0, 0, 0, 0)

    def to_dict(self) -> dict[str, int]:
        return {
            "minX": self.min_x,
            "minY": self.min_y,
            "maxX": self.max_x,
            "maxY": self.max_y,
        }


@dataclass(eq=False)
class Mask:
    """Binary mask of ``width`` x ``height`` pixels.

    ``data`` is stored as a uint8 array of shape (height, width). A flat
    buffer of ``width * height`` values is accepted and reshaped.
    """

    data: np.ndarray
    width: int
    height: int

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=np.uint8).reshape(self.height, self.width)

    @property
    def selected(self) -> np.ndarray:
        """Boolean view of the set pixels (value exactly 1)."""
        return self.data == 1

    def copy(self) -> Mask:
        return Mask(self.data.copy(), self.width, self.height)

    def flat(self) -> np.ndarray:
        """Return the row-major flat buffer (index ``y * width + x``)."""
        return self.data.ravel()


@dataclass(eq=False)
class MaskOperationResult(Mask):
    """Mask produced by an operation, with its pixel count and bounds."""

    pixel_count: int = 0
    bounds: Bounds = Bounds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "pixelCount": self.pixel_count,
            "bounds": self.bounds.to_dict(),
        }


@dataclass
class IntensityStats:
    """Mean, standard deviation and range of a set of intensities."""

    mean: float = 0.0
    std: float = 0.0
    min: float = 0.0
    max: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"mean": self.mean, "std": self.std, "min": self.min, "max": self.max}


def calculate_mask_stats(data: np.ndarray) -> tuple[int, Bounds]:
    """Count set pixels and compute their inclusive bounding box.

    Args:
        data: 2D mask array of shape (height, width).

    Returns:
        Tuple of (pixel_count, bounds). An empty mask gives bounds (0, 0, 0, 0).
    """
    ys, xs = np.nonzero(np.asarray(data) == 1)
    if xs.size == 0:
        return 0, Bounds.empty()

    bounds = Bounds(
        min_x=int(xs.min()),
        min_y=int(ys.min()),
        max_x=int(xs.max()),
        max_y=int(ys.max()),
    )
    return int(xs.size), bounds


def make_result(data: np.ndarray) -> MaskOperationResult:
    """Wrap a freshly computed 2D array (bool or 0/1) as an operation result."""
    data = np.asarray(data).astype(np.uint8)
    height, width = data.shape
    pixel_count, bounds = calculate_mask_stats(data)
    return MaskOperationResult(
        data=data, width=width, height=height, pixel_count=pixel_count, bounds=bounds
    )


def create_empty_mask(width: int, height: int) -> MaskOperationResult:
    """Create an all-zero mask."""
    return MaskOperationResult(
        data=np.zeros((height, width), dtype=np.uint8),
        width=width,
        height=height,
        pixel_count=0,
        bounds=Bounds.empty(),
    )


def summarize_intensities(values: np.ndarray) -> IntensityStats:
    """Compute mean, standard deviation, min and max in a single pass.

    The variance is derived from the running sum and sum of squares and
    clamped at zero. Empty input yields all-zero statistics.
    """
    values = np.asarray(values, dtype=np.float64).ravel()
    if values.size == 0:
        return IntensityStats()

    count = values.size
    total = float(values.sum())
    total_sq = float(np.dot(values, values))
    mean = total / count
    variance = total_sq / count - mean * mean

    return IntensityStats(
        mean=mean,
        std=float(np.sqrt(max(0.0, variance))),
        min=float(values.min()),
        max=float(values.max()),
    )


def as_image(image_data: Any, width: int, height: int) -> np.ndarray:
    """View a flat or 2D intensity buffer as a float64 (height, width) array."""
    return np.asarray(image_data, dtype=np.float64).reshape(height, width)
