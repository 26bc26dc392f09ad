"""Brush rasterization for manual mask editing.

Implements the 2D brush (circle, square and diamond kernels with soft
edges), the multi-slice 3D brush with depth-dependent opacity, and the
intensity/edge-aware adaptive brush. A kernel cell is committed to the mask
only when its value times the brush opacity reaches 0.5; committed cells are
set, or cleared in eraser mode.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

import numpy as np
from scipy import ndimage

from .MaskPrimitive import InvalidArgumentError, Mask, MaskOperationResult, as_image, make_result

logger = logging.getLogger(__name__)

# Adaptive kernel cells weaker than this are never painted
ADAPTIVE_MIN_KERNEL_VALUE = 0.3
COMMIT_THRESHOLD = 0.5

Point = tuple[float, float]


class BrushShape(str, Enum):
    CIRCLE = "circle"
    SQUARE = "square"
    DIAMOND = "diamond"


class DepthFalloff(str, Enum):
    NONE = "none"
    LINEAR = "linear"
    GAUSSIAN = "gaussian"


def _coerce_enum(enum_cls: type[Enum], value: Any, name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid {name}: {value!r}") from e


@dataclass
class BrushConfig:
    """2D brush settings.

    Attributes:
        radius: Brush radius in pixels.
        shape: Kernel shape.
        hardness: 1.0 for a hard edge; lower values fade towards the rim.
        opacity: Multiplier applied to every kernel value.
        is_eraser: Clear committed pixels instead of setting them.
        spacing: Minimum stamp distance along a stroke, as a fraction of
            the brush diameter.
    """

    radius: int = 5
    shape: BrushShape = BrushShape.CIRCLE
    hardness: float = 1.0
    opacity: float = 1.0
    is_eraser: bool = False
    spacing: float = 0.25

    def __post_init__(self):
        self.shape = _coerce_enum(BrushShape, self.shape, "brush shape")
        if self.radius < 0:
            raise InvalidArgumentError(f"Brush radius must be >= 0, got {self.radius}")
        if self.spacing <= 0:
            raise InvalidArgumentError(f"Brush spacing must be > 0, got {self.spacing}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "radius": self.radius,
            "shape": self.shape.value,
            "hardness": self.hardness,
            "opacity": self.opacity,
            "is_eraser": self.is_eraser,
            "spacing": self.spacing,
        }


@dataclass
class Brush3DConfig(BrushConfig):
    """Brush applied across ``depth`` slices centred on the current slice."""

    depth: int = 1
    depth_falloff: DepthFalloff = DepthFalloff.NONE

    def __post_init__(self):
        super().__post_init__()
        self.depth_falloff = _coerce_enum(DepthFalloff, self.depth_falloff, "depth falloff")
        if self.depth < 1 or self.depth % 2 == 0:
            raise InvalidArgumentError(
                f"Brush depth must be a positive odd number, got {self.depth}"
            )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"depth": self.depth, "depth_falloff": self.depth_falloff.value})
        return data


@dataclass
class AdaptiveBrushConfig(BrushConfig):
    """Brush whose footprint follows image intensity and avoids strong edges.

    Attributes:
        intensity_tolerance: Intensity difference from the seed that is
            painted at full strength.
        gradient_threshold: Gradient magnitude below which pixels are not
            treated as edges.
        edge_snapping: Enable the gradient term.
        edge_strength: Weight of the gradient term against the intensity term.
    """

    intensity_tolerance: float = 50.0
    gradient_threshold: float = 30.0
    edge_snapping: bool = True
    edge_strength: float = 0.5

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "intensity_tolerance": self.intensity_tolerance,
                "gradient_threshold": self.gradient_threshold,
                "edge_snapping": self.edge_snapping,
                "edge_strength": self.edge_strength,
            }
        )
        return data


@dataclass
class BrushStroke:
    """Ordered stroke points (x, y) painted with one configuration."""

    points: list[Point] = field(default_factory=list)
    config: BrushConfig = field(default_factory=BrushConfig)


def _shape_distance(dx: np.ndarray, dy: np.ndarray, shape: BrushShape) -> np.ndarray:
    if shape == BrushShape.SQUARE:
        return np.maximum(np.abs(dx), np.abs(dy)).astype(np.float64)
    if shape == BrushShape.DIAMOND:
        return (np.abs(dx) + np.abs(dy)).astype(np.float64)
    return np.sqrt(dx * dx + dy * dy)


def _kernel_offsets(radius: int) -> tuple[np.ndarray, np.ndarray]:
    """Return (dy, dx) offset grids of shape (2r+1, 2r+1)."""
    return np.mgrid[-radius : radius + 1, -radius : radius + 1]


def generate_brush_mask(config: BrushConfig) -> np.ndarray:
    """Build the (2r+1) x (2r+1) opacity kernel of a brush.

    Cells outside the shape are 0. Inside, a hard brush (hardness >= 1) is 1
    everywhere; a softer brush falls off as
    ``(1 - d/r) ** ((1 - hardness) * 3)`` with ``d`` the shape distance.

    Args:
        config: Brush configuration.

    Returns:
        float32 array of shape (2r+1, 2r+1), row-major in (y, x).
    """
    radius = config.radius
    dy, dx = _kernel_offsets(radius)
    distance = _shape_distance(dx, dy, config.shape)
    inside = distance <= radius

    if config.hardness >= 1 or radius == 0:
        kernel = inside.astype(np.float32)
    else:
        falloff = np.clip(1.0 - distance / radius, 0.0, None) ** ((1.0 - config.hardness) * 3)
        kernel = np.where(inside, falloff, 0.0).astype(np.float32)

    return kernel


def _stamp_positions(points: Sequence[Point], min_distance: float) -> Iterator[Point]:
    """Yield stroke points far enough from the previously stamped point."""
    last: Point | None = None
    for x, y in points:
        if last is not None and math.hypot(x - last[0], y - last[1]) < min_distance:
            continue
        last = (x, y)
        yield x, y


def _paint(data: np.ndarray, commit: np.ndarray, x0: int, y0: int, value: int) -> None:
    """Write ``value`` where ``commit`` is True, with the kernel origin at (x0, y0)."""
    height, width = data.shape
    size_y, size_x = commit.shape
    top, bottom = max(0, y0), min(height, y0 + size_y)
    left, right = max(0, x0), min(width, x0 + size_x)
    if top >= bottom or left >= right:
        return
    region = commit[top - y0 : bottom - y0, left - x0 : right - x0]
    data[top:bottom, left:right][region] = value


def apply_brush_stroke(mask: Mask, stroke: BrushStroke) -> MaskOperationResult:
    """Rasterize a stroke into a copy of ``mask``.

    The first point is always stamped; later points closer than
    ``radius * spacing * 2`` to the last stamped point are skipped. Kernel
    cell (bx, by) lands on pixel ``floor(cx - r) + bx``,
    ``floor(cy - r) + by``; cells outside the mask are dropped.
    """
    config = stroke.config
    radius = config.radius
    commit = generate_brush_mask(config) * config.opacity >= COMMIT_THRESHOLD
    value = 0 if config.is_eraser else 1

    result = mask.data.copy()
    for cx, cy in _stamp_positions(stroke.points, radius * config.spacing * 2):
        _paint(result, commit, math.floor(cx - radius), math.floor(cy - radius), value)

    return make_result(result)


def brush_stamp(mask: Mask, x: float, y: float, config: BrushConfig) -> MaskOperationResult:
    """Apply a single brush stamp at (x, y)."""
    return apply_brush_stroke(mask, BrushStroke(points=[(x, y)], config=config))


def depth_opacity(slice_distance: int, half_depth: int, falloff: DepthFalloff) -> float:
    """Opacity multiplier for a slice ``slice_distance`` away from the centre."""
    if falloff == DepthFalloff.LINEAR:
        return 1.0 - slice_distance / (half_depth + 1)
    if falloff == DepthFalloff.GAUSSIAN:
        sigma = half_depth / 2
        if sigma == 0:
            return 1.0
        return math.exp(-(slice_distance**2) / (2 * sigma**2))
    return 1.0


def apply_3d_brush_stroke(
    masks: Sequence[Mask],
    stroke: BrushStroke,
    current_slice: int,
    config: Brush3DConfig,
) -> list[MaskOperationResult]:
    """Paint a stroke on every slice within ``depth // 2`` of ``current_slice``.

    Each affected slice is painted with the stroke's brush at an opacity
    scaled by the depth falloff. Slices outside the depth window are
    returned as unchanged copies.

    Args:
        masks: One mask per slice, ordered by slice index.
        stroke: Stroke points and 2D brush settings.
        current_slice: Index of the slice the stroke was drawn on.
        config: Depth and falloff settings.

    Returns:
        One result per input slice.
    """
    half_depth = config.depth // 2
    results = []
    for z, mask in enumerate(masks):
        distance = abs(z - current_slice)
        if distance > half_depth:
            results.append(make_result(mask.data.copy()))
            continue

        factor = depth_opacity(distance, half_depth, config.depth_falloff)
        slice_config = replace(stroke.config, opacity=stroke.config.opacity * factor)
        results.append(apply_brush_stroke(mask, BrushStroke(stroke.points, slice_config)))

    logger.debug(
        f"3D brush on slice {current_slice}: depth {config.depth}, "
        f"falloff {config.depth_falloff.value}"
    )
    return results


def sobel_gradient_magnitude(image: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude scaled by 1/4, zero on the one-pixel border."""
    image = np.asarray(image, dtype=np.float64)
    gx = ndimage.sobel(image, axis=1) / 4.0
    gy = ndimage.sobel(image, axis=0) / 4.0
    magnitude = np.hypot(gx, gy)
    magnitude[0, :] = 0
    magnitude[-1, :] = 0
    magnitude[:, 0] = 0
    magnitude[:, -1] = 0
    return magnitude


def _linear_factor(values: np.ndarray, limit: float) -> np.ndarray:
    """1 up to ``limit``, then falling linearly to 0 at ``2 * limit``."""
    if limit <= 0:
        return (values <= limit).astype(np.float64)
    return np.where(values <= limit, 1.0, np.maximum(0.0, 1.0 - (values - limit) / limit))


def create_adaptive_brush(
    image_data: Any,
    width: int,
    height: int,
    x: float,
    y: float,
    config: AdaptiveBrushConfig,
    gradient: np.ndarray | None = None,
) -> np.ndarray:
    """Build an adaptive brush kernel centred on ``(floor(x), floor(y))``.

    Each cell inside the brush shape and the image blends an intensity
    similarity factor (against the seed intensity) with an edge factor
    (against the Sobel gradient), weighted by ``edge_strength``, and scales
    the blend by the radial falloff ``1 - d/r``.

    Args:
        image_data: Intensity buffer of ``width * height`` values.
        width: Image width.
        height: Image height.
        x: Brush centre x.
        y: Brush centre y.
        config: Adaptive brush configuration.
        gradient: Precomputed gradient magnitude for the image; computed
            when omitted.

    Returns:
        float32 kernel of shape (2r+1, 2r+1).
    """
    image = as_image(image_data, width, height)
    if gradient is None:
        gradient = sobel_gradient_magnitude(image)

    radius = config.radius
    seed_x = math.floor(x)
    seed_y = math.floor(y)
    if 0 <= seed_x < width and 0 <= seed_y < height:
        seed_intensity = image[seed_y, seed_x]
    else:
        seed_intensity = 0.0

    dy, dx = _kernel_offsets(radius)
    distance = _shape_distance(dx, dy, config.shape)
    px = seed_x + dx
    py = seed_y + dy
    valid = (distance <= radius) & (px >= 0) & (px < width) & (py >= 0) & (py < height)

    px = np.clip(px, 0, width - 1)
    py = np.clip(py, 0, height - 1)
    intensity_diff = np.abs(image[py, px] - seed_intensity)
    intensity_factor = _linear_factor(intensity_diff, config.intensity_tolerance)
    edge_factor = _linear_factor(gradient[py, px], config.gradient_threshold)

    edge_strength = config.edge_strength if config.edge_snapping else 0.0
    combined = intensity_factor * (1 - edge_strength) + edge_factor * edge_strength
    radial = 1.0 - distance / radius if radius > 0 else np.ones_like(distance)

    return np.where(valid, combined * radial, 0.0).astype(np.float32)


def apply_adaptive_brush_stroke(
    mask: Mask,
    image_data: Any,
    image_width: int,
    image_height: int,
    stroke: BrushStroke,
    config: AdaptiveBrushConfig,
) -> MaskOperationResult:
    """Rasterize a stroke with a per-stamp adaptive kernel.

    Uses the same spacing rule as ``apply_brush_stroke``. Kernel cells below
    0.3 are ignored; the rest are committed when ``value * opacity >= 0.5``.
    """
    image = as_image(image_data, image_width, image_height)
    gradient = sobel_gradient_magnitude(image)
    radius = config.radius
    value = 0 if config.is_eraser else 1

    result = mask.data.copy()
    for cx, cy in _stamp_positions(stroke.points, radius * config.spacing * 2):
        kernel = create_adaptive_brush(
            image, image_width, image_height, cx, cy, config, gradient=gradient
        )
        commit = (kernel >= ADAPTIVE_MIN_KERNEL_VALUE) & (
            kernel * config.opacity >= COMMIT_THRESHOLD
        )
        _paint(result, commit, math.floor(cx - radius), math.floor(cy - radius), value)

    return make_result(result)


def interpolate_stroke_points(points: Sequence[Point], spacing: float = 1.0) -> list[Point]:
    """Insert evenly spaced points wherever consecutive points are too far apart."""
    if len(points) < 2:
        return list(points)

    result = [points[0]]
    for (x0, y0), (x1, y1) in zip(points[:-1], points[1:]):
        distance = math.hypot(x1 - x0, y1 - y0)
        if distance > spacing:
            steps = math.ceil(distance / spacing)
            for j in range(1, steps + 1):
                t = j / steps
                result.append((x0 + (x1 - x0) * t, y0 + (y1 - y0) * t))
        else:
            result.append((x1, y1))
    return result


def smooth_stroke_path(points: Sequence[Point], num_segments: int = 10) -> list[Point]:
    """Resample a stroke along a Catmull-Rom spline through its points.

    Strokes with fewer than three points are returned unchanged.
    """
    if len(points) < 3:
        return list(points)

    last = len(points) - 1
    result = []
    for i in range(last):
        p0 = points[max(0, i - 1)]
        p1 = points[i]
        p2 = points[min(last, i + 1)]
        p3 = points[min(last, i + 2)]
        for j in range(num_segments):
            t = j / num_segments
            t2 = t * t
            t3 = t2 * t
            result.append(
                tuple(
                    0.5
                    * (
                        2 * p1[k]
                        + (-p0[k] + p2[k]) * t
                        + (2 * p0[k] - 5 * p1[k] + 4 * p2[k] - p3[k]) * t2
                        + (-p0[k] + 3 * p1[k] - 3 * p2[k] + p3[k]) * t3
                    )
                    for k in (0, 1)
                )
            )

    result.append(points[-1])
    return result
