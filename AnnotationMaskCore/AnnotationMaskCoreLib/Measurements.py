"""Clinical measurements on annotation masks.

Provides area, perimeter, centroid, bounding box, shape descriptors
(circularity, aspect ratio, solidity) and intensity statistics for a single
mask, volume and surface estimates for a stack of slice masks, and simple
distance and angle measurements.

Physical units use ``PixelSpacing``; without it, one pixel is 1 mm.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

import numpy as np
from scipy import ndimage

from .MaskPrimitive import IntensityStats, Mask, calculate_mask_stats, summarize_intensities

logger = logging.getLogger(__name__)

_CROSS = ndimage.generate_binary_structure(2, 1)


@dataclass
class PixelSpacing:
    """Physical pixel size in mm, plus optional slice geometry."""

    x: float = 1.0
    y: float = 1.0
    slice_thickness: float | None = None
    slice_spacing: float | None = None


@dataclass
class BoundingBox:
    min_x: int = 0
    min_y: int = 0
    max_x: int = 0
    max_y: int = 0
    width: int = 0
    height: int = 0


@dataclass
class MeasurementResult:
    """Measurements of one 2D mask."""

    area_pixels: int
    area_mm2: float
    perimeter_pixels: int
    perimeter_mm: float
    centroid: tuple[float, float]
    bounding_box: BoundingBox
    circularity: float  # 4*pi*area / perimeter^2
    aspect_ratio: float  # bounding box width / height
    solidity: float  # area / convex hull area
    intensity: IntensityStats | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON or CSV export."""
        result = {
            "area_pixels": self.area_pixels,
            "area_mm2": self.area_mm2,
            "perimeter_pixels": self.perimeter_pixels,
            "perimeter_mm": self.perimeter_mm,
            "centroid_x": self.centroid[0],
            "centroid_y": self.centroid[1],
            "bounding_box": asdict(self.bounding_box),
            "circularity": self.circularity,
            "aspect_ratio": self.aspect_ratio,
            "solidity": self.solidity,
        }
        if self.intensity is not None:
            result.update(
                {
                    "mean_intensity": self.intensity.mean,
                    "std_intensity": self.intensity.std,
                    "min_intensity": self.intensity.min,
                    "max_intensity": self.intensity.max,
                }
            )
        return result


@dataclass
class VolumeResult:
    """Volume of a stack of slice masks."""

    volume_voxels: int
    volume_mm3: float
    volume_ml: float
    surface_area_mm2: float
    slice_areas: list[tuple[int, float]] = field(default_factory=list)  # (slice index, mm^2)
    annotated_slices: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "volume_voxels": self.volume_voxels,
            "volume_mm3": self.volume_mm3,
            "volume_ml": self.volume_ml,
            "surface_area_mm2": self.surface_area_mm2,
            "slice_areas": [
                {"slice_index": index, "area_mm2": area} for index, area in self.slice_areas
            ],
            "annotated_slices": self.annotated_slices,
        }


@dataclass
class DistanceMeasurement:
    start: tuple[float, float]
    end: tuple[float, float]
    distance_pixels: float
    distance_mm: float


@dataclass
class AngleMeasurement:
    vertex: tuple[float, float]
    point1: tuple[float, float]
    point2: tuple[float, float]
    angle_degrees: float
    angle_radians: float


def calculate_area(mask: Mask, spacing: PixelSpacing | None = None) -> tuple[int, float]:
    """Return (area in pixels, area in mm^2)."""
    area_pixels = int(np.count_nonzero(mask.selected))
    pixel_area = spacing.x * spacing.y if spacing is not None else 1.0
    return area_pixels, area_pixels * pixel_area


def calculate_perimeter(mask: Mask, spacing: PixelSpacing | None = None) -> tuple[int, float]:
    """Count exposed pixel faces.

    A face is exposed when the neighbouring pixel across it is unset or
    outside the image. Left and right faces measure ``spacing.y`` mm, top and
    bottom faces ``spacing.x`` mm.

    Returns:
        Tuple of (exposed face count, perimeter in mm).
    """
    px = spacing.x if spacing is not None else 1.0
    py = spacing.y if spacing is not None else 1.0

    padded = np.pad(mask.selected, 1, mode="constant", constant_values=False)
    inner = padded[1:-1, 1:-1]
    left = int(np.count_nonzero(inner & ~padded[1:-1, :-2]))
    right = int(np.count_nonzero(inner & ~padded[1:-1, 2:]))
    top = int(np.count_nonzero(inner & ~padded[:-2, 1:-1]))
    bottom = int(np.count_nonzero(inner & ~padded[2:, 1:-1]))

    faces = left + right + top + bottom
    return faces, (left + right) * py + (top + bottom) * px


def calculate_centroid(mask: Mask) -> tuple[float, float]:
    """Mean (x, y) of the set pixels; (0, 0) for an empty mask."""
    ys, xs = np.nonzero(mask.selected)
    if xs.size == 0:
        return 0.0, 0.0
    return float(xs.mean()), float(ys.mean())


def calculate_bounding_box(mask: Mask) -> BoundingBox:
    pixel_count, bounds = calculate_mask_stats(mask.data)
    if pixel_count == 0:
        return BoundingBox()
    return BoundingBox(
        min_x=bounds.min_x,
        min_y=bounds.min_y,
        max_x=bounds.max_x,
        max_y=bounds.max_y,
        width=bounds.max_x - bounds.min_x + 1,
        height=bounds.max_y - bounds.min_y + 1,
    )


def _graham_scan(points: list[tuple[int, int]]) -> list[tuple[int, int]]:
    pivot = min(points, key=lambda p: (p[1], p[0]))
    others = list(points)
    others.remove(pivot)
    others.sort(
        key=lambda p: (
            math.atan2(p[1] - pivot[1], p[0] - pivot[0]),
            (p[0] - pivot[0]) ** 2 + (p[1] - pivot[1]) ** 2,
        )
    )

    hull = [pivot]
    for point in others:
        while len(hull) > 1:
            top = hull[-1]
            second = hull[-2]
            cross = (top[0] - second[0]) * (point[1] - second[1]) - (top[1] - second[1]) * (
                point[0] - second[0]
            )
            if cross > 0:
                break
            hull.pop()
        hull.append(point)
    return hull


def _polygon_area(vertices: Sequence[tuple[float, float]]) -> float:
    """Shoelace area of a closed polygon."""
    if len(vertices) < 3:
        return 0.0
    xs = np.array([v[0] for v in vertices], dtype=np.float64)
    ys = np.array([v[1] for v in vertices], dtype=np.float64)
    return float(abs(np.dot(xs, np.roll(ys, -1)) - np.dot(np.roll(xs, -1), ys)) / 2)


def calculate_convex_hull_area(mask: Mask) -> float:
    """Area of the convex hull through the centres of the boundary pixels.

    Boundary pixels are set pixels on the image border or with an unset
    4-neighbour. With fewer than three boundary pixels, their count is
    returned instead.
    """
    selected = mask.selected
    interior = ndimage.binary_erosion(selected, structure=_CROSS, border_value=0)
    ys, xs = np.nonzero(selected & ~interior)
    points = [(int(x), int(y)) for x, y in zip(xs, ys)]

    if len(points) < 3:
        return float(len(points))
    return _polygon_area(_graham_scan(points))


def calculate_intensity_stats(mask: Mask, image_data: Any) -> IntensityStats:
    """Statistics of the image intensities under the set pixels.

    ``image_data`` is a buffer in the same row-major layout as the mask;
    pixels past the end of a shorter buffer are ignored.
    """
    image = np.asarray(image_data, dtype=np.float64).ravel()
    selected = mask.selected.ravel()
    count = min(selected.size, image.size)
    return summarize_intensities(image[:count][selected[:count]])


def calculate_measurements(
    mask: Mask,
    spacing: PixelSpacing | None = None,
    image_data: Any = None,
) -> MeasurementResult:
    """Compute every 2D measurement of a mask.

    Args:
        mask: Mask to measure.
        spacing: Physical pixel size; pixels count as 1 mm when omitted.
        image_data: Optional intensity buffer for intensity statistics.

    Returns:
        MeasurementResult. Circularity uses pixel units and is 0 for an empty
        mask; aspect ratio is 1 and solidity is 1 when undefined.
    """
    area_pixels, area_mm2 = calculate_area(mask, spacing)
    perimeter_pixels, perimeter_mm = calculate_perimeter(mask, spacing)
    bounding_box = calculate_bounding_box(mask)

    if perimeter_pixels > 0:
        circularity = 4 * math.pi * area_pixels / perimeter_pixels**2
    else:
        circularity = 0.0

    aspect_ratio = bounding_box.width / bounding_box.height if bounding_box.height > 0 else 1.0

    hull_area = calculate_convex_hull_area(mask)
    solidity = area_pixels / hull_area if hull_area > 0 else 1.0

    intensity = None
    if image_data is not None:
        intensity = calculate_intensity_stats(mask, image_data)

    return MeasurementResult(
        area_pixels=area_pixels,
        area_mm2=area_mm2,
        perimeter_pixels=perimeter_pixels,
        perimeter_mm=perimeter_mm,
        centroid=calculate_centroid(mask),
        bounding_box=bounding_box,
        circularity=circularity,
        aspect_ratio=aspect_ratio,
        solidity=solidity,
        intensity=intensity,
    )


def calculate_volume(masks: Sequence[Mask], spacing: PixelSpacing) -> VolumeResult:
    """Estimate volume and surface area from per-slice masks.

    Slice spacing defaults to the slice thickness, which defaults to 1 mm.
    Each non-empty slice contributes its perimeter times the slice spacing
    plus twice its area (top and bottom caps) to the surface area.
    """
    slice_thickness = spacing.slice_thickness if spacing.slice_thickness is not None else 1.0
    slice_spacing = spacing.slice_spacing if spacing.slice_spacing is not None else slice_thickness
    pixel_area = spacing.x * spacing.y

    volume_voxels = 0
    surface_area = 0.0
    slice_areas = []
    for index, mask in enumerate(masks):
        area_pixels, area_mm2 = calculate_area(mask, spacing)
        if area_pixels == 0:
            continue

        volume_voxels += area_pixels
        slice_areas.append((index, area_mm2))
        _, perimeter_mm = calculate_perimeter(mask, spacing)
        surface_area += perimeter_mm * slice_spacing + 2 * area_mm2

    volume_mm3 = volume_voxels * pixel_area * slice_spacing
    logger.debug(f"Volume over {len(slice_areas)}/{len(masks)} slices: {volume_mm3:.2f} mm3")

    return VolumeResult(
        volume_voxels=volume_voxels,
        volume_mm3=volume_mm3,
        volume_ml=volume_mm3 / 1000,
        surface_area_mm2=surface_area,
        slice_areas=slice_areas,
        annotated_slices=len(slice_areas),
    )


def calculate_distance(
    start: tuple[float, float],
    end: tuple[float, float],
    spacing: PixelSpacing | None = None,
) -> DistanceMeasurement:
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    distance_pixels = math.hypot(dx, dy)
    if spacing is not None:
        distance_mm = math.hypot(dx * spacing.x, dy * spacing.y)
    else:
        distance_mm = distance_pixels
    return DistanceMeasurement(start, end, distance_pixels, distance_mm)


def calculate_angle(
    vertex: tuple[float, float],
    point1: tuple[float, float],
    point2: tuple[float, float],
) -> AngleMeasurement:
    """Angle at ``vertex`` between the rays to ``point1`` and ``point2``.

    Degenerate rays (a point equal to the vertex) give an angle of 0.
    """
    v1 = (point1[0] - vertex[0], point1[1] - vertex[1])
    v2 = (point2[0] - vertex[0], point2[1] - vertex[1])
    mag1 = math.hypot(*v1)
    mag2 = math.hypot(*v2)

    radians = 0.0
    if mag1 > 0 and mag2 > 0:
        cos_angle = (v1[0] * v2[0] + v1[1] * v2[1]) / (mag1 * mag2)
        radians = math.acos(max(-1.0, min(1.0, cos_angle)))

    return AngleMeasurement(vertex, point1, point2, math.degrees(radians), radians)


def format_measurement(value: float, unit: str, precision: int = 2) -> str:
    return f"{value:.{precision}f} {unit}"


def format_area(area_mm2: float) -> str:
    """Format an area, switching to cm² from 100 mm²."""
    if area_mm2 >= 100:
        return format_measurement(area_mm2 / 100, "cm²")
    return format_measurement(area_mm2, "mm²")


def format_volume(volume_mm3: float) -> str:
    """Format a volume, switching to mL from 1000 mm³."""
    if volume_mm3 >= 1000:
        return format_measurement(volume_mm3 / 1000, "mL")
    return format_measurement(volume_mm3, "mm³")
