"""Assemble per-slice 2D annotations into a labelled 3D volume.

The labelmap stores one byte per voxel in a (depth, height, width) array;
0 is background and every non-zero value has a ``LabelInfo`` entry. Volumes
can be handed to SimpleITK (and from there to volume rendering or SEG
encoders) with ``labelmap_to_sitk``.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

import numpy as np
import SimpleITK as sitk
from scipy import ndimage
from skimage.morphology import disk

from .ContourExtractor import draw_polygon_outline, fill_polygon
from .MaskPrimitive import DimensionMismatchError, InvalidArgumentError

logger = logging.getLogger(__name__)

IDENTITY_DIRECTION = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0)
DEFAULT_BRUSH_RADIUS = 5
DEFAULT_LABEL_NAME = "Annotation"
MAX_LABEL_ID = 255

# Colors assigned to labels discovered in imported volumes
LABEL_COLORS = (
    (255, 0, 0, 255),
    (0, 255, 0, 255),
    (0, 0, 255, 255),
    (255, 255, 0, 255),
    (0, 255, 255, 255),
    (255, 0, 255, 255),
)


class AnnotationKind(str, Enum):
    POLYGON = "polygon"
    FREEHAND = "freehand"
    BRUSH = "brush"


class FillMethod(str, Enum):
    SCANLINE = "scanline"
    FLOODFILL = "floodfill"
    BOUNDARY = "boundary"


@dataclass
class SliceAnnotation:
    """A 2D annotation drawn on one slice.

    Brush and freehand annotations are strokes painted with ``radius``
    (5 when unset). Polygon annotations are closed outlines that get filled.
    """

    kind: AnnotationKind
    points: list[tuple[float, float]] = field(default_factory=list)
    radius: int | None = None

    def __post_init__(self):
        try:
            self.kind = AnnotationKind(self.kind)
        except ValueError as e:
            raise InvalidArgumentError(f"Unknown annotation kind: {self.kind!r}") from e


@dataclass
class LabelInfo:
    id: int
    name: str
    color: tuple[int, int, int, int]
    visible: bool = True

    def __post_init__(self):
        if not 1 <= self.id <= MAX_LABEL_ID:
            raise InvalidArgumentError(f"Label id must lie in 1..{MAX_LABEL_ID}, got {self.id}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": list(self.color),
            "visible": self.visible,
        }


@dataclass(eq=False)
class Labelmap3D:
    """Labelled voxel volume.

    Attributes:
        dimensions: (width, height, depth) in voxels.
        spacing: Voxel size in mm (x, y, z).
        origin: World position of the first voxel in mm.
        direction: Row-major 3x3 direction cosine matrix.
        data: uint8 array of shape (depth, height, width).
        labels: Label id to LabelInfo for every non-zero value in ``data``.
        source_slices: Slices that were drawn on (not interpolated).
    """

    dimensions: tuple[int, int, int]
    spacing: tuple[float, float, float] = (1.0, 1.0, 1.0)
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0)
    direction: tuple[float, ...] = IDENTITY_DIRECTION
    data: np.ndarray | None = None
    labels: dict[int, LabelInfo] = field(default_factory=dict)
    source_slices: set[int] = field(default_factory=set)
    num_labels: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: f"labelmap-{uuid.uuid4().hex[:12]}")

    def __post_init__(self):
        width, height, depth = self.dimensions
        if self.data is None:
            self.data = np.zeros((depth, height, width), dtype=np.uint8)
        else:
            self.data = np.asarray(self.data, dtype=np.uint8).reshape(depth, height, width)

    @property
    def width(self) -> int:
        return self.dimensions[0]

    @property
    def height(self) -> int:
        return self.dimensions[1]

    @property
    def depth(self) -> int:
        return self.dimensions[2]


@dataclass
class LabelmapOptions:
    dimensions: tuple[int, int, int]
    spacing: tuple[float, float, float] = (1.0, 1.0, 1.0)
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0)
    label_id: int = 1
    label_color: tuple[int, int, int, int] = (255, 0, 0, 255)
    label_name: str = DEFAULT_LABEL_NAME
    fill_method: FillMethod = FillMethod.SCANLINE
    interpolate: bool = False
    max_interpolation_gap: int = 5

    def __post_init__(self):
        try:
            self.fill_method = FillMethod(self.fill_method)
        except ValueError as e:
            raise InvalidArgumentError(f"Unknown fill method: {self.fill_method!r}") from e


@dataclass
class LabelmapStats:
    total_voxels: int
    labeled_voxels: int
    volume_mm3: float
    surface_area_mm2: float
    label_counts: dict[int, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_voxels": self.total_voxels,
            "labeled_voxels": self.labeled_voxels,
            "volume_mm3": self.volume_mm3,
            "surface_area_mm2": self.surface_area_mm2,
            "label_counts": dict(self.label_counts),
        }


def create_empty_labelmap(options: LabelmapOptions) -> Labelmap3D:
    """Create an all-background labelmap with no labels."""
    return Labelmap3D(
        dimensions=tuple(options.dimensions),
        spacing=tuple(options.spacing),
        origin=tuple(options.origin),
    )


def _stamp_disks(
    slice_data: np.ndarray, points: Sequence[tuple[float, float]], radius: int, label_id: int
) -> None:
    """Stamp filled disks centred on the rounded stroke points."""
    height, width = slice_data.shape
    footprint = disk(radius).astype(bool)
    for x, y in points:
        cx = math.floor(x + 0.5)
        cy = math.floor(y + 0.5)
        top, bottom = max(0, cy - radius), min(height, cy + radius + 1)
        left, right = max(0, cx - radius), min(width, cx + radius + 1)
        if top >= bottom or left >= right:
            continue
        region = footprint[
            top - (cy - radius) : bottom - (cy - radius),
            left - (cx - radius) : right - (cx - radius),
        ]
        slice_data[top:bottom, left:right][region] = label_id


def _fill_closed_outline(
    slice_data: np.ndarray,
    points: Sequence[tuple[float, float]],
    label_id: int,
    fill_method: FillMethod,
) -> None:
    if fill_method == FillMethod.SCANLINE:
        fill_polygon(slice_data, points, label_id)
    elif fill_method == FillMethod.BOUNDARY:
        draw_polygon_outline(slice_data, points, label_id)
    elif fill_method == FillMethod.FLOODFILL:
        outline = np.zeros(slice_data.shape, dtype=np.uint8)
        draw_polygon_outline(outline, points)
        slice_data[ndimage.binary_fill_holes(outline == 1)] = label_id
    else:
        raise InvalidArgumentError(f"Unknown fill method: {fill_method!r}")


def _rasterize_annotation(
    slice_data: np.ndarray,
    annotation: SliceAnnotation,
    label_id: int,
    fill_method: FillMethod,
) -> None:
    points = annotation.points
    if annotation.kind in (AnnotationKind.BRUSH, AnnotationKind.FREEHAND):
        radius = annotation.radius if annotation.radius is not None else DEFAULT_BRUSH_RADIUS
        _stamp_disks(slice_data, points, radius, label_id)
    elif annotation.kind == AnnotationKind.POLYGON:
        _fill_closed_outline(slice_data, points, label_id, fill_method)
    else:
        raise InvalidArgumentError(f"Unhandled annotation kind: {annotation.kind!r}")


def _interpolate_gaps(
    data: np.ndarray, slice_indices: list[int], label_id: int, max_gap: int
) -> int:
    """Fill slices between consecutive annotated slices; return slices written."""
    filled = 0
    for slice1, slice2 in zip(slice_indices[:-1], slice_indices[1:]):
        gap = slice2 - slice1
        if gap <= 1 or gap > max_gap:
            continue

        in_first = data[slice1] == label_id
        in_second = data[slice2] == label_id
        for z in range(slice1 + 1, slice2):
            t = (z - slice1) / gap
            target = in_first & in_second
            if t < 0.5:
                target |= in_first
            else:
                target |= in_second
            data[z][target] = label_id
            filled += 1
    return filled


def annotations_to_labelmap(
    annotations_by_slice: Mapping[int, Sequence[SliceAnnotation]],
    options: LabelmapOptions,
) -> Labelmap3D:
    """Rasterize per-slice annotations into a new labelmap.

    Every annotation is painted with ``options.label_id``. Annotations on
    slices outside ``[0, depth)`` are skipped, as are annotations with fewer
    than three points. With ``options.interpolate``, slices strictly between
    two annotated slices that are at most ``max_interpolation_gap`` apart
    receive the label where both neighbours have it, or where the nearer
    neighbour has it (the later slice wins at the midpoint).

    Args:
        annotations_by_slice: Slice index to the annotations drawn on it.
        options: Geometry, label and fill settings.

    Returns:
        The new labelmap with its single label registered.
    """
    start = time.perf_counter()
    width, height, depth = options.dimensions
    labelmap = create_empty_labelmap(options)
    label_id = options.label_id

    labelmap.labels[label_id] = LabelInfo(
        id=label_id,
        name=options.label_name,
        color=tuple(options.label_color),
        visible=True,
    )
    labelmap.num_labels = 1

    processed = []
    for slice_index, annotations in annotations_by_slice.items():
        if not 0 <= slice_index < depth:
            logger.warning(f"Skipping annotations on slice {slice_index}: volume depth is {depth}")
            continue

        slice_data = labelmap.data[slice_index]
        for annotation in annotations:
            if len(annotation.points) < 3:
                continue
            _rasterize_annotation(slice_data, annotation, label_id, options.fill_method)

        labelmap.source_slices.add(slice_index)
        processed.append(slice_index)

    interpolated = 0
    if options.interpolate and len(processed) > 1:
        interpolated = _interpolate_gaps(
            labelmap.data, sorted(processed), label_id, options.max_interpolation_gap
        )

    elapsed = (time.perf_counter() - start) * 1000
    logger.info(
        f"Built {width}x{height}x{depth} labelmap from {len(processed)} slices "
        f"({interpolated} interpolated) in {elapsed:.1f}ms"
    )
    return labelmap


def get_labelmap_stats(labelmap: Labelmap3D) -> LabelmapStats:
    """Voxel counts, physical volume and an approximate surface area.

    The surface estimate counts labelled voxels that touch background or the
    volume border through a face, times the square of the mean spacing.
    """
    sx, sy, sz = labelmap.spacing
    labeled = labelmap.data > 0
    labeled_voxels = int(labeled.sum())

    interior = ndimage.binary_erosion(
        labeled, structure=ndimage.generate_binary_structure(3, 1), border_value=0
    )
    surface_voxels = int((labeled & ~interior).sum())
    mean_spacing = (sx + sy + sz) / 3

    values, counts = np.unique(labelmap.data[labeled], return_counts=True)

    return LabelmapStats(
        total_voxels=int(labelmap.data.size),
        labeled_voxels=labeled_voxels,
        volume_mm3=labeled_voxels * sx * sy * sz,
        surface_area_mm2=surface_voxels * mean_spacing * mean_spacing,
        label_counts={int(v): int(c) for v, c in zip(values, counts)},
    )


def extract_label(labelmap: Labelmap3D, label_id: int) -> Labelmap3D:
    """Return a binary labelmap (label 1) containing only ``label_id``."""
    extracted = Labelmap3D(
        dimensions=labelmap.dimensions,
        spacing=labelmap.spacing,
        origin=labelmap.origin,
        direction=labelmap.direction,
        data=(labelmap.data == label_id).astype(np.uint8),
    )

    info = labelmap.labels.get(label_id)
    if info is not None:
        extracted.labels[1] = replace(info, id=1)
        extracted.num_labels = 1
    elif extracted.data.any():
        extracted.labels[1] = LabelInfo(id=1, name=f"Label {label_id}", color=LABEL_COLORS[0])
        extracted.num_labels = 1
    return extracted


def merge_labelmaps(labelmaps: Sequence[Labelmap3D]) -> Labelmap3D:
    """Combine labelmaps into one, renumbering labels 1, 2, 3, ...

    Labels are renumbered in input order; where volumes overlap, later
    labelmaps overwrite earlier ones. Geometry is taken from the first.

    Raises:
        InvalidArgumentError: If ``labelmaps`` is empty or together
            they hold more than 255 labels.
        DimensionMismatchError: If the labelmaps differ in dimensions.
    """
    if len(labelmaps) == 0:
        raise InvalidArgumentError("No labelmaps to merge")

    total_labels = sum(len(labelmap.labels) for labelmap in labelmaps)
    if total_labels > MAX_LABEL_ID:
        raise InvalidArgumentError(
            f"Cannot merge {total_labels} labels into one labelmap (at most {MAX_LABEL_ID})"
        )

    first = labelmaps[0]
    merged = Labelmap3D(
        dimensions=first.dimensions,
        spacing=first.spacing,
        origin=first.origin,
        direction=first.direction,
    )

    next_label = 1
    for labelmap in labelmaps:
        if tuple(labelmap.dimensions) != tuple(first.dimensions):
            raise DimensionMismatchError(
                f"Cannot merge labelmaps of dimensions {labelmap.dimensions} "
                f"and {first.dimensions}"
            )

        lookup = np.zeros(256, dtype=np.uint8)
        for old_id, info in labelmap.labels.items():
            lookup[old_id] = next_label
            merged.labels[next_label] = replace(info, id=next_label)
            next_label += 1

        remapped = lookup[labelmap.data]
        merged.data[remapped > 0] = remapped[remapped > 0]
        merged.source_slices |= labelmap.source_slices

    merged.num_labels = next_label - 1
    return merged


def _check_slice_index(labelmap: Labelmap3D, slice_index: int) -> None:
    if not 0 <= slice_index < labelmap.depth:
        raise InvalidArgumentError(
            f"Slice index {slice_index} outside volume of depth {labelmap.depth}"
        )


def get_labelmap_slice(labelmap: Labelmap3D, slice_index: int) -> np.ndarray:
    """Return a copy of one z-slab as a (height, width) array."""
    _check_slice_index(labelmap, slice_index)
    return labelmap.data[slice_index].copy()


def set_labelmap_slice(labelmap: Labelmap3D, slice_index: int, slice_data: Any) -> None:
    """Replace one z-slab of ``labelmap`` in place.

    This is the only operation that mutates an existing labelmap.

    Raises:
        InvalidArgumentError: If the slice index is outside the volume or the
            slab contains label ids with no ``labels`` entry.
        DimensionMismatchError: If the slab size is not ``width * height``.
    """
    _check_slice_index(labelmap, slice_index)
    slab = np.asarray(slice_data, dtype=np.uint8)
    if slab.size != labelmap.width * labelmap.height:
        raise DimensionMismatchError(
            f"Slice has {slab.size} values, expected {labelmap.width * labelmap.height}"
        )

    unknown = set(np.unique(slab).tolist()) - {0} - set(labelmap.labels)
    if unknown:
        raise InvalidArgumentError(f"Slice contains unregistered label ids: {sorted(unknown)}")

    labelmap.data[slice_index] = slab.reshape(labelmap.height, labelmap.width)


def labelmap_to_sitk(labelmap: Labelmap3D) -> sitk.Image:
    """Convert to a SimpleITK uint8 image with spacing, origin and direction."""
    image = sitk.GetImageFromArray(labelmap.data)
    image.SetSpacing([float(s) for s in labelmap.spacing])
    image.SetOrigin([float(o) for o in labelmap.origin])
    image.SetDirection([float(d) for d in labelmap.direction])
    return image


def labelmap_from_sitk(
    image: sitk.Image, label_names: Mapping[int, str] | None = None
) -> Labelmap3D:
    """Create a labelmap from a 3D SimpleITK label image.

    Every non-zero value becomes a label, named from ``label_names`` when
    given and "Label <id>" otherwise.

    Raises:
        InvalidArgumentError: If the image is not 3D or has values above 255.
    """
    if image.GetDimension() != 3:
        raise InvalidArgumentError(f"Expected a 3D image, got {image.GetDimension()}D")

    array = sitk.GetArrayFromImage(image)
    if array.size and (array.min() < 0 or array.max() > 255):
        raise InvalidArgumentError("Label values must lie in 0..255")

    label_names = label_names or {}
    labelmap = Labelmap3D(
        dimensions=tuple(int(s) for s in image.GetSize()),
        spacing=tuple(image.GetSpacing()),
        origin=tuple(image.GetOrigin()),
        direction=tuple(image.GetDirection()),
        data=array.astype(np.uint8),
    )

    for i, value in enumerate(v for v in np.unique(labelmap.data).tolist() if v != 0):
        labelmap.labels[value] = LabelInfo(
            id=value,
            name=label_names.get(value, f"Label {value}"),
            color=LABEL_COLORS[i % len(LABEL_COLORS)],
        )
    labelmap.num_labels = len(labelmap.labels)
    return labelmap
