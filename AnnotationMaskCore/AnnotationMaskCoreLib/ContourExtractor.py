"""Conversion between binary masks and polygon contours.

``mask_to_contours`` traces the outer boundary of each region with Moore
neighbour tracing; ``mask_from_polygon`` rasterizes a closed polygon with an
even-odd scanline fill. Neither is an exact inverse of the other: tracing
runs through pixel centres and the scanline fill uses a half-open vertical
rule, so a round trip can lose up to one row of boundary pixels.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import numpy as np
from scipy import ndimage
from skimage.draw import line

from .MaskPrimitive import Mask, MaskOperationResult, create_empty_mask, make_result

logger = logging.getLogger(__name__)

Vertex = tuple[float, float]

# 8-neighbour directions, clockwise from "right" in image coordinates
_DX = (1, 1, 0, -1, -1, -1, 0, 1)
_DY = (0, 1, 1, 1, 0, -1, -1, -1)

_CROSS = ndimage.generate_binary_structure(2, 1)


def _edge_pixels(selected: np.ndarray) -> np.ndarray:
    """Set pixels on the image border or with an unset 4-neighbour."""
    interior = ndimage.binary_erosion(selected, structure=_CROSS, border_value=0)
    return selected & ~interior


def _trace_contour(
    selected: np.ndarray,
    edge: np.ndarray,
    visited: np.ndarray,
    start_x: int,
    start_y: int,
) -> list[tuple[int, int]]:
    height, width = selected.shape
    contour: list[tuple[int, int]] = []

    x, y = start_x, start_y
    direction = 0
    max_iterations = width * height
    iterations = 0

    while True:
        if not visited[y, x] and edge[y, x]:
            contour.append((x, y))
            visited[y, x] = True

        # Resume the clockwise search 135 degrees back from the last move
        search_start = (direction + 5) % 8
        for i in range(8):
            check = (search_start + i) % 8
            nx = x + _DX[check]
            ny = y + _DY[check]
            if 0 <= nx < width and 0 <= ny < height and selected[ny, nx]:
                x, y, direction = nx, ny, check
                break
        else:
            break

        iterations += 1
        if (x == start_x and y == start_y) or iterations >= max_iterations:
            break

    return contour


def mask_to_contours(mask: Mask) -> list[list[tuple[int, int]]]:
    """Trace the boundary of every region in a mask.

    Pixels are scanned in raster order; each unvisited edge pixel starts a
    Moore-neighbour trace. Edge pixels met during a trace are appended once
    and marked visited, so a region yields a single contour. Traces shorter
    than three points are discarded.

    Args:
        mask: Input mask.

    Returns:
        List of contours, each a list of (x, y) pixel coordinates.
    """
    selected = mask.selected
    edge = _edge_pixels(selected)
    visited = np.zeros_like(selected, dtype=bool)

    contours = []
    for y, x in zip(*np.nonzero(edge)):
        if visited[y, x]:
            continue
        contour = _trace_contour(selected, edge, visited, int(x), int(y))
        if len(contour) >= 3:
            contours.append(contour)

    logger.debug(f"Traced {len(contours)} contours from {mask.width}x{mask.height} mask")
    return contours


def _scanline_spans(vertices: Sequence[Vertex], y: int) -> list[float]:
    """Sorted x positions where the polygon edges cross scanline ``y``."""
    crossings = []
    count = len(vertices)
    for i in range(count):
        x1, y1 = vertices[i]
        x2, y2 = vertices[(i + 1) % count]
        if (y1 <= y < y2) or (y2 <= y < y1):
            crossings.append(x1 + (y - y1) / (y2 - y1) * (x2 - x1))
    crossings.sort()
    return crossings


def fill_polygon(data: np.ndarray, vertices: Sequence[Vertex], value: int = 1) -> None:
    """Scanline-fill a polygon into ``data`` in place.

    Each scanline fills ``[ceil(x_i), floor(x_{i+1})]`` between successive
    crossing pairs, clipped to the array. Fewer than three vertices is a no-op.
    """
    if len(vertices) < 3:
        return

    height, width = data.shape
    min_y = max(0, min(math.floor(y) for _, y in vertices))
    max_y = min(height - 1, max(math.ceil(y) for _, y in vertices))

    for y in range(min_y, max_y + 1):
        crossings = _scanline_spans(vertices, y)
        for start, end in zip(crossings[0::2], crossings[1::2]):
            x_start = max(0, math.ceil(start))
            x_end = min(width - 1, math.floor(end))
            if x_start <= x_end:
                data[y, x_start : x_end + 1] = value


def draw_polygon_outline(data: np.ndarray, vertices: Sequence[Vertex], value: int = 1) -> None:
    """Draw the closed outline of a polygon into ``data`` in place.

    Vertices are rounded half-up to pixel positions and joined with
    Bresenham lines; pixels outside the array are dropped.
    """
    height, width = data.shape
    rounded = [(math.floor(x + 0.5), math.floor(y + 0.5)) for x, y in vertices]
    for i, (x0, y0) in enumerate(rounded):
        x1, y1 = rounded[(i + 1) % len(rounded)]
        rows, cols = line(y0, x0, y1, x1)
        inside = (rows >= 0) & (rows < height) & (cols >= 0) & (cols < width)
        data[rows[inside], cols[inside]] = value


def mask_from_polygon(width: int, height: int, vertices: Sequence[Vertex]) -> MaskOperationResult:
    """Rasterize a closed polygon into a new mask.

    A scanline at integer ``y`` crosses edge (x1, y1)-(x2, y2) when
    ``y1 <= y < y2`` or ``y2 <= y < y1``. Fewer than three vertices gives an
    empty mask.

    Args:
        width: Mask width.
        height: Mask height.
        vertices: Polygon vertices as (x, y).

    Returns:
        MaskOperationResult with the filled polygon.
    """
    if len(vertices) < 3:
        return create_empty_mask(width, height)

    data = np.zeros((height, width), dtype=np.uint8)
    fill_polygon(data, vertices)
    return make_result(data)


def polygon_outline_mask(
    width: int, height: int, vertices: Sequence[Vertex]
) -> MaskOperationResult:
    """Rasterize only the closed outline of a polygon into a new mask."""
    if len(vertices) == 0:
        return create_empty_mask(width, height)

    data = np.zeros((height, width), dtype=np.uint8)
    draw_polygon_outline(data, vertices)
    return make_result(data)
