"""Intensity-based mask generation.

Provides fixed-range thresholding, locally adaptive thresholding, Otsu and
simplified multi-level Otsu, hysteresis thresholding, and a seeded
connected-threshold selection (magic wand).

Image inputs are intensity buffers of ``width * height`` values, either flat
(row-major) or already shaped (height, width).
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import SimpleITK as sitk
from scipy import ndimage

from .MaskPrimitive import (
    IntensityStats,
    InvalidArgumentError,
    MaskOperationResult,
    as_image,
    create_empty_mask,
    make_result,
    summarize_intensities,
)

logger = logging.getLogger(__name__)

ADAPTIVE_METHODS = ("mean", "gaussian")


@dataclass
class ThresholdConfig:
    """Inclusive intensity range to select."""

    lower_threshold: float
    upper_threshold: float
    invert: bool = False


@dataclass
class AdaptiveThresholdConfig:
    """Local-mean threshold parameters.

    Attributes:
        window_size: Odd side length of the square neighbourhood.
        constant: Offset subtracted from the local mean.
        method: "mean" subtracts ``constant``; "gaussian" subtracts
            ``constant * std * 0.1``.
    """

    window_size: int = 15
    constant: float = 5.0
    method: str = "mean"


@dataclass
class MagicWandConfig:
    """Seeded region selection parameters."""

    tolerance: float = 20.0
    eight_connected: bool = False
    smooth_edges: bool = False


@dataclass(eq=False)
class ThresholdResult(MaskOperationResult):
    """Threshold mask plus statistics over the selected intensities."""

    stats: IntensityStats = field(default_factory=IntensityStats)
    histogram: np.ndarray | None = None


@dataclass
class HistogramResult:
    histogram: np.ndarray
    min_val: float
    max_val: float
    bin_width: float


@dataclass
class OtsuResult:
    threshold: float
    result: ThresholdResult
    histogram: np.ndarray


@dataclass
class MultiOtsuResult:
    thresholds: list[float]
    masks: list[MaskOperationResult]


def _threshold_result(selected: np.ndarray, image: np.ndarray) -> ThresholdResult:
    base = make_result(selected)
    return ThresholdResult(
        data=base.data,
        width=base.width,
        height=base.height,
        pixel_count=base.pixel_count,
        bounds=base.bounds,
        stats=summarize_intensities(image[selected]),
    )


def threshold_segment(
    image_data: Any, width: int, height: int, config: ThresholdConfig
) -> ThresholdResult:
    """Select pixels with ``lower <= intensity <= upper`` (or the complement).

    Args:
        image_data: Intensity buffer of ``width * height`` values.
        width: Image width in pixels.
        height: Image height in pixels.
        config: Threshold range and inversion flag.

    Returns:
        ThresholdResult with intensity statistics over the selected pixels.
    """
    image = as_image(image_data, width, height)
    selected = (image >= config.lower_threshold) & (image <= config.upper_threshold)
    if config.invert:
        selected = ~selected
    return _threshold_result(selected, image)


def _integral_image(values: np.ndarray) -> np.ndarray:
    """Summed-area table padded with a leading row and column of zeros."""
    table = np.zeros((values.shape[0] + 1, values.shape[1] + 1), dtype=np.float64)
    table[1:, 1:] = values.cumsum(axis=0).cumsum(axis=1)
    return table


def adaptive_threshold(
    image_data: Any, width: int, height: int, config: AdaptiveThresholdConfig
) -> ThresholdResult:
    """Threshold each pixel against the statistics of its local window.

    Windows are clipped at the image edges. The local mean (and standard
    deviation for the "gaussian" method) come from summed-area tables, so
    the cost is independent of the window size. A pixel is selected when its
    intensity is strictly greater than the local threshold. Statistics are
    taken over the selected intensities.

    Raises:
        InvalidArgumentError: If the window size is not a positive odd number
            or the method is unknown.
    """
    if config.window_size < 1 or config.window_size % 2 == 0:
        raise InvalidArgumentError(
            f"Window size must be a positive odd number, got {config.window_size}"
        )
    if config.method not in ADAPTIVE_METHODS:
        raise InvalidArgumentError(f"Unknown adaptive threshold method: {config.method}")

    image = as_image(image_data, width, height)
    half = config.window_size // 2

    xs = np.arange(width)
    ys = np.arange(height)
    x1 = np.maximum(0, xs - half)
    x2 = np.minimum(width - 1, xs + half)
    y1 = np.maximum(0, ys - half)[:, None]
    y2 = np.minimum(height - 1, ys + half)[:, None]
    area = (x2 - x1 + 1)[None, :] * (y2 - y1 + 1)

    def window_sum(table: np.ndarray) -> np.ndarray:
        return table[y2 + 1, x2 + 1] - table[y1, x2 + 1] - table[y2 + 1, x1] + table[y1, x1]

    local_mean = window_sum(_integral_image(image)) / area

    if config.method == "mean":
        threshold = local_mean - config.constant
    else:
        local_sq_mean = window_sum(_integral_image(image * image)) / area
        local_std = np.sqrt(np.maximum(0.0, local_sq_mean - local_mean * local_mean))
        threshold = local_mean - config.constant * local_std * 0.1

    return _threshold_result(image > threshold, image)


def calculate_histogram(
    image_data: Any, width: int, height: int, num_bins: int = 256
) -> HistogramResult:
    """Bin intensities into ``num_bins`` buckets spanning [min, max].

    The bin of an intensity ``v`` is ``floor((v - min) / range * (num_bins - 1))``
    capped at the last bin, where a zero range is replaced by 1.
    """
    image = as_image(image_data, width, height).ravel()
    min_val = float(image.min())
    max_val = float(image.max())
    value_range = (max_val - min_val) or 1.0

    bins = np.floor((image - min_val) / value_range * (num_bins - 1)).astype(np.int64)
    bins = np.minimum(num_bins - 1, bins)
    histogram = np.bincount(bins, minlength=num_bins)

    return HistogramResult(
        histogram=histogram,
        min_val=min_val,
        max_val=max_val,
        bin_width=value_range / num_bins,
    )


def otsu_threshold(
    image_data: Any, width: int, height: int, num_bins: int = 256
) -> OtsuResult:
    """Pick the threshold maximising between-class variance.

    The scan runs over bins 0..num_bins-2; a bin only replaces the current
    best when its variance is strictly greater, so ties keep the first bin.
    The resulting mask selects ``[threshold, max]``.
    """
    hist = calculate_histogram(image_data, width, height, num_bins)
    total = hist.histogram.sum()
    normalized = hist.histogram / total

    bin_index = np.arange(num_bins, dtype=np.float64)
    cumulative_weight = np.cumsum(normalized)
    cumulative_mean = np.cumsum(bin_index * normalized)
    global_mean = cumulative_mean[-1]

    optimal_bin = 0
    max_variance = 0.0
    for t in range(num_bins - 1):
        w0 = cumulative_weight[t]
        w1 = 1.0 - w0
        if w0 == 0 or w1 == 0:
            continue
        mu0 = cumulative_mean[t] / w0
        mu1 = (global_mean - cumulative_mean[t]) / w1
        variance = w0 * w1 * (mu0 - mu1) ** 2
        if variance > max_variance:
            max_variance = variance
            optimal_bin = t

    value_range = (hist.max_val - hist.min_val) or 1.0
    threshold = hist.min_val + (optimal_bin / (num_bins - 1)) * value_range
    logger.debug(f"Otsu threshold: bin {optimal_bin} -> {threshold:.3f}")

    result = threshold_segment(
        image_data,
        width,
        height,
        ThresholdConfig(lower_threshold=threshold, upper_threshold=hist.max_val),
    )
    result.histogram = hist.histogram
    return OtsuResult(threshold=threshold, result=result, histogram=hist.histogram)


def multi_otsu_threshold(
    image_data: Any, width: int, height: int, num_classes: int = 3
) -> MultiOtsuResult:
    """Split intensities into 2 to 4 classes.

    Two classes use the Otsu threshold. Three or four classes place the
    thresholds at evenly spaced histogram positions rather than running a
    full multi-level variance search. Class ``c`` selects pixels with
    ``lower < intensity <= upper`` between consecutive thresholds, with open
    ends for the first and last class.

    Raises:
        InvalidArgumentError: If ``num_classes`` is outside 2..4.
    """
    if num_classes < 2 or num_classes > 4:
        raise InvalidArgumentError(f"Number of classes must be 2-4, got {num_classes}")

    image = as_image(image_data, width, height)

    if num_classes == 2:
        thresholds = [otsu_threshold(image, width, height).threshold]
    else:
        hist = calculate_histogram(image, width, height)
        num_bins = hist.histogram.size
        value_range = (hist.max_val - hist.min_val) or 1.0
        step = num_bins / num_classes
        thresholds = []
        for i in range(1, num_classes):
            bin_position = math.floor(i * step)
            thresholds.append(hist.min_val + (bin_position / num_bins) * value_range)

    edges = [-math.inf, *thresholds, math.inf]
    masks = [
        make_result((image > edges[c]) & (image <= edges[c + 1])) for c in range(num_classes)
    ]
    return MultiOtsuResult(thresholds=thresholds, masks=masks)


def hysteresis_threshold(
    image_data: Any, width: int, height: int, low_threshold: float, high_threshold: float
) -> MaskOperationResult:
    """Keep strong pixels and weak pixels 8-connected to a strong pixel.

    Strong pixels have ``intensity >= high``; weak pixels have
    ``low <= intensity < high``. Weak pixels on the one-pixel image border
    are never promoted and do not link components. Every 8-connected
    component of strong and interior weak pixels that contains at least one
    strong pixel is kept.
    """
    start = time.perf_counter()
    image = as_image(image_data, width, height)

    strong = image >= high_threshold
    interior = np.zeros_like(strong)
    interior[1:-1, 1:-1] = True
    candidates = strong | ((image >= low_threshold) & interior)

    labels, num_components = ndimage.label(candidates, structure=np.ones((3, 3), dtype=bool))
    keep = np.zeros(num_components + 1, dtype=bool)
    keep[np.unique(labels[strong])] = True
    keep[0] = False
    selected = keep[labels]

    elapsed = (time.perf_counter() - start) * 1000
    logger.debug(
        f"Hysteresis threshold [{low_threshold}, {high_threshold}]: "
        f"{num_components} components, {elapsed:.1f}ms"
    )
    return make_result(selected)


def magic_wand_select(
    image_data: Any,
    width: int,
    height: int,
    seed_x: int,
    seed_y: int,
    config: MagicWandConfig | None = None,
) -> MaskOperationResult:
    """Select the connected region around a seed with similar intensity.

    Pixels are included when their intensity lies within ``tolerance`` of
    the seed intensity and they connect to the seed (4- or 8-connected).
    A seed outside the image yields an empty mask.

    Args:
        image_data: Intensity buffer of ``width * height`` values.
        width: Image width in pixels.
        height: Image height in pixels.
        seed_x: Seed column.
        seed_y: Seed row.
        config: Tolerance, connectivity and edge smoothing options.

    Returns:
        MaskOperationResult with the selected region.
    """
    if config is None:
        config = MagicWandConfig()

    if not (0 <= seed_x < width and 0 <= seed_y < height):
        logger.debug(f"Magic wand seed ({seed_x}, {seed_y}) outside {width}x{height} image")
        return create_empty_mask(width, height)

    image = as_image(image_data, width, height)
    seed_value = float(image[seed_y, seed_x])

    sitk_image = sitk.GetImageFromArray(image.astype(np.float32))

    region_filter = sitk.ConnectedThresholdImageFilter()
    region_filter.SetSeedList([(int(seed_x), int(seed_y))])
    region_filter.SetLower(seed_value - config.tolerance)
    region_filter.SetUpper(seed_value + config.tolerance)
    region_filter.SetReplaceValue(1)
    if config.eight_connected:
        region_filter.SetConnectivity(sitk.ConnectedThresholdImageFilter.FullConnectivity)
    else:
        region_filter.SetConnectivity(sitk.ConnectedThresholdImageFilter.FaceConnectivity)
    region = region_filter.Execute(sitk_image)

    if config.smooth_edges:
        region = sitk.BinaryMorphologicalOpening(region, [1, 1], sitk.sitkBox)

    return make_result(sitk.GetArrayFromImage(region) == 1)
