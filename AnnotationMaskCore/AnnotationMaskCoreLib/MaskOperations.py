"""Boolean and morphological operations on binary masks.

All binary operations require both masks to share width and height. The
structuring element for dilation and erosion is the discrete disk
``dx^2 + dy^2 <= r^2``; pixels outside the image are treated as unset.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from scipy import ndimage
from skimage.morphology import disk

from .MaskPrimitive import (
    DimensionMismatchError,
    InvalidArgumentError,
    Mask,
    MaskOperationResult,
    make_result,
)

logger = logging.getLogger(__name__)

# 4-connected cross used for boundary detection
_CROSS = ndimage.generate_binary_structure(2, 1)


def _check_dimensions(mask_a: Mask, mask_b: Mask) -> None:
    if mask_a.width != mask_b.width or mask_a.height != mask_b.height:
        raise DimensionMismatchError(
            f"Mask dimensions must match: {mask_a.width}x{mask_a.height} "
            f"vs {mask_b.width}x{mask_b.height}"
        )


def _check_radius(radius: int) -> None:
    if radius < 0:
        raise InvalidArgumentError(f"Morphology radius must be >= 0, got {radius}")


def mask_union(mask_a: Mask, mask_b: Mask) -> MaskOperationResult:
    """Pixels set in either mask."""
    _check_dimensions(mask_a, mask_b)
    return make_result(mask_a.selected | mask_b.selected)


def mask_intersect(mask_a: Mask, mask_b: Mask) -> MaskOperationResult:
    """Pixels set in both masks."""
    _check_dimensions(mask_a, mask_b)
    return make_result(mask_a.selected & mask_b.selected)


def mask_subtract(mask_a: Mask, mask_b: Mask) -> MaskOperationResult:
    """Pixels set in ``mask_a`` but not in ``mask_b``."""
    _check_dimensions(mask_a, mask_b)
    return make_result(mask_a.selected & ~mask_b.selected)


def mask_xor(mask_a: Mask, mask_b: Mask) -> MaskOperationResult:
    """Pixels set in exactly one of the masks."""
    _check_dimensions(mask_a, mask_b)
    return make_result(mask_a.selected ^ mask_b.selected)


def mask_invert(mask: Mask) -> MaskOperationResult:
    """Pixels unset in ``mask``."""
    return make_result(~mask.selected)


def mask_union_multiple(masks: Sequence[Mask]) -> MaskOperationResult:
    """Union of any number of equally sized masks.

    Raises:
        InvalidArgumentError: If ``masks`` is empty.
        DimensionMismatchError: If the masks differ in size.
    """
    if len(masks) == 0:
        raise InvalidArgumentError("At least one mask is required")

    first = masks[0]
    combined = first.selected.copy()
    for other in masks[1:]:
        _check_dimensions(first, other)
        combined |= other.selected
    return make_result(combined)


def mask_dilate(mask: Mask, radius: int = 1) -> MaskOperationResult:
    """Dilate with a disk of the given radius.

    A pixel becomes set when any set pixel lies within the disk centred on
    it. Radius 0 returns an unchanged copy.
    """
    _check_radius(radius)
    dilated = ndimage.binary_dilation(mask.selected, structure=disk(radius).astype(bool))
    return make_result(dilated)


def mask_erode(mask: Mask, radius: int = 1) -> MaskOperationResult:
    """Erode with a disk of the given radius.

    A set pixel survives only when every disk position around it is inside
    the image and set.
    """
    _check_radius(radius)
    eroded = ndimage.binary_erosion(
        mask.selected, structure=disk(radius).astype(bool), border_value=0
    )
    return make_result(eroded)


def mask_open(mask: Mask, radius: int = 1) -> MaskOperationResult:
    """Erosion followed by dilation; removes specks smaller than the disk."""
    return mask_dilate(mask_erode(mask, radius), radius)


def mask_close(mask: Mask, radius: int = 1) -> MaskOperationResult:
    """Dilation followed by erosion; closes gaps smaller than the disk."""
    return mask_erode(mask_dilate(mask, radius), radius)


def mask_fill_holes(mask: Mask) -> MaskOperationResult:
    """Set every unset pixel not 4-connected to the image border.

    Background reachable from any border pixel through 4-connected unset
    pixels stays unset; every other pixel ends up set.
    """
    filled = ndimage.binary_fill_holes(mask.selected, structure=_CROSS)
    return make_result(filled)


def mask_boundary(mask: Mask, inner: bool = True) -> MaskOperationResult:
    """Extract the one-pixel boundary of a mask.

    Args:
        mask: Input mask.
        inner: If True, return set pixels that have an unset 4-neighbour or
            touch the image edge. If False, return unset pixels that have a
            set 4-neighbour.
    """
    selected = mask.selected
    if inner:
        interior = ndimage.binary_erosion(selected, structure=_CROSS, border_value=0)
        return make_result(selected & ~interior)

    grown = ndimage.binary_dilation(selected, structure=_CROSS)
    return make_result(grown & ~selected)
