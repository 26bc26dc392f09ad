"""Test fixtures and synthetic data generators for AnnotationMaskCore tests."""

from .synthetic_image import (
    create_bimodal_image,
    create_checkerboard_mask,
    create_disk_mask,
    create_gradient_image,
    create_overlapping_clusters_image,
    create_ring_mask,
    create_square_mask,
    create_step_edge_image,
)

__all__ = [
    "create_square_mask",
    "create_disk_mask",
    "create_ring_mask",
    "create_checkerboard_mask",
    "create_bimodal_image",
    "create_overlapping_clusters_image",
    "create_gradient_image",
    "create_step_edge_image",
]
