"""AnnotationMaskCore library.

Binary mask engine behind 2D/3D medical image annotation.

Core Modules:
    MaskPrimitive: Mask type, operation results, errors
    MaskOperations: Boolean algebra and disk morphology
    ThresholdSegmentation: Range, adaptive, Otsu, hysteresis, magic wand
    BrushTools: 2D, 3D and adaptive brush rasterization
    BrushPresets: Named brush presets and YAML persistence
    ContourExtractor: Moore tracing and scanline polygon fill
    Labelmap3D: Per-slice annotations to labelled volumes
    Measurements: Area, perimeter, shape, volume, distance, angle
"""

from .BrushPresets import (
    DEFAULT_BRUSH_PRESETS,
    BrushPreset,
    get_preset,
    load_brush_presets,
    save_brush_presets,
)
from .BrushTools import (
    AdaptiveBrushConfig,
    Brush3DConfig,
    BrushConfig,
    BrushShape,
    BrushStroke,
    DepthFalloff,
    apply_3d_brush_stroke,
    apply_adaptive_brush_stroke,
    apply_brush_stroke,
    brush_stamp,
    create_adaptive_brush,
    depth_opacity,
    generate_brush_mask,
    interpolate_stroke_points,
    smooth_stroke_path,
)
from .ContourExtractor import mask_from_polygon, mask_to_contours, polygon_outline_mask
from .Labelmap3D import (
    AnnotationKind,
    FillMethod,
    LabelInfo,
    Labelmap3D,
    LabelmapOptions,
    LabelmapStats,
    SliceAnnotation,
    annotations_to_labelmap,
    create_empty_labelmap,
    extract_label,
    get_labelmap_slice,
    get_labelmap_stats,
    labelmap_from_sitk,
    labelmap_to_sitk,
    merge_labelmaps,
    set_labelmap_slice,
)
from .MaskOperations import (
    mask_boundary,
    mask_close,
    mask_dilate,
    mask_erode,
    mask_fill_holes,
    mask_intersect,
    mask_invert,
    mask_open,
    mask_subtract,
    mask_union,
    mask_union_multiple,
    mask_xor,
)
from .MaskPrimitive import (
    Bounds,
    DimensionMismatchError,
    IntensityStats,
    InvalidArgumentError,
    Mask,
    MaskCoreError,
    MaskOperationResult,
    calculate_mask_stats,
    create_empty_mask,
)
from .Measurements import (
    PixelSpacing,
    calculate_angle,
    calculate_area,
    calculate_bounding_box,
    calculate_centroid,
    calculate_convex_hull_area,
    calculate_distance,
    calculate_intensity_stats,
    calculate_measurements,
    calculate_perimeter,
    calculate_volume,
    format_area,
    format_measurement,
    format_volume,
)
from .ThresholdSegmentation import (
    AdaptiveThresholdConfig,
    MagicWandConfig,
    ThresholdConfig,
    adaptive_threshold,
    calculate_histogram,
    hysteresis_threshold,
    magic_wand_select,
    multi_otsu_threshold,
    otsu_threshold,
    threshold_segment,
)

__all__ = [
    # Mask primitive
    "Mask",
    "MaskOperationResult",
    "Bounds",
    "IntensityStats",
    "MaskCoreError",
    "DimensionMismatchError",
    "InvalidArgumentError",
    "calculate_mask_stats",
    "create_empty_mask",
    # Boolean / morphology
    "mask_union",
    "mask_intersect",
    "mask_subtract",
    "mask_xor",
    "mask_invert",
    "mask_union_multiple",
    "mask_dilate",
    "mask_erode",
    "mask_open",
    "mask_close",
    "mask_fill_holes",
    "mask_boundary",
    # Thresholding
    "ThresholdConfig",
    "AdaptiveThresholdConfig",
    "MagicWandConfig",
    "threshold_segment",
    "adaptive_threshold",
    "calculate_histogram",
    "otsu_threshold",
    "multi_otsu_threshold",
    "hysteresis_threshold",
    "magic_wand_select",
    # Brushes
    "BrushShape",
    "DepthFalloff",
    "BrushConfig",
    "Brush3DConfig",
    "AdaptiveBrushConfig",
    "BrushStroke",
    "generate_brush_mask",
    "apply_brush_stroke",
    "brush_stamp",
    "depth_opacity",
    "apply_3d_brush_stroke",
    "create_adaptive_brush",
    "apply_adaptive_brush_stroke",
    "interpolate_stroke_points",
    "smooth_stroke_path",
    "BrushPreset",
    "DEFAULT_BRUSH_PRESETS",
    "get_preset",
    "load_brush_presets",
    "save_brush_presets",
    # Contours
    "mask_to_contours",
    "mask_from_polygon",
    "polygon_outline_mask",
    # Labelmaps
    "AnnotationKind",
    "FillMethod",
    "SliceAnnotation",
    "LabelInfo",
    "Labelmap3D",
    "LabelmapOptions",
    "LabelmapStats",
    "create_empty_labelmap",
    "annotations_to_labelmap",
    "get_labelmap_stats",
    "extract_label",
    "merge_labelmaps",
    "get_labelmap_slice",
    "set_labelmap_slice",
    "labelmap_to_sitk",
    "labelmap_from_sitk",
    # Measurements
    "PixelSpacing",
    "calculate_area",
    "calculate_perimeter",
    "calculate_centroid",
    "calculate_bounding_box",
    "calculate_convex_hull_area",
    "calculate_intensity_stats",
    "calculate_measurements",
    "calculate_volume",
    "calculate_distance",
    "calculate_angle",
    "format_measurement",
    "format_area",
    "format_volume",
]
