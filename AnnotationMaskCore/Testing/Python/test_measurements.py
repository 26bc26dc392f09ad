"""Tests for mask measurements."""

import math
import unittest

import numpy as np
import pytest
from AnnotationMaskCoreLib.MaskPrimitive import Mask
from AnnotationMaskCoreLib.Measurements import (
    BoundingBox,
    PixelSpacing,
    calculate_angle,
    calculate_area,
    calculate_convex_hull_area,
    calculate_distance,
    calculate_measurements,
    calculate_perimeter,
    calculate_volume,
    format_area,
    format_measurement,
    format_volume,
)


def _l_shape():
    """12x12 mask with an L of 51 pixels: a 3-wide column and a 3-high foot."""
    data = np.zeros((12, 12), dtype=np.uint8)
    data[0:10, 0:3] = 1
    data[7:10, 0:10] = 1
    return Mask(data, 12, 12)


class TestShapeMeasurements(unittest.TestCase):
    """Tests for area, perimeter and shape descriptors."""

    def test_square_with_anisotropic_spacing(self):
        data = np.zeros((32, 32), dtype=np.uint8)
        data[8:18, 8:18] = 1
        result = calculate_measurements(Mask(data, 32, 32), PixelSpacing(x=0.5, y=2.0))

        self.assertEqual(result.area_pixels, 100)
        self.assertAlmostEqual(result.area_mm2, 100.0)
        self.assertEqual(result.perimeter_pixels, 40)
        # 20 vertical faces of 2 mm and 20 horizontal faces of 0.5 mm
        self.assertAlmostEqual(result.perimeter_mm, 50.0)
        self.assertEqual(result.centroid, (12.5, 12.5))
        self.assertEqual(result.bounding_box, BoundingBox(8, 8, 17, 17, 10, 10))
        self.assertAlmostEqual(result.circularity, math.pi / 4)
        self.assertEqual(result.aspect_ratio, 1.0)
        self.assertIsNone(result.intensity)

    def test_perimeter_counts_image_border(self):
        full = Mask(np.ones((5, 5), dtype=np.uint8), 5, 5)
        self.assertEqual(calculate_perimeter(full)[0], 20)

    def test_perimeter_of_single_pixel(self):
        data = np.zeros((5, 5), dtype=np.uint8)
        data[2, 2] = 1
        faces, mm = calculate_perimeter(Mask(data, 5, 5), PixelSpacing(3.0, 1.0))
        self.assertEqual(faces, 4)
        self.assertAlmostEqual(mm, 8.0)

    def test_area_ignores_values_other_than_one(self):
        data = np.array([[1, 2], [1, 0]], dtype=np.uint8)
        self.assertEqual(calculate_area(Mask(data, 2, 2)), (2, 2.0))

    def test_aspect_ratio_of_rectangle(self):
        data = np.zeros((10, 20), dtype=np.uint8)
        data[2:6, 1:17] = 1
        result = calculate_measurements(Mask(data, 20, 10))
        self.assertEqual(result.aspect_ratio, 4.0)

    def test_square_hull_runs_through_pixel_centres(self):
        data = np.zeros((32, 32), dtype=np.uint8)
        data[8:18, 8:18] = 1
        mask = Mask(data, 32, 32)
        self.assertAlmostEqual(calculate_convex_hull_area(mask), 81.0)
        self.assertAlmostEqual(calculate_measurements(mask).solidity, 100 / 81)

    def test_concave_shape_has_lower_solidity(self):
        mask = _l_shape()
        self.assertAlmostEqual(calculate_convex_hull_area(mask), 56.5)
        self.assertAlmostEqual(calculate_measurements(mask).solidity, 51 / 56.5)

    def test_tiny_mask_hull_is_pixel_count(self):
        data = np.zeros((5, 5), dtype=np.uint8)
        data[1, 1] = data[1, 2] = 1
        self.assertEqual(calculate_convex_hull_area(Mask(data, 5, 5)), 2.0)

    def test_empty_mask(self):
        result = calculate_measurements(Mask(np.zeros((6, 6), dtype=np.uint8), 6, 6))
        self.assertEqual(result.area_pixels, 0)
        self.assertEqual(result.perimeter_pixels, 0)
        self.assertEqual(result.centroid, (0.0, 0.0))
        self.assertEqual(result.bounding_box, BoundingBox())
        self.assertEqual(result.circularity, 0.0)
        self.assertEqual(result.aspect_ratio, 1.0)
        self.assertEqual(result.solidity, 1.0)

    def test_disk_is_centred(self):
        y, x = np.ogrid[:64, :64]
        data = ((x - 32) ** 2 + (y - 32) ** 2 <= 100).astype(np.uint8)
        result = calculate_measurements(Mask(data, 64, 64))
        self.assertEqual(result.centroid, (32.0, 32.0))
        self.assertEqual(result.aspect_ratio, 1.0)
        self.assertLess(result.solidity, 1.2)


class TestIntensityMeasurements(unittest.TestCase):
    """Tests for intensity statistics under a mask."""

    def test_intensity_stats_of_square(self):
        data = np.zeros((32, 32), dtype=np.uint8)
        data[8:18, 8:18] = 1
        image = np.arange(32 * 32, dtype=np.float32)
        result = calculate_measurements(Mask(data, 32, 32), image_data=image)

        self.assertAlmostEqual(result.intensity.mean, 12.5 * 32 + 12.5)
        self.assertEqual(result.intensity.min, 8 * 32 + 8)
        self.assertEqual(result.intensity.max, 17 * 32 + 17)

        exported = result.to_dict()
        self.assertAlmostEqual(exported["mean_intensity"], 412.5)
        self.assertEqual(exported["bounding_box"]["width"], 10)

    def test_empty_selection_has_zero_stats(self):
        result = calculate_measurements(
            Mask(np.zeros((4, 4), dtype=np.uint8), 4, 4), image_data=np.ones(16)
        )
        self.assertEqual(result.intensity.mean, 0.0)
        self.assertEqual(result.intensity.std, 0.0)

    def test_to_dict_without_intensity(self):
        result = calculate_measurements(_l_shape())
        exported = result.to_dict()
        self.assertNotIn("mean_intensity", exported)
        self.assertEqual(exported["area_pixels"], 51)


class TestVolume:
    """Tests for volume estimation over a slice stack."""

    @staticmethod
    def _square_stack():
        square = np.zeros((20, 20), dtype=np.uint8)
        square[5:15, 5:15] = 1
        empty = np.zeros((20, 20), dtype=np.uint8)
        return [Mask(square, 20, 20), Mask(empty, 20, 20), Mask(square, 20, 20)]

    def test_slice_spacing_defaults_to_thickness(self):
        result = calculate_volume(self._square_stack(), PixelSpacing(0.5, 0.5, slice_thickness=2.0))
        assert result.volume_voxels == 200
        assert result.volume_mm3 == pytest.approx(100.0)
        assert result.volume_ml == pytest.approx(0.1)
        assert result.slice_areas == [(0, 25.0), (2, 25.0)]
        assert result.annotated_slices == 2
        # Each slice: 20 mm perimeter times 2 mm, plus two 25 mm^2 caps
        assert result.surface_area_mm2 == pytest.approx(180.0)

    def test_slice_spacing_overrides_thickness(self):
        spacing = PixelSpacing(1.0, 1.0, slice_thickness=2.0, slice_spacing=3.0)
        result = calculate_volume(self._square_stack(), spacing)
        assert result.volume_mm3 == pytest.approx(600.0)

    def test_unit_defaults(self):
        result = calculate_volume(self._square_stack(), PixelSpacing())
        assert result.volume_mm3 == pytest.approx(200.0)
        assert result.to_dict()["slice_areas"][1] == {"slice_index": 2, "area_mm2": 100.0}

    def test_empty_stack(self):
        result = calculate_volume([], PixelSpacing())
        assert result.volume_voxels == 0
        assert result.surface_area_mm2 == 0.0
        assert result.slice_areas == []


class TestDistanceAndAngle:
    """Tests for point measurements."""

    def test_distance(self):
        result = calculate_distance((0, 0), (3, 4))
        assert result.distance_pixels == 5.0
        assert result.distance_mm == 5.0

    def test_distance_with_spacing(self):
        result = calculate_distance((0, 0), (3, 4), PixelSpacing(2.0, 1.0))
        assert result.distance_pixels == 5.0
        assert result.distance_mm == pytest.approx(math.sqrt(52))

    @pytest.mark.parametrize(
        "point2,expected",
        [((0, 1), 90.0), ((1, 1), 45.0), ((-1, 0), 180.0), ((2, 0), 0.0)],
    )
    def test_angle(self, point2, expected):
        result = calculate_angle((0, 0), (1, 0), point2)
        assert result.angle_degrees == pytest.approx(expected)
        assert result.angle_radians == pytest.approx(math.radians(expected))

    def test_degenerate_angle_is_zero(self):
        assert calculate_angle((1, 1), (1, 1), (4, 5)).angle_degrees == 0.0


class TestFormatting:
    """Tests for human-readable measurement strings."""

    def test_format_measurement_precision(self):
        assert format_measurement(1.23456, "mm", 3) == "1.235 mm"
        assert format_measurement(2, "mm") == "2.00 mm"

    @pytest.mark.parametrize(
        "area,expected", [(50.0, "50.00 mm²"), (99.99, "99.99 mm²"), (250.0, "2.50 cm²")]
    )
    def test_format_area(self, area, expected):
        assert format_area(area) == expected

    @pytest.mark.parametrize(
        "volume,expected", [(999.0, "999.00 mm³"), (1000.0, "1.00 mL"), (1500.0, "1.50 mL")]
    )
    def test_format_volume(self, volume, expected):
        assert format_volume(volume) == expected
