"""Tests for intensity thresholding.

These tests verify:
- Fixed-range thresholding and its intensity statistics
- Locally adaptive thresholding with clipped windows
- Histogram binning, Otsu and simplified multi-level Otsu
- Hysteresis thresholding with 8-connected promotion
- Seeded connected-threshold selection (magic wand)
"""

import unittest

import numpy as np
import pytest
from AnnotationMaskCoreLib.MaskPrimitive import Bounds, InvalidArgumentError
from AnnotationMaskCoreLib.ThresholdSegmentation import (
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
from test_fixtures.synthetic_image import (
    create_bimodal_image,
    create_gradient_image,
    create_overlapping_clusters_image,
    create_step_edge_image,
)


def _ramp_image():
    """16x16 image with intensities 0..255 in raster order."""
    return np.arange(256, dtype=np.float32).reshape(16, 16)


class TestThresholdSegment(unittest.TestCase):
    """Tests for fixed-range thresholding."""

    def test_inclusive_range(self):
        image = _ramp_image()
        result = threshold_segment(image.ravel(), 16, 16, ThresholdConfig(100, 150))
        self.assertEqual(result.pixel_count, 51)
        self.assertEqual(result.data.ravel()[100], 1)
        self.assertEqual(result.data.ravel()[150], 1)
        self.assertEqual(result.data.ravel()[151], 0)

    def test_statistics_over_selection(self):
        image = _ramp_image()
        result = threshold_segment(image, 16, 16, ThresholdConfig(100, 150))
        expected = np.arange(100, 151, dtype=np.float64)
        self.assertAlmostEqual(result.stats.mean, 125.0)
        self.assertAlmostEqual(result.stats.std, float(expected.std()), places=6)
        self.assertEqual(result.stats.min, 100.0)
        self.assertEqual(result.stats.max, 150.0)

    def test_column_ramp_selects_middle_columns(self):
        image = np.tile(np.arange(16) * 16.0, (16, 1))
        result = threshold_segment(image, 16, 16, ThresholdConfig(100, 150))
        self.assertEqual(result.pixel_count, 48)
        self.assertTrue(np.all(result.data[:, 7:10] == 1))
        self.assertFalse(np.any(result.data[:, 6]))
        self.assertFalse(np.any(result.data[:, 10]))
        self.assertEqual(result.bounds, Bounds(7, 0, 9, 15))
        self.assertAlmostEqual(result.stats.mean, 128.0)
        self.assertAlmostEqual(result.stats.std, float(np.sqrt(512.0 / 3)))
        self.assertEqual(result.stats.min, 112.0)
        self.assertEqual(result.stats.max, 144.0)

    def test_invert_selects_complement(self):
        image = _ramp_image()
        result = threshold_segment(image, 16, 16, ThresholdConfig(100, 150, invert=True))
        self.assertEqual(result.pixel_count, 256 - 51)
        self.assertEqual(result.stats.min, 0.0)
        self.assertEqual(result.stats.max, 255.0)

    def test_constant_image_has_zero_std(self):
        image = np.full((8, 8), 42.0)
        result = threshold_segment(image, 8, 8, ThresholdConfig(0, 100))
        self.assertEqual(result.pixel_count, 64)
        self.assertEqual(result.stats.std, 0.0)
        self.assertEqual(result.stats.mean, 42.0)

    def test_empty_selection(self):
        image = _ramp_image()
        result = threshold_segment(image, 16, 16, ThresholdConfig(300, 400))
        self.assertEqual(result.pixel_count, 0)
        self.assertEqual(result.bounds, Bounds(0, 0, 0, 0))
        self.assertEqual(result.stats.mean, 0.0)
        self.assertEqual(result.stats.std, 0.0)


class TestAdaptiveThreshold(unittest.TestCase):
    """Tests for local-mean thresholding."""

    def test_constant_image_mean_method(self):
        image = np.full((20, 20), 100.0)
        selected = adaptive_threshold(image, 20, 20, AdaptiveThresholdConfig(5, 5.0, "mean"))
        self.assertEqual(selected.pixel_count, 400)

        none = adaptive_threshold(image, 20, 20, AdaptiveThresholdConfig(5, 0.0, "mean"))
        self.assertEqual(none.pixel_count, 0)

    def test_constant_image_gaussian_method(self):
        """Zero local std leaves the threshold at the mean, so nothing is strictly above."""
        image = np.full((20, 20), 100.0)
        result = adaptive_threshold(image, 20, 20, AdaptiveThresholdConfig(5, 5.0, "gaussian"))
        self.assertEqual(result.pixel_count, 0)

    def test_bright_spot_suppresses_neighbours(self):
        image = np.zeros((10, 10))
        image[5, 5] = 100.0
        result = adaptive_threshold(image, 10, 10, AdaptiveThresholdConfig(3, 5.0, "mean"))
        self.assertEqual(result.data[5, 5], 1)
        self.assertEqual(result.data[4, 4], 0)
        self.assertEqual(result.data[6, 5], 0)
        self.assertEqual(result.pixel_count, 100 - 8)

    def test_window_is_clipped_at_corner(self):
        image = np.zeros((10, 10))
        image[0, 0] = 100.0
        result = adaptive_threshold(image, 10, 10, AdaptiveThresholdConfig(3, 5.0, "mean"))
        self.assertEqual(result.data[0, 0], 1)
        self.assertEqual(result.data[0, 1], 0)
        self.assertEqual(result.data[1, 0], 0)
        self.assertEqual(result.data[1, 1], 0)
        self.assertEqual(result.pixel_count, 100 - 3)

    def test_statistics_over_selection(self):
        image = np.zeros((10, 10))
        image[5, 5] = 100.0
        result = adaptive_threshold(image, 10, 10, AdaptiveThresholdConfig(3, 5.0, "mean"))
        mean = 100.0 / 92
        self.assertAlmostEqual(result.stats.mean, mean)
        self.assertAlmostEqual(result.stats.std, float(np.sqrt(10000.0 / 92 - mean * mean)))
        self.assertEqual(result.stats.min, 0.0)
        self.assertEqual(result.stats.max, 100.0)

    def test_empty_selection_has_zero_stats(self):
        image = np.full((20, 20), 100.0)
        result = adaptive_threshold(image, 20, 20, AdaptiveThresholdConfig(5, 0.0, "mean"))
        self.assertEqual(result.pixel_count, 0)
        self.assertEqual(result.stats.mean, 0.0)
        self.assertEqual(result.stats.std, 0.0)
        self.assertEqual(result.stats.max, 0.0)

    def test_even_window_raises(self):
        image = np.zeros((10, 10))
        with self.assertRaises(InvalidArgumentError):
            adaptive_threshold(image, 10, 10, AdaptiveThresholdConfig(4, 5.0, "mean"))

    def test_unknown_method_raises(self):
        image = np.zeros((10, 10))
        with self.assertRaises(InvalidArgumentError):
            adaptive_threshold(image, 10, 10, AdaptiveThresholdConfig(3, 5.0, "median"))


class TestHistogramAndOtsu(unittest.TestCase):
    """Tests for histogram binning and Otsu thresholding."""

    def test_histogram_counts_every_pixel(self):
        hist = calculate_histogram(_ramp_image(), 16, 16, num_bins=64)
        self.assertEqual(int(hist.histogram.sum()), 256)
        self.assertEqual(hist.min_val, 0.0)
        self.assertEqual(hist.max_val, 255.0)
        self.assertAlmostEqual(hist.bin_width, 255.0 / 64)
        # The top bin only receives the maximum
        self.assertEqual(int(hist.histogram[-1]), 1)

    def test_histogram_of_constant_image(self):
        hist = calculate_histogram(np.full((4, 4), 7.0), 4, 4)
        self.assertEqual(int(hist.histogram[0]), 16)
        self.assertEqual(hist.bin_width, 1.0 / 256)

    def test_otsu_splits_overlapping_clusters_at_midpoint(self):
        image = create_overlapping_clusters_image((200, 200), 50.0, 200.0, 80.0)
        result = otsu_threshold(image, 200, 200)
        self.assertLess(abs(result.threshold - 125.0), 6.0)
        self.assertAlmostEqual(result.result.pixel_count, 20000, delta=1500)

    def test_otsu_separates_noisy_bimodal_halves(self):
        np.random.seed(42)
        image, truth = create_bimodal_image((60, 60), 50.0, 200.0, 10.0, 10.0)
        result = otsu_threshold(image, 60, 60)
        self.assertGreater(result.threshold, 50.0)
        self.assertLess(result.threshold, 200.0)
        # The bright half is selected; at most a few dark outliers share the top dark bin
        self.assertTrue(np.all(result.result.data[truth == 1] == 1))
        self.assertLessEqual(int(result.result.data[truth == 0].sum()), 10)

    def test_otsu_tie_keeps_first_bin(self):
        """With only two intensities every split is equally good."""
        image = np.full((10, 10), 50.0)
        image[:, 5:] = 200.0
        result = otsu_threshold(image, 10, 10)
        self.assertEqual(result.threshold, 50.0)
        self.assertEqual(result.result.pixel_count, 100)

    def test_otsu_result_selects_threshold_to_max(self):
        image = create_overlapping_clusters_image((100, 100), 50.0, 200.0, 80.0)
        result = otsu_threshold(image, 100, 100)
        selected = image[result.result.data == 1]
        self.assertGreaterEqual(float(selected.min()), result.threshold)
        self.assertEqual(float(selected.max()), float(image.max()))
        self.assertEqual(result.histogram.size, 256)


class TestMultiOtsu:
    """Tests for the simplified multi-level Otsu."""

    @pytest.mark.parametrize("num_classes", [1, 5])
    def test_class_count_outside_range_raises(self, num_classes):
        with pytest.raises(InvalidArgumentError):
            multi_otsu_threshold(_ramp_image(), 16, 16, num_classes)

    def test_two_classes_match_otsu(self):
        image = create_overlapping_clusters_image((100, 100))
        multi = multi_otsu_threshold(image, 100, 100, 2)
        assert multi.thresholds == [otsu_threshold(image, 100, 100).threshold]
        assert len(multi.masks) == 2

    def test_three_classes_use_even_histogram_positions(self):
        multi = multi_otsu_threshold(_ramp_image(), 16, 16, 3)
        assert multi.thresholds == pytest.approx([85 / 256 * 255, 170 / 256 * 255])
        assert [m.pixel_count for m in multi.masks] == [85, 85, 86]

    @pytest.mark.parametrize("num_classes", [2, 3, 4])
    def test_classes_partition_image(self, num_classes):
        image = create_overlapping_clusters_image((50, 50))
        multi = multi_otsu_threshold(image, 50, 50, num_classes)
        stacked = np.stack([m.data for m in multi.masks])
        np.testing.assert_array_equal(stacked.sum(axis=0), np.ones((50, 50)))


class TestHysteresisThreshold:
    """Tests for strong/weak hysteresis thresholding."""

    def test_weak_chain_connected_to_strong_is_kept(self):
        image = np.zeros((7, 12))
        image[3, 2] = 200.0
        image[3, 3:8] = 80.0
        # Isolated weak blob
        image[0:2, 10:12] = 80.0
        result = hysteresis_threshold(image, 12, 7, 50.0, 150.0)
        assert result.pixel_count == 6
        assert result.data[3, 7] == 1
        assert result.data[0, 10] == 0

    def test_diagonal_neighbours_are_connected(self):
        image = np.zeros((5, 5))
        image[1, 1] = 200.0
        image[2, 2] = 80.0
        image[3, 3] = 80.0
        result = hysteresis_threshold(image, 5, 5, 50.0, 150.0)
        assert result.pixel_count == 3

    def test_weak_border_pixel_is_not_promoted(self):
        image = np.zeros((5, 5))
        image[0, 0] = 200.0
        image[0, 1] = 80.0
        result = hysteresis_threshold(image, 5, 5, 50.0, 150.0)
        assert result.pixel_count == 1
        assert result.data[0, 0] == 1
        assert result.data[0, 1] == 0

    def test_weak_border_pixel_beside_interior_strong(self):
        image = np.zeros((5, 5))
        image[1, 2] = 200.0
        image[0, 2] = 80.0
        image[2, 2] = 80.0
        result = hysteresis_threshold(image, 5, 5, 50.0, 150.0)
        assert result.pixel_count == 2
        assert result.data[0, 2] == 0
        assert result.data[2, 2] == 1

    def test_border_weak_pixels_do_not_link_components(self):
        image = np.zeros((5, 7))
        image[1, 1] = 200.0
        image[0, 2:5] = 80.0
        image[1, 5] = 80.0
        result = hysteresis_threshold(image, 7, 5, 50.0, 150.0)
        assert result.pixel_count == 1
        assert result.data[1, 5] == 0

    def test_no_strong_pixels_selects_nothing(self):
        image = np.full((5, 5), 80.0)
        assert hysteresis_threshold(image, 5, 5, 50.0, 150.0).pixel_count == 0

    def test_ramp_keeps_everything_above_low(self):
        # Columns rise from 0 to 255; x >= 25 reaches low and x >= 50 reaches high.
        # Weak pixels in the top and bottom rows stay unselected.
        image = create_gradient_image((64, 64))
        result = hysteresis_threshold(image, 64, 64, 100.0, 200.0)
        assert result.pixel_count == 39 * 64 - 2 * 25
        assert result.bounds == Bounds(25, 0, 63, 63)

    def test_uniform_strong_image(self, constant_image):
        result = hysteresis_threshold(constant_image, 32, 32, 50.0, 100.0)
        assert result.pixel_count == 32 * 32


@pytest.mark.sitk
class TestMagicWand(unittest.TestCase):
    """Tests for seeded connected-threshold selection."""

    def test_selects_region_around_seed(self):
        image = create_step_edge_image((40, 40), edge_x=20)
        result = magic_wand_select(image, 40, 40, 5, 5, MagicWandConfig(tolerance=20.0))
        self.assertEqual(result.pixel_count, 20 * 40)
        self.assertEqual(result.bounds, Bounds(0, 0, 19, 39))

    def test_seed_outside_image_gives_empty_mask(self):
        image = create_step_edge_image((40, 40))
        result = magic_wand_select(image, 40, 40, 45, 5)
        self.assertEqual(result.pixel_count, 0)
        self.assertEqual(result.data.shape, (40, 40))

    def test_connectivity(self):
        image = np.zeros((16, 16), dtype=np.float32)
        y, x = np.indices((16, 16))
        image[(x + y) % 2 == 0] = 100.0

        four = magic_wand_select(image, 16, 16, 0, 0, MagicWandConfig(tolerance=10.0))
        self.assertEqual(four.pixel_count, 1)

        eight = magic_wand_select(
            image, 16, 16, 0, 0, MagicWandConfig(tolerance=10.0, eight_connected=True)
        )
        self.assertEqual(eight.pixel_count, 128)

    def test_smooth_edges_removes_protrusion(self):
        image = np.full((30, 30), 200.0, dtype=np.float32)
        image[5:15, 5:15] = 50.0
        image[10, 15] = 50.0

        rough = magic_wand_select(image, 30, 30, 10, 10, MagicWandConfig(tolerance=20.0))
        self.assertEqual(rough.pixel_count, 101)

        smooth = magic_wand_select(
            image, 30, 30, 10, 10, MagicWandConfig(tolerance=20.0, smooth_edges=True)
        )
        self.assertEqual(smooth.pixel_count, 100)
        self.assertEqual(smooth.data[10, 15], 0)
