# Statify Engine - Tests: Numeric Reduction Helpers
# Moments, percentiles, mode and their invariants

import sys
import os
import math
import unittest

import numpy as np
import pytest
from scipy import stats

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from statengine.stats.data_model import DiscreteMissing, VariableType
from statengine.stats.summary_statistics import (
    calculate_central_moment,
    calculate_iqr,
    calculate_kurtosis,
    calculate_max,
    calculate_mean,
    calculate_median,
    calculate_min,
    calculate_mode,
    calculate_percentile,
    calculate_range,
    calculate_se_kurtosis,
    calculate_se_mean,
    calculate_se_skewness,
    calculate_skewness,
    calculate_std_dev,
    calculate_sum,
    calculate_variance,
    calculate_z_scores,
    find_value_at_rank,
    hedges_standardizer,
    numeric_subset,
)
from tests.synthetic_data_generator import SyntheticDataGenerator


class TestMoments(unittest.TestCase):
    """Tests for weighted moments against known values."""

    def setUp(self):
        self.data = [1, 2, 3, 4, 5]
        self.W = 5.0
        self.mean = calculate_mean(self.data, None, self.W)
        self.sd = calculate_std_dev(calculate_variance(self.data, None, self.W, self.mean))

    def test_numeric_subset_skips_non_numbers(self):
        values, weights = numeric_subset([1, "2", None, True, float("nan"), 3.5], [1, 1, 1, 1, 1, 2])
        self.assertEqual(values.tolist(), [1.0, 3.5])
        self.assertEqual(weights.tolist(), [1.0, 2.0])

    def test_sum_and_mean(self):
        self.assertEqual(calculate_sum(self.data), 15.0)
        self.assertEqual(self.mean, 3.0)
        self.assertIsNone(calculate_mean(self.data, None, 0))

    def test_variance_and_sd(self):
        self.assertAlmostEqual(calculate_variance(self.data, None, self.W, self.mean), 2.5)
        self.assertAlmostEqual(self.sd, math.sqrt(2.5))
        self.assertIsNone(calculate_variance([4], None, 1.0, 4.0))

    def test_weighted_variance(self):
        mean = calculate_mean([1, 2, 3], [1, 2, 1], 4.0)
        self.assertEqual(mean, 2.0)
        self.assertAlmostEqual(calculate_variance([1, 2, 3], [1, 2, 1], 4.0, mean), 2 / 3)

    def test_central_moment(self):
        self.assertEqual(calculate_central_moment(self.data, None, 2, 3.0), 10.0)
        self.assertIsNone(calculate_central_moment(self.data, None, 2, None))
        self.assertIsNone(calculate_central_moment(["a"], None, 2, 1.0))

    def test_skewness_and_kurtosis(self):
        self.assertAlmostEqual(calculate_skewness(self.data, None, self.W, self.mean, self.sd), 0.0)
        self.assertAlmostEqual(calculate_kurtosis(self.data, None, self.W, self.mean, self.sd), -1.2)

    def test_skewness_matches_scipy_bias_corrected(self):
        generator = SyntheticDataGenerator(seed=7)
        data = generator.generate_numeric_column(n=60, mean=5, sd=2)
        W = float(len(data))
        mean = calculate_mean(data, None, W)
        sd = calculate_std_dev(calculate_variance(data, None, W, mean))
        self.assertAlmostEqual(calculate_skewness(data, None, W, mean, sd), stats.skew(data, bias=False), places=9)
        self.assertAlmostEqual(
            calculate_kurtosis(data, None, W, mean, sd),
            stats.kurtosis(data, fisher=True, bias=False),
            places=9,
        )

    def test_standard_errors(self):
        self.assertAlmostEqual(calculate_se_skewness(5), math.sqrt(120 / 144))
        self.assertAlmostEqual(calculate_se_kurtosis(5), 2.0)
        self.assertAlmostEqual(calculate_se_mean(self.sd, self.W), self.sd / math.sqrt(5))
        self.assertIsNone(calculate_se_skewness(2))
        self.assertIsNone(calculate_se_kurtosis(3))

    def test_hedges_standardizer(self):
        self.assertAlmostEqual(hedges_standardizer(2.0, 4), 2.0 / (1 - 3 / 15))
        self.assertIsNone(hedges_standardizer(2.0, 1))
        self.assertIsNone(hedges_standardizer(2.0, 0))
        self.assertIsNone(hedges_standardizer(None, 10))

    @pytest.mark.edge_case
    def test_degenerate_inputs_return_none(self):
        self.assertIsNone(calculate_skewness([2, 2, 2], None, 3.0, 2.0, 0.0))
        self.assertIsNone(calculate_kurtosis([1, 2, 3], None, 3.0, 2.0, 1.0))
        self.assertIsNone(calculate_std_dev(None))
        self.assertIsNone(calculate_se_mean(None, 5))
        self.assertIsNone(calculate_min([]))
        self.assertIsNone(calculate_max(["a", None]))
        self.assertIsNone(calculate_range(None, 3.0))

    def test_min_max_range(self):
        self.assertEqual(calculate_min([3, "x", -1, 7]), -1.0)
        self.assertEqual(calculate_max([3, "x", -1, 7]), 7.0)
        self.assertEqual(calculate_range(-1.0, 7.0), 8.0)


class TestMomentProperties(unittest.TestCase):
    """Invariants over generated samples."""

    @classmethod
    def setUpClass(cls):
        cls.generator = SyntheticDataGenerator(seed=42)
        cls.samples = [cls.generator.generate_numeric_column(n=n, mean=0, sd=s) for n, s in ((5, 1), (30, 10), (200, 0.01))]

    def test_mean_invariant_under_doubled_weights(self):
        for data in self.samples:
            weights = self.generator.generate_weights(n=len(data))
            doubled = [w * 2 for w in weights]
            mean = calculate_mean(data, weights, float(sum(weights)))
            mean2 = calculate_mean(data, doubled, float(sum(doubled)))
            self.assertAlmostEqual(mean, mean2, places=12)

    def test_variance_non_negative(self):
        for data in self.samples + [[1e9, 1e9 + 1, 1e9 + 2], [0.1] * 10]:
            W = float(len(data))
            variance = calculate_variance(data, None, W, calculate_mean(data, None, W))
            self.assertIsNotNone(variance)
            self.assertGreaterEqual(variance, 0)


class TestPercentiles(unittest.TestCase):
    """Tests for the Weighted-Average percentile."""

    def test_known_quartiles(self):
        data = [1, 2, 3, 4, 5]
        self.assertEqual(calculate_percentile(data, None, 0.25, 5), 1.5)
        self.assertEqual(calculate_percentile(data, None, 0.75, 5), 4.5)
        self.assertEqual(calculate_iqr(data, None, 5), 3.0)

    def test_interpolation(self):
        # rank (4 + 1) * 0.5 = 2.5 -> halfway between 20 and 30
        self.assertEqual(calculate_median([40, 10, 30, 20], None, 4), 25.0)

    def test_weighted_percentile(self):
        # cumulative weights 1, 4, 5: ranks 2..4 all fall on value 2
        self.assertEqual(calculate_median([1, 2, 3], [1, 3, 1], 5), 2.0)

    def test_bounds_are_min_and_max(self):
        generator = SyntheticDataGenerator(seed=3)
        for n in (1, 2, 7, 50):
            data = generator.generate_numeric_column(n=n)
            W = float(len(data))
            self.assertEqual(calculate_percentile(data, None, 0, W), min(data))
            self.assertEqual(calculate_percentile(data, None, 1, W), max(data))

    def test_median_is_half_percentile(self):
        generator = SyntheticDataGenerator(seed=5)
        data = generator.generate_numeric_column(n=33)
        weights = generator.generate_weights(n=33)
        W = float(sum(weights))
        self.assertEqual(calculate_median(data, weights, W), calculate_percentile(data, weights, 0.5, W))

    def test_out_of_range_and_empty(self):
        self.assertIsNone(calculate_percentile([1, 2], None, 1.5, 2))
        self.assertIsNone(calculate_percentile([], None, 0.5, 0))
        self.assertIsNone(calculate_percentile(["a"], None, 0.5, 1))

    def test_find_value_at_rank(self):
        items = [(1.0, 1.0), (2.0, 3.0), (3.0, 1.0)]
        self.assertEqual(find_value_at_rank(0.5, items, 5), 1.0)
        self.assertEqual(find_value_at_rank(2, items, 5), 2.0)
        self.assertEqual(find_value_at_rank(5, items, 5), 3.0)


class TestMode(unittest.TestCase):
    """Tests for calculate_mode."""

    def test_single_mode(self):
        self.assertEqual(calculate_mode([1, 2, 2, 3], None, VariableType.NUMERIC), 2)

    def test_partial_tie_returns_smallest_without_suffix(self):
        self.assertEqual(calculate_mode([1, 1, 2, 2, 3], None, VariableType.NUMERIC), 1)

    def test_all_tied_gets_suffix(self):
        self.assertEqual(calculate_mode([3, 1, 2], None, VariableType.NUMERIC), "1*")
        self.assertEqual(calculate_mode(["b", "a"], None, VariableType.STRING), "a*")

    def test_single_distinct_value(self):
        self.assertEqual(calculate_mode([5, 5], None, VariableType.NUMERIC), 5)

    def test_weighted_mode(self):
        self.assertEqual(calculate_mode([1, 2, 3], [1, 5, 1], VariableType.NUMERIC), 2)

    def test_user_missing_excluded(self):
        self.assertEqual(calculate_mode([99, 99, 99, 1], None, VariableType.NUMERIC, DiscreteMissing(values=(99,))), 1)

    def test_no_valid_values(self):
        self.assertIsNone(calculate_mode(["", None], None, VariableType.NUMERIC))


class TestZScores(unittest.TestCase):

    def test_row_aligned(self):
        scores = calculate_z_scores([1, "", 3, 99], VariableType.NUMERIC, DiscreteMissing(values=(99,)), 2.0, 1.0)
        self.assertEqual(scores, [-1.0, "", 1.0, ""])

    def test_zero_sd(self):
        self.assertIsNone(calculate_z_scores([1, 1], VariableType.NUMERIC, None, 1.0, 0.0))


if __name__ == '__main__':
    unittest.main()
