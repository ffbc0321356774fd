# Statify Engine - Tests: Two Related Samples
# Wilcoxon signed-rank and Sign tests on paired columns

import sys
import os
import math
import unittest

import pytest
from scipy import stats

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from statengine.stats.data_model import Variable
from statengine.stats.related_samples import (
    RelatedTestType,
    TwoRelatedSamplesTest,
    build_pairs,
    run_two_related_samples,
)
from tests.synthetic_data_generator import SyntheticDataGenerator


def _scale(name, **kwargs):
    data = {"name": name, "type": "NUMERIC", "measure": "scale"}
    data.update(kwargs)
    return Variable.from_dict(data)


BOTH = RelatedTestType(wilcoxon=True, sign=True)


class TestPairBuilding(unittest.TestCase):

    def test_rows_need_both_members(self):
        pairs = build_pairs(_scale("a"), [1, "", 3, "x", 5], _scale("b"), [2, 2, None, 4, "6"])
        self.assertEqual(pairs.values1, [1.0, 5.0])
        self.assertEqual(pairs.values2, [2.0, 6.0])
        self.assertEqual(pairs.row_indices, [0, 4])

    def test_user_missing_drops_pair(self):
        pairs = build_pairs(_scale("a", missing={"discrete": [9]}), [1, 9], _scale("b"), [2, 3])
        self.assertEqual(pairs.n, 1)

    def test_unequal_lengths(self):
        self.assertEqual(build_pairs(_scale("a"), [1, 2, 3], _scale("b"), [1]).n, 1)


class TestWilcoxon(unittest.TestCase):
    """Wilcoxon signed-rank with mid-ranks for tied |d|."""

    def setUp(self):
        # differences (second - first): 1, 2, 0, 3, 4, -1
        self.test = TwoRelatedSamplesTest(
            _scale("before"), [1, 2, 3, 4, 5, 6],
            _scale("after"), [2, 4, 3, 7, 9, 5],
            BOTH,
        )

    def test_ranks(self):
        ranks = self.test.get_ranks_frequencies()
        self.assertEqual(ranks["N"], 6)
        self.assertEqual(ranks["ties"], 1)
        self.assertEqual(ranks["positiveRanks"]["N"], 4)
        self.assertEqual(ranks["negativeRanks"]["N"], 1)
        # |d| = 1 appears twice and shares rank 1.5
        self.assertEqual(ranks["negativeRanks"]["sumRanks"], 1.5)
        self.assertEqual(ranks["positiveRanks"]["sumRanks"], 13.5)
        self.assertEqual(ranks["positiveRanks"]["meanRank"], 13.5 / 4)

    def test_statistic(self):
        result = self.test.get_test_statistics_wilcoxon()
        n = 5
        expected_z = (1.5 - n * (n + 1) / 4) / math.sqrt(n * (n + 1) * (2 * n + 1) / 24)
        self.assertEqual(result["N"], 5)
        self.assertEqual(result["W"], 1.5)
        self.assertAlmostEqual(result["Z"], expected_z)
        self.assertAlmostEqual(result["pValue"], 2 * stats.norm.sf(abs(expected_z)))

    def test_rank_sums_total(self):
        generator = SyntheticDataGenerator(seed=11)
        first, second = generator.generate_paired_columns(n=30, blank_rate=0.1)
        test = TwoRelatedSamplesTest(_scale("a"), first, _scale("b"), second)
        ranks = test.get_ranks_frequencies()
        n = ranks["N"] - ranks["ties"]
        total = ranks["positiveRanks"]["sumRanks"] + ranks["negativeRanks"]["sumRanks"]
        self.assertAlmostEqual(total, n * (n + 1) / 2)

    def test_empty_rank_group_has_zero_mean_rank(self):
        test = TwoRelatedSamplesTest(_scale("a"), [1, 2, 3], _scale("b"), [2, 4, 6], BOTH)
        ranks = test.get_ranks_frequencies()
        self.assertEqual(ranks["negativeRanks"], {"N": 0, "sumRanks": 0.0, "meanRank": 0.0})
        table = run_two_related_samples([(_scale("a"), [1, 2, 3], _scale("b"), [2, 4, 6])], BOTH).to_dict()
        self.assertEqual(table["tables"][0]["rows"][0]["Mean Rank"], 0.0)

    def test_not_requested(self):
        test = TwoRelatedSamplesTest(_scale("a"), [1], _scale("b"), [2], RelatedTestType(wilcoxon=False, sign=True))
        self.assertIsNone(test.get_ranks_frequencies())
        self.assertIsNone(test.get_test_statistics_wilcoxon())


class TestSign(unittest.TestCase):
    """Sign test with large-sample Z and exact binomial p."""

    def test_counts_and_exact_p(self):
        test = TwoRelatedSamplesTest(
            _scale("before"), [1, 2, 3, 4, 5, 6],
            _scale("after"), [2, 4, 3, 7, 9, 5],
            BOTH,
        )
        result = test.get_test_statistics_sign()
        self.assertEqual(result["positiveCount"], 4)
        self.assertEqual(result["negativeCount"], 1)
        self.assertEqual(result["ties"], 1)
        self.assertAlmostEqual(result["Z"], (4 - 2.5) / math.sqrt(1.25))
        self.assertAlmostEqual(result["exactPValue"], 0.375)

    @pytest.mark.slow
    def test_large_sample_has_no_exact_p_slow(self):
        generator = SyntheticDataGenerator(seed=5)
        first, second = generator.generate_paired_columns(n=60)
        result = TwoRelatedSamplesTest(_scale("a"), first, _scale("b"), second, BOTH).get_test_statistics_sign()
        self.assertIsNone(result["exactPValue"])
        self.assertGreater(result["N"], 25)


class TestDegenerateSamples(unittest.TestCase):

    @pytest.mark.edge_case
    def test_identical_sequences(self):
        data = [3, 1, 4, 1, 5]
        test = TwoRelatedSamplesTest(_scale("a"), data, _scale("b"), list(data), BOTH)
        output = test.get_output()
        self.assertTrue(output["metadata"]["hasInsufficientData"])
        self.assertIn("no_difference", output["metadata"]["insufficientType"])
        ranks = output["ranksFrequencies"]
        self.assertEqual(ranks["positiveRanks"]["N"], 0)
        self.assertEqual(ranks["negativeRanks"]["N"], 0)
        self.assertEqual(ranks["ties"], len(data))
        self.assertEqual(ranks["positiveRanks"]["meanRank"], 0.0)
        self.assertIsNone(output["testStatisticsWilcoxon"]["Z"])
        self.assertIsNone(output["testStatisticsSign"]["Z"])

    @pytest.mark.edge_case
    def test_empty(self):
        output = TwoRelatedSamplesTest(_scale("a"), [], _scale("b"), [], BOTH).get_output()
        self.assertEqual(output["N"], 0)
        self.assertTrue(output["metadata"]["hasInsufficientData"])
        self.assertIn("empty", output["metadata"]["insufficientType"])


class TestRelatedSamplesProcedure(unittest.TestCase):

    def test_tables(self):
        pairs = [
            (_scale("a", label="Before"), [1, 2, 3, 4], _scale("b", label="After"), [2, 3, 5, 3]),
            (_scale("c"), [1, 1], _scale("d"), [1, 1]),
        ]
        result = run_two_related_samples(pairs, BOTH).to_dict()
        titles = [t["title"] for t in result["tables"]]
        self.assertEqual(titles, ["Ranks", "Test Statistics", "Frequencies", "Test Statistics"])
        ranks = result["tables"][0]
        self.assertEqual(ranks["rows"][0]["rowHeader"], ["After - Before", "Negative Ranks"])
        self.assertEqual(len(ranks["rows"]), 8)
        self.assertTrue(result["metadata"]["hasInsufficientData"])
        self.assertEqual(len(result["output"]), 2)

    def test_default_is_wilcoxon_only(self):
        result = run_two_related_samples([(_scale("a"), [1, 2, 3], _scale("b"), [3, 1, 2])])
        self.assertEqual([t.title for t in result.tables], ["Ranks", "Test Statistics"])


if __name__ == '__main__':
    unittest.main()
