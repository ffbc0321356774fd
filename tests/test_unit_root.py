# Statify Engine - Tests: Unit Root Tests
# Preconditions, regression statistics and output documents

import sys
import os
import json
import unittest

import numpy as np
import pytest
import statsmodels.api as sm
from statsmodels.stats.stattools import durbin_watson

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from statengine.core.exceptions import ValidationException
from statengine.stats.data_model import Variable
from statengine.stats.unit_root import (
    AugmentedDickeyFullerTest,
    DickeyFullerTest,
    difference_series,
    prepare_series,
    run_unit_root,
    run_unit_root_test,
    validate_unit_root_request,
)
from tests.synthetic_data_generator import SyntheticDataGenerator


def _description(output):
    table = json.loads(output[1])["tables"][0]
    return {row["rowHeader"][0]: row["description"] for row in table["rows"]}


class TestPreconditions(unittest.TestCase):
    """First failing check wins, with the dialog's exact messages."""

    def setUp(self):
        self.numeric = Variable.from_dict({"name": "gdp", "type": "NUMERIC"})
        self.series = [float(i) for i in range(25)]

    def _message(self, variables, series, lag):
        with self.assertRaises(ValidationException) as ctx:
            validate_unit_root_request(variables, series, lag)
        return ctx.exception.message

    def test_no_variable(self):
        self.assertEqual(self._message([], self.series, 1), "Please select at least one variable.")

    def test_string_variable(self):
        variable = Variable.from_dict({"name": "city", "type": "STRING"})
        self.assertEqual(self._message([variable], self.series, 1), "Selected variable is not numeric")

    def test_no_data(self):
        self.assertEqual(self._message([self.numeric], [], 1), "No data available for the selected variable.")

    def test_short_series(self):
        self.assertEqual(
            self._message([self.numeric], self.series[:19], 1),
            "Data length is less than 20 observations.",
        )

    def test_lag_bounds(self):
        for lag in (0, 11, 2.5, "abc"):
            self.assertEqual(self._message([self.numeric], self.series, lag), "Lag length must be between 1 and 10.")

    def test_valid_request(self):
        validate_unit_root_request([self.numeric], self.series, 10)
        validate_unit_root_request([self.numeric], self.series, "3")


class TestSeriesPreparation(unittest.TestCase):

    def test_prepare_series(self):
        raw = ["1", "", "abc", 2, None, "12kg", 0, "", None]
        self.assertEqual(prepare_series(raw), [1.0, 2.0, 12.0, 0.0])

    def test_prepare_empty(self):
        self.assertEqual(prepare_series(["", None]), [])
        self.assertEqual(prepare_series(None), [])

    def test_difference_series(self):
        self.assertEqual(difference_series([1, 4, 9, 16], 0).tolist(), [1, 4, 9, 16])
        self.assertEqual(difference_series([1, 4, 9, 16], 1).tolist(), [3, 5, 7])
        self.assertEqual(difference_series([1, 4, 9, 16], 2).tolist(), [2, 2])


class TestConstantSeriesScenario(unittest.TestCase):
    """25 identical rows, Dickey-Fuller without constant, lag 1 requested."""

    @classmethod
    def setUpClass(cls):
        variable = Variable.from_dict({"name": "x", "type": "NUMERIC"})
        cls.result = run_unit_root(
            [variable],
            [[3] * 25],
            {"method": "dickey-fuller", "equation": "no_constant", "difference": "level", "lag": 1},
        )
        cls.output = cls.result.output

    def test_output_shape(self):
        self.assertEqual(len(self.output), 7)
        self.assertEqual(self.output[0], "success")
        self.assertEqual(self.output[6], "Dickey-Fuller")

    def test_description_rows(self):
        description = _description(self.output)
        self.assertEqual(description["Name Method"], "Dickey-Fuller")
        self.assertEqual(description["Series Name"], "x")
        self.assertEqual(description["Equation"], "no_constant")
        self.assertEqual(description["Number of Lags"], "0")
        self.assertEqual(description["Differencing"], "level")
        self.assertEqual(description["Probability Value"], "Use MacKinnon (1996) one-sided p-values")
        self.assertEqual(description["Observations"], "25")
        self.assertEqual(description["Number Observations After Computing"], "20")

    @pytest.mark.edge_case
    def test_degenerate_statistics_are_null(self):
        statistic = json.loads(self.output[3])["tables"][0]
        self.assertEqual(statistic["title"], "Dickey-Fuller Test Statistic")
        self.assertIsNone(statistic["rows"][0]["t-Statistic"])
        self.assertIsNone(statistic["rows"][0]["Prob."])
        criteria = json.loads(self.output[5])["tables"][0]
        self.assertEqual(criteria["title"], "Selection Criterion")
        values = {row["rowHeader"][0]: row["value"] for row in criteria["rows"]}
        self.assertIsNone(values["R-squared"])
        self.assertIsNone(values["Log likelihood"])

    def test_documents_are_strict_json(self):
        for document in (self.output[1], self.output[3], self.output[4], self.output[5]):
            self.assertNotIn("NaN", document)
            self.assertNotIn("Infinity", document)


class TestObservationCounts(unittest.TestCase):

    def test_twenty_observations_for_every_difference(self):
        series = SyntheticDataGenerator(seed=1).generate_random_walk(n=25)
        for difference in ("level", "first-difference", "second-difference"):
            output = run_unit_root_test(series, "y", "dickey-fuller", 1, "no_trend", difference)
            self.assertEqual(_description(output)["Number Observations After Computing"], "20", difference)

    def test_lags_extend_presample(self):
        series = SyntheticDataGenerator(seed=2).generate_random_walk(n=60)
        test = AugmentedDickeyFullerTest(series, "y", equation="no_trend", difference="level", lag=8)
        self.assertEqual(test.nobs, 60 - 9)
        self.assertEqual(test.fit.names, ["y(-1)"] + [f"D(y(-{i}))" for i in range(1, 9)] + ["C"])


class TestRegressionStatistics(unittest.TestCase):
    """The regression agrees with statsmodels OLS on the same design."""

    @classmethod
    def setUpClass(cls):
        generator = SyntheticDataGenerator(seed=42)
        cls.series = generator.generate_random_walk(n=120)
        cls.test = AugmentedDickeyFullerTest(cls.series, "y", equation="with_trend", difference="level", lag=2)
        y, X, _ = cls.test.design
        cls.reference = sm.OLS(y, X).fit()

    def test_coefficients(self):
        fit = self.test.fit
        np.testing.assert_allclose(fit.coefficients, self.reference.params, rtol=1e-8)
        np.testing.assert_allclose(fit.std_errors, self.reference.bse, rtol=1e-8)
        np.testing.assert_allclose(fit.t_values, self.reference.tvalues, rtol=1e-8)
        np.testing.assert_allclose(fit.p_values, self.reference.pvalues, rtol=1e-6)

    def test_criteria(self):
        criteria = self.test.fit.criteria
        n = self.test.nobs
        self.assertAlmostEqual(criteria["R-squared"], self.reference.rsquared)
        self.assertAlmostEqual(criteria["Adjusted R-squared"], self.reference.rsquared_adj)
        self.assertAlmostEqual(criteria["Log likelihood"], self.reference.llf)
        self.assertAlmostEqual(criteria["Akaike info criterion"], self.reference.aic / n)
        self.assertAlmostEqual(criteria["Schwarz criterion"], self.reference.bic / n)
        self.assertAlmostEqual(criteria["F-statistic"], self.reference.fvalue)
        self.assertAlmostEqual(criteria["Prob(F-statistic)"], self.reference.f_pvalue)
        self.assertAlmostEqual(criteria["Durbin-Watson stat"], durbin_watson(self.reference.resid))
        self.assertAlmostEqual(criteria["Sum squared resid"], self.reference.ssr)

    def test_mackinnon_values(self):
        statistic = self.test.statistic
        self.assertEqual(statistic["tau"], self.test.fit.t_values[0])
        self.assertGreaterEqual(statistic["pValue"], 0.0)
        self.assertLessEqual(statistic["pValue"], 1.0)
        self.assertLess(statistic["critical1"], statistic["critical5"])
        self.assertLess(statistic["critical5"], statistic["critical10"])

    def test_coefficient_table(self):
        table = self.test.coefficient_table().to_dict()
        self.assertEqual(table["title"], "Coeficient Regression Test")
        headers = [row["rowHeader"][0] for row in table["rows"]]
        self.assertEqual(headers, ["y(-1)", "D(y(-1))", "D(y(-2))", "C", "@TREND"])


class TestStationarity(unittest.TestCase):

    @pytest.mark.slow
    def test_stationary_series_rejects_unit_root_slow(self):
        series = SyntheticDataGenerator(seed=9).generate_stationary_series(n=300, phi=0.2)
        test = DickeyFullerTest(series, "e", equation="no_trend")
        self.assertLess(test.statistic["pValue"], 0.01)
        self.assertLess(test.statistic["tau"], test.statistic["critical1"])

    def test_unknown_equation(self):
        with self.assertRaises(ValidationException):
            DickeyFullerTest([1.0] * 30, "e", equation="quadratic")


# =============================================================================
# Fixture-based scenarios
# =============================================================================

def test_random_walk_does_not_reject(random_walk):
    test = DickeyFullerTest(random_walk, "rw", equation="no_trend")
    assert test.statistic["pValue"] > 0.001
    assert test.nobs == len(random_walk) - 5


def test_adf_on_stationary_series(stationary_series):
    test = AugmentedDickeyFullerTest(stationary_series, "ar", equation="with_trend", lag=3)
    assert test.statistic["tau"] < test.statistic["critical5"]
    assert len(test.coefficient_rows()) == 1 + 3 + 2


def test_trend_series_with_trend_equation(synthetic_generator):
    series = synthetic_generator.generate_trend_series(n=80)
    test = DickeyFullerTest(series, "t", equation="with_trend")
    assert test.fit.names == ["t(-1)", "C", "@TREND"]
    assert test.nobs == 75


if __name__ == '__main__':
    unittest.main()
