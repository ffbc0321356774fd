# Statify Engine - Descriptive Statistics
# Measure-aware summary statistics per variable

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any, Optional, Sequence

from statengine.core.logging import get_logger, log_execution_time
from statengine.stats.data_model import (
    MeasureLevel,
    ProcedureResult,
    ResultTable,
    ValidSample,
    Variable,
    VariableType,
    headers,
)
from statengine.stats.missing_values import (
    filter_valid,
    is_missing,
    is_numerically_convertible,
    is_weight_invalid,
    numeric_values,
)
from statengine.stats.summary_statistics import (
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
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class DescriptiveOptions:
    save_standardized: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "DescriptiveOptions":
        data = data or {}
        return cls(save_standardized=bool(data.get("saveStandardized", data.get("save_standardized", False))))


class DescriptiveStatistics:
    """
    Summary statistics for one variable.

    Which statistics are produced depends on the effective measurement
    level: nominal variables get counts and the mode, ordinal variables add
    quartiles, scale variables get the full moment set.
    """

    def __init__(
        self,
        variable: Variable,
        data: Sequence[Any],
        weights: Optional[Sequence[Any]] = None,
        options: Optional[DescriptiveOptions] = None,
    ) -> None:
        self.variable = variable
        self.data = list(data or [])
        self.weights = list(weights) if weights is not None else None
        self.options = options or DescriptiveOptions()

    @cached_property
    def sample(self) -> ValidSample:
        return filter_valid(self.data, self.weights, self.variable.type, self.variable.missing)

    @cached_property
    def _numeric(self) -> list[Optional[float]]:
        return numeric_values(self.sample, self.variable.type)

    @cached_property
    def valid_weight(self) -> float:
        """Weighted count of valid cells, numeric or not."""
        if self.sample.valid_weights is not None:
            return float(sum(self.sample.valid_weights))
        return float(self.sample.valid_n)

    @property
    def total_w(self) -> float:
        return self.sample.total_w

    @cached_property
    def mean(self) -> Optional[float]:
        return calculate_mean(self._numeric, self.sample.valid_weights, self.total_w)

    @cached_property
    def variance(self) -> Optional[float]:
        return calculate_variance(self._numeric, self.sample.valid_weights, self.total_w, self.mean)

    @cached_property
    def std_dev(self) -> Optional[float]:
        return calculate_std_dev(self.variance)

    def percentile(self, p: float) -> Optional[float]:
        return calculate_percentile(self._numeric, self.sample.valid_weights, p, self.total_w)

    @cached_property
    def mode(self) -> Any:
        return calculate_mode(self.data, self.weights, self.variable.type, self.variable.missing)

    def _quartiles(self) -> dict[str, Any]:
        p25 = self.percentile(0.25)
        p75 = self.percentile(0.75)
        return {
            "Median": calculate_median(self._numeric, self.sample.valid_weights, self.total_w),
            "25th Percentile": p25,
            "75th Percentile": p75,
            "IQR": calculate_iqr(self._numeric, self.sample.valid_weights, self.total_w),
            "Percentiles": {"25": p25, "75": p75},
        }

    def _nominal_stats(self) -> dict[str, Any]:
        return {
            "N": len(self.data),
            "Valid": self.valid_weight,
            "Missing": len(self.data) - self.valid_weight,
            "Mode": self.mode,
        }

    def _ordinal_stats(self) -> dict[str, Any]:
        stats = {
            "N": len(self.data),
            "Valid": self.total_w,
            "Missing": len(self.data) - self.total_w,
            "Mode": self.mode,
        }
        stats.update(self._quartiles())
        return stats

    def _scale_stats(self) -> dict[str, Any]:
        values, weights, W = self._numeric, self.sample.valid_weights, self.total_w
        minimum = calculate_min(values)
        maximum = calculate_max(values)
        stats = {
            "N": len(self.data),
            "Valid": W,
            "Missing": len(self.data) - W,
            "Mean": self.mean,
            "Sum": calculate_sum(values, weights) if W > 0 else None,
            "StdDev": self.std_dev,
            "Variance": self.variance,
            "SEMean": calculate_se_mean(self.std_dev, W),
            "Minimum": minimum,
            "Maximum": maximum,
            "Range": calculate_range(minimum, maximum),
            "Skewness": calculate_skewness(values, weights, W, self.mean, self.std_dev),
            "SESkewness": calculate_se_skewness(W),
            "Kurtosis": calculate_kurtosis(values, weights, W, self.mean, self.std_dev),
            "SEKurtosis": calculate_se_kurtosis(W),
        }
        stats.update(self._quartiles())
        return stats

    def z_scores(self) -> Optional[list[Any]]:
        if not self.options.save_standardized:
            return None
        return calculate_z_scores(self.data, self.variable.type, self.variable.missing, self.mean, self.std_dev)

    @cached_property
    def statistics(self) -> dict[str, Any]:
        measure = self.variable.effective_measure
        if measure == MeasureLevel.NOMINAL:
            stats = self._nominal_stats()
        elif measure == MeasureLevel.ORDINAL:
            stats = self._ordinal_stats()
        else:
            stats = self._scale_stats()
        logger.debug(
            "Computed descriptive statistics",
            variable=self.variable.name,
            measure=measure.value,
            valid=stats["Valid"],
        )
        return stats

    def get_output(self) -> dict[str, Any]:
        is_scale = self.variable.effective_measure == MeasureLevel.SCALE
        return {
            "variable": self.variable.name,
            "measure": self.variable.effective_measure.value,
            "stats": self.statistics,
            "zScores": self.z_scores() if is_scale else None,
        }


# ============================================================================
# Table Builder
# ============================================================================

_DESCRIPTIVE_COLUMNS = [
    ("N", "Valid"),
    ("Range", "Range"),
    ("Minimum", "Minimum"),
    ("Maximum", "Maximum"),
    ("Sum", "Sum"),
    ("Mean", "Mean"),
    ("Std. Error of Mean", "SEMean"),
    ("Std. Deviation", "StdDev"),
    ("Variance", "Variance"),
    ("Skewness", "Skewness"),
    ("Std. Error of Skewness", "SESkewness"),
    ("Kurtosis", "Kurtosis"),
    ("Std. Error of Kurtosis", "SEKurtosis"),
]


def listwise_valid_n(
    variables: Sequence[Variable],
    columns: Sequence[Sequence[Any]],
    weights: Optional[Sequence[Any]] = None,
) -> float:
    """Weighted count of rows valid and numeric in every variable."""
    if not variables:
        return 0.0
    rows = min(len(c) for c in columns) if columns else 0
    total = 0.0
    for i in range(rows):
        if weights is None:
            weight = 1
        else:
            weight = weights[i] if i < len(weights) else None
        if is_weight_invalid(weight):
            continue
        ok = True
        for variable, column in zip(variables, columns):
            value = column[i]
            if is_missing(value, variable.type, variable.missing):
                ok = False
                break
            if variable.type != VariableType.STRING and not is_numerically_convertible(value, variable.type):
                ok = False
                break
        if ok:
            total += float(weight)
    return total


def build_descriptive_table(
    calculators: Sequence[DescriptiveStatistics],
    listwise_n: Optional[float] = None,
) -> ResultTable:
    table = ResultTable(
        title="Descriptive Statistics",
        column_headers=headers(*(name for name, _ in _DESCRIPTIVE_COLUMNS)),
    )
    for calc in calculators:
        stats = calc.statistics
        table.add_row(
            [calc.variable.display_name],
            **{name: stats.get(key) for name, key in _DESCRIPTIVE_COLUMNS},
        )
    if listwise_n is not None:
        table.add_row(["Valid N (listwise)"], N=listwise_n)
    return table


@log_execution_time(operation_name="descriptives")
def run_descriptives(
    variables: Sequence[Variable],
    columns: Sequence[Sequence[Any]],
    weights: Optional[Sequence[Any]] = None,
    options: Optional[DescriptiveOptions] = None,
) -> ProcedureResult:
    """Descriptive statistics for every selected variable."""
    calculators = [
        DescriptiveStatistics(variable, column, weights, options)
        for variable, column in zip(variables, columns)
    ]
    table = build_descriptive_table(calculators, listwise_valid_n(variables, columns, weights))
    return ProcedureResult(
        procedure="descriptives",
        tables=[table],
        metadata={"variables": [v.name for v in variables]},
        output=[calc.get_output() for calc in calculators],
    )
