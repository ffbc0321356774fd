# Statify Engine - Two Related Samples Tests
# Wilcoxon signed-rank and Sign tests on paired observations

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Optional, Sequence

import numpy as np
from scipy import stats

from statengine.core.config import settings
from statengine.core.logging import get_logger, log_execution_time
from statengine.stats.data_model import (
    PairedSample,
    ProcedureResult,
    ResultTable,
    Variable,
    headers,
)
from statengine.stats.missing_values import is_missing, strict_number

logger = get_logger(__name__)


def two_sided_normal_p(z: float) -> float:
    return 2 * (1 - stats.norm.cdf(abs(z)))


@dataclass(frozen=True)
class RelatedTestType:
    """Which related-samples tests to run."""
    wilcoxon: bool = True
    sign: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "RelatedTestType":
        if not data:
            return cls()
        return cls(wilcoxon=bool(data.get("wilcoxon", False)), sign=bool(data.get("sign", False)))


def build_pairs(
    variable1: Variable,
    data1: Sequence[Any],
    variable2: Variable,
    data2: Sequence[Any],
) -> PairedSample:
    """Rows where both members are non-missing and numeric."""
    type1 = variable1.missing_check_type
    type2 = variable2.missing_check_type
    values1: list[float] = []
    values2: list[float] = []
    rows: list[int] = []
    for i in range(min(len(data1), len(data2))):
        a, b = data1[i], data2[i]
        if is_missing(a, type1, variable1.missing) or is_missing(b, type2, variable2.missing):
            continue
        x, y = strict_number(a), strict_number(b)
        if x is None or y is None:
            continue
        values1.append(x)
        values2.append(y)
        rows.append(i)
    return PairedSample(values1=values1, values2=values2, row_indices=rows)


class TwoRelatedSamplesTest:
    """
    Wilcoxon and Sign tests for one pair of variables.

    Pairs are built lazily on the first statistic request and every
    statistic is computed once per instance. Degenerate samples are
    reported through ``insufficient_type`` instead of raising.
    """

    def __init__(
        self,
        variable1: Variable,
        data1: Sequence[Any],
        variable2: Variable,
        data2: Sequence[Any],
        test_type: Optional[RelatedTestType] = None,
    ) -> None:
        self.variable1 = variable1
        self.data1 = list(data1 or [])
        self.variable2 = variable2
        self.data2 = list(data2 or [])
        self.test_type = test_type or RelatedTestType()

    @cached_property
    def pairs(self) -> PairedSample:
        sample = build_pairs(self.variable1, self.data1, self.variable2, self.data2)
        logger.debug(
            "Built related pairs",
            variable1=self.variable1.name,
            variable2=self.variable2.name,
            n=sample.n,
        )
        return sample

    @property
    def n(self) -> int:
        return self.pairs.n

    @cached_property
    def insufficient_type(self) -> list[str]:
        flags: list[str] = []
        if self.n < 1:
            flags.append("empty")
        if self.n > 0 and all(a == b for a, b in zip(self.pairs.values1, self.pairs.values2)):
            flags.append("no_difference")
        return flags

    @property
    def has_insufficient_data(self) -> bool:
        return bool(self.insufficient_type)

    @cached_property
    def _differences(self) -> np.ndarray:
        return np.asarray(self.pairs.differences, dtype=float)

    def get_ranks_frequencies(self) -> Optional[dict[str, Any]]:
        if not self.test_type.wilcoxon:
            return None
        return self._ranks_frequencies

    @cached_property
    def _ranks_frequencies(self) -> dict[str, Any]:
        diffs = self._differences
        nonzero = diffs[diffs != 0]
        ties = int(diffs.size - nonzero.size)

        if nonzero.size:
            ranks = stats.rankdata(np.abs(nonzero), method="average")
        else:
            ranks = np.asarray([], dtype=float)
        positive = ranks[nonzero > 0]
        negative = ranks[nonzero < 0]

        def _summary(group: np.ndarray) -> dict[str, Any]:
            total = float(group.sum())
            return {
                "N": int(group.size),
                "sumRanks": total,
                "meanRank": total / group.size if group.size else 0.0,
            }

        return {
            "N": self.n,
            "ties": ties,
            "positiveRanks": _summary(positive),
            "negativeRanks": _summary(negative),
        }

    def get_test_statistics_wilcoxon(self) -> Optional[dict[str, Any]]:
        if not self.test_type.wilcoxon:
            return None
        return self._wilcoxon

    @cached_property
    def _wilcoxon(self) -> dict[str, Any]:
        ranks = self._ranks_frequencies
        W = min(ranks["positiveRanks"]["sumRanks"], ranks["negativeRanks"]["sumRanks"])
        n = ranks["N"] - ranks["ties"]
        mean_w = n * (n + 1) / 4
        var_w = n * (n + 1) * (2 * n + 1) / 24

        z: Optional[float] = None
        p_value: Optional[float] = None
        if var_w > 0:
            z = (W - mean_w) / math.sqrt(var_w)
            p_value = two_sided_normal_p(z)
        return {"W": W, "Z": z, "pValue": p_value, "N": n}

    def get_test_statistics_sign(self) -> Optional[dict[str, Any]]:
        if not self.test_type.sign:
            return None
        return self._sign

    @cached_property
    def _sign(self) -> dict[str, Any]:
        diffs = self._differences
        positive = int(np.sum(diffs > 0))
        negative = int(np.sum(diffs < 0))
        ties = int(np.sum(diffs == 0))
        n = positive + negative

        z: Optional[float] = None
        p_value: Optional[float] = None
        exact_p: Optional[float] = None
        if n > 0:
            z = (positive - n / 2) / math.sqrt(n / 4)
            p_value = two_sided_normal_p(z)
            if n <= settings.stats.exact_sign_test_max_n:
                exact_p = min(1.0, 2 * float(stats.binom.cdf(min(positive, negative), n, 0.5)))
        return {
            "positiveCount": positive,
            "negativeCount": negative,
            "ties": ties,
            "N": n,
            "Z": z,
            "pValue": p_value,
            "exactPValue": exact_p,
        }

    def get_output(self) -> dict[str, Any]:
        return {
            "variable1": self.variable1.name,
            "variable2": self.variable2.name,
            "N": self.n,
            "metadata": {
                "hasInsufficientData": self.has_insufficient_data,
                "insufficientType": list(self.insufficient_type),
                "variable1Label": self.variable1.label,
                "variable2Label": self.variable2.label,
                "variable1Name": self.variable1.name,
                "variable2Name": self.variable2.name,
            },
            "ranksFrequencies": self.get_ranks_frequencies(),
            "testStatisticsWilcoxon": self.get_test_statistics_wilcoxon(),
            "testStatisticsSign": self.get_test_statistics_sign(),
        }


# ============================================================================
# Table Builders
# ============================================================================

def _pair_label(test: TwoRelatedSamplesTest) -> str:
    return f"{test.variable2.display_name} - {test.variable1.display_name}"


def build_ranks_table(tests: Sequence[TwoRelatedSamplesTest]) -> ResultTable:
    table = ResultTable(title="Ranks", column_headers=headers("N", "Mean Rank", "Sum of Ranks"))
    for test in tests:
        ranks = test.get_ranks_frequencies()
        if ranks is None:
            continue
        label = _pair_label(test)
        neg, pos = ranks["negativeRanks"], ranks["positiveRanks"]
        table.add_row([label, "Negative Ranks"], **{"N": neg["N"], "Mean Rank": neg["meanRank"], "Sum of Ranks": neg["sumRanks"]})
        table.add_row([label, "Positive Ranks"], **{"N": pos["N"], "Mean Rank": pos["meanRank"], "Sum of Ranks": pos["sumRanks"]})
        table.add_row([label, "Ties"], N=ranks["ties"])
        table.add_row([label, "Total"], N=ranks["N"])
    table.footnotes.extend([
        "a. second variable < first variable",
        "b. second variable > first variable",
        "c. second variable = first variable",
    ])
    return table


def build_frequencies_table(tests: Sequence[TwoRelatedSamplesTest]) -> ResultTable:
    table = ResultTable(title="Frequencies", column_headers=headers("N"))
    for test in tests:
        sign = test.get_test_statistics_sign()
        if sign is None:
            continue
        label = _pair_label(test)
        table.add_row([label, "Negative Differences"], N=sign["negativeCount"])
        table.add_row([label, "Positive Differences"], N=sign["positiveCount"])
        table.add_row([label, "Ties"], N=sign["ties"])
        table.add_row([label, "Total"], N=test.n)
    return table


def build_test_statistics_table(tests: Sequence[TwoRelatedSamplesTest], kind: str) -> ResultTable:
    """``kind`` is ``"wilcoxon"`` or ``"sign"``."""
    columns = ["Z", "Asymp. Sig. (2-tailed)"]
    if kind == "sign":
        columns.append("Exact Sig. (2-tailed)")
    table = ResultTable(title="Test Statistics", column_headers=headers(*columns))
    for test in tests:
        result = test.get_test_statistics_wilcoxon() if kind == "wilcoxon" else test.get_test_statistics_sign()
        if result is None:
            continue
        row = {"Z": result["Z"], "Asymp. Sig. (2-tailed)": result["pValue"]}
        if kind == "sign":
            row["Exact Sig. (2-tailed)"] = result["exactPValue"]
        table.add_row([_pair_label(test)], **row)
    table.footnotes.append("Wilcoxon Signed Ranks Test" if kind == "wilcoxon" else "Sign Test")
    return table


@log_execution_time(operation_name="two_related_samples")
def run_two_related_samples(
    pairs: Sequence[tuple[Variable, Sequence[Any], Variable, Sequence[Any]]],
    test_type: Optional[RelatedTestType] = None,
) -> ProcedureResult:
    """Run the requested tests for each pair independently."""
    test_type = test_type or RelatedTestType()
    tests = [TwoRelatedSamplesTest(v1, d1, v2, d2, test_type) for v1, d1, v2, d2 in pairs]

    tables: list[ResultTable] = []
    if test_type.wilcoxon:
        tables.append(build_ranks_table(tests))
        tables.append(build_test_statistics_table(tests, "wilcoxon"))
    if test_type.sign:
        tables.append(build_frequencies_table(tests))
        tables.append(build_test_statistics_table(tests, "sign"))

    outputs = [t.get_output() for t in tests]
    return ProcedureResult(
        procedure="two_related_samples",
        tables=tables,
        metadata={
            "hasInsufficientData": any(t.has_insufficient_data for t in tests),
            "pairs": [o["metadata"] for o in outputs],
        },
        output=outputs,
    )
