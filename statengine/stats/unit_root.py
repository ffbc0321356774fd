# Statify Engine - Unit Root Tests
# Dickey-Fuller / Augmented Dickey-Fuller regressions with MacKinnon tables

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Optional, Sequence

import numpy as np
from scipy import stats
from statsmodels.tsa.adfvalues import mackinnoncrit, mackinnonp

from statengine.core.config import settings
from statengine.core.exceptions import ValidationException
from statengine.core.logging import get_logger, log_execution_time
from statengine.stats.data_model import ProcedureResult, ResultTable, Variable, VariableType, headers
from statengine.stats.missing_values import parse_float

logger = get_logger(__name__)

ZERO = settings.stats.zero_threshold

METHOD_LABELS = {
    "dickey-fuller": "Dickey-Fuller",
    "augmented-dickey-fuller": "Augmented Dickey-Fuller",
}

# Deterministic terms per equation, as statsmodels regression codes
EQUATIONS = {
    "no_constant": "n",
    "no_trend": "c",
    "with_trend": "ct",
}

DIFFERENCES = {
    "level": 0,
    "first-difference": 1,
    "second-difference": 2,
}

PROBABILITY_NOTE = "Use MacKinnon (1996) one-sided p-values"


def _finite(value: Any) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def normalize_method(method: str) -> str:
    key = str(method or "").strip().lower().replace("_", "-").replace(" ", "-")
    if key not in METHOD_LABELS:
        raise ValidationException(
            f"Unknown unit root method '{method}'",
            field_errors={"method": [f"expected one of {sorted(METHOD_LABELS)}"]},
        )
    return key


def _lookup(table: dict[str, Any], key: str, field: str) -> Any:
    if key not in table:
        raise ValidationException(
            f"Unknown {field} '{key}'",
            field_errors={field: [f"expected one of {sorted(table)}"]},
        )
    return table[key]


# ============================================================================
# Preconditions and Data Preparation
# ============================================================================

def prepare_series(raw: Optional[Sequence[Any]]) -> list[float]:
    """
    Numeric series from a raw column.

    Rows after the last non-empty cell are dropped; remaining cells that
    do not parse as numbers are skipped.
    """
    raw = list(raw or [])
    last = -1
    for index, value in enumerate(raw):
        if value is not None and value != "":
            last = index
    values: list[float] = []
    for value in raw[: last + 1]:
        if value is None or value == "":
            continue
        number = parse_float(value)
        if number is not None:
            values.append(number)
    return values


def validate_unit_root_request(
    variables: Sequence[Variable],
    series: Optional[Sequence[float]],
    lag: Any,
) -> None:
    """Raise ``ValidationException`` for the first failing precondition."""
    cfg = settings.stats
    if not variables:
        raise ValidationException("Please select at least one variable.")
    if variables[0].type == VariableType.STRING:
        raise ValidationException("Selected variable is not numeric")
    if not series:
        raise ValidationException("No data available for the selected variable.")
    if len(series) < cfg.unit_root_min_observations:
        raise ValidationException(f"Data length is less than {cfg.unit_root_min_observations} observations.")
    lag_value = parse_float(lag)
    if lag_value is None or not lag_value.is_integer() or not cfg.lag_min <= lag_value <= cfg.lag_max:
        raise ValidationException(f"Lag length must be between {cfg.lag_min} and {cfg.lag_max}.")


def difference_series(series: Sequence[float], order: int) -> np.ndarray:
    values = np.asarray(series, dtype=float)
    return np.diff(values, n=order) if order > 0 else values


# ============================================================================
# Regression
# ============================================================================

@dataclass(frozen=True)
class RegressionFit:
    """OLS fit; every statistic that is undefined is None."""

    names: list[str]
    nobs: int
    coefficients: list[Optional[float]]
    std_errors: list[Optional[float]]
    t_values: list[Optional[float]]
    p_values: list[Optional[float]]
    criteria: dict[str, Optional[float]]


def fit_ols(y: np.ndarray, X: np.ndarray, names: list[str], has_constant: bool) -> RegressionFit:
    n, k = X.shape
    empty = [None] * k
    criteria: dict[str, Optional[float]] = {
        "R-squared": None,
        "Adjusted R-squared": None,
        "S.E. of regression": None,
        "Sum squared resid": None,
        "Log likelihood": None,
        "F-statistic": None,
        "Prob(F-statistic)": None,
        "Mean dependent var": _finite(y.mean()) if n else None,
        "S.D. dependent var": _finite(y.std(ddof=1)) if n > 1 else None,
        "Akaike info criterion": None,
        "Schwarz criterion": None,
        "Hannan-Quinn criter.": None,
        "Durbin-Watson stat": None,
    }

    if n <= k or np.linalg.matrix_rank(X) < k:
        logger.debug("Degenerate unit root regression", nobs=n, params=k)
        return RegressionFit(names, n, list(empty), list(empty), list(empty), list(empty), criteria)

    beta, *_ = np.linalg.lstsq(X, y, rcond=None)
    resid = y - X @ beta
    ssr = float(resid @ resid)
    df_resid = n - k
    sigma2 = ssr / df_resid
    criteria["Sum squared resid"] = ssr
    criteria["S.E. of regression"] = math.sqrt(sigma2)

    std_errors: list[Optional[float]] = list(empty)
    t_values: list[Optional[float]] = list(empty)
    p_values: list[Optional[float]] = list(empty)
    if sigma2 > ZERO:
        cov = sigma2 * np.linalg.inv(X.T @ X)
        for i in range(k):
            se = _finite(math.sqrt(max(cov[i, i], 0.0)))
            std_errors[i] = se
            if se is not None and se > ZERO:
                t = float(beta[i]) / se
                t_values[i] = t
                p_values[i] = float(2 * stats.t.sf(abs(t), df_resid))

    sst = float(np.sum((y - y.mean()) ** 2))
    if sst > ZERO:
        r2 = 1 - ssr / sst
        criteria["R-squared"] = r2
        criteria["Adjusted R-squared"] = 1 - (1 - r2) * (n - 1) / df_resid
        k_reg = k - 1 if has_constant else k
        ssreg = sst - ssr
        if k_reg > 0 and sigma2 > ZERO:
            f_value = (ssreg / k_reg) / sigma2
            criteria["F-statistic"] = f_value
            criteria["Prob(F-statistic)"] = float(stats.f.sf(f_value, k_reg, df_resid))

    if ssr > ZERO:
        loglik = -n / 2 * (1 + math.log(2 * math.pi) + math.log(ssr / n))
        criteria["Log likelihood"] = loglik
        criteria["Akaike info criterion"] = (-2 * loglik + 2 * k) / n
        criteria["Schwarz criterion"] = (-2 * loglik + k * math.log(n)) / n
        criteria["Hannan-Quinn criter."] = (-2 * loglik + 2 * k * math.log(math.log(n))) / n
        criteria["Durbin-Watson stat"] = float(np.sum(np.diff(resid) ** 2)) / ssr

    return RegressionFit(
        names=names,
        nobs=n,
        coefficients=[_finite(b) for b in beta],
        std_errors=std_errors,
        t_values=t_values,
        p_values=p_values,
        criteria={key: _finite(v) for key, v in criteria.items()},
    )


class DickeyFullerTest:
    """
    Dickey-Fuller regression of the differenced series on its lagged level.

    ``Δy_t = [a0] + γ y_(t-1) [+ a2 t] + ε_t``; the plain test uses no
    lagged differences.
    """

    method = "dickey-fuller"

    def __init__(
        self,
        series: Sequence[float],
        name: str,
        equation: str = "no_trend",
        difference: str = "level",
        lag: int = 0,
    ) -> None:
        self.raw = np.asarray(series, dtype=float)
        self.name = name
        self.equation = equation
        self.regression = _lookup(EQUATIONS, equation, "equation")
        self.difference = difference
        self.order = _lookup(DIFFERENCES, difference, "difference")
        self.lag = self._resolve_lag(lag)

    def _resolve_lag(self, lag: int) -> int:
        return 0

    @property
    def label(self) -> str:
        return METHOD_LABELS[self.method]

    @property
    def holdout(self) -> int:
        """Leading observations of the original series not used for estimation."""
        return max(self.order + 1 + self.lag, settings.stats.unit_root_presample)

    @cached_property
    def design(self) -> tuple[np.ndarray, np.ndarray, list[str]]:
        y = difference_series(self.raw, self.order)
        dy = np.diff(y)
        start = self.holdout - self.order

        rows = range(start, y.size)
        target = np.asarray([y[t] - y[t - 1] for t in rows], dtype=float)

        columns = [np.asarray([y[t - 1] for t in rows], dtype=float)]
        names = [f"{self.name}(-1)"]
        for i in range(1, self.lag + 1):
            # dy[t - 1 - i] is Δy at time t - i
            columns.append(np.asarray([dy[t - 1 - i] for t in rows], dtype=float))
            names.append(f"D({self.name}(-{i}))")
        if self.regression in ("c", "ct"):
            columns.append(np.ones(len(rows)))
            names.append("C")
        if self.regression == "ct":
            columns.append(np.asarray([t + 1 for t in rows], dtype=float))
            names.append("@TREND")

        X = np.column_stack(columns) if len(rows) else np.empty((0, len(columns)))
        return target, X, names

    @cached_property
    def fit(self) -> RegressionFit:
        y, X, names = self.design
        return fit_ols(y, X, names, has_constant=self.regression in ("c", "ct"))

    @property
    def nobs(self) -> int:
        return self.fit.nobs

    @cached_property
    def statistic(self) -> dict[str, Optional[float]]:
        """τ on γ with its MacKinnon p-value and critical values."""
        tau = self.fit.t_values[0]
        p_value = _finite(mackinnonp(tau, regression=self.regression, N=1)) if tau is not None else None
        critical: list[Optional[float]] = [None, None, None]
        if self.nobs > 0:
            critical = [_finite(c) for c in mackinnoncrit(N=1, regression=self.regression, nobs=self.nobs)]
        return {
            "gamma": self.fit.coefficients[0],
            "stdError": self.fit.std_errors[0],
            "tau": tau,
            "pValue": p_value,
            "critical1": critical[0],
            "critical5": critical[1],
            "critical10": critical[2],
        }

    def coefficient_rows(self) -> list[dict[str, Any]]:
        fit = self.fit
        return [
            {
                "variable": name,
                "coefficient": fit.coefficients[i],
                "stdError": fit.std_errors[i],
                "tStatistic": fit.t_values[i],
                "pValue": fit.p_values[i],
            }
            for i, name in enumerate(fit.names)
        ]

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def description_table(self) -> ResultTable:
        table = ResultTable(title="Description Table", column_headers=headers("description"))
        table.add_row(["Name Method"], description=self.label)
        table.add_row(["Series Name"], description=self.name)
        table.add_row(["Equation"], description=self.equation)
        table.add_row(["Number of Lags"], description=str(self.lag))
        table.add_row(["Differencing"], description=self.difference)
        table.add_row(["Probability Value"], description=PROBABILITY_NOTE)
        table.add_row(["Observations"], description=str(self.raw.size))
        table.add_row(["Number Observations After Computing"], description=str(self.nobs))
        return table

    def statistic_table(self) -> ResultTable:
        s = self.statistic
        table = ResultTable(title=f"{self.label} Test Statistic", column_headers=headers("t-Statistic", "Prob."))
        table.add_row([f"{self.label} test statistic"], **{"t-Statistic": s["tau"], "Prob.": s["pValue"]})
        table.add_row(["Test critical values:", "1% level"], **{"t-Statistic": s["critical1"]})
        table.add_row(["Test critical values:", "5% level"], **{"t-Statistic": s["critical5"]})
        table.add_row(["Test critical values:", "10% level"], **{"t-Statistic": s["critical10"]})
        return table

    def coefficient_table(self) -> ResultTable:
        table = ResultTable(
            title="Coeficient Regression Test",
            column_headers=headers("Coefficient", "Std. Error", "t-Statistic", "Prob."),
        )
        for row in self.coefficient_rows():
            table.add_row(
                [row["variable"]],
                **{
                    "Coefficient": row["coefficient"],
                    "Std. Error": row["stdError"],
                    "t-Statistic": row["tStatistic"],
                    "Prob.": row["pValue"],
                },
            )
        return table

    def selection_table(self) -> ResultTable:
        table = ResultTable(title="Selection Criterion", column_headers=headers("value"))
        for key, value in self.fit.criteria.items():
            table.add_row([key], value=value)
        return table


class AugmentedDickeyFullerTest(DickeyFullerTest):
    """Dickey-Fuller regression augmented with ``lag`` lagged differences."""

    method = "augmented-dickey-fuller"

    def _resolve_lag(self, lag: int) -> int:
        return int(lag)


def _as_json(table: ResultTable) -> str:
    return json.dumps({"tables": [table.to_dict()]})


def create_unit_root_test(
    series: Sequence[float],
    name: str,
    method: str,
    lag: int,
    equation: str,
    difference: str,
) -> DickeyFullerTest:
    cls = AugmentedDickeyFullerTest if normalize_method(method) == "augmented-dickey-fuller" else DickeyFullerTest
    return cls(series, name, equation=equation, difference=difference, lag=lag)


@log_execution_time(operation_name="unit_root_test")
def run_unit_root_test(
    series: Sequence[float],
    name: str,
    method: str,
    lag: int,
    equation: str,
    difference: str,
) -> list[Any]:
    """
    Run one unit root test.

    Returns ``[status, description_json, coefficient_table_data,
    df_statistic, coefficient_statistic, selection_criterion,
    method_label]``; the JSON members are ``{"tables": [...]}`` documents.
    """
    test = create_unit_root_test(series, name, method, lag, equation, difference)
    logger.debug(
        "Running unit root test",
        method=test.label,
        equation=equation,
        difference=difference,
        lag=test.lag,
        nobs=test.nobs,
    )
    return [
        "success",
        _as_json(test.description_table()),
        test.coefficient_rows(),
        _as_json(test.statistic_table()),
        _as_json(test.coefficient_table()),
        _as_json(test.selection_table()),
        test.label,
    ]


def run_unit_root(
    variables: Sequence[Variable],
    columns: Sequence[Sequence[Any]],
    options: Optional[dict[str, Any]] = None,
) -> ProcedureResult:
    """Validate, prepare and run the unit root test for the first selected variable."""
    options = options or {}
    series = prepare_series(columns[0]) if variables and columns else []
    lag = options.get("lag", options.get("lengthLag", settings.stats.lag_min))
    validate_unit_root_request(variables, series, lag)

    variable = variables[0]
    test = create_unit_root_test(
        series,
        variable.name,
        options.get("method", "dickey-fuller"),
        int(parse_float(lag)),
        options.get("equation", "no_trend"),
        options.get("difference", "level"),
    )
    output = run_unit_root_test(
        series,
        variable.name,
        test.method,
        test.lag,
        test.equation,
        test.difference,
    )
    return ProcedureResult(
        procedure="unit_root_test",
        tables=[test.description_table(), test.statistic_table(), test.coefficient_table(), test.selection_table()],
        metadata={
            "status": output[0],
            "methodLabel": test.label,
            "seriesLabel": variable.display_name,
            "lag": test.lag,
            "nobs": test.nobs,
        },
        output=output,
    )
