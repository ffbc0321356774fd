# Statify Engine - Numeric Reduction Helpers
# Weighted moments, percentiles and mode over filtered samples

from __future__ import annotations

import math
import re
from functools import cmp_to_key
from typing import Any, Optional, Sequence

import numpy as np

from statengine.core.config import settings
from statengine.stats.data_model import MissingSpec, VariableType
from statengine.stats.missing_values import filter_valid, is_missing, is_number, to_numeric

ZERO = settings.stats.zero_threshold
EPSILON = settings.stats.epsilon

_STRICT_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)$")


def _is_valid_number(value: Any) -> bool:
    return is_number(value) and not math.isnan(value)


def numeric_subset(
    data: Sequence[Any],
    weights: Optional[Sequence[float]] = None,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Numeric entries of ``data`` with their aligned weights.

    Non-numeric entries (strings, None, NaN, bools) are skipped; weights
    default to 1.
    """
    values: list[float] = []
    w: list[float] = []
    for i, value in enumerate(data or []):
        if not _is_valid_number(value):
            continue
        values.append(float(value))
        w.append(float(weights[i]) if weights is not None else 1.0)
    return np.asarray(values, dtype=float), np.asarray(w, dtype=float)


# ============================================================================
# Moments
# ============================================================================

def calculate_sum(data: Sequence[Any], weights: Optional[Sequence[float]] = None) -> float:
    values, w = numeric_subset(data, weights)
    return float(np.sum(values * w)) if values.size else 0.0


def calculate_mean(
    data: Sequence[Any],
    weights: Optional[Sequence[float]],
    total_w: float,
) -> Optional[float]:
    if total_w == 0:
        return None
    return calculate_sum(data, weights) / total_w


def calculate_central_moment(
    data: Sequence[Any],
    weights: Optional[Sequence[float]],
    r: int,
    mean: Optional[float],
) -> Optional[float]:
    """Weighted sum of ``(x - mean) ** r``; None when nothing numeric was seen."""
    if mean is None:
        return None
    values, w = numeric_subset(data, weights)
    if values.size == 0:
        return None
    return float(np.sum(w * (values - mean) ** r))


def calculate_variance(
    data: Sequence[Any],
    weights: Optional[Sequence[float]],
    total_w: float,
    mean: Optional[float],
) -> Optional[float]:
    if total_w <= 1 or mean is None:
        return None
    m2 = calculate_central_moment(data, weights, 2, mean)
    if m2 is None:
        return None
    denominator = total_w - 1
    return m2 / denominator if denominator > ZERO else None


def calculate_std_dev(variance: Optional[float]) -> Optional[float]:
    if variance is None or variance < 0:
        return None
    return math.sqrt(variance)


def calculate_skewness(
    data: Sequence[Any],
    weights: Optional[Sequence[float]],
    total_w: float,
    mean: Optional[float],
    std_dev: Optional[float],
) -> Optional[float]:
    W = total_w
    if W < 3 or mean is None or std_dev is None or std_dev <= ZERO:
        return None
    m3 = calculate_central_moment(data, weights, 3, mean)
    if m3 is None:
        return None
    denominator = (W - 1) * (W - 2) * std_dev ** 3
    if abs(denominator) < ZERO:
        return None
    return (W * m3) / denominator


def calculate_se_skewness(total_w: float) -> Optional[float]:
    W = total_w
    if W < 3:
        return None
    numerator = 6 * W * (W - 1)
    denominator = (W - 2) * (W + 1) * (W + 3)
    if denominator <= ZERO:
        return None
    ratio = numerator / denominator
    return math.sqrt(ratio) if ratio >= 0 else None


def calculate_kurtosis(
    data: Sequence[Any],
    weights: Optional[Sequence[float]],
    total_w: float,
    mean: Optional[float],
    std_dev: Optional[float],
) -> Optional[float]:
    """Excess kurtosis (SPSS formula)."""
    W = total_w
    if W < 4 or mean is None or std_dev is None or std_dev <= ZERO:
        return None
    m4 = calculate_central_moment(data, weights, 4, mean)
    if m4 is None:
        return None

    term1_den = (W - 1) * (W - 2) * (W - 3) * std_dev ** 4
    term2_den = (W - 2) * (W - 3)
    if abs(term1_den) < ZERO or term2_den == 0:
        return None

    term1 = W * (W + 1) * m4 / term1_den
    term2 = 3 * (W - 1) ** 2 / term2_den
    return term1 - term2


def calculate_se_kurtosis(total_w: float) -> Optional[float]:
    W = total_w
    if W < 4:
        return None
    numerator = 24 * W * (W - 1) ** 2
    denominator = (W - 3) * (W - 2) * (W + 3) * (W + 5)
    if denominator <= ZERO:
        return None
    ratio = numerator / denominator
    return math.sqrt(ratio) if ratio >= 0 else None


def calculate_min(data: Sequence[Any]) -> Optional[float]:
    values, _ = numeric_subset(data)
    return float(values.min()) if values.size else None


def calculate_max(data: Sequence[Any]) -> Optional[float]:
    values, _ = numeric_subset(data)
    return float(values.max()) if values.size else None


def calculate_range(minimum: Optional[float], maximum: Optional[float]) -> Optional[float]:
    if minimum is None or maximum is None:
        return None
    return maximum - minimum


def calculate_se_mean(std_dev: Optional[float], total_w: float) -> Optional[float]:
    if total_w <= 0 or std_dev is None:
        return None
    root = math.sqrt(total_w)
    return std_dev / root if root > ZERO else None


def hedges_standardizer(standardizer: Optional[float], df: float) -> Optional[float]:
    """Standardizer divided by the small-sample factor ``J = 1 - 3 / (4 df - 1)``."""
    if standardizer is None or df < 1:
        return None
    j = 1 - 3 / (4 * df - 1)
    return standardizer / j if j > ZERO else None


# ============================================================================
# Percentiles
# ============================================================================

def find_value_at_rank(
    target_rank: float,
    sorted_items: Sequence[tuple[float, float]],
    total_w: float,
) -> float:
    """Value whose cumulative weight first reaches ``target_rank``."""
    if target_rank < 1:
        return sorted_items[0][0]
    if target_rank >= total_w - EPSILON:
        return sorted_items[-1][0]

    cumulative = 0.0
    for value, weight in sorted_items:
        cumulative += weight
        if target_rank <= cumulative + EPSILON:
            return value
    return sorted_items[-1][0]


def calculate_percentile(
    data: Sequence[Any],
    weights: Optional[Sequence[float]],
    p: float,
    total_w: float,
) -> Optional[float]:
    """
    Weighted-Average percentile, rank index ``(W + 1) * p``.

    ``p`` is a fraction in [0, 1]. Interpolates linearly between the values
    at weighted ranks ``g`` and ``g + 1``.
    """
    if p < 0 or p > 1:
        return None
    W = total_w
    if W <= 0 or not data:
        return None

    values, w = numeric_subset(data, weights)
    if values.size == 0:
        return None

    order = np.argsort(values, kind="stable")
    items = [(float(values[k]), float(w[k])) for k in order]

    if p == 0:
        return items[0][0]
    if p == 1:
        return items[-1][0]

    rank = (W + 1) * p
    g = math.floor(rank)
    f = rank - g

    if g < 1:
        return items[0][0]
    if g >= W:
        return items[-1][0]

    x_g = find_value_at_rank(g, items, W)
    x_g1 = find_value_at_rank(g + 1, items, W)
    return (1 - f) * x_g + f * x_g1


def calculate_median(
    data: Sequence[Any],
    weights: Optional[Sequence[float]],
    total_w: float,
) -> Optional[float]:
    return calculate_percentile(data, weights, 0.5, total_w)


def calculate_iqr(
    data: Sequence[Any],
    weights: Optional[Sequence[float]],
    total_w: float,
) -> Optional[float]:
    p25 = calculate_percentile(data, weights, 0.25, total_w)
    p75 = calculate_percentile(data, weights, 0.75, total_w)
    if p25 is None or p75 is None:
        return None
    return p75 - p25


# ============================================================================
# Mode
# ============================================================================

_NAN_KEY = ("__nan__",)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if is_number(value):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0.0
        return float(text) if _STRICT_NUMBER.match(text) else None
    return None


def _compare_mode_values(a: Any, b: Any) -> int:
    num_a, num_b = _as_number(a), _as_number(b)
    if num_a is not None and num_b is not None:
        return (num_a > num_b) - (num_a < num_b)
    str_a, str_b = str(a), str(b)
    return (str_a > str_b) - (str_a < str_b)


def calculate_mode(
    data: Sequence[Any],
    weights: Optional[Sequence[Any]],
    variable_type: VariableType,
    spec: Optional[MissingSpec] = None,
) -> Any:
    """
    Most frequent valid value (weighted), smallest first on ties.

    When every distinct value ties and there are at least two of them the
    smallest is returned as a string suffixed with ``*``.
    """
    sample = filter_valid(data, weights, variable_type, spec)
    if sample.valid_n == 0:
        return None

    frequencies: dict[Any, float] = {}
    first_seen: dict[Any, Any] = {}
    for i, value in enumerate(sample.valid_raw_data):
        key = _NAN_KEY if isinstance(value, float) and math.isnan(value) else value
        weight = sample.valid_weights[i] if sample.valid_weights is not None else 1.0
        frequencies[key] = frequencies.get(key, 0.0) + weight
        first_seen.setdefault(key, value)

    max_frequency = max(frequencies.values())
    if max_frequency <= EPSILON:
        return None

    modes = [first_seen[k] for k, f in frequencies.items() if abs(f - max_frequency) < EPSILON]
    modes.sort(key=cmp_to_key(_compare_mode_values))

    if len(modes) == len(frequencies) and len(modes) > 1:
        smallest = modes[0]
        if isinstance(smallest, float) and smallest.is_integer():
            smallest = int(smallest)
        return f"{smallest}*"
    return modes[0]


# ============================================================================
# Standardized Values
# ============================================================================

def calculate_z_scores(
    data: Sequence[Any],
    variable_type: VariableType,
    spec: Optional[MissingSpec],
    mean: Optional[float],
    std_dev: Optional[float],
) -> Optional[list[Any]]:
    """Row-aligned ``(x - mean) / sd``; excluded rows are ``""``."""
    if mean is None or std_dev is None or std_dev <= ZERO:
        return None
    scores: list[Any] = []
    for value in data:
        x = to_numeric(value, variable_type)
        if x is None or is_missing(value, variable_type, spec):
            scores.append("")
            continue
        scores.append((x - mean) / std_dev)
    return scores
