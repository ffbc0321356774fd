# Statify Engine - Missing-Value Filter
# Classifies raw cells as system-missing, user-missing or valid

from __future__ import annotations

import math
import numbers
import re
from datetime import date
from typing import Any, Optional, Sequence

from statengine.core.config import settings
from statengine.core.exceptions import ValidationException
from statengine.core.logging import get_logger
from statengine.stats.data_model import MissingSpec, NoMissing, ValidSample, VariableType

logger = get_logger(__name__)

# Leading numeric prefix, same acceptance as a spreadsheet's lenient parse
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?))")
_STRICT_NUMBER = re.compile(r"^\s*[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)\s*$")
_DATE_STRING = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")

SPSS_EPOCH = date(1582, 10, 14)
SECONDS_PER_DAY = 86400


def is_number(value: Any) -> bool:
    """True for real numbers; bools are not numbers."""
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def parse_float(value: Any) -> Optional[float]:
    """Lenient float parse: numbers pass through, strings use their numeric prefix."""
    if is_number(value):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    match = _FLOAT_PREFIX.match(value)
    if not match:
        return None
    result = float(match.group(1))
    return result if math.isfinite(result) else None


def strict_number(value: Any) -> Optional[float]:
    """Finite number, or a string that is entirely a number; otherwise None."""
    if is_number(value):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and _STRICT_NUMBER.match(value):
        result = float(value)
        return result if math.isfinite(result) else None
    return None


def parse_confidence_level(value: Any) -> float:
    """Confidence level as a proportion; out-of-range values are a precondition error."""
    if value is None:
        return settings.stats.confidence_level
    level = strict_number(value)
    if level is None or not 0 < level < 1:
        raise ValidationException(
            "Confidence level must be between 0 and 1.",
            field_errors={"confidenceLevel": [f"expected a proportion in (0, 1), got {value!r}"]},
        )
    return level


def date_string_to_spss_seconds(text: Any) -> Optional[float]:
    """
    Convert a ``dd-mm-yyyy`` string to seconds since 14 Oct 1582.

    Returns None when the text is not in that format or is not a real
    calendar date.
    """
    if not isinstance(text, str):
        return None
    match = _DATE_STRING.match(text.strip())
    if not match:
        return None
    day, month, year = (int(g) for g in match.groups())
    try:
        value = date(year, month, day)
    except ValueError:
        return None
    return float((value - SPSS_EPOCH).days * SECONDS_PER_DAY)


def to_numeric(value: Any, variable_type: VariableType) -> Optional[float]:
    """
    Coerce a raw cell to a number for the given variable type.

    Date strings always map to SPSS seconds; numbers pass through when
    finite; NUMERIC strings use the lenient prefix parse.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, str):
        seconds = date_string_to_spss_seconds(value)
        if seconds is not None:
            return seconds
        if variable_type == VariableType.NUMERIC:
            return parse_float(value)
        if variable_type == VariableType.DATE:
            return strict_number(value)
        return None
    if is_number(value):
        return float(value) if math.isfinite(value) else None
    return None


def is_numerically_convertible(value: Any, variable_type: VariableType) -> bool:
    if variable_type == VariableType.NUMERIC:
        return parse_float(value) is not None
    if variable_type == VariableType.DATE:
        return date_string_to_spss_seconds(value) is not None
    return False


def js_string(value: Any) -> str:
    """String form used for discrete comparisons (``99.0`` renders as ``99``)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def _matches_discrete(value: Any, variable_type: VariableType, codes: Sequence[Any]) -> bool:
    compare = value
    if variable_type == VariableType.NUMERIC and not is_number(value):
        parsed = parse_float(value)
        if parsed is not None:
            compare = parsed

    for code in codes:
        code_compare = code
        if variable_type == VariableType.NUMERIC and isinstance(code, str):
            parsed = parse_float(code)
            if parsed is not None:
                code_compare = parsed

        # Numeric-normalised equality first, then string form
        if is_number(compare) and is_number(code_compare) and compare == code_compare:
            return True
        if js_string(value) == js_string(code):
            return True
    return False


def _in_range(value: Any, variable_type: VariableType, bounds: tuple[float, float]) -> bool:
    if variable_type == VariableType.DATE:
        numeric = date_string_to_spss_seconds(value)
    else:
        numeric = float(value) if is_number(value) else parse_float(value)
    if numeric is None or math.isnan(numeric):
        return False
    low, high = bounds
    return low <= numeric <= high


def is_system_missing(value: Any, variable_type: VariableType) -> bool:
    """Blank cells are missing for NUMERIC/DATE only; None and NaN always."""
    if isinstance(value, str) and value == "":
        return variable_type in (VariableType.NUMERIC, VariableType.DATE)
    if value is None:
        return True
    return isinstance(value, float) and math.isnan(value)


def is_missing(value: Any, variable_type: VariableType, spec: Optional[MissingSpec] = None) -> bool:
    """True when the cell is system-missing or user-defined missing."""
    if isinstance(value, str) and value == "":
        return is_system_missing(value, variable_type)
    if is_system_missing(value, variable_type):
        return True

    spec = spec or NoMissing()
    if spec.discrete and _matches_discrete(value, variable_type, spec.discrete):
        return True

    bounds = spec.range
    if bounds is not None and variable_type in (VariableType.NUMERIC, VariableType.DATE):
        if _in_range(value, variable_type, bounds):
            return True
    return False


def is_weight_invalid(weight: Any) -> bool:
    """Missing, non-numeric, NaN/infinite or non-positive weights are invalid."""
    if not is_number(weight):
        return True
    if not math.isfinite(weight):
        return True
    return weight <= 0


def filter_valid(
    data: Optional[Sequence[Any]],
    weights: Optional[Sequence[Any]],
    variable_type: VariableType,
    spec: Optional[MissingSpec] = None,
) -> ValidSample:
    """
    Keep the cells that are neither missing nor carried by an invalid weight.

    ``total_w`` accumulates the weights of numerically convertible cells only.
    Never raises; an empty result is reported as ``valid_n == 0``.
    """
    data = data if data is not None else []
    spec = spec or NoMissing()

    valid_raw: list[Any] = []
    valid_weights: Optional[list[float]] = [] if weights is not None else None
    total_w = 0.0
    valid_n = 0

    for i, value in enumerate(data):
        if weights is not None:
            weight = weights[i] if i < len(weights) else None
        else:
            weight = 1
        if is_weight_invalid(weight):
            continue
        if is_missing(value, variable_type, spec):
            continue

        valid_raw.append(value)
        if valid_weights is not None:
            valid_weights.append(float(weight))
        valid_n += 1
        if is_numerically_convertible(value, variable_type):
            total_w += float(weight)

    if weights is None:
        total_w = float(sum(1 for v in valid_raw if is_numerically_convertible(v, variable_type)))

    logger.debug(
        "Filtered raw cells",
        rows=len(data),
        valid_n=valid_n,
        total_w=total_w,
    )
    return ValidSample(
        valid_raw_data=valid_raw,
        valid_weights=valid_weights,
        total_w=total_w,
        valid_n=valid_n,
    )


def valid_n(
    data: Optional[Sequence[Any]],
    weights: Optional[Sequence[Any]],
    variable_type: VariableType,
    spec: Optional[MissingSpec] = None,
) -> int:
    return filter_valid(data, weights, variable_type, spec).valid_n


def total_valid_weight(
    data: Optional[Sequence[Any]],
    weights: Optional[Sequence[Any]],
    variable_type: VariableType,
    spec: Optional[MissingSpec] = None,
) -> float:
    """Total valid weight of numeric cells; 0 for non-NUMERIC variables."""
    if variable_type != VariableType.NUMERIC:
        return 0.0
    return filter_valid(data, weights, variable_type, spec).total_w


def numeric_values(sample: ValidSample, variable_type: VariableType) -> list[Optional[float]]:
    """Numeric view of a sample, aligned with its weights; None where not convertible."""
    out: list[Optional[float]] = []
    for value in sample.valid_raw_data:
        if variable_type == VariableType.DATE:
            out.append(date_string_to_spss_seconds(value))
        elif variable_type == VariableType.NUMERIC:
            out.append(parse_float(value))
        else:
            out.append(None)
    return out
