# Statify Engine - Data Model
# Variable metadata, missing-value definitions and result table shapes

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from statengine.core.config import settings
from statengine.core.exceptions import ValidationException


# ============================================================================
# Variable Metadata
# ============================================================================

# SPSS date formats that are all handled as DATE
SPSS_DATE_TYPES = frozenset({
    "DATE", "ADATE", "EDATE", "SDATE", "JDATE", "QYR", "MOYR", "WKYR",
    "DATETIME", "TIME", "DTIME",
})


class VariableType(str, Enum):
    """Storage type of a variable."""
    NUMERIC = "NUMERIC"
    STRING = "STRING"
    DATE = "DATE"

    @classmethod
    def parse(cls, value: Any) -> "VariableType":
        if isinstance(value, VariableType):
            return value
        text = str(value or "NUMERIC").upper()
        if text == "STRING":
            return cls.STRING
        if text in SPSS_DATE_TYPES:
            return cls.DATE
        return cls.NUMERIC


class MeasureLevel(str, Enum):
    """Measurement level of a variable."""
    SCALE = "scale"
    ORDINAL = "ordinal"
    NOMINAL = "nominal"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "MeasureLevel":
        if isinstance(value, MeasureLevel):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


# ============================================================================
# Missing-Value Definitions
# ============================================================================

@dataclass(frozen=True)
class NoMissing:
    """No user-defined missing values."""

    @property
    def discrete(self) -> tuple[Any, ...]:
        return ()

    @property
    def range(self) -> Optional[tuple[float, float]]:
        return None


@dataclass(frozen=True)
class DiscreteMissing:
    """Up to three discrete codes treated as missing."""
    values: tuple[Any, ...]

    @property
    def discrete(self) -> tuple[Any, ...]:
        return self.values

    @property
    def range(self) -> Optional[tuple[float, float]]:
        return None


@dataclass(frozen=True)
class RangeMissing:
    """An inclusive numeric range treated as missing."""
    low: float
    high: float

    @property
    def discrete(self) -> tuple[Any, ...]:
        return ()

    @property
    def range(self) -> Optional[tuple[float, float]]:
        return (self.low, self.high)


@dataclass(frozen=True)
class DiscreteAndRangeMissing:
    """A range plus discrete codes, both treated as missing."""
    values: tuple[Any, ...]
    low: float
    high: float

    @property
    def discrete(self) -> tuple[Any, ...]:
        return self.values

    @property
    def range(self) -> Optional[tuple[float, float]]:
        return (self.low, self.high)


MissingSpec = Union[NoMissing, DiscreteMissing, RangeMissing, DiscreteAndRangeMissing]


def _range_bound(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    from statengine.stats.missing_values import parse_float

    return parse_float(value)


def parse_missing_spec(obj: Any) -> MissingSpec:
    """
    Build a missing-value definition from the loose dict shape.

    Accepts ``None``, an existing variant, or
    ``{"discrete": [...], "range": {"min": x, "max": y}}``. A range whose
    bounds do not parse is ignored.
    """
    if obj is None:
        return NoMissing()
    if isinstance(obj, (NoMissing, DiscreteMissing, RangeMissing, DiscreteAndRangeMissing)):
        return obj
    if not isinstance(obj, dict):
        raise ValidationException(
            "Missing value definition must be an object",
            field_errors={"missing": [f"unsupported type {type(obj).__name__}"]},
        )

    raw_discrete = obj.get("discrete") or []
    if not isinstance(raw_discrete, (list, tuple)):
        raw_discrete = [raw_discrete]
    discrete = tuple(v for v in raw_discrete if v is not None and v != "")

    limit = settings.stats.max_discrete_missing
    if len(discrete) > limit:
        raise ValidationException(
            f"At most {limit} discrete missing values are allowed",
            field_errors={"missing.discrete": [f"got {len(discrete)} values"]},
        )

    bounds: Optional[tuple[float, float]] = None
    raw_range = obj.get("range")
    if isinstance(raw_range, dict):
        low = _range_bound(raw_range.get("min"))
        high = _range_bound(raw_range.get("max"))
        if low is not None and high is not None:
            bounds = (low, high)

    if discrete and bounds:
        return DiscreteAndRangeMissing(values=discrete, low=bounds[0], high=bounds[1])
    if bounds:
        return RangeMissing(low=bounds[0], high=bounds[1])
    if discrete:
        return DiscreteMissing(values=discrete)
    return NoMissing()


@dataclass(frozen=True)
class ValueLabel:
    value: Any
    label: str


@dataclass(frozen=True)
class Variable:
    """Metadata describing one column of the data table."""

    name: str
    type: VariableType = VariableType.NUMERIC
    measure: MeasureLevel = MeasureLevel.UNKNOWN
    label: str = ""
    missing: MissingSpec = field(default_factory=NoMissing)
    values: tuple[ValueLabel, ...] = ()
    column_index: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Variable":
        """Build a variable from the store's dict shape."""
        if not isinstance(data, dict) or not data.get("name"):
            raise ValidationException(
                "Variable definition requires a name",
                field_errors={"name": ["missing"]},
            )
        labels = []
        for item in data.get("values") or []:
            if isinstance(item, dict) and "value" in item:
                labels.append(ValueLabel(value=item["value"], label=str(item.get("label", ""))))
        column_index = data.get("columnIndex", data.get("column_index"))
        return cls(
            name=str(data["name"]),
            type=VariableType.parse(data.get("type")),
            measure=MeasureLevel.parse(data.get("measure", "unknown")),
            label=str(data.get("label") or ""),
            missing=parse_missing_spec(data.get("missing")),
            values=tuple(labels),
            column_index=int(column_index) if column_index is not None else None,
        )

    @property
    def display_name(self) -> str:
        return self.label or self.name

    @property
    def effective_measure(self) -> MeasureLevel:
        """Resolve ``unknown``: nominal for strings, scale otherwise."""
        if self.measure != MeasureLevel.UNKNOWN:
            return self.measure
        if self.type == VariableType.STRING:
            return MeasureLevel.NOMINAL
        return MeasureLevel.SCALE

    @property
    def missing_check_type(self) -> VariableType:
        """Type used for the missing check of paired and grouped procedures.

        Scale and date variables are checked numerically; anything else is
        compared as text, so blanks are not treated as system-missing.
        """
        if self.effective_measure == MeasureLevel.SCALE or self.type == VariableType.DATE:
            return VariableType.NUMERIC if self.type == VariableType.STRING else self.type
        return VariableType.STRING

    def value_label(self, value: Any) -> Optional[str]:
        for item in self.values:
            if item.value == value or str(item.value) == str(value):
                return item.label
        return None


def as_variable(value: Union[Variable, dict[str, Any]]) -> Variable:
    return value if isinstance(value, Variable) else Variable.from_dict(value)


# ============================================================================
# Samples
# ============================================================================

@dataclass(frozen=True)
class ValidSample:
    """Values and weights that survived the missing-value filter."""

    valid_raw_data: list[Any]
    valid_weights: Optional[list[float]]
    total_w: float
    valid_n: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "validRawData": list(self.valid_raw_data),
            "validWeights": list(self.valid_weights) if self.valid_weights is not None else None,
            "totalW": self.total_w,
            "validN": self.valid_n,
        }


@dataclass(frozen=True)
class PairedSample:
    """Rows valid and numeric in both members of a pair."""

    values1: list[float]
    values2: list[float]
    row_indices: list[int]

    @property
    def n(self) -> int:
        return len(self.row_indices)

    @property
    def differences(self) -> list[float]:
        return [b - a for a, b in zip(self.values1, self.values2)]


# ============================================================================
# Result Tables
# ============================================================================

@dataclass
class ResultTable:
    """One output table: ``{title, columnHeaders, rows}``."""

    title: str
    column_headers: list[dict[str, Any]] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    footnotes: list[str] = field(default_factory=list)

    def add_row(self, row_header: list[str], **columns: Any) -> dict[str, Any]:
        row = {"rowHeader": [str(h) for h in row_header], **columns}
        self.rows.append(row)
        return row

    def to_dict(self) -> dict[str, Any]:
        from statengine.core.serialization import to_jsonable

        out: dict[str, Any] = {
            "title": self.title,
            "columnHeaders": to_jsonable(self.column_headers),
            "rows": to_jsonable(self.rows),
        }
        if self.footnotes:
            out["footnotes"] = list(self.footnotes)
        return out


def headers(*names: str) -> list[dict[str, Any]]:
    """Column headers; the first is the row-header column."""
    return [{"header": ""}] + [{"header": name} for name in names]


@dataclass
class ProcedureResult:
    """Named tables plus metadata produced by one procedure run."""

    procedure: str
    tables: list[ResultTable] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    output: Any = None

    def to_dict(self) -> dict[str, Any]:
        from statengine.core.serialization import to_jsonable

        data: dict[str, Any] = {
            "procedure": self.procedure,
            "tables": [t.to_dict() for t in self.tables],
            "metadata": to_jsonable(self.metadata),
        }
        if self.output is not None:
            data["output"] = to_jsonable(self.output)
        return data
