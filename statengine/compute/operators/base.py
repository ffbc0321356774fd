from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import pandas as pd

from statengine.core.exceptions import ValidationException
from statengine.stats.data_model import ProcedureResult, Variable


def build_frame(columns: dict[str, list[Any]]) -> pd.DataFrame:
    """Raw data snapshot; short columns are padded with ``None``."""
    frame = pd.DataFrame({name: pd.Series(list(values), dtype=object) for name, values in columns.items()})
    return frame.astype(object).where(frame.notna(), None)


@dataclass(frozen=True)
class OperatorContext:
    request_id: str
    variables: list[Variable]
    df: pd.DataFrame
    weights: Optional[list[Any]] = None
    grouping_variable: Optional[Variable] = None
    pairs: list[tuple[str, str]] = field(default_factory=list)

    def variable(self, name: str) -> Variable:
        for variable in self.variables:
            if variable.name == name:
                return variable
        if self.grouping_variable is not None and self.grouping_variable.name == name:
            return self.grouping_variable
        raise ValidationException(f"Unknown variable '{name}'", field_errors={"variables": [name]})

    def column(self, name: str) -> list[Any]:
        if name not in self.df.columns:
            return []
        return self.df[name].tolist()

    def columns(self, variables: Optional[list[Variable]] = None) -> list[list[Any]]:
        return [self.column(v.name) for v in (self.variables if variables is None else variables)]

    def resolved_pairs(self) -> list[tuple[Variable, list[Any], Variable, list[Any]]]:
        """Explicit pairs, or consecutive variables taken two at a time."""
        names = self.pairs or [
            (self.variables[i].name, self.variables[i + 1].name)
            for i in range(0, len(self.variables) - 1, 2)
        ]
        resolved = []
        for first, second in names:
            v1, v2 = self.variable(first), self.variable(second)
            resolved.append((v1, self.column(first), v2, self.column(second)))
        return resolved


class Operator(Protocol):
    name: str

    def run(self, ctx: OperatorContext, params: dict[str, Any]) -> ProcedureResult: ...
