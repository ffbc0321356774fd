from __future__ import annotations

from statengine.compute.operators.base import Operator
from statengine.compute.operators.procedures import PROCEDURE_OPERATORS
from statengine.core.exceptions import ProcedureNotFoundException


class OperatorRegistry:
    def __init__(self) -> None:
        self._ops: dict[str, Operator] = {}

    def register(self, op: Operator) -> None:
        self._ops[op.name] = op

    def get(self, name: str) -> Operator:
        if name not in self._ops:
            raise ProcedureNotFoundException(name, available=self.list())
        return self._ops[name]

    def list(self) -> list[str]:
        return sorted(self._ops.keys())


def default_registry() -> OperatorRegistry:
    reg = OperatorRegistry()
    for op in PROCEDURE_OPERATORS:
        reg.register(op)
    return reg
