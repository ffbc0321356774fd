from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from statengine.compute.operators.base import OperatorContext
from statengine.core.exceptions import ValidationException
from statengine.stats.data_model import ProcedureResult
from statengine.stats.descriptives import DescriptiveOptions, run_descriptives
from statengine.stats.independent_t_test import run_independent_t_test
from statengine.stats.paired_t_test import PairedTTestOptions, run_paired_t_test
from statengine.stats.related_samples import RelatedTestType, run_two_related_samples
from statengine.stats.unit_root import run_unit_root


def _require_pairs(ctx: OperatorContext) -> list:
    pairs = ctx.resolved_pairs()
    if not pairs:
        raise ValidationException("Please select at least one pair of variables.")
    return pairs


@dataclass(frozen=True)
class DescriptivesOperator:
    name: str = "descriptives"

    def run(self, ctx: OperatorContext, params: dict[str, Any]) -> ProcedureResult:
        if not ctx.variables:
            raise ValidationException("Please select at least one variable.")
        return run_descriptives(
            ctx.variables,
            ctx.columns(),
            ctx.weights,
            DescriptiveOptions.from_dict(params),
        )


@dataclass(frozen=True)
class TwoRelatedSamplesOperator:
    name: str = "two_related_samples"

    def run(self, ctx: OperatorContext, params: dict[str, Any]) -> ProcedureResult:
        test_type = RelatedTestType.from_dict(params.get("testType"))
        if not (test_type.wilcoxon or test_type.sign):
            raise ValidationException("Please select at least one test type.")
        return run_two_related_samples(_require_pairs(ctx), test_type)


@dataclass(frozen=True)
class PairedSamplesTTestOperator:
    name: str = "paired_samples_t_test"

    def run(self, ctx: OperatorContext, params: dict[str, Any]) -> ProcedureResult:
        return run_paired_t_test(_require_pairs(ctx), PairedTTestOptions.from_dict(params))


@dataclass(frozen=True)
class IndependentSamplesTTestOperator:
    name: str = "independent_samples_t_test"

    def run(self, ctx: OperatorContext, params: dict[str, Any]) -> ProcedureResult:
        grouping = ctx.grouping_variable
        grouping_data = ctx.column(grouping.name) if grouping is not None else []
        return run_independent_t_test(ctx.variables, ctx.columns(), grouping, grouping_data, params)


@dataclass(frozen=True)
class UnitRootTestOperator:
    name: str = "unit_root_test"

    def run(self, ctx: OperatorContext, params: dict[str, Any]) -> ProcedureResult:
        return run_unit_root(ctx.variables, ctx.columns(), params)


PROCEDURE_OPERATORS = [
    DescriptivesOperator(),
    TwoRelatedSamplesOperator(),
    PairedSamplesTTestOperator(),
    IndependentSamplesTTestOperator(),
    UnitRootTestOperator(),
]
