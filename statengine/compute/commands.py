# Statify Engine - Command Log
# SPSS-style command strings recorded by the caller for each analysis

from __future__ import annotations

from typing import Any, Optional, Sequence

from statengine.stats.data_model import Variable
from statengine.stats.independent_t_test import GroupDefinition
from statengine.stats.related_samples import RelatedTestType
from statengine.stats.unit_root import normalize_method


def _names(variables: Sequence[Variable]) -> str:
    return " ".join(v.name for v in variables)


def descriptives_command(variables: Sequence[Variable], save_standardized: bool = False) -> str:
    command = f"DESCRIPTIVES VARIABLES={_names(variables)}"
    if save_standardized:
        command += " /SAVE"
    return command + " /STATISTICS=MEAN STDDEV MIN MAX"


def t_test_command(
    variables: Sequence[Variable],
    grouping_variable: Variable,
    definition: GroupDefinition,
    estimate_effect_size: bool = False,
    confidence_level: float = 0.95,
) -> str:
    """``T-TEST GROUPS=g(1 2) {a b} {ES DISPLAY (TRUE)} {CRITERIA=0.95}``"""
    return (
        f"T-TEST GROUPS={grouping_variable.name}({definition.command_groups()}) "
        f"{{{_names(variables)}}} "
        f"{{ES DISPLAY ({'TRUE' if estimate_effect_size else 'FALSE'})}} "
        f"{{CRITERIA={confidence_level:g}}}"
    )


def paired_t_test_command(first: Sequence[Variable], second: Sequence[Variable]) -> str:
    return f"T-TEST PAIRS={_names(first)} WITH {_names(second)} PAIRED"


def npar_tests_command(
    first: Sequence[Variable],
    second: Sequence[Variable],
    test_type: RelatedTestType,
) -> str:
    command = "NPAR TEST"
    pairs = f"{_names(first)} WITH {_names(second)} (PAIRED)"
    if test_type.wilcoxon:
        command += f"{{WILCOXON={pairs}}}"
    if test_type.sign:
        command += f"{{SIGN={pairs}}}"
    return command


DIFFERENCE_LABELS = {
    "level": "level",
    "first-difference": "first difference",
    "second-difference": "second difference",
}

EQUATION_LABELS = {
    "no_constant": "none",
    "no_trend": "intercept",
    "with_trend": "trend and intercept",
}


def unit_root_command(
    variable: Variable,
    method: str,
    difference: str,
    equation: str,
    lag: Optional[Any] = None,
) -> str:
    """``UNIT ROOT TEST: x on level intercept [with lag length p]``"""
    command = (
        f"UNIT ROOT TEST: {variable.label or variable.name} on "
        f"{DIFFERENCE_LABELS.get(difference, difference)} {EQUATION_LABELS.get(equation, equation)}"
    )
    if normalize_method(method) == "augmented-dickey-fuller":
        command += f" with lag length {lag}"
    return command
